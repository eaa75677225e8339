import sys
from pathlib import Path

from openai import OpenAI

from retrieval_eval.data_generation import (
    OpenAIChatClient,
    SyntheticDatasetGenerator,
    TokenLevelStrategy,
    generate_ground_truth,
)
from retrieval_eval.io_utils import load_corpus, save_ground_truth
from retrieval_eval.logging_utils import configure_logging
from retrieval_eval.settings import load_settings


def main() -> None:
    """Generate a token-level ground-truth dataset for a JSONL corpus."""
    configure_logging()
    openai_settings, _, paths = load_settings()
    corpus_path = sys.argv[1] if len(sys.argv) > 1 else f"{paths.data_dir}/corpus.jsonl"
    dataset_name = sys.argv[2] if len(sys.argv) > 2 else "token-level"

    generator = SyntheticDatasetGenerator(
        llm=OpenAIChatClient(OpenAI()),
        corpus=load_corpus(corpus_path),
        model=openai_settings.chat_model,
    )
    ground_truth = generate_ground_truth(generator, TokenLevelStrategy(), queries_per_doc=5)
    destination = Path(paths.ground_truth_dir) / f"{dataset_name}.jsonl"
    save_ground_truth(ground_truth, destination)
    print(f"Wrote {len(ground_truth)} queries to {destination}")


if __name__ == "__main__":
    main()
