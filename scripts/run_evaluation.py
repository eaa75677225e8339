import sys

from retrieval_eval.chunking import RecursiveCharacterChunker
from retrieval_eval.embeddings import OpenAIEmbedder
from retrieval_eval.evaluation import TokenLevelEvaluation
from retrieval_eval.io_utils import JsonlGroundTruthLoader, load_corpus
from retrieval_eval.logging_utils import configure_logging
from retrieval_eval.reranking import LocalCrossEncoderReranker
from retrieval_eval.settings import load_settings


def main() -> None:
    """Run a token-level evaluation of the recursive chunker with OpenAI embeddings.

    Usage: run_evaluation.py [corpus_path] [dataset_name] [--rerank]
    """
    configure_logging()
    openai_settings, eval_settings, paths = load_settings()
    args = [arg for arg in sys.argv[1:] if not arg.startswith("--")]
    corpus_path = args[0] if len(args) > 0 else f"{paths.data_dir}/corpus.jsonl"
    dataset_name = args[1] if len(args) > 1 else "token-level"
    reranker = LocalCrossEncoderReranker.from_settings(eval_settings) if "--rerank" in sys.argv else None

    evaluation = TokenLevelEvaluation(
        corpus=load_corpus(corpus_path),
        dataset_name=dataset_name,
        loader=JsonlGroundTruthLoader(paths.ground_truth_dir, level="token-level"),
    )
    result = evaluation.run(
        chunker=RecursiveCharacterChunker(eval_settings.chunk_size, eval_settings.chunk_overlap),
        embedder=OpenAIEmbedder.create(openai_settings.embedding_model),
        k=eval_settings.k,
        reranker=reranker,
        batch_size=eval_settings.batch_size,
    )
    for name, score in result.metrics.items():
        print(f"{name:>16}: {score:.4f}")
    print(
        f"queries={result.query_count} skipped_queries={result.skipped_queries} "
        f"skipped_chunks={result.skipped_chunks} skipped_spans={result.skipped_spans}"
    )


if __name__ == "__main__":
    main()
