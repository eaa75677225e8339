from retrieval_eval.chunking import (
    ChunkerPositionAdapter,
    FixedSizeChunker,
    RecursiveCharacterChunker,
    SentenceChunker,
)
from retrieval_eval.schema import create_document

SAMPLE = (
    "Retrieval-Augmented Generation (RAG) combines retrieval with generation. "
    "It retrieves relevant documents and uses them to generate answers.\n\n"
    "RAG improves accuracy by grounding responses in real data. "
    "The retrieval step is critical for RAG performance."
)


if __name__ == "__main__":
    doc = create_document("sample.md", SAMPLE)
    recursive = RecursiveCharacterChunker(chunk_size=80, chunk_overlap=20).chunk_with_positions(doc)
    fixed = ChunkerPositionAdapter(FixedSizeChunker(chunk_size=60)).chunk_with_positions(doc)
    sentences = ChunkerPositionAdapter(SentenceChunker()).chunk_with_positions(doc)
    print(
        {
            "chars": len(SAMPLE),
            "recursive_chunks": len(recursive),
            "fixed_chunks": len(fixed),
            "sentence_chunks": len(sentences),
        }
    )
