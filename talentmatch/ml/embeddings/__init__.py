"""
Embedding generation and vector retrieval.

Components:
- Embedder / EmbeddingModel: text to unit-length vectors (sentence-transformers)
- profile_text: fixed-order embedding text for candidates and job postings
- VectorIndex: nearest-neighbour retrieval over candidate and job vectors (MongoDB)
"""

from .embedding_model import (
    Embedder,
    EmbeddingModel,
    get_embedding_model,
    normalize_vector,
    validate_text,
)

from .profile_text import (
    candidate_embedding_text,
    job_embedding_text,
)

from .vector_index import (
    AtlasVectorSearchIndex,
    VectorIndex,
    CosineAggregationIndex,
    MongoVectorIndex,
    SearchHit,
    get_candidate_index,
    get_job_index,
)

__all__ = [
    # Embedding model
    "Embedder",
    "EmbeddingModel",
    "get_embedding_model",
    "normalize_vector",
    "validate_text",
    # Profile text
    "candidate_embedding_text",
    "job_embedding_text",
    # Vector index
    "AtlasVectorSearchIndex",
    "VectorIndex",
    "CosineAggregationIndex",
    "MongoVectorIndex",
    "SearchHit",
    "get_candidate_index",
    "get_job_index",
]
