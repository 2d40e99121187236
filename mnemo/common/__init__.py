"""
Mnemo Common Module

Shared infrastructure for the indexer and retriever.
"""

from .config import MnemoConfig, load_config
from .embedding_service import EmbeddingService, EmbeddingError
from .journal import Journal
from .vector_store import VectorStore, QdrantVectorStore, VectorStoreError, IndexEntry, QueryHit

__all__ = [
    "MnemoConfig",
    "load_config",
    "EmbeddingService",
    "EmbeddingError",
    "Journal",
    "VectorStore",
    "QdrantVectorStore",
    "VectorStoreError",
    "IndexEntry",
    "QueryHit",
]
