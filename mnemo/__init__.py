"""
Mnemo

Long-term semantic memory for a personal agent.

Philosophy:
- The journal log and markdown state files are the source of truth
- The vector index is a cache that can always be rebuilt from them
- Item ids are deterministic, so re-indexing overwrites instead of duplicating
- Related items are found by re-embedding, not by a stored graph

Usage:
    from mnemo.engine import MemoryEngine
    from mnemo.common import load_config, EmbeddingService, QdrantVectorStore
    from mnemo.indexer import IndexingPipeline, chunk_markdown
    from mnemo.retriever import Searcher
"""

__version__ = "0.1.0"
