"""
Indexer - Memory Index Maintenance

Key Components:
- chunk_markdown: splits markdown into heading-delimited sections
- IndexingPipeline: incremental and full-rebuild indexing
- generate_topics_index: derived listing of topic notes
"""

from .chunker import Chunk, chunk_markdown
from .pipeline import IndexingPipeline, build_file_items
from .topics import generate_topics_index

__all__ = [
    "Chunk",
    "chunk_markdown",
    "IndexingPipeline",
    "build_file_items",
    "generate_topics_index",
]
