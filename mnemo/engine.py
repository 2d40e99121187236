"""
Memory Engine

One object that owns the vector store, embedding service, journal,
indexing pipeline and searcher, and exposes the memory operations.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from .common.config import MnemoConfig, load_config
from .common.embedding_service import EmbeddingService
from .common.journal import Journal, format_journal_for_context, format_summaries
from .common.vector_store import QdrantVectorStore, VectorStore
from .common.schemas import (
    ConversationSummary,
    JournalEntry,
    MemoryItem,
    MemoryItemType,
    SearchResult,
)
from .indexer.pipeline import IndexingPipeline
from .retriever.searcher import Searcher

logger = logging.getLogger("mnemo.engine")


class MemoryEngine:
    """
    Semantic memory engine.

    Operations run as sequential awaited steps. Rebuild is not
    transactional: callers that need consistent reads must not search
    while a rebuild is running.
    """

    def __init__(
        self,
        store: VectorStore,
        embedding_service: EmbeddingService,
        journal: Journal,
        pipeline: IndexingPipeline,
        searcher: Searcher,
    ):
        self.store = store
        self.embedding = embedding_service
        self.journal = journal
        self.pipeline = pipeline
        self.searcher = searcher

    @classmethod
    def from_config(
        cls,
        config: Optional[MnemoConfig] = None,
        embedding_service: Optional[EmbeddingService] = None,
        store: Optional[VectorStore] = None,
    ) -> "MemoryEngine":
        """
        Wire an engine from configuration.

        Args:
            config: Configuration (default: load_config())
            embedding_service: Override the fastembed-backed service
            store: Override the local file-backed store
        """
        config = config or load_config()
        paths = config.paths

        embedding_service = embedding_service or EmbeddingService(
            model=config.embedding.model,
            cache_dir=config.embedding.cache_dir or None,
        )
        store = store or QdrantVectorStore(str(paths.index_dir))
        journal = Journal(str(paths.journal_path), str(paths.summaries_dir))

        pipeline = IndexingPipeline(
            store=store,
            embedding_service=embedding_service,
            state_dir=str(paths.state_dir),
            journal=journal,
            state_files=paths.state_files,
            related_fanout=config.search.related_fanout,
            related_limit=config.search.related_limit,
            related_min_score=config.search.related_min_score,
        )
        searcher = Searcher(
            store=store,
            embedding_service=embedding_service,
            default_limit=config.search.default_limit,
            related_fanout=config.search.related_fanout,
            related_limit=config.search.related_limit,
            related_min_score=config.search.related_min_score,
            snippet_length=config.search.snippet_length,
        )
        return cls(store, embedding_service, journal, pipeline, searcher)

    def close(self) -> None:
        self.store.close()

    # ---------- Indexing ---------- #

    async def index_item(self, item: MemoryItem) -> None:
        await self.pipeline.index_item(item)

    async def index_items(self, items: List[MemoryItem]) -> None:
        await self.pipeline.index_items(items)

    async def index_file(self, path: str, content: str, item_type: Union[MemoryItemType, str]) -> Dict[str, int]:
        return await self.pipeline.index_file(path, content, MemoryItemType(item_type))

    async def index_journal_entry(self, entry: JournalEntry) -> Dict[str, List[str]]:
        return await self.pipeline.index_journal_entry(entry)

    async def rebuild_index(self) -> Dict[str, Any]:
        return await self.pipeline.rebuild_index()

    async def get_index_stats(self) -> Dict[str, int]:
        return await self.pipeline.get_index_stats()

    # ---------- Retrieval ---------- #

    async def search_memory(
        self,
        query: str,
        limit: Optional[int] = None,
        type: Optional[Union[MemoryItemType, str]] = None,
        since: Optional[str] = None,
        include_related: bool = True,
    ) -> List[SearchResult]:
        return await self.searcher.search(
            query, limit=limit, type=type, since=since, include_related=include_related
        )

    async def get_entry_with_related(self, item_id: str) -> Dict[str, Any]:
        return await self.searcher.get_entry_with_related(item_id)

    # ---------- Journal ---------- #

    async def log_journal(self, topic: str, content: str, intent: Optional[str] = None) -> Dict[str, Any]:
        """
        Append an entry to the journal and index it.

        The log write happens first; if indexing then fails the entry is
        still on disk and the next rebuild picks it up.
        """
        entry = self.journal.append(topic, content, intent)
        linked = await self.pipeline.index_journal_entry(entry)
        return {"entry": entry, "related_ids": linked["related_ids"]}

    def get_recent_journal(self, count: int = 40) -> str:
        return format_journal_for_context(self.journal.recent(count))

    def save_conversation_summary(
        self,
        date: str,
        summary: str,
        notes: Optional[str] = None,
        key_decisions: Optional[List[str]] = None,
        open_threads: Optional[List[str]] = None,
        learned_patterns: Optional[List[str]] = None,
    ) -> ConversationSummary:
        record = ConversationSummary(
            date=date,
            summary=summary,
            notes=notes,
            key_decisions=key_decisions or [],
            open_threads=open_threads or [],
            learned_patterns=learned_patterns or [],
        )
        path = self.journal.save_summary(record)
        logger.info("Saved conversation summary to %s", path.name)
        return record

    def get_recent_summaries(self, count: int = 7) -> str:
        return format_summaries(self.journal.recent_summaries(count))
