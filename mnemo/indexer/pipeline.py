"""
Indexing Pipeline

Turns source files and journal lines into MemoryItems, embeds them and
upserts them into the vector store.

Two entry points:
- incremental: index_file / index_journal_entry, one unit at a time
- rebuild_index: wipe the store and re-derive everything from disk

Ids are deterministic, so both paths overwrite rather than duplicate. A file
that loses sections keeps its old section ids until the next rebuild.
"""

import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..common.embedding_service import EmbeddingService
from ..common.journal import Journal
from ..common.vector_store import IndexEntry, VectorStore
from ..common.schemas import JournalEntry, MemoryItem, MemoryItemType, make_item_id
from .chunker import chunk_markdown
from .sources import TYPE_DIRECTORIES, find_markdown_files, read_text, source_name
from .topics import generate_topics_index

logger = logging.getLogger("mnemo.indexer.pipeline")

TOPICS_INDEX_FILENAME = "topics.md"


def build_file_items(
    path: str,
    content: str,
    item_type: MemoryItemType,
    name: str,
) -> List[MemoryItem]:
    """
    Chunk one file's content into MemoryItems.

    Args:
        path: Source path stored on each item
        content: File content
        item_type: Type of the file
        name: Stable source name used in ids

    Returns:
        Items in section order
    """
    items = []
    for chunk in chunk_markdown(content, item_type):
        items.append(MemoryItem(
            id=make_item_id(item_type, name, chunk.position),
            type=item_type,
            content=chunk.content,
            source=path,
            section=chunk.title,
        ))
    return items


class IndexingPipeline:
    """
    Drives chunking, embedding and upserts for the memory index.

    The store and embedding service are owned by the caller and passed in.
    """

    def __init__(
        self,
        store: VectorStore,
        embedding_service: EmbeddingService,
        state_dir: str,
        journal: Journal,
        state_files: Optional[Sequence[str]] = None,
        related_fanout: int = 8,
        related_limit: int = 3,
        related_min_score: float = 0.4,
    ):
        """
        Initialize pipeline.

        Args:
            store: Vector store to write to
            embedding_service: For embedding item content
            state_dir: Root of the state tree (state files, projects/, people/, ...)
            journal: Journal log to rebuild from
            state_files: Single-document state files under state_dir
            related_fanout: Neighbours fetched when linking a journal entry
            related_limit: Max related ids returned for a journal entry
            related_min_score: Similarity floor for related ids
        """
        self._store = store
        self._embedding = embedding_service
        self._state_dir = Path(state_dir).expanduser()
        self._journal = journal
        self._state_files = list(state_files) if state_files is not None else [
            "today.md", "inbox.md", "commitments.md", "ambient-tasks.md",
        ]
        self._related_fanout = related_fanout
        self._related_limit = related_limit
        self._related_min_score = related_min_score

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    @property
    def topics_dir(self) -> Path:
        return self._state_dir / TYPE_DIRECTORIES["topic"]

    @property
    def topics_index_path(self) -> Path:
        return self._state_dir / TOPICS_INDEX_FILENAME

    # ---------- Upserts ---------- #

    async def index_item(self, item: MemoryItem) -> None:
        """Embed and upsert a single item"""
        self._store.ensure_index()
        vector = self._embedding.embed_single(item.content)
        self._store.upsert_item(item.id, vector, item.to_metadata())

    async def index_items(self, items: List[MemoryItem]) -> None:
        """Embed all items in one batch, then upsert them in order"""
        if not items:
            return

        self._store.ensure_index()
        vectors = self._embedding.embed([i.content for i in items])
        self._store.upsert_items(
            IndexEntry(id=item.id, vector=vector, metadata=item.to_metadata())
            for item, vector in zip(items, vectors)
        )

    # ---------- Incremental ---------- #

    async def index_file(
        self,
        path: str,
        content: str,
        item_type: MemoryItemType,
    ) -> Dict[str, int]:
        """
        Re-index one source file from its new content.

        Sections removed since the last index keep their old ids in the store
        until the next rebuild.

        Returns:
            {"item_count": n}
        """
        item_type = MemoryItemType(item_type)
        if item_type == MemoryItemType.JOURNAL:
            raise ValueError("Journal entries are indexed with index_journal_entry")

        name = source_name(path, self._state_dir)
        logger.info("Indexing file: %s (%s)", name, item_type.value)

        items = build_file_items(path, content, item_type, name)
        await self.index_items(items)

        if item_type == MemoryItemType.TOPIC:
            generate_topics_index(self.topics_dir, self.topics_index_path)

        return {"item_count": len(items)}

    async def index_journal_entry(self, entry: JournalEntry) -> Dict[str, List[str]]:
        """
        Index one journal entry and find what it links to.

        The entry's vector is reused to look up its nearest existing
        neighbours at write time.

        Returns:
            {"related_ids": [...]}
        """
        self._store.ensure_index()
        item = entry.to_memory_item()
        vector = self._embedding.embed_single(item.content)
        self._store.upsert_item(item.id, vector, item.to_metadata())

        hits = self._store.query_items(vector, self._related_fanout)
        related_ids = [
            h.id for h in hits
            if h.id != item.id and h.score > self._related_min_score
        ][:self._related_limit]

        logger.debug("Indexed %s, related: %s", item.id, related_ids)
        return {"related_ids": related_ids}

    # ---------- Full rebuild ---------- #

    def collect_file_items(self) -> List[MemoryItem]:
        """
        Every non-journal item derivable from the state tree.

        Order: state files, projects, people, meetings, topics; files sorted
        within each directory, sections in document order.
        """
        items: List[MemoryItem] = []

        logger.info("Parsing state files...")
        for filename in self._state_files:
            items.extend(self._items_for_path(self._state_dir / filename, MemoryItemType.STATE))

        for item_type in (MemoryItemType.PROJECT, MemoryItemType.PERSON,
                          MemoryItemType.MEETING, MemoryItemType.TOPIC):
            directory = self._state_dir / TYPE_DIRECTORIES[item_type.value]
            logger.info("Parsing %s...", directory.name)
            for path in find_markdown_files(directory):
                items.extend(self._items_for_path(path, item_type))

        return items

    def _items_for_path(self, path: Path, item_type: MemoryItemType) -> List[MemoryItem]:
        content = read_text(path)
        if content is None:
            return []
        return build_file_items(str(path), content, item_type, source_name(str(path), self._state_dir))

    def clear_index(self) -> int:
        """Delete every entry; returns how many were removed"""
        removed = self._store.count_items()
        self._store.clear()
        return removed

    async def rebuild_index(self) -> Dict[str, Any]:
        """
        Rebuild the index from scratch.

        Slow: one embedding call per journal entry plus one batch for files.
        Not transactional, so concurrent searches may see a partial index.

        Returns:
            {"item_count": n, "skipped_journal_lines": m}
        """
        logger.info("Starting full index rebuild...")
        start = time.monotonic()

        self._store.ensure_index()

        logger.info("Clearing existing index...")
        removed = self.clear_index()
        logger.debug("Removed %d entries", removed)

        file_items = self.collect_file_items()
        logger.info("Indexing %d non-journal items...", len(file_items))
        await self.index_items(file_items)

        logger.info("Parsing and linking journal entries...")
        journal_count = 0
        skipped = 0
        for entry, _ in self._journal.iter_entries():
            if entry is None:
                skipped += 1
                continue
            await self.index_journal_entry(entry)
            journal_count += 1
            if journal_count % 10 == 0:
                logger.info("Indexed %d journal entries...", journal_count)

        if skipped:
            logger.warning("Skipped %d malformed journal lines", skipped)

        generate_topics_index(self.topics_dir, self.topics_index_path)

        total = len(file_items) + journal_count
        logger.info("Index rebuild complete in %.0fms (%d items)", (time.monotonic() - start) * 1000, total)
        return {"item_count": total, "skipped_journal_lines": skipped}

    async def get_index_stats(self) -> Dict[str, int]:
        return {"item_count": self._store.count_items()}
