"""
Mnemo Memory Schemas

Shared types for indexed memory items, journal entries and search results.
"""

from .memory_item import (
    MemoryItem,
    MemoryItemType,
    JournalEntry,
    SearchResult,
    RelatedItem,
    ConversationSummary,
    JOURNAL_SOURCE,
    PREAMBLE,
    make_item_id,
    make_journal_id,
    metadata_to_fields,
)

__all__ = [
    "MemoryItem",
    "MemoryItemType",
    "JournalEntry",
    "SearchResult",
    "RelatedItem",
    "ConversationSummary",
    "JOURNAL_SOURCE",
    "PREAMBLE",
    "make_item_id",
    "make_journal_id",
    "metadata_to_fields",
]
