"""
Memory Item Schema

Core principle: the vector index is a cache. Every item can be reproduced from
its source file or journal line, so its id must be a pure function of where
it came from.
"""

from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


JOURNAL_SOURCE = "journal.jsonl"
PREAMBLE = "preamble"


# ============================================================================
# Enums
# ============================================================================

class MemoryItemType(str, Enum):
    """Kinds of indexed content"""
    JOURNAL = "journal"
    STATE = "state"
    PROJECT = "project"
    PERSON = "person"
    MEETING = "meeting"
    TOPIC = "topic"


# ============================================================================
# Models
# ============================================================================

class MemoryItem(BaseModel):
    """One embeddable unit with a deterministic identity"""
    model_config = ConfigDict(use_enum_values=True)

    id: str
    type: MemoryItemType
    content: str
    source: str = Field(..., description="File path, or journal.jsonl for journal items")
    section: Optional[str] = Field(default=None, description="Heading the chunk came from")
    timestamp: Optional[str] = Field(default=None, description="ISO-8601 instant")

    def to_metadata(self) -> Dict[str, str]:
        """Flat metadata for the vector store. Absent fields are omitted, not None."""
        metadata = {
            "type": self.type,
            "content": self.content,
            "source": self.source,
        }
        if self.section:
            metadata["section"] = self.section
        if self.timestamp:
            metadata["timestamp"] = self.timestamp
        return metadata


class JournalEntry(BaseModel):
    """
    One line of the append-only journal log.

    Older logs wrote the intent under ``agentIntent``; both keys are read.
    """
    model_config = ConfigDict(populate_by_name=True)

    timestamp: str
    topic: str
    content: str
    intent: Optional[str] = Field(default=None, alias="agentIntent")

    def to_log_dict(self) -> Dict[str, str]:
        data = {"timestamp": self.timestamp, "topic": self.topic, "content": self.content}
        if self.intent:
            data["intent"] = self.intent
        return data

    def to_memory_item(self) -> MemoryItem:
        return MemoryItem(
            id=make_journal_id(self.timestamp),
            type=MemoryItemType.JOURNAL,
            content=f"[{self.topic}] {self.content}",
            source=JOURNAL_SOURCE,
            timestamp=self.timestamp,
        )


class RelatedItem(BaseModel):
    """Compact neighbour of a result, found by re-embedding the result"""
    model_config = ConfigDict(use_enum_values=True)

    id: str
    type: MemoryItemType
    source: str
    snippet: str
    score: float


class SearchResult(BaseModel):
    """A ranked hit from the memory index"""
    model_config = ConfigDict(use_enum_values=True)

    id: str
    type: MemoryItemType
    content: str
    source: str
    section: Optional[str] = None
    timestamp: Optional[str] = None
    score: float
    related: Optional[List[RelatedItem]] = None

    @property
    def summary(self) -> str:
        """Short header for display"""
        where = f" / {self.section}" if self.section else ""
        return f"{self.type}{where} (score: {self.score:.3f})"


class ConversationSummary(BaseModel):
    """
    Summary of a finished conversation, kept for context recovery.

    Written with snake_case keys; older camelCase files are read too.
    """
    model_config = ConfigDict(populate_by_name=True)

    date: str
    summary: str
    notes: Optional[str] = None
    key_decisions: List[str] = Field(default_factory=list, alias="keyDecisions")
    open_threads: List[str] = Field(default_factory=list, alias="openThreads")
    learned_patterns: List[str] = Field(default_factory=list, alias="learnedPatterns")


# ============================================================================
# Identity
# ============================================================================

def _encode(part: Any) -> str:
    # No safe characters: ':' never appears inside an encoded part
    return quote(str(part), safe="")


def make_item_id(
    item_type: Union[MemoryItemType, str],
    source_name: str,
    position: Optional[Union[int, str]] = None,
) -> str:
    """
    Build the id of a file-derived item.

    Args:
        item_type: Item type
        source_name: Stable name of the source file
        position: 1-based section index, "preamble", or None for whole-file items

    Returns:
        Id such as ``project:alpha.md:2``
    """
    type_value = item_type.value if isinstance(item_type, MemoryItemType) else item_type
    parts = [type_value, source_name]
    if position is not None:
        parts.append(position)
    return ":".join(_encode(p) for p in parts)


def make_journal_id(timestamp: str) -> str:
    """Journal ids depend only on the timestamp, so re-logging overwrites"""
    return ":".join(_encode(p) for p in (MemoryItemType.JOURNAL.value, timestamp))


def metadata_to_fields(metadata: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Read MemoryItem fields back out of store metadata.

    Returns None when the record is missing a required field or carries an
    unknown type.
    """
    try:
        item_type = MemoryItemType(metadata["type"])
        content = metadata["content"]
        source = metadata["source"]
    except (KeyError, ValueError, TypeError):
        return None
    if not isinstance(content, str) or not isinstance(source, str):
        return None
    return {
        "type": item_type.value,
        "content": content,
        "source": source,
        "section": metadata.get("section"),
        "timestamp": metadata.get("timestamp"),
    }
