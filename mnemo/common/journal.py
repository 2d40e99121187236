"""
Journal

Append-only JSONL log of agent observations, plus conversation summaries.
The log is the source of truth; the vector index is a cache over it.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from pydantic import ValidationError

from .schemas import ConversationSummary, JournalEntry

logger = logging.getLogger("mnemo.journal")


def utc_now_iso() -> str:
    """Current instant as ISO-8601 with millisecond precision and a Z suffix"""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def parse_journal_line(line: str) -> Optional[JournalEntry]:
    """
    Parse one log line.

    Returns:
        JournalEntry, or None if the line is not a valid entry
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return JournalEntry.model_validate(data)
    except ValidationError:
        return None


class Journal:
    """
    Reads and appends the journal log and the summaries directory.

    Existing lines are never rewritten or deleted.
    """

    def __init__(self, journal_path: str, summaries_dir: Optional[str] = None):
        """
        Initialize journal.

        Args:
            journal_path: Path of journal.jsonl
            summaries_dir: Directory for conversation summaries
                (default: <journal dir>/summaries)
        """
        self._path = Path(journal_path).expanduser()
        self._summaries_dir = (
            Path(summaries_dir).expanduser() if summaries_dir else self._path.parent / "summaries"
        )

    @property
    def path(self) -> Path:
        return self._path

    def append(self, topic: str, content: str, intent: Optional[str] = None) -> JournalEntry:
        """
        Write a journal entry stamped with the current time.

        Returns:
            The entry as written
        """
        entry = JournalEntry(timestamp=utc_now_iso(), topic=topic, content=content, intent=intent)
        self.append_entry(entry)
        return entry

    def append_entry(self, entry: JournalEntry) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_log_dict()) + "\n")

    def iter_entries(self) -> Iterator[Tuple[Optional[JournalEntry], str]]:
        """
        Yield ``(entry, raw_line)`` for every non-blank line.

        ``entry`` is None for malformed lines, including lines that are not
        valid UTF-8. A missing log yields nothing.

        Lines end at ``\\n`` only; JSON writers may leave U+2028 and similar
        separators raw inside a string.
        """
        try:
            data = self._path.read_bytes()
        except FileNotFoundError:
            return

        for raw in data.split(b"\n"):
            raw = raw.rstrip(b"\r")
            if not raw.strip():
                continue
            try:
                line = raw.decode("utf-8")
            except UnicodeDecodeError:
                yield None, raw.decode("utf-8", errors="replace")
                continue
            yield parse_journal_line(line), line

    def read_entries(self) -> List[JournalEntry]:
        """All well-formed entries, in log order"""
        return [entry for entry, _ in self.iter_entries() if entry is not None]

    def recent(self, count: int = 40) -> List[JournalEntry]:
        """The last ``count`` well-formed entries"""
        if count <= 0:
            return []
        return self.read_entries()[-count:]

    # ---------- Conversation summaries ---------- #

    def save_summary(self, summary: ConversationSummary) -> Path:
        """
        Store a conversation summary in its own file named after the current time.

        Returns:
            Path of the written file
        """
        self._summaries_dir.mkdir(parents=True, exist_ok=True)
        stamp = utc_now_iso().replace(":", "-").replace(".", "-")
        path = self._summaries_dir / f"{stamp}.json"
        path.write_text(json.dumps(summary.model_dump(), indent=2), encoding="utf-8")
        return path

    def recent_summaries(self, count: int = 7) -> List[ConversationSummary]:
        """Newest summaries first; unreadable files are skipped"""
        try:
            files = sorted(
                (p for p in self._summaries_dir.iterdir() if p.suffix == ".json"),
                reverse=True,
            )
        except FileNotFoundError:
            return []

        summaries = []
        for path in files[:count]:
            try:
                summaries.append(ConversationSummary.model_validate_json(path.read_text(encoding="utf-8")))
            except (OSError, ValidationError) as e:
                logger.warning("Skipping unreadable summary %s: %s", path.name, e)
        return summaries


def format_journal_for_context(entries: List[JournalEntry]) -> str:
    """Render entries for prompt context, content clipped to 200 characters"""
    if not entries:
        return "(no entries)"

    blocks = []
    for e in entries:
        parts = [f"[{e.timestamp}] {e.topic}"]
        if e.intent:
            parts.append(f"Intent: {e.intent}")
        parts.append(e.content[:200])
        blocks.append("\n  ".join(parts))
    return "\n\n".join(blocks)


def format_summaries(summaries: List[ConversationSummary]) -> str:
    if not summaries:
        return "(no conversation summaries yet)"

    blocks = []
    for s in summaries:
        parts = [f"**{s.date}**: {s.summary}"]
        if s.notes:
            parts.append(f"  Notes: {s.notes}")
        if s.key_decisions:
            parts.append(f"  Decisions: {', '.join(s.key_decisions)}")
        if s.open_threads:
            parts.append(f"  Open: {', '.join(s.open_threads)}")
        if s.learned_patterns:
            parts.append(f"  Patterns: {', '.join(s.learned_patterns)}")
        blocks.append("\n".join(parts))
    return "\n\n".join(blocks)
