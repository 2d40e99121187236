"""
Content Chunker

Splits a markdown document into heading-delimited sections.
Pure functions: no I/O, same input always gives the same chunks.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Union

from ..common.schemas import MemoryItemType, PREAMBLE

# A level-2 heading at the start of a line. "### x" does not match.
_SECTION_SPLIT = re.compile(r"^## ", re.MULTILINE)


@dataclass(frozen=True)
class Chunk:
    """
    One addressable section of a document.

    ``position`` is "preamble", the 1-based heading index, or None for a
    whole-file chunk. Positions count every heading, including sections
    dropped for having no body, so a section's position only changes when
    headings before it are added or removed.
    """
    title: Optional[str]
    body: str
    position: Optional[Union[int, str]]

    @property
    def content(self) -> str:
        """Text that gets embedded for this chunk"""
        if isinstance(self.position, int):
            return f"## {self.title}\n\n{self.body}"
        return self.body


def chunk_markdown(text: str, item_type: Union[MemoryItemType, str]) -> List[Chunk]:
    """
    Chunk a markdown document.

    Args:
        text: Raw markdown
        item_type: Type of the document; topics are never split

    Returns:
        Ordered chunks: preamble (if non-empty) then one per non-empty section
    """
    if MemoryItemType(item_type) == MemoryItemType.TOPIC:
        whole = text.strip()
        return [Chunk(title=None, body=whole, position=None)] if whole else []

    segments = _SECTION_SPLIT.split(text)
    chunks: List[Chunk] = []

    preamble = segments[0].strip()
    if preamble:
        chunks.append(Chunk(title=PREAMBLE, body=preamble, position=PREAMBLE))

    for index, segment in enumerate(segments[1:], start=1):
        first_line = segment.split("\n", 1)[0]
        title = first_line.strip()
        body = segment[len(first_line):].strip()
        if body:
            chunks.append(Chunk(title=title, body=body, position=index))

    return chunks
