"""
Topics listing

Regenerates ``topics.md``, a materialised list of every topic note. It has no
state of its own and is rewritten from scratch on every topic write.
"""

import logging
import re
from pathlib import Path
from typing import List, Tuple

from .sources import find_markdown_files, read_text

logger = logging.getLogger("mnemo.indexer.topics")

TOPICS_HEADER = [
    "# Topics",
    "",
    "Working knowledge - distilled understanding of concepts and tools.",
    "",
]

_H1 = re.compile(r"^#\s+(.+)$", re.MULTILINE)


def extract_title(content: str, filename: str) -> str:
    """First level-1 heading, or the filename without .md"""
    match = _H1.search(content)
    if match:
        return match.group(1).strip()
    return filename[:-3] if filename.endswith(".md") else filename


def collect_topics(topics_dir: Path) -> List[Tuple[str, str]]:
    """``(filename, title)`` pairs sorted by title, then filename"""
    entries = []
    for path in find_markdown_files(topics_dir):
        content = read_text(path)
        if content is None:
            continue
        entries.append((path.name, extract_title(content, path.name)))
    entries.sort(key=lambda e: (e[1].lower(), e[0]))
    return entries


def render_topics_index(entries: List[Tuple[str, str]]) -> str:
    lines = list(TOPICS_HEADER)
    lines.extend(f"- {filename} - {title}" for filename, title in entries)
    lines.append("")
    return "\n".join(lines)


def generate_topics_index(topics_dir: Path, output_path: Path) -> int:
    """
    Rewrite the topics listing.

    Args:
        topics_dir: Directory holding topic notes
        output_path: Listing file to write

    Returns:
        Number of topics listed, or -1 if the listing could not be written
    """
    entries = collect_topics(topics_dir)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(render_topics_index(entries), encoding="utf-8")
    except OSError as e:
        logger.error("Failed to write %s: %s", output_path, e)
        return -1

    logger.info("Generated %s with %d entries", output_path.name, len(entries))
    return len(entries)
