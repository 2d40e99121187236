"""
Source discovery

Finds the files that feed the index. Missing files and directories read as
empty so incremental hooks never fail on an optional file.
"""

import logging
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger("mnemo.indexer.sources")

# Directory under the state root for each multi-document type
TYPE_DIRECTORIES = {
    "project": "projects",
    "person": "people",
    "meeting": "meetings",
    "topic": "topics",
}


def find_markdown_files(directory: Path) -> List[Path]:
    """All .md files under ``directory``, recursively, in sorted order"""
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.rglob("*.md") if p.is_file())


def read_text(path: Path) -> Optional[str]:
    """File content, or None if it cannot be read. Bytes that are not UTF-8 become U+FFFD."""
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning("Cannot read %s: %s", path, e)
        return None


def source_name(path: str, state_root: Optional[Path] = None) -> str:
    """
    Stable name of a source file for item ids.

    Files under the state root are named by their relative POSIX path so two
    files with the same basename in different folders stay distinct. Anything
    else falls back to the basename.
    """
    file_path = Path(path).expanduser()
    if state_root is not None:
        try:
            return file_path.resolve().relative_to(state_root.expanduser().resolve()).as_posix()
        except ValueError:
            pass
    return file_path.name
