#!/usr/bin/env python3
"""
Memory Index Maintenance

Rebuild, inspect and query the semantic memory index from the shell.
Rebuild is slow (one embedding call per journal entry) and never runs
implicitly; use this script when the index looks stale.

Usage:
    python scripts/memory_index.py rebuild
    python scripts/memory_index.py stats
    python scripts/memory_index.py search "what did we ship" [--limit 5] [--type journal] [--since 2024-01-01]
    python scripts/memory_index.py index-file state/projects/alpha.md --type project
    python scripts/memory_index.py log build "shipped v1" [--intent "milestone"]
    python scripts/memory_index.py show <item-id>
"""

import sys
import asyncio
import argparse
import logging
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def _print_results(results) -> None:
    if not results:
        print("(no matches found)")
        return

    blocks = []
    for i, r in enumerate(results, start=1):
        lines = [f"[{i}] {r.summary}"]
        if r.timestamp:
            lines.append(f"  Date: {r.timestamp}")
        lines.append(f"  Source: {r.source}")
        lines.append("")
        lines.append(r.content[:500] + ("..." if len(r.content) > 500 else ""))
        for rel in r.related or []:
            lines.append(f"  ~ {rel.type} {rel.id} ({rel.score:.3f}): {rel.snippet}")
        blocks.append("\n".join(lines))
    print("\n\n---\n\n".join(blocks))


async def _run(args, engine) -> int:
    if args.command == "rebuild":
        result = await engine.rebuild_index()
        print(f"Index rebuilt successfully. Indexed {result['item_count']} items.")
        if result["skipped_journal_lines"]:
            print(f"Skipped {result['skipped_journal_lines']} malformed journal lines.")

    elif args.command == "stats":
        stats = await engine.get_index_stats()
        print(f"Index contains {stats['item_count']} items.")

    elif args.command == "search":
        results = await engine.search_memory(
            args.query,
            limit=args.limit,
            type=args.type,
            since=args.since,
            include_related=not args.no_related,
        )
        _print_results(results)

    elif args.command == "index-file":
        path = Path(args.path)
        content = path.read_text(encoding="utf-8")
        result = await engine.index_file(str(path), content, args.type)
        print(f"Indexed {result['item_count']} sections from {path}")

    elif args.command == "log":
        result = await engine.log_journal(args.topic, args.content, args.intent)
        print("Journal entry logged")
        if result["related_ids"]:
            print(f"Related: {', '.join(result['related_ids'])}")

    elif args.command == "show":
        found = await engine.get_entry_with_related(args.id)
        entry = found["entry"]
        if entry is None:
            print(f"No entry with id {args.id}")
            return 1
        print(f"{entry.summary}\n  Source: {entry.source}\n\n{entry.content}")
        for rel in found["related"]:
            print(f"  ~ {rel.type} {rel.id} ({rel.score:.3f}): {rel.snippet}")

    return 0


def main():
    parser = argparse.ArgumentParser(description="Maintain and query the semantic memory index")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("rebuild", help="Wipe the index and rebuild it from state files and the journal")
    sub.add_parser("stats", help="Show how many items are indexed")

    search = sub.add_parser("search", help="Semantic search over memory")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=None)
    search.add_argument("--type", choices=[t.value for t in _item_types()], default=None)
    search.add_argument("--since", default=None, help="Only items at or after this ISO date")
    search.add_argument("--no-related", action="store_true", help="Skip related item expansion")

    index_file = sub.add_parser("index-file", help="Re-index a single file")
    index_file.add_argument("path")
    index_file.add_argument("--type", required=True,
                            choices=[t.value for t in _item_types() if t.value != "journal"])

    log = sub.add_parser("log", help="Append a journal entry and index it")
    log.add_argument("topic")
    log.add_argument("content")
    log.add_argument("--intent", default=None)

    show = sub.add_parser("show", help="Show an item and its related items")
    show.add_argument("id")

    args = parser.parse_args()

    load_dotenv()

    from mnemo.common.config import load_config
    from mnemo.engine import MemoryEngine

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    engine = MemoryEngine.from_config(config)
    try:
        code = asyncio.run(_run(args, engine))
    finally:
        engine.close()
    sys.exit(code)


def _item_types():
    from mnemo.common.schemas import MemoryItemType
    return list(MemoryItemType)


if __name__ == "__main__":
    main()
