"""
Tests for the Indexing Pipeline

Covers incremental indexing, full rebuild and their shared id scheme.
"""

import json
import pytest
from unittest.mock import Mock


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


@pytest.fixture
def populated_root(memory_root):
    """State tree with every content type plus a journal with one bad line"""
    state = memory_root / "state"
    _write(state / "today.md", "Morning notes\n## Focus\nWrite tests\n## Later\n")
    _write(state / "projects" / "alpha.md", "## Status\nActive.\n## Risks\nNone yet.")
    _write(state / "projects" / "work" / "beta.md", "# Beta\nintro")
    _write(state / "people" / "bob.md", "## Role\nEngineer")
    _write(state / "meetings" / "empty.md", "")
    _write(state / "topics" / "rust.md", "# Rust\n## Ownership\nrules")
    _write(state / "projects" / "notes.txt", "not markdown")

    lines = [
        json.dumps({"timestamp": "2024-05-01T10:00:00.000Z", "topic": "build", "content": "shipped v1"}),
        "this is not json",
        "",
        json.dumps({"timestamp": "2024-05-02T10:00:00.000Z", "topic": "build", "content": "shipped v2"}),
    ]
    _write(memory_root / "logs" / "journal.jsonl", "\n".join(lines) + "\n")
    return memory_root


def _ids(store):
    return {e.id for e in store.list_items()}


class TestIndexFile:
    """Incremental file indexing"""

    @pytest.mark.asyncio
    async def test_project_sections_become_items(self, pipeline, store, memory_root):
        path = str(memory_root / "state" / "projects" / "alpha.md")

        result = await pipeline.index_file(path, "## Status\nActive.\n## Risks\nNone yet.", "project")

        assert result == {"item_count": 2}
        entries = store.list_items()
        assert sorted(e.metadata["section"] for e in entries) == ["Risks", "Status"]
        assert all(e.metadata["type"] == "project" for e in entries)
        assert all(e.metadata["source"] == path for e in entries)
        assert not any(e.metadata["section"] == "preamble" for e in entries)

    @pytest.mark.asyncio
    async def test_reindexing_same_content_is_idempotent(self, pipeline, store, memory_root):
        path = str(memory_root / "state" / "projects" / "alpha.md")
        content = "Intro\n## Status\nActive.\n## Risks\nNone yet."

        await pipeline.index_file(path, content, "project")
        first = {e.id: e.metadata["content"] for e in store.list_items()}
        await pipeline.index_file(path, content, "project")
        second = {e.id: e.metadata["content"] for e in store.list_items()}

        assert first == second
        assert len(second) == 3

    @pytest.mark.asyncio
    async def test_updated_section_overwrites(self, pipeline, store, memory_root):
        path = str(memory_root / "state" / "projects" / "alpha.md")

        await pipeline.index_file(path, "## Status\nActive.", "project")
        await pipeline.index_file(path, "## Status\nPaused.", "project")

        entries = store.list_items()
        assert len(entries) == 1
        assert entries[0].metadata["content"] == "## Status\n\nPaused."

    @pytest.mark.asyncio
    async def test_shrinking_file_leaves_orphans_until_rebuild(self, pipeline, store, memory_root):
        path = memory_root / "state" / "projects" / "alpha.md"

        await pipeline.index_file(str(path), "## A\none\n## B\ntwo\n## C\nthree", "project")
        _write(path, "## A\none")
        result = await pipeline.index_file(str(path), "## A\none", "project")

        assert result == {"item_count": 1}
        assert len(store.list_items()) == 3

        await pipeline.rebuild_index()
        assert len(store.list_items()) == 1

    @pytest.mark.asyncio
    async def test_same_basename_in_different_folders(self, pipeline, store, memory_root):
        state = memory_root / "state"

        await pipeline.index_file(str(state / "projects" / "a" / "notes.md"), "## X\none", "project")
        await pipeline.index_file(str(state / "projects" / "b" / "notes.md"), "## X\ntwo", "project")

        assert len(store.list_items()) == 2

    @pytest.mark.asyncio
    async def test_topic_is_one_item_and_regenerates_listing(self, pipeline, store, memory_root):
        path = _write(memory_root / "state" / "topics" / "rust.md", "# Rust\n## Ownership\nrules")

        result = await pipeline.index_file(str(path), path.read_text(), "topic")

        assert result == {"item_count": 1}
        entries = store.list_items()
        assert len(entries) == 1
        assert entries[0].metadata["type"] == "topic"
        assert "section" not in entries[0].metadata
        listing = (memory_root / "state" / "topics.md").read_text()
        assert "- rust.md - Rust" in listing

    @pytest.mark.asyncio
    async def test_file_outside_state_root_uses_basename(self, pipeline, store, tmp_path):
        from mnemo.common.schemas import make_item_id

        await pipeline.index_file(str(tmp_path / "elsewhere" / "x.md"), "## S\nbody", "state")

        assert _ids(store) == {make_item_id("state", "x.md", 1)}

    @pytest.mark.asyncio
    async def test_empty_content_indexes_nothing(self, pipeline, store, memory_root):
        result = await pipeline.index_file(str(memory_root / "state" / "today.md"), "  \n", "state")

        assert result == {"item_count": 0}
        assert store.list_items() == []

    @pytest.mark.asyncio
    async def test_journal_type_rejected(self, pipeline, memory_root):
        with pytest.raises(ValueError):
            await pipeline.index_file("journal.jsonl", "x", "journal")

    @pytest.mark.asyncio
    async def test_embedding_failure_propagates(self, store, journal, memory_root):
        from mnemo.common.embedding_service import EmbeddingError
        from mnemo.indexer.pipeline import IndexingPipeline

        embedding = Mock()
        embedding.embed.side_effect = EmbeddingError("model unavailable")
        pipeline = IndexingPipeline(store, embedding, str(memory_root / "state"), journal)

        with pytest.raises(EmbeddingError):
            await pipeline.index_file(str(memory_root / "state" / "today.md"), "## A\nb", "state")


class TestIndexItems:
    @pytest.mark.asyncio
    async def test_index_items_batches_one_embedding_call(self, pipeline, store, fake_embedding):
        from mnemo.common.schemas import MemoryItem

        items = [
            MemoryItem(id=f"state:x.md:{i}", type="state", content=f"item {i}", source="x.md")
            for i in range(3)
        ]

        await pipeline.index_items(items)

        assert len(fake_embedding.calls) == 1
        assert [e.id for e in store.list_items()] == [i.id for i in items]

    @pytest.mark.asyncio
    async def test_index_items_empty_is_noop(self, pipeline, store, fake_embedding):
        await pipeline.index_items([])

        assert fake_embedding.calls == []
        assert store.is_index_created() is False

    @pytest.mark.asyncio
    async def test_index_item(self, pipeline, store):
        from mnemo.common.schemas import MemoryItem

        await pipeline.index_item(MemoryItem(id="topic:a.md", type="topic", content="a", source="a.md"))

        assert _ids(store) == {"topic:a.md"}


class TestIndexJournalEntry:
    @pytest.mark.asyncio
    async def test_journal_entry_indexed_with_timestamp(self, pipeline, store):
        from mnemo.common.schemas import JournalEntry, make_journal_id

        entry = JournalEntry(timestamp="2024-05-01T10:00:00.000Z", topic="build", content="shipped v1")
        await pipeline.index_journal_entry(entry)

        stored = store.get_item(make_journal_id(entry.timestamp))
        assert stored.metadata == {
            "type": "journal",
            "content": "[build] shipped v1",
            "source": "journal.jsonl",
            "timestamp": "2024-05-01T10:00:00.000Z",
        }

    @pytest.mark.asyncio
    async def test_same_timestamp_overwrites(self, pipeline, store):
        from mnemo.common.schemas import JournalEntry

        ts = "2024-05-01T10:00:00.000Z"
        await pipeline.index_journal_entry(JournalEntry(timestamp=ts, topic="a", content="one"))
        await pipeline.index_journal_entry(JournalEntry(timestamp=ts, topic="a", content="two"))

        assert len(store.list_items()) == 1

    @pytest.mark.asyncio
    async def test_returns_related_ids_excluding_itself(self, pipeline):
        from mnemo.common.schemas import JournalEntry, make_journal_id

        first = JournalEntry(timestamp="2024-05-01T10:00:00.000Z", topic="build", content="shipped v1")
        other = JournalEntry(timestamp="2024-05-01T11:00:00.000Z", topic="lunch", content="pasta")
        second = JournalEntry(timestamp="2024-05-02T10:00:00.000Z", topic="build", content="shipped v2")

        await pipeline.index_journal_entry(first)
        await pipeline.index_journal_entry(other)
        result = await pipeline.index_journal_entry(second)

        assert result["related_ids"] == [make_journal_id(first.timestamp)]


class TestRebuild:
    """Full rebuild"""

    @pytest.mark.asyncio
    async def test_rebuild_counts_all_sources(self, pipeline, populated_root):
        # today: preamble + Focus, alpha: 2, beta: 1, bob: 1, rust: 1, journal: 2
        result = await pipeline.rebuild_index()

        assert result == {"item_count": 9, "skipped_journal_lines": 1}
        assert await pipeline.get_index_stats() == {"item_count": 9}

    @pytest.mark.asyncio
    async def test_rebuild_creates_missing_index_directory(self, pipeline, store, populated_root):
        assert not store.index_dir.exists()

        result = await pipeline.rebuild_index()

        assert store.index_dir.is_dir()
        assert result["item_count"] == 9

    @pytest.mark.asyncio
    async def test_rebuild_empty_tree(self, pipeline, memory_root):
        result = await pipeline.rebuild_index()

        assert result == {"item_count": 0, "skipped_journal_lines": 0}
        assert await pipeline.get_index_stats() == {"item_count": 0}

    @pytest.mark.asyncio
    async def test_rebuild_on_missing_state_directory(self, store, fake_embedding, journal, tmp_path):
        from mnemo.indexer.pipeline import IndexingPipeline

        pipeline = IndexingPipeline(store, fake_embedding, str(tmp_path / "absent"), journal)

        result = await pipeline.rebuild_index()

        assert result["item_count"] == 0

    @pytest.mark.asyncio
    async def test_rebuild_removes_entries_without_source(self, pipeline, store, populated_root):
        store.upsert_item("project:gone.md:1", [1.0] + [0.0] * 1023, {
            "type": "project", "content": "old", "source": "gone.md",
        })

        await pipeline.rebuild_index()

        assert store.get_item("project:gone.md:1") is None

    @pytest.mark.asyncio
    async def test_rebuild_is_repeatable(self, pipeline, store, populated_root):
        await pipeline.rebuild_index()
        first = {e.id: e.metadata for e in store.list_items()}
        await pipeline.rebuild_index()
        second = {e.id: e.metadata for e in store.list_items()}

        assert first == second

    @pytest.mark.asyncio
    async def test_rebuild_order_is_deterministic(self, pipeline, fake_embedding, populated_root):
        await pipeline.rebuild_index()

        batch = fake_embedding.calls[0]
        assert batch == [
            "Morning notes",
            "## Focus\n\nWrite tests",
            "## Status\n\nActive.",
            "## Risks\n\nNone yet.",
            "# Beta\nintro",
            "## Role\n\nEngineer",
            "# Rust\n## Ownership\nrules",
        ]
        journal_calls = fake_embedding.calls[1:]
        assert journal_calls == [["[build] shipped v1"], ["[build] shipped v2"]]

    @pytest.mark.asyncio
    async def test_rebuild_and_incremental_agree_on_ids(self, pipeline, store, populated_root):
        beta = populated_root / "state" / "projects" / "work" / "beta.md"
        await pipeline.index_file(str(beta), beta.read_text(), "project")
        incremental_ids = _ids(store)

        await pipeline.rebuild_index()

        assert incremental_ids <= _ids(store)

    @pytest.mark.asyncio
    async def test_rebuild_writes_topics_listing(self, pipeline, populated_root):
        await pipeline.rebuild_index()

        listing = (populated_root / "state" / "topics.md").read_text()
        assert "- rust.md - Rust" in listing

    @pytest.mark.asyncio
    async def test_custom_state_files(self, store, fake_embedding, journal, memory_root):
        from mnemo.indexer.pipeline import IndexingPipeline

        _write(memory_root / "state" / "today.md", "ignored")
        _write(memory_root / "state" / "focus.md", "kept")
        pipeline = IndexingPipeline(
            store, fake_embedding, str(memory_root / "state"), journal, state_files=["focus.md"],
        )

        result = await pipeline.rebuild_index()

        assert result["item_count"] == 1
        assert store.list_items()[0].metadata["content"] == "kept"


class TestRebuildInputTolerance:
    """Rebuild survives odd bytes in the journal and in source files"""

    @pytest.mark.asyncio
    async def test_undecodable_journal_line_is_skipped(self, pipeline, store, memory_root):
        from mnemo.common.schemas import make_journal_id

        good = json.dumps({"timestamp": "2024-05-01T10:00:00.000Z", "topic": "build", "content": "shipped v1"})
        (memory_root / "logs" / "journal.jsonl").write_bytes(
            good.encode("utf-8") + b"\n"
            + b'{"timestamp": "2024-05-02T10:00:00.000Z", "topic": "\xff", "content": "c"}\n'
        )

        result = await pipeline.rebuild_index()

        assert result == {"item_count": 1, "skipped_journal_lines": 1}
        assert _ids(store) == {make_journal_id("2024-05-01T10:00:00.000Z")}

    @pytest.mark.asyncio
    async def test_unicode_line_separator_stays_inside_entry(self, pipeline, store, memory_root):
        from mnemo.common.schemas import make_journal_id

        line = json.dumps(
            {"timestamp": "2024-05-01T10:00:00.000Z", "topic": "note", "content": "first\u2028second"},
            ensure_ascii=False,
        )
        (memory_root / "logs" / "journal.jsonl").write_text(line + "\r\n", encoding="utf-8")

        result = await pipeline.rebuild_index()

        assert result == {"item_count": 1, "skipped_journal_lines": 0}
        entry = store.get_item(make_journal_id("2024-05-01T10:00:00.000Z"))
        assert entry.metadata["content"] == "[note] first\u2028second"

    @pytest.mark.asyncio
    async def test_latin1_source_files_are_indexed(self, pipeline, store, memory_root):
        state = memory_root / "state"
        (state / "projects").mkdir()
        (state / "topics").mkdir()
        (state / "projects" / "cafe.md").write_bytes("## Status\nCaf\xe9 open.".encode("latin-1"))
        (state / "topics" / "cafe.md").write_bytes("# Caf\xe9\nbody".encode("latin-1"))

        result = await pipeline.rebuild_index()

        assert result["item_count"] == 2
        contents = {e.metadata["content"] for e in store.list_items()}
        assert "## Status\n\nCaf\ufffd open." in contents
        listing = (state / "topics.md").read_text(encoding="utf-8")
        assert "- cafe.md - Caf\ufffd" in listing

    @pytest.mark.asyncio
    async def test_clear_index_drops_store_in_one_call(self, pipeline, store, populated_root):
        from unittest.mock import patch

        await pipeline.rebuild_index()

        with patch.object(store, "delete_item") as delete_item, \
             patch.object(store, "clear", wraps=store.clear) as clear:
            removed = pipeline.clear_index()

        assert removed == 9
        clear.assert_called_once_with()
        delete_item.assert_not_called()
        assert await pipeline.get_index_stats() == {"item_count": 0}
