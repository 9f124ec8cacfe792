"""Behavior shared by the SQLite and JSON-file providers, plus backend specifics."""

import json
import math

import pytest

from devlog_storage.config import JsonStorageConfig, SQLiteConfig
from devlog_storage.exceptions import InvalidIdentifierError, StorageIOError
from devlog_storage.models import (
    DevlogFilter,
    DevlogPriority,
    DevlogStatus,
    DevlogType,
    NoteCategory,
)
from devlog_storage.storage.local import LocalJsonStorageProvider
from devlog_storage.storage.sqlite import SQLiteStorageProvider
from conftest import make_entry, ts


@pytest.fixture(params=["sqlite", "json"])
async def storage(request, tmp_path):
    if request.param == "sqlite":
        provider = SQLiteStorageProvider(SQLiteConfig(tmp_path / "devlog.db"))
    else:
        provider = LocalJsonStorageProvider(JsonStorageConfig(directory=tmp_path / "devlog"))
    await provider.initialize()
    yield provider
    await provider.dispose()


class TestCrud:
    """Tests for single-entry operations."""

    async def test_save_assigns_sequential_ids(self, storage):
        first = make_entry("First")
        second = make_entry("Second")
        await storage.save(first)
        await storage.save(second)

        assert (first.id, second.id) == (1, 2)
        assert first.created_at is not None
        assert first.updated_at >= first.created_at

    async def test_round_trip(self, storage):
        entry = make_entry(
            "Rich entry",
            type=DevlogType.REFACTOR,
            priority=DevlogPriority.HIGH,
            assignee="alice",
            files=["a.py"],
        )
        entry.context.acceptance_criteria = ["works"]
        entry.add_note("Started", NoteCategory.PROGRESS)
        await storage.save(entry)

        assert await storage.get(entry.id) == entry

    async def test_update_in_place(self, storage):
        entry = make_entry("Draft")
        await storage.save(entry)
        entry.status = DevlogStatus.IN_PROGRESS
        await storage.save(entry)

        loaded = await storage.get(entry.id)
        assert loaded.status is DevlogStatus.IN_PROGRESS
        assert len(await storage.list()) == 1

    async def test_touch_false_keeps_timestamps(self, storage):
        entry = make_entry("Mirrored", devlog_id=40, updated=7)
        await storage.save(entry, touch=False)

        loaded = await storage.get(40)
        assert (loaded.created_at, loaded.updated_at) == (ts(0), ts(7))

    async def test_explicit_id_advances_next_id(self, storage):
        await storage.save(make_entry("Mirrored", devlog_id=40, updated=1), touch=False)
        assert await storage.get_next_id() == 41

        fresh = make_entry("Fresh")
        await storage.save(fresh)
        assert fresh.id == 41

    async def test_ids_are_not_reused(self, storage):
        entry = make_entry("Short lived")
        await storage.save(entry)
        await storage.delete(entry.id)

        assert await storage.get_next_id() == 2

    async def test_delete(self, storage):
        entry = make_entry("Doomed")
        await storage.save(entry)
        await storage.delete(entry.id)

        assert await storage.get(entry.id) is None
        assert await storage.exists(entry.id) is False

    async def test_delete_missing_is_a_no_op(self, storage):
        await storage.delete(999)

    @pytest.mark.parametrize("bad_id", [math.nan, "abc", 0, -1, True])
    async def test_malformed_ids(self, storage, bad_id):
        assert await storage.get(bad_id) is None
        assert await storage.exists(bad_id) is False
        with pytest.raises(InvalidIdentifierError):
            await storage.delete(bad_id)

    async def test_numeric_string_id(self, storage):
        entry = make_entry("Lookup")
        await storage.save(entry)
        assert (await storage.get(str(entry.id))).title == "Lookup"


class TestQueries:
    """Tests for list, search and stats."""

    @pytest.fixture
    async def populated(self, storage):
        entries = [
            make_entry(
                "Fix crash",
                devlog_id=1,
                updated=10,
                type=DevlogType.BUGFIX,
                status=DevlogStatus.IN_PROGRESS,
                assignee="alice",
            ),
            make_entry("Write docs", devlog_id=2, updated=20, type=DevlogType.DOCS),
            make_entry(
                "Ship export",
                devlog_id=3,
                updated=30,
                type=DevlogType.FEATURE,
                status=DevlogStatus.DONE,
                priority=DevlogPriority.HIGH,
            ),
        ]
        entries[1].add_note("Mentions the CRASH log")
        entries[1].updated_at = ts(20)
        for entry in entries:
            await storage.save(entry, touch=False)
        return storage

    async def test_list_most_recent_first(self, populated):
        assert [e.id for e in await populated.list()] == [3, 2, 1]

    async def test_filters_combine(self, populated):
        result = await populated.list(
            DevlogFilter(
                status=[DevlogStatus.IN_PROGRESS, DevlogStatus.DONE],
                type=[DevlogType.BUGFIX],
            )
        )
        assert [e.id for e in result] == [1]

    async def test_assignee_filter(self, populated):
        assert [e.id for e in await populated.list(DevlogFilter(assignee="alice"))] == [1]

    async def test_date_filter(self, populated):
        assert len(await populated.list(DevlogFilter(from_date="2025-01-01"))) == 3
        assert await populated.list(DevlogFilter(from_date="2025-01-02")) == []
        assert len(await populated.list(DevlogFilter(to_date="2025-01-01"))) == 3

    async def test_search_title_and_notes(self, populated):
        assert sorted(e.id for e in await populated.search("crash")) == [1, 2]

    async def test_search_treats_wildcards_literally(self, populated):
        assert await populated.search("%") == []
        assert await populated.search("_") == []

    @pytest.mark.parametrize(
        "note,query",
        [
            ('user said "hello world" loudly', '"hello world"'),
            ("copied to C:\\temp\\x", "C:\\temp"),
            ("first line\nsecond line", "line\nsecond"),
            ("Überprüfung der Ausgabe", "überprüfung"),
        ],
    )
    async def test_search_notes_with_escaped_characters(self, storage, note, query):
        entry = make_entry("Plain title")
        entry.add_note(note)
        await storage.save(entry)

        assert [e.id for e in await storage.search(query)] == [entry.id]

    async def test_search_non_ascii_title_ignores_case(self, storage):
        entry = make_entry("ÉCRAN de connexion")
        await storage.save(entry)

        assert [e.id for e in await storage.search("écran")] == [entry.id]

    async def test_stats(self, populated):
        stats = await populated.get_stats()
        assert stats.total_entries == 3
        assert stats.by_status["done"] == 1
        assert stats.by_status["new"] == 1
        assert stats.by_type["feature"] == 1
        assert stats.by_priority["high"] == 1
        assert stats.by_priority["medium"] == 2


class TestSQLite:
    """SQLite-specific behavior."""

    async def test_not_initialized(self):
        provider = SQLiteStorageProvider()
        with pytest.raises(StorageIOError):
            await provider.get(1)

    async def test_memory_database(self, sqlite_storage):
        entry = make_entry("In memory")
        await sqlite_storage.save(entry)
        assert await sqlite_storage.exists(entry.id)

    async def test_file_survives_reopen(self, tmp_path):
        config = SQLiteConfig(tmp_path / "nested" / "devlog.db")
        first = await SQLiteStorageProvider.create(config)
        entry = make_entry("Persisted")
        await first.save(entry)
        await first.dispose()

        second = await SQLiteStorageProvider.create(config)
        try:
            assert (await second.get(entry.id)).title == "Persisted"
        finally:
            await second.dispose()


class TestLocalJson:
    """JSON-file specific behavior."""

    async def test_file_layout(self, json_storage, tmp_path):
        entry = make_entry("Add Search Box")
        await json_storage.save(entry)

        entry_file = tmp_path / "devlog" / "entries" / "001-add-search-box.json"
        assert entry_file.exists()
        index = json.loads((tmp_path / "devlog" / "index.json").read_text())
        assert index == {"last_id": 1, "entries": {"1": "001-add-search-box.json"}}

    async def test_key_change_renames_file(self, json_storage, tmp_path):
        entry = make_entry("Old name")
        await json_storage.save(entry)
        entry.key = "new-name"
        await json_storage.save(entry)

        files = sorted(p.name for p in (tmp_path / "devlog" / "entries").iterdir())
        assert files == ["001-new-name.json"]

    async def test_corrupt_file_is_skipped(self, json_storage, tmp_path):
        good = make_entry("Good")
        bad = make_entry("Bad")
        await json_storage.save(good)
        await json_storage.save(bad)
        (tmp_path / "devlog" / "entries" / "002-bad.json").write_text("{broken")

        assert [e.id for e in await json_storage.list()] == [good.id]
        assert await json_storage.get(bad.id) is None

    async def test_key_cannot_escape_entries_directory(self, json_storage, tmp_path):
        entry = make_entry("Traversal")
        entry.key = "../../outside"
        await json_storage.save(entry)

        assert not (tmp_path / "outside.json").exists()
        assert not (tmp_path / "devlog" / "outside.json").exists()
        files = [p.name for p in (tmp_path / "devlog" / "entries").iterdir()]
        assert files == ["001-outside.json"]
        assert (await json_storage.get(entry.id)).key == "../../outside"

    async def test_bad_timestamp_file_is_skipped(self, json_storage, tmp_path):
        good = make_entry("Good")
        bad = make_entry("Bad")
        await json_storage.save(good)
        await json_storage.save(bad)
        path = tmp_path / "devlog" / "entries" / "002-bad.json"
        data = json.loads(path.read_text())
        data["created_at"] = "last tuesday"
        path.write_text(json.dumps(data))

        assert [e.id for e in await json_storage.list()] == [good.id]
        assert await json_storage.get(bad.id) is None
