"""History store: append ordering, latest cache, durability and recovery."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from chair_monitor.core.timeutil import now_utc
from chair_monitor.domain.models import EMPTY_ENTRY, TelemetryEntry
from chair_monitor.errors import PersistenceTimeout
from chair_monitor.services.history import HistoryStore
from chair_monitor.storage.json_repo import JSONFileRepository
from chair_monitor.storage.sqlite_repo import SQLiteRepository

from .conftest import StepClock


def _mock_backend(persist=None) -> MagicMock:
    backend = MagicMock()
    backend.name = "mock"
    backend.describe = MagicMock(return_value="memory")
    backend.load = AsyncMock(return_value=[])
    backend.persist = persist or AsyncMock()
    return backend


@pytest.fixture
def json_path(tmp_path):
    return tmp_path / "data.json"


@pytest.fixture
def sqlite_path(tmp_path):
    return tmp_path / "history.db"


# =============================================================================
# APPEND + LATEST CACHE
# =============================================================================

class TestAppend:

    @pytest.mark.asyncio
    async def test_empty_store_serves_sentinel(self, json_path):
        store = HistoryStore(JSONFileRepository(str(json_path)))
        await store.load()

        assert len(store) == 0
        assert store.latest() == EMPTY_ENTRY
        assert store.latest().timestamp is None

    @pytest.mark.asyncio
    async def test_length_grows_by_number_of_ingests(self, json_path):
        store = HistoryStore(JSONFileRepository(str(json_path)))
        await store.load()

        before = len(store)
        for i in range(5):
            await store.ingest({"posture": "Good", "distance": i})

        assert len(store) == before + 5

    @pytest.mark.asyncio
    async def test_latest_mirrors_last_append(self, json_path):
        store = HistoryStore(JSONFileRepository(str(json_path)))
        await store.load()

        for payload in ({"posture": "Good"}, {"posture": "Bad", "distance": 3}):
            entry = await store.ingest(payload)
            assert store.latest() == entry
            assert store.read_all()[-1] == entry

    @pytest.mark.asyncio
    async def test_snapshot_is_not_affected_by_later_appends(self, json_path):
        store = HistoryStore(JSONFileRepository(str(json_path)))
        await store.load()
        await store.ingest({"posture": "Good"})

        snap = store.snapshot()
        await store.ingest({"posture": "Bad"})

        assert len(snap) == 1
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_timestamps_never_go_backwards(self):
        store = HistoryStore(_mock_backend(), clock=StepClock(10, 5, 20))
        await store.load()

        a = await store.ingest({})
        b = await store.ingest({})
        c = await store.ingest({})

        assert a.timestamp == b.timestamp
        assert a.timestamp <= b.timestamp <= c.timestamp

    @pytest.mark.asyncio
    async def test_coercions_are_counted(self):
        store = HistoryStore(_mock_backend())
        await store.load()

        await store.ingest({"distance": "abc", "sitting_time": "nan"})

        assert store.stats.coercions == 2


# =============================================================================
# DURABILITY
# =============================================================================

class TestJSONDurability:

    @pytest.mark.asyncio
    async def test_missing_file_is_created_empty(self, json_path):
        store = HistoryStore(JSONFileRepository(str(json_path)))
        await store.load()

        assert json.loads(json_path.read_text()) == []

    @pytest.mark.asyncio
    async def test_every_append_is_on_disk(self, json_path):
        store = HistoryStore(JSONFileRepository(str(json_path)))
        await store.load()

        await store.ingest({"posture": "Bad", "distance": 42, "sitting_time": 16})
        on_disk = json.loads(json_path.read_text())

        assert len(on_disk) == 1
        assert on_disk[0]["posture"] == "Bad"
        assert on_disk[0]["distance"] == 42
        assert on_disk[0]["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_restart_restores_identical_history(self, json_path):
        store = HistoryStore(JSONFileRepository(str(json_path)))
        await store.load()
        for i in range(4):
            await store.ingest({"posture": "Good" if i % 2 else "Bad", "distance": i * 1.5, "sitting_time": i})

        reloaded = HistoryStore(JSONFileRepository(str(json_path)))
        await reloaded.load()

        assert reloaded.snapshot() == store.snapshot()
        assert reloaded.latest() == store.latest()

    @pytest.mark.asyncio
    async def test_concurrent_ingests_persist_in_memory_order(self, json_path):
        store = HistoryStore(JSONFileRepository(str(json_path)))
        await store.load()

        await asyncio.gather(*(store.ingest({"distance": i}) for i in range(20)))

        reloaded = HistoryStore(JSONFileRepository(str(json_path)))
        await reloaded.load()
        assert len(store) == 20
        assert reloaded.snapshot() == store.snapshot()

    @pytest.mark.asyncio
    async def test_corrupt_file_is_kept_aside_after_append(self, json_path):
        json_path.write_text("{not json")
        store = HistoryStore(JSONFileRepository(str(json_path)))

        await store.load()
        assert len(store) == 0
        assert store.latest() == EMPTY_ENTRY

        await store.ingest({"posture": "Good"})

        kept = list(json_path.parent.glob("data.json.corrupt-*"))
        assert len(kept) == 1
        assert kept[0].read_text() == "{not json"
        assert [e["posture"] for e in json.loads(json_path.read_text())] == ["Good"]

    @pytest.mark.asyncio
    async def test_second_corrupt_load_does_not_clobber_first_copy(self, json_path):
        for content in ("first", "second"):
            json_path.write_text(content)
            await HistoryStore(JSONFileRepository(str(json_path))).load()

        kept = sorted(p.read_text() for p in json_path.parent.glob("data.json.corrupt-*"))
        assert kept == ["first", "second"]

    @pytest.mark.asyncio
    async def test_malformed_entry_counts_as_corrupt(self, json_path):
        json_path.write_text(json.dumps([{"posture": "Good"}]))
        store = HistoryStore(JSONFileRepository(str(json_path)))

        await store.load()

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_blank_file_loads_empty(self, json_path):
        json_path.write_text("")
        store = HistoryStore(JSONFileRepository(str(json_path)))

        await store.load()

        assert len(store) == 0


class TestSQLiteDurability:

    @pytest.mark.asyncio
    async def test_restart_restores_identical_history(self, sqlite_path):
        store = HistoryStore(SQLiteRepository(str(sqlite_path)))
        await store.load()
        await store.ingest({"posture": "Bad", "distance": 42, "sitting_time": 2.25})
        await store.ingest({"posture": "Good", "distance": 30.5, "sitting_time": 3})

        reloaded = HistoryStore(SQLiteRepository(str(sqlite_path)))
        await reloaded.load()

        assert reloaded.snapshot() == store.snapshot()
        assert isinstance(reloaded.latest().sitting_time, int)
        assert isinstance(reloaded.read_all()[0].sitting_time, float)

    @pytest.mark.asyncio
    async def test_corrupt_database_is_kept_aside_after_append(self, sqlite_path):
        garbage = b"definitely not sqlite" * 50
        sqlite_path.write_bytes(garbage)
        store = HistoryStore(SQLiteRepository(str(sqlite_path)))

        await store.load()
        assert len(store) == 0

        await store.ingest({"posture": "Good", "distance": 7})

        kept = list(sqlite_path.parent.glob("history.db.corrupt-*"))
        assert len(kept) == 1
        assert kept[0].read_bytes() == garbage
        reloaded = HistoryStore(SQLiteRepository(str(sqlite_path)))
        await reloaded.load()
        assert [e.distance for e in reloaded.snapshot()] == [7]
        assert store.stats.failures == 0

    @pytest.mark.asyncio
    async def test_unstorable_entry_does_not_block_later_writes(self, sqlite_path):
        store = HistoryStore(SQLiteRepository(str(sqlite_path)))
        await store.load()

        await store.append(TelemetryEntry("Good", 10**400, 0, now_utc()))
        for i in range(1, 4):
            await store.ingest({"distance": i})

        reloaded = HistoryStore(SQLiteRepository(str(sqlite_path)))
        await reloaded.load()
        assert len(store) == 4
        assert [e.distance for e in reloaded.snapshot()] == [1, 2, 3]
        assert store.stats.failures == 2

    @pytest.mark.asyncio
    async def test_oversized_integer_reading_is_stored_as_zero(self, sqlite_path):
        store = HistoryStore(SQLiteRepository(str(sqlite_path)))
        await store.load()

        entry = await store.ingest({"distance": 10**400})

        reloaded = HistoryStore(SQLiteRepository(str(sqlite_path)))
        await reloaded.load()
        assert entry.distance == 0
        assert reloaded.snapshot() == store.snapshot()
        assert store.stats.failures == 0

    @pytest.mark.asyncio
    async def test_rows_missed_by_failed_write_are_filled_in(self, sqlite_path):
        repo = SQLiteRepository(str(sqlite_path))
        store = HistoryStore(repo)
        await store.load()

        real_persist = repo.persist
        repo.persist = AsyncMock(side_effect=OSError("disk full"))
        await store.ingest({"distance": 1})
        repo.persist = real_persist
        await store.ingest({"distance": 2})

        reloaded = HistoryStore(SQLiteRepository(str(sqlite_path)))
        await reloaded.load()
        assert [e.distance for e in reloaded.snapshot()] == [1, 2]


# =============================================================================
# WRITE FAILURES
# =============================================================================

class TestWriteFailures:

    @pytest.mark.asyncio
    async def test_failed_write_keeps_in_memory_append(self):
        backend = _mock_backend(persist=AsyncMock(side_effect=OSError("disk full")))
        store = HistoryStore(backend)
        await store.load()

        entry = await store.ingest({"posture": "Good"})

        assert len(store) == 1
        assert store.latest() == entry
        assert store.stats.failures == 1
        assert "disk full" in store.stats.last_error

    @pytest.mark.asyncio
    async def test_slow_write_times_out(self):
        async def slow_persist(entries):
            await asyncio.sleep(1)

        store = HistoryStore(_mock_backend(persist=slow_persist), write_timeout_s=0.05)
        await store.load()

        with pytest.raises(PersistenceTimeout):
            await store.ingest({"posture": "Good"})

        assert len(store) == 1
        assert store.stats.failures == 1

    @pytest.mark.asyncio
    async def test_backend_load_error_starts_empty(self):
        backend = _mock_backend()
        backend.load = AsyncMock(side_effect=PermissionError("denied"))
        store = HistoryStore(backend)

        await store.load()

        assert len(store) == 0
