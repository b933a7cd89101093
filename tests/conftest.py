from contextlib import asynccontextmanager

import pytest

from music_pipeline.db.helpers import DatabaseError
from music_pipeline.db.pool import DatabasePoolManager
from music_pipeline.features.catalog_ingestion.client import CatalogClientError


class FakeCatalogClient:
    """Serves pages keyed by (tag, offset). Missing keys are empty pages."""

    def __init__(self, pages=None, failures=None):
        self.pages: dict[tuple[str | None, int], list[dict]] = pages or {}
        self.failures: set[tuple[str | None, int]] = set(failures or [])
        self.calls: list[tuple[str | None, int, int]] = []

    async def fetch_tracks(self, page_size, offset=0, tag=None):
        self.calls.append((tag, offset, page_size))
        if (tag, offset) in self.failures:
            raise CatalogClientError("catalog unavailable", status_code=503, offset=offset, tag=tag)
        return list(self.pages.get((tag, offset), []))


class FakeTrackRepository:
    def __init__(self, fail_when=None):
        self.fail_when = fail_when
        self.batches: list[list] = []
        self.rows: dict[str, object] = {}

    async def upsert_tracks(self, tracks):
        batch = list(tracks)
        if self.fail_when and self.fail_when(batch):
            raise DatabaseError("simulated write failure", operation="execute_many")
        self.batches.append(batch)
        for track in batch:
            self.rows[track.external_id] = track
        return len(batch)


class FakeEventRepository:
    """Serves pre-sorted events by offset and durations by song id."""

    def __init__(self, events=None, durations=None, timestamp_column="created_at"):
        self.events = list(events or [])
        self.durations = dict(durations or {})
        self.timestamp_column = timestamp_column
        self.page_calls: list[tuple[int, int]] = []
        self.duration_calls: list[list[str]] = []
        self.inserted: list[dict] = []

    async def fetch_page(self, offset, limit):
        self.page_calls.append((offset, limit))
        return self.events[offset : offset + limit]

    async def fetch_durations(self, item_ids):
        self.duration_calls.append(list(item_ids))
        return {item_id: self.durations[item_id] for item_id in item_ids if item_id in self.durations}

    async def insert_event(self, event):
        self.inserted.append(event)
        return f"event-{len(self.inserted)}"


class FakeFeatureRepository:
    """Keeps one row per (user, item) key, overwriting like the real upsert."""

    def __init__(self, fail_batches=None):
        self.fail_batches = set(fail_batches or [])
        self.calls: list[list] = []
        self.rows: dict[tuple[str, str], object] = {}

    async def upsert_features(self, features):
        batch = list(features)
        index = len(self.calls)
        self.calls.append(batch)
        if index in self.fail_batches:
            raise DatabaseError("simulated write failure", operation="execute_many")
        for feature in batch:
            self.rows[(feature.user_id, feature.item_id)] = feature
        return len(batch)


class FakeCursor:
    def __init__(self, connection):
        self._connection = connection
        self._rows: list[dict] = []
        self.rowcount = -1

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, query, params=None):
        self._connection.executed.append((query, params))
        if self._connection.error:
            raise self._connection.error
        self._rows = self._connection.results.pop(0) if self._connection.results else []
        self.rowcount = len(self._rows)

    async def executemany(self, query, params_seq):
        params = list(params_seq)
        self._connection.executed_many.append((query, params))
        if self._connection.error:
            raise self._connection.error
        self.rowcount = len(params)

    async def fetchall(self):
        return self._rows

    async def fetchone(self):
        return self._rows[0] if self._rows else None


class FakeConnection:
    def __init__(self, results=None, error=None):
        self.results: list[list[dict]] = list(results or [])
        self.error = error
        self.executed: list[tuple] = []
        self.executed_many: list[tuple] = []
        self.transactions = 0
        self.commit_error = None

    def cursor(self):
        return FakeCursor(self)

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield
        if self.commit_error:
            raise self.commit_error


class FakeDatabase:
    """Stands in for DatabasePoolManager; every query sees the same fake connection."""

    def __init__(self, results=None, error=None):
        self.conn = FakeConnection(results, error)
        self.transactions = 0

    @asynccontextmanager
    async def connection(self):
        yield self.conn

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield self.conn


class FakePool:
    """Stands in for AsyncConnectionPool. acquire_errors maps the n-th acquire (1-based) to an error."""

    def __init__(self, conn=None, acquire_errors=None):
        self.conn = conn or FakeConnection()
        self.acquire_errors = dict(acquire_errors or {})
        self.acquired = 0
        self.closed = False

    async def open(self):
        pass

    async def wait(self):
        pass

    async def close(self):
        self.closed = True

    @asynccontextmanager
    async def connection(self):
        self.acquired += 1
        error = self.acquire_errors.get(self.acquired)
        if error:
            raise error
        yield self.conn


async def open_pooled_database(monkeypatch, pool):
    """A real DatabasePoolManager running on a fake pool. The first acquire is the startup check."""
    pool.conn.results.insert(0, [{"ok": 1}])
    monkeypatch.setattr("music_pipeline.db.pool.AsyncConnectionPool", lambda **kwargs: pool)
    db = DatabasePoolManager("postgresql://pipeline@localhost/test")
    await db.initialize()
    return db


@pytest.fixture
def fake_catalog_client():
    return FakeCatalogClient()


@pytest.fixture
def fake_track_repository():
    return FakeTrackRepository()


@pytest.fixture
def fake_feature_repository():
    return FakeFeatureRepository()
