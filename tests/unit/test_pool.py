import psycopg
import pytest
from psycopg_pool import PoolTimeout

from music_pipeline.db.helpers import DatabaseError, fetch_all
from tests.conftest import FakeConnection, FakePool, open_pooled_database


@pytest.mark.asyncio
async def test_connection_yields_pooled_connection(monkeypatch):
    pool = FakePool(FakeConnection(results=[[{"id": 1}]]))
    db = await open_pooled_database(monkeypatch, pool)

    async with db.connection() as conn:
        rows = await fetch_all("SELECT id FROM songs", connection=conn)

    assert rows == [{"id": 1}]
    await db.close()
    assert pool.closed is True


@pytest.mark.asyncio
async def test_acquire_timeout_becomes_database_error(monkeypatch):
    pool = FakePool(acquire_errors={2: PoolTimeout("couldn't get a connection after 30.00 sec")})
    db = await open_pooled_database(monkeypatch, pool)

    with pytest.raises(DatabaseError) as exc:
        async with db.transaction():
            pass

    assert exc.value.operation == "connection"
    assert isinstance(exc.value.__cause__, PoolTimeout)


@pytest.mark.asyncio
async def test_commit_failure_becomes_database_error(monkeypatch):
    pool = FakePool()
    db = await open_pooled_database(monkeypatch, pool)
    pool.conn.commit_error = psycopg.OperationalError("server closed the connection unexpectedly")

    with pytest.raises(DatabaseError) as exc:
        async with db.transaction():
            pass

    assert exc.value.operation == "connection"
    assert pool.conn.transactions == 1


@pytest.mark.asyncio
async def test_non_driver_errors_pass_through(monkeypatch):
    db = await open_pooled_database(monkeypatch, FakePool())

    with pytest.raises(KeyError):
        async with db.connection():
            raise KeyError("missing")


@pytest.mark.asyncio
async def test_failed_startup_check_is_fatal(monkeypatch):
    pool = FakePool(acquire_errors={1: PoolTimeout("couldn't get a connection after 30.00 sec")})

    with pytest.raises(RuntimeError):
        await open_pooled_database(monkeypatch, pool)
