import psycopg
import pytest

from music_pipeline.db.helpers import DatabaseError, execute_many, fetch_all, fetch_one
from tests.conftest import FakeConnection


@pytest.mark.asyncio
async def test_fetch_one_returns_first_row_or_none():
    conn = FakeConnection(results=[[{"id": 1}, {"id": 2}], []])

    assert await fetch_one("SELECT id FROM songs", connection=conn) == {"id": 1}
    assert await fetch_one("SELECT id FROM songs", connection=conn) is None


@pytest.mark.asyncio
async def test_fetch_all_passes_params():
    conn = FakeConnection(results=[[{"id": 1}]])

    rows = await fetch_all("SELECT id FROM songs WHERE id = %s", ("1",), connection=conn)

    assert rows == [{"id": 1}]
    assert conn.executed == [("SELECT id FROM songs WHERE id = %s", ("1",))]


@pytest.mark.asyncio
async def test_execute_many_with_empty_payload_skips_store():
    conn = FakeConnection()

    assert await execute_many("INSERT INTO songs VALUES (%(id)s)", [], connection=conn) == 0
    assert conn.executed_many == []


@pytest.mark.asyncio
async def test_driver_errors_become_database_errors():
    conn = FakeConnection(error=psycopg.OperationalError("server closed the connection"))

    with pytest.raises(DatabaseError) as exc:
        await fetch_all("SELECT 1", connection=conn)

    assert exc.value.operation == "fetch_all"
    assert exc.value.recoverable is True
