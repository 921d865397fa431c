"""Tests for the SQLite document store."""
import sqlite3

import pytest

from study_tracker.db import SERVER_TIMESTAMP, DocumentStore, collection_of, get_connection, init_db
from study_tracker.errors import TransientStoreError


def test_init_db_creates_tables(tmp_db):
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
    tables = {row[0] for row in cursor.fetchall()}
    assert "documents" in tables
    conn.close()


def test_init_db_is_idempotent(tmp_db):
    init_db(tmp_db)
    init_db(tmp_db)  # should not raise
    conn = get_connection(tmp_db)
    cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
    assert len(cursor.fetchall()) > 0
    conn.close()


def test_collection_of():
    assert collection_of("userData/default-user/backups/backup_1") == "userData/default-user/backups"
    assert collection_of("userData/default-user") == "userData"


@pytest.mark.asyncio
async def test_get_missing_document_returns_none(store):
    assert await store.get("userData/nobody") is None


@pytest.mark.asyncio
async def test_set_and_get(store):
    await store.set("userData/u1", {"subjects": [{"id": 1, "name": "Math"}]})
    doc = await store.get("userData/u1")
    assert doc == {"subjects": [{"id": 1, "name": "Math"}]}


@pytest.mark.asyncio
async def test_set_without_merge_replaces(store):
    await store.set("userData/u1", {"subjects": [], "dismissedRevisions": ["1-0"]})
    await store.set("userData/u1", {"subjects": []})
    assert await store.get("userData/u1") == {"subjects": []}


@pytest.mark.asyncio
async def test_set_with_merge_keeps_other_fields(store):
    await store.set("userData/u1", {"subjects": [], "dismissedRevisions": ["1-0"]})
    await store.set("userData/u1", {"subjects": [{"id": 2}]}, merge=True)
    assert await store.get("userData/u1") == {"subjects": [{"id": 2}], "dismissedRevisions": ["1-0"]}


@pytest.mark.asyncio
async def test_server_timestamp_is_resolved(store):
    await store.set("userData/u1", {"lastUpdated": SERVER_TIMESTAMP})
    doc = await store.get("userData/u1")
    assert isinstance(doc["lastUpdated"], str)
    assert doc["lastUpdated"].endswith("Z")


@pytest.mark.asyncio
async def test_delete(store):
    await store.set("userData/u1", {"a": 1})
    await store.delete("userData/u1")
    assert await store.get("userData/u1") is None


@pytest.mark.asyncio
async def test_list_ordered(store):
    for i, ts in enumerate(["2025-01-02T00:00:00.000Z", "2025-01-03T00:00:00.000Z", "2025-01-01T00:00:00.000Z"]):
        await store.set(f"userData/u1/backups/b{i}", {"timestamp": ts})
    await store.set("userData/u2/backups/other", {"timestamp": "2030-01-01T00:00:00.000Z"})

    newest_first = await store.list_ordered("userData/u1/backups", "timestamp", "desc")
    assert [d["id"] for d in newest_first] == ["b1", "b0", "b2"]

    oldest_two = await store.list_ordered("userData/u1/backups", "timestamp", "asc", limit=2)
    assert [d["id"] for d in oldest_two] == ["b2", "b0"]


@pytest.mark.asyncio
async def test_list_ordered_rejects_bad_direction(store):
    with pytest.raises(ValueError):
        await store.list_ordered("userData/u1/backups", "timestamp", "sideways")


@pytest.mark.asyncio
async def test_sqlite_errors_become_transient_store_errors(tmp_db):
    store = DocumentStore(tmp_db)  # schema never created
    with pytest.raises(TransientStoreError):
        await store.get("userData/u1")


class _BrokenConnection:
    """Connection whose every statement fails."""

    def __init__(self):
        self.closed = False

    def execute(self, *args):
        raise sqlite3.OperationalError("disk I/O error")

    def close(self):
        self.closed = True


@pytest.mark.parametrize("call", [
    lambda store: store.get("userData/u1"),
    lambda store: store.delete("userData/u1"),
    lambda store: store.set("userData/u1", {"a": 1}),
    lambda store: store.list_ordered("userData/u1/backups", "timestamp"),
])
@pytest.mark.asyncio
async def test_connection_closed_when_statement_fails(tmp_db, monkeypatch, call):
    conn = _BrokenConnection()
    monkeypatch.setattr("study_tracker.db.get_connection", lambda db_path: conn)
    with pytest.raises(TransientStoreError):
        await call(DocumentStore(tmp_db))
    assert conn.closed
