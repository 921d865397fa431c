"""SQLite-backed document store.

Documents are JSON bodies addressed by slash-separated paths such as
``userData/default-user`` or ``userData/default-user/backups/backup_1``. The
parent path of a document is its collection. Every public method is a
coroutine; the blocking SQLite work runs in a worker thread with its own
connection.
"""
import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from study_tracker.config import DB_PATH
from study_tracker.errors import TransientStoreError

DEFAULT_DB_PATH = DB_PATH

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    path TEXT PRIMARY KEY,
    collection TEXT NOT NULL,
    body TEXT NOT NULL,
    updated_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);
"""


class _ServerTimestamp:
    def __repr__(self):
        return "SERVER_TIMESTAMP"


# Placeholder resolved to the store's clock when a document is written.
SERVER_TIMESTAMP = _ServerTimestamp()


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()


def collection_of(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


def _server_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _resolve_server_timestamps(value: dict) -> dict:
    now = _server_now()
    return {k: (now if v is SERVER_TIMESTAMP else v) for k, v in value.items()}


class DocumentStore:
    """get / set / delete / list_ordered over the ``documents`` table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            raise TransientStoreError(f"Document store failure: {e}") from e

    async def get(self, path: str) -> dict | None:
        return await self._run(self._get, path)

    async def set(self, path: str, value: dict, merge: bool = False) -> None:
        await self._run(self._set, path, value, merge)

    async def delete(self, path: str) -> None:
        await self._run(self._delete, path)

    async def list_ordered(
        self,
        collection: str,
        order_by: str,
        direction: str = "desc",
        limit: int | None = None,
    ) -> list[dict]:
        """Documents of a collection sorted by a top-level field, each with its ``id``."""
        if direction not in ("asc", "desc"):
            raise ValueError(f"direction must be 'asc' or 'desc', got {direction!r}")
        return await self._run(self._list_ordered, collection, order_by, direction, limit)

    def _get(self, path: str) -> dict | None:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT body FROM documents WHERE path = ?", (path,)).fetchone()
        finally:
            conn.close()
        return json.loads(row["body"]) if row else None

    def _set(self, path: str, value: dict, merge: bool) -> None:
        body = _resolve_server_timestamps(value)
        conn = get_connection(self.db_path)
        try:
            if merge:
                row = conn.execute("SELECT body FROM documents WHERE path = ?", (path,)).fetchone()
                if row:
                    body = {**json.loads(row["body"]), **body}
            conn.execute(
                """INSERT INTO documents (path, collection, body, updated_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at""",
                (path, collection_of(path), json.dumps(body), _server_now()),
            )
            conn.commit()
        finally:
            conn.close()

    def _delete(self, path: str) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("DELETE FROM documents WHERE path = ?", (path,))
            conn.commit()
        finally:
            conn.close()

    def _list_ordered(self, collection: str, order_by: str, direction: str, limit: int | None) -> list[dict]:
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(
                f"""SELECT path, body FROM documents
                WHERE collection = ?
                ORDER BY json_extract(body, ?) {direction.upper()}
                LIMIT ?""",
                (collection, f"$.{order_by}", -1 if limit is None else limit),
            ).fetchall()
        finally:
            conn.close()
        return [
            {"id": row["path"].rsplit("/", 1)[-1], **json.loads(row["body"])}
            for row in rows
        ]
