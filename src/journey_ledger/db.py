"""SQLite document store for journey-ledger.

Documents are JSON objects keyed by slash paths (``users/{uid}/stats/main``).
Every document carries a version that is bumped on each write; transactions
record the versions they read and refuse to commit if any of them moved.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

from journey_ledger.config import DEFAULT_MAX_ATTEMPTS
from journey_ledger.exceptions import (
    InvalidInput,
    TransactionConflict,
    TransactionRetriesExhausted,
)

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".journey-ledger" / "data.db"

T = TypeVar("T")


def _split_path(path: str) -> tuple[str, str]:
    """Split a document path into (collection path, document id)."""
    parts = path.split("/")
    if len(parts) < 2 or len(parts) % 2 != 0 or not all(parts):
        raise InvalidInput(f"Not a document path: {path!r}", {"path": path})
    return "/".join(parts[:-1]), parts[-1]


class Database:
    """SQLite-backed document store with WAL mode and optimistic transactions."""

    def __init__(self, db_path: Path | None = None, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.max_attempts = max_attempts
        # Autocommit mode: transactions are opened explicitly with BEGIN IMMEDIATE.
        self.conn = sqlite3.connect(str(self.db_path), isolation_level=None, timeout=10.0)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.init_db()

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS documents (
                path TEXT PRIMARY KEY,
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                data TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1
            );

            CREATE INDEX IF NOT EXISTS idx_documents_collection
                ON documents (collection, doc_id);
        """)

    @contextmanager
    def _immediate(self) -> Iterator[None]:
        """Hold the SQLite write lock for the duration of the block."""
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        self.conn.execute("COMMIT")

    def read(self, path: str) -> tuple[dict[str, Any] | None, int]:
        """Return (document, version). Missing documents have version 0."""
        row = self.conn.execute(
            "SELECT data, version FROM documents WHERE path = ?", (path,)
        ).fetchone()
        if row is None:
            return None, 0
        return json.loads(row["data"]), row["version"]

    def _write(self, path: str, data: dict[str, Any], merge: bool) -> None:
        collection, doc_id = _split_path(path)
        existing, version = self.read(path)
        if merge and existing is not None:
            data = {**existing, **data}
        self.conn.execute(
            "INSERT INTO documents (path, collection, doc_id, data, version) VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(path) DO UPDATE SET data = excluded.data, version = excluded.version",
            (path, collection, doc_id, json.dumps(data, sort_keys=True), version + 1),
        )

    def get(self, path: str) -> dict[str, Any] | None:
        """Get a single document, or None if it does not exist."""
        return self.read(path)[0]

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Write a document. With merge=True only the given top-level fields change."""
        with self._immediate():
            self._write(path, data, merge)

    def merge(self, path: str, fields: dict[str, Any]) -> None:
        """Field-level merge write (creates the document if missing)."""
        self.set(path, fields, merge=True)

    def list_collection(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        """Return (doc_id, document) pairs of a collection, ordered by id."""
        rows = self.conn.execute(
            "SELECT doc_id, data FROM documents WHERE collection = ? ORDER BY doc_id",
            (collection,),
        ).fetchall()
        return [(row["doc_id"], json.loads(row["data"])) for row in rows]

    def transaction(self) -> Transaction:
        """Start a new optimistic transaction."""
        return Transaction(self)

    def run_transaction(self, fn: Callable[[Transaction], T], max_attempts: int | None = None) -> T:
        """Run ``fn`` in a transaction, retrying from scratch on conflict.

        ``fn`` must be safe to re-run: it should only read through the
        transaction and only write through it. Raises
        TransactionRetriesExhausted once the attempt budget is used up.
        """
        attempts = max(1, max_attempts or self.max_attempts)
        last_conflict: TransactionConflict | None = None
        for attempt in range(1, attempts + 1):
            tx = Transaction(self)
            result = fn(tx)
            try:
                tx.commit()
            except TransactionConflict as exc:
                last_conflict = exc
                logger.debug("Transaction conflict on %s (attempt %d/%d)", exc.path, attempt, attempts)
                continue
            return result
        logger.warning("Transaction gave up after %d attempts", attempts)
        raise TransactionRetriesExhausted(attempts, last_conflict)

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()


class Transaction:
    """Buffered read-then-write unit of work.

    Reads go straight to the store and remember the version they saw. Writes
    are buffered and applied at commit, under the write lock, only if none of
    the remembered versions changed in the meantime.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._read_versions: dict[str, int] = {}
        self._writes: dict[str, tuple[dict[str, Any], bool]] = {}
        self.committed = False

    def get(self, path: str) -> dict[str, Any] | None:
        """Read a document, seeing this transaction's own buffered writes."""
        data, version = self._db.read(path)
        self._read_versions.setdefault(path, version)
        if path in self._writes:
            pending, merge = self._writes[path]
            if merge and data is not None:
                return {**data, **pending}
            return dict(pending)
        return data

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Buffer a write. Later merges on the same path stack on earlier ones."""
        _split_path(path)
        if merge and path in self._writes:
            previous, previous_merge = self._writes[path]
            self._writes[path] = ({**previous, **data}, previous_merge)
        else:
            self._writes[path] = (dict(data), merge)

    def commit(self) -> None:
        """Verify read versions and apply buffered writes atomically."""
        if self.committed:
            return
        with self._db._immediate():
            for path, expected in self._read_versions.items():
                _, actual = self._db.read(path)
                if actual != expected:
                    raise TransactionConflict(path, expected, actual)
            for path, (data, merge) in self._writes.items():
                self._db._write(path, data, merge)
        self.committed = True
