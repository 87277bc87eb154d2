"""Current badger 1.0 on-disk format.

This is the format every datastore is upgraded to. Writes go through
transactions: nothing written in a transaction is visible, or durable,
until commit(), and a discarded transaction leaves the store untouched.

Example:
    >>> with BadgerStore(path, create=True) as store:
    ...     with store.transaction() as txn:
    ...         txn.set(b"/key", b"value")
    ...         txn.commit()
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from typing import Optional

from badgerds_upgrade.storage.base import ManifestStore, StoreError

__all__ = ["BadgerStore", "Transaction"]


class Transaction:
    """A single read-write transaction on a BadgerStore.

    Used as a context manager, the transaction is discarded on exit unless
    it was committed.
    """

    def __init__(self, store: BadgerStore, conn: sqlite3.Connection) -> None:
        self._store = store
        self._conn = conn
        self._finished = False
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise StoreError(f"cannot start transaction on {store.directory}: {e}") from e

    @property
    def finished(self) -> bool:
        return self._finished

    def set(self, key: bytes, value: bytes) -> None:
        """Stage a put of ``key`` -> ``value``."""
        if self._finished:
            raise StoreError("transaction already finished")
        try:
            self._conn.execute(
                "INSERT OR REPLACE INTO entries (key, value) VALUES (?, ?)",
                (bytes(key), bytes(value)),
            )
        except sqlite3.Error as e:
            raise StoreError(f"failed to stage write in {self._store.directory}: {e}") from e

    def commit(self) -> None:
        """Make every staged write durable."""
        if self._finished:
            raise StoreError("transaction already finished")
        try:
            self._conn.execute("COMMIT")
        except sqlite3.Error as e:
            self.discard()
            raise StoreError(f"commit to {self._store.directory} failed: {e}") from e
        self._finish()

    def discard(self) -> None:
        """Drop every staged write. No-op once finished."""
        if self._finished:
            return
        try:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            raise StoreError(f"rollback on {self._store.directory} failed: {e}") from e
        finally:
            self._finish()

    def _finish(self) -> None:
        self._finished = True
        self._store._txn = None

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.discard()


class BadgerStore(ManifestStore):
    """Badger 1.0 datastore (manifest version 4)."""

    FORMAT_NAME = "badger-1.0"
    MANIFEST_VERSION = 4
    DB_FILE = "badger.sqlite"

    _txn: Optional[Transaction] = None

    def _init_schema(self) -> None:
        self._connection().execute(
            """
            CREATE TABLE IF NOT EXISTS entries (
                key BLOB PRIMARY KEY,
                value BLOB NOT NULL
            ) WITHOUT ROWID
        """
        )

    def transaction(self) -> Transaction:
        """Start a read-write transaction.

        Raises:
            StoreError: If another transaction is still open.
        """
        if self._txn is not None:
            raise StoreError(f"a transaction is already open on {self.directory}")
        self._txn = Transaction(self, self._connection())
        return self._txn

    def get(self, key: bytes) -> Optional[bytes]:
        """Return the committed value for ``key`` or None."""
        try:
            row = self._connection().execute(
                "SELECT value FROM entries WHERE key = ?", (bytes(key),)
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"failed to read {self.directory}: {e}") from e
        return row[0] if row else None

    def count(self) -> int:
        """Number of committed entries."""
        try:
            (n,) = self._connection().execute("SELECT COUNT(*) FROM entries").fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"failed to read {self.directory}: {e}") from e
        return n

    def iterate(self) -> Iterator[tuple[bytes, bytes]]:
        """Yield every committed key/value pair in key order."""
        try:
            cursor = self._connection().execute("SELECT key, value FROM entries ORDER BY key")
            for key, value in cursor:
                yield key, value
        except sqlite3.Error as e:
            raise StoreError(f"failed to read {self.directory}: {e}") from e

    def close(self) -> None:
        if self._txn is not None:
            self._txn.discard()
        super().close()
