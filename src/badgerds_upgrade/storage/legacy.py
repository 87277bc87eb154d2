"""Reader/writer for the legacy badger 0.8 on-disk format.

Keys live in an ``lsm`` table whose rows point into an append-only ``vlog``
table holding the values. Overwriting a key appends a new value and moves
the pointer; old values stay in the log.
"""

import sqlite3
from collections.abc import Iterator

from badgerds_upgrade.storage.base import ManifestStore, StoreError

__all__ = ["LegacyStore"]


class LegacyStore(ManifestStore):
    """Badger 0.8 datastore (manifest version 2)."""

    FORMAT_NAME = "badger-0.8"
    MANIFEST_VERSION = 2
    DB_FILE = "kv.sqlite"

    def _init_schema(self) -> None:
        conn = self._connection()
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS vlog (
                vptr INTEGER PRIMARY KEY AUTOINCREMENT,
                value BLOB NOT NULL
            )
        """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS lsm (
                key BLOB PRIMARY KEY,
                vptr INTEGER NOT NULL REFERENCES vlog(vptr)
            )
        """
        )

    def set(self, key: bytes, value: bytes) -> None:
        """Write a single key/value pair."""
        conn = self._connection()
        try:
            conn.execute("BEGIN")
            cursor = conn.execute("INSERT INTO vlog (value) VALUES (?)", (bytes(value),))
            conn.execute(
                "INSERT OR REPLACE INTO lsm (key, vptr) VALUES (?, ?)",
                (bytes(key), cursor.lastrowid),
            )
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StoreError(f"failed to write to {self.directory}: {e}") from e

    def iterate(self) -> Iterator[tuple[bytes, bytes]]:
        """Yield every live key/value pair in key order."""
        conn = self._connection()
        try:
            cursor = conn.execute(
                """
                SELECT lsm.key, vlog.value
                FROM lsm JOIN vlog ON vlog.vptr = lsm.vptr
                ORDER BY lsm.key
            """
            )
            for key, value in cursor:
                yield key, value
        except sqlite3.Error as e:
            raise StoreError(f"failed to read {self.directory}: {e}") from e
