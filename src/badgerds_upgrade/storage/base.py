"""Shared on-disk plumbing for badger datastore formats.

A datastore is a directory holding:
- MANIFEST: 4-byte magic (b"Bdgr") followed by a big-endian uint16 format
  version. A store refuses to open a directory whose manifest carries a
  version other than its own.
- A SQLite database file whose name and schema belong to the format.

Each format subclasses ManifestStore and supplies its schema and queries.
"""

import logging
import sqlite3
import struct
from collections.abc import Iterator
from pathlib import Path
from typing import ClassVar, Optional, Protocol, runtime_checkable

from badgerds_upgrade.constants import UNSUPPORTED_VERSION_PREFIX

logger = logging.getLogger(__name__)

__all__ = [
    "KVStore",
    "ManifestStore",
    "StoreError",
    "UnsupportedVersionError",
    "MANIFEST_FILE",
    "read_manifest_version",
    "write_manifest",
]

MANIFEST_FILE = "MANIFEST"
MANIFEST_MAGIC = b"Bdgr"
_MANIFEST_HEADER = struct.Struct(">4sH")


class StoreError(Exception):
    """Custom exception for datastore errors."""

    pass


class UnsupportedVersionError(StoreError):
    """The manifest was written by a different format version.

    This is the signature a format probe looks for: the directory may well
    be a valid datastore, just not one this format can read.
    """

    def __init__(self, found: int, supported: int) -> None:
        self.found = found
        self.supported = supported
        super().__init__(f"{UNSUPPORTED_VERSION_PREFIX} {found} (we support {supported})")


@runtime_checkable
class KVStore(Protocol):
    """Read side of a datastore as seen by the migrator.

    Required Methods:
        iterate: Yield every (key, value) pair in the store's native order
        close: Release the store (idempotent)
    """

    def iterate(self) -> Iterator[tuple[bytes, bytes]]:
        """Yield every key/value pair in the store."""
        ...

    def close(self) -> None:
        """Release resources held by the store."""
        ...


def read_manifest_version(directory: Path) -> Optional[int]:
    """Read the format version from a datastore's manifest.

    Args:
        directory: Datastore directory.

    Returns:
        The manifest version, or None if the directory has no manifest.

    Raises:
        StoreError: If the manifest exists but cannot be read or is corrupt.
    """
    path = directory / MANIFEST_FILE
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise StoreError(f"cannot read manifest {path}: {e}") from e

    if len(data) < _MANIFEST_HEADER.size:
        raise StoreError(f"manifest {path} is truncated ({len(data)} bytes)")

    magic, version = _MANIFEST_HEADER.unpack_from(data)
    if magic != MANIFEST_MAGIC:
        raise StoreError(f"manifest {path} has bad magic {magic!r}")
    return version


def write_manifest(directory: Path, version: int) -> None:
    """Write a manifest declaring ``version`` into ``directory``."""
    path = directory / MANIFEST_FILE
    try:
        path.write_bytes(_MANIFEST_HEADER.pack(MANIFEST_MAGIC, version))
    except OSError as e:
        raise StoreError(f"cannot write manifest {path}: {e}") from e


class ManifestStore:
    """Base class for a manifest-checked, SQLite-backed datastore.

    Subclasses set FORMAT_NAME, MANIFEST_VERSION and DB_FILE, and implement
    _init_schema() and iterate().

    Args:
        directory: Datastore directory.
        create: Initialise a new store if the directory has no manifest.
            Without it the store is opened read-only and nothing in the
            directory is created or changed.
        sync_writes: Use synchronous (fsync'd) SQLite writes.

    Raises:
        UnsupportedVersionError: If the manifest belongs to another version.
        StoreError: If the store or its data file is missing, or it cannot
            be opened.
    """

    FORMAT_NAME: ClassVar[str]
    MANIFEST_VERSION: ClassVar[int]
    DB_FILE: ClassVar[str]

    def __init__(self, directory: Path, *, create: bool = False, sync_writes: bool = True):
        self.directory = Path(directory)
        self._conn: Optional[sqlite3.Connection] = None

        if not self.directory.is_dir():
            if not create:
                raise StoreError(f"datastore directory {self.directory} does not exist")
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreError(f"cannot create {self.directory}: {e}") from e

        version = read_manifest_version(self.directory)
        if version is None and not create:
            raise StoreError(f"no {MANIFEST_FILE} in {self.directory}")
        if version is not None and version != self.MANIFEST_VERSION:
            raise UnsupportedVersionError(version, self.MANIFEST_VERSION)

        db_path = self.directory / self.DB_FILE
        self.read_only = not create
        if self.read_only and not db_path.is_file():
            raise StoreError(f"no {self.DB_FILE} in {self.directory}")

        try:
            # Autocommit mode; write batches are wrapped in explicit BEGIN/COMMIT.
            # Blocking calls run in worker threads, one at a time per store.
            if self.read_only:
                self._conn = sqlite3.connect(
                    f"{db_path.resolve().as_uri()}?mode=ro",
                    uri=True,
                    isolation_level=None,
                    check_same_thread=False,
                )
            else:
                self._conn = sqlite3.connect(str(db_path), isolation_level=None, check_same_thread=False)
                self._conn.execute(f"PRAGMA synchronous = {'FULL' if sync_writes else 'OFF'}")
                self._init_schema()
        except sqlite3.Error as e:
            self.close()
            raise StoreError(f"failed to open {self.FORMAT_NAME} store at {self.directory}: {e}") from e

        # Manifest goes last so a half-initialised directory never looks valid
        if version is None:
            try:
                write_manifest(self.directory, self.MANIFEST_VERSION)
            except StoreError:
                self.close()
                raise
            logger.debug(f"Created {self.FORMAT_NAME} store at {self.directory}")

    def _init_schema(self) -> None:
        raise NotImplementedError

    def iterate(self) -> Iterator[tuple[bytes, bytes]]:
        raise NotImplementedError

    @property
    def closed(self) -> bool:
        return self._conn is None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError(f"{self.FORMAT_NAME} store at {self.directory} is closed")
        return self._conn

    def close(self) -> None:
        """Close the database connection. Safe to call more than once."""
        if self._conn is not None:
            conn, self._conn = self._conn, None
            conn.close()

    def __enter__(self) -> "ManifestStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.directory)!r})"
