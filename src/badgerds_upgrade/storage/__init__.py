"""Badger datastore adapters.

This module provides the two on-disk formats the upgrader deals with:
- LegacyStore: badger 0.8, the format being upgraded from
- BadgerStore: badger 1.0, the current format, with transactional writes

Both refuse to open a directory whose MANIFEST declares another format
version, raising UnsupportedVersionError.

Example:
    >>> from badgerds_upgrade.storage import BADGER_V08, CURRENT_FORMAT
    >>> with BADGER_V08.open(path) as old, CURRENT_FORMAT.open(tmp, create=True) as new:
    ...     with new.transaction() as txn:
    ...         for key, value in old.iterate():
    ...             txn.set(key, value)
    ...         txn.commit()
"""

from badgerds_upgrade.storage.base import (
    KVStore,
    ManifestStore,
    StoreError,
    UnsupportedVersionError,
)
from badgerds_upgrade.storage.current import BadgerStore, Transaction
from badgerds_upgrade.storage.formats import (
    BADGER_V08,
    BADGER_V1,
    CURRENT_FORMAT,
    KNOWN_FORMATS,
    StoreFormat,
)
from badgerds_upgrade.storage.legacy import LegacyStore

__all__ = [
    "KVStore",
    "ManifestStore",
    "StoreError",
    "UnsupportedVersionError",
    "BadgerStore",
    "Transaction",
    "LegacyStore",
    "StoreFormat",
    "BADGER_V1",
    "BADGER_V08",
    "CURRENT_FORMAT",
    "KNOWN_FORMATS",
]
