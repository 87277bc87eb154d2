"""Registry of known badger on-disk formats.

KNOWN_FORMATS is ordered newest first; that is the order in which a
datastore is probed. CURRENT_FORMAT is the format datastores are upgraded to.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from badgerds_upgrade.storage.base import ManifestStore
from badgerds_upgrade.storage.current import BadgerStore
from badgerds_upgrade.storage.legacy import LegacyStore

__all__ = ["StoreFormat", "BADGER_V1", "BADGER_V08", "CURRENT_FORMAT", "KNOWN_FORMATS"]


@dataclass(frozen=True)
class StoreFormat:
    """One on-disk format and the adapter that opens it.

    Attributes:
        name: Human-readable format name ("badger-1.0")
        store_class: ManifestStore subclass implementing the format
    """

    name: str
    store_class: type[ManifestStore]

    def open(self, path: Path, *, create: bool = False, sync_writes: bool = True) -> ManifestStore:
        """Open (or with ``create``, initialise) a datastore of this format.

        Raises:
            UnsupportedVersionError: If ``path`` holds a different format.
            StoreError: For any other open failure.
        """
        return self.store_class(path, create=create, sync_writes=sync_writes)


BADGER_V1 = StoreFormat(name=BadgerStore.FORMAT_NAME, store_class=BadgerStore)
BADGER_V08 = StoreFormat(name=LegacyStore.FORMAT_NAME, store_class=LegacyStore)

CURRENT_FORMAT = BADGER_V1
KNOWN_FORMATS: tuple[StoreFormat, ...] = (BADGER_V1, BADGER_V08)
