"""badgerds-upgrade - in-place upgrade of badger datastores in a repository.

Walks the repository's datastore spec, finds every badger datastore, detects
its on-disk format and streams it into a store of the current format, then
swaps the new store into place while keeping the original as a backup.
"""

__version__ = "0.3.0"
__all__ = ["__version__"]
