"""Exception hierarchy for badgerds-upgrade.

Every failure an upgrade run can surface derives from UpgradeError, so
callers can catch one type and still tell the cases apart:

- RepoReadError / MalformedVersion / UnsupportedRepoVersion: the repository
  was rejected before anything was touched
- SpecParseError: the datastore spec has an unexpected shape
- UnsupportedStoreFormat / StoreOpenError: a datastore could not be opened
- MigrationCancelled / MigrationIOError / MigrationVerificationError: the
  data transfer into the temporary store failed
- SwapError / ManualRecoveryRequired: the directory swap failed
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "UpgradeError",
    "RepoReadError",
    "MalformedVersion",
    "UnsupportedRepoVersion",
    "SpecParseError",
    "UnsupportedStoreFormat",
    "StoreOpenError",
    "MigrationCancelled",
    "MigrationIOError",
    "MigrationVerificationError",
    "SwapError",
    "ManualRecoveryRequired",
]


class UpgradeError(Exception):
    """Base class for all upgrade failures."""

    pass


class RepoReadError(UpgradeError):
    """A repository file could not be read."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"cannot read {path}: {reason}")


class MalformedVersion(UpgradeError):
    """The version marker does not hold an integer."""

    def __init__(self, path: Path, text: str) -> None:
        self.path = path
        self.text = text
        super().__init__(f"malformed repo version in {path}: {text!r}")


class UnsupportedRepoVersion(UpgradeError):
    """The repository is at a version this tool does not upgrade from."""

    def __init__(self, found: int, supported: int) -> None:
        self.found = found
        self.supported = supported
        super().__init__(f"unsupported fsrepo version: {found} (expected {supported})")


class SpecParseError(UpgradeError):
    """The datastore spec violates the expected shape.

    Attributes:
        field: Dotted location of the offending field ("mounts.1.path").
        reason: What was wrong with it.
    """

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"invalid datastore spec at '{field}': {reason}")


class UnsupportedStoreFormat(UpgradeError):
    """Every known store format rejected the datastore's manifest version."""

    def __init__(self, path: Path, tried: list[str]) -> None:
        self.path = path
        self.tried = tried
        super().__init__(
            f"unsupported badger version at {path} (tried {', '.join(tried)})"
        )


class StoreOpenError(UpgradeError):
    """Opening a datastore failed for a reason other than its format version."""

    def __init__(self, path: Path, format_name: str, reason: str) -> None:
        self.path = path
        self.format_name = format_name
        super().__init__(f"failed to open {path} as {format_name}: {reason}")


class MigrationCancelled(UpgradeError):
    """The migration was abandoned because the run's cancel signal fired."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"migration of {path} cancelled")


class MigrationIOError(UpgradeError):
    """Writing the temporary store failed."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"migration of {path} failed: {reason}")


class MigrationVerificationError(UpgradeError):
    """The migrated store does not hold the number of entries that were copied."""

    def __init__(self, path: Path, expected: int, found: int) -> None:
        self.path = path
        self.expected = expected
        self.found = found
        super().__init__(
            f"migrated store {path} holds {found} entries, expected {expected}"
        )


class SwapError(UpgradeError):
    """The migrated store could not be moved into place.

    Raised before the original datastore was moved; the original and the
    migrated store are both still where they were.
    """

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"cannot swap {path}: {reason}")


class ManualRecoveryRequired(SwapError):
    """The original was moved to its backup but the new store was not moved in.

    The datastore path is now empty. The original data is intact at
    ``backup`` and the migrated data at ``migrated``; the operator has to
    finish (or revert) the swap by hand.
    """

    def __init__(self, path: Path, backup: Path, migrated: Path, reason: str) -> None:
        self.backup = backup
        self.migrated = migrated
        UpgradeError.__init__(
            self,
            f"swap of {path} left incomplete: {reason}; original data is at "
            f"'{backup}', migrated data is at '{migrated}'",
        )
        self.path = path
