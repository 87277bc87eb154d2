"""Swap a migrated store into place, keeping the original as a backup.

The swap is two renames, in this order:

    1. <path>          -> <root>/badger-backup-<timestamp>-<random>
    2. <root>/badger-* -> <path>

Renames never mix old and new files inside one directory. If step 1 fails
nothing has moved. If step 2 fails the original is safe at the backup
name and the migrated store is still at its temporary name; that state is
reported as ManualRecoveryRequired and is never repaired automatically.

Backups are never deleted by this tool.
"""

import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional

from badgerds_upgrade.constants import BACKUP_DIR_PREFIX, BACKUP_TIMESTAMP_FORMAT
from badgerds_upgrade.errors import ManualRecoveryRequired, SwapError
from badgerds_upgrade.reporter import Reporter

logger = logging.getLogger(__name__)

__all__ = ["SwapManager"]


class SwapManager:
    """Replaces datastore directories with their migrated counterparts.

    Attributes:
        repo_root: Directory backups are created in.
        reporter: Run narration sink.
        backup_prefix: Name prefix of backup directories.
    """

    def __init__(
        self,
        repo_root: Path,
        reporter: Reporter,
        backup_prefix: str = BACKUP_DIR_PREFIX,
    ) -> None:
        self.repo_root = Path(repo_root)
        self.reporter = reporter
        self.backup_prefix = backup_prefix

    def allocate_backup_path(self, now: Optional[datetime] = None) -> Path:
        """Reserve a unique, timestamped backup name under the repo root.

        The directory is created to claim the name and removed again, since
        a rename target must not exist.

        Raises:
            SwapError: If the name cannot be allocated.
        """
        stamp = (now or datetime.now()).strftime(BACKUP_TIMESTAMP_FORMAT)
        try:
            backup = Path(tempfile.mkdtemp(prefix=f"{self.backup_prefix}{stamp}-", dir=self.repo_root))
            os.rmdir(backup)
        except OSError as e:
            raise SwapError(self.repo_root, f"cannot allocate backup directory: {e}") from e
        return backup

    def swap(self, path: Path, migrated: Path) -> Path:
        """Move ``migrated`` to ``path`` and the original ``path`` to a backup.

        Args:
            path: Datastore directory being replaced.
            migrated: Committed temporary store.

        Returns:
            Path of the backup holding the original datastore.

        Raises:
            SwapError: If nothing was moved.
            ManualRecoveryRequired: If the original was moved to the backup
                but the migrated store could not be moved in.
        """
        path = Path(path)
        migrated = Path(migrated)
        backup = self.allocate_backup_path()

        self.reporter.info(f"Renaming '{path}' to '{backup}'")
        try:
            os.rename(path, backup)
        except OSError as e:
            raise SwapError(path, f"cannot move original to '{backup}': {e}") from e

        self.reporter.info(f"Renaming '{migrated}' to '{path}'")
        try:
            os.rename(migrated, path)
        except OSError as e:
            logger.error(f"Swap of {path} interrupted after backup, manual recovery needed")
            raise ManualRecoveryRequired(path, backup, migrated, str(e)) from e

        self.reporter.info("Success")
        self.reporter.verify_reminder(path, backup)
        return backup
