"""Upgrade orchestration.

Workflow:
1. Check the repository version marker (nothing is touched if it fails)
2. Resolve badger datastore paths from the datastore spec
3. For each path, strictly one after another:
   a. probe the on-disk format
   b. skip it if it is already in the current format
   c. stream it into a temporary current-format store
   d. swap the temporary store into place, keeping a backup

The run stops at the first failing path. Paths already swapped stay
swapped; there is no rollback across paths.

Usage:
    >>> report = upgrade(Path("~/.ipfs").expanduser())
    >>> for store in report.stores:
    ...     print(store.path, store.backup)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from badgerds_upgrade.config import UpgradeSettings
from badgerds_upgrade.errors import MigrationCancelled, UpgradeError
from badgerds_upgrade.migrator import MigrationJob, StreamingMigrator
from badgerds_upgrade.probe import probe_store
from badgerds_upgrade.reporter import LoggingReporter, Reporter
from badgerds_upgrade.spec import resolve_store_paths
from badgerds_upgrade.storage import CURRENT_FORMAT, KNOWN_FORMATS, StoreFormat
from badgerds_upgrade.swap import SwapManager
from badgerds_upgrade.version_gate import check_repo_version

logger = logging.getLogger(__name__)

__all__ = ["StoreUpgrade", "UpgradeReport", "Upgrader", "store_directory", "upgrade"]


def store_directory(repo_root: Path, spec_path: str) -> Path:
    """Directory of a spec path, always under ``repo_root``.

    A leading slash in the spec path does not make it absolute.
    """
    return Path(repo_root) / spec_path.lstrip("/")


@dataclass
class StoreUpgrade:
    """Result for one datastore path.

    Attributes:
        path: Datastore directory.
        format_name: Format the datastore was found in.
        entries: Number of entries migrated (0 if skipped).
        backup: Where the original now lives (None if skipped).
        skipped: True if the datastore was already in the current format.
    """

    path: Path
    format_name: str
    entries: int = 0
    backup: Optional[Path] = None
    skipped: bool = False


@dataclass
class UpgradeReport:
    """Result of a full run."""

    repo_root: Path
    repo_version: int
    stores: list[StoreUpgrade] = field(default_factory=list)

    @property
    def migrated(self) -> list[StoreUpgrade]:
        return [s for s in self.stores if not s.skipped]


class Upgrader:
    """Runs one upgrade of one repository.

    Owns the run's cancellation signal; call cancel() (e.g. from a signal
    handler) to stop the migration in progress. An Upgrader is good for a
    single run.

    Args:
        repo_root: Repository root directory.
        reporter: Narration sink (default: LoggingReporter).
        settings: Upgrade settings (default: loaded from environment).
        formats: Formats to probe, newest first.
        target_format: Format datastores are upgraded to.
    """

    def __init__(
        self,
        repo_root: Path,
        reporter: Optional[Reporter] = None,
        settings: Optional[UpgradeSettings] = None,
        formats: Sequence[StoreFormat] = KNOWN_FORMATS,
        target_format: StoreFormat = CURRENT_FORMAT,
    ) -> None:
        self.repo_root = Path(repo_root)
        self.reporter = reporter or LoggingReporter()
        self.settings = settings or UpgradeSettings()
        self.formats = tuple(formats)
        self.target_format = target_format
        self._cancel = asyncio.Event()

        self.migrator = StreamingMigrator(
            self.repo_root, self.reporter, self.settings, target_format=target_format
        )
        self.swapper = SwapManager(
            self.repo_root, self.reporter, backup_prefix=self.settings.backup_prefix
        )

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop the run at the next record handoff."""
        if not self._cancel.is_set():
            logger.info("Cancellation requested")
        self._cancel.set()

    async def run(self) -> UpgradeReport:
        """Upgrade every badger datastore in the repository.

        Returns:
            UpgradeReport with one entry per resolved path.

        Raises:
            UpgradeError: The first failure; see errors.py for the kinds.
        """
        version = check_repo_version(self.repo_root)
        paths = resolve_store_paths(self.repo_root, self.reporter)

        report = UpgradeReport(repo_root=self.repo_root, repo_version=version)
        for rel in paths:
            report.stores.append(await self._upgrade_store(store_directory(self.repo_root, rel)))
        return report

    async def _upgrade_store(self, path: Path) -> StoreUpgrade:
        if self._cancel.is_set():
            raise MigrationCancelled(path)

        self.reporter.info(f"Upgrading badger at {path}")
        probe = await asyncio.to_thread(
            probe_store, path, self.reporter, self.formats, self.settings.sync_writes
        )

        if probe.format == self.target_format:
            probe.store.close()
            self.reporter.info(f"{path} is already in {probe.format.name} format, skipping")
            return StoreUpgrade(path=path, format_name=probe.format.name, skipped=True)

        job = MigrationJob(source=path, cancel=self._cancel)
        try:
            stats = await self.migrator.migrate(probe.store, job)
        except UpgradeError:
            if job.destination is not None:
                self.reporter.warning(f"Leaving partial migration at '{job.destination}' for inspection")
            raise
        backup = self.swapper.swap(path, stats.destination)
        return StoreUpgrade(
            path=path,
            format_name=probe.format.name,
            entries=stats.entries,
            backup=backup,
        )


def upgrade(
    repo_root: Path,
    reporter: Optional[Reporter] = None,
    settings: Optional[UpgradeSettings] = None,
) -> UpgradeReport:
    """Synchronous entry point: upgrade the repository at ``repo_root``."""
    upgrader = Upgrader(repo_root, reporter=reporter, settings=settings)
    return asyncio.run(upgrader.run())
