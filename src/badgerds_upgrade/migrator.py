"""Streaming copy of a datastore into a fresh current-format store.

Architecture:
    producer task: iterates the old store -> hands each record over a
                   bounded queue (capacity 1) -> sends an end marker
    consumer task: creates a temp dir under the repo root -> opens a new
                   store there -> puts every record into one transaction
                   -> commits when the end marker arrives

The two tasks share the run's cancel event. Whichever side fails sets it,
which stops the other side at its next handoff; the transaction is then
discarded, so a temporary store never holds a partial commit. The temporary
directory itself is left in place for inspection.

Store calls (reads, writes, commit and verification) run in worker threads
through asyncio.to_thread; the event loop only moves records between the
tasks and watches the cancel event.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from collections.abc import Coroutine
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, TypeVar

from badgerds_upgrade.config import UpgradeSettings
from badgerds_upgrade.constants import HANDOFF_CAPACITY
from badgerds_upgrade.errors import (
    MigrationCancelled,
    MigrationIOError,
    MigrationVerificationError,
)
from badgerds_upgrade.reporter import Reporter
from badgerds_upgrade.storage import CURRENT_FORMAT, KVStore, StoreError, StoreFormat

logger = logging.getLogger(__name__)

__all__ = ["KeyValue", "MigrationJob", "MigrationStats", "StreamingMigrator"]

_T = TypeVar("_T")

# End-of-stream marker on the handoff queue
_END = None


@dataclass(frozen=True, slots=True)
class KeyValue:
    """One record in flight between producer and consumer."""

    key: bytes
    value: bytes

    @classmethod
    def copy_of(cls, key: bytes, value: bytes) -> KeyValue:
        # The source may reuse its buffers once the iterator advances
        return cls(key=bytes(key), value=bytes(value))


@dataclass
class MigrationJob:
    """Unit of work for one datastore.

    Attributes:
        source: Datastore path being migrated.
        cancel: The run's shared cancellation signal.
        destination: Temporary store directory, set once it is created.
    """

    source: Path
    cancel: asyncio.Event
    destination: Optional[Path] = None


@dataclass
class MigrationStats:
    """Outcome of a successful copy."""

    source: Path
    destination: Path
    entries: int


async def _unless_cancelled(
    operation: Coroutine[Any, Any, _T], cancel: asyncio.Event, path: Path
) -> _T:
    """Await ``operation`` unless ``cancel`` fires first.

    Raises:
        MigrationCancelled: If the cancel event was set before the
            operation completed. The operation is cancelled.
    """
    if cancel.is_set():
        operation.close()
        raise MigrationCancelled(path)

    op = asyncio.ensure_future(operation)
    stop = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({op, stop}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (op, stop):
            if not task.done():
                task.cancel()

    if op.done() and not op.cancelled():
        return op.result()
    raise MigrationCancelled(path)


async def _handoff(
    queue: asyncio.Queue[Optional[KeyValue]],
    item: Optional[KeyValue],
    cancel: asyncio.Event,
    path: Path,
) -> None:
    if cancel.is_set():
        raise MigrationCancelled(path)
    try:
        queue.put_nowait(item)
        return
    except asyncio.QueueFull:
        pass
    await _unless_cancelled(queue.put(item), cancel, path)


async def _receive(
    queue: asyncio.Queue[Optional[KeyValue]], cancel: asyncio.Event, path: Path
) -> Optional[KeyValue]:
    if cancel.is_set():
        raise MigrationCancelled(path)
    try:
        return queue.get_nowait()
    except asyncio.QueueEmpty:
        pass
    return await _unless_cancelled(queue.get(), cancel, path)


class StreamingMigrator:
    """Copies every record of an opened store into a new temporary store.

    Attributes:
        repo_root: Directory the temporary store is created in.
        reporter: Run narration sink.
        settings: Upgrade settings (prefixes, progress cadence, verification).
        target_format: Format of the store being created.
    """

    def __init__(
        self,
        repo_root: Path,
        reporter: Reporter,
        settings: Optional[UpgradeSettings] = None,
        target_format: StoreFormat = CURRENT_FORMAT,
    ) -> None:
        self.repo_root = Path(repo_root)
        self.reporter = reporter
        self.settings = settings or UpgradeSettings()
        self.target_format = target_format

    async def migrate(self, source: KVStore, job: MigrationJob) -> MigrationStats:
        """Copy ``source`` into a new temporary store.

        Takes ownership of ``source`` and closes it on every exit path.

        Args:
            source: Opened old-format store.
            job: The job for this datastore; ``job.destination`` is filled
                in as soon as the temporary directory exists.

        Returns:
            MigrationStats for the committed temporary store.

        Raises:
            MigrationCancelled: If the cancel event fired before commit.
            MigrationIOError: If reading, writing or committing failed.
            MigrationVerificationError: If the committed store has the
                wrong number of entries.
        """
        with closing(source):
            queue: asyncio.Queue[Optional[KeyValue]] = asyncio.Queue(maxsize=HANDOFF_CAPACITY)
            producer = asyncio.create_task(self._produce(source, queue, job))
            consumer = asyncio.create_task(self._consume(queue, job))
            try:
                produced, consumed = await asyncio.gather(
                    producer, consumer, return_exceptions=True
                )
            except asyncio.CancelledError:
                job.cancel.set()
                raise

        stats = self._settle(produced, consumed)
        if self.settings.verify:
            await self._verify(stats)
        return stats

    @staticmethod
    def _settle(produced: Any, consumed: Any) -> MigrationStats:
        """Pick the result, or the error that best explains the failure."""
        errors = [r for r in (consumed, produced) if isinstance(r, BaseException)]
        if not errors:
            return consumed
        # The side that failed first set the cancel event; report its error
        for error in errors:
            if not isinstance(error, MigrationCancelled):
                raise error
        raise errors[0]

    async def _produce(
        self,
        source: KVStore,
        queue: asyncio.Queue[Optional[KeyValue]],
        job: MigrationJob,
    ) -> int:
        produced = 0
        try:
            with closing(source.iterate()) as records:
                while True:
                    # Run store reads in a thread to not block the event loop
                    record = await asyncio.to_thread(next, records, None)
                    if record is None:
                        break
                    await _handoff(queue, KeyValue.copy_of(*record), job.cancel, job.source)
                    produced += 1
            await _handoff(queue, _END, job.cancel, job.source)
        except StoreError as e:
            job.cancel.set()
            raise MigrationIOError(job.source, f"reading source failed: {e}") from e
        except BaseException:
            job.cancel.set()
            raise
        logger.debug(f"Producer for {job.source} finished after {produced} entries")
        return produced

    async def _consume(
        self, queue: asyncio.Queue[Optional[KeyValue]], job: MigrationJob
    ) -> MigrationStats:
        try:
            return await self._write_destination(queue, job)
        except BaseException:
            job.cancel.set()
            raise

    async def _write_destination(
        self, queue: asyncio.Queue[Optional[KeyValue]], job: MigrationJob
    ) -> MigrationStats:
        try:
            temp = Path(
                await asyncio.to_thread(
                    tempfile.mkdtemp, prefix=self.settings.temp_prefix, dir=self.repo_root
                )
            )
        except OSError as e:
            raise MigrationIOError(job.source, f"cannot create temporary directory: {e}") from e
        job.destination = temp

        try:
            store = await asyncio.to_thread(
                self.target_format.open, temp, create=True, sync_writes=self.settings.sync_writes
            )
        except StoreError as e:
            raise MigrationIOError(job.source, f"cannot create store at {temp}: {e}") from e

        self.reporter.info(f"Moving data to {temp}")
        interval = self.settings.progress_interval
        entries = 0

        with store:
            try:
                txn = await asyncio.to_thread(store.transaction)
            except StoreError as e:
                raise MigrationIOError(job.source, str(e)) from e

            with txn:
                while True:
                    item = await _receive(queue, job.cancel, job.source)
                    if item is _END:
                        break
                    try:
                        await asyncio.to_thread(txn.set, item.key, item.value)
                    except StoreError as e:
                        raise MigrationIOError(job.source, str(e)) from e
                    entries += 1
                    if entries % interval == 0:
                        self.reporter.progress(entries)

                self.reporter.progress(entries)
                if job.cancel.is_set():
                    raise MigrationCancelled(job.source)

                self.reporter.info("Committing transaction")
                try:
                    await asyncio.to_thread(txn.commit)
                except StoreError as e:
                    raise MigrationIOError(job.source, f"commit failed: {e}") from e

        return MigrationStats(source=job.source, destination=temp, entries=entries)

    def _count_entries(self, destination: Path) -> int:
        with self.target_format.open(destination, sync_writes=self.settings.sync_writes) as store:
            return store.count()

    async def _verify(self, stats: MigrationStats) -> None:
        """Reopen the committed store and check its entry count."""
        try:
            found = await asyncio.to_thread(self._count_entries, stats.destination)
        except StoreError as e:
            raise MigrationIOError(stats.source, f"cannot reopen {stats.destination}: {e}") from e

        if found != stats.entries:
            raise MigrationVerificationError(stats.destination, stats.entries, found)
        logger.debug(f"Verified {found} entries in {stats.destination}")
