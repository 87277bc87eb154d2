"""Format detection for a badger datastore.

The on-disk format is identified by trying to open the datastore with each
known format, newest first. A format that rejects the manifest version says
nothing about the data, so the next format is tried; any other open failure
means the datastore itself is broken and probing stops.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Sequence

from badgerds_upgrade.constants import UNSUPPORTED_VERSION_PREFIX
from badgerds_upgrade.errors import StoreOpenError, UnsupportedStoreFormat
from badgerds_upgrade.reporter import Reporter
from badgerds_upgrade.storage import KNOWN_FORMATS, ManifestStore, StoreFormat, UnsupportedVersionError

logger = logging.getLogger(__name__)

__all__ = ["ProbeOutcome", "ProbeResult", "classify_open_error", "is_unsupported_version", "probe_store"]


class ProbeOutcome(str, Enum):
    """What a failed open means for the probe."""

    TRY_NEXT = "try_next"
    FATAL = "fatal"


@dataclass
class ProbeResult:
    """An open datastore and the format that opened it.

    The caller owns ``store`` and must close it.
    """

    format: StoreFormat
    store: ManifestStore


def is_unsupported_version(exc: BaseException) -> bool:
    """True if ``exc`` is a store rejecting a foreign manifest version."""
    if isinstance(exc, UnsupportedVersionError):
        return True
    # Adapters without the structured error only expose the message
    return str(exc).startswith(UNSUPPORTED_VERSION_PREFIX)


def classify_open_error(exc: BaseException) -> ProbeOutcome:
    if is_unsupported_version(exc):
        return ProbeOutcome.TRY_NEXT
    return ProbeOutcome.FATAL


def probe_store(
    path: Path,
    reporter: Reporter,
    formats: Sequence[StoreFormat] = KNOWN_FORMATS,
    sync_writes: bool = True,
) -> ProbeResult:
    """Open ``path`` with the first format that accepts it.

    Args:
        path: Datastore directory.
        reporter: Run narration sink.
        formats: Formats to try, in order.
        sync_writes: Passed through to the store.

    Returns:
        ProbeResult with the opened store.

    Raises:
        UnsupportedStoreFormat: If every format rejected the manifest version.
        StoreOpenError: On the first failure that is not a version rejection.
    """
    tried: list[str] = []
    for fmt in formats:
        reporter.info(f"Trying {fmt.name}")
        try:
            store = fmt.open(path, sync_writes=sync_writes)
        except Exception as e:
            if classify_open_error(e) is ProbeOutcome.TRY_NEXT:
                logger.debug(f"{fmt.name} rejected {path}: {e}")
                tried.append(fmt.name)
                continue
            raise StoreOpenError(path, fmt.name, str(e)) from e
        return ProbeResult(format=fmt, store=store)

    raise UnsupportedStoreFormat(path, tried)
