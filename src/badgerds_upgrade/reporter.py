"""Operator-facing narration for an upgrade run.

Each component receives a Reporter instead of writing to a global logger,
so tests can capture (or silence) the narration without touching logging
configuration. The narration is advisory text, not a structured interface.
"""

import logging
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

__all__ = ["Reporter", "LoggingReporter"]


@runtime_checkable
class Reporter(Protocol):
    """Sink for run narration.

    Required Methods:
        info: General progress narration
        warning: Something the operator should look at
        progress: Running count of migrated entries
        verify_reminder: Post-swap instruction to verify and delete the backup
    """

    def info(self, message: str) -> None:
        ...

    def warning(self, message: str) -> None:
        ...

    def progress(self, entries: int) -> None:
        ...

    def verify_reminder(self, path: Path, backup: Path) -> None:
        ...


class LoggingReporter:
    """Reporter that writes through the standard logging module.

    Args:
        logger: Logger to write to. Defaults to ``badgerds_upgrade.report``.
    """

    BANNER_WIDTH = 47

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("badgerds_upgrade.report")

    def info(self, message: str) -> None:
        self.logger.info(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def progress(self, entries: int) -> None:
        self.logger.info(f"{entries} entries done")

    def verify_reminder(self, path: Path, backup: Path) -> None:
        self.logger.warning("v" * self.BANNER_WIDTH)
        self.logger.warning(f"AFTER YOU VERIFY THAT THE DATASTORE AT '{path}' IS WORKING")
        self.logger.warning(f"REMOVE '{backup}'")
        self.logger.warning("^" * self.BANNER_WIDTH)
