"""Tests for the directory swap and its failure states."""

import logging
import os
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from badgerds_upgrade.errors import ManualRecoveryRequired, SwapError
from badgerds_upgrade.reporter import LoggingReporter
from badgerds_upgrade.swap import SwapManager

_real_rename = os.rename


@pytest.fixture
def layout(temp_dir: Path) -> tuple[Path, Path]:
    """An original datastore directory and a migrated one next to it."""
    original = temp_dir / "badgerds"
    original.mkdir()
    (original / "data").write_text("old")
    migrated = temp_dir / "badger-abc123"
    migrated.mkdir()
    (migrated / "data").write_text("new")
    return original, migrated


class TestAllocateBackupPath:
    def test_name_is_reserved_but_absent(self, temp_dir: Path, reporter) -> None:
        swapper = SwapManager(temp_dir, reporter)

        backup = swapper.allocate_backup_path(now=datetime(2024, 3, 1, 12, 30, 5))

        assert backup.parent == temp_dir
        assert backup.name.startswith("badger-backup-20240301-123005-")
        assert not backup.exists()

    def test_names_are_unique(self, temp_dir: Path, reporter) -> None:
        swapper = SwapManager(temp_dir, reporter)
        now = datetime.now()

        assert swapper.allocate_backup_path(now) != swapper.allocate_backup_path(now)

    def test_unwritable_root(self, temp_dir: Path, reporter) -> None:
        swapper = SwapManager(temp_dir / "missing", reporter)

        with pytest.raises(SwapError, match="backup"):
            swapper.allocate_backup_path()


class TestSwap:
    """Test the two-rename protocol."""

    def test_success(self, temp_dir: Path, layout, reporter) -> None:
        original, migrated = layout
        swapper = SwapManager(temp_dir, reporter)

        backup = swapper.swap(original, migrated)

        assert (original / "data").read_text() == "new"
        assert (backup / "data").read_text() == "old"
        assert not migrated.exists()
        assert reporter.reminders == [(original, backup)]

    def test_first_rename_fails(self, temp_dir: Path, layout, reporter) -> None:
        original, migrated = layout
        swapper = SwapManager(temp_dir, reporter)

        with patch("badgerds_upgrade.swap.os.rename", side_effect=OSError(16, "Device or resource busy")):
            with pytest.raises(SwapError) as exc_info:
                swapper.swap(original, migrated)

        assert not isinstance(exc_info.value, ManualRecoveryRequired)
        assert (original / "data").read_text() == "old"
        assert (migrated / "data").read_text() == "new"
        assert reporter.reminders == []

    def test_second_rename_fails(self, temp_dir: Path, layout, reporter) -> None:
        original, migrated = layout
        swapper = SwapManager(temp_dir, reporter)
        calls = []

        def flaky_rename(src, dst):
            calls.append((src, dst))
            if len(calls) == 2:
                raise OSError(18, "Invalid cross-device link")
            return _real_rename(src, dst)

        with patch("badgerds_upgrade.swap.os.rename", side_effect=flaky_rename):
            with pytest.raises(ManualRecoveryRequired) as exc_info:
                swapper.swap(original, migrated)

        error = exc_info.value
        assert error.path == original
        assert error.migrated == migrated
        assert not original.exists()
        assert (error.backup / "data").read_text() == "old"
        assert (migrated / "data").read_text() == "new"
        assert reporter.reminders == []

    def test_missing_original(self, temp_dir: Path, layout, reporter) -> None:
        _, migrated = layout
        swapper = SwapManager(temp_dir, reporter)

        with pytest.raises(SwapError):
            swapper.swap(temp_dir / "gone", migrated)

        assert migrated.exists()


class TestLoggingReporter:
    def test_verify_reminder_banner(self, caplog: pytest.LogCaptureFixture) -> None:
        reporter = LoggingReporter()

        with caplog.at_level(logging.WARNING, logger="badgerds_upgrade.report"):
            reporter.verify_reminder(Path("/repo/badgerds"), Path("/repo/badger-backup-x"))

        text = caplog.text
        assert "AFTER YOU VERIFY" in text
        assert "REMOVE '/repo/badger-backup-x'" in text
