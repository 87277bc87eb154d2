"""Pytest configuration and shared fixtures for badgerds-upgrade tests.

This module provides reusable fixtures for testing:
- env_setup: (autouse) Clears BADGERDS_UPGRADE_* environment variables
- temp_dir: Temporary directory for file operations
- reporter: RecordingReporter capturing run narration
- make_repo: Builds a repository root with version marker and spec
- make_legacy_store / read_store: Create and inspect datastores

Usage:
    def test_something(make_repo, make_legacy_store, reporter):
        repo = make_repo({"type": "badgerds", "path": "badgerds"})
        make_legacy_store(repo / "badgerds", {b"k": b"v"})
"""

import json
import os
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any, Union

import pytest

from badgerds_upgrade.config import UpgradeSettings
from badgerds_upgrade.constants import CONFIG_FILE, SPEC_FILE, VERSION_FILE
from badgerds_upgrade.storage import BadgerStore, LegacyStore


class RecordingReporter:
    """Reporter that keeps everything it is told."""

    def __init__(self) -> None:
        self.messages: list[str] = []
        self.warnings: list[str] = []
        self.progress_counts: list[int] = []
        self.reminders: list[tuple[Path, Path]] = []

    def info(self, message: str) -> None:
        self.messages.append(message)

    def warning(self, message: str) -> None:
        self.warnings.append(message)

    def progress(self, entries: int) -> None:
        self.progress_counts.append(entries)

    def verify_reminder(self, path: Path, backup: Path) -> None:
        self.reminders.append((path, backup))


@pytest.fixture(autouse=True)
def env_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make sure no BADGERDS_UPGRADE_* variable leaks into the settings."""
    for key in list(os.environ):
        if key.startswith("BADGERDS_UPGRADE_"):
            monkeypatch.delenv(key)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test file operations.

    Yields:
        Path: Path to the temporary directory (cleaned up after test)
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def settings() -> UpgradeSettings:
    """Settings with a small progress interval so tests see progress reports."""
    return UpgradeSettings(progress_interval=1000, sync_writes=False)


@pytest.fixture
def make_repo(temp_dir: Path) -> Callable[..., Path]:
    """Factory building a repository root under temp_dir.

    Args (of the returned callable):
        spec: Datastore spec as a dict (dumped to JSON) or raw text
        version: Contents of the version marker
    """

    def _make(spec: Union[dict[str, Any], str], version: str = "6\n") -> Path:
        repo = temp_dir / "repo"
        repo.mkdir()
        (repo / VERSION_FILE).write_text(version)
        (repo / SPEC_FILE).write_text(spec if isinstance(spec, str) else json.dumps(spec))
        (repo / CONFIG_FILE).write_text('{"Identity": {}}')
        return repo

    return _make


@pytest.fixture
def make_legacy_store() -> Callable[[Path, dict[bytes, bytes]], Path]:
    """Factory writing records into a new badger 0.8 store."""

    def _make(path: Path, records: dict[bytes, bytes]) -> Path:
        with LegacyStore(path, create=True, sync_writes=False) as store:
            for key, value in records.items():
                store.set(key, value)
        return path

    return _make


@pytest.fixture
def make_current_store() -> Callable[[Path, dict[bytes, bytes]], Path]:
    """Factory writing records into a new badger 1.0 store."""

    def _make(path: Path, records: dict[bytes, bytes]) -> Path:
        with BadgerStore(path, create=True, sync_writes=False) as store:
            with store.transaction() as txn:
                for key, value in records.items():
                    txn.set(key, value)
                txn.commit()
        return path

    return _make


def read_store(path: Path) -> dict[bytes, bytes]:
    """Every committed record of the badger 1.0 store at ``path``."""
    with BadgerStore(path, sync_writes=False) as store:
        return dict(store.iterate())


@pytest.fixture(name="read_store")
def read_store_fixture() -> Callable[[Path], dict[bytes, bytes]]:
    return read_store


@pytest.fixture
def sample_records() -> dict[bytes, bytes]:
    """A few thousand records with awkward keys and values."""
    records = {
        f"/blocks/CIQ{i:06d}".encode(): (f"value-{i}".encode() * (i % 7)) + bytes([i % 256])
        for i in range(2500)
    }
    records[b"/empty"] = b""
    records[b"\x00\xff binary key"] = bytes(range(256))
    return records
