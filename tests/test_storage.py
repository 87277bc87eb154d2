"""Tests for the badger datastore adapters.

Covers:
- Manifest handling (creation, version rejection, corruption)
- LegacyStore writes and iteration
- BadgerStore transactions (commit, discard, single-writer rule)
- Idempotent close
"""

from pathlib import Path

import pytest

from badgerds_upgrade.constants import UNSUPPORTED_VERSION_PREFIX
from badgerds_upgrade.storage import (
    BADGER_V08,
    BADGER_V1,
    KNOWN_FORMATS,
    BadgerStore,
    LegacyStore,
    StoreError,
    UnsupportedVersionError,
)
from badgerds_upgrade.storage.base import MANIFEST_FILE, read_manifest_version, write_manifest


class TestManifest:
    """Test manifest creation and version checks."""

    def test_create_writes_manifest(self, temp_dir: Path) -> None:
        path = temp_dir / "store"
        with BadgerStore(path, create=True):
            pass

        assert read_manifest_version(path) == BadgerStore.MANIFEST_VERSION

    def test_missing_directory_without_create(self, temp_dir: Path) -> None:
        with pytest.raises(StoreError, match="does not exist"):
            BadgerStore(temp_dir / "nope")

    def test_missing_manifest_without_create(self, temp_dir: Path) -> None:
        with pytest.raises(StoreError, match=MANIFEST_FILE):
            LegacyStore(temp_dir)

    def test_foreign_version_is_rejected(self, temp_dir: Path) -> None:
        path = temp_dir / "legacy"
        LegacyStore(path, create=True).close()

        with pytest.raises(UnsupportedVersionError) as exc_info:
            BadgerStore(path)

        assert exc_info.value.found == LegacyStore.MANIFEST_VERSION
        assert exc_info.value.supported == BadgerStore.MANIFEST_VERSION
        assert str(exc_info.value).startswith(UNSUPPORTED_VERSION_PREFIX)

    def test_rejection_does_not_touch_directory(self, temp_dir: Path) -> None:
        path = temp_dir / "legacy"
        LegacyStore(path, create=True).close()
        before = sorted(p.name for p in path.iterdir())

        with pytest.raises(UnsupportedVersionError):
            BadgerStore(path)

        assert sorted(p.name for p in path.iterdir()) == before

    def test_bad_magic_is_not_a_version_error(self, temp_dir: Path) -> None:
        (temp_dir / MANIFEST_FILE).write_bytes(b"XXXX\x00\x04")

        with pytest.raises(StoreError) as exc_info:
            BadgerStore(temp_dir)

        assert not isinstance(exc_info.value, UnsupportedVersionError)

    def test_truncated_manifest(self, temp_dir: Path) -> None:
        (temp_dir / MANIFEST_FILE).write_bytes(b"Bdg")

        with pytest.raises(StoreError, match="truncated"):
            read_manifest_version(temp_dir)

    def test_missing_data_file_is_not_created(self, temp_dir: Path) -> None:
        write_manifest(temp_dir, LegacyStore.MANIFEST_VERSION)
        (temp_dir / "000001.vlog").write_bytes(b"\x00" * 16)
        before = sorted(p.name for p in temp_dir.iterdir())

        with pytest.raises(StoreError, match=LegacyStore.DB_FILE) as exc_info:
            LegacyStore(temp_dir)

        assert not isinstance(exc_info.value, UnsupportedVersionError)
        assert sorted(p.name for p in temp_dir.iterdir()) == before

    def test_existing_store_opens_read_only(self, temp_dir: Path, make_legacy_store) -> None:
        path = make_legacy_store(temp_dir / "s", {b"k": b"v"})

        with BADGER_V08.open(path) as store:
            assert store.read_only
            with pytest.raises(StoreError, match="failed to write"):
                store.set(b"k2", b"v2")

        with BADGER_V08.open(path) as store:
            assert dict(store.iterate()) == {b"k": b"v"}

    def test_unknown_version(self, temp_dir: Path) -> None:
        write_manifest(temp_dir, 9)

        for fmt in KNOWN_FORMATS:
            with pytest.raises(UnsupportedVersionError):
                fmt.open(temp_dir)


class TestLegacyStore:
    """Test the badger 0.8 adapter."""

    def test_set_and_iterate(self, temp_dir: Path) -> None:
        with LegacyStore(temp_dir / "s", create=True) as store:
            store.set(b"b", b"2")
            store.set(b"a", b"1")
            store.set(b"c", b"3")

            assert list(store.iterate()) == [(b"a", b"1"), (b"b", b"2"), (b"c", b"3")]

    def test_overwrite_keeps_latest_value(self, temp_dir: Path) -> None:
        with LegacyStore(temp_dir / "s", create=True) as store:
            store.set(b"k", b"old")
            store.set(b"k", b"new")

            assert list(store.iterate()) == [(b"k", b"new")]

    def test_reopen(self, temp_dir: Path, make_legacy_store) -> None:
        path = make_legacy_store(temp_dir / "s", {b"k": b"v"})

        with BADGER_V08.open(path) as store:
            assert dict(store.iterate()) == {b"k": b"v"}

    def test_iterate_closed_store(self, temp_dir: Path) -> None:
        store = LegacyStore(temp_dir / "s", create=True)
        store.close()

        with pytest.raises(StoreError, match="closed"):
            list(store.iterate())


class TestBadgerStoreTransactions:
    """Test the badger 1.0 transactional write path."""

    def test_commit_makes_writes_visible(self, temp_dir: Path) -> None:
        with BadgerStore(temp_dir / "s", create=True) as store:
            with store.transaction() as txn:
                txn.set(b"k1", b"v1")
                txn.set(b"k2", b"")
                txn.commit()

            assert store.count() == 2
            assert store.get(b"k1") == b"v1"
            assert store.get(b"k2") == b""
            assert store.get(b"missing") is None

    def test_discard_drops_writes(self, temp_dir: Path) -> None:
        with BadgerStore(temp_dir / "s", create=True) as store:
            txn = store.transaction()
            txn.set(b"k", b"v")
            txn.discard()

            assert store.count() == 0

    def test_context_exit_without_commit_discards(self, temp_dir: Path) -> None:
        with BadgerStore(temp_dir / "s", create=True) as store:
            with pytest.raises(RuntimeError):
                with store.transaction() as txn:
                    txn.set(b"k", b"v")
                    raise RuntimeError("boom")

            assert store.count() == 0

    def test_uncommitted_writes_not_durable(self, temp_dir: Path) -> None:
        path = temp_dir / "s"
        store = BadgerStore(path, create=True)
        txn = store.transaction()
        txn.set(b"k", b"v")
        store.close()

        assert txn.finished
        with BADGER_V1.open(path) as reopened:
            assert reopened.count() == 0

    def test_one_transaction_at_a_time(self, temp_dir: Path) -> None:
        with BadgerStore(temp_dir / "s", create=True) as store:
            with store.transaction():
                with pytest.raises(StoreError, match="already open"):
                    store.transaction()

            # Finished transactions release the store
            with store.transaction() as txn:
                txn.commit()

    def test_set_after_commit(self, temp_dir: Path) -> None:
        with BadgerStore(temp_dir / "s", create=True) as store:
            txn = store.transaction()
            txn.commit()

            with pytest.raises(StoreError, match="finished"):
                txn.set(b"k", b"v")
            with pytest.raises(StoreError, match="finished"):
                txn.commit()

    def test_close_is_idempotent(self, temp_dir: Path) -> None:
        store = BadgerStore(temp_dir / "s", create=True)
        store.close()
        store.close()

        assert store.closed
