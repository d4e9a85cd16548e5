"""Tests for milou_ssl.storage.backup -- Backup / Rotation."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest

from conftest import generate_key, make_pair, write_pair
from milou_ssl.core.errors import ValidationError
from milou_ssl.models.location import CertificateLocation
from milou_ssl.storage.backup import BackupManager


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock() -> _Clock:
    return _Clock()


@pytest.fixture()
def manager(crypto, clock) -> BackupManager:
    return BackupManager(crypto, clock=clock)


@pytest.fixture()
def location(tmp_path) -> CertificateLocation:
    loc = CertificateLocation(directory=tmp_path / "ssl")
    write_pair(loc.directory, *make_pair("example.com"))
    return loc


# ---------------------------------------------------------------------------
# backup
# ---------------------------------------------------------------------------


class TestBackup:
    def test_copies_never_moves(self, manager, location):
        record = manager.backup(location, reason="manual")

        assert location.has_material()
        assert record.cert_path.read_bytes() == location.cert_path.read_bytes()
        assert record.key_path.read_bytes() == location.key_path.read_bytes()
        assert record.cert_path.parent == location.backup_dir
        assert record.cert_path.name == "20260101T120000000000Z-milou.crt"

    def test_metadata_snapshot(self, manager, location):
        record = manager.backup(location, reason="renewal")
        meta = json.loads(record.metadata_path.read_text())
        assert meta["reason"] == "renewal"
        assert meta["subject"] == "CN=example.com"
        assert meta["original_directory"] == str(location.directory)
        assert record.not_after is not None

    def test_key_backup_is_private(self, manager, location):
        record = manager.backup(location, reason="manual")
        assert record.key_path.stat().st_mode & 0o777 == 0o600

    def test_nothing_to_back_up(self, manager, tmp_path):
        with pytest.raises(ValidationError, match="no certificate pair"):
            manager.backup(CertificateLocation(directory=tmp_path), reason="manual")

    def test_same_timestamp_does_not_overwrite(self, manager, location):
        first = manager.backup(location, reason="a")
        second = manager.backup(location, reason="b")
        assert first.cert_path != second.cert_path
        assert len(manager.list_backups(location)) == 2

    def test_backup_material_from_elsewhere(self, manager, location):
        cert, key = make_pair("runtime.example.com", key=generate_key(fresh=True))
        record = manager.backup_material(location, cert, key, reason="pre-deploy")
        assert record.cert_path.read_bytes() == cert
        assert record.subject == "CN=runtime.example.com"


# ---------------------------------------------------------------------------
# list / restore / prune
# ---------------------------------------------------------------------------


class TestRotation:
    def test_list_newest_first(self, manager, location, clock):
        older = manager.backup(location, reason="first")
        clock.advance(hours=1)
        newer = manager.backup(location, reason="second")

        records = manager.list_backups(location)
        assert [r.cert_path for r in records] == [newer.cert_path, older.cert_path]
        assert manager.latest(location).reason == "second"

    def test_list_empty(self, manager, tmp_path):
        assert manager.list_backups(CertificateLocation(directory=tmp_path)) == []

    def test_list_survives_missing_metadata(self, manager, location):
        record = manager.backup(location, reason="x")
        record.metadata_path.unlink()
        records = manager.list_backups(location)
        assert len(records) == 1
        assert records[0].reason == "unknown"
        assert records[0].subject == "CN=example.com"

    def test_restore_reverses_backup(self, manager, location, clock):
        original = location.cert_path.read_bytes()
        record = manager.backup(location, reason="before change")
        write_pair(location.directory, *make_pair("other.example.com", key=generate_key(fresh=True)))
        clock.advance(minutes=5)

        previous = manager.restore(record, location)

        assert location.cert_path.read_bytes() == original
        assert previous is not None
        assert previous.reason == "pre-restore"
        assert previous.subject == "CN=other.example.com"

    def test_restore_incomplete_backup(self, manager, location):
        record = manager.backup(location, reason="x")
        record.key_path.unlink()
        with pytest.raises(ValidationError, match="incomplete"):
            manager.restore(record, location)

    def test_prune_keeps_newest(self, manager, location, clock):
        for _ in range(4):
            manager.backup(location, reason="x")
            clock.advance(minutes=1)
        assert manager.prune(location, keep=1) == 3
        remaining = manager.list_backups(location)
        assert len(remaining) == 1
        assert remaining[0].timestamp == datetime(2026, 1, 1, 12, 3, tzinfo=UTC)

    def test_prune_rejects_negative(self, manager, location):
        with pytest.raises(ValueError, match="keep"):
            manager.prune(location, keep=-1)
