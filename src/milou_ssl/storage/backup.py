"""Backup / rotation of certificate material.

Backups are copies (never moves) written under ``<dir>/backups`` as::

    <timestamp>-<name>.crt
    <timestamp>-<name>.key
    <timestamp>-<name>.json     # metadata snapshot

Nothing is pruned automatically; :meth:`BackupManager.prune` is an
explicit operation.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from milou_ssl.core.errors import CertificateError, ValidationError
from milou_ssl.models.backup import BackupRecord
from milou_ssl.storage.files import CERT_MODE, atomic_write, write_pair

if TYPE_CHECKING:
    from milou_ssl.crypto.provider import CryptoProvider
    from milou_ssl.models.location import CertificateLocation

log = logging.getLogger(__name__)

_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%fZ"


class BackupManager:
    """Create, list, restore and prune certificate backups.

    Parameters
    ----------
    crypto:
        Used to snapshot subject, issuer and expiry into the metadata.
    clock:
        Returns the current UTC time; injectable for tests.

    """

    def __init__(self, crypto: CryptoProvider, clock=None) -> None:
        self._crypto = crypto
        self._clock = clock or (lambda: datetime.now(UTC))

    def backup(self, location: CertificateLocation, reason: str) -> BackupRecord:
        """Copy the current pair at *location* into its backup directory.

        Raises
        ------
        ValidationError
            If there is no certificate pair to back up.

        """
        if not location.has_material():
            msg = f"no certificate pair to back up in {location.directory}"
            raise ValidationError(msg)
        return self.backup_material(
            location,
            location.cert_path.read_bytes(),
            location.key_path.read_bytes(),
            reason,
        )

    def backup_material(
        self,
        location: CertificateLocation,
        cert_pem: bytes,
        key_pem: bytes,
        reason: str,
    ) -> BackupRecord:
        """Record *cert_pem*/*key_pem* as a backup belonging to *location*."""
        backup_dir = location.backup_dir
        try:
            backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"cannot create backup directory {backup_dir}: {exc}"
            raise CertificateError(msg) from exc

        timestamp = self._clock()
        stem = self._unique_stem(backup_dir, timestamp, location.name)
        subject, issuer, not_after = self._snapshot(cert_pem)
        record = BackupRecord(
            timestamp=timestamp,
            reason=reason,
            cert_path=backup_dir / f"{stem}.crt",
            key_path=backup_dir / f"{stem}.key",
            original_directory=location.directory,
            subject=subject,
            issuer=issuer,
            not_after=not_after,
        )
        write_pair(record.cert_path, cert_pem, record.key_path, key_pem)
        atomic_write(
            record.metadata_path,
            json.dumps(record.to_dict(), indent=2).encode(),
            CERT_MODE,
        )
        log.info("Backed up certificate to %s (%s)", record.cert_path, reason)
        return record

    def list_backups(self, location: CertificateLocation) -> list[BackupRecord]:
        """Return backups for *location*, newest first."""
        backup_dir = location.backup_dir
        if not backup_dir.is_dir():
            return []
        records: list[BackupRecord] = []
        for cert_path in backup_dir.glob(f"*-{location.name}.crt"):
            record = self._read_record(cert_path, location)
            if record is not None:
                records.append(record)
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records

    def latest(self, location: CertificateLocation) -> BackupRecord | None:
        records = self.list_backups(location)
        return records[0] if records else None

    def restore(self, record: BackupRecord, location: CertificateLocation) -> BackupRecord | None:
        """Copy *record* back over *location*.

        The current pair, if any, is backed up first.  Returns that
        pre-restore backup.
        """
        if not (record.cert_path.is_file() and record.key_path.is_file()):
            msg = f"backup {record.cert_path} is incomplete"
            raise ValidationError(msg)
        previous = None
        if location.has_material():
            previous = self.backup(location, reason="pre-restore")
        write_pair(
            location.cert_path,
            record.cert_path.read_bytes(),
            location.key_path,
            record.key_path.read_bytes(),
        )
        log.info("Restored certificate from %s", record.cert_path)
        return previous

    def prune(self, location: CertificateLocation, keep: int) -> int:
        """Delete all but the newest *keep* backups.  Returns how many went."""
        if keep < 0:
            msg = "keep must be >= 0"
            raise ValueError(msg)
        removed = 0
        for record in self.list_backups(location)[keep:]:
            for path in (record.cert_path, record.key_path, record.metadata_path):
                try:
                    path.unlink()
                except FileNotFoundError:
                    continue
            removed += 1
        if removed:
            log.info("Pruned %d old backup(s) from %s", removed, location.backup_dir)
        return removed

    # -- helpers --------------------------------------------------------------

    @staticmethod
    def _unique_stem(backup_dir: Path, timestamp: datetime, name: str) -> str:
        base = timestamp.astimezone(UTC).strftime(_TIMESTAMP_FORMAT)
        stem = f"{base}-{name}"
        counter = 1
        while (backup_dir / f"{stem}.crt").exists():
            stem = f"{base}{counter:02d}-{name}"
            counter += 1
        return stem

    def _snapshot(self, cert_pem: bytes) -> tuple[str, str, datetime | None]:
        try:
            cert = self._crypto.parse_certificate(cert_pem)
        except ValidationError:
            return "", "", None
        return (
            cert.subject.rfc4514_string(),
            cert.issuer.rfc4514_string(),
            cert.not_valid_after_utc,
        )

    def _read_record(self, cert_path: Path, location: CertificateLocation) -> BackupRecord | None:
        meta_path = cert_path.with_suffix(".json")
        key_path = cert_path.with_suffix(".key")
        if meta_path.is_file():
            try:
                return BackupRecord.from_dict(json.loads(meta_path.read_text(encoding="utf-8")))
            except (OSError, ValueError, KeyError) as exc:
                log.warning("Ignoring unreadable backup metadata %s: %s", meta_path, exc)
        if not key_path.is_file():
            return None
        # Metadata missing or broken: fall back to the file's mtime.
        mtime = datetime.fromtimestamp(os.stat(cert_path).st_mtime, tz=UTC)
        subject, issuer, not_after = self._snapshot(cert_path.read_bytes())
        return BackupRecord(
            timestamp=mtime,
            reason="unknown",
            cert_path=cert_path,
            key_path=key_path,
            original_directory=location.directory,
            subject=subject,
            issuer=issuer,
            not_after=not_after,
        )

