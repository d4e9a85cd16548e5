"""Backup record entity."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


@dataclass(frozen=True)
class BackupRecord:
    timestamp: datetime
    reason: str
    cert_path: Path
    key_path: Path
    original_directory: Path
    subject: str = ""
    issuer: str = ""
    not_after: datetime | None = None

    @property
    def metadata_path(self) -> Path:
        return self.cert_path.with_suffix(".json")

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "cert_path": str(self.cert_path),
            "key_path": str(self.key_path),
            "original_directory": str(self.original_directory),
            "subject": self.subject,
            "issuer": self.issuer,
            "not_after": self.not_after.isoformat() if self.not_after else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> BackupRecord:
        not_after = data.get("not_after")
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            reason=data.get("reason", ""),
            cert_path=Path(data["cert_path"]),
            key_path=Path(data["key_path"]),
            original_directory=Path(data["original_directory"]),
            subject=data.get("subject", ""),
            issuer=data.get("issuer", ""),
            not_after=datetime.fromisoformat(not_after) if not_after else None,
        )
