"""Atomic file writes with explicit permissions.

Certificate files are written to a temporary sibling, fsynced, chmodded
and then moved into place with :func:`os.replace`, so a reader never
observes a half-written certificate or key.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

CERT_MODE = 0o644
KEY_MODE = 0o600


def atomic_write(path: Path, data: bytes, mode: int) -> None:
    """Write *data* to *path* atomically with permission *mode*."""
    path = Path(path)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise
    fsync_directory(path.parent)


def write_pair(cert_path: Path, cert_pem: bytes, key_path: Path, key_pem: bytes) -> None:
    """Write a certificate (0644) and its key (0600).

    The key is written first so a certificate on disk always has its
    key beside it.
    """
    atomic_write(key_path, key_pem, KEY_MODE)
    atomic_write(cert_path, cert_pem, CERT_MODE)


def fsync_directory(directory: Path) -> None:
    """Flush directory metadata (renames) to disk where supported."""
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def same_content(path: Path, data: bytes) -> bool:
    try:
        return Path(path).read_bytes() == data
    except OSError:
        return False
