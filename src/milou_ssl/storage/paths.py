"""Path Resolver -- where certificate material lives.

Turns a requested directory into a :class:`CertificateLocation`,
creating it when needed.  When the tool runs from the project root (or
from its bind-mounted deploy subtree) relative requests are redirected
into the directory the proxy container mounts, so whatever is written
is immediately visible inside the container.

Usage::

    resolver = PathResolver()
    location = resolver.resolve("./ssl", WorkingContext.current())
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from pathlib import Path

from milou_ssl.core.errors import PathError
from milou_ssl.models.location import DEFAULT_NAME, CertificateLocation, WorkingContext
from milou_ssl.storage.files import CERT_MODE, KEY_MODE, atomic_write, same_content

log = logging.getLogger(__name__)

# Directories searched, relative to the working directory, for an
# existing certificate pair.
_SEARCH_DIRS = (
    "ssl",
    "static/ssl",
    "certs",
    "certificates",
    "../ssl",
    "../static/ssl",
)


class PathResolver:
    """Resolve and prepare certificate storage locations.

    Parameters
    ----------
    name:
        Base name of the certificate pair (``<name>.crt``/``<name>.key``).

    """

    def __init__(self, name: str = DEFAULT_NAME) -> None:
        self._name = name

    def resolve(self, requested: str | Path | None, context: WorkingContext) -> CertificateLocation:
        """Resolve *requested* into a writable location.

        Raises
        ------
        PathError
            If the directory cannot be created or is not writable.

        """
        requested_path = Path(requested) if requested else Path("ssl")
        mount = context.mount_directory

        if requested_path.is_absolute():
            directory = requested_path
        elif mount is not None:
            if requested_path not in (Path("ssl"), Path("static/ssl"), Path(context.deploy_subdir) / "ssl"):
                log.info(
                    "Redirecting certificate path %s to %s for container access",
                    requested_path,
                    mount,
                )
            directory = mount
        else:
            directory = context.cwd / requested_path

        directory = Path(os.path.normpath(directory))
        self._prepare(directory)

        compatible = mount is not None and directory == Path(os.path.normpath(mount))
        return CertificateLocation(
            directory=directory,
            name=self._name,
            docker_mount_compatible=compatible,
        )

    def ensure_container_visible(
        self,
        location: CertificateLocation,
        context: WorkingContext,
    ) -> CertificateLocation:
        """Make sure the proxy container can see *location*'s material.

        When *location* is not the mounted directory, the pair is copied
        there with modes 0644/0600.  Copies whose content already matches
        are skipped, so repeated calls write nothing.

        Returns the location the container reads from.
        """
        mount = context.mount_directory
        if mount is None or location.docker_mount_compatible:
            return location
        mount = Path(os.path.normpath(mount))
        if location.directory == mount:
            return location

        target = CertificateLocation(directory=mount, name=location.name, docker_mount_compatible=True)
        if not location.has_material():
            return target

        self._prepare(mount)
        cert_pem = location.cert_path.read_bytes()
        key_pem = location.key_path.read_bytes()
        copied = False
        if not same_content(target.key_path, key_pem):
            atomic_write(target.key_path, key_pem, KEY_MODE)
            copied = True
        if not same_content(target.cert_path, cert_pem):
            atomic_write(target.cert_path, cert_pem, CERT_MODE)
            copied = True
        if copied:
            log.info("Copied certificates to %s for container access", mount)
        return target

    def find_existing(self, context: WorkingContext) -> CertificateLocation | None:
        """Search common directories for an existing certificate pair."""
        candidates = [context.mount_directory] if context.mount_directory else []
        candidates.extend(context.cwd / d for d in _SEARCH_DIRS)
        seen: set[Path] = set()
        for candidate in candidates:
            directory = Path(os.path.normpath(candidate))
            if directory in seen:
                continue
            seen.add(directory)
            location = CertificateLocation(directory=directory, name=self._name)
            if location.has_material():
                log.debug("Found existing certificates in %s", directory)
                return location
        return None

    @staticmethod
    def check_security(location: CertificateLocation) -> list[str]:
        """Return warnings about insecure permissions of *location*."""
        warnings: list[str] = []
        try:
            mode = location.directory.stat().st_mode
        except OSError:
            return warnings
        if mode & stat.S_IWOTH:
            warnings.append(f"certificate directory {location.directory} is world-writable")
        for w in warnings:
            log.warning("%s", w)
        return warnings

    @staticmethod
    def _prepare(directory: Path) -> None:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"cannot create certificate directory {directory}: {exc.strerror or exc}"
            raise PathError(msg) from exc
        if not directory.is_dir():
            msg = f"certificate path {directory} is not a directory"
            raise PathError(msg)
        if not os.access(directory, os.W_OK | os.X_OK):
            msg = f"certificate directory {directory} is not writable"
            raise PathError(msg)


def consolidate(source: CertificateLocation, target: CertificateLocation) -> bool:
    """Copy a pair found elsewhere into *target* unless it already has one.

    Returns ``True`` when files were copied.
    """
    if target.has_material() or not source.has_material() or source.directory == target.directory:
        return False
    shutil.copyfile(source.key_path, target.key_path)
    os.chmod(target.key_path, KEY_MODE)
    shutil.copyfile(source.cert_path, target.cert_path)
    os.chmod(target.cert_path, CERT_MODE)
    log.info("Consolidated certificates from %s into %s", source.directory, target.directory)
    return True
