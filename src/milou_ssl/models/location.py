"""Certificate storage location and working context."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_NAME = "milou"


@dataclass(frozen=True)
class WorkingContext:
    """Where the tool runs and how the project tree is laid out.

    Attributes
    ----------
    cwd:
        Process working directory.
    project_dir_name:
        Basename identifying the project root.
    deploy_subdir:
        Subtree of the project root that is bind-mounted into the proxy.

    """

    cwd: Path
    project_dir_name: str = "milou-cli"
    deploy_subdir: str = "static"

    @classmethod
    def current(cls, **kwargs) -> WorkingContext:
        return cls(cwd=Path.cwd(), **kwargs)

    @property
    def is_project_root(self) -> bool:
        return self.cwd.name == self.project_dir_name and (self.cwd / self.deploy_subdir).is_dir()

    @property
    def is_deploy_subtree(self) -> bool:
        return self.cwd.name == self.deploy_subdir

    @property
    def mount_directory(self) -> Path | None:
        """The ``ssl`` directory the proxy container mounts, if known."""
        if self.is_project_root:
            return self.cwd / self.deploy_subdir / "ssl"
        if self.is_deploy_subtree:
            return self.cwd / "ssl"
        return None


@dataclass(frozen=True)
class CertificateLocation:
    """Resolved on-disk location of a certificate/key pair.

    Only :class:`~milou_ssl.storage.paths.PathResolver` builds these.
    """

    directory: Path
    name: str = DEFAULT_NAME
    docker_mount_compatible: bool = False

    @property
    def cert_path(self) -> Path:
        return self.directory / f"{self.name}.crt"

    @property
    def key_path(self) -> Path:
        return self.directory / f"{self.name}.key"

    @property
    def backup_dir(self) -> Path:
        return self.directory / "backups"

    def has_material(self) -> bool:
        return self.cert_path.is_file() and self.key_path.is_file()
