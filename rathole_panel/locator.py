"""
Locating and inspecting the rathole executable.

The panel prefers a binary installed into its own data directory and falls
back to whatever `rathole` the operating system finds on PATH.
"""

import logging
import os
import stat
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import BinaryNotFoundError, LocatorError

logger = logging.getLogger(__name__)

PROJECT = "rathole"
UNKNOWN_VERSION = "unknown"


def executable_name() -> str:
    """Platform-specific file name of the rathole binary."""
    return f"{PROJECT}.exe" if sys.platform == "win32" else PROJECT


def local_binary(install_dir) -> Path:
    """Path the binary has when installed into install_dir."""
    return Path(install_dir) / executable_name()


def resolve_path(install_dir) -> str:
    """Return the executable to invoke: the local copy, else a PATH lookup."""
    local_bin = local_binary(install_dir)
    if local_bin.exists():
        return str(local_bin)
    return PROJECT


def parse_version(output: str) -> Optional[str]:
    """Extract the version from output like 'rathole 1.2.3'."""
    parts = output.split()
    if len(parts) < 2:
        return None
    return parts[1]


def installed_version(install_dir, timeout: float = 10) -> str:
    """Run the local binary with --version and return the reported version."""
    local_bin = local_binary(install_dir)
    if not local_bin.exists():
        raise BinaryNotFoundError()

    try:
        result = subprocess.run(
            [str(local_bin), "--version"],
            capture_output=True,
            timeout=timeout,
            **no_window_kwargs(),
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise LocatorError(str(e)) from e

    output = result.stdout.decode("utf-8", errors="replace")
    if result.returncode == 0:
        version = parse_version(output)
        if version and "\ufffd" not in version:
            return version

    logger.warning(f"Could not parse rathole version from {output!r}")
    return UNKNOWN_VERSION


def _fix_posix_permissions(install_dir) -> str:
    exe_path = local_binary(install_dir)
    if not exe_path.exists():
        raise BinaryNotFoundError("Rathole not found")

    try:
        mode = exe_path.stat().st_mode
        exe_path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    except OSError as e:
        raise LocatorError(f"Failed to set permissions on {exe_path}: {e}") from e

    logger.info(f"Marked {exe_path} executable")
    return "Permissions fixed"


def _fix_permissions_noop(install_dir) -> str:
    return "Not needed on this platform"


def supports_posix_permissions() -> bool:
    return os.name == "posix"


def fix_permissions(install_dir) -> str:
    """
    Add the executable bit to the local binary.

    On platforms without POSIX permissions this succeeds without doing anything.
    """
    if supports_posix_permissions():
        return _fix_posix_permissions(install_dir)
    return _fix_permissions_noop(install_dir)


def no_window_kwargs() -> dict:
    """Popen arguments that keep Windows from opening a console window."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {}


@dataclass
class InstalledBinary:
    """An on-disk rathole executable with a lazily queried version."""

    path: Path
    _version: Optional[str] = None

    @classmethod
    def find(cls, install_dir) -> Optional["InstalledBinary"]:
        path = local_binary(install_dir)
        if not path.exists():
            return None
        return cls(path=path)

    @property
    def version(self) -> str:
        if self._version is None:
            self._version = installed_version(self.path.parent)
        return self._version

    def to_dict(self) -> dict:
        return {"path": str(self.path), "version": self.version}
