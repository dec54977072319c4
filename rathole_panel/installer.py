"""
Downloading and unpacking rathole release archives.

Fetches rathole-<target>.zip for the requested version from the release host,
extracts it into the install directory and marks the binary executable.
"""

import logging
import shutil
import sys
import zipfile
import zlib
from pathlib import Path

import httpx

from . import locator
from .config import config
from .errors import InstallError, LocatorError

logger = logging.getLogger(__name__)

ARCHIVE_NAME = "rathole.zip"

RELEASE_TARGETS = {
    "win32": "x86_64-pc-windows-msvc",
    "darwin": "x86_64-apple-darwin",
    "linux": "x86_64-unknown-linux-gnu",
}


def release_target(platform: str = None) -> str:
    """Release target triple for the host operating system."""
    platform = platform or sys.platform
    for prefix, target in RELEASE_TARGETS.items():
        if platform.startswith(prefix):
            return target
    return RELEASE_TARGETS["linux"]


def release_url(version: str, target: str = None) -> str:
    """Download URL of the release archive for version and target."""
    target = target or release_target()
    project = config.project_name
    return (
        f"https://{config.release_host}/{config.release_project}"
        f"/releases/download/{version}/{project}-{target}.zip"
    )


def download(url: str, client: httpx.Client = None) -> bytes:
    """Fetch url fully into memory."""
    owns_client = client is None
    if owns_client:
        client = httpx.Client(follow_redirects=True, timeout=config.download_timeout)

    try:
        response = client.get(url)
        response.raise_for_status()
        return response.content
    except httpx.HTTPError as e:
        raise InstallError(f"Download of {url} failed: {e}") from e
    finally:
        if owns_client:
            client.close()


def extract_archive(archive_path: Path, target_dir: Path) -> list[Path]:
    """Extract every entry of a zip archive, creating directories as needed."""
    target_dir = Path(target_dir).resolve()
    extracted = []

    with zipfile.ZipFile(archive_path) as archive:
        for entry in archive.infolist():
            out_path = (target_dir / entry.filename).resolve()
            if out_path != target_dir and target_dir not in out_path.parents:
                raise InstallError(f"Archive entry escapes install directory: {entry.filename}")

            if entry.is_dir():
                out_path.mkdir(parents=True, exist_ok=True)
                continue

            out_path.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(entry) as src, open(out_path, "wb") as dst:
                shutil.copyfileobj(src, dst)
            extracted.append(out_path)

    return extracted


def install(version: str, install_dir: Path = None, client: httpx.Client = None) -> str:
    """
    Download and unpack rathole `version` into install_dir.

    Returns the path of the installed executable. Partial extraction is not
    rolled back; installing again overwrites it.
    """
    install_dir = Path(install_dir or config.install_dir)
    url = release_url(version)
    logger.info(f"Downloading rathole {version} from {url}")

    content = download(url, client=client)

    archive_path = install_dir / ARCHIVE_NAME
    try:
        install_dir.mkdir(parents=True, exist_ok=True)
        archive_path.write_bytes(content)
        files = extract_archive(archive_path, install_dir)
    except (OSError, zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError) as e:
        raise InstallError(f"Failed to unpack {url}: {e}") from e
    finally:
        try:
            archive_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove {archive_path}: {e}")

    logger.info(f"Extracted {len(files)} files into {install_dir}")

    exe_path = locator.local_binary(install_dir)
    if exe_path.exists():
        try:
            locator.fix_permissions(install_dir)
        except LocatorError as e:
            raise InstallError(str(e)) from e
    else:
        logger.warning(f"Archive did not contain {exe_path.name}")

    return str(exe_path)
