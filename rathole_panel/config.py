"""
Configuration for the rathole panel service.

Loads settings from environment variables with sensible defaults.
All persistent data (the installed binary, daily logs, the run database)
is stored in the per-user data directory unless RATHOLE_PANEL_DATA_DIR is set.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import platformdirs
from dotenv import load_dotenv

load_dotenv()

APP_NAME = "rathole-panel"


def _default_data_dir() -> Path:
    override = os.environ.get("RATHOLE_PANEL_DATA_DIR")
    if override:
        return Path(override).expanduser()
    return platformdirs.user_data_path(APP_NAME)


@dataclass
class Config:
    """Panel configuration."""

    # Paths
    data_dir: Path = None
    install_dir: Path = None
    logs_dir: Path = None
    db_path: Path = None
    panel_log: Path = None

    # Logging of the panel itself
    log_max_bytes: int = int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    log_backup_count: int = int(os.environ.get("LOG_BACKUP_COUNT", "5"))

    # Server
    host: str = os.environ.get("RATHOLE_PANEL_HOST", "127.0.0.1")
    port: int = int(os.environ.get("RATHOLE_PANEL_PORT", "9910"))

    # Release downloads
    release_host: str = os.environ.get("RATHOLE_RELEASE_HOST", "github.com")
    release_project: str = os.environ.get("RATHOLE_RELEASE_PROJECT", "rapiz1/rathole")
    download_timeout: float = float(os.environ.get("RATHOLE_DOWNLOAD_TIMEOUT", "120"))
    default_version: str = os.environ.get("RATHOLE_DEFAULT_VERSION", "v0.5.0")

    # Transient config written from structured JSON
    temp_config_name: str = "client_temp.toml"

    def __post_init__(self):
        """Initialize derived paths and create directories."""
        if self.data_dir is None:
            self.data_dir = _default_data_dir()
        self.data_dir = Path(self.data_dir)

        # The binary, its daily logs and the temp config all share the data dir
        self.install_dir = self.install_dir or self.data_dir
        self.logs_dir = self.logs_dir or self.data_dir
        self.db_path = self.data_dir / "panel.db"
        self.panel_log = self.data_dir / "panel.log"

        # Create directories
        self.data_dir.mkdir(parents=True, exist_ok=True)
        Path(self.install_dir).mkdir(parents=True, exist_ok=True)
        Path(self.logs_dir).mkdir(parents=True, exist_ok=True)

    @property
    def project_name(self) -> str:
        """Short project name used for the executable and log files."""
        return self.release_project.rsplit("/", 1)[-1]


config = Config()

HOST = config.host
PORT = config.port
