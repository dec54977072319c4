"""Reading and writing rathole TOML config files."""

import logging
from pathlib import Path

import tomli_w

from .config import config
from .errors import ConfigFileError

logger = logging.getLogger(__name__)


def read_config(path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigFileError(f"Cannot read {path}: {e}") from e


def write_config(path, content: str):
    try:
        Path(path).write_text(content, encoding="utf-8")
    except OSError as e:
        raise ConfigFileError(f"Cannot write {path}: {e}") from e
    logger.info(f"Wrote rathole config {path}")


def save_temp_config(data: dict, directory: Path = None) -> str:
    """
    Serialize a structured config as TOML into the temp config file.

    Returns the path, ready to pass to ProcessManager.start().
    """
    directory = Path(directory or config.data_dir)
    try:
        content = tomli_w.dumps(data)
    except (TypeError, ValueError) as e:
        raise ConfigFileError(f"Config cannot be written as TOML: {e}") from e

    path = directory / config.temp_config_name
    try:
        directory.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise ConfigFileError(f"Cannot write {path}: {e}") from e

    return str(path)
