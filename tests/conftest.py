import os
import tempfile
import time
from pathlib import Path

import pytest

# Point the panel at a throwaway data directory before anything imports it
_DATA_DIR = tempfile.mkdtemp(prefix="rathole-panel-test-")
os.environ["RATHOLE_PANEL_DATA_DIR"] = _DATA_DIR

from rathole_panel import locator  # noqa: E402
from rathole_panel.logsink import LogSink  # noqa: E402

posix_only = pytest.mark.skipif(os.name != "posix", reason="needs a POSIX shell")

# Prints its arguments on both streams, then either exits (when the config
# file mentions "exit") or stays up until killed.
FAKE_RATHOLE = """#!/bin/sh
if [ "$1" = "--version" ]; then
    echo "rathole 0.5.0"
    exit 0
fi
echo "args: $*"
echo "warning on stderr" >&2
if [ -f "$2" ] && grep -q exit "$2"; then
    exit 0
fi
exec sleep 60
"""


def make_executable(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)
    path.chmod(0o755)
    return path


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.02):
    """Poll predicate until it is truthy or the timeout runs out."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = predicate()
        if result:
            return result
        time.sleep(interval)
    return predicate()


@pytest.fixture
def install_dir(tmp_path):
    path = tmp_path / "install"
    path.mkdir()
    return path


@pytest.fixture
def fake_rathole(install_dir):
    return make_executable(locator.local_binary(install_dir), FAKE_RATHOLE)


@pytest.fixture
def sink(tmp_path):
    return LogSink(logs_dir=tmp_path / "logs", prefix="rathole")


@pytest.fixture
def client_config(tmp_path):
    path = tmp_path / "client.toml"
    path.write_text('[client]\nremote_addr = "example.com:2333"\n')
    return path


@pytest.fixture
def exiting_config(tmp_path):
    path = tmp_path / "exit.toml"
    path.write_text("# exit immediately\n")
    return path
