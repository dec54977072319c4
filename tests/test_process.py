import subprocess
import threading
from unittest.mock import MagicMock

import pytest

from conftest import posix_only, wait_for
from rathole_panel import locator
from rathole_panel.errors import SupervisorError
from rathole_panel.process import (
    ALREADY_RUNNING,
    NOT_RUNNING,
    STARTED,
    STOPPED,
    ProcessInfo,
    ProcessManager,
    SupervisorState,
    build_command,
)


@pytest.fixture
def manager(install_dir, sink):
    pm = ProcessManager(state=SupervisorState(), sink=sink, install_dir=install_dir)
    yield pm
    pm.shutdown()


def _logged(sink, text):
    return [line for line in sink.tail(100) if text in line]


def test_build_command_client_role():
    assert build_command("/opt/rathole", "/tmp/client.toml", False) == [
        "/opt/rathole",
        "--client",
        "/tmp/client.toml",
    ]


def test_build_command_server_role():
    assert build_command("rathole", "server.toml", True) == ["rathole", "--server", "server.toml"]


def test_stop_when_idle_is_not_an_error(manager):
    assert manager.stop() == NOT_RUNNING
    assert manager.stop() == NOT_RUNNING
    assert manager.is_running() is False


@posix_only
def test_start_invokes_binary_with_role_and_config(manager, fake_rathole, client_config, sink):
    assert manager.start(str(client_config), False) == STARTED
    assert manager.is_running()

    lines = wait_for(lambda: _logged(sink, "args:"))
    assert lines[0].endswith(f"args: --client {client_config}")


@posix_only
def test_output_of_both_streams_reaches_the_sink(manager, fake_rathole, client_config, sink):
    received = []
    sink.subscribe(received.append)

    manager.start(str(client_config), True)

    assert wait_for(lambda: _logged(sink, "[ERR] warning on stderr"))
    assert wait_for(lambda: "[ERR] warning on stderr" in received)
    assert wait_for(lambda: f"args: --server {client_config}" in received)


@posix_only
def test_second_start_reports_already_running(manager, fake_rathole, client_config):
    manager.start(str(client_config), False)
    pid = manager.get_pid()

    assert manager.start(str(client_config), False) == ALREADY_RUNNING
    assert manager.get_pid() == pid


@posix_only
def test_stop_kills_and_clears(manager, fake_rathole, client_config):
    manager.start(str(client_config), False)
    process = manager.get_info().process

    assert manager.stop() == STOPPED
    assert manager.is_running() is False
    assert process.poll() is not None
    assert manager.stop() == NOT_RUNNING


@posix_only
def test_exited_process_is_detected_on_next_start(manager, fake_rathole, exiting_config, client_config):
    assert manager.start(str(exiting_config), False) == STARTED
    first = manager.get_info()
    first.process.wait(timeout=5)

    # Presence check only, so the dead process still counts until start() polls it
    assert manager.is_running()

    assert manager.start(str(client_config), False) == STARTED
    assert manager.get_pid() != first.pid
    assert manager.get_info().process.poll() is None


@posix_only
def test_failed_poll_is_treated_as_exited(manager, fake_rathole, client_config, sink):
    broken = MagicMock()
    broken.poll.side_effect = OSError("poll failed")
    manager._state.current = ProcessInfo(process=broken, role="client", config_path="old.toml")

    assert manager.start(str(client_config), False) == STARTED
    assert manager.get_info().process is not broken


@posix_only
def test_concurrent_starts_spawn_once(manager, fake_rathole, client_config):
    results = []
    barrier = threading.Barrier(8)

    def start():
        barrier.wait()
        results.append(manager.start(str(client_config), False))

    threads = [threading.Thread(target=start) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(STARTED) == 1
    assert results.count(ALREADY_RUNNING) == 7


def test_spawn_failure_leaves_state_empty(manager, monkeypatch, tmp_path, client_config):
    missing = tmp_path / "nowhere" / "rathole"
    monkeypatch.setattr(locator, "resolve_path", lambda install_dir: str(missing))

    with pytest.raises(SupervisorError, match="Failed to start"):
        manager.start(str(client_config), False)
    assert manager.is_running() is False
    assert manager.get_pid() is None


def test_kill_failure_is_reported_but_slot_cleared(manager):
    process = MagicMock(spec=subprocess.Popen)
    process.pid = 4242
    process.kill.side_effect = PermissionError("not allowed")
    manager._state.current = ProcessInfo(process=process, role="client", config_path="c.toml")

    with pytest.raises(SupervisorError, match="Failed to kill process"):
        manager.stop()
    assert manager.is_running() is False


def test_shutdown_ignores_kill_errors(manager):
    process = MagicMock(spec=subprocess.Popen)
    process.pid = 4242
    process.kill.side_effect = OSError("gone")
    manager._state.current = ProcessInfo(process=process, role="server", config_path="s.toml")

    manager.shutdown()
    assert manager.is_running() is False


@posix_only
def test_shutdown_kills_running_process(manager, fake_rathole, client_config):
    manager.start(str(client_config), False)
    process = manager.get_info().process

    manager.shutdown()
    assert process.poll() is not None
    assert manager.is_running() is False


def test_independent_managers_do_not_share_state(install_dir, sink):
    a = ProcessManager(state=SupervisorState(), sink=sink, install_dir=install_dir)
    b = ProcessManager(state=SupervisorState(), sink=sink, install_dir=install_dir)
    a._state.current = ProcessInfo(process=MagicMock(pid=1), role="client", config_path="x")

    assert a.is_running()
    assert not b.is_running()
    a._state.current = None


def test_process_info_to_dict():
    info = ProcessInfo(process=MagicMock(pid=77), role="server", config_path="/etc/rathole.toml")
    data = info.to_dict()
    assert data["pid"] == 77
    assert data["role"] == "server"
    assert data["uptime_seconds"] >= 0
