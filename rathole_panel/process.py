"""
Process supervisor for the rathole binary.

Starts, stops and tracks exactly one rathole process. Its stdout/stderr are
piped and drained by two background threads into the log sink. A recorded
process is only trusted after a liveness poll, so a rathole that died on its
own is noticed the next time start() is called.
"""

import atexit
import logging
import subprocess
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from . import locator
from .config import config
from .errors import SupervisorError
from .logsink import STDERR, STDOUT, LogSink

logger = logging.getLogger(__name__)

ALREADY_RUNNING = "Already running"
STARTED = "Started successfully"
NOT_RUNNING = "Not running"
STOPPED = "Stopped successfully"


@dataclass
class ProcessInfo:
    """Information about the running rathole process."""

    process: subprocess.Popen
    role: str
    config_path: str
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def pid(self) -> int:
        return self.process.pid

    def to_dict(self) -> dict:
        return {
            "pid": self.pid,
            "role": self.role,
            "config_path": self.config_path,
            "started_at": self.started_at.isoformat(),
            "uptime_seconds": (datetime.now() - self.started_at).total_seconds(),
        }


class SupervisorState:
    """The single process slot and the lock guarding it."""

    def __init__(self):
        self.lock = threading.Lock()
        self.current: Optional[ProcessInfo] = None


def build_command(executable: str, config_path: str, is_server: bool) -> list[str]:
    """Command line for running rathole in the given role."""
    role_flag = "--server" if is_server else "--client"
    return [executable, role_flag, str(config_path)]


class ProcessManager:
    """Manages the supervised rathole process."""

    def __init__(
        self,
        state: SupervisorState = None,
        sink: LogSink = None,
        install_dir: Path = None,
    ):
        self._state = state or SupervisorState()
        self._sink = sink or LogSink()
        self._install_dir = Path(install_dir or config.install_dir)

    @property
    def sink(self) -> LogSink:
        return self._sink

    def start(self, config_path: str, is_server: bool) -> str:
        """Start rathole unless a live process is already recorded."""
        with self._state.lock:
            info = self._state.current
            if info is not None:
                try:
                    exit_code = info.process.poll()
                except Exception as e:
                    logger.warning(f"Liveness check for PID {info.pid} failed, assuming exited: {e}")
                    exit_code = -1

                if exit_code is None:
                    logger.info(f"Rathole is already running with PID {info.pid}")
                    return ALREADY_RUNNING

                logger.info(f"Rathole PID {info.pid} exited with code {exit_code}, clearing state")
                self._state.current = None

            executable = locator.resolve_path(self._install_dir)
            cmd = build_command(executable, config_path, is_server)

            try:
                process = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    **locator.no_window_kwargs(),
                )
            except (OSError, ValueError, subprocess.SubprocessError) as e:
                logger.error(f"Failed to start rathole ({' '.join(cmd)}): {e}")
                raise SupervisorError(f"Failed to start: {e}") from e

            self._state.current = ProcessInfo(
                process=process,
                role="server" if is_server else "client",
                config_path=str(config_path),
            )

        # Start log capture threads
        for stream, tag in ((process.stdout, STDOUT), (process.stderr, STDERR)):
            thread = threading.Thread(
                target=self._capture_output,
                args=(stream, tag),
                name=f"rathole-{tag}-{process.pid}",
                daemon=True,
            )
            thread.start()

        logger.info(f"Started rathole with PID {process.pid}: {' '.join(cmd)}")
        return STARTED

    def stop(self) -> str:
        """Kill the recorded process. Stopping when idle is not an error."""
        with self._state.lock:
            info = self._state.current
            self._state.current = None

            if info is None:
                logger.info("Rathole is not running")
                return NOT_RUNNING

            try:
                info.process.kill()
            except OSError as e:
                logger.error(f"Failed to kill rathole PID {info.pid}: {e}")
                raise SupervisorError(f"Failed to kill process: {e}") from e

        # Reap so the child does not linger as a zombie
        try:
            info.process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            logger.warning(f"Rathole PID {info.pid} did not exit after kill")

        logger.info(f"Stopped rathole PID {info.pid}")
        return STOPPED

    def is_running(self) -> bool:
        """Whether a process is recorded. Does not poll it."""
        with self._state.lock:
            return self._state.current is not None

    def get_pid(self) -> Optional[int]:
        with self._state.lock:
            info = self._state.current
            return info.pid if info else None

    def get_info(self) -> Optional[ProcessInfo]:
        """Get process info for the recorded process."""
        with self._state.lock:
            return self._state.current

    def shutdown(self):
        """Kill any recorded process on application exit, ignoring errors."""
        with self._state.lock:
            info = self._state.current
            self._state.current = None

        if info is None:
            return

        try:
            info.process.kill()
            info.process.wait(timeout=5)
            logger.info(f"Killed rathole PID {info.pid} on shutdown")
        except Exception as e:
            logger.warning(f"Error killing rathole on shutdown: {e}")

    def _capture_output(self, stream, tag: str):
        """Drain one pipe into the log sink until the process closes it."""
        try:
            for line in iter(stream.readline, b""):
                decoded = line.decode("utf-8", errors="replace").rstrip("\r\n")
                self._sink.append(decoded, tag)
        except Exception as e:
            logger.error(f"Error in rathole {tag} capture: {e}")
        finally:
            try:
                stream.close()
            except OSError:
                pass


# Global process manager instance
process_manager = ProcessManager()
atexit.register(process_manager.shutdown)
