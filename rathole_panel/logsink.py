"""
Daily log file and live log feed for rathole output.

Every captured line is timestamped and appended to rathole-YYYY-MM-DD.log in
the logs directory, then forwarded to any live subscribers (the SSE endpoint,
tests, or any other observer). The file path is recomputed on every write,
so output crossing midnight lands in the next day's file.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

from .config import config

logger = logging.getLogger(__name__)

STDOUT = "stdout"
STDERR = "stderr"
ERROR_MARKER = "[ERR] "


@dataclass(frozen=True)
class LogLine:
    """A single captured line of rathole output."""

    text: str
    stream: str = STDOUT
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_error(self) -> bool:
        return self.stream == STDERR

    def formatted(self) -> str:
        """Persisted form: '[2024-01-31 12:00:00.123] [ERR] text'."""
        stamp = self.timestamp.strftime("%Y-%m-%d %H:%M:%S.") + f"{self.timestamp.microsecond // 1000:03d}"
        marker = ERROR_MARKER if self.is_error else ""
        return f"[{stamp}] {marker}{self.text}"

    def broadcast(self) -> str:
        """Live form: the raw text, marked if it came from stderr."""
        if self.is_error:
            return f"{ERROR_MARKER}{self.text}"
        return self.text


class LogSink:
    """Persists rathole output to a daily file and fans it out to subscribers."""

    def __init__(self, logs_dir: Path = None, prefix: str = None):
        self.logs_dir = Path(logs_dir or config.logs_dir)
        self.prefix = prefix or config.project_name
        self._write_lock = threading.Lock()
        self._subscribers: list[Callable[[str], None]] = []
        self._subscribers_lock = threading.Lock()

    def log_path(self, day: Optional[date] = None) -> Path:
        """Path of the log file for the given day (today by default)."""
        day = day or date.today()
        return self.logs_dir / f"{self.prefix}-{day.strftime('%Y-%m-%d')}.log"

    def append(self, text: str, stream: str = STDOUT) -> LogLine:
        """Record one line of output. Never raises for I/O problems."""
        line = LogLine(text=text, stream=stream, timestamp=datetime.now())

        # Write to log file
        try:
            with self._write_lock:
                path = self.log_path(line.timestamp.date())
                path.parent.mkdir(parents=True, exist_ok=True)
                with open(path, "a", encoding="utf-8", newline="\n") as f:
                    f.write(line.formatted() + "\n")
                    f.flush()
        except OSError as e:
            logger.debug(f"Dropped log line, write failed: {e}")

        self._publish(line.broadcast())
        return line

    def tail(self, max_lines: int) -> list[str]:
        """Return up to max_lines most recent lines from today's file."""
        if max_lines <= 0:
            return []

        path = self.log_path()
        try:
            with self._write_lock:
                with open(path, "r", encoding="utf-8", errors="replace", newline="\n") as f:
                    all_lines = f.read().split("\n")
        except FileNotFoundError:
            return []

        # Only "\n" ends a record, a captured "\r" stays inside its line
        if all_lines and all_lines[-1] == "":
            all_lines.pop()

        return all_lines[-max_lines:]

    def subscribe(self, callback: Callable[[str], None]):
        """Register callback(text) for every future line."""
        with self._subscribers_lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[str], None]):
        with self._subscribers_lock:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

    def _publish(self, message: str):
        with self._subscribers_lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(message)
            except Exception as e:
                logger.debug(f"Log subscriber failed: {e}")

    async def stream(self, max_queue: int = 1000) -> AsyncIterator[str]:
        """
        Yield lines as they are appended, for use from an event loop.

        Reader threads hand lines over with call_soon_threadsafe. When the
        consumer falls behind by more than max_queue lines, new lines are
        dropped for that consumer only.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_queue)

        def put(message: str):
            if not queue.full():
                queue.put_nowait(message)

        def forward(message: str):
            loop.call_soon_threadsafe(put, message)

        self.subscribe(forward)
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(forward)
