"""
Resource usage of the host and of the rathole process.

Thin wrappers around psutil used by the status endpoints.
"""

import logging
from datetime import datetime
from typing import Optional

import psutil

logger = logging.getLogger(__name__)


def get_system_stats(interval: float = 0.2) -> dict:
    """Host CPU usage in percent and used memory in MB."""
    cpu_percent = psutil.cpu_percent(interval=interval)
    memory = psutil.virtual_memory()
    return {
        "cpu_percent": round(cpu_percent, 1),
        "memory_mb": round(memory.used / 1024 / 1024, 1),
        "memory_percent": memory.percent,
    }


def get_process_stats(pid: int, interval: float = 0.1) -> Optional[dict]:
    """CPU, memory and uptime of a single process, or None if it is gone."""
    try:
        proc = psutil.Process(pid)
        cpu_percent = proc.cpu_percent(interval=interval)
        memory_mb = proc.memory_info().rss / 1024 / 1024
        started = datetime.fromtimestamp(proc.create_time())
    except psutil.NoSuchProcess:
        return None
    except psutil.AccessDenied:
        logger.warning(f"Access denied reading stats for PID {pid}")
        return None

    return {
        "pid": pid,
        "cpu_percent": round(cpu_percent, 1),
        "memory_mb": round(memory_mb, 1),
        "uptime_seconds": (datetime.now() - started).total_seconds(),
    }
