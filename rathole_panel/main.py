"""
Rathole panel FastAPI application.

Provides a local REST API for starting and stopping rathole, reading its
daily logs (or following them live over SSE), installing releases, editing
config files and sampling resource usage.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from . import __version__, configfile, installer, locator, monitor
from .config import config
from .errors import BinaryNotFoundError, PanelError
from .jobs import JobStatus, job_manager
from .models import Installation, Run, initialize_db
from .process import STARTED, process_manager

# Configure logging with rotation
log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

file_handler = RotatingFileHandler(
    config.panel_log,
    maxBytes=config.log_max_bytes,
    backupCount=config.log_backup_count,
)
file_handler.setFormatter(log_formatter)

console_handler = logging.StreamHandler()
console_handler.setFormatter(log_formatter)

logging.basicConfig(
    level=logging.INFO,
    handlers=[file_handler, console_handler],
)
logger = logging.getLogger(__name__)

# Initialize database
initialize_db()


def _close_open_runs(reason: str):
    for run in Run.select().where(Run.stopped_at.is_null()):
        run.close(reason)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"Starting rathole panel, data in {config.data_dir}")

    # Runs left open by a previous panel process can no longer be tracked
    _close_open_runs("exited")

    yield

    logger.info("Shutting down rathole panel...")
    process_manager.shutdown()
    _close_open_runs("shutdown")


app = FastAPI(
    title="Rathole Panel",
    description="Local control panel for the rathole tunnel binary",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PanelError)
async def panel_error_handler(request: Request, exc: PanelError):
    status_code = 404 if isinstance(exc, BinaryNotFoundError) else 500
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# Pydantic models for API
class StartRequest(BaseModel):
    config_path: str = Field(..., description="Path of the rathole TOML config")
    is_server: bool = Field(False, description="Run as server instead of client")


class InstallRequest(BaseModel):
    version: Optional[str] = Field(None, description="Release tag, e.g. v0.5.0")


class ConfigWrite(BaseModel):
    path: str
    content: str


class TempConfig(BaseModel):
    config: dict[str, Any] = Field(..., description="Structured rathole config")


# Process control
@app.post("/api/rathole/start")
async def start_rathole(data: StartRequest):
    """Start rathole with the given config."""
    message = process_manager.start(data.config_path, data.is_server)

    if message == STARTED:
        info = process_manager.get_info()
        _close_open_runs("exited")
        if info:
            Run.create(pid=info.pid, role=info.role, config_path=info.config_path)

    return {"status": message, "pid": process_manager.get_pid()}


@app.post("/api/rathole/stop")
async def stop_rathole():
    """Stop rathole."""
    try:
        message = process_manager.stop()
    finally:
        run = Run.latest_open()
        if run:
            run.close("stopped")

    return {"status": message}


@app.get("/api/rathole/status")
async def get_status():
    """Whether rathole is recorded as running, with process details."""
    info = process_manager.get_info()
    return {
        "running": info is not None,
        "process": info.to_dict() if info else None,
    }


# Logs
@app.get("/api/rathole/logs")
async def get_logs(lines: int = Query(100, ge=1, le=10000)):
    """Last lines of today's rathole log."""
    return {"lines": process_manager.sink.tail(lines)}


@app.get("/api/rathole/logs/stream")
async def stream_logs():
    """
    Follow rathole output live.

    Returns Server-Sent Events (SSE) stream, one event per captured line.
    """

    async def event_stream():
        async for line in process_manager.sink.stream():
            yield f"event: rathole-log\ndata: {json.dumps(line)}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# Installation
def _install_release(version: str) -> dict:
    path = installer.install(version)
    Installation.create(version=version, target=installer.release_target(), path=path)
    return {"version": version, "path": path}


@app.post("/api/rathole/install")
async def install_rathole(data: InstallRequest):
    """Download and install a rathole release in the background."""
    version = data.version or config.default_version
    job = job_manager.run_in_background(f"install rathole {version}", _install_release, version)
    return job.to_dict()


@app.get("/api/rathole/version")
async def get_installed_version():
    """Version reported by the installed rathole binary."""
    binary = locator.InstalledBinary.find(config.install_dir)
    if binary is None:
        raise BinaryNotFoundError()
    return await asyncio.to_thread(binary.to_dict)


@app.post("/api/rathole/permissions")
async def fix_permissions():
    """Mark the installed binary executable."""
    return {"status": locator.fix_permissions(config.install_dir)}


@app.get("/api/installations")
async def list_installations(limit: int = Query(20, ge=1, le=100)):
    query = Installation.select().order_by(Installation.installed_at.desc()).limit(limit)
    return [i.to_dict() for i in query]


@app.get("/api/runs")
async def list_runs(limit: int = Query(20, ge=1, le=100)):
    query = Run.select().order_by(Run.started_at.desc()).limit(limit)
    return [r.to_dict() for r in query]


# Jobs
@app.get("/api/jobs")
async def list_jobs(status: Optional[str] = None):
    """List background jobs."""
    filter_status = None
    if status:
        try:
            filter_status = JobStatus(status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status: {status}")

    return [j.to_dict() for j in job_manager.list_jobs(filter_status)]


@app.get("/api/jobs/{job_id}")
async def get_job(job_id: str):
    job = job_manager.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found")
    return job.to_dict()


# Config files
@app.get("/api/config")
async def read_config(path: str):
    return {"path": path, "content": configfile.read_config(path)}


@app.put("/api/config")
async def write_config(data: ConfigWrite):
    configfile.write_config(data.path, data.content)
    return {"status": "saved", "path": data.path}


@app.post("/api/config/temp")
async def save_temp_config(data: TempConfig):
    """Write a structured config as TOML and return its path."""
    return {"path": configfile.save_temp_config(data.config)}


# Resource usage
@app.get("/api/system/stats")
async def get_system_stats():
    stats = await asyncio.to_thread(monitor.get_system_stats)
    pid = process_manager.get_pid()
    stats["rathole"] = await asyncio.to_thread(monitor.get_process_stats, pid) if pid else None
    return stats


# Panel logs
@app.get("/api/panel/logs")
async def get_panel_logs(lines: int = Query(100, ge=1, le=1000)):
    """Get recent panel log entries."""
    try:
        with open(config.panel_log, "r") as f:
            all_lines = f.readlines()
            return {"lines": all_lines[-lines:], "total": len(all_lines)}
    except FileNotFoundError:
        return {"lines": [], "total": 0}
