"""
Background jobs for slow panel operations.

Release downloads can take a while, so the API hands them to a daemon thread
and returns a job the client polls for the outcome.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class JobStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Job:
    """A tracked background operation."""

    id: str
    name: str
    status: JobStatus = JobStatus.PENDING
    result: Any = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class JobManager:
    """Runs callables on daemon threads and remembers how they ended."""

    def __init__(self, max_finished: int = 50):
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._max_finished = max_finished

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self, status: Optional[JobStatus] = None) -> list[Job]:
        """List jobs, newest first, optionally filtered by status."""
        with self._lock:
            jobs = list(self._jobs.values())

        if status:
            jobs = [j for j in jobs if j.status == status]

        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    def run_in_background(self, name: str, func: Callable, *args, **kwargs) -> Job:
        """Run func(*args, **kwargs) on a daemon thread and track it as a job."""
        job = Job(id=uuid.uuid4().hex[:8], name=name)

        def wrapper():
            job.status = JobStatus.RUNNING
            job.started_at = datetime.now()
            logger.info(f"Job {job.id} started: {name}")
            # completed_at is set before status so finished jobs always carry it
            try:
                job.result = func(*args, **kwargs)
                job.completed_at = datetime.now()
                job.status = JobStatus.COMPLETED
                logger.info(f"Job {job.id} completed: {name}")
            except Exception as e:
                job.error = str(e)
                job.completed_at = datetime.now()
                job.status = JobStatus.FAILED
                logger.error(f"Job {job.id} failed: {name} - {e}")

        thread = threading.Thread(target=wrapper, name=f"job-{job.id}", daemon=True)
        with self._lock:
            self._jobs[job.id] = job
            self._prune()

        thread.start()
        return job

    def _prune(self):
        """Drop the oldest finished jobs beyond max_finished."""
        finished = [j for j in self._jobs.values() if j.finished]
        if len(finished) <= self._max_finished:
            return

        finished.sort(key=lambda j: j.completed_at or datetime.min)
        for job in finished[: len(finished) - self._max_finished]:
            del self._jobs[job.id]


# Global job manager instance
job_manager = JobManager()
