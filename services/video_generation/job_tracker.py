"""
Job Tracker - JSON persistence for video generation jobs.

One JSON document per job id under the jobs directory. Every write goes to
a temp file first and is moved into place with os.replace, so readers never
see a half-written record. Read-modify-write cycles hold a per-job file lock
(`<id>.json.lock`), so the CLI and a worker process updating the same job
never lose each other's changes.
"""

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from filelock import FileLock
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _stamp(line: str) -> str:
    return f"[{_now().strftime('%H:%M:%S')}] {line}"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class Job(BaseModel):
    """A generation job as persisted on disk."""
    id: str
    status: JobStatus = JobStatus.QUEUED
    request: dict[str, Any] = Field(default_factory=dict)
    logs: list[str] = Field(default_factory=list)
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    pid: Optional[int] = None
    created_at: datetime = Field(default_factory=_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.ERROR)


class JobNotFoundError(KeyError):
    """Raised when a job id has no record."""


class JobTracker:
    """
    Persists video generation jobs as JSON files.

    Usage:
        tracker = JobTracker("data/video-jobs")

        job = tracker.create_job({"prompt": "...", "duration_seconds": 30})
        tracker.mark_running(job.id)
        tracker.append_log(job.id, "Generating base clip")
        tracker.complete(job.id, result.to_dict())
    """

    def __init__(self, jobs_dir: str, max_log_lines: int = 500, lock_timeout: float = 30.0):
        self.jobs_dir = Path(jobs_dir)
        self.max_log_lines = max_log_lines
        self.lock_timeout = lock_timeout

    def _path(self, job_id: str) -> Path:
        if not job_id or "/" in job_id or job_id.startswith("."):
            raise ValueError(f"Invalid job id: {job_id!r}")
        return self.jobs_dir / f"{job_id}.json"

    def _lock(self, job_id: str) -> FileLock:
        path = self._path(job_id)
        self.jobs_dir.mkdir(parents=True, exist_ok=True)
        return FileLock(f"{path}.lock", timeout=self.lock_timeout)

    def _write(self, job: Job):
        self.jobs_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(job.id)
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        with open(tmp_path, "w") as f:
            f.write(job.model_dump_json(indent=2))
        os.replace(tmp_path, path)

    def create_job(
        self,
        request: dict[str, Any],
        job_id: Optional[str] = None,
        log: Optional[str] = None,
    ) -> Job:
        """
        Create a new queued job record.

        Args:
            request: The generation request as plain data
            job_id: Optional id; a short uuid is generated when omitted
            log: Optional first log line, written with the record

        Returns:
            The new Job
        """
        job = Job(id=job_id or uuid.uuid4().hex[:12], request=request)
        if log:
            job.logs.append(_stamp(log))
        with self._lock(job.id):
            if self._path(job.id).exists():
                raise ValueError(f"Job {job.id} already exists")
            self._write(job)
        logger.info(f"Created job {job.id}")
        return job

    def get_job(self, job_id: str) -> Job:
        path = self._path(job_id)
        if not path.exists():
            raise JobNotFoundError(job_id)
        with open(path) as f:
            return Job.model_validate(json.load(f))

    def update_job(self, job_id: str, mutate: Callable[[Job], None]) -> Job:
        """Read, mutate and atomically rewrite one job under its file lock."""
        with self._lock(job_id):
            job = self.get_job(job_id)
            mutate(job)
            if len(job.logs) > self.max_log_lines:
                job.logs = job.logs[-self.max_log_lines:]
            self._write(job)
        return job

    def append_log(self, job_id: str, line: str) -> Job:
        stamped = _stamp(line)
        return self.update_job(job_id, lambda job: job.logs.append(stamped))

    def mark_running(self, job_id: str, pid: Optional[int] = None) -> Job:
        def mutate(job: Job):
            job.status = JobStatus.RUNNING
            job.started_at = _now()
            job.pid = pid

        return self.update_job(job_id, mutate)

    def complete(self, job_id: str, result: dict[str, Any]) -> Job:
        def mutate(job: Job):
            job.status = JobStatus.COMPLETED
            job.result = result
            job.error = None
            job.finished_at = _now()

        job = self.update_job(job_id, mutate)
        logger.info(f"Job {job_id} completed")
        return job

    def fail(self, job_id: str, error: str, result: Optional[dict[str, Any]] = None) -> Job:
        def mutate(job: Job):
            job.status = JobStatus.ERROR
            job.error = error
            job.result = result
            job.finished_at = _now()

        job = self.update_job(job_id, mutate)
        logger.error(f"Job {job_id} failed: {error}")
        return job

    def list_jobs(self, status: Optional[JobStatus] = None) -> list[Job]:
        """All jobs, newest first."""
        if not self.jobs_dir.exists():
            return []

        jobs = []
        for path in self.jobs_dir.glob("*.json"):
            with open(path) as f:
                job = Job.model_validate(json.load(f))
            if status is None or job.status == status:
                jobs.append(job)
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)
