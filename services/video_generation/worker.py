"""
Background job execution.

Each job runs in its own OS process (scripts/run_video_job.py) so one job's
crash or stalled poll cannot starve another. The worker marks the job
running, forwards coordinator progress into the job log, copies the output
out of scratch and writes the terminal result or error.
"""

import logging
import mimetypes
import os
import subprocess
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from core.config import Config, get_config

from .coordinator import VideoCoordinator
from .errors import VideoGenerationError
from .job_tracker import Job, JobTracker
from .materializer import export_result
from .models import GenerationRequest, ImageRef
from .scratch import ScratchArena

logger = logging.getLogger(__name__)

WORKER_SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "run_video_job.py"


async def run_job(
    job_id: str,
    tracker: JobTracker,
    coordinator: Optional[VideoCoordinator] = None,
    config: Optional[Config] = None,
) -> Job:
    """
    Run one queued job to a terminal state.

    Partial scene chains finish as `completed` with `result.error` set.
    Errors are recorded on the job rather than raised.
    """
    config = config or get_config()
    job = tracker.mark_running(job_id, pid=os.getpid())
    tracker.append_log(job_id, f"Worker {os.getpid()} started")

    try:
        request = GenerationRequest.from_dict(job.request)
    except (TypeError, ValueError) as e:
        return tracker.fail(job_id, f"Invalid request: {e}")

    def on_progress(request_id: str, percent: int, message: str):
        tracker.append_log(job_id, f"[{percent:3d}%] {message}")

    if coordinator is None:
        coordinator = VideoCoordinator(config=config)
    coordinator.on_progress = on_progress

    try:
        async with coordinator:
            result = await coordinator.generate_video(request)
        result = export_result(result, config.storage.output_dir, job_id)
    except VideoGenerationError as e:
        tracker.append_log(job_id, f"{type(e).__name__}: {e}")
        return tracker.fail(job_id, f"{type(e).__name__}: {e}")
    except Exception as e:
        logger.exception(f"Job {job_id} crashed")
        tracker.append_log(job_id, f"Unexpected error: {type(e).__name__}: {e}")
        return tracker.fail(job_id, f"{type(e).__name__}: {e}")
    finally:
        coordinator.scratch.cleanup()

    if result.is_partial:
        tracker.append_log(job_id, f"Partial result: {result.error}")
    tracker.append_log(
        job_id,
        f"Done: {result.duration_seconds}s from {result.provider.value} "
        f"(requested {result.requested_duration_seconds}s)",
    )
    return tracker.complete(job_id, result.to_dict())


def spawn_worker(job_id: str, jobs_dir: str) -> subprocess.Popen:
    """Start the worker script for a job in a detached process."""
    Path(jobs_dir).mkdir(parents=True, exist_ok=True)
    log_path = Path(jobs_dir) / f"{job_id}.log"
    env = dict(os.environ, VIDEO_JOBS_DIR=str(jobs_dir), VIDEO_JOB_ID=job_id)

    with open(log_path, "ab") as log_file:
        process = subprocess.Popen(
            [sys.executable, str(WORKER_SCRIPT), job_id],
            stdout=log_file,
            stderr=subprocess.STDOUT,
            env=env,
            start_new_session=True,
        )
    logger.info(f"Spawned worker pid {process.pid} for job {job_id} (log: {log_path})")
    return process


def persist_inline_images(request: GenerationRequest, scratch: ScratchArena) -> GenerationRequest:
    """Write byte-only images to the arena so the request survives a JSON round trip."""
    def persist(ref: Optional[ImageRef]) -> Optional[ImageRef]:
        if ref is None or ref.path or ref.data is None:
            return ref
        suffix = mimetypes.guess_extension(ref.mime_type or "") or ".png"
        path = scratch.write_bytes(ref.data, suffix=suffix, label="image")
        return ImageRef(path=str(path), mime_type=ref.mime_type)

    return replace(
        request,
        reference_images=tuple(persist(ref) for ref in request.reference_images),
        first_frame=persist(request.first_frame),
        last_frame=persist(request.last_frame),
    )


def enqueue_job(
    request: GenerationRequest,
    tracker: JobTracker,
    config: Optional[Config] = None,
    spawn: bool = True,
) -> Job:
    """
    Record a queued job and start its worker.

    Everything the parent writes goes into the record before the worker
    starts; afterwards only the worker updates the job.
    """
    config = config or get_config()
    request = persist_inline_images(request, ScratchArena(config.storage.scratch_dir, prefix="image"))
    job = tracker.create_job(request.to_config(), log="Queued")
    if spawn:
        spawn_worker(job.id, str(tracker.jobs_dir))
    return job
