#!/usr/bin/env python3
"""
Video Job Worker

Runs one queued video generation job in its own process and records the
outcome in the job's JSON record.

Usage:
    python scripts/run_video_job.py <job_id>
    VIDEO_JOB_ID=<job_id> python scripts/run_video_job.py
"""

import argparse
import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import get_config  # noqa: E402
from services.video_generation.job_tracker import JobNotFoundError, JobStatus, JobTracker  # noqa: E402
from services.video_generation.worker import run_job  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("video-worker")


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a queued video generation job")
    parser.add_argument("job_id", nargs="?", default=os.getenv("VIDEO_JOB_ID"), help="Job ID to run")
    args = parser.parse_args()

    if not args.job_id:
        parser.error("job_id is required (argument or VIDEO_JOB_ID)")

    config = get_config()
    tracker = JobTracker(config.storage.jobs_dir, max_log_lines=config.storage.max_job_log_lines)

    try:
        job = asyncio.run(run_job(args.job_id, tracker, config=config))
    except JobNotFoundError:
        logger.error(f"Job {args.job_id} not found in {config.storage.jobs_dir}")
        return 2

    logger.info(f"Job {job.id} finished with status {job.status.value}")
    return 0 if job.status == JobStatus.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(main())
