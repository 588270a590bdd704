"""
Job tracker and worker tests.

Run with:
    python -m pytest tests/test_job_tracker.py -v
"""

import json
import os
import sys
import threading
import time
from unittest.mock import MagicMock, patch

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.video_generation.coordinator import VideoCoordinator
from services.video_generation.job_tracker import JobNotFoundError, JobStatus, JobTracker
from services.video_generation.models import FinalPayload, GenerationRequest, ImageRef, ProviderName, Submission
from services.video_generation.worker import WORKER_SCRIPT, enqueue_job, run_job, spawn_worker


class TestJobTracker:

    def setup_method(self):
        self.request = GenerationRequest(prompt="Data dashboard", duration_seconds=30).to_config()

    def test_create_and_get(self, tmp_path):
        tracker = JobTracker(str(tmp_path))
        job = tracker.create_job(self.request)

        loaded = tracker.get_job(job.id)
        assert loaded.status == JobStatus.QUEUED
        assert loaded.request["prompt"] == "Data dashboard"
        assert (tmp_path / f"{job.id}.json").exists()
        assert not list(tmp_path.glob(".*.tmp"))

    def test_duplicate_id_rejected(self, tmp_path):
        tracker = JobTracker(str(tmp_path))
        tracker.create_job(self.request, job_id="job-1")
        with pytest.raises(ValueError):
            tracker.create_job(self.request, job_id="job-1")

    def test_unknown_job(self, tmp_path):
        with pytest.raises(JobNotFoundError):
            JobTracker(str(tmp_path)).get_job("missing")

    @pytest.mark.parametrize("job_id", ["../escape", ".hidden", ""])
    def test_rejects_unsafe_ids(self, tmp_path, job_id):
        with pytest.raises(ValueError):
            JobTracker(str(tmp_path)).get_job(job_id)

    def test_lifecycle(self, tmp_path):
        tracker = JobTracker(str(tmp_path))
        job = tracker.create_job(self.request)

        running = tracker.mark_running(job.id, pid=1234)
        assert running.status == JobStatus.RUNNING
        assert running.pid == 1234
        assert running.started_at is not None

        done = tracker.complete(job.id, {"durationSeconds": 36})
        assert done.is_finished
        assert done.result == {"durationSeconds": 36}
        assert done.finished_at is not None

    def test_fail_records_error(self, tmp_path):
        tracker = JobTracker(str(tmp_path))
        job = tracker.create_job(self.request)

        failed = tracker.fail(job.id, "GenerationFailedError: quota")
        assert failed.status == JobStatus.ERROR
        assert failed.error == "GenerationFailedError: quota"

    def test_log_is_capped(self, tmp_path):
        tracker = JobTracker(str(tmp_path), max_log_lines=3)
        job = tracker.create_job(self.request)

        for i in range(5):
            tracker.append_log(job.id, f"line {i}")

        logs = tracker.get_job(job.id).logs
        assert len(logs) == 3
        assert logs[-1].endswith("line 4")
        assert logs[0].startswith("[")

    def test_list_jobs_filters_by_status(self, tmp_path):
        tracker = JobTracker(str(tmp_path))
        first = tracker.create_job(self.request)
        second = tracker.create_job(self.request)
        tracker.complete(second.id, {})

        assert {job.id for job in tracker.list_jobs()} == {first.id, second.id}
        assert [job.id for job in tracker.list_jobs(JobStatus.COMPLETED)] == [second.id]
        assert JobTracker(str(tmp_path / "none")).list_jobs() == []

    def test_record_is_plain_json(self, tmp_path):
        tracker = JobTracker(str(tmp_path))
        job = tracker.create_job(self.request)
        with open(tmp_path / f"{job.id}.json") as f:
            data = json.load(f)
        assert data["status"] == "queued"
        assert data["request"]["duration_seconds"] == 30

    def test_create_with_first_log_line(self, tmp_path):
        tracker = JobTracker(str(tmp_path))
        job = tracker.create_job(self.request, log="Queued")

        logs = tracker.get_job(job.id).logs
        assert len(logs) == 1
        assert logs[0].endswith("] Queued")

    def test_concurrent_updates_are_not_lost(self, tmp_path):
        writer = JobTracker(str(tmp_path))
        job = writer.create_job(self.request)
        other = threading.Thread(target=JobTracker(str(tmp_path)).mark_running, args=(job.id, 4321))

        def slow_append(record):
            # The other tracker tries to write while this update is in flight
            other.start()
            time.sleep(0.2)
            record.logs.append("appended while another writer waited")

        writer.update_job(job.id, slow_append)
        other.join(timeout=10)

        final = writer.get_job(job.id)
        assert final.status == JobStatus.RUNNING
        assert final.pid == 4321
        assert "appended while another writer waited" in final.logs

    def test_lock_files_are_not_listed_as_jobs(self, tmp_path):
        tracker = JobTracker(str(tmp_path))
        job = tracker.create_job(self.request)
        tracker.append_log(job.id, "touch")

        assert [j.id for j in tracker.list_jobs()] == [job.id]


class TestRunJob:

    @pytest.mark.asyncio
    async def test_completes_with_result(self, config, credentials, fake_adapters):
        tracker = JobTracker(config.storage.jobs_dir)
        job = tracker.create_job(GenerationRequest(prompt="Dashboard", duration_seconds=30).to_config())
        coordinator = VideoCoordinator(config=config, credentials=credentials, adapters=fake_adapters)

        finished = await run_job(job.id, tracker, coordinator=coordinator, config=config)

        assert finished.status == JobStatus.COMPLETED
        assert finished.result["durationSeconds"] == 36
        assert finished.result["requestedDurationSeconds"] == 30
        assert len(finished.result["clips"]) == 5
        assert any("%]" in line for line in finished.logs)
        assert all(adapter.closed for adapter in fake_adapters.values())

    @pytest.mark.asyncio
    async def test_partial_chain_completes_with_error_annotation(self, config, credentials, make_adapter):
        tracker = JobTracker(config.storage.jobs_dir)
        job = tracker.create_job(GenerationRequest(prompt="Dashboard", duration_seconds=30).to_config())
        adapters = {ProviderName.SHORT_CLIP: make_adapter(ProviderName.SHORT_CLIP, fail_on={2})}
        coordinator = VideoCoordinator(config=config, credentials=credentials, adapters=adapters)

        finished = await run_job(job.id, tracker, coordinator=coordinator, config=config)

        assert finished.status == JobStatus.COMPLETED
        assert finished.result["durationSeconds"] == 15
        assert "segment 2" in finished.result["error"]
        assert any("Partial result" in line for line in finished.logs)

    @pytest.mark.asyncio
    async def test_generation_error_fails_job(self, config, credentials, make_adapter):
        tracker = JobTracker(config.storage.jobs_dir)
        job = tracker.create_job(GenerationRequest(prompt="Skyline", duration_seconds=300).to_config())
        adapters = {ProviderName.LONG_FORM: make_adapter(ProviderName.LONG_FORM, available=False)}
        coordinator = VideoCoordinator(config=config, credentials=credentials, adapters=adapters)

        finished = await run_job(job.id, tracker, coordinator=coordinator, config=config)

        assert finished.status == JobStatus.ERROR
        assert finished.error.startswith("ProviderUnavailableError")

    @pytest.mark.asyncio
    async def test_invalid_request_record_fails_job(self, config, fake_adapters, credentials):
        tracker = JobTracker(config.storage.jobs_dir)
        job = tracker.create_job({"prompt": "x", "aspect_ratio": "4:5"})
        coordinator = VideoCoordinator(config=config, credentials=credentials, adapters=fake_adapters)

        finished = await run_job(job.id, tracker, coordinator=coordinator, config=config)

        assert finished.status == JobStatus.ERROR
        assert finished.error.startswith("Invalid request")

    @pytest.mark.asyncio
    async def test_local_output_is_exported_and_scratch_cleaned(self, config, credentials, make_adapter):
        tracker = JobTracker(config.storage.jobs_dir)
        job = tracker.create_job(GenerationRequest(prompt="Skyline", duration_seconds=300).to_config())
        adapter = make_adapter(ProviderName.LONG_FORM, duration_seconds=300)
        coordinator = VideoCoordinator(config=config, credentials=credentials, adapters={ProviderName.LONG_FORM: adapter})
        scratch_files = []

        async def download_into_scratch(prompt, request):
            path = coordinator.scratch.write_bytes(b"long-video", label="longcat")
            scratch_files.append(path)
            return Submission(
                provider=ProviderName.LONG_FORM,
                payload=FinalPayload(provider=ProviderName.LONG_FORM, local_path=str(path), duration_seconds=300),
            )

        adapter._submit = download_into_scratch

        finished = await run_job(job.id, tracker, coordinator=coordinator, config=config)

        assert finished.status == JobStatus.COMPLETED
        exported = finished.result["localPath"]
        assert exported.startswith(os.path.join(config.storage.output_dir, job.id))
        with open(exported, "rb") as f:
            assert f.read() == b"long-video"
        assert not scratch_files[0].exists()

    @pytest.mark.asyncio
    async def test_described_inline_image_fails_job(self, config, credentials, fake_adapters):
        tracker = JobTracker(config.storage.jobs_dir)
        job = tracker.create_job({"prompt": "Logo reveal", "first_frame": "<2048 bytes>"})
        coordinator = VideoCoordinator(config=config, credentials=credentials, adapters=fake_adapters)

        finished = await run_job(job.id, tracker, coordinator=coordinator, config=config)

        assert finished.status == JobStatus.ERROR
        assert "Inline image bytes" in finished.error
        assert fake_adapters[ProviderName.SHORT_CLIP].calls == []


class TestSpawnWorker:

    def test_starts_detached_worker_script(self, tmp_path):
        with patch("services.video_generation.worker.subprocess.Popen") as popen:
            popen.return_value = MagicMock(pid=4242)
            process = spawn_worker("job-1", str(tmp_path))

        assert process.pid == 4242
        args, kwargs = popen.call_args
        assert args[0] == [sys.executable, str(WORKER_SCRIPT), "job-1"]
        assert kwargs["env"]["VIDEO_JOB_ID"] == "job-1"
        assert kwargs["env"]["VIDEO_JOBS_DIR"] == str(tmp_path)
        assert kwargs["start_new_session"] is True
        assert (tmp_path / "job-1.log").exists()

    def test_worker_script_exists(self):
        assert WORKER_SCRIPT.is_file()
        assert WORKER_SCRIPT.name == "run_video_job.py"


class TestEnqueueJob:

    def test_record_is_written_before_worker_starts(self, config):
        tracker = JobTracker(config.storage.jobs_dir)
        seen_by_worker = []

        def fake_popen(argv, **kwargs):
            seen_by_worker.append(tracker.get_job(argv[-1]))
            return MagicMock(pid=77)

        with patch("services.video_generation.worker.subprocess.Popen", side_effect=fake_popen):
            job = enqueue_job(GenerationRequest(prompt="Dashboard", duration_seconds=30), tracker, config=config)

        assert len(seen_by_worker) == 1
        assert seen_by_worker[0].status == JobStatus.QUEUED
        assert seen_by_worker[0].logs[-1].endswith("Queued")
        # The parent leaves the record to the worker once it has started
        assert tracker.get_job(job.id) == seen_by_worker[0]

    def test_no_spawn_only_queues(self, config):
        tracker = JobTracker(config.storage.jobs_dir)
        with patch("services.video_generation.worker.subprocess.Popen") as popen:
            job = enqueue_job(GenerationRequest(prompt="Dashboard"), tracker, config=config, spawn=False)

        popen.assert_not_called()
        assert tracker.get_job(job.id).status == JobStatus.QUEUED

    def test_inline_image_bytes_are_persisted(self, config):
        tracker = JobTracker(config.storage.jobs_dir)
        image = b"\x89PNG\r\n\x1a\nfake-image"
        request = GenerationRequest(
            prompt="Logo reveal",
            first_frame=ImageRef(data=image, mime_type="image/png"),
            reference_images=(ImageRef(url="https://cdn.example.com/style.jpg"),),
        )

        job = enqueue_job(request, tracker, config=config, spawn=False)

        stored = tracker.get_job(job.id).request
        assert stored["first_frame"].startswith(config.storage.scratch_dir)
        assert stored["first_frame"].endswith(".png")
        assert stored["reference_images"] == ["https://cdn.example.com/style.jpg"]

        restored = GenerationRequest.from_dict(stored)
        assert restored.first_frame.load_bytes() == image
        assert restored.reference_images[0].is_remote
