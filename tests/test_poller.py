"""
OperationPoller tests.

Sleeps are injected so the bound on total waiting can be asserted exactly.
"""

import os
import sys

import httpx
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.video_generation.errors import GenerationFailedError, OperationTimeoutError
from services.video_generation.models import Operation, OperationState, ProviderName
from services.video_generation.poller import OperationPoller


class SleepRecorder:
    def __init__(self):
        self.sleeps = []

    async def __call__(self, seconds):
        self.sleeps.append(seconds)


def scripted_check(statuses):
    """Status check returning the given statuses in order (exceptions are raised)."""
    remaining = list(statuses)

    async def check(operation):
        status = remaining.pop(0)
        if isinstance(status, Exception):
            raise status
        return status

    return check


def is_done(status):
    return status["state"] in ("done", "failed")


def failure_of(status):
    return status.get("error") if status["state"] == "failed" else None


class TestOperationPoller:

    def setup_method(self):
        self.sleep = SleepRecorder()
        self.poller = OperationPoller(interval_seconds=10, max_attempts=4, sleep=self.sleep)

    def operation(self):
        return Operation.polled(ProviderName.AVATAR, "video-123")

    @pytest.mark.asyncio
    async def test_returns_extracted_result(self):
        operation = self.operation()
        check = scripted_check([{"state": "running"}, {"state": "done", "url": "https://cdn/v.mp4"}])

        result = await self.poller.wait(
            operation, check, is_done, extract=lambda s: s["url"], failure_of=failure_of
        )

        assert result == "https://cdn/v.mp4"
        assert operation.state == OperationState.DONE_SUCCESS
        assert operation.attempts == 2
        assert self.sleep.sleeps == [10]

    @pytest.mark.asyncio
    async def test_terminal_failure_raises_with_payload(self):
        operation = self.operation()
        check = scripted_check([{"state": "failed", "error": {"code": 400, "message": "bad script"}}])

        with pytest.raises(GenerationFailedError) as exc_info:
            await self.poller.wait(operation, check, is_done, extract=lambda s: s, failure_of=failure_of)

        assert exc_info.value.payload == {"code": 400, "message": "bad script"}
        assert exc_info.value.provider == "avatar"
        assert operation.state == OperationState.DONE_FAILURE
        assert self.sleep.sleeps == []

    @pytest.mark.asyncio
    async def test_timeout_is_bounded(self):
        operation = self.operation()
        check = scripted_check([{"state": "running"}] * 4)

        with pytest.raises(OperationTimeoutError) as exc_info:
            await self.poller.wait(operation, check, is_done, extract=lambda s: s)

        assert exc_info.value.token == "video-123"
        assert exc_info.value.attempts == 4
        assert operation.state == OperationState.TIMED_OUT
        # Sleeps only between attempts, never more than max_attempts * interval
        assert self.sleep.sleeps == [10, 10, 10]
        assert sum(self.sleep.sleeps) <= self.poller.ceiling_seconds

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self):
        poller = OperationPoller(interval_seconds=10, max_attempts=1, sleep=self.sleep)
        with pytest.raises(OperationTimeoutError):
            await poller.wait(self.operation(), scripted_check([{"state": "running"}]), is_done, lambda s: s)
        assert self.sleep.sleeps == []

    @pytest.mark.asyncio
    async def test_transient_errors_are_tolerated(self):
        operation = self.operation()
        check = scripted_check([
            httpx.ConnectError("reset"),
            {"state": "done", "url": "u"},
        ])

        result = await self.poller.wait(
            operation, check, is_done, extract=lambda s: s["url"],
            transient_errors=(httpx.TransportError,),
        )
        assert result == "u"

    @pytest.mark.asyncio
    async def test_too_many_transient_errors_propagate(self):
        poller = OperationPoller(interval_seconds=1, max_attempts=10, sleep=self.sleep, max_consecutive_errors=2)
        check = scripted_check([httpx.ConnectError("a"), httpx.ConnectError("b")])

        with pytest.raises(httpx.ConnectError):
            await poller.wait(
                self.operation(), check, is_done, lambda s: s,
                transient_errors=(httpx.TransportError,),
            )

    @pytest.mark.asyncio
    async def test_other_errors_propagate_immediately(self):
        check = scripted_check([RuntimeError("boom")])
        with pytest.raises(RuntimeError):
            await self.poller.wait(self.operation(), check, is_done, lambda s: s)
        assert self.sleep.sleeps == []

    @pytest.mark.asyncio
    async def test_subscribed_operations_are_not_polled(self):
        operation = Operation.subscribed(ProviderName.LONG_FORM, "https://cdn/v.mp4")
        assert operation.is_terminal
        with pytest.raises(ValueError):
            await self.poller.wait(operation, scripted_check([]), is_done, lambda s: s)

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            OperationPoller(max_attempts=0)
