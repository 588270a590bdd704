"""
Bounded polling for "submit, then repeatedly ask" providers.

The poller never sleeps after its final attempt, so a call returns or raises
within max_attempts * interval seconds of sleeping. A timeout is local only:
the remote job keeps running and its token is carried on the error.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .errors import GenerationFailedError, OperationTimeoutError
from .models import Operation, OperationKind, OperationState

logger = logging.getLogger(__name__)

StatusCheck = Callable[[Operation], Awaitable[Any]]


class OperationPoller:
    """
    Drive one polled Operation to a terminal state.

    Usage:
        poller = OperationPoller(interval_seconds=10, max_attempts=60)
        payload = await poller.wait(
            operation,
            check=adapter.check_status,
            is_done=lambda s: s.done,
            extract=lambda s: s.response,
            failure_of=lambda s: s.error,
        )
    """

    def __init__(
        self,
        interval_seconds: float = 10.0,
        max_attempts: int = 60,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        transient_errors: tuple = (),
        max_consecutive_errors: int = 3,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self.transient_errors = transient_errors
        self.max_consecutive_errors = max_consecutive_errors
        self._sleep = sleep

    @property
    def ceiling_seconds(self) -> float:
        return self.interval_seconds * self.max_attempts

    async def wait(
        self,
        operation: Operation,
        check: StatusCheck,
        is_done: Callable[[Any], bool],
        extract: Callable[[Any], Any],
        failure_of: Optional[Callable[[Any], Any]] = None,
        on_attempt: Optional[Callable[[int, int], None]] = None,
        transient_errors: Optional[tuple] = None,
    ) -> Any:
        """
        Poll until the operation is terminal.

        Args:
            operation: The polled operation; its attempts and state are updated in place
            check: Async status call returning the provider's raw status
            is_done: True once the status is terminal (success or failure)
            extract: Maps a successful terminal status to the result
            failure_of: Returns the provider error payload for a failed status, else None
            on_attempt: Called with (attempt, max_attempts) before each check
            transient_errors: Check errors tolerated up to max_consecutive_errors in a row

        Raises:
            GenerationFailedError: Provider reported a terminal failure
            OperationTimeoutError: No terminal state within max_attempts
        """
        if operation.kind != OperationKind.POLLED:
            raise ValueError(f"Cannot poll a {operation.kind.value} operation")
        if operation.is_terminal:
            raise ValueError(f"Operation already {operation.state.value}")

        provider = operation.provider.value
        label = getattr(operation.token, "name", None) or operation.token
        consecutive_errors = 0
        tolerated = self.transient_errors if transient_errors is None else transient_errors

        for attempt in range(1, self.max_attempts + 1):
            operation.attempts = attempt
            if on_attempt:
                on_attempt(attempt, self.max_attempts)

            try:
                status = await check(operation)
                consecutive_errors = 0
            except tolerated as e:
                consecutive_errors += 1
                logger.warning(
                    f"{provider} status check failed (attempt {attempt}, "
                    f"{consecutive_errors} in a row): {type(e).__name__}: {e}"
                )
                if consecutive_errors >= self.max_consecutive_errors:
                    operation.state = OperationState.DONE_FAILURE
                    raise
                status = None

            if status is not None and is_done(status):
                failure = failure_of(status) if failure_of else None
                if failure:
                    operation.state = OperationState.DONE_FAILURE
                    logger.error(f"{provider} operation {label} failed: {failure}")
                    raise GenerationFailedError(
                        f"{provider} generation failed: {failure}",
                        provider=provider,
                        payload=failure,
                    )
                operation.state = OperationState.DONE_SUCCESS
                logger.info(f"{provider} operation {label} completed after {attempt} check(s)")
                return extract(status)

            if attempt < self.max_attempts:
                await self._sleep(self.interval_seconds)

        operation.state = OperationState.TIMED_OUT
        logger.warning(
            f"{provider} operation {label} not done after {self.max_attempts} checks "
            f"({self.ceiling_seconds:.0f}s); remote job left running"
        )
        raise OperationTimeoutError(
            f"{provider} operation did not complete within {self.ceiling_seconds:.0f} seconds",
            provider=provider,
            token=operation.token,
            attempts=self.max_attempts,
        )
