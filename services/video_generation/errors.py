"""Error taxonomy for the video generation layer."""

from typing import Any, Optional


class VideoGenerationError(Exception):
    """Raised when video generation fails."""

    def __init__(self, message: str, error_code: str = None, provider: str = None):
        self.error_code = error_code
        self.provider = provider
        super().__init__(message)


class InvalidRequestError(VideoGenerationError):
    """The request violates a duration, mode or provider constraint."""

    def __init__(self, message: str, provider: str = None):
        super().__init__(message, error_code="INVALID_REQUEST", provider=provider)


class ProviderUnavailableError(VideoGenerationError):
    """The provider needed for the selected strategy cannot be used (no key, breaker open)."""

    def __init__(self, message: str, provider: str = None):
        super().__init__(message, error_code="PROVIDER_UNAVAILABLE", provider=provider)


class OperationTimeoutError(VideoGenerationError):
    """
    The local polling ceiling was reached.

    The remote job may still be running; callers may retry later.
    """

    def __init__(self, message: str, provider: str = None, token: Any = None, attempts: int = 0):
        self.token = token
        self.attempts = attempts
        super().__init__(message, error_code="POLL_TIMEOUT", provider=provider)


class GenerationFailedError(VideoGenerationError):
    """The provider reported a terminal failure for one call."""

    def __init__(self, message: str, provider: str = None, payload: Any = None):
        self.payload = payload
        super().__init__(message, error_code="GENERATION_FAILED", provider=provider)


class PartialChainFailure(VideoGenerationError):
    """
    A scene chain stopped early; the clips generated before it are usable.

    Returned (not raised) by the coordinator as a VideoResult annotation.
    """

    def __init__(
        self,
        segment_index: int,
        accumulated_duration: int,
        cause: Optional[BaseException] = None,
        provider: str = None,
    ):
        self.segment_index = segment_index
        self.accumulated_duration = accumulated_duration
        self.cause = cause
        reason = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown error"
        super().__init__(
            f"Scene chain stopped at segment {segment_index} "
            f"after {accumulated_duration}s of completed video ({reason})",
            error_code="PARTIAL_CHAIN",
            provider=provider,
        )
