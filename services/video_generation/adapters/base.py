"""
Provider adapter base class.

Every backend exposes the same surface (submit, extend, poll_or_await,
materialize_uri) so callers never branch on how a provider completes.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Callable, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.circuit_breaker import CircuitBreaker, CircuitBreakerOpen, get_provider_breaker
from core.config import Config, Credentials, get_config

from ..errors import ProviderUnavailableError
from ..models import FinalPayload, GenerationRequest, MaterializedUri, ProviderName, Submission
from ..poller import OperationPoller
from ..scratch import ScratchArena

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """Uniform surface over one video generation backend."""

    name: ProviderName
    supports_extension: bool = False

    def __init__(
        self,
        credentials: Credentials,
        config: Optional[Config] = None,
        poller: Optional[OperationPoller] = None,
        scratch: Optional[ScratchArena] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.config = config or get_config()
        self.credentials = credentials
        self.poller = poller or OperationPoller(
            interval_seconds=self.config.polling.interval_seconds,
            max_attempts=self.config.polling.max_attempts,
        )
        self.scratch = scratch or ScratchArena(self.config.storage.scratch_dir)
        self.breaker = breaker or get_provider_breaker(self.name.value)
        self._http_client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------
    # Availability and resources
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def api_key(self) -> str:
        """The credential this provider needs."""

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def ensure_available(self):
        if not self.available:
            raise ProviderUnavailableError(
                f"{self.name.value} provider has no API key configured",
                provider=self.name.value,
            )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=600.0)
        return self._http_client

    async def close(self):
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _guarded(self, func: Callable, *args, **kwargs) -> Any:
        """Run a submission through this provider's circuit breaker."""
        self.ensure_available()
        try:
            return await self.breaker.call(func, *args, **kwargs)
        except CircuitBreakerOpen as e:
            raise ProviderUnavailableError(
                f"{self.name.value} provider is failing; retry after {e.retry_after:.1f}s",
                provider=self.name.value,
            ) from e

    # ------------------------------------------------------------------
    # Generation surface
    # ------------------------------------------------------------------

    async def submit(self, prompt: str, request: GenerationRequest) -> Submission:
        """Start one generation; the result may still need polling."""
        self.check_request(prompt, request)
        return await self._guarded(self._submit, prompt, request)

    async def extend(self, previous_handle: Any, prompt: str, request: GenerationRequest) -> Submission:
        """Continue a previous clip. Only short-clip providers support this."""
        if not self.supports_extension:
            raise NotImplementedError(f"{self.name.value} provider does not support extension")
        if previous_handle is None:
            raise ValueError("A previous clip handle is required for extension")
        return await self._guarded(self._extend, previous_handle, prompt, request)

    async def poll_or_await(
        self,
        submission: Submission,
        on_attempt: Optional[Callable[[int, int], None]] = None,
    ) -> FinalPayload:
        """Resolve a submission into its final payload."""
        if submission.is_resolved:
            return submission.payload
        return await self._poll(submission, on_attempt)

    async def materialize_uri(self, payload: FinalPayload) -> MaterializedUri:
        """Locate the final bytes. The default trusts the payload as-is."""
        return MaterializedUri(video_url=payload.video_url, local_path=payload.local_path)

    async def generate(
        self,
        prompt: str,
        request: GenerationRequest,
        previous_handle: Any = None,
        on_attempt: Optional[Callable[[int, int], None]] = None,
    ) -> FinalPayload:
        """Submit (or extend), wait for completion and locate the output."""
        if previous_handle is not None:
            submission = await self.extend(previous_handle, prompt, request)
        else:
            submission = await self.submit(prompt, request)
        payload = await self.poll_or_await(submission, on_attempt)
        uri = await self.materialize_uri(payload)
        return replace(payload, video_url=uri.video_url, local_path=uri.local_path)

    def check_request(self, prompt: str, request: GenerationRequest):
        """Reject requests this provider cannot serve before anything is sent."""

    @abstractmethod
    async def _submit(self, prompt: str, request: GenerationRequest) -> Submission:
        ...

    async def _extend(self, previous_handle: Any, prompt: str, request: GenerationRequest) -> Submission:
        raise NotImplementedError

    async def _poll(self, submission: Submission, on_attempt) -> FinalPayload:
        raise NotImplementedError(f"{self.name.value} provider does not poll")

    # ------------------------------------------------------------------
    # Shared download helper
    # ------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=60),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _fetch_bytes(self, url: str) -> bytes:
        client = await self._get_client()
        response = await client.get(url, follow_redirects=True)
        response.raise_for_status()
        return response.content

    async def download_to_scratch(self, url: str, label: Optional[str] = None) -> str:
        """Download a hosted video into the scratch arena and return its path."""
        data = await self._fetch_bytes(url)
        path = self.scratch.write_bytes(data, suffix=".mp4", label=label or self.name.value)
        logger.info(f"Video downloaded: {path} ({len(data) / 1024 / 1024:.1f} MB)")
        return str(path)
