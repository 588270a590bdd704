"""
Video Coordinator

The single entry point for video generation. Validates a request, selects a
provider, runs a scene chain or a single call, and normalizes the outcome
into a VideoResult.

Errors propagate unwrapped, except a chain that stops after its base clip:
that comes back as a VideoResult with `error` set so the partial asset can
still be persisted.
"""

import logging
from typing import Any, Callable, Mapping, Optional

from core.config import Config, Credentials, get_config

from .adapters import HeyGenAdapter, LongCatAdapter, ProviderAdapter, VeoAdapter
from .errors import InvalidRequestError
from .materializer import ResultMaterializer
from .models import GenerationMode, GenerationRequest, ProviderName, VideoResult
from .poller import OperationPoller
from .scene_chain import SceneChainDriver
from .scratch import ScratchArena
from .selector import ProviderSelector

logger = logging.getLogger(__name__)


class VideoCoordinator:
    """
    Façade over selection, chaining, polling and materialization.

    Usage:
        async with VideoCoordinator(on_progress=print) as coordinator:
            result = await coordinator.generate_video(
                GenerationRequest(prompt="Data dashboard comes alive", duration_seconds=30)
            )
            print(result.duration_seconds)  # 36: the chain rounds up to 8 + 7n
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        credentials: Optional[Credentials] = None,
        adapters: Optional[Mapping[ProviderName, ProviderAdapter]] = None,
        on_progress: Optional[Callable[[str, int, str], None]] = None,
        scratch: Optional[ScratchArena] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            config: Optional config override
            credentials: Provider keys; read from config when omitted
            adapters: Adapter per provider; the real adapters are built when omitted
            on_progress: Callback for progress updates (request_id, percent, message)
            scratch: Arena for downloaded clips
        """
        self.config = config or get_config()
        self.credentials = credentials or self.config.credentials()
        self.on_progress = on_progress
        self.scratch = scratch or ScratchArena(self.config.storage.scratch_dir)

        if adapters is None:
            adapters = self._build_adapters()
        self.adapters = dict(adapters)

        self.selector = ProviderSelector(
            self.adapters,
            long_form_threshold_seconds=self.config.long_form_threshold_seconds,
            base_clip_seconds=self.config.short_clip.base_clip_seconds,
        )
        self.materializer = ResultMaterializer()

    def _build_adapters(self) -> dict[ProviderName, ProviderAdapter]:
        poller = OperationPoller(
            interval_seconds=self.config.polling.interval_seconds,
            max_attempts=self.config.polling.max_attempts,
        )
        common = dict(config=self.config, poller=poller, scratch=self.scratch)
        return {
            ProviderName.SHORT_CLIP: VeoAdapter(self.credentials, **common),
            ProviderName.LONG_FORM: LongCatAdapter(self.credentials, **common),
            ProviderName.AVATAR: HeyGenAdapter(self.credentials, **common),
        }

    async def __aenter__(self) -> "VideoCoordinator":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        """Close adapter clients and evict stale scratch files."""
        for adapter in self.adapters.values():
            await adapter.close()
        max_age = self.config.storage.scratch_max_age_seconds
        if max_age and max_age > 0:
            self.scratch.evict(max_age)

    def _emit_progress(self, request_id: str, percent: int, message: str):
        """Emit progress update via callback."""
        if self.on_progress:
            try:
                self.on_progress(request_id, percent, message)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    def validate(self, request: GenerationRequest):
        """
        Check request bounds and mode/provider compatibility.

        Raises:
            InvalidRequestError: If the request can never be served
        """
        prompt = request.prompt or ""
        if not prompt.strip() and not (request.mode == GenerationMode.AVATAR and request.script):
            raise InvalidRequestError("Prompt must not be empty")

        low, high = self.config.min_duration_seconds, self.config.max_duration_seconds
        if not low <= request.duration_seconds <= high:
            raise InvalidRequestError(
                f"Duration must be between {low} and {high} seconds, got {request.duration_seconds}"
            )

        if len(request.reference_images) > self.config.max_reference_images:
            raise InvalidRequestError(
                f"At most {self.config.max_reference_images} reference images are supported, "
                f"got {len(request.reference_images)}"
            )

        if request.mode == GenerationMode.FACELESS and request.explicit_provider == ProviderName.AVATAR:
            raise InvalidRequestError(
                "Faceless mode cannot use the avatar provider",
                provider=ProviderName.AVATAR.value,
            )

        chain_limit = self.config.short_clip.max_chain_seconds
        if (
            request.mode == GenerationMode.FACELESS
            and request.explicit_provider == ProviderName.SHORT_CLIP
            and request.duration_seconds > chain_limit
        ):
            raise InvalidRequestError(
                f"The short-clip provider chains at most {chain_limit}s; "
                f"got {request.duration_seconds}s (use the long-form provider instead)",
                provider=ProviderName.SHORT_CLIP.value,
            )

    async def generate_video(self, request: GenerationRequest) -> VideoResult:
        """
        Generate a video for the request.

        Returns:
            VideoResult; `error` is set when a scene chain stopped early
        """
        request_id = request.request_id
        self.validate(request)
        selection = self.selector.select(request)

        self._emit_progress(
            request_id, 5, f"Selected {selection.provider.value} ({selection.strategy.value})"
        )

        if selection.is_chained:
            driver = SceneChainDriver(
                max_extensions=self.config.short_clip.max_extensions,
                on_progress=lambda percent, message: self._emit_progress(request_id, percent, message),
            )
            outcome = await driver.run(selection.adapter, request)
            result = self.materializer.materialize(
                outcome.clips, request, selection, error=outcome.failure
            )
        else:
            self._emit_progress(request_id, 10, f"Submitting to {selection.provider.value}")

            def on_attempt(attempt: int, total: int):
                percent = min(20 + attempt * 70 // total, 90)
                self._emit_progress(request_id, percent, f"Waiting for {selection.provider.value} ({attempt}/{total})")

            payload = await selection.adapter.generate(request.prompt, request, on_attempt=on_attempt)
            result = self.materializer.materialize(payload, request, selection)

        if result.is_partial:
            self._emit_progress(request_id, 100, f"Partial result: {result.error}")
            logger.warning(
                f"Request {request_id}: partial {result.duration_seconds}s of "
                f"{result.requested_duration_seconds}s requested"
            )
        else:
            self._emit_progress(request_id, 100, f"Generation complete ({result.duration_seconds}s)")
            logger.info(
                f"Request {request_id}: {result.provider.value} produced {result.duration_seconds}s "
                f"(requested {result.requested_duration_seconds}s)"
            )
        return result

    def get_provider_info(self) -> dict[str, dict[str, Any]]:
        """Capabilities and availability of each provider."""
        short = self.config.short_clip
        long_form = self.config.long_form

        def is_available(name: ProviderName) -> bool:
            adapter = self.adapters.get(name)
            return bool(adapter and adapter.available)

        return {
            ProviderName.SHORT_CLIP.value: {
                "name": "Veo 3.1",
                "model": short.model,
                "available": is_available(ProviderName.SHORT_CLIP),
                "min_duration": short.base_clip_seconds,
                "max_duration": short.max_chain_seconds,
                "base_duration": short.base_clip_seconds,
                "extension_duration": short.extension_seconds,
                "max_extensions": short.max_extensions,
                "aspect_ratios": ["16:9", "9:16", "1:1"],
                "resolutions": ["720p", "1080p"],
                "features": ["reference images", "first/last frame", "scene extension"],
            },
            ProviderName.LONG_FORM.value: {
                "name": "LongCat (fal.ai)",
                "model": long_form.text_to_video_model,
                "available": is_available(ProviderName.LONG_FORM),
                "min_duration": 1,
                "max_duration": long_form.max_duration_seconds,
                "fps": long_form.fps,
                "aspect_ratios": ["16:9", "9:16", "1:1", "4:3", "3:4"],
                "resolutions": ["720p"],
                "features": ["text-to-video", "image-to-video"],
            },
            ProviderName.AVATAR.value: {
                "name": "HeyGen",
                "available": is_available(ProviderName.AVATAR),
                "default_avatar": self.config.avatar.default_avatar_id,
                "aspect_ratios": ["16:9", "9:16", "1:1"],
                "resolutions": ["720p", "1080p"],
                "features": ["talking avatar", "text-to-speech voice"],
            },
        }
