"""
Scene chaining for the short-clip provider.

A requested duration becomes one 8 second base clip followed by 7 second
extensions, each generated from the previous clip's provider handle. Steps
are strictly sequential. A failure after the base clip stops the chain and
keeps every clip produced so far.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Optional

from .adapters.base import ProviderAdapter
from .errors import PartialChainFailure
from .models import Clip, ClipStatus, GenerationMode, GenerationRequest

logger = logging.getLogger(__name__)

BASE_CLIP_SECONDS = 8
EXTENSION_SECONDS = 7
MAX_EXTENSIONS = 20


FACELESS_SCENE_VARIATIONS = [
    "Camera orbits around the visual elements with dynamic lighting transitions",
    "Zoom into key data points revealing intricate details and patterns",
    "Visual elements reorganize and transform with smooth animated transitions",
    "Camera pulls back to reveal full scene with enhanced lighting effects",
    "Data elements pulse and animate with synchronized motion",
    "Cinematic rotation showcasing different angles and perspectives",
    "Volumetric lighting reveals hidden layers and depth",
    "Elements coalesce and disperse in fluid choreographed motion",
]

AVATAR_SCENE_VARIATIONS = [
    "Camera slowly pushes in to medium close-up, maintaining eye contact and professional framing",
    "Subtle camera dolly right revealing more of the background environment",
    "Camera pulls back to medium wide shot showing full upper body and gestures",
    "Slight camera tilt up with natural subject movement and confident delivery",
    "Camera slowly pans left while subject maintains engagement with viewer",
    "Gentle camera push in to close-up emphasizing facial expressions and sincerity",
    "Camera arc right to slightly off-center angle adding dynamic visual interest",
    "Slow zoom out revealing professional office setting with subject centered",
]


def extension_count(
    duration_seconds: int,
    base_seconds: int = BASE_CLIP_SECONDS,
    extension_seconds: int = EXTENSION_SECONDS,
    max_extensions: int = MAX_EXTENSIONS,
) -> int:
    """Extensions needed to reach duration_seconds, capped at max_extensions."""
    if duration_seconds <= base_seconds:
        return 0
    return min(math.ceil((duration_seconds - base_seconds) / extension_seconds), max_extensions)


def chain_duration(
    completed_extensions: int,
    base_seconds: int = BASE_CLIP_SECONDS,
    extension_seconds: int = EXTENSION_SECONDS,
) -> int:
    return base_seconds + extension_seconds * completed_extensions


def build_scene_prompts(
    base_prompt: str,
    duration_seconds: int,
    mode: GenerationMode = GenerationMode.FACELESS,
) -> list[str]:
    """
    Auto-generate one extension prompt per needed extension.

    Each prompt is the base prompt followed by a camera/motion variation;
    variations cycle when more extensions are needed than phrases exist.
    """
    variations = AVATAR_SCENE_VARIATIONS if GenerationMode(mode) == GenerationMode.AVATAR else FACELESS_SCENE_VARIATIONS
    count = extension_count(duration_seconds)
    base = base_prompt.strip()
    return [f"{base} {variations[i % len(variations)]}." for i in range(count)]


@dataclass
class ChainOutcome:
    """Clips produced by a chain, plus the failure that stopped it early (if any)."""
    clips: list[Clip] = field(default_factory=list)
    failure: Optional[PartialChainFailure] = None
    requested_extensions: int = 0

    @property
    def completed_extensions(self) -> int:
        return max(len(self.clips) - 1, 0)

    @property
    def duration_seconds(self) -> int:
        return chain_duration(self.completed_extensions) if self.clips else 0

    @property
    def is_complete(self) -> bool:
        return self.failure is None


class SceneChainDriver:
    """
    Runs a base clip plus extensions against a single extendable adapter.

    Usage:
        driver = SceneChainDriver(on_progress=lambda pct, msg: ...)
        outcome = await driver.run(veo_adapter, request)
    """

    def __init__(
        self,
        max_extensions: int = MAX_EXTENSIONS,
        on_progress: Optional[Callable[[int, str], None]] = None,
    ):
        self.max_extensions = max_extensions
        self.on_progress = on_progress

    def _emit(self, step: int, total: int, message: str):
        if self.on_progress:
            # Chain progress spans 10..90; materialization owns the rest
            percent = 10 + int(80 * step / max(total, 1))
            try:
                self.on_progress(percent, message)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    @staticmethod
    def prompt_for_step(request: GenerationRequest, step: int) -> str:
        """Prompt for extension `step` (1-based), falling back to the main prompt."""
        if step - 1 < len(request.extension_prompts) and request.extension_prompts[step - 1]:
            return request.extension_prompts[step - 1]
        return request.prompt

    async def run(self, adapter: ProviderAdapter, request: GenerationRequest) -> ChainOutcome:
        if not adapter.supports_extension:
            raise ValueError(f"{adapter.name.value} provider cannot be chained")

        extensions = extension_count(request.duration_seconds, max_extensions=self.max_extensions)
        total_steps = extensions + 1
        outcome = ChainOutcome(requested_extensions=extensions)

        logger.info(
            f"Scene chain: {request.duration_seconds}s requested -> base clip + {extensions} extension(s) "
            f"= {chain_duration(extensions)}s"
        )

        # Base clip failures propagate: there is nothing partial to keep
        self._emit(0, total_steps, "Generating base clip")
        payload = await adapter.generate(request.prompt, request)
        outcome.clips.append(self._clip(0, request.prompt, payload, BASE_CLIP_SECONDS))

        for step in range(1, total_steps):
            prompt = self.prompt_for_step(request, step)
            previous = outcome.clips[-1]
            self._emit(step, total_steps, f"Extending scene {step}/{extensions}")

            try:
                payload = await adapter.generate(prompt, request, previous_handle=previous.provider_handle)
            except Exception as e:
                accumulated = chain_duration(outcome.completed_extensions)
                outcome.failure = PartialChainFailure(
                    segment_index=step,
                    accumulated_duration=accumulated,
                    cause=e,
                    provider=adapter.name.value,
                )
                logger.error(f"{outcome.failure}; keeping {len(outcome.clips)} completed clip(s)")
                return outcome

            outcome.clips.append(self._clip(step, prompt, payload, EXTENSION_SECONDS))
            logger.info(f"Scene {step}/{extensions} complete ({outcome.duration_seconds}s so far)")

        self._emit(total_steps, total_steps, f"Chain complete: {outcome.duration_seconds}s")
        return outcome

    @staticmethod
    def _clip(index: int, prompt: str, payload, duration_seconds: int) -> Clip:
        return Clip(
            index=index,
            prompt=prompt,
            provider_handle=payload.provider_handle,
            duration_seconds=duration_seconds,
            source_uri=payload.local_path or payload.video_url,
            status=ClipStatus.COMPLETED,
            video_url=payload.video_url,
            local_path=payload.local_path,
        )
