"""
Provider selection.

Maps a request to the adapter and strategy to use. Selection is a one-time
decision per request; there is no fallback to another provider.
"""

import logging
from dataclasses import dataclass
from typing import Mapping

from .adapters.base import ProviderAdapter
from .errors import ProviderUnavailableError
from .models import GenerationMode, GenerationRequest, ProviderName, Strategy
from .scene_chain import BASE_CLIP_SECONDS, EXTENSION_SECONDS, MAX_EXTENSIONS

logger = logging.getLogger(__name__)

# Longest a short-clip chain can get: 8 + 20 * 7
LONG_FORM_THRESHOLD_SECONDS = BASE_CLIP_SECONDS + MAX_EXTENSIONS * EXTENSION_SECONDS


@dataclass(frozen=True)
class Selection:
    adapter: ProviderAdapter
    provider: ProviderName
    strategy: Strategy
    reason: str

    @property
    def is_chained(self) -> bool:
        return self.strategy == Strategy.CHAINED


class ProviderSelector:
    """
    First matching rule wins:

    1. avatar mode -> avatar, single-shot
    2. explicit provider -> that provider; chained only for short-clip over 8s
    3. over 148s -> long-form, single-shot
    4. over 8s -> short-clip, chained
    5. otherwise -> short-clip, single-shot
    """

    def __init__(
        self,
        adapters: Mapping[ProviderName, ProviderAdapter],
        long_form_threshold_seconds: int = LONG_FORM_THRESHOLD_SECONDS,
        base_clip_seconds: int = BASE_CLIP_SECONDS,
    ):
        self.adapters = dict(adapters)
        self.long_form_threshold_seconds = long_form_threshold_seconds
        self.base_clip_seconds = base_clip_seconds

    def route(self, request: GenerationRequest) -> tuple[ProviderName, Strategy, str]:
        """Pick provider and strategy without touching adapters."""
        duration = request.duration_seconds

        if request.mode == GenerationMode.AVATAR:
            if request.explicit_provider and request.explicit_provider != ProviderName.AVATAR:
                logger.warning(
                    f"Avatar mode ignores explicit provider '{request.explicit_provider.value}'"
                )
            return ProviderName.AVATAR, Strategy.SINGLE_SHOT, "avatar mode"

        if request.explicit_provider:
            provider = request.explicit_provider
            if provider == ProviderName.SHORT_CLIP and duration > self.base_clip_seconds:
                return provider, Strategy.CHAINED, "explicit provider"
            return provider, Strategy.SINGLE_SHOT, "explicit provider"

        if duration > self.long_form_threshold_seconds:
            return (
                ProviderName.LONG_FORM,
                Strategy.SINGLE_SHOT,
                f"duration over {self.long_form_threshold_seconds}s",
            )

        if duration > self.base_clip_seconds:
            return ProviderName.SHORT_CLIP, Strategy.CHAINED, f"duration over {self.base_clip_seconds}s"

        return ProviderName.SHORT_CLIP, Strategy.SINGLE_SHOT, "single base clip"

    def select(self, request: GenerationRequest) -> Selection:
        provider, strategy, reason = self.route(request)

        adapter = self.adapters.get(provider)
        if adapter is None or not adapter.available:
            raise ProviderUnavailableError(
                f"{provider.value} provider is required for this request ({reason}) "
                f"but is not configured",
                provider=provider.value,
            )

        logger.info(
            f"Selected {provider.value} ({strategy.value}) for {request.duration_seconds}s request: {reason}"
        )
        return Selection(adapter=adapter, provider=provider, strategy=strategy, reason=reason)
