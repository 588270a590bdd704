"""Shared fixtures for the video generation tests."""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, reset_provider_breakers  # noqa: E402
from core.config import Config, Credentials  # noqa: E402
from services.video_generation.adapters.base import ProviderAdapter  # noqa: E402
from services.video_generation.errors import GenerationFailedError  # noqa: E402
from services.video_generation.models import FinalPayload, ProviderName, Submission  # noqa: E402
from services.video_generation.poller import OperationPoller  # noqa: E402
from services.video_generation.scratch import ScratchArena  # noqa: E402

ALL_KEYS = Credentials(gemini_api_key="gemini-key", fal_api_key="fal-key", heygen_api_key="heygen-key")


class FakeAdapter(ProviderAdapter):
    """
    In-memory adapter that resolves every call immediately.

    Calls are numbered from 0 (the base clip); indexes in `fail_on` raise
    GenerationFailedError instead of producing a clip.
    """

    def __init__(self, name: ProviderName, config: Config, available: bool = True,
                 supports_extension: bool = None, fail_on=(), duration_seconds=None):
        self.name = name
        self.supports_extension = (
            name == ProviderName.SHORT_CLIP if supports_extension is None else supports_extension
        )
        self._available = available
        self.fail_on = set(fail_on)
        self.duration_seconds = duration_seconds
        self.calls: list[dict] = []
        self.closed = False
        super().__init__(
            ALL_KEYS,
            config=config,
            poller=OperationPoller(interval_seconds=0, max_attempts=1),
            scratch=ScratchArena(config.storage.scratch_dir),
            breaker=CircuitBreaker(f"fake-{name.value}", CircuitBreakerConfig(failure_threshold=100)),
        )

    @property
    def api_key(self) -> str:
        return "fake-key" if self._available else ""

    def _resolve(self, prompt, previous_handle=None) -> Submission:
        index = len(self.calls)
        self.calls.append({"prompt": prompt, "previous_handle": previous_handle})
        if index in self.fail_on:
            raise GenerationFailedError(f"scripted failure at call {index}", provider=self.name.value)
        return Submission(
            provider=self.name,
            payload=FinalPayload(
                provider=self.name,
                provider_handle=f"handle-{index}",
                video_url=f"https://cdn.example.com/{self.name.value}/clip-{index}.mp4",
                duration_seconds=self.duration_seconds,
            ),
        )

    async def _submit(self, prompt, request):
        return self._resolve(prompt)

    async def _extend(self, previous_handle, prompt, request):
        return self._resolve(prompt, previous_handle)

    async def close(self):
        self.closed = True
        await super().close()


@pytest.fixture(autouse=True)
def _fresh_breakers():
    reset_provider_breakers()
    yield
    reset_provider_breakers()


@pytest.fixture
def config(tmp_path):
    cfg = Config()
    cfg.polling.interval_seconds = 0.0
    cfg.polling.max_attempts = 3
    cfg.storage.scratch_dir = str(tmp_path / "scratch")
    cfg.storage.jobs_dir = str(tmp_path / "jobs")
    cfg.storage.output_dir = str(tmp_path / "output")
    cfg.avatar.default_voice_id = "voice-default"
    return cfg


@pytest.fixture
def credentials():
    return ALL_KEYS


@pytest.fixture
def make_adapter(config):
    """Factory for FakeAdapter bound to the test config."""

    def factory(name: ProviderName, **kwargs) -> FakeAdapter:
        return FakeAdapter(name, config, **kwargs)

    return factory


@pytest.fixture
def fake_adapters(make_adapter):
    return {
        ProviderName.SHORT_CLIP: make_adapter(ProviderName.SHORT_CLIP),
        ProviderName.LONG_FORM: make_adapter(ProviderName.LONG_FORM),
        ProviderName.AVATAR: make_adapter(ProviderName.AVATAR),
    }
