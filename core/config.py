"""
Configuration management for Creative Video Studio.

Centralizes all configuration including:
- Provider API keys and endpoints
- Video provider limits (clip lengths, chain ceiling, polling)
- Scratch, output and job storage locations
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class Credentials:
    """Provider keys, read once and handed to each adapter constructor."""
    gemini_api_key: str = ""
    fal_api_key: str = ""
    heygen_api_key: str = ""

    def __repr__(self) -> str:
        def mask(value: str) -> str:
            return "set" if value else "missing"

        return (
            f"Credentials(gemini={mask(self.gemini_api_key)}, "
            f"fal={mask(self.fal_api_key)}, heygen={mask(self.heygen_api_key)})"
        )


@dataclass
class APIConfig:
    """API configuration for video generation providers."""

    # Short-clip provider (Google Veo via Gemini API)
    gemini_api_key: str = field(default_factory=lambda: os.getenv("GEMINI_API_KEY", ""))

    # Long-form provider (LongCat via fal.ai queue)
    fal_api_key: str = field(default_factory=lambda: os.getenv("FAL_KEY", ""))

    # Avatar provider (HeyGen)
    heygen_api_key: str = field(default_factory=lambda: os.getenv("HEYGEN_API_KEY", ""))
    heygen_api_base: str = field(
        default_factory=lambda: os.getenv("HEYGEN_API_BASE", "https://api.heygen.com")
    )


@dataclass
class ShortClipConfig:
    """Veo 3.1 clip semantics."""
    model: str = field(default_factory=lambda: os.getenv("VEO_MODEL", "veo-3.1-generate-preview"))
    base_clip_seconds: int = 8
    extension_seconds: int = 7
    max_extensions: int = 20  # 8 + 20 * 7 = 148s

    @property
    def max_chain_seconds(self) -> int:
        return self.base_clip_seconds + self.max_extensions * self.extension_seconds


@dataclass
class LongFormConfig:
    """LongCat (fal.ai) generation settings."""
    text_to_video_model: str = "fal-ai/longcat-video/text-to-video/720p"
    image_to_video_model: str = "fal-ai/longcat-video/image-to-video/720p"
    max_duration_seconds: int = 900
    fps: int = 24
    num_inference_steps: int = 40
    guidance_scale: float = 7.5
    motion_bucket_id: int = 127


@dataclass
class AvatarConfig:
    """HeyGen talking-avatar defaults."""
    default_avatar_id: str = field(default_factory=lambda: os.getenv("HEYGEN_AVATAR_ID", "Raj_public_v2"))
    default_voice_id: str = field(default_factory=lambda: os.getenv("HEYGEN_VOICE_ID", ""))
    background_color: str = "#FFFFFF"


@dataclass
class PollingConfig:
    """Bounded polling for long-running remote operations."""
    interval_seconds: float = field(default_factory=lambda: _env_float("VIDEO_POLL_INTERVAL", 10.0))
    max_attempts: int = field(default_factory=lambda: _env_int("VIDEO_MAX_POLL_ATTEMPTS", 60))

    @property
    def ceiling_seconds(self) -> float:
        return self.interval_seconds * self.max_attempts


@dataclass
class StorageConfig:
    """Local storage for scratch clips, final outputs and job records."""
    scratch_dir: str = field(default_factory=lambda: os.getenv("VIDEO_SCRATCH_DIR", "/tmp/creative-video-scratch"))
    output_dir: str = field(default_factory=lambda: os.getenv("VIDEO_OUTPUT_DIR", "output/videos"))
    jobs_dir: str = field(default_factory=lambda: os.getenv("VIDEO_JOBS_DIR", "data/video-jobs"))
    max_job_log_lines: int = 500
    # Scratch clips older than this are evicted when a coordinator closes
    scratch_max_age_seconds: float = field(default_factory=lambda: _env_float("VIDEO_SCRATCH_MAX_AGE", 86400.0))


@dataclass
class Config:
    """Main configuration class."""

    api: APIConfig = field(default_factory=APIConfig)
    short_clip: ShortClipConfig = field(default_factory=ShortClipConfig)
    long_form: LongFormConfig = field(default_factory=LongFormConfig)
    avatar: AvatarConfig = field(default_factory=AvatarConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    # Request bounds
    min_duration_seconds: int = 8
    max_duration_seconds: int = 900
    max_reference_images: int = 3

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls()

    def credentials(self) -> Credentials:
        """Snapshot the provider keys into an immutable struct."""
        return Credentials(
            gemini_api_key=self.api.gemini_api_key,
            fal_api_key=self.api.fal_api_key,
            heygen_api_key=self.api.heygen_api_key,
        )

    @property
    def long_form_threshold_seconds(self) -> int:
        """Durations above this go to the long-form provider."""
        return self.short_clip.max_chain_seconds

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.api.gemini_api_key:
            issues.append("GEMINI_API_KEY not configured (needed for short clips and chains)")

        if not self.api.fal_api_key:
            issues.append(
                f"FAL_KEY not configured (needed for videos over {self.long_form_threshold_seconds}s)"
            )

        if not self.api.heygen_api_key:
            issues.append("HEYGEN_API_KEY not configured (needed for avatar mode)")

        if self.polling.max_attempts < 1:
            issues.append("VIDEO_MAX_POLL_ATTEMPTS must be at least 1")

        return issues


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reload_config():
    """Reload configuration from environment."""
    global _config
    _config = Config.from_env()
