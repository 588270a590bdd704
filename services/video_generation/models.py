"""
Data model for the video generation layer.

Requests and results are frozen dataclasses; Operation is the one mutable
record and is owned by the poller while a remote call is outstanding.
"""

import mimetypes
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class AspectRatio(str, Enum):
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"
    SQUARE = "1:1"


class Resolution(str, Enum):
    HD = "720p"
    FULL_HD = "1080p"


class GenerationMode(str, Enum):
    """Whether a human presenter may appear in the output."""
    FACELESS = "faceless"
    AVATAR = "avatar"


class ProviderName(str, Enum):
    """Provider roles, independent of the vendor behind them."""
    SHORT_CLIP = "short-clip"   # Veo 3.1: 8s base clips + 7s extensions
    LONG_FORM = "long-form"     # LongCat on fal.ai: up to 900s in one call
    AVATAR = "avatar"           # HeyGen talking avatar


class Strategy(str, Enum):
    SINGLE_SHOT = "single-shot"
    CHAINED = "chained"


class ClipStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class OperationKind(str, Enum):
    POLLED = "polled"
    SUBSCRIBED = "subscribed"


class OperationState(str, Enum):
    PENDING = "pending"
    DONE_SUCCESS = "done-success"
    DONE_FAILURE = "done-failure"
    TIMED_OUT = "timed-out"


_IMAGE_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


@dataclass(frozen=True)
class ImageRef:
    """A reference image given as a local path, a remote URL or raw bytes."""
    path: Optional[str] = None
    url: Optional[str] = None
    data: Optional[bytes] = field(default=None, repr=False)
    mime_type: Optional[str] = None

    def __post_init__(self):
        if not (self.path or self.url or self.data):
            raise ValueError("ImageRef needs a path, url or data")
        if self.mime_type is None:
            object.__setattr__(self, "mime_type", self._guess_mime_type())

    def _guess_mime_type(self) -> str:
        source = self.path or self.url or ""
        suffix = Path(source.split("?", 1)[0]).suffix.lower()
        if suffix in _IMAGE_MIME_TYPES:
            return _IMAGE_MIME_TYPES[suffix]
        guessed, _ = mimetypes.guess_type(source)
        return guessed or "image/png"

    @property
    def is_remote(self) -> bool:
        return self.data is None and self.path is None and bool(self.url)

    def load_bytes(self) -> bytes:
        """Return the image bytes; remote-only refs must be fetched by the adapter."""
        if self.data is not None:
            return self.data
        if self.path:
            return Path(self.path).expanduser().read_bytes()
        raise ValueError(f"Image {self.url} is remote; no local bytes available")

    @classmethod
    def from_string(cls, value: str) -> "ImageRef":
        """A URL for http(s) sources, otherwise a local path."""
        if value.startswith("<") and value.endswith("bytes>"):
            raise ValueError("Inline image bytes cannot be restored from a description; persist them first")
        if value.startswith(("http://", "https://")):
            return cls(url=value)
        return cls(path=value)

    def describe(self) -> str:
        return self.path or self.url or f"<{len(self.data or b'')} bytes>"


def _coerce(enum_cls, value):
    if value is None or isinstance(value, enum_cls):
        return value
    return enum_cls(value)


@dataclass(frozen=True)
class GenerationRequest:
    """Immutable input to VideoCoordinator.generate_video."""
    prompt: str
    duration_seconds: int = 8
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE
    resolution: Resolution = Resolution.HD
    mode: GenerationMode = GenerationMode.FACELESS
    explicit_provider: Optional[ProviderName] = None

    # Optional conditioning
    reference_images: tuple[ImageRef, ...] = ()
    first_frame: Optional[ImageRef] = None
    last_frame: Optional[ImageRef] = None
    extension_prompts: tuple[str, ...] = ()
    negative_prompt: Optional[str] = None

    # Avatar knobs
    script: Optional[str] = None
    avatar_id: Optional[str] = None
    voice_id: Optional[str] = None

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        object.__setattr__(self, "aspect_ratio", _coerce(AspectRatio, self.aspect_ratio))
        object.__setattr__(self, "resolution", _coerce(Resolution, self.resolution))
        object.__setattr__(self, "mode", _coerce(GenerationMode, self.mode))
        object.__setattr__(self, "explicit_provider", _coerce(ProviderName, self.explicit_provider))
        object.__setattr__(self, "reference_images", tuple(self.reference_images))
        object.__setattr__(self, "extension_prompts", tuple(self.extension_prompts))

    @property
    def is_faceless(self) -> bool:
        return self.mode == GenerationMode.FACELESS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GenerationRequest":
        """Rebuild a request from the plain data produced by to_config."""
        def image(value):
            return ImageRef.from_string(value) if value else None

        known = {
            "prompt", "duration_seconds", "aspect_ratio", "resolution", "mode",
            "explicit_provider", "extension_prompts", "negative_prompt",
            "script", "avatar_id", "voice_id", "request_id",
        }
        kwargs = {key: value for key, value in data.items() if key in known and value is not None}
        kwargs["reference_images"] = tuple(image(v) for v in data.get("reference_images") or ())
        kwargs["first_frame"] = image(data.get("first_frame"))
        kwargs["last_frame"] = image(data.get("last_frame"))
        return cls(**kwargs)

    def to_config(self) -> dict[str, Any]:
        """Echo of the request as plain data, for results and job records."""
        config: dict[str, Any] = {
            "request_id": self.request_id,
            "prompt": self.prompt,
            "duration_seconds": self.duration_seconds,
            "aspect_ratio": self.aspect_ratio.value,
            "resolution": self.resolution.value,
            "mode": self.mode.value,
            "explicit_provider": self.explicit_provider.value if self.explicit_provider else None,
            "reference_images": [ref.describe() for ref in self.reference_images],
        }
        if self.first_frame:
            config["first_frame"] = self.first_frame.describe()
        if self.last_frame:
            config["last_frame"] = self.last_frame.describe()
        if self.extension_prompts:
            config["extension_prompts"] = list(self.extension_prompts)
        if self.negative_prompt:
            config["negative_prompt"] = self.negative_prompt
        if self.mode == GenerationMode.AVATAR:
            config["avatar_id"] = self.avatar_id
            config["voice_id"] = self.voice_id
            config["script"] = self.script
        return config


@dataclass(frozen=True)
class Clip:
    """One unit of short-clip provider output within a chain."""
    index: int
    prompt: str
    provider_handle: Any = field(repr=False, compare=False)
    duration_seconds: int
    source_uri: Optional[str]
    status: ClipStatus = ClipStatus.COMPLETED
    video_url: Optional[str] = None
    local_path: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        # provider_handle stays inside the process; it means nothing once persisted
        return {
            "index": self.index,
            "prompt": self.prompt,
            "duration_seconds": self.duration_seconds,
            "source_uri": self.source_uri,
            "status": self.status.value,
            "video_url": self.video_url,
            "local_path": self.local_path,
        }


@dataclass
class Operation:
    """One outstanding remote request."""
    provider: ProviderName
    kind: OperationKind
    token: Any
    attempts: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: OperationState = OperationState.PENDING

    @classmethod
    def polled(cls, provider: ProviderName, token: Any) -> "Operation":
        return cls(provider=provider, kind=OperationKind.POLLED, token=token)

    @classmethod
    def subscribed(cls, provider: ProviderName, token: Any = None) -> "Operation":
        """Record for a push-completed call; it is terminal on creation."""
        return cls(
            provider=provider,
            kind=OperationKind.SUBSCRIBED,
            token=token,
            attempts=1,
            state=OperationState.DONE_SUCCESS,
        )

    @property
    def is_terminal(self) -> bool:
        return self.state != OperationState.PENDING


@dataclass(frozen=True)
class FinalPayload:
    """Provider-neutral completion of one remote call."""
    provider: ProviderName
    provider_handle: Any = field(default=None, repr=False, compare=False)
    video_url: Optional[str] = None
    local_path: Optional[str] = None
    duration_seconds: Optional[int] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Submission:
    """
    What an adapter's submit/extend returns.

    Either `payload` is set (delivered by a subscribe callback; `operation`
    is then a terminal subscribed record, if any) or `operation` is a
    pending polled operation still to be driven by the poller.
    """
    provider: ProviderName
    operation: Optional[Operation] = None
    payload: Optional[FinalPayload] = None

    def __post_init__(self):
        if self.payload is None and (self.operation is None or self.operation.is_terminal):
            raise ValueError("Submission needs a payload or a pending operation")

    @property
    def is_resolved(self) -> bool:
        return self.payload is not None


@dataclass(frozen=True)
class MaterializedUri:
    video_url: Optional[str] = None
    local_path: Optional[str] = None

    @property
    def source_uri(self) -> Optional[str]:
        return self.local_path or self.video_url


@dataclass(frozen=True)
class VideoResult:
    """The unified output handed to job/stage persistence."""
    type: str
    provider: ProviderName
    strategy: Strategy
    duration_seconds: int
    requested_duration_seconds: int
    config: dict[str, Any] = field(default_factory=dict)
    video_url: Optional[str] = None
    local_path: Optional[str] = None
    clips: tuple[Clip, ...] = ()
    error: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_partial(self) -> bool:
        return self.error is not None

    @property
    def overshoot_seconds(self) -> int:
        """Positive when a chain rounded up past the requested length."""
        return self.duration_seconds - self.requested_duration_seconds

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "provider": self.provider.value,
            "strategy": self.strategy.value,
            "videoUrl": self.video_url,
            "localPath": self.local_path,
            "durationSeconds": self.duration_seconds,
            "requestedDurationSeconds": self.requested_duration_seconds,
            "config": self.config,
        }
        if self.clips:
            data["clips"] = [clip.to_dict() for clip in self.clips]
        if self.error:
            data["error"] = self.error
        if self.metadata:
            data["metadata"] = self.metadata
        return data
