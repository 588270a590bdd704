"""
Video Generation Service

Coordinates video generation across three providers:
- Short clips: Veo 3.1, chained into scenes up to 148s
- Long form: LongCat on fal.ai, up to 900s in one call
- Avatar: HeyGen talking avatars from a full script

VideoCoordinator is the only entry point; everything else is exported for
composition and testing.
"""

from .coordinator import VideoCoordinator
from .errors import (
    GenerationFailedError,
    InvalidRequestError,
    OperationTimeoutError,
    PartialChainFailure,
    ProviderUnavailableError,
    VideoGenerationError,
)
from .job_tracker import Job, JobStatus, JobTracker
from .models import (
    AspectRatio,
    Clip,
    GenerationMode,
    GenerationRequest,
    ImageRef,
    ProviderName,
    Resolution,
    Strategy,
    VideoResult,
)
from .scene_chain import SceneChainDriver, build_scene_prompts
from .selector import ProviderSelector

__all__ = [
    "VideoCoordinator",
    "GenerationRequest",
    "VideoResult",
    "Clip",
    "ImageRef",
    "AspectRatio",
    "Resolution",
    "GenerationMode",
    "ProviderName",
    "Strategy",
    "SceneChainDriver",
    "ProviderSelector",
    "build_scene_prompts",
    "Job",
    "JobStatus",
    "JobTracker",
    "VideoGenerationError",
    "InvalidRequestError",
    "ProviderUnavailableError",
    "OperationTimeoutError",
    "GenerationFailedError",
    "PartialChainFailure",
]
