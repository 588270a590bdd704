"""
Short-clip adapter: Google Veo 3.1 through the Gemini API.

Veo emits an 8 second base clip per call and extends an existing clip by
7 seconds when given the previous clip's video handle. Completion is a
long-running operation polled through client.aio.operations.get.
"""

import logging
from typing import Any, Optional

from google import genai
from google.genai import types

from ..errors import InvalidRequestError
from ..models import (
    FinalPayload,
    GenerationRequest,
    ImageRef,
    MaterializedUri,
    Operation,
    ProviderName,
    Submission,
)
from .base import ProviderAdapter

logger = logging.getLogger(__name__)

# Veo personGeneration values
PERSON_ALLOW_ALL = "allow_all"        # text-to-video and extension
PERSON_ALLOW_ADULT = "allow_adult"    # required with reference images / interpolation
PERSON_DONT_ALLOW = "dont_allow"


class VeoAdapter(ProviderAdapter):
    """
    Veo 3.1 short-clip generation.

    The provider handle for a clip is the types.Video returned by the
    operation; it is only meaningful to this adapter.
    """

    name = ProviderName.SHORT_CLIP
    supports_extension = True

    def __init__(self, credentials, config=None, poller=None, scratch=None, breaker=None, client: Any = None):
        super().__init__(credentials, config, poller, scratch, breaker)
        self._genai_client = client

    @property
    def api_key(self) -> str:
        return self.credentials.gemini_api_key

    @property
    def model(self) -> str:
        return self.config.short_clip.model

    def _get_genai_client(self):
        if self._genai_client is None:
            self.ensure_available()
            self._genai_client = genai.Client(api_key=self.api_key)
        return self._genai_client

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    @staticmethod
    def _image(ref: ImageRef) -> types.Image:
        return types.Image(image_bytes=ref.load_bytes(), mime_type=ref.mime_type)

    @staticmethod
    def person_generation_for(request: GenerationRequest, conditioned: bool) -> str:
        """Faceless always disallows people; otherwise the mode decides."""
        if request.is_faceless:
            return PERSON_DONT_ALLOW
        return PERSON_ALLOW_ADULT if conditioned else PERSON_ALLOW_ALL

    def _build_config(self, request: GenerationRequest, conditioned: bool) -> types.GenerateVideosConfig:
        config = types.GenerateVideosConfig(
            aspect_ratio=request.aspect_ratio.value,
            resolution=request.resolution.value,
            number_of_videos=1,
            person_generation=self.person_generation_for(request, conditioned),
        )
        if request.negative_prompt:
            config.negative_prompt = request.negative_prompt
        return config

    def check_request(self, prompt: str, request: GenerationRequest):
        images = list(request.reference_images) + [request.first_frame, request.last_frame]
        for ref in images:
            if ref is not None and ref.is_remote:
                raise InvalidRequestError(
                    f"Veo needs local image bytes; got remote image {ref.url}",
                    provider=self.name.value,
                )

    def build_submit_kwargs(self, prompt: str, request: GenerationRequest) -> dict:
        """Keyword arguments for generate_videos for a base clip."""
        conditioned = bool(request.reference_images) or bool(request.first_frame and request.last_frame)
        config = self._build_config(request, conditioned)
        kwargs = {"model": self.model, "prompt": prompt, "config": config}

        if request.first_frame and request.last_frame:
            # Interpolation and reference images are mutually exclusive on Veo
            if request.reference_images:
                logger.info(
                    f"Dropping {len(request.reference_images)} reference image(s): "
                    "first/last frame interpolation takes priority"
                )
            kwargs["image"] = self._image(request.first_frame)
            config.last_frame = self._image(request.last_frame)
        elif request.reference_images:
            config.reference_images = [
                types.VideoGenerationReferenceImage(image=self._image(ref), reference_type="asset")
                for ref in request.reference_images
            ]
        elif request.first_frame:
            kwargs["image"] = self._image(request.first_frame)

        return kwargs

    def build_extend_kwargs(self, previous_handle: Any, prompt: str, request: GenerationRequest) -> dict:
        return {
            "model": self.model,
            "prompt": prompt,
            "video": previous_handle,
            "config": self._build_config(request, conditioned=False),
        }

    # ------------------------------------------------------------------
    # Submission and polling
    # ------------------------------------------------------------------

    async def _start(self, kwargs: dict) -> Submission:
        client = self._get_genai_client()
        operation = await client.aio.models.generate_videos(**kwargs)
        logger.info(f"Veo operation started: {operation.name}")
        return Submission(provider=self.name, operation=Operation.polled(self.name, operation))

    async def _submit(self, prompt: str, request: GenerationRequest) -> Submission:
        logger.info(f"Veo base clip: {prompt[:60]}")
        return await self._start(self.build_submit_kwargs(prompt, request))

    async def _extend(self, previous_handle: Any, prompt: str, request: GenerationRequest) -> Submission:
        logger.info(f"Veo extension: {prompt[:60]}")
        return await self._start(self.build_extend_kwargs(previous_handle, prompt, request))

    async def _check_status(self, operation: Operation):
        client = self._get_genai_client()
        latest = await client.aio.operations.get(operation=operation.token)
        operation.token = latest
        return latest

    @staticmethod
    def _failure_of(status) -> Optional[str]:
        if getattr(status, "error", None):
            return str(status.error)
        response = getattr(status, "response", None)
        if not response or not response.generated_videos:
            filtered = getattr(response, "rai_media_filtered_count", None) if response else None
            if filtered:
                return "Content filtered by responsible AI"
            return "No video returned by provider"
        return None

    def _extract(self, status) -> FinalPayload:
        video = status.response.generated_videos[0].video
        return FinalPayload(
            provider=self.name,
            provider_handle=video,
            video_url=getattr(video, "uri", None),
            metadata={"operation": status.name},
        )

    async def _poll(self, submission: Submission, on_attempt) -> FinalPayload:
        return await self.poller.wait(
            submission.operation,
            check=self._check_status,
            is_done=lambda status: bool(status.done),
            extract=self._extract,
            failure_of=self._failure_of,
            on_attempt=on_attempt,
        )

    async def materialize_uri(self, payload: FinalPayload) -> MaterializedUri:
        """Download the clip bytes into the scratch arena."""
        video = payload.provider_handle
        data = getattr(video, "video_bytes", None)
        if not data:
            client = self._get_genai_client()
            data = await client.aio.files.download(file=video)
        path = self.scratch.write_bytes(data, suffix=".mp4", label="veo")
        logger.info(f"Veo clip saved to {path}")
        return MaterializedUri(video_url=payload.video_url, local_path=str(path))
