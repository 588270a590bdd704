"""
Long-form adapter: LongCat video on fal.ai.

One call covers up to 900 seconds. Completion arrives through the fal queue
subscription, so no poll loop is created; the adapter downloads the hosted
result into the scratch arena once subscribe returns.
"""

import logging
import random
from typing import Any, Optional

import fal_client

from ..errors import GenerationFailedError, InvalidRequestError
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


class LongCatAdapter(ProviderAdapter):
    """LongCat text/image-to-video through fal_client.AsyncClient.subscribe."""

    name = ProviderName.LONG_FORM

    def __init__(self, credentials, config=None, poller=None, scratch=None, breaker=None, client: Any = None):
        super().__init__(credentials, config, poller, scratch, breaker)
        self._fal_client = client

    @property
    def api_key(self) -> str:
        return self.credentials.fal_api_key

    @property
    def settings(self):
        return self.config.long_form

    def _get_fal_client(self):
        if self._fal_client is None:
            self.ensure_available()
            self._fal_client = fal_client.AsyncClient(key=self.api_key)
        return self._fal_client

    def num_frames(self, duration_seconds: int) -> int:
        return round(duration_seconds * self.settings.fps)

    async def _image_url(self, ref: ImageRef) -> str:
        """Hosted URL for a conditioning image, uploading local files to fal storage."""
        if ref.is_remote:
            return ref.url
        client = self._get_fal_client()
        if ref.path:
            url = await client.upload_file(ref.path)
        else:
            url = await client.upload(ref.load_bytes(), ref.mime_type)
        logger.info(f"Uploaded conditioning image {ref.describe()} to fal storage")
        return url

    def check_request(self, prompt: str, request: GenerationRequest):
        if request.duration_seconds > self.settings.max_duration_seconds:
            raise InvalidRequestError(
                f"LongCat supports at most {self.settings.max_duration_seconds}s, "
                f"got {request.duration_seconds}s",
                provider=self.name.value,
            )

    def build_arguments(self, prompt: str, request: GenerationRequest, image_url: Optional[str] = None) -> dict:
        arguments = {
            "prompt": prompt,
            "num_frames": self.num_frames(request.duration_seconds),
            "fps": self.settings.fps,
            "aspect_ratio": request.aspect_ratio.value,
            "num_inference_steps": self.settings.num_inference_steps,
            "guidance_scale": self.settings.guidance_scale,
            "seed": random.randint(0, 999_999),
        }
        if request.negative_prompt:
            arguments["negative_prompt"] = request.negative_prompt
        if image_url:
            arguments["image_url"] = image_url
            arguments["motion_bucket_id"] = self.settings.motion_bucket_id
        return arguments

    @staticmethod
    def _on_queue_update(update):
        if isinstance(update, fal_client.InProgress) and update.logs:
            for log in update.logs:
                logger.info(f"LongCat: {log.get('message', log)}")

    async def _submit(self, prompt: str, request: GenerationRequest) -> Submission:
        client = self._get_fal_client()

        conditioning = request.first_frame or (request.reference_images[0] if request.reference_images else None)
        image_url = await self._image_url(conditioning) if conditioning else None
        model = self.settings.image_to_video_model if image_url else self.settings.text_to_video_model
        arguments = self.build_arguments(prompt, request, image_url)

        logger.info(
            f"Submitting to fal.ai {model}: {request.duration_seconds}s "
            f"({arguments['num_frames']} frames @ {self.settings.fps}fps)"
        )
        result = await client.subscribe(
            model,
            arguments=arguments,
            with_logs=True,
            on_queue_update=self._on_queue_update,
        )

        video_url = ((result or {}).get("video") or {}).get("url")
        if not video_url:
            raise GenerationFailedError(
                "LongCat returned no video URL",
                provider=self.name.value,
                payload=result,
            )

        payload = FinalPayload(
            provider=self.name,
            provider_handle=video_url,
            video_url=video_url,
            duration_seconds=request.duration_seconds,
            metadata={
                "model": model,
                "num_frames": arguments["num_frames"],
                "fps": self.settings.fps,
                "seed": result.get("seed", arguments["seed"]),
            },
        )
        return Submission(
            provider=self.name,
            operation=Operation.subscribed(self.name, token=video_url),
            payload=payload,
        )

    async def materialize_uri(self, payload: FinalPayload) -> MaterializedUri:
        local_path = await self.download_to_scratch(payload.video_url, label="longcat")
        return MaterializedUri(video_url=payload.video_url, local_path=local_path)
