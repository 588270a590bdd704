"""
Avatar adapter: HeyGen talking-avatar REST API.

A single call renders the whole script, so there is no chaining. Completion
is polled through the status endpoint; the hosted URL is returned as-is.
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from ..errors import GenerationFailedError, InvalidRequestError
from ..models import (
    AspectRatio,
    FinalPayload,
    GenerationRequest,
    Operation,
    ProviderName,
    Resolution,
    Submission,
)
from .base import ProviderAdapter

logger = logging.getLogger(__name__)


# Wire models (HeyGen field names stay in this module)

class HeyGenError(BaseModel):
    code: Optional[Any] = None
    message: Optional[str] = None


class HeyGenSubmitData(BaseModel):
    video_id: str


class HeyGenSubmitResponse(BaseModel):
    error: Optional[HeyGenError] = None
    data: Optional[HeyGenSubmitData] = None


class HeyGenStatusData(BaseModel):
    status: str = "processing"
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[Any] = None


class HeyGenStatusResponse(BaseModel):
    error: Optional[HeyGenError] = None
    data: HeyGenStatusData = Field(default_factory=HeyGenStatusData)


# Provider statuses -> queued | processing | completed | failed
_STATUS_MAP = {
    "pending": "queued",
    "waiting": "queued",
    "queued": "queued",
    "processing": "processing",
    "completed": "completed",
    "failed": "failed",
}

_DIMENSIONS = {
    Resolution.HD: (1280, 720),
    Resolution.FULL_HD: (1920, 1080),
}


def normalize_status(raw: Optional[str]) -> str:
    return _STATUS_MAP.get((raw or "").lower(), "processing")


def dimension_for(aspect_ratio: AspectRatio, resolution: Resolution) -> dict:
    long_side, short_side = _DIMENSIONS[resolution]
    if aspect_ratio == AspectRatio.PORTRAIT:
        return {"width": short_side, "height": long_side}
    if aspect_ratio == AspectRatio.SQUARE:
        return {"width": short_side, "height": short_side}
    return {"width": long_side, "height": short_side}


class HeyGenAdapter(ProviderAdapter):
    """HeyGen avatar video generation."""

    name = ProviderName.AVATAR

    @property
    def api_key(self) -> str:
        return self.credentials.heygen_api_key

    @property
    def api_base(self) -> str:
        return self.config.api.heygen_api_base.rstrip("/")

    def _headers(self) -> dict:
        return {"X-Api-Key": self.api_key, "Content-Type": "application/json"}

    def check_request(self, prompt: str, request: GenerationRequest):
        voice_id = request.voice_id or self.config.avatar.default_voice_id
        script = request.script or prompt
        if not voice_id:
            raise InvalidRequestError(
                "Avatar mode needs a voice id (pass one or set HEYGEN_VOICE_ID)",
                provider=self.name.value,
            )
        if not script or not script.strip():
            raise InvalidRequestError("Avatar mode needs a script", provider=self.name.value)

    def build_payload(self, prompt: str, request: GenerationRequest) -> dict:
        return {
            "video_inputs": [
                {
                    "character": {
                        "type": "avatar",
                        "avatar_id": request.avatar_id or self.config.avatar.default_avatar_id,
                        "avatar_style": "normal",
                    },
                    "voice": {
                        "type": "text",
                        "input_text": request.script or prompt,
                        "voice_id": request.voice_id or self.config.avatar.default_voice_id,
                    },
                    "background": {
                        "type": "color",
                        "value": self.config.avatar.background_color,
                    },
                }
            ],
            "dimension": dimension_for(request.aspect_ratio, request.resolution),
            "title": f"Avatar Video {request.request_id[:8]}",
        }

    async def _submit(self, prompt: str, request: GenerationRequest) -> Submission:
        payload = self.build_payload(prompt, request)
        client = await self._get_client()

        response = await client.post(
            f"{self.api_base}/v2/video/generate",
            headers=self._headers(),
            json=payload,
        )
        if response.status_code >= 400:
            raise GenerationFailedError(
                f"HeyGen API error: {response.status_code} {response.text[:200]}",
                provider=self.name.value,
                payload=response.text,
            )

        body = HeyGenSubmitResponse.model_validate(response.json())
        if body.error or body.data is None:
            detail = body.error.message if body.error else "no video_id in response"
            raise GenerationFailedError(
                f"HeyGen video generation failed: {detail}",
                provider=self.name.value,
                payload=response.json(),
            )

        logger.info(f"HeyGen video initiated: {body.data.video_id}")
        return Submission(provider=self.name, operation=Operation.polled(self.name, body.data.video_id))

    async def _check_status(self, operation: Operation) -> HeyGenStatusData:
        client = await self._get_client()
        response = await client.get(
            f"{self.api_base}/v1/video_status.get",
            params={"video_id": operation.token},
            headers={"X-Api-Key": self.api_key},
        )
        if response.status_code >= 500:
            # Server-side errors are retried by the poller
            response.raise_for_status()
        if response.is_error:
            raise GenerationFailedError(
                f"HeyGen status check failed: HTTP {response.status_code}",
                provider=self.name.value,
                payload=response.text,
            )

        body = HeyGenStatusResponse.model_validate(response.json())
        if body.error:
            raise GenerationFailedError(
                f"HeyGen status check failed: {body.error.message}",
                provider=self.name.value,
                payload=response.json(),
            )
        logger.debug(f"HeyGen {operation.token}: {body.data.status}")
        return body.data

    def _extract(self, status: HeyGenStatusData) -> FinalPayload:
        metadata = {}
        if status.thumbnail_url:
            metadata["thumbnail_url"] = status.thumbnail_url
        return FinalPayload(
            provider=self.name,
            video_url=status.video_url,
            duration_seconds=round(status.duration) if status.duration else None,
            metadata=metadata,
        )

    @staticmethod
    def _failure_of(status: HeyGenStatusData):
        if normalize_status(status.status) == "failed":
            return status.error or "HeyGen reported failure"
        if not status.video_url:
            return "HeyGen completed without a video URL"
        return None

    async def _poll(self, submission: Submission, on_attempt) -> FinalPayload:
        try:
            return await self.poller.wait(
                submission.operation,
                check=self._check_status,
                is_done=lambda status: normalize_status(status.status) in ("completed", "failed"),
                extract=self._extract,
                failure_of=self._failure_of,
                on_attempt=on_attempt,
                transient_errors=(httpx.TransportError, httpx.HTTPStatusError),
            )
        except httpx.HTTPError as e:
            raise GenerationFailedError(
                f"HeyGen status check failed: {e}",
                provider=self.name.value,
                payload=str(e),
            ) from e
