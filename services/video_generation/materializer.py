"""
Result materialization.

Normalizes a chain of clips or a single-shot payload into one VideoResult.
No concatenation happens here: a chained result points at its last clip and
assembling the continuous file is left to the compositing step downstream.

export_result is the one step with side effects: it copies a result's local
files out of the scratch arena into the output directory.
"""

import logging
import shutil
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence, Union

from .errors import PartialChainFailure
from .models import Clip, FinalPayload, GenerationRequest, ProviderName, Strategy, VideoResult
from .scene_chain import chain_duration
from .selector import Selection

logger = logging.getLogger(__name__)


class ResultMaterializer:
    """Pure: the same input always yields an equal VideoResult."""

    def materialize(
        self,
        output: Union[Sequence[Clip], FinalPayload],
        request: GenerationRequest,
        selection: Selection,
        error: Optional[PartialChainFailure] = None,
    ) -> VideoResult:
        config = request.to_config()
        config["strategy"] = selection.strategy.value
        config["selection_reason"] = selection.reason

        if isinstance(output, FinalPayload):
            return self._single_shot(output, request, selection, config)
        return self._chained(list(output), request, selection, config, error)

    @staticmethod
    def _single_shot(payload: FinalPayload, request, selection, config) -> VideoResult:
        duration = payload.duration_seconds
        if duration is None:
            duration = chain_duration(0) if selection.provider == ProviderName.SHORT_CLIP else request.duration_seconds
        return VideoResult(
            type=f"{selection.provider.value}-video",
            provider=selection.provider,
            strategy=Strategy.SINGLE_SHOT,
            video_url=payload.video_url,
            local_path=payload.local_path,
            duration_seconds=duration,
            requested_duration_seconds=request.duration_seconds,
            config=config,
            metadata=dict(payload.metadata),
        )

    @staticmethod
    def _chained(clips: list[Clip], request, selection, config, error) -> VideoResult:
        if not clips:
            raise ValueError("Cannot materialize an empty clip chain")

        last = clips[-1]
        # Only fully completed clips count toward the reported length
        duration = chain_duration(len(clips) - 1)
        return VideoResult(
            type="chained-video",
            provider=selection.provider,
            strategy=Strategy.CHAINED,
            video_url=last.video_url,
            local_path=last.local_path,
            duration_seconds=duration,
            requested_duration_seconds=request.duration_seconds,
            clips=tuple(clips),
            config=config,
            error=str(error) if error else None,
            metadata={"failed_segment": error.segment_index} if error else {},
        )


def export_result(result: VideoResult, output_dir: str, name: str) -> VideoResult:
    """
    Copy every local file of a result into `output_dir/name/`.

    Returns a VideoResult whose local paths (and clip source URIs) point at
    the copies, so the scratch originals can be cleaned up.
    """
    target = Path(output_dir) / name
    copied: dict[str, str] = {}

    def export(path: Optional[str]) -> Optional[str]:
        if not path:
            return path
        if path not in copied:
            target.mkdir(parents=True, exist_ok=True)
            destination = target / Path(path).name
            shutil.copy2(path, destination)
            copied[path] = str(destination)
        return copied[path]

    clips = tuple(
        replace(
            clip,
            local_path=export(clip.local_path),
            source_uri=export(clip.local_path) if clip.local_path else clip.source_uri,
        )
        for clip in result.clips
    )
    exported = replace(result, local_path=export(result.local_path), clips=clips)
    if copied:
        logger.info(f"Exported {len(copied)} file(s) to {target}")
    return exported
