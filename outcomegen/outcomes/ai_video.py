"""AI video outcome: image-to-video and ref-images-to-video generation."""

from __future__ import annotations

import logging
from typing import List

from ..errors import EMPTY_PROMPT, MISSING_CAPTURE_STEP, UNSUPPORTED_TASK, InvalidConfigError
from ..operations.image import SOURCE_LABEL
from ..types import JobOutput, MediaReference, OutputFormat, VideoGenerationRequest
from ..utils.prompts import media_label, resolve_prompt_mentions
from .base import (
    PROGRESS_GENERATING,
    PROGRESS_STARTING,
    PROGRESS_UPLOADING,
    OutcomeContext,
    get_source_media,
    load_media,
    require_branch,
)

logger = logging.getLogger(__name__)

SUPPORTED_VIDEO_TASKS = ("image-to-video", "ref-images-to-video")


def execute(ctx: OutcomeContext) -> JobOutput:
    config = require_branch(ctx.snapshot.outcome.ai_video, "ai.video")
    generation = config.video_generation
    if config.task not in SUPPORTED_VIDEO_TASKS:
        raise InvalidConfigError(f"Unsupported ai.video task '{config.task}'", reason=UNSUPPORTED_TASK)
    if not generation.prompt.strip():
        raise InvalidConfigError("AI video prompt is empty", reason=EMPTY_PROMPT)
    if not config.capture_step_id:
        raise InvalidConfigError(f"{config.task} requires a capture step", reason=MISSING_CAPTURE_STEP)

    ctx.progress("starting", PROGRESS_STARTING, "Preparing video generation")
    source_ref = get_source_media(ctx.snapshot, config.capture_step_id)
    # Video prompts carry no reference media; ref mentions are config errors.
    resolved = resolve_prompt_mentions(generation.prompt, ctx.snapshot.session_responses, ())
    if ctx.snapshot.overlay_choice is not None:
        logger.warning("Job %s: overlays are not applied to video outputs; skipping", ctx.job.id)

    start_frame = load_media(ctx, source_ref, SOURCE_LABEL)
    request = VideoGenerationRequest(
        prompt=resolved.text,
        model=generation.model,
        aspect_ratio=generation.aspect_ratio or config.aspect_ratio,
        duration_seconds=generation.duration,
        start_frame=start_frame,
    )
    if config.task == "ref-images-to-video":
        request.reference_frames = [start_frame] + [
            load_media(ctx, ref, media_label(ref))
            for ref in _unique_refs([*resolved.media_refs, *generation.ref_media], exclude=source_ref)
        ]
    logger.info(
        "Job %s: %s, %ss, %d reference frame(s)",
        ctx.job.id,
        config.task,
        request.duration_seconds,
        len(request.reference_frames),
    )

    ctx.progress("generating", PROGRESS_GENERATING, "Generating video")
    video = ctx.services.video.generate(request, ctx.job, ctx.tmp_dir)

    ctx.progress("uploading", PROGRESS_UPLOADING, "Uploading video")
    return ctx.services.publisher.publish(
        video.local_path,
        project_id=ctx.job.project_id,
        session_id=ctx.job.session_id,
        fmt=OutputFormat.VIDEO,
        started_at_ms=ctx.start_time_ms,
        tmp_dir=ctx.tmp_dir,
        dimensions=video.dimensions,
        duration_seconds=video.duration_seconds,
        existing_storage_path=video.storage_path,
    )


def _unique_refs(refs: List[MediaReference], *, exclude: MediaReference) -> List[MediaReference]:
    seen = {exclude.media_asset_id}
    unique: List[MediaReference] = []
    for ref in refs:
        if ref.media_asset_id not in seen:
            seen.add(ref.media_asset_id)
            unique.append(ref)
    return unique
