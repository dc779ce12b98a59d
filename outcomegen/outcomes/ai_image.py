"""AI image outcome: text-to-image and image-to-image generation."""

from __future__ import annotations

import logging

from ..errors import EMPTY_PROMPT, MISSING_CAPTURE_STEP, UNSUPPORTED_TASK, InvalidConfigError
from ..operations.image import SOURCE_LABEL
from ..types import AI_IMAGE_TASKS, GenerationRequest, JobOutput, OutputFormat
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


def execute(ctx: OutcomeContext) -> JobOutput:
    config = require_branch(ctx.snapshot.outcome.ai_image, "ai.image")
    generation = config.image_generation
    if config.task not in AI_IMAGE_TASKS:
        raise InvalidConfigError(f"Unsupported ai.image task '{config.task}'", reason=UNSUPPORTED_TASK)
    if not generation.prompt.strip():
        raise InvalidConfigError("AI image prompt is empty", reason=EMPTY_PROMPT)
    if config.task == "image-to-image" and not config.capture_step_id:
        raise InvalidConfigError(
            "image-to-image requires a capture step", reason=MISSING_CAPTURE_STEP
        )

    ctx.progress("starting", PROGRESS_STARTING, "Preparing image generation")
    resolved = resolve_prompt_mentions(
        generation.prompt, ctx.snapshot.session_responses, generation.ref_media
    )

    # A configured capture step is attached as the source even for text-to-image.
    source_media = None
    if config.capture_step_id:
        source_ref = get_source_media(ctx.snapshot, config.capture_step_id)
        source_media = load_media(ctx, source_ref, SOURCE_LABEL)
    references = [load_media(ctx, ref, media_label(ref)) for ref in resolved.media_refs]

    request = GenerationRequest(
        prompt=resolved.text,
        model=generation.model,
        aspect_ratio=generation.aspect_ratio or config.aspect_ratio,
        source_media=source_media,
        reference_media=references,
    )
    logger.info(
        "Job %s: %s with %d reference(s), source=%s",
        ctx.job.id,
        config.task,
        len(references),
        source_media is not None,
    )

    ctx.progress("generating", PROGRESS_GENERATING, "Generating image")
    image = ctx.services.image.generate(request, ctx.tmp_dir, job_id=ctx.job.id)
    local_path = image.local_path
    if ctx.snapshot.overlay_choice is not None:
        local_path = ctx.services.overlay.apply(local_path, ctx.snapshot.overlay_choice, ctx.tmp_dir)

    ctx.progress("uploading", PROGRESS_UPLOADING, "Uploading image")
    return ctx.services.publisher.publish(
        local_path,
        project_id=ctx.job.project_id,
        session_id=ctx.job.session_id,
        fmt=OutputFormat.IMAGE,
        started_at_ms=ctx.start_time_ms,
        tmp_dir=ctx.tmp_dir,
        dimensions=image.dimensions,
    )
