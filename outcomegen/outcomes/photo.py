"""Photo outcome: the captured image, optionally branded."""

from __future__ import annotations

import logging

from ..types import JobOutput, OutputFormat
from .base import (
    PROGRESS_GENERATING,
    PROGRESS_STARTING,
    PROGRESS_UPLOADING,
    OutcomeContext,
    download_media,
    get_source_media,
    require_branch,
)

logger = logging.getLogger(__name__)


def execute(ctx: OutcomeContext) -> JobOutput:
    config = require_branch(ctx.snapshot.outcome.photo, "photo")
    ctx.progress("starting", PROGRESS_STARTING, "Preparing photo")

    source = get_source_media(ctx.snapshot, config.capture_step_id)
    local_path = download_media(ctx, source, "source")

    ctx.progress("generating", PROGRESS_GENERATING, "Processing photo")
    if ctx.snapshot.overlay_choice is not None:
        local_path = ctx.services.overlay.apply(local_path, ctx.snapshot.overlay_choice, ctx.tmp_dir)

    ctx.progress("uploading", PROGRESS_UPLOADING, "Uploading photo")
    return ctx.services.publisher.publish(
        local_path,
        project_id=ctx.job.project_id,
        session_id=ctx.job.session_id,
        fmt=OutputFormat.IMAGE,
        started_at_ms=ctx.start_time_ms,
        tmp_dir=ctx.tmp_dir,
    )
