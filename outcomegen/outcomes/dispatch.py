"""Routes a job to the executor for its outcome type."""

from __future__ import annotations

from typing import assert_never

from ..errors import MISSING_OUTCOME, UNSUPPORTED_TASK, InvalidConfigError
from ..types import JobOutput, OutcomeType
from . import ai_image, ai_video, photo
from .base import OutcomeContext


def run_outcome(ctx: OutcomeContext) -> JobOutput:
    outcome = ctx.snapshot.outcome
    if outcome is None:
        raise InvalidConfigError("Job snapshot has no outcome", reason=MISSING_OUTCOME)
    if outcome.type is None:
        raise InvalidConfigError("Outcome has no type", reason=UNSUPPORTED_TASK)

    outcome_type = outcome.type
    if outcome_type is OutcomeType.PHOTO:
        return photo.execute(ctx)
    elif outcome_type is OutcomeType.AI_IMAGE:
        return ai_image.execute(ctx)
    elif outcome_type is OutcomeType.AI_VIDEO:
        return ai_video.execute(ctx)
    elif outcome_type is OutcomeType.GIF or outcome_type is OutcomeType.VIDEO:
        raise InvalidConfigError(
            f"Outcome type '{outcome_type.value}' is not executable", reason=UNSUPPORTED_TASK
        )
    else:
        assert_never(outcome_type)
