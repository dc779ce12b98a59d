"""Shared context and helpers for outcome executors."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..errors import (
    CAPTURE_STEP_NO_MEDIA,
    CAPTURE_STEP_NOT_FOUND,
    MISSING_OUTCOME,
    InvalidConfigError,
    MediaNotFoundError,
)
from ..operations.image import ImageGenerationOperation
from ..operations.overlay import OverlayCompositor
from ..operations.publish import OutputPublisher
from ..operations.video import VideoGenerationOperation
from ..services.media import MediaTransformer
from ..services.storage import StorageClient
from ..types import Job, MediaInput, MediaReference, ProgressCallback, ProgressReport, Snapshot
from ..utils.files import guess_mime_type

logger = logging.getLogger(__name__)

PROGRESS_STARTING = 10
PROGRESS_GENERATING = 20
PROGRESS_UPLOADING = 80


@dataclass(slots=True)
class OutcomeServices:
    """Collaborators shared by every executor, built once per pipeline."""

    storage: StorageClient
    media: MediaTransformer
    image: ImageGenerationOperation
    video: VideoGenerationOperation
    overlay: OverlayCompositor
    publisher: OutputPublisher


@dataclass(slots=True)
class OutcomeContext:
    """Everything an executor needs to run one job."""

    job: Job
    snapshot: Snapshot
    tmp_dir: Path
    start_time_ms: int
    services: OutcomeServices
    report_progress: Optional[ProgressCallback] = None

    def progress(self, step: str, percentage: int, message: str) -> None:
        """Emit a progress report; a failing callback never affects the job."""
        if self.report_progress is None:
            return
        try:
            self.report_progress(ProgressReport(current_step=step, percentage=percentage, message=message))
        except Exception:
            logger.warning("Progress callback failed for job %s", self.job.id, exc_info=True)


def require_branch(branch, outcome_type: str):
    if branch is None:
        raise InvalidConfigError(f"Outcome '{outcome_type}' has no configuration", reason=MISSING_OUTCOME)
    return branch


def get_source_media(snapshot: Snapshot, capture_step_id: str) -> MediaReference:
    """Return the first medium captured by ``capture_step_id``."""
    for response in snapshot.session_responses:
        if response.step_id == capture_step_id:
            media = response.media
            if not media:
                raise MediaNotFoundError(
                    f"Capture step '{capture_step_id}' has no media",
                    reason=CAPTURE_STEP_NO_MEDIA,
                    context={"capture_step_id": capture_step_id},
                )
            return media[0]
    raise MediaNotFoundError(
        f"Capture step '{capture_step_id}' not found in session responses",
        reason=CAPTURE_STEP_NOT_FOUND,
        context={"capture_step_id": capture_step_id},
    )


def load_media(ctx: OutcomeContext, ref: MediaReference, label: str) -> MediaInput:
    """Read a stored medium into memory for a generation request."""
    key = ctx.services.storage.storage_path(ref)
    data = ctx.services.storage.read_bytes(key)
    return MediaInput(reference=ref, label=label, data=data, mime_type=guess_mime_type(key, "image/jpeg"))


def download_media(ctx: OutcomeContext, ref: MediaReference, name: str) -> Path:
    key = ctx.services.storage.storage_path(ref)
    suffix = Path(key).suffix or ".jpg"
    return ctx.services.storage.download(key, ctx.tmp_dir / f"{name}{suffix}")
