"""Single entry point that executes one outcome job end to end."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .config import PipelineConfig
from .errors import UNEXPECTED, PipelineError, ProviderError
from .operations.image import ImageGenerationOperation
from .operations.overlay import OverlayCompositor
from .operations.publish import OutputPublisher
from .operations.video import VideoGenerationOperation
from .outcomes.base import OutcomeContext, OutcomeServices
from .outcomes.dispatch import run_outcome
from .services.base import ImageProvider, VideoProvider
from .services.jimeng import JimengClient
from .services.media import MediaTransformer
from .services.storage import StorageClient
from .types import Job, JobOutput, ProgressCallback
from .utils.files import create_job_dir, remove_dir
from .utils.run_logger import RunLogger

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class JobResult:
    """Outcome of one ``execute`` call: an output or a classified error."""

    job_id: str
    output: Optional[JobOutput] = None
    error: Optional[PipelineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.output is not None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"jobId": self.job_id, "status": "completed" if self.ok else "failed"}
        if self.output is not None:
            payload["output"] = self.output.to_dict()
        if self.error is not None:
            payload["error"] = self.error.to_job_error(step=self.error.context.get("task"))
            payload["error"]["reason"] = self.error.reason
        return payload


class OutcomePipeline:
    """High-level facade exposing job execution.

    Collaborators are built from ``config`` unless injected; every job reuses
    them. ``execute`` never raises for pipeline failures.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        storage: StorageClient | None = None,
        image_provider: ImageProvider | None = None,
        video_provider: VideoProvider | None = None,
        media: MediaTransformer | None = None,
        run_logger: RunLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.logger = run_logger or RunLogger(base_dir=config.runs_dir)
        self.media = media or MediaTransformer()
        self.storage = storage or StorageClient(
            config.storage_bucket,
            region=config.storage_region,
            endpoint_url=config.storage_endpoint_url,
            public_base_url=config.storage_public_base_url,
        )

        if image_provider is None or video_provider is None:
            jimeng = JimengClient(
                api_key=config.jimeng_api_key,
                api_secret=config.jimeng_api_secret,
                api_url=config.jimeng_api_url,
                use_mock=config.enable_mock_generation,
                mock_dir=f"{config.runs_dir}/mock-media",
                media=self.media,
                sleep=sleep,
            )
            image_provider = image_provider or jimeng
            video_provider = video_provider or jimeng

        self.services = OutcomeServices(
            storage=self.storage,
            media=self.media,
            image=ImageGenerationOperation(image_provider, media=self.media, run_logger=self.logger),
            video=VideoGenerationOperation(
                video_provider,
                self.storage,
                media=self.media,
                run_logger=self.logger,
                poll_interval_sec=config.video_poll_interval_sec,
                timeout_sec=config.video_timeout_sec,
                clock=clock,
                sleep=sleep,
            ),
            overlay=OverlayCompositor(self.storage, media=self.media),
            publisher=OutputPublisher(self.storage, media=self.media, thumbnail_size=config.thumbnail_size),
        )

    def execute(self, job: Job, report_progress: ProgressCallback | None = None) -> JobResult:
        """Run ``job`` and return its output or its classified error."""
        started = time.time()
        task = self._task_name(job)
        tmp_dir = None
        logger.info(
            "Job %s started (%s, experience v%s)", job.id, task, job.snapshot.experience_version
        )

        try:
            tmp_dir = create_job_dir(job.id, self.config.tmp_root)
            logger.debug("Job %s scratch directory: %s", job.id, tmp_dir)
            ctx = OutcomeContext(
                job=job,
                snapshot=job.snapshot,
                tmp_dir=tmp_dir,
                start_time_ms=int(started * 1000),
                services=self.services,
                report_progress=report_progress,
            )
            output = run_outcome(ctx)
        except PipelineError as exc:
            error = exc
        except Exception as exc:
            logger.exception("Job %s failed with an unexpected error", job.id)
            error = ProviderError(f"Unexpected error: {exc}", reason=UNEXPECTED)
            error.__cause__ = exc
        else:
            logger.info("Job %s completed in %dms: %s", job.id, output.processing_time_ms, output.url)
            return JobResult(job_id=job.id, output=output)
        finally:
            if tmp_dir is not None:
                remove_dir(tmp_dir)

        error.with_context(job_id=job.id, task=task, elapsed_ms=int((time.time() - started) * 1000))
        logger.error("Job %s failed: %s", job.id, error)
        return JobResult(job_id=job.id, error=error)

    @staticmethod
    def _task_name(job: Job) -> str:
        outcome = job.snapshot.outcome
        if outcome is None or outcome.type is None:
            return "unknown"
        branch = {
            "ai.image": outcome.ai_image,
            "ai.video": outcome.ai_video,
        }.get(outcome.type.value)
        task = getattr(branch, "task", None)
        return f"{outcome.type.value}:{task}" if task else outcome.type.value
