"""Submit-then-poll video generation."""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

import requests

from ..errors import (
    EMPTY_PROMPT,
    FilteredError,
    GenerationTimeoutError,
    InvalidConfigError,
    MediaNotFoundError,
    ProviderError,
    UploadError,
)
from ..services.base import VideoProvider
from ..services.media import MediaTransformer, MediaTransformError
from ..services.storage import StorageClient, job_temp_prefix, output_storage_path
from ..types import GeneratedVideo, Job, VideoGenerationRequest
from ..utils.files import file_size
from ..utils.run_logger import RunLogger

logger = logging.getLogger(__name__)


class VideoOperationState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    FILTERED = "filtered"


_TERMINAL_STATES = {
    VideoOperationState.SUCCEEDED,
    VideoOperationState.FAILED,
    VideoOperationState.TIMED_OUT,
    VideoOperationState.FILTERED,
}


@dataclass(slots=True)
class VideoOperation:
    """Client-side handle for one submitted provider job."""

    name: str
    state: VideoOperationState = VideoOperationState.SUBMITTED
    polls: int = 0
    elapsed_sec: float = 0.0
    artifact_uri: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in _TERMINAL_STATES


class VideoPoller:
    """Drives a ``VideoOperation`` to a terminal state.

    The first status fetch happens immediately after submission. Between
    fetches the poller sleeps ``min(interval, remaining)``, so the total wait
    never exceeds ``timeout_sec``.
    """

    def __init__(
        self,
        provider: VideoProvider,
        *,
        interval_sec: float = 15.0,
        timeout_sec: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._provider = provider
        self._interval = interval_sec
        self._timeout = timeout_sec
        self._clock = clock
        self._sleep = sleep

    def wait(self, operation_name: str) -> VideoOperation:
        operation = VideoOperation(name=operation_name)
        started = self._clock()
        operation.state = VideoOperationState.POLLING

        while not operation.is_terminal:
            status = self._provider.get_video_status(operation_name)
            operation.polls += 1
            operation.elapsed_sec = self._clock() - started

            if status.done:
                if status.filtered:
                    operation.state = VideoOperationState.FILTERED
                    operation.error_message = status.error_message
                elif status.error_message:
                    operation.state = VideoOperationState.FAILED
                    operation.error_message = status.error_message
                elif status.artifact_uri:
                    operation.state = VideoOperationState.SUCCEEDED
                    operation.artifact_uri = status.artifact_uri
                else:
                    # Finished without an artifact: the provider dropped the output.
                    operation.state = VideoOperationState.FILTERED
                    operation.error_message = "Provider returned no video"
                break

            remaining = self._timeout - operation.elapsed_sec
            if remaining <= 0:
                operation.state = VideoOperationState.TIMED_OUT
                break
            logger.debug(
                "Video operation %s still running after %.0fs (poll %d)",
                operation_name,
                operation.elapsed_sec,
                operation.polls,
            )
            self._sleep(min(self._interval, remaining))

        return operation


class VideoGenerationOperation:
    """Generates one video and lands it at the canonical output path when possible."""

    name = "video-generation"

    def __init__(
        self,
        provider: VideoProvider,
        storage: StorageClient,
        media: MediaTransformer | None = None,
        run_logger: RunLogger | None = None,
        *,
        poll_interval_sec: float = 15.0,
        timeout_sec: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        download_timeout: int = 120,
    ) -> None:
        self._provider = provider
        self._storage = storage
        self._media = media or MediaTransformer()
        self._run_logger = run_logger or RunLogger(base_dir=None)
        self._poller = VideoPoller(
            provider, interval_sec=poll_interval_sec, timeout_sec=timeout_sec, clock=clock, sleep=sleep
        )
        self._timeout_sec = timeout_sec
        self._download_timeout = download_timeout

    def generate(self, request: VideoGenerationRequest, job: Job, tmp_dir: str | Path) -> GeneratedVideo:
        if not request.prompt or not request.prompt.strip():
            raise InvalidConfigError("Video generation prompt is empty", reason=EMPTY_PROMPT)

        prefix = job_temp_prefix(job.project_id, job.session_id, job.id)
        self._run_logger.log_prompt(job.id, self.name, request.prompt)
        operation_name = self._provider.submit_video(request, output_prefix=prefix)
        logger.info(
            "Submitted video job %s for %s (%ss, %s)",
            operation_name,
            job.id,
            request.duration_seconds,
            request.aspect_ratio,
        )

        operation = self._poller.wait(operation_name)
        self._run_logger.log_response(
            job.id,
            self.name,
            {
                "operation": operation.name,
                "state": operation.state.value,
                "polls": operation.polls,
                "artifact_uri": operation.artifact_uri,
                "error": operation.error_message,
            },
        )
        self._raise_for_state(operation)

        local_path = Path(tmp_dir) / "ai-output.mp4"
        storage_path = self._land_artifact(operation.artifact_uri, job, local_path)

        try:
            dimensions, duration = self._media.probe_video(local_path)
        except MediaTransformError as exc:
            raise ProviderError(f"Generated video is unreadable: {exc}") from exc

        return GeneratedVideo(
            local_path=str(local_path),
            mime_type="video/mp4",
            size_bytes=file_size(local_path),
            duration_seconds=duration,
            dimensions=dimensions,
            storage_path=storage_path,
        )

    def _raise_for_state(self, operation: VideoOperation) -> None:
        context = {"operation": operation.name, "polls": operation.polls}
        if operation.state is VideoOperationState.SUCCEEDED:
            return
        if operation.state is VideoOperationState.FILTERED:
            raise FilteredError(
                operation.error_message or "Video was rejected by content safety", context=context
            )
        if operation.state is VideoOperationState.TIMED_OUT:
            raise GenerationTimeoutError(
                f"Video generation did not finish within {self._timeout_sec:.0f}s", context=context
            )
        raise ProviderError(operation.error_message or "Video generation failed", context=context)

    def _land_artifact(self, artifact_uri: str, job: Job, local_path: Path) -> Optional[str]:
        """Fetch the artifact locally; return its canonical key when copied in-bucket."""
        source_key = self._storage.key_from_uri(artifact_uri)
        if source_key:
            destination = output_storage_path(job.project_id, job.session_id, "output", "mp4")
            self._storage.copy(source_key, destination)
            try:
                self._storage.delete(source_key)
            except (UploadError, MediaNotFoundError) as exc:
                logger.warning("Could not delete video intermediate %s: %s", source_key, exc)
            self._storage.download(destination, local_path)
            return destination

        parsed = urlparse(artifact_uri)
        if parsed.scheme == "file":
            shutil.copyfile(unquote(parsed.path), local_path)
            return None
        self._download(artifact_uri, local_path)
        return None

    def _download(self, url: str, destination: Path) -> None:
        try:
            with requests.get(url, stream=True, timeout=self._download_timeout) as response:
                response.raise_for_status()
                with open(destination, "wb") as handle:
                    for chunk in response.iter_content(chunk_size=1 << 20):
                        if chunk:
                            handle.write(chunk)
        except requests.RequestException as exc:
            raise ProviderError(f"Failed to download generated video: {exc}") from exc
