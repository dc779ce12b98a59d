"""Publishing of finished artifacts and their thumbnails."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from ..errors import UploadError
from ..services.media import MediaTransformer, MediaTransformError
from ..services.storage import StorageClient, output_storage_path
from ..types import Dimensions, JobOutput, OutputFormat
from ..utils.files import file_size

logger = logging.getLogger(__name__)

_EXTENSIONS = {OutputFormat.IMAGE: "jpg", OutputFormat.VIDEO: "mp4"}
_CONTENT_TYPES = {OutputFormat.IMAGE: "image/jpeg", OutputFormat.VIDEO: "video/mp4"}


def output_asset_id(session_id: str) -> str:
    """One output per session; re-runs overwrite it."""
    return f"{session_id}-output"


class OutputPublisher:
    """Uploads the full asset plus a thumbnail to the session's canonical paths."""

    def __init__(
        self,
        storage: StorageClient,
        media: MediaTransformer | None = None,
        *,
        thumbnail_size: int = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._media = media or MediaTransformer()
        self._thumbnail_size = thumbnail_size
        self._clock = clock

    def publish(
        self,
        local_path: str | Path,
        *,
        project_id: str,
        session_id: str,
        fmt: OutputFormat,
        started_at_ms: int,
        tmp_dir: str | Path,
        dimensions: Optional[Dimensions] = None,
        duration_seconds: Optional[float] = None,
        existing_storage_path: Optional[str] = None,
    ) -> JobOutput:
        """Upload ``local_path`` as the session output.

        Dimensions are measured from the file itself when not given.
        """
        tmp = Path(tmp_dir)
        ext = _EXTENSIONS[fmt]
        key = output_storage_path(project_id, session_id, "output", ext)
        thumb_key = output_storage_path(project_id, session_id, "thumb", "jpg")

        try:
            if fmt is OutputFormat.IMAGE:
                asset_path = self._media.to_jpeg(local_path, tmp)
                if dimensions is None:
                    dimensions = self._media.image_dimensions(asset_path)
                thumb_path = self._media.image_thumbnail(asset_path, tmp / "thumb.jpg", self._thumbnail_size)
            else:
                asset_path = Path(local_path)
                if dimensions is None:
                    dimensions, duration_seconds = self._media.probe_video(asset_path)
                thumb_path = self._media.video_thumbnail(asset_path, tmp / "thumb.jpg", self._thumbnail_size)
        except MediaTransformError as exc:
            raise UploadError(f"Could not prepare output for upload: {exc}") from exc

        if existing_storage_path == key:
            logger.info("Output already at %s; skipping upload", key)
            url = self._storage.public_url(key)
        else:
            url = self._storage.upload(asset_path, key, _CONTENT_TYPES[fmt])
        thumbnail_url = self._storage.upload(thumb_path, thumb_key, "image/jpeg")

        processing_time_ms = int(self._clock() * 1000) - started_at_ms
        logger.info("Published %s output for session %s in %dms", fmt.value, session_id, processing_time_ms)
        return JobOutput(
            asset_id=output_asset_id(session_id),
            url=url,
            file_path=key,
            format=fmt,
            dimensions=dimensions,
            size_bytes=file_size(asset_path),
            thumbnail_url=thumbnail_url,
            processing_time_ms=processing_time_ms,
            duration_seconds=duration_seconds,
        )
