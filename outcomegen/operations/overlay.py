"""Branding overlay applied to image outputs."""

from __future__ import annotations

import logging
from pathlib import Path

from ..errors import UploadError
from ..services.media import MediaTransformer, MediaTransformError
from ..services.storage import StorageClient
from ..types import MediaReference

logger = logging.getLogger(__name__)


class OverlayCompositor:
    """Downloads an overlay asset and composites it over a local image."""

    def __init__(self, storage: StorageClient, media: MediaTransformer | None = None) -> None:
        self._storage = storage
        self._media = media or MediaTransformer()

    def apply(self, input_path: str | Path, overlay_ref: MediaReference, tmp_dir: str | Path) -> Path:
        tmp = Path(tmp_dir)
        overlay_key = self._storage.storage_path(overlay_ref)
        overlay_path = self._storage.download(overlay_key, tmp / f"overlay{Path(overlay_key).suffix or '.png'}")
        output_path = tmp / f"{Path(input_path).stem}-overlay.jpg"
        logger.info("Applying overlay %s to %s", overlay_ref.display_name or overlay_key, input_path)
        try:
            return self._media.composite_overlay(input_path, overlay_path, output_path)
        except MediaTransformError as exc:
            raise UploadError(
                f"Overlay composition failed: {exc}",
                context={"overlay": overlay_ref.media_asset_id},
            ) from exc
