"""Single-shot multimodal image generation."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List

from ..errors import EMPTY_PROMPT, InvalidConfigError, ProviderError
from ..services.base import ContentPart, ImageProvider, ImageResponse
from ..services.media import MediaTransformer, MediaTransformError
from ..types import GeneratedImage, GenerationRequest, dimensions_for_aspect_ratio
from ..utils.files import atomic_write
from ..utils.run_logger import RunLogger

logger = logging.getLogger(__name__)

SOURCE_LABEL = "<source_image>"


class ImageGenerationOperation:
    """Turns a resolved prompt plus attached media into one generated image file."""

    name = "image-generation"

    def __init__(
        self,
        provider: ImageProvider,
        media: MediaTransformer | None = None,
        run_logger: RunLogger | None = None,
    ) -> None:
        self._provider = provider
        self._media = media or MediaTransformer()
        self._run_logger = run_logger or RunLogger(base_dir=None)

    def generate(self, request: GenerationRequest, tmp_dir: str | Path, *, job_id: str = "") -> GeneratedImage:
        if not request.prompt or not request.prompt.strip():
            raise InvalidConfigError("Image generation prompt is empty", reason=EMPTY_PROMPT)

        parts = self.build_parts(request)
        logger.info(
            "Generating image with %s (%s): %d media part(s)",
            request.model,
            request.aspect_ratio,
            sum(1 for part in parts if part.is_media),
        )
        if job_id:
            self._run_logger.log_prompt(job_id, self.name, request.prompt)

        response = self._provider.generate_content(
            model=request.model, parts=parts, aspect_ratio=request.aspect_ratio
        )
        image_part = self._first_image_part(response)
        if job_id:
            self._run_logger.log_response(
                job_id,
                self.name,
                {"candidates": len(response.candidates), "mime_type": image_part.mime_type},
            )

        output_path = Path(tmp_dir) / f"ai-output-{int(time.time() * 1000)}.jpg"
        atomic_write(output_path, image_part.data)
        try:
            dimensions = self._media.image_dimensions(output_path)
        except MediaTransformError:
            logger.warning("Could not decode generated image; reporting nominal size.")
            dimensions = dimensions_for_aspect_ratio(request.aspect_ratio)

        return GeneratedImage(
            local_path=str(output_path),
            mime_type=image_part.mime_type or "image/jpeg",
            size_bytes=len(image_part.data),
            dimensions=dimensions,
        )

    @staticmethod
    def build_parts(request: GenerationRequest) -> List[ContentPart]:
        """Source image first, then each reference, each preceded by its label; prompt last."""
        parts: List[ContentPart] = []
        if request.source_media is not None:
            parts.append(ContentPart(text=f"Image Reference ID: {SOURCE_LABEL}"))
            parts.append(
                ContentPart(data=request.source_media.data, mime_type=request.source_media.mime_type)
            )
        for media in request.reference_media:
            parts.append(ContentPart(text=f"Image Reference ID: {media.label}"))
            parts.append(ContentPart(data=media.data, mime_type=media.mime_type))
        parts.append(ContentPart(text=request.prompt))
        return parts

    @staticmethod
    def _first_image_part(response: ImageResponse) -> ContentPart:
        if not response.candidates:
            raise ProviderError("Image provider returned no candidates")
        for part in response.candidates[0].parts:
            if part.data:
                return part
        raise ProviderError("Image provider response contains no image data")
