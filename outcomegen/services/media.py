"""Image and video transforms backed by Pillow and ffmpeg."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import List, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from ..types import Dimensions
from ..utils.files import ensure_dir

# Seconds allowed per ffmpeg invocation.
FFMPEG_TIMEOUTS = {
    "probe": 30,
    "thumbnail": 15,
    "synthesize": 60,
}


class MediaTransformError(RuntimeError):
    """Raised when an image or video cannot be decoded or transformed."""


class MediaTransformer:
    """Opaque media-transform capability used by the overlay and publish stages."""

    def __init__(self, ffmpeg_bin: str = "ffmpeg", ffprobe_bin: str = "ffprobe") -> None:
        self._ffmpeg = ffmpeg_bin
        self._ffprobe = ffprobe_bin

    def image_dimensions(self, path: str | Path) -> Dimensions:
        try:
            with Image.open(path) as image:
                image = ImageOps.exif_transpose(image)
                return Dimensions(width=image.width, height=image.height)
        except (UnidentifiedImageError, OSError) as exc:
            raise MediaTransformError(f"Cannot read image {path}: {exc}") from exc

    def to_jpeg(self, path: str | Path, output_dir: str | Path) -> Path:
        """Return ``path`` unchanged if it is a JPEG, otherwise a converted copy."""
        source = Path(path)
        try:
            with Image.open(source) as image:
                if image.format == "JPEG":
                    return source
                converted = ImageOps.exif_transpose(image).convert("RGB")
                target = ensure_dir(output_dir) / f"{source.stem}-converted.jpg"
                converted.save(target, format="JPEG", quality=92)
                return target
        except (UnidentifiedImageError, OSError) as exc:
            raise MediaTransformError(f"Cannot convert {source} to JPEG: {exc}") from exc

    def composite_overlay(
        self, input_path: str | Path, overlay_path: str | Path, output_path: str | Path
    ) -> Path:
        """Stretch the overlay to the input frame and alpha-composite it on top."""
        target = Path(output_path)
        ensure_dir(target.parent)
        try:
            with Image.open(input_path) as base_image, Image.open(overlay_path) as overlay_image:
                base = ImageOps.exif_transpose(base_image).convert("RGBA")
                overlay = overlay_image.convert("RGBA")
                if overlay.size != base.size:
                    overlay = overlay.resize(base.size, Image.LANCZOS)
                composed = Image.alpha_composite(base, overlay).convert("RGB")
                composed.save(target, format="JPEG", quality=92)
        except (UnidentifiedImageError, OSError) as exc:
            raise MediaTransformError(f"Overlay composition failed: {exc}") from exc
        return target

    def image_thumbnail(self, source: str | Path, output_path: str | Path, size: int) -> Path:
        """Write a JPEG whose longest edge is at most ``size`` pixels."""
        target = Path(output_path)
        ensure_dir(target.parent)
        try:
            with Image.open(source) as image:
                thumb = ImageOps.exif_transpose(image).convert("RGB")
                thumb.thumbnail((size, size), Image.LANCZOS)
                thumb.save(target, format="JPEG", quality=85)
        except (UnidentifiedImageError, OSError) as exc:
            raise MediaTransformError(f"Thumbnail generation failed for {source}: {exc}") from exc
        return target

    def video_thumbnail(self, source: str | Path, output_path: str | Path, size: int) -> Path:
        """Grab the first frame of a video, scaled to fit ``size``."""
        target = Path(output_path)
        ensure_dir(target.parent)
        scale = f"scale='min({size},iw)':'min({size},ih)':force_original_aspect_ratio=decrease"
        self._run(
            [
                self._ffmpeg,
                "-y",
                "-ss",
                "0",
                "-i",
                str(source),
                "-frames:v",
                "1",
                "-vf",
                scale,
                str(target),
            ],
            timeout=FFMPEG_TIMEOUTS["thumbnail"],
            description="video thumbnail",
        )
        return target

    def probe_video(self, path: str | Path) -> Tuple[Dimensions, float]:
        """Read real dimensions and duration from a video file."""
        output = self._run(
            [
                self._ffprobe,
                "-v",
                "error",
                "-select_streams",
                "v:0",
                "-show_entries",
                "stream=width,height:format=duration",
                "-of",
                "json",
                str(path),
            ],
            timeout=FFMPEG_TIMEOUTS["probe"],
            description="ffprobe",
        )
        try:
            payload = json.loads(output or "{}")
            stream = (payload.get("streams") or [{}])[0]
            width = int(stream["width"])
            height = int(stream["height"])
            duration = float((payload.get("format") or {}).get("duration") or 0.0)
        except (ValueError, KeyError, TypeError) as exc:
            raise MediaTransformError(f"Unexpected ffprobe output for {path}: {output}") from exc
        return Dimensions(width=width, height=height), duration

    def synthesize_video(
        self, output_path: str | Path, *, width: int, height: int, duration: float, color: str = "teal"
    ) -> Path:
        """Render a solid-colour clip; used by mock generation."""
        target = Path(output_path)
        ensure_dir(target.parent)
        self._run(
            [
                self._ffmpeg,
                "-y",
                "-f",
                "lavfi",
                "-i",
                f"color=c={color}:s={width}x{height}:d={duration}",
                "-pix_fmt",
                "yuv420p",
                str(target),
            ],
            timeout=FFMPEG_TIMEOUTS["synthesize"],
            description="mock video synthesis",
        )
        return target

    def _run(self, cmd: List[str], *, timeout: int, description: str) -> str:
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except FileNotFoundError as exc:
            raise MediaTransformError(
                f"{cmd[0]} is required for {description}. Please install ffmpeg and retry."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise MediaTransformError(f"{description} timed out after {timeout}s") from exc
        if result.returncode != 0:
            raise MediaTransformError(
                f"{description} failed: "
                f"{result.stderr.strip() or result.stdout.strip() or 'unknown error'}"
            )
        return result.stdout
