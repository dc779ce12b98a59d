"""Provider protocols and the wire shapes exchanged with them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from ..types import VideoGenerationRequest


@dataclass(slots=True)
class ContentPart:
    """One element of an ordered multimodal request or response."""

    text: Optional[str] = None
    data: Optional[bytes] = None
    mime_type: Optional[str] = None

    @property
    def is_media(self) -> bool:
        return self.data is not None


@dataclass(slots=True)
class ImageCandidate:
    parts: List[ContentPart] = field(default_factory=list)


@dataclass(slots=True)
class ImageResponse:
    candidates: List[ImageCandidate] = field(default_factory=list)


@dataclass(slots=True)
class VideoJobStatus:
    """Provider-side view of a submitted video job."""

    done: bool
    artifact_uri: Optional[str] = None
    error_message: Optional[str] = None
    filtered: bool = False


class ImageProvider(Protocol):
    """Synchronous request/response image generation service."""

    def generate_content(
        self, *, model: str, parts: Sequence[ContentPart], aspect_ratio: str
    ) -> ImageResponse:
        ...


class VideoProvider(Protocol):
    """Submit-then-poll video generation service."""

    def submit_video(self, request: VideoGenerationRequest, *, output_prefix: str) -> str:
        ...

    def get_video_status(self, operation_name: str) -> VideoJobStatus:
        ...
