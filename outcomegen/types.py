"""Core data models used across the outcome pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from .errors import UNSUPPORTED_TASK, InvalidConfigError

logger = logging.getLogger(__name__)


class OutcomeType(str, Enum):
    """Kind of artifact a job produces."""

    PHOTO = "photo"
    AI_IMAGE = "ai.image"
    AI_VIDEO = "ai.video"
    # Placeholder kinds present in stored documents but not executable here.
    GIF = "gif"
    VIDEO = "video"


class OutputFormat(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


AI_IMAGE_TASKS = ("text-to-image", "image-to-image")
VALID_VIDEO_DURATIONS = (4, 6, 8)

DEFAULT_IMAGE_MODEL = "jimeng_t2i_v30"
DEFAULT_VIDEO_MODEL = "jimeng_i2v_first_v30"


@dataclass(slots=True, frozen=True)
class MediaReference:
    """Pointer to one stored binary asset."""

    media_asset_id: str
    display_name: str
    url: Optional[str] = None
    file_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MediaReference":
        return cls(
            media_asset_id=str(data.get("mediaAssetId") or data.get("media_asset_id") or ""),
            display_name=str(data.get("displayName") or data.get("display_name") or ""),
            url=data.get("url"),
            file_path=data.get("filePath") or data.get("file_path"),
        )

    @staticmethod
    def looks_like(data: Any) -> bool:
        return isinstance(data, Mapping) and ("mediaAssetId" in data or "media_asset_id" in data)


# Unrecognised answer shapes are kept as parsed and render as empty text.
ResponseData = Union[None, str, Tuple[Any, ...], Any]


@dataclass(slots=True, frozen=True)
class SessionResponse:
    """Answer collected by one completed step."""

    step_id: str
    step_name: str = ""
    step_type: str = ""
    data: ResponseData = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionResponse":
        raw = data.get("data", data.get("value"))
        if isinstance(raw, list):
            items = []
            for item in raw:
                items.append(MediaReference.from_dict(item) if MediaReference.looks_like(item) else item)
            raw = tuple(items)
        elif isinstance(raw, (bool, int, float)):
            raw = str(raw)
        return cls(
            step_id=str(data.get("stepId") or data.get("step_id") or ""),
            step_name=str(data.get("stepName") or data.get("step_name") or ""),
            step_type=str(data.get("stepType") or data.get("step_type") or ""),
            data=raw,
        )

    @property
    def media(self) -> List[MediaReference]:
        """Media references held by this response, if any."""
        if not isinstance(self.data, tuple):
            return []
        return [item for item in self.data if isinstance(item, MediaReference)]


@dataclass(slots=True, frozen=True)
class PhotoOutcomeConfig:
    capture_step_id: str
    aspect_ratio: str = "1:1"


@dataclass(slots=True, frozen=True)
class ImageGenerationConfig:
    prompt: str = ""
    model: str = DEFAULT_IMAGE_MODEL
    ref_media: Tuple[MediaReference, ...] = ()
    aspect_ratio: Optional[str] = None


@dataclass(slots=True, frozen=True)
class AIImageOutcomeConfig:
    image_generation: ImageGenerationConfig
    task: str = "text-to-image"
    capture_step_id: Optional[str] = None
    aspect_ratio: str = "1:1"


@dataclass(slots=True, frozen=True)
class VideoGenerationConfig:
    prompt: str = ""
    model: str = DEFAULT_VIDEO_MODEL
    duration: int = 6
    ref_media: Tuple[MediaReference, ...] = ()
    aspect_ratio: Optional[str] = None


@dataclass(slots=True, frozen=True)
class AIVideoOutcomeConfig:
    video_generation: VideoGenerationConfig
    task: str = "image-to-video"
    capture_step_id: Optional[str] = None
    aspect_ratio: str = "9:16"


@dataclass(slots=True, frozen=True)
class Outcome:
    """Tagged outcome configuration; only the branch matching ``type`` is used."""

    type: Optional[OutcomeType] = None
    photo: Optional[PhotoOutcomeConfig] = None
    ai_image: Optional[AIImageOutcomeConfig] = None
    ai_video: Optional[AIVideoOutcomeConfig] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Outcome":
        raw_type = data.get("type")
        try:
            outcome_type = OutcomeType(raw_type) if raw_type else None
        except ValueError as exc:
            raise InvalidConfigError(
                f"Unknown outcome type: {raw_type}", reason=UNSUPPORTED_TASK
            ) from exc
        outcome = cls(
            type=outcome_type,
            photo=_parse_photo(data.get("photo")),
            ai_image=_parse_ai_image(data.get("aiImage") or data.get("ai_image")),
            ai_video=_parse_ai_video(data.get("aiVideo") or data.get("ai_video")),
        )
        branches = {
            OutcomeType.PHOTO: outcome.photo,
            OutcomeType.AI_IMAGE: outcome.ai_image,
            OutcomeType.AI_VIDEO: outcome.ai_video,
        }
        ignored = [kind.value for kind, branch in branches.items() if branch is not None and kind != outcome_type]
        if ignored:
            logger.debug(
                "Outcome tagged %s also carries %s; only the tagged branch is used",
                outcome_type.value if outcome_type else None,
                ", ".join(ignored),
            )
        return outcome


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Immutable capture of configuration and answers taken at job creation."""

    outcome: Optional[Outcome] = None
    session_responses: Tuple[SessionResponse, ...] = ()
    overlay_choice: Optional[MediaReference] = None
    experience_version: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Snapshot":
        outcome = data.get("outcome")
        overlay = data.get("overlayChoice") or data.get("overlay_choice")
        responses = data.get("sessionResponses") or data.get("session_responses") or []
        return cls(
            outcome=Outcome.from_dict(outcome) if outcome else None,
            session_responses=tuple(SessionResponse.from_dict(item) for item in responses),
            overlay_choice=MediaReference.from_dict(overlay) if overlay else None,
            experience_version=data.get("experienceVersion") or data.get("experience_version"),
        )


@dataclass(slots=True, frozen=True)
class Job:
    """One execution request created when a guest completes an experience."""

    id: str
    project_id: str
    session_id: str
    snapshot: Snapshot
    created_at: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Job":
        return cls(
            id=str(data.get("id") or ""),
            project_id=str(data.get("projectId") or data.get("project_id") or ""),
            session_id=str(data.get("sessionId") or data.get("session_id") or ""),
            snapshot=Snapshot.from_dict(data.get("snapshot") or {}),
            created_at=data.get("createdAt") or data.get("created_at"),
        )


@dataclass(slots=True, frozen=True)
class Dimensions:
    width: int
    height: int


# Nominal image output sizes per aspect ratio.
IMAGE_DIMENSIONS: Dict[str, Tuple[int, int]] = {
    "1:1": (1024, 1024),
    "3:2": (1536, 1024),
    "2:3": (1024, 1536),
    "16:9": (1792, 1024),
    "9:16": (1024, 1792),
    "4:3": (1365, 1024),
    "3:4": (1024, 1365),
}


def dimensions_for_aspect_ratio(aspect_ratio: Optional[str]) -> Dimensions:
    """Nominal output size for an aspect ratio; unknown ratios map to 1:1."""
    width, height = IMAGE_DIMENSIONS.get(aspect_ratio or "", IMAGE_DIMENSIONS["1:1"])
    return Dimensions(width=width, height=height)


@dataclass(slots=True)
class MediaInput:
    """A downloaded media buffer handed to a generation provider."""

    reference: MediaReference
    label: str
    data: bytes
    mime_type: str = "image/jpeg"


@dataclass(slots=True)
class GenerationRequest:
    """Resolved input for one image generation call."""

    prompt: str
    model: str
    aspect_ratio: str
    source_media: Optional[MediaInput] = None
    reference_media: List[MediaInput] = field(default_factory=list)


@dataclass(slots=True)
class GeneratedImage:
    local_path: str
    mime_type: str
    size_bytes: int
    dimensions: Dimensions


@dataclass(slots=True)
class VideoGenerationRequest:
    """Resolved input for one video generation call."""

    prompt: str
    model: str
    aspect_ratio: str
    duration_seconds: int
    start_frame: MediaInput
    end_frame: Optional[MediaInput] = None
    reference_frames: List[MediaInput] = field(default_factory=list)


@dataclass(slots=True)
class GeneratedVideo:
    local_path: str
    mime_type: str
    size_bytes: int
    duration_seconds: float
    dimensions: Dimensions
    storage_path: Optional[str] = None


@dataclass(slots=True, frozen=True)
class JobOutput:
    """Published result of a successful pipeline run."""

    asset_id: str
    url: str
    file_path: str
    format: OutputFormat
    dimensions: Dimensions
    size_bytes: int
    thumbnail_url: Optional[str]
    processing_time_ms: int
    duration_seconds: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "assetId": self.asset_id,
            "url": self.url,
            "filePath": self.file_path,
            "format": self.format.value,
            "dimensions": {"width": self.dimensions.width, "height": self.dimensions.height},
            "sizeBytes": self.size_bytes,
            "thumbnailUrl": self.thumbnail_url,
            "processingTimeMs": self.processing_time_ms,
        }
        if self.duration_seconds is not None:
            payload["durationSeconds"] = self.duration_seconds
        return payload


@dataclass(slots=True, frozen=True)
class ProgressReport:
    current_step: str
    percentage: int
    message: str


ProgressCallback = Callable[[ProgressReport], None]


def coerce_video_duration(value: Any) -> int:
    """Clamp to [4, 8] and snap to the nearest supported duration."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 6
    clamped = max(4.0, min(8.0, number))
    return min(VALID_VIDEO_DURATIONS, key=lambda option: abs(option - clamped))


def _parse_refs(raw: Any) -> Tuple[MediaReference, ...]:
    return tuple(MediaReference.from_dict(item) for item in (raw or []))


def _parse_photo(raw: Optional[Mapping[str, Any]]) -> Optional[PhotoOutcomeConfig]:
    if not raw:
        return None
    return PhotoOutcomeConfig(
        capture_step_id=str(raw.get("captureStepId") or ""),
        aspect_ratio=raw.get("aspectRatio") or "1:1",
    )


def _parse_ai_image(raw: Optional[Mapping[str, Any]]) -> Optional[AIImageOutcomeConfig]:
    if not raw:
        return None
    gen = raw.get("imageGeneration") or {}
    return AIImageOutcomeConfig(
        task=raw.get("task") or "text-to-image",
        capture_step_id=raw.get("captureStepId"),
        aspect_ratio=raw.get("aspectRatio") or "1:1",
        image_generation=ImageGenerationConfig(
            prompt=gen.get("prompt") or "",
            model=gen.get("model") or DEFAULT_IMAGE_MODEL,
            ref_media=_parse_refs(gen.get("refMedia")),
            aspect_ratio=gen.get("aspectRatio"),
        ),
    )


def _parse_ai_video(raw: Optional[Mapping[str, Any]]) -> Optional[AIVideoOutcomeConfig]:
    if not raw:
        return None
    gen = raw.get("videoGeneration") or {}
    task = raw.get("task") or "image-to-video"
    if task == "animate":
        task = "image-to-video"
    return AIVideoOutcomeConfig(
        task=task,
        capture_step_id=raw.get("captureStepId"),
        aspect_ratio=raw.get("aspectRatio") or "9:16",
        video_generation=VideoGenerationConfig(
            prompt=gen.get("prompt") or "",
            model=gen.get("model") or DEFAULT_VIDEO_MODEL,
            duration=coerce_video_duration(gen.get("duration", 6)),
            ref_media=_parse_refs(gen.get("refMedia")),
            aspect_ratio=gen.get("aspectRatio"),
        ),
    )
