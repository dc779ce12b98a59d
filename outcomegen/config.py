"""Configuration containers for the outcome pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar


@dataclass(slots=True)
class PipelineConfig:
    """Static configuration applied to every job execution.

    Clients are built from this object once, when the pipeline is constructed;
    nothing below the pipeline reads the process environment.
    """

    env_prefix: ClassVar[str] = "OUTCOMEGEN_"

    runs_dir: str = "runs"
    tmp_root: str | None = None
    enable_mock_generation: bool = True
    storage_bucket: str = "outcomegen-media"
    storage_region: str | None = None
    storage_endpoint_url: str | None = None
    storage_public_base_url: str | None = None
    jimeng_api_key: str | None = None
    jimeng_api_secret: str | None = None
    jimeng_api_url: str | None = None
    video_poll_interval_sec: float = 15.0
    video_timeout_sec: float = 300.0
    thumbnail_size: int = 300

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Create a config object populated from environment variables."""
        prefix = cls.env_prefix
        return cls(
            runs_dir=os.getenv(f"{prefix}RUNS_DIR", "runs"),
            tmp_root=os.getenv(f"{prefix}TMP_ROOT") or None,
            enable_mock_generation=os.getenv(f"{prefix}ENABLE_MOCKS", "true").lower() == "true",
            storage_bucket=os.getenv(f"{prefix}STORAGE_BUCKET", "outcomegen-media"),
            storage_region=os.getenv(f"{prefix}STORAGE_REGION"),
            storage_endpoint_url=os.getenv(f"{prefix}STORAGE_ENDPOINT_URL"),
            storage_public_base_url=os.getenv(f"{prefix}STORAGE_PUBLIC_BASE_URL"),
            jimeng_api_key=os.getenv("JIMENG_API_KEY"),
            jimeng_api_secret=os.getenv("JIMENG_API_SECRET"),
            jimeng_api_url=os.getenv("JIMENG_API_URL"),
            video_poll_interval_sec=float(os.getenv(f"{prefix}VIDEO_POLL_INTERVAL_SEC", "15")),
            video_timeout_sec=float(os.getenv(f"{prefix}VIDEO_TIMEOUT_SEC", "300")),
            thumbnail_size=int(os.getenv(f"{prefix}THUMBNAIL_SIZE", "300")),
        )
