"""Outcome execution pipeline.

This package turns a completed guest session into a published photo,
AI-generated image, or AI-generated video.
"""

from .config import PipelineConfig  # noqa: F401
from .pipeline import JobResult, OutcomePipeline  # noqa: F401

__all__ = ["OutcomePipeline", "JobResult", "PipelineConfig"]
