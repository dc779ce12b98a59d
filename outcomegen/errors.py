"""Classified failures raised by every stage of the outcome pipeline."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Bounded failure taxonomy surfaced to the job layer."""

    INVALID_CONFIG = "INVALID_CONFIG"
    MEDIA_NOT_FOUND = "MEDIA_NOT_FOUND"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    FILTERED = "FILTERED"
    TIMEOUT = "TIMEOUT"
    UPLOAD_ERROR = "UPLOAD_ERROR"


# Finer-grained reasons carried alongside the code.
EMPTY_PROMPT = "EMPTY_PROMPT"
MISSING_OUTCOME = "MISSING_OUTCOME"
MISSING_CAPTURE_STEP = "MISSING_CAPTURE_STEP"
UNRESOLVED_REFERENCE = "UNRESOLVED_REFERENCE"
UNSUPPORTED_TASK = "UNSUPPORTED_TASK"
CAPTURE_STEP_NOT_FOUND = "CAPTURE_STEP_NOT_FOUND"
CAPTURE_STEP_NO_MEDIA = "CAPTURE_STEP_NO_MEDIA"
ASSET_NOT_FOUND = "ASSET_NOT_FOUND"
UNEXPECTED = "UNEXPECTED"

_RETRYABLE = {ErrorCode.PROVIDER_ERROR, ErrorCode.TIMEOUT, ErrorCode.UPLOAD_ERROR}


class PipelineError(Exception):
    """Base class for every classified pipeline failure.

    ``reason`` narrows the taxonomy ``code`` (e.g. ``EMPTY_PROMPT`` under
    ``INVALID_CONFIG``). ``context`` accumulates diagnostic fields such as the
    job id, task, and elapsed time as the error bubbles up.
    """

    code: ErrorCode = ErrorCode.PROVIDER_ERROR

    def __init__(
        self,
        message: str,
        *,
        reason: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason or self.code.value
        self.context: Dict[str, Any] = dict(context or {})

    @property
    def is_retryable(self) -> bool:
        return self.code in _RETRYABLE

    def with_context(self, **fields: Any) -> "PipelineError":
        """Attach diagnostic fields without overwriting ones already set."""
        for key, value in fields.items():
            self.context.setdefault(key, value)
        return self

    def to_job_error(self, step: Optional[str] = None) -> Dict[str, Any]:
        """Return the sanitized error document stored on a failed job."""
        return {
            "code": self.code.value,
            "message": self.message,
            "step": step,
            "isRetryable": self.is_retryable,
            "timestamp": int(time.time() * 1000),
        }

    def __str__(self) -> str:
        return f"[{self.code.value}/{self.reason}] {self.message}"


class InvalidConfigError(PipelineError):
    code = ErrorCode.INVALID_CONFIG


class MediaNotFoundError(PipelineError):
    code = ErrorCode.MEDIA_NOT_FOUND


class ProviderError(PipelineError):
    code = ErrorCode.PROVIDER_ERROR


class FilteredError(PipelineError):
    code = ErrorCode.FILTERED


class GenerationTimeoutError(PipelineError):
    code = ErrorCode.TIMEOUT


class UploadError(PipelineError):
    code = ErrorCode.UPLOAD_ERROR


__all__ = [
    "ErrorCode",
    "PipelineError",
    "InvalidConfigError",
    "MediaNotFoundError",
    "ProviderError",
    "FilteredError",
    "GenerationTimeoutError",
    "UploadError",
]
