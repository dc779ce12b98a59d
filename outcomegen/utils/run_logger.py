"""Utilities for keeping per-job prompt and response logs."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .files import ensure_dir, write_json, write_text


@dataclass(slots=True)
class StepLogPaths:
    """Convenience container with derived log file paths."""

    prompt_path: Path
    response_path: Path


class RunLogger:
    """Persists resolved prompts and provider responses under ``runs/<job_id>``.

    Passing ``base_dir=None`` disables persistence, which keeps unit tests and
    ephemeral workers from writing log trees.
    """

    def __init__(self, base_dir: str | Path | None = "runs") -> None:
        self._base_dir = ensure_dir(base_dir) if base_dir is not None else None

    @property
    def enabled(self) -> bool:
        return self._base_dir is not None

    def step_paths(self, job_id: str, step_name: str) -> StepLogPaths:
        """Return the paths used for logging a specific step."""
        if self._base_dir is None:
            raise RuntimeError("RunLogger persistence is disabled.")
        run_root = ensure_dir(self._base_dir / job_id)
        prompt_path = run_root / f"{step_name}-prompt.txt"
        response_path = run_root / f"{step_name}-response.json"
        return StepLogPaths(prompt_path=prompt_path, response_path=response_path)

    def log_prompt(self, job_id: str, step_name: str, prompt: str) -> None:
        """Persist the raw prompt text."""
        if not self.enabled:
            return
        paths = self.step_paths(job_id, step_name)
        write_text(paths.prompt_path, prompt)

    def log_response(self, job_id: str, step_name: str, response: Any) -> None:
        """Persist the structured response."""
        if not self.enabled:
            return
        paths = self.step_paths(job_id, step_name)
        write_json(paths.response_path, response)
