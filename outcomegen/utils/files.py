"""File system helpers shared across the pipeline."""

from __future__ import annotations

import base64
import json
import mimetypes
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any


def ensure_dir(path: str | Path) -> Path:
    """Create the directory if it does not exist."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def write_text(path: str | Path, content: str) -> Path:
    """Write UTF-8 text to disk."""
    target = Path(path)
    ensure_dir(target.parent)
    target.write_text(content, encoding="utf-8")
    return target


def write_json(path: str | Path, data: Any) -> Path:
    """Serialize a Python object as JSON to disk."""
    payload = json.dumps(data, indent=2, ensure_ascii=False, default=str)
    return write_text(path, payload)


def atomic_write(path: str | Path, content: bytes) -> Path:
    """Write binary content to disk atomically."""
    target = Path(path)
    ensure_dir(target.parent)
    temp_path = target.with_suffix(target.suffix + ".tmp")
    with open(temp_path, "wb") as handle:
        handle.write(content)
    os.replace(temp_path, target)
    return target


def b64encode(data: bytes) -> str:
    """Encode bytes to a base64 string without newlines."""
    return base64.b64encode(data).decode("utf-8")


def b64decode_to_bytes(data: str) -> bytes:
    """Decode a base64 string into bytes."""
    return base64.b64decode(data.encode("utf-8"))


def file_size(path: str | Path) -> int:
    return Path(path).stat().st_size


def guess_mime_type(path: str | Path, default: str = "application/octet-stream") -> str:
    """Best-effort MIME type from the file name."""
    mime, _ = mimetypes.guess_type(str(path))
    return mime or default


def create_job_dir(job_id: str, root: str | Path | None = None) -> Path:
    """Create a private scratch directory for one job execution."""
    if root is not None:
        ensure_dir(root)
    safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in job_id) or "job"
    return Path(tempfile.mkdtemp(prefix=f"{safe_id}-transform-", dir=root))


def remove_dir(path: str | Path) -> None:
    """Remove a scratch directory and everything in it."""
    shutil.rmtree(path, ignore_errors=True)
