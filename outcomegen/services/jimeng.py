"""即梦 (Jimeng) visual API client implementing the image and video provider protocols."""

from __future__ import annotations

import hashlib
import io
import itertools
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import urlparse

import requests
from PIL import Image, ImageDraw
from volcengine.visual.VisualService import VisualService

from ..errors import FilteredError, GenerationTimeoutError, PipelineError, ProviderError
from ..types import VideoGenerationRequest, dimensions_for_aspect_ratio
from ..utils.files import b64decode_to_bytes, b64encode, ensure_dir
from .base import ContentPart, ImageCandidate, ImageResponse, VideoJobStatus
from .media import MediaTransformer

logger = logging.getLogger(__name__)

# Risk-control rejections on input or output content.
JIMENG_RISK_CODES = {"50411", "50412", "50413", "50511", "50512", "50513"}
_SUCCESS_CODES = {"0", "10000"}
_FAILURE_STATES = {"not_found", "expired", "failed", "error"}
_VIDEO_FPS = 24

_MOCK_VIDEO_SIZES = {"16:9": (1280, 720), "9:16": (720, 1280), "1:1": (720, 720)}


class JimengClient:
    """Handles communication with 即梦的图像生成与 I2V 接口。

    When ``use_mock`` is True the client renders placeholder media locally so
    the pipeline stays runnable without hitting external services.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        api_url: Optional[str] = None,
        use_mock: bool = True,
        timeout: int = 120,
        poll_interval: float = 2.0,
        max_poll_attempts: int = 90,
        mock_dir: str | Path = "runs/mock-media",
        media: Optional[MediaTransformer] = None,
        visual_service: Any = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._api_key = api_key
        self._api_secret = api_secret
        self._api_url = api_url
        self._use_mock = use_mock
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._max_poll_attempts = max_poll_attempts
        self._sleep = sleep
        self._mock_dir = Path(mock_dir)
        self._media = media or MediaTransformer()
        self._visual_service = visual_service
        self._mock_jobs: Dict[str, VideoGenerationRequest] = {}
        self._mock_counter = itertools.count(1)

        if not self._api_secret and self._api_key and ":" in self._api_key:
            ak, sk = self._api_key.split(":", 1)
            self._api_key, self._api_secret = ak, sk

    # ------------------------------------------------------------------ image

    def generate_content(
        self, *, model: str, parts: Sequence[ContentPart], aspect_ratio: str
    ) -> ImageResponse:
        """Generate one image; the async task is submitted and polled before returning."""
        size = dimensions_for_aspect_ratio(aspect_ratio)
        width, height = size.width, size.height
        prompt = "\n".join(part.text for part in parts if part.text)
        images = [b64encode(part.data) for part in parts if part.data is not None]

        if self._use_mock:
            return ImageResponse(
                candidates=[
                    ImageCandidate(parts=[self._mock_image_part(prompt, width, height, len(images))])
                ]
            )

        form: Dict[str, Any] = {
            "req_key": model,
            "prompt": prompt,
            "width": width,
            "height": height,
            "seed": -1,
            "return_url": False,
        }
        if images:
            form["binary_data_base64"] = images

        task_id = self._submit_task(form)
        logger.info("Jimeng image task submitted: %s", task_id)
        return self._image_response(self._wait_for_image(model, task_id))

    def _wait_for_image(self, req_key: str, task_id: str) -> Dict[str, Any]:
        """Poll an image task until it yields a payload, fails, or runs out of attempts."""
        service = self._get_visual_service()
        query_form = {
            "req_key": req_key,
            "task_id": task_id,
            "req_json": json.dumps({"return_url": False}),
        }
        for _ in range(self._max_poll_attempts):
            result = self._call(service.cv_sync2async_get_result, query_form, action="CVSync2AsyncGetResult")
            status = (self._extract_string(result, ("status",)) or "").lower()
            has_payload = bool(
                self._extract_list(result, ("binary_data_base64",))
                or self._extract_list(result, ("image_urls",))
            )
            if has_payload or status == "done":
                return result
            if status in _FAILURE_STATES:
                message = self._extract_string(result, ("message", "error_message")) or "任务失败"
                raise ProviderError(f"CVSync2AsyncGetResult failed with status {status}: {message}")
            self._sleep(self._poll_interval)
        raise GenerationTimeoutError(
            f"Image task {task_id} not ready after {self._max_poll_attempts} attempts",
            context={"task_id": task_id},
        )

    def _image_response(self, response: Dict[str, Any]) -> ImageResponse:
        candidates: List[ImageCandidate] = []
        blobs = self._extract_list(response, ("binary_data_base64",))
        for blob in blobs:
            candidates.append(
                ImageCandidate(parts=[ContentPart(data=b64decode_to_bytes(blob), mime_type="image/jpeg")])
            )
        if not candidates:
            for url in self._extract_list(response, ("image_urls",)):
                candidates.append(
                    ImageCandidate(parts=[ContentPart(data=self._download_binary(url), mime_type="image/jpeg")])
                )
        return ImageResponse(candidates=candidates)

    # ------------------------------------------------------------------ video

    def submit_video(self, request: VideoGenerationRequest, *, output_prefix: str) -> str:
        """Submit an I2V task and return the operation name used for polling.

        Jimeng keeps results on its own CDN, so ``output_prefix`` is not used;
        results are returned as URLs.
        """
        if self._use_mock:
            name = f"mock:{next(self._mock_counter)}"
            self._mock_jobs[name] = request
            return name

        frames = [request.start_frame]
        if request.reference_frames:
            frames = list(request.reference_frames)
        elif request.end_frame is not None:
            frames.append(request.end_frame)

        form: Dict[str, Any] = {
            "req_key": request.model,
            "binary_data_base64": [b64encode(frame.data) for frame in frames],
            "prompt": request.prompt,
            "seed": -1,
            "frames": self._select_frame_count(request.duration_seconds, _VIDEO_FPS),
            "aspect_ratio": request.aspect_ratio,
        }
        task_id = self._submit_task(form)
        logger.info("Jimeng video task submitted: %s", task_id)
        return f"{request.model}:{task_id}"

    def _submit_task(self, form: Dict[str, Any]) -> str:
        service = self._get_visual_service()
        response = self._call(service.cv_sync2async_submit_task, form, action="CVSync2AsyncSubmitTask")
        task_id = self._extract_string(response, ("task_id", "TaskId"))
        if not task_id:
            raise ProviderError(f"CVSync2AsyncSubmitTask response missing task_id: {response}")
        return task_id

    def get_video_status(self, operation_name: str) -> VideoJobStatus:
        """Fetch the current state of a submitted video task."""
        if self._use_mock:
            return self._mock_video_status(operation_name)

        req_key, _, task_id = operation_name.partition(":")
        query_form = {
            "req_key": req_key,
            "task_id": task_id,
            "req_json": json.dumps({"return_url": True}),
        }
        service = self._get_visual_service()
        try:
            result = self._call(
                service.cv_sync2async_get_result, query_form, action="CVSync2AsyncGetResult"
            )
        except FilteredError as exc:
            return VideoJobStatus(done=True, filtered=True, error_message=exc.message)

        status = (self._extract_string(result, ("status",)) or "").lower()
        media_url = self._extract_media_url(result)
        if status == "done" and media_url:
            return VideoJobStatus(done=True, artifact_uri=media_url)
        if status == "done":
            return VideoJobStatus(done=True, filtered=True, error_message="Video was filtered by safety policy")
        if status in _FAILURE_STATES:
            message = self._extract_string(result, ("message", "error_message")) or "任务失败"
            return VideoJobStatus(done=True, error_message=f"status {status}: {message}")
        return VideoJobStatus(done=False)

    # ------------------------------------------------------------------ mocks

    def _mock_image_part(self, prompt: str, width: int, height: int, image_count: int) -> ContentPart:
        digest = hashlib.sha256(prompt.encode("utf-8")).digest()
        image = Image.new("RGB", (width, height), color=(digest[0], digest[1], digest[2]))
        draw = ImageDraw.Draw(image)
        draw.text((24, 24), f"[mock] refs={image_count}", fill=(255, 255, 255))
        # The default bitmap font only covers Latin-1.
        caption = prompt[:80].encode("ascii", "replace").decode("ascii")
        draw.text((24, 48), caption, fill=(255, 255, 255))
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=85)
        return ContentPart(data=buffer.getvalue(), mime_type="image/jpeg")

    def _mock_video_status(self, operation_name: str) -> VideoJobStatus:
        request = self._mock_jobs.pop(operation_name, None)
        if request is None:
            return VideoJobStatus(done=True, error_message=f"Unknown mock operation {operation_name}")
        width, height = _MOCK_VIDEO_SIZES.get(request.aspect_ratio, _MOCK_VIDEO_SIZES["9:16"])
        target = ensure_dir(self._mock_dir) / f"{operation_name.replace(':', '-')}.mp4"
        self._media.synthesize_video(
            target, width=width, height=height, duration=float(request.duration_seconds)
        )
        return VideoJobStatus(done=True, artifact_uri=target.resolve().as_uri())

    # --------------------------------------------------------------- plumbing

    def _call(self, method, form: Dict[str, Any], *, action: str) -> Dict[str, Any]:
        try:
            response = method(form)
        except PipelineError:
            raise
        except Exception as exc:
            # The SDK raises bare exceptions whose text embeds the JSON error body.
            raise self._classify_failure(str(exc), action) from exc
        return self._ensure_visual_success(response, action)

    @staticmethod
    def _classify_failure(message: str, action: str) -> PipelineError:
        if any(code in message for code in JIMENG_RISK_CODES):
            return FilteredError(f"{action} rejected by content safety: {message}")
        return ProviderError(f"{action} failed: {message}")

    def _get_visual_service(self):
        if self._visual_service is None:
            service = VisualService()
            if self._api_key:
                service.set_ak(self._api_key)
            if self._api_secret:
                service.set_sk(self._api_secret)
            if self._api_url:
                parsed = urlparse(self._api_url)
                if parsed.scheme:
                    service.set_scheme(parsed.scheme)
                host = parsed.netloc or parsed.path
                if host:
                    service.set_host(host)
            if self._timeout:
                service.set_connection_timeout(self._timeout)
                service.set_socket_timeout(self._timeout)
            self._visual_service = service
        return self._visual_service

    @classmethod
    def _ensure_visual_success(cls, response: Dict[str, Any], action: str) -> Dict[str, Any]:
        if not isinstance(response, dict):
            raise ProviderError(f"{action} returned an unexpected payload: {response!r}")

        for key in ("code", "Code", "status", "Status"):
            code = response.get(key)
            if code is None:
                continue
            code_str = str(code)
            if code_str not in _SUCCESS_CODES:
                message = response.get("message") or response.get("Message") or "Unknown error"
                error_cls = FilteredError if code_str in JIMENG_RISK_CODES else ProviderError
                raise error_cls(f"{action} error [{code_str}]: {message}")

        metadata = response.get("ResponseMetadata") or response.get("response_metadata")
        if isinstance(metadata, dict):
            error = metadata.get("Error") or metadata.get("error")
            if isinstance(error, dict):
                code = str(error.get("Code") or error.get("code") or "").strip()
                if code and code.lower() not in {"0", "ok", "success"}:
                    message = error.get("Message") or error.get("message") or ""
                    raise ProviderError(f"{action} error [{code}]: {message}")
        return response

    @staticmethod
    def _select_frame_count(duration: Any, fps: int) -> int:
        valid = [121, 241]
        if duration is None:
            return valid[0]
        try:
            duration_val = float(duration)
        except (TypeError, ValueError):
            return valid[0]
        approx = int(round(max(duration_val, 0) * fps)) + 1
        return min(valid, key=lambda option: abs(option - approx))

    @staticmethod
    def _candidate_containers(response: dict) -> list[dict]:
        containers: list[dict] = []
        seen: set[int] = set()
        stack: list[Any] = [response]
        while stack:
            item = stack.pop()
            if isinstance(item, dict):
                identifier = id(item)
                if identifier in seen:
                    continue
                seen.add(identifier)
                containers.append(item)
                stack.extend(item.values())
            elif isinstance(item, list):
                stack.extend(item)
        return containers

    @classmethod
    def _extract_string(cls, response: dict, candidates: tuple[str, ...]) -> Optional[str]:
        lowered = {candidate.replace("_", "").lower() for candidate in candidates}
        for container in cls._candidate_containers(response):
            for key, value in container.items():
                normalized = key.replace("_", "").lower()
                if isinstance(value, str) and value and normalized in lowered:
                    return value
        return None

    @classmethod
    def _extract_list(cls, response: dict, candidates: tuple[str, ...]) -> List[str]:
        lowered = {candidate.lower() for candidate in candidates}
        for container in cls._candidate_containers(response):
            for key, value in container.items():
                if key.lower() in lowered and isinstance(value, list):
                    return [item for item in value if isinstance(item, str) and item]
        return []

    @classmethod
    def _extract_media_url(cls, response: Dict[str, Any]) -> Optional[str]:
        for container in cls._candidate_containers(response):
            for key, value in container.items():
                lowered = key.lower()
                if isinstance(value, str) and value and lowered in {"video_url", "url"}:
                    return value
                if isinstance(value, list) and value and lowered in {"video_urls", "urls"}:
                    first = next((item for item in value if isinstance(item, str) and item), None)
                    if first:
                        return first
        return None

    def _download_binary(self, url: str) -> bytes:
        try:
            response = requests.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ProviderError(f"Failed to download generated image: {exc}") from exc
        return response.content
