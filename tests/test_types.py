"""Tests for job document parsing and the error taxonomy."""

from __future__ import annotations

import unittest

from outcomegen.errors import (
    EMPTY_PROMPT,
    UNSUPPORTED_TASK,
    ErrorCode,
    FilteredError,
    GenerationTimeoutError,
    InvalidConfigError,
    MediaNotFoundError,
    ProviderError,
    UploadError,
)
from outcomegen.types import (
    Job,
    OutcomeType,
    coerce_video_duration,
    dimensions_for_aspect_ratio,
)


def _job_document(outcome: dict) -> dict:
    return {
        "id": "job-1",
        "projectId": "proj",
        "sessionId": "sess",
        "snapshot": {
            "outcome": outcome,
            "sessionResponses": [
                {
                    "stepId": "capture",
                    "stepName": "selfie",
                    "stepType": "capture.photo",
                    "data": [{"mediaAssetId": "m1", "displayName": "selfie", "filePath": "p/s/m1.jpg"}],
                },
                {"stepId": "age", "data": 42},
            ],
            "overlayChoice": {"mediaAssetId": "ov", "displayName": "frame", "filePath": "p/ov.png"},
        },
    }


class JobParsingTest(unittest.TestCase):
    def test_parses_ai_video_document(self) -> None:
        job = Job.from_dict(
            _job_document(
                {
                    "type": "ai.video",
                    "aiVideo": {
                        "task": "animate",
                        "captureStepId": "capture",
                        "aspectRatio": "16:9",
                        "videoGeneration": {"prompt": "dance", "model": "m", "duration": 7},
                    },
                }
            )
        )

        outcome = job.snapshot.outcome
        self.assertIs(outcome.type, OutcomeType.AI_VIDEO)
        self.assertEqual(outcome.ai_video.task, "image-to-video")
        self.assertEqual(outcome.ai_video.video_generation.duration, 6)
        self.assertEqual(outcome.ai_video.video_generation.ref_media, ())
        self.assertIsNone(outcome.ai_video.video_generation.aspect_ratio)
        self.assertEqual(job.snapshot.overlay_choice.display_name, "frame")
        self.assertEqual(job.snapshot.session_responses[0].media[0].file_path, "p/s/m1.jpg")
        self.assertEqual(job.snapshot.session_responses[1].data, "42")

    def test_parses_ai_image_refs(self) -> None:
        job = Job.from_dict(
            _job_document(
                {
                    "type": "ai.image",
                    "aiImage": {
                        "task": "image-to-image",
                        "captureStepId": "capture",
                        "aspectRatio": "3:4",
                        "imageGeneration": {
                            "prompt": "as @{ref:r1}",
                            "model": "jimeng",
                            "refMedia": [{"mediaAssetId": "r1", "displayName": "hobbit", "url": "u"}],
                        },
                    },
                }
            )
        )
        config = job.snapshot.outcome.ai_image
        self.assertEqual(config.image_generation.ref_media[0].display_name, "hobbit")
        self.assertEqual(config.aspect_ratio, "3:4")

    def test_unknown_outcome_type_is_unsupported(self) -> None:
        with self.assertRaises(InvalidConfigError) as ctx:
            Job.from_dict(_job_document({"type": "hologram"}))
        self.assertEqual(ctx.exception.reason, UNSUPPORTED_TASK)

    def test_untagged_branches_are_logged_and_ignored(self) -> None:
        document = _job_document(
            {
                "type": "photo",
                "photo": {"captureStepId": "capture"},
                "aiImage": {"task": "text-to-image", "imageGeneration": {"prompt": "x"}},
            }
        )
        with self.assertLogs("outcomegen.types", level="DEBUG") as logs:
            job = Job.from_dict(document)

        self.assertIs(job.snapshot.outcome.type, OutcomeType.PHOTO)
        self.assertIn("ai.image", logs.output[0])

    def test_duration_coercion(self) -> None:
        cases = {1: 4, 4: 4, 4.9: 4, 5.1: 6, 6: 6, 7.4: 8, 20: 8, "8": 8, None: 6, "abc": 6}
        for raw, expected in cases.items():
            with self.subTest(raw=raw):
                self.assertEqual(coerce_video_duration(raw), expected)

    def test_dimension_table(self) -> None:
        self.assertEqual(dimensions_for_aspect_ratio("9:16").height, 1792)
        self.assertEqual(dimensions_for_aspect_ratio("4:3").width, 1365)
        self.assertEqual(dimensions_for_aspect_ratio("21:9"), dimensions_for_aspect_ratio("1:1"))


class ErrorTaxonomyTest(unittest.TestCase):
    def test_retryable_codes(self) -> None:
        retryable = {
            cls.code: cls("x").is_retryable
            for cls in (
                InvalidConfigError,
                MediaNotFoundError,
                ProviderError,
                FilteredError,
                GenerationTimeoutError,
                UploadError,
            )
        }
        self.assertEqual(
            retryable,
            {
                ErrorCode.INVALID_CONFIG: False,
                ErrorCode.MEDIA_NOT_FOUND: False,
                ErrorCode.PROVIDER_ERROR: True,
                ErrorCode.FILTERED: False,
                ErrorCode.TIMEOUT: True,
                ErrorCode.UPLOAD_ERROR: True,
            },
        )

    def test_job_error_document(self) -> None:
        error = InvalidConfigError("prompt is empty", reason=EMPTY_PROMPT)
        error.with_context(job_id="j1").with_context(job_id="ignored", task="ai.image")

        document = error.to_job_error(step="ai.image")

        self.assertEqual(document["code"], "INVALID_CONFIG")
        self.assertEqual(document["message"], "prompt is empty")
        self.assertFalse(document["isRetryable"])
        self.assertIsInstance(document["timestamp"], int)
        self.assertEqual(error.context, {"job_id": "j1", "task": "ai.image"})
        self.assertIn("EMPTY_PROMPT", str(error))


if __name__ == "__main__":
    unittest.main()
