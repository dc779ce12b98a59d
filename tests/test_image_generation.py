"""Tests for the synchronous image generation operation."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from fakes import FakeImageProvider, image_bytes
from outcomegen.errors import EMPTY_PROMPT, ErrorCode, FilteredError, InvalidConfigError, ProviderError
from outcomegen.operations.image import SOURCE_LABEL, ImageGenerationOperation
from outcomegen.services.base import ContentPart, ImageCandidate, ImageResponse
from outcomegen.types import Dimensions, GenerationRequest, MediaInput, MediaReference


def _media(asset_id: str, label: str, data: bytes) -> MediaInput:
    return MediaInput(reference=MediaReference(asset_id, asset_id), label=label, data=data)


class ImageGenerationTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_blank_prompt_fails_before_provider_call(self) -> None:
        provider = FakeImageProvider()
        operation = ImageGenerationOperation(provider)

        with self.assertRaises(InvalidConfigError) as ctx:
            operation.generate(GenerationRequest(prompt="   ", model="m", aspect_ratio="1:1"), self.tmp_dir)

        self.assertEqual(ctx.exception.reason, EMPTY_PROMPT)
        self.assertEqual(provider.calls, [])

    def test_content_parts_order(self) -> None:
        provider = FakeImageProvider()
        request = GenerationRequest(
            prompt="Make it epic",
            model="m",
            aspect_ratio="9:16",
            source_media=_media("src", SOURCE_LABEL, b"source"),
            reference_media=[_media("r1", "<ref_hobbit>", b"one"), _media("r2", "<ref_elf>", b"two")],
        )

        ImageGenerationOperation(provider).generate(request, self.tmp_dir)

        call = provider.calls[0]
        self.assertEqual(call["aspect_ratio"], "9:16")
        rendered = [part.text if part.text is not None else part.data for part in call["parts"]]
        self.assertEqual(
            rendered,
            [
                "Image Reference ID: <source_image>",
                b"source",
                "Image Reference ID: <ref_hobbit>",
                b"one",
                "Image Reference ID: <ref_elf>",
                b"two",
                "Make it epic",
            ],
        )

    def test_writes_output_and_measures_it(self) -> None:
        provider = FakeImageProvider(
            ImageResponse(candidates=[ImageCandidate(parts=[
                ContentPart(text="here you go"),
                ContentPart(data=image_bytes((120, 90)), mime_type="image/jpeg"),
            ])])
        )

        result = ImageGenerationOperation(provider).generate(
            GenerationRequest(prompt="cat", model="m", aspect_ratio="4:3"), self.tmp_dir
        )

        path = Path(result.local_path)
        self.assertTrue(path.exists())
        self.assertTrue(path.name.startswith("ai-output-"))
        self.assertEqual(path.suffix, ".jpg")
        self.assertEqual(result.dimensions, Dimensions(120, 90))
        self.assertEqual(result.size_bytes, path.stat().st_size)

    def test_undecodable_payload_reports_nominal_size(self) -> None:
        provider = FakeImageProvider(
            ImageResponse(candidates=[ImageCandidate(parts=[ContentPart(data=b"not-an-image")])])
        )

        result = ImageGenerationOperation(provider).generate(
            GenerationRequest(prompt="cat", model="m", aspect_ratio="5:4"), self.tmp_dir
        )

        self.assertEqual(result.dimensions, Dimensions(1024, 1024))

    def test_no_candidates_is_provider_error(self) -> None:
        provider = FakeImageProvider(ImageResponse(candidates=[]))
        with self.assertRaises(ProviderError):
            ImageGenerationOperation(provider).generate(
                GenerationRequest(prompt="cat", model="m", aspect_ratio="1:1"), self.tmp_dir
            )

    def test_text_only_candidate_is_provider_error(self) -> None:
        provider = FakeImageProvider(
            ImageResponse(candidates=[ImageCandidate(parts=[ContentPart(text="I refuse")])])
        )
        with self.assertRaises(ProviderError) as ctx:
            ImageGenerationOperation(provider).generate(
                GenerationRequest(prompt="cat", model="m", aspect_ratio="1:1"), self.tmp_dir
            )
        self.assertEqual(ctx.exception.code, ErrorCode.PROVIDER_ERROR)

    def test_filtered_provider_error_propagates(self) -> None:
        provider = FakeImageProvider(error=FilteredError("blocked"))
        with self.assertRaises(FilteredError):
            ImageGenerationOperation(provider).generate(
                GenerationRequest(prompt="cat", model="m", aspect_ratio="1:1"), self.tmp_dir
            )


if __name__ == "__main__":
    unittest.main()
