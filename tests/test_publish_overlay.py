"""Tests for the overlay compositor and output publisher."""

from __future__ import annotations

import io
import tempfile
import unittest
from pathlib import Path

from PIL import Image

from fakes import FakeMediaTransformer, InMemoryS3, image_bytes, make_storage
from outcomegen.errors import MediaNotFoundError, UploadError
from outcomegen.operations.overlay import OverlayCompositor
from outcomegen.operations.publish import OutputPublisher, output_asset_id
from outcomegen.types import Dimensions, MediaReference, OutputFormat


class OverlayCompositorTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)
        self.s3 = InMemoryS3()
        self.compositor = OverlayCompositor(make_storage(self.s3), media=FakeMediaTransformer())

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_overlay_is_stretched_and_composited(self) -> None:
        base = self.tmp_dir / "base.jpg"
        base.write_bytes(image_bytes((100, 50), color=(0, 0, 255)))
        # Opaque red overlay at a different size: result must be red at the base size.
        self.s3.put("brand/frame.png", image_bytes((10, 10), color=(255, 0, 0, 255), fmt="PNG", mode="RGBA"))

        result = self.compositor.apply(base, MediaReference("ov", "frame", file_path="brand/frame.png"), self.tmp_dir)

        with Image.open(result) as image:
            self.assertEqual(image.size, (100, 50))
            self.assertEqual(image.format, "JPEG")
            red, green, blue = image.getpixel((50, 25))
        self.assertGreater(red, 200)
        self.assertLess(blue, 60)

    def test_transparent_overlay_keeps_base(self) -> None:
        base = self.tmp_dir / "base.jpg"
        base.write_bytes(image_bytes((40, 40), color=(0, 0, 255)))
        self.s3.put("brand/clear.png", image_bytes((40, 40), color=(255, 0, 0, 0), fmt="PNG", mode="RGBA"))

        result = self.compositor.apply(base, MediaReference("ov", "clear", file_path="brand/clear.png"), self.tmp_dir)

        with Image.open(result) as image:
            _, _, blue = image.getpixel((20, 20))
        self.assertGreater(blue, 200)

    def test_missing_overlay_asset(self) -> None:
        base = self.tmp_dir / "base.jpg"
        base.write_bytes(image_bytes())
        with self.assertRaises(MediaNotFoundError):
            self.compositor.apply(base, MediaReference("ov", "gone", file_path="brand/gone.png"), self.tmp_dir)

    def test_corrupt_overlay_is_upload_error(self) -> None:
        base = self.tmp_dir / "base.jpg"
        base.write_bytes(image_bytes())
        self.s3.put("brand/bad.png", b"garbage")
        with self.assertRaises(UploadError):
            self.compositor.apply(base, MediaReference("ov", "bad", file_path="brand/bad.png"), self.tmp_dir)


class OutputPublisherTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)
        self.s3 = InMemoryS3()
        self.publisher = OutputPublisher(
            make_storage(self.s3), media=FakeMediaTransformer(), thumbnail_size=300, clock=lambda: 12.5
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_image_publish_normalises_and_thumbnails(self) -> None:
        source = self.tmp_dir / "generated.png"
        source.write_bytes(image_bytes((900, 600), fmt="PNG"))

        output = self.publisher.publish(
            source,
            project_id="proj",
            session_id="sess",
            fmt=OutputFormat.IMAGE,
            started_at_ms=10_000,
            tmp_dir=self.tmp_dir,
        )

        self.assertEqual(output.asset_id, "sess-output")
        self.assertEqual(output.file_path, "proj/sess/output.jpg")
        self.assertEqual(output.url, "https://cdn.example.test/proj/sess/output.jpg")
        self.assertEqual(output.thumbnail_url, "https://cdn.example.test/proj/sess/thumb.jpg")
        self.assertEqual(output.dimensions, Dimensions(900, 600))
        self.assertEqual(output.processing_time_ms, 2_500)
        self.assertEqual(self.s3.extra_args["proj/sess/output.jpg"]["ContentType"], "image/jpeg")
        self.assertEqual(self.s3.extra_args["proj/sess/thumb.jpg"]["ACL"], "public-read")
        with Image.open(io.BytesIO(self.s3.objects["proj/sess/output.jpg"])) as image:
            self.assertEqual(image.format, "JPEG")
        with Image.open(io.BytesIO(self.s3.objects["proj/sess/thumb.jpg"])) as thumb:
            self.assertEqual(thumb.size, (300, 200))

    def test_republish_overwrites_same_asset(self) -> None:
        first = self.tmp_dir / "a.jpg"
        first.write_bytes(image_bytes(color=(1, 2, 3)))
        second = self.tmp_dir / "b.jpg"
        second.write_bytes(image_bytes(color=(250, 250, 250)))

        kwargs = dict(project_id="p", session_id="s", fmt=OutputFormat.IMAGE, started_at_ms=0, tmp_dir=self.tmp_dir)
        one = self.publisher.publish(first, **kwargs)
        two = self.publisher.publish(second, **kwargs)

        self.assertEqual(one.asset_id, two.asset_id)
        self.assertEqual(one.file_path, two.file_path)
        self.assertEqual(self.s3.objects["p/s/output.jpg"], second.read_bytes())
        self.assertEqual(output_asset_id("s"), "s-output")

    def test_video_already_in_place_skips_upload(self) -> None:
        video = self.tmp_dir / "ai-output.mp4"
        video.write_bytes(b"fake-mp4")

        output = self.publisher.publish(
            video,
            project_id="proj",
            session_id="sess",
            fmt=OutputFormat.VIDEO,
            started_at_ms=0,
            tmp_dir=self.tmp_dir,
            dimensions=Dimensions(720, 1280),
            duration_seconds=6.0,
            existing_storage_path="proj/sess/output.mp4",
        )

        self.assertEqual(self.s3.uploads, ["proj/sess/thumb.jpg"])
        self.assertEqual(output.file_path, "proj/sess/output.mp4")
        self.assertEqual(output.format, OutputFormat.VIDEO)
        self.assertEqual(output.duration_seconds, 6.0)
        self.assertEqual(output.to_dict()["durationSeconds"], 6.0)

    def test_video_upload_probes_when_metadata_missing(self) -> None:
        video = self.tmp_dir / "clip.mp4"
        video.write_bytes(b"fake-mp4")

        output = self.publisher.publish(
            video, project_id="p", session_id="s", fmt=OutputFormat.VIDEO, started_at_ms=0, tmp_dir=self.tmp_dir
        )

        self.assertEqual(self.s3.extra_args["p/s/output.mp4"]["ContentType"], "video/mp4")
        self.assertEqual(output.dimensions, Dimensions(720, 1280))
        self.assertEqual(output.duration_seconds, 6.0)

    def test_unreadable_image_is_upload_error(self) -> None:
        broken = self.tmp_dir / "broken.jpg"
        broken.write_bytes(b"nope")
        with self.assertRaises(UploadError):
            self.publisher.publish(
                broken, project_id="p", session_id="s", fmt=OutputFormat.IMAGE, started_at_ms=0, tmp_dir=self.tmp_dir
            )


if __name__ == "__main__":
    unittest.main()
