"""Tests for the S3 storage wrapper, using a mocked boto3 client."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError, EndpointConnectionError

from outcomegen.errors import ASSET_NOT_FOUND, MediaNotFoundError, UploadError
from outcomegen.services.storage import StorageClient, job_temp_prefix, output_storage_path
from outcomegen.types import MediaReference


def _client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class StoragePathTest(unittest.TestCase):
    def test_canonical_paths(self) -> None:
        self.assertEqual(output_storage_path("p", "s", "output", "jpg"), "p/s/output.jpg")
        self.assertEqual(output_storage_path("p", "s", "thumb", "jpg"), "p/s/thumb.jpg")
        self.assertEqual(job_temp_prefix("p", "s", "j"), "p/s/tmp/j/")


class StorageClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.s3 = MagicMock()
        self.storage = StorageClient("bucket", region="eu-west-1", client=self.s3)

    def test_builds_boto3_client_from_settings(self) -> None:
        with patch("outcomegen.services.storage.boto3.client") as factory:
            StorageClient("bucket", region="us-east-1", endpoint_url="http://minio:9000")
        factory.assert_called_once_with("s3", region_name="us-east-1", endpoint_url="http://minio:9000")

    def test_public_urls(self) -> None:
        self.assertEqual(
            self.storage.public_url("p/s/output.jpg"),
            "https://bucket.s3.eu-west-1.amazonaws.com/p/s/output.jpg",
        )
        cdn = StorageClient("bucket", public_base_url="https://cdn.test/", client=self.s3)
        self.assertEqual(cdn.public_url("a/b.jpg"), "https://cdn.test/a/b.jpg")
        self.assertEqual(cdn.key_from_uri("https://cdn.test/a/b%20c.jpg"), "a/b c.jpg")

    def test_key_from_uri(self) -> None:
        self.assertEqual(self.storage.key_from_uri("s3://bucket/p/s/tmp/x.mp4"), "p/s/tmp/x.mp4")
        self.assertEqual(
            self.storage.key_from_uri("https://bucket.s3.eu-west-1.amazonaws.com/p/x.mp4"), "p/x.mp4"
        )
        self.assertIsNone(self.storage.key_from_uri("s3://other-bucket/p/x.mp4"))
        self.assertIsNone(self.storage.key_from_uri("https://provider.example/x.mp4"))

    def test_storage_path_prefers_file_path(self) -> None:
        ref = MediaReference("m1", "selfie", url="s3://bucket/ignored.jpg", file_path="/p/s/m1.jpg")
        self.assertEqual(self.storage.storage_path(ref), "p/s/m1.jpg")
        self.assertEqual(
            self.storage.storage_path(MediaReference("m2", "x", url="s3://bucket/p/m2.jpg")), "p/m2.jpg"
        )

    def test_unresolvable_reference(self) -> None:
        with self.assertRaises(MediaNotFoundError) as ctx:
            self.storage.storage_path(MediaReference("m3", "x", url="https://elsewhere/m3.jpg"))
        self.assertEqual(ctx.exception.reason, ASSET_NOT_FOUND)

    def test_upload_is_public_and_typed(self) -> None:
        url = self.storage.upload("/tmp/out.jpg", "p/s/output.jpg", "image/jpeg")

        self.s3.upload_file.assert_called_once_with(
            "/tmp/out.jpg",
            "bucket",
            "p/s/output.jpg",
            ExtraArgs={"ContentType": "image/jpeg", "ACL": "public-read"},
        )
        self.assertTrue(url.endswith("/p/s/output.jpg"))

    def test_missing_object_is_media_not_found(self) -> None:
        self.s3.get_object.side_effect = _client_error("NoSuchKey")
        with self.assertRaises(MediaNotFoundError):
            self.storage.read_bytes("p/missing.jpg")

        self.s3.download_file.side_effect = _client_error("404", "HeadObject")
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(MediaNotFoundError):
                self.storage.download("p/missing.jpg", Path(tmp) / "x.jpg")

    def test_other_failures_are_upload_errors(self) -> None:
        self.s3.upload_file.side_effect = _client_error("AccessDenied", "PutObject")
        with self.assertRaises(UploadError) as ctx:
            self.storage.upload("/tmp/out.jpg", "p/s/output.jpg", "image/jpeg")
        self.assertTrue(ctx.exception.is_retryable)

        self.s3.get_object.side_effect = EndpointConnectionError(endpoint_url="http://s3")
        with self.assertRaises(UploadError):
            self.storage.read_bytes("p/x.jpg")

    def test_copy_keeps_object_public(self) -> None:
        url = self.storage.copy("p/s/tmp/j/v.mp4", "p/s/output.mp4")

        self.s3.copy_object.assert_called_once_with(
            Bucket="bucket",
            CopySource={"Bucket": "bucket", "Key": "p/s/tmp/j/v.mp4"},
            Key="p/s/output.mp4",
            ACL="public-read",
        )
        self.assertTrue(url.endswith("/p/s/output.mp4"))


if __name__ == "__main__":
    unittest.main()
