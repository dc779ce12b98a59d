"""S3-compatible object storage used for media inputs and published outputs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import ASSET_NOT_FOUND, MediaNotFoundError, UploadError
from ..types import MediaReference
from ..utils.files import ensure_dir

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def output_storage_path(project_id: str, session_id: str, name: str, ext: str) -> str:
    """Canonical ``{project}/{session}/{name}.{ext}`` object key."""
    return f"{project_id}/{session_id}/{name}.{ext}"


def job_temp_prefix(project_id: str, session_id: str, job_id: str) -> str:
    """Job-scoped prefix for intermediates written by providers."""
    return f"{project_id}/{session_id}/tmp/{job_id}/"


class StorageClient:
    """Thin wrapper around a boto3 S3 client.

    Every failure is translated into a classified pipeline error: a missing
    object becomes ``MEDIA_NOT_FOUND``; anything else becomes ``UPLOAD_ERROR``.
    """

    def __init__(
        self,
        bucket: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        public_base_url: str | None = None,
        public_acl: bool = True,
        client: Any = None,
    ) -> None:
        if client is None:
            kwargs: dict = {}
            if region:
                kwargs["region_name"] = region
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            client = boto3.client("s3", **kwargs)
        self._s3 = client
        self._bucket = bucket
        self._region = region
        self._endpoint_url = endpoint_url
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._public_acl = public_acl

    @property
    def bucket(self) -> str:
        return self._bucket

    def public_url(self, key: str) -> str:
        """Return the public HTTP URL of an object."""
        if self._public_base_url:
            return f"{self._public_base_url}/{key}"
        if self._endpoint_url:
            return f"{self._endpoint_url.rstrip('/')}/{self._bucket}/{key}"
        if self._region:
            return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"
        return f"https://{self._bucket}.s3.amazonaws.com/{key}"

    def key_from_uri(self, uri: str) -> Optional[str]:
        """Return the object key if ``uri`` points inside this bucket."""
        prefix = f"s3://{self._bucket}/"
        if uri.startswith(prefix):
            return uri[len(prefix):]
        if self._public_base_url and uri.startswith(self._public_base_url + "/"):
            return unquote(uri[len(self._public_base_url) + 1:])
        parsed = urlparse(uri)
        if parsed.scheme in {"http", "https"} and parsed.netloc.startswith(f"{self._bucket}.s3"):
            return unquote(parsed.path.lstrip("/"))
        return None

    def storage_path(self, ref: MediaReference) -> str:
        """Resolve a media reference to exactly one object key."""
        if ref.file_path:
            return ref.file_path.lstrip("/")
        key = self.key_from_uri(ref.url) if ref.url else None
        if not key:
            raise MediaNotFoundError(
                f"Media reference '{ref.display_name}' has no resolvable storage path",
                reason=ASSET_NOT_FOUND,
                context={"media_asset_id": ref.media_asset_id},
            )
        return key

    def download(self, key: str, destination: str | Path) -> Path:
        """Download an object to a local file."""
        target = Path(destination)
        ensure_dir(target.parent)
        try:
            self._s3.download_file(self._bucket, key, str(target))
        except (ClientError, BotoCoreError) as exc:
            raise self._classify(exc, key, "download") from exc
        logger.debug("Downloaded s3://%s/%s -> %s", self._bucket, key, target)
        return target

    def read_bytes(self, key: str) -> bytes:
        """Read an object fully into memory."""
        try:
            response = self._s3.get_object(Bucket=self._bucket, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as exc:
            raise self._classify(exc, key, "read") from exc

    def upload(self, local_path: str | Path, key: str, content_type: str) -> str:
        """Upload a local file and return its public URL."""
        extra: dict = {"ContentType": content_type}
        if self._public_acl:
            extra["ACL"] = "public-read"
        try:
            self._s3.upload_file(str(local_path), self._bucket, key, ExtraArgs=extra)
        except (ClientError, BotoCoreError) as exc:
            raise UploadError(
                f"Failed to upload {local_path} to {key}: {exc}", context={"key": key}
            ) from exc
        logger.info("Uploaded %s to s3://%s/%s", local_path, self._bucket, key)
        return self.public_url(key)

    def copy(self, source_key: str, destination_key: str) -> str:
        """Copy an object within the bucket and return the destination URL."""
        kwargs: dict = {
            "Bucket": self._bucket,
            "CopySource": {"Bucket": self._bucket, "Key": source_key},
            "Key": destination_key,
        }
        if self._public_acl:
            kwargs["ACL"] = "public-read"
        try:
            self._s3.copy_object(**kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise self._classify(exc, source_key, "copy") from exc
        return self.public_url(destination_key)

    def delete(self, key: str) -> None:
        try:
            self._s3.delete_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise UploadError(f"Failed to delete {key}: {exc}", context={"key": key}) from exc

    def _classify(self, exc: Exception, key: str, action: str):
        if isinstance(exc, ClientError):
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return MediaNotFoundError(
                    f"Object not found: {key}", reason=ASSET_NOT_FOUND, context={"key": key}
                )
        return UploadError(f"Storage {action} failed for {key}: {exc}", context={"key": key})
