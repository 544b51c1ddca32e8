"""S3-backed snapshot storage.

Snapshots are stored as single objects:
    s3://<bucket>/<prefix>/<filename>

An object only becomes visible once its upload completes (single PUT or
completed multipart upload), so a failed upload never shows up in
``list_files``.  Downloads for operators are handed out as presigned URLs.
"""

import logging
from pathlib import Path
from typing import Any

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from site_backup.errors import DownloadError, SnapshotNotFoundError, UploadError
from site_backup.naming import is_snapshot_filename
from site_backup.storage.base import FileDescriptor, FileHandle, StorageBackend

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(e: Exception) -> str:
    """AWS error code of a botocore error, or an empty string."""
    return (getattr(e, "response", None) or {}).get("Error", {}).get("Code", "")


class S3Backend(StorageBackend):
    """Snapshot storage backed by an S3 bucket.

    Args:
        bucket: Bucket name.
        prefix: Key prefix snapshots are stored under.
        region: AWS region for the client (default: from the environment).
        signed_url_ttl: Lifetime in seconds of presigned download URLs.
        client: Pre-built boto3 S3 client (tests inject a mock).
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "backups",
        region: str | None = None,
        signed_url_ttl: int = 300,
        client: Any = None,
    ) -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.signed_url_ttl = signed_url_ttl
        self._s3 = client or boto3.client("s3", region_name=region)

    def is_remote(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def file(self, filename: str, options: dict[str, Any] | None = None) -> FileHandle:
        """Presigned download URL for a snapshot.

        ``options["expires_in"]`` overrides the URL lifetime.
        """
        options = options or {}
        key = self._key(filename)
        if not self.exists(filename):
            raise SnapshotNotFoundError(f"Snapshot {filename} not found in s3://{self.bucket}/{key}")

        url = self._s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=options.get("expires_in", self.signed_url_ttl),
        )
        return FileHandle(filename=filename, url=url)

    def list_files(self) -> list[FileDescriptor]:
        """List snapshots directly under the prefix, in key order."""
        paginator = self._s3.get_paginator("list_objects_v2")
        files = []

        for page in paginator.paginate(Bucket=self.bucket, Prefix=self._key("")):
            for obj in page.get("Contents", []):
                filename = self._filename(obj["Key"])
                if filename is None or not is_snapshot_filename(filename):
                    continue
                files.append(
                    FileDescriptor(
                        filename=filename,
                        size=obj.get("Size"),
                        modified=obj.get("LastModified"),
                    )
                )

        return files

    def upload(self, filename: str, local_path: Path, content_type: str | None = None) -> str:
        """Upload ``local_path``; returns the object key."""
        key = self._key(filename)
        try:
            self._s3.upload_file(
                str(local_path),
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type} if content_type else None,
            )
        except (ClientError, BotoCoreError, S3UploadFailedError) as e:
            if _error_code(e) == "NoSuchBucket":
                raise UploadError(
                    f"S3 bucket '{self.bucket}' does not exist. Create it first."
                ) from e
            raise UploadError(f"Failed to upload {filename} to s3://{self.bucket}/{key}: {e}") from e

        logger.info("Uploaded %s to s3://%s/%s", filename, self.bucket, key)
        return key

    def exists(self, filename: str) -> bool:
        """HEAD the object; any error other than not-found raises ``DownloadError``."""
        try:
            self._s3.head_object(Bucket=self.bucket, Key=self._key(filename))
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return False
            raise DownloadError(f"Failed to look up {filename}: {e}") from e
        return True

    def download(self, filename: str, destination: Path) -> Path:
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._s3.download_file(self.bucket, self._key(filename), str(destination))
        except ClientError as e:
            destination.unlink(missing_ok=True)
            if _error_code(e) in _NOT_FOUND_CODES:
                raise SnapshotNotFoundError(f"Snapshot {filename} not found in s3://{self.bucket}") from e
            raise DownloadError(f"Failed to download {filename}: {e}") from e
        except BotoCoreError as e:
            destination.unlink(missing_ok=True)
            raise DownloadError(f"Failed to download {filename}: {e}") from e
        return destination

    def delete(self, filename: str) -> None:
        self._s3.delete_object(Bucket=self.bucket, Key=self._key(filename))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _key(self, filename: str) -> str:
        return f"{self.prefix}/{filename}" if self.prefix else filename

    def _filename(self, key: str) -> str | None:
        """Filename for a key directly under the prefix, or None."""
        head = self._key("")
        if not key.startswith(head):
            return None
        name = key[len(head):]
        return name if name and "/" not in name else None
