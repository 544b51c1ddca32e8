"""Tests for snapshot storage backends.

Verifies that:
- LocalBackend lists only recognized snapshots, newest first
- LocalBackend publishes atomically and never leaves partial files
- S3Backend maps boto3 calls and errors to the storage contract
- create_backend honours the configured backend and location overrides
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from site_backup.config.models import StorageSettings
from site_backup.errors import (
    ConfigurationError,
    DownloadError,
    InvalidLocationError,
    SnapshotNotFoundError,
    UploadError,
)
from site_backup.storage import create_backend
from site_backup.storage.local import LocalBackend
from site_backup.storage.s3 import S3Backend


def _client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


# ============================================================================
# Test: LocalBackend
# ============================================================================


class TestLocalBackend:
    """Verify the local directory backend."""

    def _publish(self, backend: LocalBackend, tmp_path: Path, name: str, mtime: int) -> None:
        source = tmp_path / f"src-{name}"
        source.write_bytes(b"data")
        path = backend.upload(name, source, "application/gzip")
        os.utime(path, (mtime, mtime))

    def test_list_files_empty_when_directory_missing(self, backend: LocalBackend) -> None:
        """A backend whose directory does not exist yet lists nothing."""
        assert backend.list_files() == []

    def test_list_files_newest_first(self, backend: LocalBackend, tmp_path: Path) -> None:
        """Snapshots are ordered by modification time, newest first."""
        self._publish(backend, tmp_path, "a.tar.gz", 1_000)
        self._publish(backend, tmp_path, "b.sql.gz", 3_000)
        self._publish(backend, tmp_path, "c.sql", 2_000)

        assert [f.filename for f in backend.list_files()] == ["b.sql.gz", "c.sql", "a.tar.gz"]

    def test_list_files_ties_break_on_filename(self, backend: LocalBackend, tmp_path: Path) -> None:
        """Equal modification times are ordered by filename."""
        self._publish(backend, tmp_path, "b.tgz", 1_000)
        self._publish(backend, tmp_path, "a.tgz", 1_000)

        assert [f.filename for f in backend.list_files()] == ["a.tgz", "b.tgz"]

    def test_list_files_ignores_unrecognized_and_partial(
        self, backend: LocalBackend, tmp_path: Path
    ) -> None:
        """Only recognized snapshot extensions are listed; hidden partials are not."""
        self._publish(backend, tmp_path, "good.tar.gz", 1_000)
        (backend.directory / "notes.txt").write_text("x")
        (backend.directory / ".other.tar.gz.partial").write_text("x")
        (backend.directory / "subdir.sql").mkdir()

        assert [f.filename for f in backend.list_files()] == ["good.tar.gz"]

    def test_list_files_reports_size(self, backend: LocalBackend, tmp_path: Path) -> None:
        """FileDescriptor carries the file size."""
        self._publish(backend, tmp_path, "a.sql", 1_000)
        assert backend.list_files()[0].size == 4

    def test_upload_replaces_without_partial_leftovers(
        self, backend: LocalBackend, tmp_path: Path
    ) -> None:
        """Uploading copies the file into place and leaves no partial file."""
        source = tmp_path / "dump.sql.gz"
        source.write_bytes(b"payload")

        path = backend.upload("nightly.sql.gz", source, "application/gzip")

        assert path == backend.directory / "nightly.sql.gz"
        assert path.read_bytes() == b"payload"
        assert sorted(p.name for p in backend.directory.iterdir()) == ["nightly.sql.gz"]

    def test_upload_of_file_already_in_place_is_noop(self, backend: LocalBackend) -> None:
        """A file built directly at its destination is left as is."""
        backend.directory.mkdir(parents=True)
        path = backend.path_for("x.sql")
        path.write_text("select 1;")

        assert backend.upload("x.sql", path, "application/sql") == path
        assert path.read_text() == "select 1;"

    def test_upload_failure_raises_upload_error(self, backend: LocalBackend, tmp_path: Path) -> None:
        """A missing source file surfaces as UploadError, with no partial file left."""
        with pytest.raises(UploadError):
            backend.upload("x.sql", tmp_path / "missing.sql", "application/sql")
        assert not (backend.directory / ".x.sql.partial").exists()

    def test_file_returns_local_path(self, backend: LocalBackend, tmp_path: Path) -> None:
        """file() resolves to the snapshot's path."""
        self._publish(backend, tmp_path, "a.sql", 1_000)
        handle = backend.file("a.sql")
        assert handle.path == backend.directory / "a.sql"
        assert handle.url is None

    def test_file_missing_raises_not_found(self, backend: LocalBackend) -> None:
        """file() of an absent snapshot raises SnapshotNotFoundError."""
        with pytest.raises(SnapshotNotFoundError):
            backend.file("nope.tar.gz")

    def test_path_components_rejected(self, backend: LocalBackend) -> None:
        """Filenames cannot escape the backend directory."""
        with pytest.raises(SnapshotNotFoundError):
            backend.path_for("../etc/passwd.sql")

    def test_exists_download_delete(self, backend: LocalBackend, tmp_path: Path) -> None:
        """exists/download/delete operate on the published file."""
        self._publish(backend, tmp_path, "a.sql", 1_000)
        assert backend.exists("a.sql")

        copied = backend.download("a.sql", tmp_path / "work" / "a.sql")
        assert copied.read_bytes() == b"data"

        backend.delete("a.sql")
        assert not backend.exists("a.sql")

    def test_is_not_remote(self, backend: LocalBackend) -> None:
        assert backend.is_remote() is False


# ============================================================================
# Test: S3Backend
# ============================================================================


class TestS3Backend:
    """Verify the S3 backend against a mocked boto3 client."""

    @pytest.fixture
    def client(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def s3(self, client: MagicMock) -> S3Backend:
        return S3Backend("forum-backups", prefix="site/", client=client)

    def test_is_remote(self, s3: S3Backend) -> None:
        assert s3.is_remote() is True

    def test_upload_sets_content_type(self, s3: S3Backend, client: MagicMock, tmp_path: Path) -> None:
        """upload_file is called with the prefixed key and ContentType."""
        source = tmp_path / "a.tar.gz"
        source.write_bytes(b"x")

        key = s3.upload("a.tar.gz", source, "application/gzip")

        assert key == "site/a.tar.gz"
        client.upload_file.assert_called_once_with(
            str(source),
            "forum-backups",
            "site/a.tar.gz",
            ExtraArgs={"ContentType": "application/gzip"},
        )

    def test_upload_without_content_type(self, s3: S3Backend, client: MagicMock, tmp_path: Path) -> None:
        """Content type is optional; no ExtraArgs are sent without one."""
        source = tmp_path / "a.sql"
        source.write_bytes(b"x")

        s3.upload("a.sql", source)

        client.upload_file.assert_called_once_with(
            str(source), "forum-backups", "site/a.sql", ExtraArgs=None
        )

    def test_upload_missing_bucket(self, s3: S3Backend, client: MagicMock, tmp_path: Path) -> None:
        """NoSuchBucket becomes an UploadError naming the bucket."""
        client.upload_file.side_effect = _client_error("NoSuchBucket", "PutObject")
        with pytest.raises(UploadError, match="forum-backups"):
            s3.upload("a.tar.gz", tmp_path / "a.tar.gz", "application/gzip")

    def test_list_files_paginates_and_filters(self, s3: S3Backend, client: MagicMock) -> None:
        """Objects across pages are listed; nested keys and foreign files are skipped."""
        modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"Contents": [{"Key": "site/a.tar.gz", "Size": 10, "LastModified": modified}]},
            {
                "Contents": [
                    {"Key": "site/b.sql.gz", "Size": 5, "LastModified": modified},
                    {"Key": "site/readme.txt", "Size": 1, "LastModified": modified},
                    {"Key": "site/old/c.sql", "Size": 1, "LastModified": modified},
                ]
            },
            {},
        ]
        client.get_paginator.return_value = paginator

        files = s3.list_files()

        paginator.paginate.assert_called_once_with(Bucket="forum-backups", Prefix="site/")
        assert [(f.filename, f.size) for f in files] == [("a.tar.gz", 10), ("b.sql.gz", 5)]

    def test_exists_false_on_404(self, s3: S3Backend, client: MagicMock) -> None:
        client.head_object.side_effect = _client_error("404")
        assert s3.exists("a.tar.gz") is False

    def test_exists_other_errors_raise(self, s3: S3Backend, client: MagicMock) -> None:
        """Errors other than not-found are not mistaken for absence."""
        client.head_object.side_effect = _client_error("AccessDenied")
        with pytest.raises(DownloadError):
            s3.exists("a.tar.gz")

    def test_file_returns_presigned_url(self, s3: S3Backend, client: MagicMock) -> None:
        """file() hands out a presigned GET URL with the configured TTL."""
        client.generate_presigned_url.return_value = "https://signed"

        handle = s3.file("a.tar.gz")

        assert handle.url == "https://signed"
        client.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "forum-backups", "Key": "site/a.tar.gz"},
            ExpiresIn=300,
        )

    def test_file_missing_raises_not_found(self, s3: S3Backend, client: MagicMock) -> None:
        client.head_object.side_effect = _client_error("404")
        with pytest.raises(SnapshotNotFoundError):
            s3.file("a.tar.gz")

    def test_download_not_found(self, s3: S3Backend, client: MagicMock, tmp_path: Path) -> None:
        client.download_file.side_effect = _client_error("404", "GetObject")
        with pytest.raises(SnapshotNotFoundError):
            s3.download("a.tar.gz", tmp_path / "a.tar.gz")

    def test_download_failure(self, s3: S3Backend, client: MagicMock, tmp_path: Path) -> None:
        client.download_file.side_effect = _client_error("InternalError", "GetObject")
        with pytest.raises(DownloadError):
            s3.download("a.tar.gz", tmp_path / "a.tar.gz")


# ============================================================================
# Test: create_backend
# ============================================================================


class TestCreateBackend:
    """Verify backend selection."""

    def test_default_is_local_relative_to_base_dir(self, tmp_path: Path) -> None:
        backend = create_backend(StorageSettings(local_dir="snaps"), base_dir=tmp_path)
        assert isinstance(backend, LocalBackend)
        assert backend.directory == tmp_path / "snaps"

    def test_location_override_to_local(self, tmp_path: Path) -> None:
        settings = StorageSettings(backend="s3", s3_bucket="b")
        assert isinstance(create_backend(settings, location="local", base_dir=tmp_path), LocalBackend)

    def test_s3_requires_bucket(self) -> None:
        with pytest.raises(ConfigurationError, match="s3_bucket"):
            create_backend(StorageSettings(), location="s3")

    def test_remote_alias_selects_s3(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """'remote' is accepted as an alias for 's3'."""
        monkeypatch.setattr("site_backup.storage.s3.boto3.client", MagicMock())
        backend = create_backend(StorageSettings(s3_bucket="b"), location="remote")
        assert isinstance(backend, S3Backend)

    def test_unknown_location(self) -> None:
        with pytest.raises(InvalidLocationError):
            create_backend(StorageSettings(), location="ftp")
