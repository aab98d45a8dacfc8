"""Tests for remote object access."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from blobcache.errors import (
    RemoteNotFoundError,
    RemoteUnavailableError,
    SizeExceededError,
)
from blobcache.remote import CloudFilesClient, RemoteObjectClient, RemoteObjectRef

from conftest import FakeRemoteClient

LAST_MODIFIED = datetime(2024, 1, 1, tzinfo=timezone.utc)
LAST_MODIFIED_MS = 1704067200000


@pytest.fixture
def mock_cf():
    """Patch CloudFiles and return the mock instance it produces."""
    with patch("blobcache.remote.CloudFiles") as cls:
        instance = MagicMock()
        cls.return_value = instance
        instance.cls = cls
        yield instance


class TestRemoteObjectRef:
    """Test lazy remote handles."""

    def test_creation_does_not_call_client(self):
        """Test that building a ref does not contact the remote store."""
        client = MagicMock()

        ref = RemoteObjectRef(client, "b1", "img/logo.png")

        assert ref.bucket == "b1"
        client.fetch_metadata.assert_not_called()
        client.fetch_bytes.assert_not_called()

    def test_delegates_to_client(self):
        """Test that metadata and data requests go to the client."""
        client = MagicMock()
        client.fetch_metadata.return_value = 1000
        client.fetch_bytes.return_value = b"data"
        ref = RemoteObjectRef(client, "b1", "img/logo.png")

        assert ref.get_metadata() == 1000
        assert ref.get_data(10) == b"data"
        client.fetch_metadata.assert_called_once_with("b1", "img/logo.png")
        client.fetch_bytes.assert_called_once_with("b1", "img/logo.png", 10)

    def test_fake_client_satisfies_protocol(self):
        """Test that duck-typed clients satisfy RemoteObjectClient."""
        assert isinstance(FakeRemoteClient(), RemoteObjectClient)
        assert isinstance(CloudFilesClient(), RemoteObjectClient)


class TestCloudFilesMetadata:
    """Test CloudFilesClient.fetch_metadata."""

    def test_datetime_last_modified(self, mock_cf):
        """Test conversion of a datetime Last-Modified value."""
        mock_cf.head.return_value = {"Last-Modified": LAST_MODIFIED}

        assert CloudFilesClient().fetch_metadata("b1", "img/logo.png") == LAST_MODIFIED_MS
        mock_cf.cls.assert_called_once_with("gs://b1")
        mock_cf.head.assert_called_once_with("img/logo.png")

    def test_header_string_last_modified(self, mock_cf):
        """Test conversion of an HTTP date string."""
        mock_cf.head.return_value = {"Last-Modified": "Mon, 01 Jan 2024 00:00:00 GMT"}

        assert CloudFilesClient().fetch_metadata("b1", "x") == LAST_MODIFIED_MS

    def test_s3_style_key(self, mock_cf):
        """Test the LastModified key used by S3 responses."""
        mock_cf.head.return_value = {"LastModified": LAST_MODIFIED}

        assert CloudFilesClient().fetch_metadata("s3://b1", "x") == LAST_MODIFIED_MS
        mock_cf.cls.assert_called_once_with("s3://b1")

    def test_default_protocol(self, mock_cf):
        """Test that bare buckets get the configured protocol."""
        mock_cf.head.return_value = {"Last-Modified": LAST_MODIFIED}

        CloudFilesClient(default_protocol="s3").fetch_metadata("b1", "x")

        mock_cf.cls.assert_called_once_with("s3://b1")

    def test_missing_date_returns_none(self, mock_cf):
        """Test that objects without a date report no version."""
        mock_cf.head.return_value = {"Content-Length": 10}

        assert CloudFilesClient().fetch_metadata("b1", "x") is None

    def test_unreadable_date_returns_none(self, mock_cf):
        """Test that an unparseable date reports no version."""
        mock_cf.head.return_value = {"Last-Modified": "not a date"}

        assert CloudFilesClient().fetch_metadata("b1", "x") is None

    def test_missing_object(self, mock_cf):
        """Test that a missing object raises RemoteNotFoundError."""
        mock_cf.head.return_value = None

        with pytest.raises(RemoteNotFoundError):
            CloudFilesClient().fetch_metadata("b1", "x")

    def test_library_error_wrapped(self, mock_cf):
        """Test that cloudfiles failures raise RemoteUnavailableError."""
        mock_cf.head.side_effect = ConnectionError("network down")

        with pytest.raises(RemoteUnavailableError) as exc_info:
            CloudFilesClient().fetch_metadata("b1", "x")

        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_no_bucket(self, mock_cf):
        """Test that a missing bucket raises RemoteUnavailableError."""
        with pytest.raises(RemoteUnavailableError):
            CloudFilesClient().fetch_metadata(None, "x")


class TestCloudFilesBytes:
    """Test CloudFilesClient.fetch_bytes."""

    def test_download(self, mock_cf):
        """Test downloading an object."""
        mock_cf.size.return_value = 4
        mock_cf.get.return_value = b"data"

        assert CloudFilesClient().fetch_bytes("b1", "x", 10) == b"data"
        mock_cf.get.assert_called_once_with("x")

    def test_size_checked_before_download(self, mock_cf):
        """Test that oversized objects are rejected without downloading."""
        mock_cf.size.return_value = 100

        with pytest.raises(SizeExceededError):
            CloudFilesClient().fetch_bytes("b1", "x", 10)

        mock_cf.get.assert_not_called()

    def test_size_checked_after_download(self, mock_cf):
        """Test the limit when the backend cannot report size."""
        mock_cf.size.return_value = None
        mock_cf.get.return_value = b"x" * 11

        with pytest.raises(SizeExceededError):
            CloudFilesClient().fetch_bytes("b1", "x", 10)

    def test_missing_object(self, mock_cf):
        """Test that a missing object raises RemoteNotFoundError."""
        mock_cf.size.return_value = None
        mock_cf.get.return_value = None

        with pytest.raises(RemoteNotFoundError):
            CloudFilesClient().fetch_bytes("b1", "x", 10)

    def test_library_error_wrapped(self, mock_cf):
        """Test that download failures raise RemoteUnavailableError."""
        mock_cf.size.return_value = 4
        mock_cf.get.side_effect = RuntimeError("boom")

        with pytest.raises(RemoteUnavailableError):
            CloudFilesClient().fetch_bytes("b1", "x", 10)

