"""Tests for utility functions."""

from datetime import datetime, timedelta, timezone

import pytest

from blobcache.utils import (
    is_cloud_path,
    is_safe_relative_path,
    key_to_lock_name,
    normalize_remote_path,
    resolve_bucket,
    split_cloud_uri,
    to_version_stamp,
)


class TestCloudPathDetection:
    """Tests for cloud path detection."""

    def test_gs_path(self):
        """Test Google Cloud Storage path detection."""
        assert is_cloud_path("gs://bucket/img/logo.png") is True

    def test_s3_path(self):
        """Test S3 path detection."""
        assert is_cloud_path("s3://bucket/img/logo.png") is True

    def test_file_path(self):
        """Test file:// path detection."""
        assert is_cloud_path("file:///tmp/bucket") is True

    def test_plain_key(self):
        """Test that plain keys are not cloud paths."""
        assert is_cloud_path("img/logo.png") is False


class TestSplitCloudUri:
    """Tests for splitting cloud URIs into bucket and path."""

    def test_split(self):
        """Test splitting a GCS URI."""
        assert split_cloud_uri("gs://b1/img/logo.png") == ("gs://b1", "img/logo.png")

    def test_split_collapses_separators(self):
        """Test that the object path is normalized."""
        assert split_cloud_uri("s3://b1//img//logo.png") == ("s3://b1", "img/logo.png")

    def test_bucket_only_rejected(self):
        """Test that URIs without an object path are rejected."""
        with pytest.raises(ValueError):
            split_cloud_uri("gs://b1/")

    def test_non_cloud_rejected(self):
        """Test that plain keys are rejected."""
        with pytest.raises(ValueError):
            split_cloud_uri("img/logo.png")


class TestPaths:
    """Tests for bucket and path normalization."""

    def test_resolve_bare_bucket(self):
        assert resolve_bucket("b1") == "gs://b1"
        assert resolve_bucket("b1", default_protocol="s3") == "s3://b1"

    def test_resolve_bucket_with_protocol(self):
        assert resolve_bucket("s3://b1/") == "s3://b1"

    def test_normalize_remote_path(self):
        assert normalize_remote_path("//img//logo.png") == "img/logo.png"
        assert normalize_remote_path("img\\logo.png") == "img/logo.png"

    def test_safe_relative_path(self):
        assert is_safe_relative_path("img/logo.png") is True
        assert is_safe_relative_path("img/../../etc/passwd") is False
        assert is_safe_relative_path("") is False

    def test_lock_name(self):
        assert key_to_lock_name("gs://b1/img/logo.png") == "gs_b1_img_logo.png.lock"

    def test_long_lock_name_is_bounded(self):
        """Test that very long keys still produce short, distinct lock names."""
        first = key_to_lock_name("a/" * 200 + "x")
        second = key_to_lock_name("a/" * 200 + "y")

        assert len(first) < 255
        assert first != second


class TestVersionStamp:
    """Tests for converting last-modified values to version stamps."""

    def test_none(self):
        assert to_version_stamp(None) is None
        assert to_version_stamp("") is None

    def test_aware_datetime(self):
        dt = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert to_version_stamp(dt) == 1704067200000

    def test_naive_datetime_treated_as_utc(self):
        assert to_version_stamp(datetime(2024, 1, 1)) == 1704067200000

    def test_offset_datetime(self):
        dt = datetime(2024, 1, 1, 1, tzinfo=timezone(timedelta(hours=1)))
        assert to_version_stamp(dt) == 1704067200000

    def test_http_date_string(self):
        assert to_version_stamp("Mon, 01 Jan 2024 00:00:00 GMT") == 1704067200000

    def test_iso_string(self):
        assert to_version_stamp("2024-01-01T00:00:00Z") == 1704067200000
        assert to_version_stamp("2024-01-01T00:00:00.500+00:00") == 1704067200500

    def test_epoch_seconds(self):
        assert to_version_stamp(1704067200) == 1704067200000
        assert to_version_stamp(1704067200.25) == 1704067200250

    def test_epoch_milliseconds(self):
        assert to_version_stamp(1704067200000) == 1704067200000

    def test_invalid(self):
        with pytest.raises(ValueError):
            to_version_stamp("yesterday")
        with pytest.raises(ValueError):
            to_version_stamp(True)
        with pytest.raises(ValueError):
            to_version_stamp(["2024"])
