"""Tests for bucket/key validation and query parameter helpers."""

import pytest

from bucketgate.errors import InvalidRequest
from bucketgate.validation import clamp_max_keys, validate_bucket_name, validate_object_key


class TestValidateBucketName:
    @pytest.mark.parametrize("name", ["my-bucket", "Bucket_1", "a", "media.assets"])
    def test_valid_names(self, name):
        validate_bucket_name(name)

    @pytest.mark.parametrize("name", ["", ".", "..", ".hidden", "a/b", "a\\b", "a\x00b"])
    def test_invalid_names(self, name):
        with pytest.raises(InvalidRequest):
            validate_bucket_name(name)


class TestValidateObjectKey:
    def test_valid_key(self):
        validate_object_key("photos/2024/jan/photo1.jpg")

    def test_empty_key(self):
        with pytest.raises(InvalidRequest) as exc_info:
            validate_object_key("")
        assert exc_info.value.code == "InvalidRequest"

    def test_key_too_long(self):
        with pytest.raises(InvalidRequest):
            validate_object_key("a" * 1025)

    def test_key_at_limit(self):
        validate_object_key("a" * 1024)

    def test_multibyte_length_counted_in_bytes(self):
        with pytest.raises(InvalidRequest):
            validate_object_key("é" * 513)

    @pytest.mark.parametrize("key", ["..", "a/..", "./a", "a//b", "a\\b"])
    def test_unsafe_segments(self, key):
        with pytest.raises(InvalidRequest):
            validate_object_key(key)


class TestClampMaxKeys:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (None, 1000),
            ("", 1000),
            ("abc", 1000),
            ("1.5", 1000),
            ("0", 0),
            ("5", 5),
            ("1000", 1000),
            ("1001", 1000),
            ("99999", 1000),
            ("-3", 0),
            (42, 42),
        ],
    )
    def test_clamp(self, raw, expected):
        assert clamp_max_keys(raw) == expected
