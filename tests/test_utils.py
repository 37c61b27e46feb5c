"""
Tests for the encoding, hashing and canonicalization helpers
"""

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from cloudsign.credentials import Credentials
from cloudsign.exceptions import (
    MalformedRequestError,
    SigningError,
    SigningErrorCodes,
    UnreadablePayloadError,
)
from cloudsign.signing.types import BytesPayload, FilePayload, HttpRequest, StreamPayload
from cloudsign.signing.utils import (
    EMPTY_SHA256_HASH,
    aws_timestamp,
    base64_sha1,
    canonical_path,
    canonical_query_string,
    canonical_uri,
    chef_timestamp,
    hash_payload,
    host_header_for,
    normalize_header_value,
    parse_url,
    run_signing_call,
    split_fixed_width,
)


class TestCanonicalPath:
    """Chef path canonicalization"""

    def test_collapses_slashes_and_strips_trailing(self):
        assert canonical_path("/a//b///") == "/a/b"

    def test_root_is_kept(self):
        assert canonical_path("/") == "/"
        assert canonical_path("///") == "/"

    def test_double_leading_slash(self):
        assert canonical_path("//organizations/clownco") == "/organizations/clownco"

    @pytest.mark.parametrize("path", ["/a//b///", "/", "", "//x//", "/a/b/c", "/%2F//q/"])
    def test_idempotent(self, path):
        once = canonical_path(path)
        assert canonical_path(once) == once

    def test_no_other_normalization(self):
        assert canonical_path("/a b/./c%3F") == "/a b/./c%3F"


class TestCanonicalUri:
    """SigV4 canonical URI"""

    def test_empty_path_becomes_root(self):
        assert canonical_uri("") == "/"
        assert canonical_uri("/") == "/"

    def test_segments_are_encoded(self):
        assert canonical_uri("/my folder/file.txt") == "/my%20folder/file.txt"

    def test_unreserved_characters_untouched(self):
        assert canonical_uri("/~user/a-b_c.d") == "/~user/a-b_c.d"

    def test_already_encoded_path_not_double_encoded(self):
        assert canonical_uri("/my%20folder") == "/my%20folder"

    def test_encoded_slash_stays_in_its_segment(self):
        assert canonical_uri("/a%2Fb") == "/a%2Fb"
        assert canonical_uri("/a%2Fb") != canonical_uri("/a/b")
        assert canonical_uri("/docs%2f2024/x") == "/docs%2F2024/x"


class TestCanonicalQueryString:
    """SigV4 canonical query string"""

    def test_sorted_by_key_then_value(self):
        assert canonical_query_string("b=2&a=1&a=0") == "a=0&a=1&b=2"

    def test_blank_values_kept(self):
        assert canonical_query_string("flag&x=1") == "flag=&x=1"

    def test_values_are_percent_encoded(self):
        assert canonical_query_string("path=a%2Fb&q=x y") == "path=a%2Fb&q=x%20y"

    def test_plus_is_a_literal_character(self):
        assert canonical_query_string("a=b+c") == "a=b%2Bc"
        assert canonical_query_string("a=b%20c") == "a=b%20c"
        assert canonical_query_string("a+b=1") == "a%2Bb=1"

    def test_empty_segments_are_skipped(self):
        assert canonical_query_string("a=1&&b=2&") == "a=1&b=2"

    def test_value_may_contain_equals(self):
        assert canonical_query_string("token=abc==") == "token=abc%3D%3D"

    def test_extra_parameters_are_merged(self):
        assert canonical_query_string("b=2", [("a", "1/2")]) == "a=1%2F2&b=2"

    def test_empty(self):
        assert canonical_query_string("") == ""


class TestEncodingHelpers:
    """Header normalization, chunking and hashes"""

    def test_normalize_header_value(self):
        assert normalize_header_value("  a   b \t c  ") == "a b c"

    def test_split_fixed_width(self):
        assert split_fixed_width("abcdefg", 3) == ["abc", "def", "g"]
        assert split_fixed_width("abcdef", 3) == ["abc", "def"]
        assert split_fixed_width("", 3) == []

    def test_split_fixed_width_rejects_bad_width(self):
        with pytest.raises(ValueError):
            split_fixed_width("abc", 0)

    def test_base64_sha1_known_values(self):
        assert base64_sha1(b"") == "2jmj7l5rSw0yVb/vlWAYkK/YBwk="
        assert base64_sha1(b"Spec Body") == "DFteJZPVv6WKdQmMqZUQUumUyRs="
        assert base64_sha1(b"/organizations/clownco") == "YtBWDn1blGGuFIuKksdwXzHU9oE="


class TestTimestamps:
    """Timestamp formatting"""

    def test_aws_timestamp(self):
        moment = datetime(2011, 9, 9, 23, 36, 0, tzinfo=timezone.utc)
        assert aws_timestamp(moment) == "20110909T233600Z"

    def test_aws_timestamp_converts_to_utc(self):
        moment = datetime(2011, 9, 10, 1, 36, 0, tzinfo=timezone(timedelta(hours=2)))
        assert aws_timestamp(moment) == "20110909T233600Z"

    def test_chef_timestamp(self):
        assert chef_timestamp(1230811200) == "2009-01-01T12:00:00Z"

    def test_default_timestamps_have_expected_shape(self):
        assert len(aws_timestamp()) == 16
        assert chef_timestamp().endswith("Z")


class TestHashPayload:
    """Payload hashing"""

    def test_no_payload_hashes_empty_string(self):
        assert hash_payload(None).hex() == EMPTY_SHA256_HASH

    def test_bytes_payload(self):
        assert hash_payload(BytesPayload(b"abc")) == hashlib.sha256(b"abc").digest()

    def test_alternate_hash(self):
        assert hash_payload(BytesPayload(b"abc"), hashlib.sha1) == hashlib.sha1(b"abc").digest()

    def test_file_payload(self, tmp_path):
        path = tmp_path / "body.bin"
        path.write_bytes(b"x" * 200000)
        assert hash_payload(FilePayload(str(path), chunk_size=4096)) == hashlib.sha256(b"x" * 200000).digest()

    def test_stream_payload_is_refused(self):
        with pytest.raises(UnreadablePayloadError) as exc_info:
            hash_payload(StreamPayload(iter([b"data"])))
        assert exc_info.value.code == SigningErrorCodes.UNREADABLE_PAYLOAD

    def test_missing_file_is_unreadable(self, tmp_path):
        with pytest.raises(UnreadablePayloadError):
            hash_payload(FilePayload(str(tmp_path / "missing.bin")))


class TestParseUrl:
    """URL parsing"""

    def test_parse(self):
        parts = parse_url("https://api.example.com:8443/path/x?param=value")
        assert parts.scheme == "https"
        assert parts.host == "api.example.com"
        assert parts.port == 8443
        assert parts.path == "/path/x"
        assert parts.query == "param=value"

    def test_host_header_omits_default_port(self):
        assert host_header_for(parse_url("https://example.com:443/")) == "example.com"
        assert host_header_for(parse_url("http://example.com:8080/")) == "example.com:8080"

    @pytest.mark.parametrize("url", ["ftp://example.com/", "example.com/path", "http:///path"])
    def test_rejects_unsignable_urls(self, url):
        with pytest.raises(MalformedRequestError):
            parse_url(url)

    def test_rejects_bad_port(self):
        with pytest.raises(MalformedRequestError):
            parse_url("http://example.com:notaport/")


class TestRunSigningCall:
    """The shared signing-call wrapper"""

    def setup_method(self):
        self.source = Mock()
        self.source.get_credentials.return_value = Credentials("id", "secret")
        self.request = HttpRequest("GET", "https://example.com/")

    def test_snapshots_once_and_passes_through(self):
        create_context = Mock(return_value="ctx")
        sign = Mock(return_value="signed")

        result = run_signing_call(self.request, self.source, create_context, sign)

        assert result == "signed"
        self.source.get_credentials.assert_called_once_with()
        create_context.assert_called_once_with(self.request)
        sign.assert_called_once_with(self.request, "ctx", Credentials("id", "secret"))

    def test_unexpected_errors_are_wrapped(self):
        create_context = Mock(side_effect=RuntimeError("clock broke"))

        with pytest.raises(SigningError) as exc_info:
            run_signing_call(self.request, self.source, create_context, Mock())

        assert exc_info.value.code == SigningErrorCodes.SIGNING_FAILED
        assert "clock broke" in exc_info.value.details["original_error"]

    def test_signing_errors_propagate_unchanged(self):
        error = MalformedRequestError("bad host")
        sign = Mock(side_effect=error)

        with pytest.raises(MalformedRequestError) as exc_info:
            run_signing_call(self.request, self.source, Mock(), sign)

        assert exc_info.value is error

    def test_slow_signing_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="cloudsign.signing.utils"):
            run_signing_call(self.request, self.source, Mock(), Mock(), slow_signing_threshold_ms=1e-9)

        assert any("Signing operation took" in record.message for record in caplog.records)
