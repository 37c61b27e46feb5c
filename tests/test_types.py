"""
Tests for the request model: headers, payloads and HttpRequest
"""

import dataclasses
import io

import pytest

from cloudsign.exceptions import MalformedRequestError, UnreadablePayloadError
from cloudsign.signing.types import (
    BytesPayload,
    FormPayload,
    Headers,
    HttpMethod,
    HttpRequest,
    MultipartForm,
    Part,
    SigningContext,
    StreamPayload,
    StringPayload,
    as_payload,
)


class TestHeaders:
    """Immutable header multimap"""

    def setup_method(self):
        self.headers = Headers([("Content-Type", "text/plain"), ("X-Multi", "a"), ("x-multi", "b")])

    def test_case_insensitive_lookup(self):
        assert self.headers.get("content-type") == "text/plain"
        assert "CONTENT-TYPE" in self.headers
        assert "Missing" not in self.headers
        assert self.headers.get("Missing", "default") == "default"

    def test_multiple_values_keep_order(self):
        assert self.headers.get_all("X-MULTI") == ["a", "b"]
        assert self.headers.names() == ["Content-Type", "X-Multi"]

    def test_replacing_drops_every_old_value(self):
        replaced = self.headers.replacing([("x-multi", "c")])
        assert replaced.get_all("X-Multi") == ["c"]
        assert self.headers.get_all("X-Multi") == ["a", "b"]

    def test_without_prefix(self):
        headers = Headers([("X-Ops-Authorization-1", "a"), ("x-ops-authorization-2", "b"), ("Accept", "*/*")])
        assert headers.without_prefix("X-Ops-Authorization-").items() == [("Accept", "*/*")]

    def test_is_immutable(self):
        with pytest.raises(AttributeError):
            self.headers.extra = 1

    def test_from_mapping_and_equality(self):
        assert Headers({"A": "1"}) == Headers([("A", "1")])
        assert Headers({"A": "1"}).to_dict() == {"A": "1"}
        assert self.headers.to_dict()["X-Multi"] == "a, b"


class TestPayloads:
    """Payload implementations"""

    def test_string_payload_encodes(self):
        assert StringPayload("hé").read() == "hé".encode("utf-8")

    def test_stream_payload_reads_once(self):
        payload = StreamPayload(io.BytesIO(b"abc"))
        assert not payload.repeatable
        assert payload.read() == b"abc"
        with pytest.raises(UnreadablePayloadError):
            payload.read()

    def test_form_payload_encoding(self):
        form = FormPayload((("Action", "ListUsers"), ("Path", "/a b/")))
        assert form.encode() == "Action=ListUsers&Path=%2Fa%20b%2F"
        assert form.get("Action") == "ListUsers"
        assert "Path" in form

    def test_form_payload_with_param_returns_copy(self):
        form = FormPayload.parse("Action=ListUsers")
        extended = form.with_param("Version", "2010-05-08")
        assert extended.encode() == "Action=ListUsers&Version=2010-05-08"
        assert "Version" not in form

    def test_multipart_rendering(self):
        form = MultipartForm(
            [Part("file", BytesPayload(b"data"), filename="a.txt", content_type="text/plain")],
            boundary="XyZ",
        )
        assert form.content_type == "multipart/form-data; boundary=XyZ"
        assert form.read() == (
            b"--XyZ\r\n"
            b'Content-Disposition: form-data; name="file"; filename="a.txt"\r\n'
            b"Content-Type: text/plain\r\n\r\n"
            b"data\r\n"
            b"--XyZ--\r\n"
        )
        assert form.find_part("file").filename == "a.txt"
        assert form.find_part("other") is None

    def test_multipart_repeatable_only_when_parts_are(self):
        assert MultipartForm([Part("a", BytesPayload(b"x"))]).repeatable
        assert not MultipartForm([Part("a", StreamPayload(iter([b"x"])))]).repeatable

    def test_as_payload(self):
        assert isinstance(as_payload(b"x"), BytesPayload)
        assert isinstance(as_payload("x"), StringPayload)
        assert isinstance(as_payload(io.BytesIO(b"x")), StreamPayload)
        assert as_payload(None) is None
        with pytest.raises(TypeError):
            as_payload(42)


class TestHttpRequest:
    """Immutable request description"""

    def test_method_is_upper_cased(self):
        assert HttpRequest("get", "https://example.com/").method == "GET"
        assert HttpRequest(HttpMethod.POST, "https://example.com/").method == "POST"

    @pytest.mark.parametrize("method", ["", "GE T", "GET\n", None])
    def test_invalid_method(self, method):
        with pytest.raises(MalformedRequestError):
            HttpRequest(method, "https://example.com/")

    def test_coerces_headers_and_payload(self):
        request = HttpRequest("POST", "https://example.com/", headers={"A": "1"}, payload=b"body")
        assert isinstance(request.headers, Headers)
        assert isinstance(request.payload, BytesPayload)

    def test_host_header(self):
        assert HttpRequest("GET", "https://example.com:8443/x").host_header == "example.com:8443"
        request = HttpRequest("GET", "https://example.com/", headers=[("Host", "override.example")])
        assert request.host_header == "override.example"

    def test_is_frozen(self):
        request = HttpRequest("GET", "https://example.com/")
        with pytest.raises(dataclasses.FrozenInstanceError):
            request.url = "https://other.example/"
        assert request.replace(url="https://other.example/").url == "https://other.example/"
        assert request.url == "https://example.com/"


class TestSigningContext:
    def test_scope(self):
        context = SigningContext("20110909T233600Z", "iam", "us-east-1")
        assert context.date_stamp == "20110909"
        assert context.credential_scope == "20110909/us-east-1/iam/aws4_request"
