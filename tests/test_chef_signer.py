"""
Tests for Chef server request signing

The expected signature was produced independently with
``openssl rsautl -sign -inkey fixtures/chef_test_key.pem``, i.e. the raw
PKCS#1 type 1 private-key operation Chef servers verify. That is not a
standard RSASSA-PKCS1-v1_5 signature, and one test pins that down.
"""

import base64
from unittest.mock import Mock

import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, padding, rsa

from cloudsign.credentials import Credentials
from cloudsign.crypto.rsa import load_private_key, load_public_key, private_encrypt, public_decrypt
from cloudsign.exceptions import CryptoProviderError, MissingCredentialsError, UnreadablePayloadError
from cloudsign.signing.chef_signer import (
    AUTHORIZATION_CHUNK_WIDTH,
    EMPTY_STRING_HASH,
    SIGNING_DESCRIPTION,
    ChefRsaSigner,
)
from cloudsign.signing.types import (
    BytesPayload,
    HttpRequest,
    MultipartForm,
    Part,
    SigningContext,
    StreamPayload,
    StringPayload,
)
from cloudsign.signing.utils import base64_sha1

TIMESTAMP = "2009-01-01T12:00:00Z"
CONTEXT = SigningContext(TIMESTAMP)

CLIENTS_HASHED_PATH = "QHL2lW8OR+xoMFLchjio1Mxgw+0="
CLIENTS_SIGNATURE_CHUNKS = [
    "kjTYNnay7mtee6hYqJhO3BPSz9j+3Y5dl5gSL+yCQMoH4tTFehQVTKzuZfgT",
    "brXzfpLufa7oDQJxiyakH9sJGBo6ek2OJ+36nC/IdkHF8TzYjWZQWIr3r2Iq",
    "qurf7ecEgyu70IF/iIuo6hxGHjgX+3bC/pvAT3fucFDKXIiCz/SmBE+tDpPO",
    "EsgKUzgxxBbMi8CU6VadltYo3IajMjRm6pJBVwZamWz4GfaGCBR3o/zjzQl6",
    "32aj16LgFX6YCoSLv0w+EI4zAWXryukL8hQmUi6ZrXzCoXqUTMGr3YYDPHQG",
    "sGofFzwhQLqJISG8MN71CpuLkboEvEnsxdwJ9VCZjg==",
]
CLIENTS_STRING_TO_SIGN = (
    "Method:GET\n"
    f"Hashed Path:{CLIENTS_HASHED_PATH}\n"
    f"X-Ops-Content-Hash:{EMPTY_STRING_HASH}\n"
    f"X-Ops-Timestamp:{TIMESTAMP}\n"
    "X-Ops-UserId:u"
)


def fixed_clock():
    return TIMESTAMP


class TestChefStringToSign:
    """Hashing and string-to-sign construction"""

    def test_constants(self):
        assert SIGNING_DESCRIPTION == "version=1.0"
        assert AUTHORIZATION_CHUNK_WIDTH == 60
        assert EMPTY_STRING_HASH == base64_sha1(b"")

    def test_hash_body(self):
        assert ChefRsaSigner.hash_body(None) == "2jmj7l5rSw0yVb/vlWAYkK/YBwk="
        assert ChefRsaSigner.hash_body(StringPayload("Spec Body")) == "DFteJZPVv6WKdQmMqZUQUumUyRs="

    def test_hash_body_uses_file_part_of_multipart(self):
        form = MultipartForm([
            Part("name", StringPayload("cookbook")),
            Part("file", StringPayload("Spec Body"), filename="cookbook.tgz"),
        ])
        assert ChefRsaSigner.hash_body(form) == "DFteJZPVv6WKdQmMqZUQUumUyRs="

    def test_hash_body_of_multipart_without_file_part(self):
        form = MultipartForm([Part("name", StringPayload("cookbook"))], boundary="b")
        assert ChefRsaSigner.hash_body(form) == base64_sha1(form.read())

    def test_hash_body_refuses_streams(self):
        with pytest.raises(UnreadablePayloadError):
            ChefRsaSigner.hash_body(StreamPayload(iter([b"x"])))

    def test_hash_path(self):
        assert ChefRsaSigner.hash_path("/organizations/clownco") == "YtBWDn1blGGuFIuKksdwXzHU9oE="
        assert ChefRsaSigner.hash_path("//organizations//clownco/") == "YtBWDn1blGGuFIuKksdwXzHU9oE="
        assert ChefRsaSigner.hash_path("/clients") == CLIENTS_HASHED_PATH

    def test_canonical_path(self):
        assert ChefRsaSigner.canonical_path("/a//b///") == "/a/b"
        assert ChefRsaSigner.canonical_path("/") == "/"

    def test_create_string_to_sign(self):
        string_to_sign = ChefRsaSigner.create_string_to_sign(
            "GET", CLIENTS_HASHED_PATH, EMPTY_STRING_HASH, TIMESTAMP, "u"
        )
        assert string_to_sign == CLIENTS_STRING_TO_SIGN


class TestChefRsaSigner:
    """End-to-end Chef signing"""

    def setup_method(self):
        self.request = HttpRequest("GET", "https://chef.example.com/clients")

    def make_signer(self, credentials, **kwargs):
        return ChefRsaSigner(credentials, timestamp_provider=fixed_clock, **kwargs)

    def test_fixture_signature(self, chef_credentials):
        signed = self.make_signer(chef_credentials).sign(self.request)

        assert signed.headers.get("X-Ops-Content-Hash") == EMPTY_STRING_HASH
        assert signed.headers.get("X-Ops-Userid") == "u"
        assert signed.headers.get("X-Ops-Sign") == "version=1.0"
        assert signed.headers.get("X-Ops-Timestamp") == TIMESTAMP
        for index, chunk in enumerate(CLIENTS_SIGNATURE_CHUNKS, start=1):
            assert signed.headers.get(f"X-Ops-Authorization-{index}") == chunk
        assert f"X-Ops-Authorization-{len(CLIENTS_SIGNATURE_CHUNKS) + 1}" not in signed.headers

    def test_chunks_reassemble_signature(self, chef_credentials):
        result = self.make_signer(chef_credentials).compute_signature(self.request, CONTEXT, chef_credentials)

        chunks = [value for name, value in result.headers if name.startswith("X-Ops-Authorization-")]
        assert "".join(chunks) == result.value
        assert all(len(chunk) == 60 for chunk in chunks[:-1])
        assert 0 < len(chunks[-1]) <= 60
        assert result.string_to_sign == CLIENTS_STRING_TO_SIGN

    def test_signature_recovers_string_to_sign(self, chef_credentials, chef_public_key_pem):
        result = self.make_signer(chef_credentials).compute_signature(self.request, CONTEXT, chef_credentials)

        recovered = public_decrypt(load_public_key(chef_public_key_pem), base64.b64decode(result.value))
        assert recovered == CLIENTS_STRING_TO_SIGN.encode("utf-8")

    def test_signature_is_not_a_standard_rsa_signature(self, chef_credentials, chef_public_key_pem):
        # Known non-standard construction: no digest, no DigestInfo
        result = self.make_signer(chef_credentials).compute_signature(self.request, CONTEXT, chef_credentials)
        public_key = load_public_key(chef_public_key_pem)

        with pytest.raises(InvalidSignature):
            public_key.verify(
                base64.b64decode(result.value),
                CLIENTS_STRING_TO_SIGN.encode("utf-8"),
                padding.PKCS1v15(),
                hashes.SHA1(),
            )

    def test_deterministic(self, chef_credentials):
        signer = self.make_signer(chef_credentials)
        assert signer.sign(self.request) == signer.sign(self.request)

    @pytest.mark.parametrize("change", [
        {"method": "DELETE"},
        {"url": "https://chef.example.com/nodes"},
        {"payload": BytesPayload(b"{}")},
    ])
    def test_sensitive_to_request_changes(self, chef_credentials, change):
        signer = self.make_signer(chef_credentials)
        result = signer.compute_signature(self.request.replace(**change), CONTEXT, chef_credentials)
        assert result.value != "".join(CLIENTS_SIGNATURE_CHUNKS)

    def test_path_is_collapsed_before_hashing(self, chef_credentials):
        request = HttpRequest("GET", "http://localhost//organizations/clownco")
        result = self.make_signer(chef_credentials).compute_signature(request, CONTEXT, chef_credentials)
        assert "Hashed Path:YtBWDn1blGGuFIuKksdwXzHU9oE=\n" in result.string_to_sign

    def test_encoded_question_mark_is_restored(self, chef_credentials):
        request = HttpRequest("GET", "https://chef.example.com/search/node%3Fq=name:web*")
        signed = self.make_signer(chef_credentials).sign(request)

        assert signed.url == "https://chef.example.com/search/node?q=name:web*"
        result = self.make_signer(chef_credentials).compute_signature(request, CONTEXT, chef_credentials)
        assert f"Hashed Path:{ChefRsaSigner.hash_path('/search/node')}\n" in result.string_to_sign

    def test_stale_authorization_headers_removed(self, chef_credentials):
        request = self.request.replace(headers=[
            ("X-Ops-Authorization-1", "old"),
            ("X-Ops-Authorization-9", "old"),
            ("Accept", "application/json"),
        ])
        signed = self.make_signer(chef_credentials).sign(request)

        assert "X-Ops-Authorization-9" not in signed.headers
        assert signed.headers.get_all("X-Ops-Authorization-1") == [CLIENTS_SIGNATURE_CHUNKS[0]]
        assert signed.headers.get("Accept") == "application/json"

    def test_original_request_untouched(self, chef_credentials):
        self.make_signer(chef_credentials).sign(self.request)
        assert len(self.request.headers) == 0

    def test_private_key_source(self, chef_private_key_pem):
        key = load_private_key(chef_private_key_pem)
        key_source = Mock(return_value=key)
        signer = self.make_signer(Credentials("u", ""), private_key_source=key_source)

        signed = signer.sign(self.request)

        key_source.assert_called_once_with()
        assert signed.headers.get("X-Ops-Authorization-1") == CLIENTS_SIGNATURE_CHUNKS[0]

    def test_missing_key_fails_fast(self):
        with pytest.raises(MissingCredentialsError):
            self.make_signer(Credentials("u", "")).sign(self.request)

    def test_malformed_key(self):
        with pytest.raises(CryptoProviderError):
            self.make_signer(Credentials("u", "not a pem")).sign(self.request)

    def test_non_rsa_key(self):
        pem = ed25519.Ed25519PrivateKey.generate().private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode("ascii")
        with pytest.raises(CryptoProviderError, match="Expected an RSA private key"):
            self.make_signer(Credentials("u", pem)).sign(self.request)

    def test_key_too_small_for_message(self):
        small_key = rsa.generate_private_key(public_exponent=65537, key_size=1024)
        signer = self.make_signer(Credentials("a-rather-long-client-name", ""), private_key_source=lambda: small_key)

        with pytest.raises(CryptoProviderError, match="too long"):
            signer.sign(self.request)


class TestRsaTransform:
    """The raw PKCS#1 type 1 private-key operation"""

    def test_round_trip(self, chef_private_key_pem, chef_public_key_pem):
        key = load_private_key(chef_private_key_pem)
        signed = private_encrypt(key, b"hello")

        assert len(signed) == key.key_size // 8
        assert public_decrypt(load_public_key(chef_public_key_pem), signed) == b"hello"

    def test_longest_message_that_fits(self, chef_private_key_pem):
        key = load_private_key(chef_private_key_pem)
        private_encrypt(key, b"x" * (key.key_size // 8 - 11))
        with pytest.raises(CryptoProviderError):
            private_encrypt(key, b"x" * (key.key_size // 8 - 10))

    def test_recover_from_garbage(self, chef_public_key_pem):
        public_key = load_public_key(chef_public_key_pem)
        with pytest.raises(CryptoProviderError):
            public_decrypt(public_key, b"\x01" * (public_key.key_size // 8))

    def test_invalid_public_key(self):
        with pytest.raises(CryptoProviderError):
            load_public_key("-----BEGIN PUBLIC KEY-----\nAAAA\n-----END PUBLIC KEY-----\n")

    def test_result_is_identical_across_calls(self, chef_private_key_pem):
        key = load_private_key(chef_private_key_pem)
        results = {private_encrypt(key, b"same message") for _ in range(5)}
        assert len(results) == 1

    def test_faulty_key_result_rejected(self, chef_private_key_pem):
        numbers = load_private_key(chef_private_key_pem).private_numbers()
        faulty_numbers = rsa.RSAPrivateNumbers(
            p=numbers.p,
            q=numbers.q,
            d=numbers.d,
            dmp1=numbers.dmp1 + 2,
            dmq1=numbers.dmq1,
            iqmp=numbers.iqmp,
            public_numbers=numbers.public_numbers,
        )
        faulty_key = Mock(key_size=2048)
        faulty_key.private_numbers.return_value = faulty_numbers

        with pytest.raises(CryptoProviderError, match="invalid result"):
            private_encrypt(faulty_key, b"hello")
