"""
Chef server request signer (mixlib-authentication protocol, version 1.0)

The string to sign is five fixed lines built from the method, the hashed
canonical path, the body hash, the timestamp and the user id. It is
transformed with the client's RSA private key using the raw PKCS#1 type 1
private-key operation (see ``cloudsign.crypto.rsa.private_encrypt``), which
is not a standard RSA signature scheme. Chef servers verify exactly that
construction, so it must not be replaced by RSASSA-PKCS1-v1_5.

The base64 result is split into 60 character chunks carried by
``X-Ops-Authorization-1`` .. ``X-Ops-Authorization-N``.
"""

import hashlib
import logging
from typing import Callable, Optional

from cryptography.hazmat.primitives.asymmetric import rsa

from ..credentials import Credentials, CredentialsLike, as_credentials_source
from ..crypto.rsa import load_private_key, private_encrypt
from ..exceptions import MissingCredentialsError
from .mutator import apply_signature
from .types import HttpRequest, MultipartForm, Payload, SignatureResult, SigningContext
from .utils import (
    base64_encode,
    base64_sha1,
    canonical_path,
    chef_timestamp,
    hash_payload,
    run_signing_call,
    split_fixed_width,
)

logger = logging.getLogger(__name__)
signature_logger = logging.getLogger("cloudsign.signature")

SIGNING_DESCRIPTION = "version=1.0"
AUTHORIZATION_CHUNK_WIDTH = 60
AUTHORIZATION_HEADER_PREFIX = "X-Ops-Authorization-"

# base64(sha1(""))
EMPTY_STRING_HASH = "2jmj7l5rSw0yVb/vlWAYkK/YBwk="

PrivateKeySource = Callable[[], rsa.RSAPrivateKey]


class ChefRsaSigner:
    """
    Signs requests for the Chef server API.

    Args:
        credentials: ``identity`` is the Chef user or client name; ``secret``
            holds its PEM private key unless ``private_key_source`` is given
        timestamp_provider: Returns a ``YYYY-MM-DDTHH:MM:SSZ`` UTC timestamp
        private_key_source: Supplies the parsed private key directly
    """

    def __init__(
        self,
        credentials: CredentialsLike,
        timestamp_provider: Optional[Callable[[], str]] = None,
        private_key_source: Optional[PrivateKeySource] = None,
        log_canonical_strings: bool = False,
        log_timing: bool = False,
        slow_signing_threshold_ms: float = 10.0,
    ):
        self.credentials = as_credentials_source(credentials)
        self.timestamp_provider = timestamp_provider or chef_timestamp
        self.private_key_source = private_key_source
        self.log_canonical_strings = log_canonical_strings
        self.log_timing = log_timing
        self.slow_signing_threshold_ms = slow_signing_threshold_ms

    def sign(self, request: HttpRequest) -> HttpRequest:
        """
        Sign a request.

        Args:
            request: Request to sign; it is not modified

        Returns:
            HttpRequest: New request with the ``X-Ops-*`` headers

        Raises:
            SigningError: If signing fails
        """
        return run_signing_call(
            request,
            self.credentials,
            self.create_context,
            self.sign_with_context,
            self.slow_signing_threshold_ms,
            self.log_timing,
            require_secret=self.private_key_source is None,
        )

    def create_context(self, request: HttpRequest) -> SigningContext:
        return SigningContext(timestamp=self.timestamp_provider())

    def sign_with_context(
        self,
        request: HttpRequest,
        context: SigningContext,
        credentials: Credentials,
    ) -> HttpRequest:
        return apply_signature(request, self.compute_signature(request, context, credentials))

    def compute_signature(
        self,
        request: HttpRequest,
        context: SigningContext,
        credentials: Credentials,
    ) -> SignatureResult:
        """
        Compute the signature and the ``X-Ops-*`` headers.

        Args:
            request: Request to sign
            context: Carries the timestamp for this call
            credentials: Credentials snapshot for this call

        Returns:
            SignatureResult: Base64 signature and the headers to set

        Raises:
            MissingCredentialsError: If there is no private key
            CryptoProviderError: If the key is malformed or too small
            UnreadablePayloadError: If the body cannot be hashed
        """
        url = request.url.replace("%3F", "?")
        request = request.replace(url=url)

        content_hash = self.hash_body(request.payload)
        string_to_sign = self.create_string_to_sign(
            request.method,
            self.hash_path(request.endpoint.path),
            content_hash,
            context.timestamp,
            credentials.identity,
        )
        if self.log_canonical_strings:
            signature_logger.debug(f"String to sign:\n{string_to_sign}")

        key = self._private_key(credentials)
        signature = base64_encode(private_encrypt(key, string_to_sign.encode("utf-8")))

        headers = [
            ("X-Ops-Content-Hash", content_hash),
            ("X-Ops-Userid", credentials.identity),
            ("X-Ops-Sign", SIGNING_DESCRIPTION),
            ("X-Ops-Timestamp", context.timestamp),
        ]
        for index, chunk in enumerate(split_fixed_width(signature, AUTHORIZATION_CHUNK_WIDTH), start=1):
            headers.append((f"{AUTHORIZATION_HEADER_PREFIX}{index}", chunk))

        return SignatureResult(
            value=signature,
            headers=tuple(headers),
            removed_header_prefixes=(AUTHORIZATION_HEADER_PREFIX,),
            url=url,
            string_to_sign=string_to_sign,
        )

    @staticmethod
    def create_string_to_sign(
        method: str,
        hashed_path: str,
        content_hash: str,
        timestamp: str,
        identity: str,
    ) -> str:
        return (
            f"Method:{method}\n"
            f"Hashed Path:{hashed_path}\n"
            f"X-Ops-Content-Hash:{content_hash}\n"
            f"X-Ops-Timestamp:{timestamp}\n"
            f"X-Ops-UserId:{identity}"
        )

    @staticmethod
    def canonical_path(path: str) -> str:
        """Collapse runs of ``/`` and drop a trailing ``/`` unless the path is ``/``."""
        return canonical_path(path)

    @staticmethod
    def hash_path(path: str) -> str:
        return base64_sha1(canonical_path(path).encode("utf-8"))

    @staticmethod
    def hash_body(payload: Optional[Payload]) -> str:
        """
        Base64 SHA-1 of the body.

        For multipart forms only the part named ``file`` is hashed, when there
        is one.
        """
        if payload is None:
            return EMPTY_STRING_HASH
        if isinstance(payload, MultipartForm):
            part = payload.find_part("file")
            if part is not None:
                payload = part.payload
        return base64_encode(hash_payload(payload, hashlib.sha1))

    def _private_key(self, credentials: Credentials) -> rsa.RSAPrivateKey:
        if self.private_key_source is not None:
            key = self.private_key_source()
            if key is None:
                raise MissingCredentialsError("Private key source returned no key")
            return key
        if not credentials.secret:
            raise MissingCredentialsError(
                f"No private key for {credentials.identity}",
                details={"identity": credentials.identity}
            )
        return load_private_key(credentials.secret)

    def __repr__(self) -> str:
        return f"ChefRsaSigner(private_key_source={'<set>' if self.private_key_source else None})"
