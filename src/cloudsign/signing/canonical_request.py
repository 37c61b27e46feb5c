"""
Canonical request construction for AWS Signature Version 4

This module turns an ``HttpRequest`` into the canonical request and
string-to-sign defined by SigV4. Everything here is pure: the same request,
timestamp and scope always give the same strings.
"""

import logging
from typing import Dict, Iterable, List, Tuple

from ..exceptions import MalformedRequestError, SigningError
from .types import HttpRequest
from .utils import (
    canonical_query_string,
    canonical_uri,
    normalize_header_name,
    normalize_header_value,
    sha256_hex,
)

ALGORITHM = "AWS4-HMAC-SHA256"

# Hop-by-hop or client-specific headers that proxies and HTTP libraries rewrite
HEADERS_EXCLUDED_FROM_SIGNING = (
    "accept",
    "accept-encoding",
    "authorization",
    "connection",
    "expect",
    "user-agent",
    "x-amzn-trace-id",
)

signature_logger = logging.getLogger("cloudsign.signature")


class CanonicalRequestBuilder:
    """
    Canonical request builder for SigV4 signatures
    """

    def __init__(self, request: HttpRequest):
        """
        Initialize canonical request builder.

        Args:
            request: Request to canonicalize, already carrying every header to sign
        """
        self.request = request
        self.endpoint = request.endpoint
        self.headers = self._collect_headers()

    @property
    def signed_headers(self) -> str:
        """Semicolon-joined, sorted, lower-cased names of the signed headers."""
        return ";".join(self.headers)

    def canonical_headers(self) -> str:
        return "".join(f"{name}:{value}\n" for name, value in self.headers.items())

    def build(self, payload_hash: str, extra_query: Iterable[Tuple[str, str]] = ()) -> str:
        """
        Build the canonical request.

        Args:
            payload_hash: Lowercase hex SHA-256 of the payload, or ``UNSIGNED-PAYLOAD``
            extra_query: Decoded query parameters to sign in addition to the URL's

        Returns:
            str: Canonical request

        Raises:
            SigningError: If the request cannot be canonicalized
        """
        try:
            return "\n".join([
                self.request.method,
                canonical_uri(self.endpoint.path),
                canonical_query_string(self.endpoint.query, extra_query),
                self.canonical_headers(),
                self.signed_headers,
                payload_hash,
            ])
        except Exception as e:
            if isinstance(e, SigningError):
                raise

            raise MalformedRequestError(
                f"Canonical request construction failed: {e}",
                details={"url": self.request.url, "original_error": str(e)}
            )

    def _collect_headers(self) -> Dict[str, str]:
        values: Dict[str, List[str]] = {}
        for name, value in self.request.headers:
            name = normalize_header_name(name)
            if name == "host" or name in HEADERS_EXCLUDED_FROM_SIGNING:
                continue
            values.setdefault(name, []).append(normalize_header_value(value))
        values["host"] = [self.request.host_header]
        return {name: ",".join(values[name]) for name in sorted(values)}


def build_string_to_sign(timestamp: str, credential_scope: str, canonical_request: str) -> str:
    """
    Build the SigV4 string to sign.

    Args:
        timestamp: ``YYYYMMDD'T'HHMMSS'Z'`` signing time
        credential_scope: ``<date>/<region>/<service>/aws4_request``
        canonical_request: Output of ``CanonicalRequestBuilder.build``

    Returns:
        str: String to sign
    """
    return "\n".join([
        ALGORITHM,
        timestamp,
        credential_scope,
        sha256_hex(canonical_request.encode("utf-8")),
    ])


def log_canonical_strings(canonical_request: str, string_to_sign: str, enabled: bool = True) -> None:
    """Send the canonical request and string to sign to the signature wire log."""
    if not enabled or not signature_logger.isEnabledFor(logging.DEBUG):
        return
    signature_logger.debug(f"Canonical request:\n{canonical_request}")
    signature_logger.debug(f"String to sign:\n{string_to_sign}")


def credential_value(identity: str, credential_scope: str) -> str:
    return f"{identity}/{credential_scope}"


def authorization_header(identity: str, credential_scope: str, signed_headers: str, signature: str) -> str:
    """Render the ``Authorization`` header value."""
    return (
        f"{ALGORITHM} Credential={credential_value(identity, credential_scope)}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
