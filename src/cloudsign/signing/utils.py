"""
Utility functions for request signing

This module provides the encoding and hashing primitives shared by the
signing schemes: RFC 3986 percent-encoding, SigV4 path/query/header
canonicalization, Chef path canonicalization, payload hashing, fixed-width
chunking, timestamp formatting and URL parsing.
"""

import base64
import hashlib
import hmac
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, NamedTuple, Optional, Tuple
from urllib.parse import quote, unquote, urlsplit

from ..credentials import CredentialsSource, snapshot_credentials
from ..exceptions import (
    CryptoProviderError,
    MalformedRequestError,
    SigningError,
    SigningErrorCodes,
    UnreadablePayloadError,
)

logger = logging.getLogger(__name__)

AWS_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"
CHEF_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Hex SHA-256 of the empty string
EMPTY_SHA256_HASH = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

DEFAULT_PORTS = {"http": 80, "https": 443}

_READ_CHUNK_SIZE = 64 * 1024
_SLASH_RUN = re.compile(r"/+")


class UrlParts(NamedTuple):
    """Components of a request endpoint needed for signing"""
    scheme: str
    host: str
    port: Optional[int]
    path: str
    query: str


def aws_timestamp(now: Optional[datetime] = None) -> str:
    """
    Format a timestamp the way SigV4 expects it (``YYYYMMDD'T'HHMMSS'Z'``).

    Args:
        now: Moment to format (uses current UTC time if None)

    Returns:
        str: Basic ISO 8601 UTC timestamp
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime(AWS_TIMESTAMP_FORMAT)


def chef_timestamp(now: Optional[float] = None) -> str:
    """
    Format a timestamp the way the Chef server expects it.

    Args:
        now: Unix timestamp (uses current time if None)

    Returns:
        str: Extended ISO 8601 UTC timestamp, e.g. ``2009-01-01T12:00:00Z``
    """
    if now is None:
        now = time.time()
    return time.strftime(CHEF_TIMESTAMP_FORMAT, time.gmtime(now))


def uri_encode(value: str, safe: str = "") -> str:
    """
    Percent-encode a string per RFC 3986.

    Unreserved characters (``A-Za-z0-9-_.~``) are never escaped; any extra
    characters in ``safe`` are left alone as well.
    """
    return quote(value, safe=safe)


def canonical_uri(path: str) -> str:
    """
    Build the SigV4 canonical URI for a request path.

    The path is split on ``/`` first, then each segment is decoded and
    re-encoded, so already-escaped input is not escaped twice and an encoded
    ``%2F`` stays inside its segment. An empty path becomes ``/``.

    Args:
        path: Raw request path

    Returns:
        str: Canonical URI
    """
    if not path:
        return "/"
    return "/".join(uri_encode(unquote(segment)) for segment in path.split("/"))


def split_query(query: str) -> List[Tuple[str, str]]:
    """
    Split a raw query string into decoded ``(name, value)`` pairs.

    Decoding follows RFC 3986: ``+`` is a literal character, not a space.
    Parameters without ``=`` get an empty value.
    """
    pairs = []
    for segment in query.split("&"):
        if not segment:
            continue
        name, _, value = segment.partition("=")
        pairs.append((unquote(name), unquote(value)))
    return pairs


def canonical_query_string(query: str, extra: Iterable[Tuple[str, str]] = ()) -> str:
    """
    Build the SigV4 canonical query string.

    Parameters are decoded, re-encoded per RFC 3986 and sorted by
    (key, value). Parameters without a value keep an empty value.

    Args:
        query: Raw query string (without the leading ``?``)
        extra: Additional decoded parameters to include

    Returns:
        str: Canonical query string
    """
    params = split_query(query) if query else []
    params.extend(extra)
    encoded = sorted((uri_encode(key), uri_encode(value)) for key, value in params)
    return "&".join(f"{key}={value}" for key, value in encoded)


def normalize_header_value(value: str) -> str:
    """Trim a header value and collapse internal runs of whitespace."""
    return " ".join(value.split())


def normalize_header_name(name: str) -> str:
    """Normalize header name to lowercase for consistent processing."""
    return name.lower().strip()


def canonical_path(path: str) -> str:
    """
    Build the Chef canonical path.

    Collapses runs of ``/`` into one and removes a trailing slash unless
    the path is only ``/``.

    Args:
        path: Request path

    Returns:
        str: Canonical path
    """
    path = _SLASH_RUN.sub("/", path)
    if path.endswith("/") and len(path) > 1:
        return path[:-1]
    return path


def hash_payload(payload, hash_factory: Callable = hashlib.sha256) -> bytes:
    """
    Hash the bytes of a payload.

    Args:
        payload: Payload to hash (None hashes the empty string)
        hash_factory: hashlib constructor to use

    Returns:
        bytes: Raw digest

    Raises:
        UnreadablePayloadError: If the payload is not repeatable or reading fails
    """
    hasher = hash_factory()
    if payload is None:
        return hasher.digest()

    if not getattr(payload, "repeatable", False):
        raise UnreadablePayloadError(
            f"Payload must be repeatable to be signed: {payload!r}",
            details={"payload_type": type(payload).__name__}
        )

    try:
        for chunk in payload.iter_bytes():
            hasher.update(chunk)
    except SigningError:
        raise
    except (OSError, ValueError) as e:
        raise UnreadablePayloadError(
            f"Failed to read payload: {e}",
            details={"payload_type": type(payload).__name__, "original_error": str(e)}
        )
    return hasher.digest()


def sha256_hex(data: bytes) -> str:
    """Lowercase hex SHA-256 digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


def hmac_sha256(key: bytes, message: str) -> bytes:
    """
    HMAC-SHA256 of a UTF-8 message.

    Raises:
        CryptoProviderError: If the primitive is unavailable
    """
    try:
        return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()
    except (TypeError, ValueError) as e:
        raise CryptoProviderError(f"HMAC-SHA256 failed: {e}", details={"original_error": str(e)})


def base64_encode(data: bytes) -> str:
    """Standard base64 without line breaks."""
    return base64.b64encode(data).decode("ascii")


def base64_sha1(data: bytes) -> str:
    """Base64 of the SHA-1 digest of ``data``."""
    return base64_encode(hashlib.sha1(data).digest())


def split_fixed_width(value: str, width: int) -> List[str]:
    """
    Split a string into chunks of ``width`` characters; the last may be shorter.

    Args:
        value: String to split
        width: Chunk width (must be positive)

    Returns:
        list: Chunks in order
    """
    if width <= 0:
        raise ValueError("Chunk width must be positive")
    return [value[i:i + width] for i in range(0, len(value), width)]


def parse_url(url: str) -> UrlParts:
    """
    Parse a request URL into the components needed for signing.

    Args:
        url: Absolute http(s) URL

    Returns:
        UrlParts: Parsed components; ``path`` and ``query`` stay raw

    Raises:
        MalformedRequestError: If the URL cannot be canonicalized
    """
    try:
        parsed = urlsplit(url)
        port = parsed.port
    except ValueError as e:
        raise MalformedRequestError(
            f"Failed to parse URL: {e}",
            details={"url": url, "original_error": str(e)}
        )

    if parsed.scheme not in ("http", "https"):
        raise MalformedRequestError(
            f"Unsupported URL scheme: {parsed.scheme or '<none>'}",
            details={"url": url}
        )

    if not parsed.hostname:
        raise MalformedRequestError(f"URL has no host: {url}", details={"url": url})

    return UrlParts(
        scheme=parsed.scheme,
        host=parsed.hostname,
        port=port,
        path=parsed.path,
        query=parsed.query,
    )


def host_header_for(parts: UrlParts) -> str:
    """Host header value: the host, plus the port when it is not the scheme default."""
    if parts.port is not None and DEFAULT_PORTS.get(parts.scheme) != parts.port:
        return f"{parts.host}:{parts.port}"
    return parts.host


class PerformanceTimer:
    """Simple performance timer for monitoring signing operations."""

    def __init__(self):
        self.start_time = time.perf_counter()

    def elapsed_ms(self) -> float:
        """Get elapsed time in milliseconds."""
        return (time.perf_counter() - self.start_time) * 1000


def run_signing_call(
    request: Any,
    credentials_source: CredentialsSource,
    create_context: Callable,
    sign_with_context: Callable,
    slow_signing_threshold_ms: float = 10.0,
    log_timing: bool = False,
    require_secret: bool = True,
) -> Any:
    """
    Run one complete signing call.

    Takes exactly one credentials snapshot and one context (and so one
    timestamp) before any canonicalization starts, then hands both to
    ``sign_with_context``.

    Args:
        request: Request to sign
        credentials_source: Source asked once for a credentials snapshot
        create_context: Builds the per-call signing context from the request
        sign_with_context: Pure signing function ``(request, context, credentials)``
        slow_signing_threshold_ms: Warn when the call takes longer than this
        log_timing: Log the duration of every call at DEBUG level
        require_secret: Whether the snapshot must carry a secret

    Returns:
        The signed request

    Raises:
        SigningError: If signing fails for any reason
    """
    timer = PerformanceTimer()

    try:
        credentials = snapshot_credentials(credentials_source, require_secret)
        context = create_context(request)
        signed = sign_with_context(request, context, credentials)
    except Exception as e:
        if isinstance(e, SigningError):
            raise

        raise SigningError(
            f"Request signing failed: {e}",
            SigningErrorCodes.SIGNING_FAILED,
            {"original_error": str(e), "error_type": type(e).__name__}
        )

    elapsed_ms = timer.elapsed_ms()
    if log_timing:
        logger.debug(f"Signed {request.method} {request.url} in {elapsed_ms:.2f}ms")
    if elapsed_ms > slow_signing_threshold_ms:
        logger.warning(f"Signing operation took {elapsed_ms:.2f}ms (target: <{slow_signing_threshold_ms}ms)")

    return signed
