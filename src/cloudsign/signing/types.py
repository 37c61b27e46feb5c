"""
Type definitions for request signing

This module provides the immutable request description consumed by the
signers (headers multimap, payloads, request) and the per-call values they
produce (signing context, signature result).
"""

import dataclasses
import os
import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    BinaryIO,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)
from urllib.parse import parse_qsl, quote, urlencode

from ..exceptions import MalformedRequestError, UnreadablePayloadError
from .utils import UrlParts, host_header_for, parse_url

# RFC 7230 token
_METHOD_PATTERN = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

HeaderPairs = Iterable[Tuple[str, str]]


class HttpMethod(str, Enum):
    """HTTP methods commonly signed"""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


class Headers:
    """
    Immutable ordered multimap of HTTP headers.

    Insertion order and the original name casing are preserved; lookups are
    case-insensitive. Every "modifying" method returns a new instance.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Union[None, "Headers", Mapping[str, str], HeaderPairs] = None):
        if items is None:
            pairs: Tuple[Tuple[str, str], ...] = ()
        elif isinstance(items, Headers):
            pairs = items._items
        elif isinstance(items, Mapping):
            pairs = tuple((str(k), str(v)) for k, v in items.items())
        else:
            pairs = tuple((str(k), str(v)) for k, v in items)
        object.__setattr__(self, "_items", pairs)

    def __setattr__(self, name, value):
        raise AttributeError("Headers is immutable")

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return the first value for ``name`` or ``default``."""
        lowered = name.lower()
        for key, value in self._items:
            if key.lower() == lowered:
                return value
        return default

    def get_all(self, name: str) -> List[str]:
        """Return every value for ``name`` in insertion order."""
        lowered = name.lower()
        return [value for key, value in self._items if key.lower() == lowered]

    def names(self) -> List[str]:
        """Distinct header names (first spelling seen) in insertion order."""
        seen = set()
        names = []
        for key, _ in self._items:
            if key.lower() not in seen:
                seen.add(key.lower())
                names.append(key)
        return names

    def items(self) -> List[Tuple[str, str]]:
        return list(self._items)

    def adding(self, pairs: HeaderPairs) -> "Headers":
        """Append pairs, keeping existing values."""
        return Headers(self._items + tuple(pairs))

    def without(self, *names: str) -> "Headers":
        """Drop every value of the given names."""
        lowered = {n.lower() for n in names}
        return Headers(pair for pair in self._items if pair[0].lower() not in lowered)

    def without_prefix(self, prefix: str) -> "Headers":
        """Drop every header whose name starts with ``prefix`` (case-insensitive)."""
        lowered = prefix.lower()
        return Headers(pair for pair in self._items if not pair[0].lower().startswith(lowered))

    def replacing(self, pairs: HeaderPairs) -> "Headers":
        """Replace all values of the names in ``pairs`` with the given values."""
        pairs = tuple(pairs)
        return self.without(*(name for name, _ in pairs)).adding(pairs)

    def to_dict(self) -> dict:
        """Collapse to a plain dict, joining repeated names with ``, ``."""
        result: dict = {}
        for name in self.names():
            result[name] = ", ".join(self.get_all(name))
        return result

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        return self.get(name) is not None

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return self._items == other._items

    def __hash__(self) -> int:
        return hash(self._items)

    def __repr__(self) -> str:
        return f"Headers({list(self._items)!r})"


class Payload:
    """
    Base class for request bodies.

    A payload produces its bytes through ``iter_bytes``. Repeatable payloads
    can be read any number of times, which signing requires.
    """

    repeatable = True
    content_type: Optional[str] = None

    def iter_bytes(self) -> Iterator[bytes]:
        raise NotImplementedError

    def read(self) -> bytes:
        return b"".join(self.iter_bytes())


@dataclass(frozen=True)
class BytesPayload(Payload):
    """In-memory byte payload"""
    data: bytes
    content_type: Optional[str] = None

    def iter_bytes(self) -> Iterator[bytes]:
        yield self.data


@dataclass(frozen=True)
class StringPayload(Payload):
    """Text payload, encoded on read"""
    text: str
    content_type: Optional[str] = None
    encoding: str = "utf-8"

    def iter_bytes(self) -> Iterator[bytes]:
        yield self.text.encode(self.encoding)


@dataclass(frozen=True)
class FilePayload(Payload):
    """Payload streamed from a file on disk; re-opened on every read"""
    path: str
    content_type: Optional[str] = None
    chunk_size: int = 64 * 1024

    def iter_bytes(self) -> Iterator[bytes]:
        with open(self.path, "rb") as fh:
            while True:
                chunk = fh.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk

    @property
    def size(self) -> int:
        return os.path.getsize(self.path)


class StreamPayload(Payload):
    """
    One-shot payload backed by a file object or an iterable of bytes.

    It cannot be re-read, so signers that need to hash it refuse it.
    """

    repeatable = False

    def __init__(self, source: Union[BinaryIO, Iterable[bytes]], content_type: Optional[str] = None):
        self.source = source
        self.content_type = content_type
        self._consumed = False

    def iter_bytes(self) -> Iterator[bytes]:
        if self._consumed:
            raise UnreadablePayloadError("Stream payload was already consumed")
        self._consumed = True
        read = getattr(self.source, "read", None)
        if read is not None:
            while True:
                chunk = read(64 * 1024)
                if not chunk:
                    break
                yield chunk
        else:
            for chunk in self.source:
                yield chunk

    def __repr__(self) -> str:
        return f"StreamPayload(source={type(self.source).__name__}, consumed={self._consumed})"


@dataclass(frozen=True)
class FormPayload(Payload):
    """``application/x-www-form-urlencoded`` body built from ordered parameters"""
    params: Tuple[Tuple[str, str], ...] = ()
    content_type: Optional[str] = FORM_CONTENT_TYPE

    def __post_init__(self):
        object.__setattr__(self, "params", tuple((str(k), str(v)) for k, v in self.params))

    @classmethod
    def parse(cls, body: Union[str, bytes], content_type: Optional[str] = FORM_CONTENT_TYPE) -> "FormPayload":
        """Parse an already-encoded form body."""
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        return cls(tuple(parse_qsl(body, keep_blank_values=True)), content_type)

    def get(self, name: str) -> Optional[str]:
        for key, value in self.params:
            if key == name:
                return value
        return None

    def __contains__(self, name: object) -> bool:
        return any(key == name for key, _ in self.params)

    def with_param(self, name: str, value: str) -> "FormPayload":
        return dataclasses.replace(self, params=self.params + ((name, value),))

    def encode(self) -> str:
        return urlencode(self.params, quote_via=quote, safe="")

    def iter_bytes(self) -> Iterator[bytes]:
        yield self.encode().encode("utf-8")


@dataclass(frozen=True)
class Part:
    """One named part of a multipart form"""
    name: str
    payload: Payload
    filename: Optional[str] = None
    content_type: Optional[str] = None

    def header_block(self) -> bytes:
        disposition = f'form-data; name="{self.name}"'
        if self.filename is not None:
            disposition += f'; filename="{self.filename}"'
        lines = [f"Content-Disposition: {disposition}"]
        content_type = self.content_type or self.payload.content_type
        if content_type:
            lines.append(f"Content-Type: {content_type}")
        return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")


class MultipartForm(Payload):
    """``multipart/form-data`` body; repeatable when every part is"""

    def __init__(self, parts: Sequence[Part], boundary: Optional[str] = None):
        self.parts = tuple(parts)
        self.boundary = boundary or f"cloudsign-{uuid.uuid4().hex}"
        self.content_type = f"multipart/form-data; boundary={self.boundary}"

    @property
    def repeatable(self) -> bool:  # type: ignore[override]
        return all(part.payload.repeatable for part in self.parts)

    def find_part(self, name: str) -> Optional[Part]:
        for part in self.parts:
            if part.name == name:
                return part
        return None

    def iter_bytes(self) -> Iterator[bytes]:
        delimiter = f"--{self.boundary}\r\n".encode("ascii")
        for part in self.parts:
            yield delimiter
            yield part.header_block()
            for chunk in part.payload.iter_bytes():
                yield chunk
            yield b"\r\n"
        yield f"--{self.boundary}--\r\n".encode("ascii")

    def __repr__(self) -> str:
        names = [part.name for part in self.parts]
        return f"MultipartForm(parts={names!r}, boundary={self.boundary!r})"


def as_payload(body: Any, content_type: Optional[str] = None) -> Optional[Payload]:
    """
    Wrap a raw body in a payload.

    ``bytes`` and ``str`` become repeatable payloads; file objects and other
    iterables become one-shot ``StreamPayload`` instances.
    """
    if body is None or isinstance(body, Payload):
        return body
    if isinstance(body, bytes):
        return BytesPayload(body, content_type)
    if isinstance(body, str):
        return StringPayload(body, content_type)
    if hasattr(body, "read") or hasattr(body, "__iter__"):
        return StreamPayload(body, content_type)
    raise TypeError(f"Unsupported payload type: {type(body).__name__}")


@dataclass(frozen=True)
class HttpRequest:
    """
    Immutable description of an outbound HTTP request

    Attributes:
        method: HTTP method, upper-cased
        url: Absolute request URL
        headers: Request headers
        payload: Optional request body
    """
    method: str
    url: str
    headers: Headers = field(default_factory=Headers)
    payload: Optional[Payload] = None

    def __post_init__(self):
        method = getattr(self.method, "value", self.method)
        if not isinstance(method, str) or not _METHOD_PATTERN.fullmatch(method):
            raise MalformedRequestError(f"Invalid HTTP method: {method!r}", details={"method": repr(method)})
        object.__setattr__(self, "method", method.upper())

        if not isinstance(self.headers, Headers):
            object.__setattr__(self, "headers", Headers(self.headers))

        if self.payload is not None and not isinstance(self.payload, Payload):
            object.__setattr__(self, "payload", as_payload(self.payload))

    @property
    def endpoint(self) -> UrlParts:
        """Parsed URL; raises MalformedRequestError when it cannot be parsed."""
        return parse_url(self.url)

    @property
    def host_header(self) -> str:
        """The Host header if set, otherwise the host derived from the URL."""
        return self.headers.get("Host") or host_header_for(self.endpoint)

    def replace(self, **changes: Any) -> "HttpRequest":
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class SigningContext:
    """
    Per-call signing inputs

    Attributes:
        timestamp: Signing timestamp in the scheme's format
        service: Service token for the SigV4 credential scope
        region: Region token for the SigV4 credential scope
        api_version: Optional API version injected into form payloads
    """
    timestamp: str
    service: str = ""
    region: str = ""
    api_version: Optional[str] = None

    @property
    def date_stamp(self) -> str:
        return self.timestamp[:8]

    @property
    def credential_scope(self) -> str:
        return f"{self.date_stamp}/{self.region}/{self.service}/aws4_request"


@dataclass(frozen=True)
class SignatureResult:
    """
    Output of a signature computation

    Attributes:
        value: Signature (hex for SigV4, base64 for Chef)
        headers: Headers to set on the request, replacing same-named ones
        query_params: Query parameters to append to the URL
        removed_headers: Header names to drop from the request
        removed_header_prefixes: Header-name prefixes to drop from the request
        url: Replacement URL, if the scheme normalizes the endpoint
        payload: Replacement payload, if the scheme rewrites the body
        canonical_request: Canonical request that was hashed (debugging only)
        string_to_sign: String that was signed (debugging only)
    """
    value: str
    headers: Tuple[Tuple[str, str], ...] = ()
    query_params: Tuple[Tuple[str, str], ...] = ()
    removed_headers: Tuple[str, ...] = ()
    removed_header_prefixes: Tuple[str, ...] = ()
    url: Optional[str] = None
    payload: Optional[Payload] = None
    canonical_request: Optional[str] = field(default=None, repr=False, compare=False)
    string_to_sign: Optional[str] = field(default=None, repr=False, compare=False)
