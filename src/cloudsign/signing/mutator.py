"""
Apply a computed signature to a copy of the request
"""

from typing import Iterable, Tuple
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from .types import HttpRequest, SignatureResult


def apply_signature(request: HttpRequest, result: SignatureResult) -> HttpRequest:
    """
    Return a new request carrying the signature.

    The original request is never modified. Headers listed in
    ``removed_headers`` or matching ``removed_header_prefixes`` are dropped,
    every header in ``result.headers`` replaces any same-named header, and
    ``result.query_params`` are appended to the URL.

    Args:
        request: Unsigned request
        result: Output of a signer's ``compute_signature``

    Returns:
        HttpRequest: Signed request
    """
    headers = request.headers
    if result.removed_headers:
        headers = headers.without(*result.removed_headers)
    for prefix in result.removed_header_prefixes:
        headers = headers.without_prefix(prefix)
    headers = headers.replacing(result.headers)

    url = result.url or request.url
    if result.query_params:
        url = append_query_params(url, result.query_params)

    changes = {"headers": headers, "url": url}
    if result.payload is not None:
        changes["payload"] = result.payload
    return request.replace(**changes)


def append_query_params(url: str, params: Iterable[Tuple[str, str]]) -> str:
    """Append percent-encoded parameters to the URL's query string."""
    parts = urlsplit(url)
    encoded = "&".join(f"{quote(name, safe='')}={quote(value, safe='')}" for name, value in params)
    query = f"{parts.query}&{encoded}" if parts.query else encoded
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def remove_query_params(url: str, names: Iterable[str]) -> str:
    """Drop every query parameter whose decoded name is in ``names``."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    names = set(names)
    kept = [
        segment for segment in parts.query.split("&")
        if unquote(segment.split("=", 1)[0]) not in names
    ]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "&".join(kept), parts.fragment))
