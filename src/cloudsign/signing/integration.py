"""
HTTP client integration for request signing

This module connects the signers to the ``requests`` library: an auth
handler, a helper that signs a ``PreparedRequest`` in place, and a session
wrapper that signs every outgoing request. A request that cannot be signed
is never sent.
"""

import logging
from typing import Any, Optional

import requests
from requests.auth import AuthBase
from requests.models import PreparedRequest
from requests.sessions import Session
from requests.structures import CaseInsensitiveDict

from .types import BytesPayload, HttpRequest, StreamPayload, StringPayload

logger = logging.getLogger(__name__)


def to_http_request(prepared_request: PreparedRequest) -> HttpRequest:
    """
    Describe a prepared request as an ``HttpRequest``.

    ``bytes`` and ``str`` bodies become repeatable payloads. Generators and
    file objects become one-shot stream payloads, which signers that hash the
    body refuse.
    """
    headers = list(prepared_request.headers.items()) if prepared_request.headers else []
    content_type = prepared_request.headers.get("Content-Type") if prepared_request.headers else None
    body = prepared_request.body

    if body is None:
        payload = None
    elif isinstance(body, bytes):
        payload = BytesPayload(body, content_type)
    elif isinstance(body, str):
        payload = StringPayload(body, content_type)
    else:
        payload = StreamPayload(body, content_type)

    return HttpRequest(
        method=prepared_request.method,
        url=prepared_request.url,
        headers=headers,
        payload=payload,
    )


def sign_prepared_request(prepared_request: PreparedRequest, signer: Any) -> PreparedRequest:
    """
    Sign a prepared request.

    Args:
        prepared_request: Prepared request to sign; updated in place
        signer: Any signer with a ``sign(HttpRequest)`` method

    Returns:
        PreparedRequest: The same request with signed URL, headers and body

    Raises:
        SigningError: If signing fails
    """
    request = to_http_request(prepared_request)
    signed = signer.sign(request)

    prepared_request.url = signed.url
    prepared_request.headers = CaseInsensitiveDict(signed.headers.to_dict())
    if signed.payload is not request.payload:
        prepared_request.body = signed.payload.read() if signed.payload is not None else None

    logger.debug(f"Signed {signed.method} request to {signed.url}")
    return prepared_request


class SigningAuth(AuthBase):
    """
    ``requests`` auth handler that signs each request.

    Use it with the ``auth`` argument of the requests methods, or assign it
    to a session's ``auth`` attribute.
    """

    def __init__(self, signer: Any):
        self.signer = signer

    def __call__(self, request: PreparedRequest) -> PreparedRequest:
        return sign_prepared_request(request, self.signer)

    def __repr__(self) -> str:
        return f"SigningAuth(signer={self.signer!r})"


class SigningSession:
    """
    HTTP session wrapper with automatic request signing capability.

    This class wraps a requests.Session and signs outgoing requests with
    the configured signer. Signing errors propagate to the caller.
    """

    def __init__(
        self,
        signer: Optional[Any] = None,
        session: Optional[Session] = None,
        auto_sign: bool = True
    ):
        """
        Initialize signing session.

        Args:
            signer: Signer applied to every request
            session: Optional existing requests session to wrap
            auto_sign: Whether to automatically sign requests
        """
        self.session = session or requests.Session()
        self.signer = signer
        self.auto_sign = auto_sign

    def configure_signing(self, signer: Any, auto_sign: bool = True) -> None:
        self.signer = signer
        self.auto_sign = auto_sign
        logger.info(f"Configured request signing with {signer!r}")

    def disable_signing(self) -> None:
        """Disable automatic request signing."""
        self.auto_sign = False
        logger.info("Disabled automatic request signing")

    def enable_signing(self) -> None:
        """Enable automatic request signing (if configured)."""
        if self.signer:
            self.auto_sign = True
            logger.info("Enabled automatic request signing")
        else:
            logger.warning("Cannot enable signing - no signer configured")

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Make HTTP request, signed when signing is enabled.

        Args:
            method: HTTP method
            url: Request URL
            **kwargs: Additional arguments for requests

        Returns:
            requests.Response: HTTP response

        Raises:
            SigningError: If the request cannot be signed; nothing is sent
        """
        if self.auto_sign and self.signer:
            kwargs["auth"] = SigningAuth(self.signer)
        return self.session.request(method, url, **kwargs)

    def get(self, url: str, **kwargs) -> requests.Response:
        """Make GET request."""
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> requests.Response:
        """Make POST request."""
        return self.request("POST", url, **kwargs)

    def put(self, url: str, **kwargs) -> requests.Response:
        return self.request("PUT", url, **kwargs)

    def delete(self, url: str, **kwargs) -> requests.Response:
        return self.request("DELETE", url, **kwargs)

    def head(self, url: str, **kwargs) -> requests.Response:
        return self.request("HEAD", url, **kwargs)

    def close(self) -> None:
        """Close the underlying session."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def create_signing_session(
    signer: Optional[Any] = None,
    auto_sign: bool = True,
    **session_kwargs
) -> SigningSession:
    """
    Create a new signing session.

    Args:
        signer: Signer applied to every request
        auto_sign: Whether to automatically sign requests
        **session_kwargs: Attributes to set on the new requests.Session

    Returns:
        SigningSession: Configured signing session
    """
    session = requests.Session()

    for key, value in session_kwargs.items():
        if hasattr(session, key):
            setattr(session, key, value)

    return SigningSession(signer=signer, session=session, auto_sign=auto_sign)
