"""
AWS Signature Version 4 signers

``AwsV4FormSigner`` signs a request through the ``Authorization`` header, the
way form-posting query APIs (IAM, STS, EC2, ...) expect it.
``AwsV4QuerySigner`` moves the signature into the URL so that the request can
be handed to a third party (a presigned URL).

Both share the canonicalization in ``canonical_request`` and the key
derivation below; neither holds credentials or timestamps between calls.
"""

import hashlib
import hmac
import logging
from typing import Callable, Optional

from ..credentials import Credentials, CredentialsLike, as_credentials_source
from ..exceptions import CryptoProviderError, MalformedRequestError
from .canonical_request import (
    ALGORITHM,
    CanonicalRequestBuilder,
    authorization_header,
    build_string_to_sign,
    credential_value,
    log_canonical_strings,
)
from .mutator import apply_signature, remove_query_params
from .region import ServiceAndRegion
from .types import (
    FORM_CONTENT_TYPE,
    BytesPayload,
    FormPayload,
    HttpRequest,
    Payload,
    SignatureResult,
    SigningContext,
    StringPayload,
)
from .utils import aws_timestamp, hash_payload, hmac_sha256, run_signing_call

logger = logging.getLogger(__name__)

TimestampProvider = Callable[[], str]

UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
MAX_EXPIRES_SECONDS = 7 * 24 * 60 * 60

AMZ_DATE = "X-Amz-Date"
AMZ_SECURITY_TOKEN = "X-Amz-Security-Token"
AUTHORIZATION = "Authorization"

PRESIGN_QUERY_PARAMS = (
    "X-Amz-Algorithm",
    "X-Amz-Credential",
    "X-Amz-Date",
    "X-Amz-Expires",
    "X-Amz-SignedHeaders",
    "X-Amz-Security-Token",
    "X-Amz-Signature",
)


def derive_signing_key(secret: str, date_stamp: str, region: str, service: str) -> bytes:
    """
    Derive the SigV4 signing key.

    Args:
        secret: Secret access key
        date_stamp: ``YYYYMMDD``
        region: Region token of the scope
        service: Service token of the scope

    Returns:
        bytes: ``kSigning``
    """
    k_date = hmac_sha256(("AWS4" + secret).encode("utf-8"), date_stamp)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, "aws4_request")


def compute_signature(signing_key: bytes, string_to_sign: str) -> str:
    """Lowercase hex HMAC-SHA256 of the string to sign."""
    try:
        return hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()
    except (TypeError, ValueError) as e:
        raise CryptoProviderError(f"HMAC-SHA256 failed: {e}", details={"original_error": str(e)})


def _form_view(payload: Optional[Payload], content_type: Optional[str]) -> Optional[FormPayload]:
    if isinstance(payload, FormPayload):
        return payload
    if isinstance(payload, (BytesPayload, StringPayload)):
        content_type = payload.content_type or content_type
        if content_type and content_type.lower().startswith(FORM_CONTENT_TYPE):
            return FormPayload.parse(payload.read(), content_type)
    return None


class AwsV4FormSigner:
    """
    Header-based AWS Signature Version 4 signer

    Adds ``Authorization`` and ``X-Amz-Date`` (plus ``X-Amz-Security-Token``
    for session credentials) to a copy of the request. Authentication headers
    from an earlier signing are dropped first; every header left on the
    request, together with ``host``, is signed.
    """

    def __init__(
        self,
        credentials: CredentialsLike,
        service_and_region: ServiceAndRegion,
        timestamp_provider: Optional[TimestampProvider] = None,
        api_version: Optional[str] = None,
        require_action: bool = False,
        log_canonical_strings: bool = False,
        log_timing: bool = False,
        slow_signing_threshold_ms: float = 10.0,
    ):
        """
        Initialize the signer.

        Args:
            credentials: Source of the access key id, secret and optional token
            service_and_region: Resolves the credential scope from the request host
            timestamp_provider: Returns the ``YYYYMMDD'T'HHMMSS'Z'`` signing time
            api_version: ``Version`` value added to form payloads that lack one
            require_action: Refuse form payloads without an ``Action`` parameter
            log_canonical_strings: Send canonical strings to the signature log
            log_timing: Log the duration of every signing call
            slow_signing_threshold_ms: Warn when signing takes longer than this
        """
        self.credentials = as_credentials_source(credentials)
        self.service_and_region = service_and_region
        self.timestamp_provider = timestamp_provider or aws_timestamp
        self.api_version = api_version
        self.require_action = require_action
        self.log_canonical_strings = log_canonical_strings
        self.log_timing = log_timing
        self.slow_signing_threshold_ms = slow_signing_threshold_ms

    def sign(self, request: HttpRequest) -> HttpRequest:
        """
        Sign a request.

        Args:
            request: Request to sign; it is not modified

        Returns:
            HttpRequest: New, signed request

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
        )

    def create_context(self, request: HttpRequest) -> SigningContext:
        return SigningContext(
            timestamp=self.timestamp_provider(),
            service=self.service_and_region.service(),
            region=self.service_and_region.region(request.host_header),
            api_version=self.api_version,
        )

    def sign_with_context(
        self,
        request: HttpRequest,
        context: SigningContext,
        credentials: Credentials,
    ) -> HttpRequest:
        """Sign deterministically with an explicit context and credentials snapshot."""
        return apply_signature(request, self.compute_signature(request, context, credentials))

    def compute_signature(
        self,
        request: HttpRequest,
        context: SigningContext,
        credentials: Credentials,
    ) -> SignatureResult:
        """
        Compute the signature and the headers that carry it.

        Args:
            request: Request to sign
            context: Timestamp, scope and API version for this call
            credentials: Credentials snapshot for this call

        Returns:
            SignatureResult: Hex signature and auxiliary headers

        Raises:
            SigningError: If the request cannot be signed
        """
        payload = self._prepare_payload(request, context)

        aux_headers = [(AMZ_DATE, context.timestamp)]
        if payload is not request.payload and "Content-Length" in request.headers:
            aux_headers.append(("Content-Length", str(len(payload.read()))))
        if credentials.session_token:
            aux_headers.append((AMZ_SECURITY_TOKEN, credentials.session_token))

        working = request.replace(
            headers=request.headers.without(AUTHORIZATION, AMZ_SECURITY_TOKEN).replacing(aux_headers),
            payload=payload,
        )

        builder = CanonicalRequestBuilder(working)
        canonical_request = builder.build(hash_payload(payload).hex())
        string_to_sign = build_string_to_sign(context.timestamp, context.credential_scope, canonical_request)
        log_canonical_strings(canonical_request, string_to_sign, self.log_canonical_strings)

        signing_key = derive_signing_key(credentials.secret, context.date_stamp, context.region, context.service)
        signature = compute_signature(signing_key, string_to_sign)

        aux_headers.append((
            AUTHORIZATION,
            authorization_header(credentials.identity, context.credential_scope, builder.signed_headers, signature),
        ))

        return SignatureResult(
            value=signature,
            headers=tuple(aux_headers),
            removed_headers=(AUTHORIZATION, AMZ_SECURITY_TOKEN),
            payload=payload if payload is not request.payload else None,
            canonical_request=canonical_request,
            string_to_sign=string_to_sign,
        )

    def _prepare_payload(self, request: HttpRequest, context: SigningContext) -> Optional[Payload]:
        form = _form_view(request.payload, request.headers.get("Content-Type"))
        if form is None:
            return request.payload

        if self.require_action and "Action" not in form:
            raise MalformedRequestError(
                "request is not ready to sign; Action not present",
                details={"form": form.encode()}
            )

        if context.api_version and "Version" not in form:
            logger.debug(f"Adding Version={context.api_version} to form payload")
            return form.with_param("Version", context.api_version)
        return request.payload

    def __repr__(self) -> str:
        return f"AwsV4FormSigner(service_and_region={self.service_and_region!r}, api_version={self.api_version!r})"


class AwsV4QuerySigner:
    """
    Query-string AWS Signature Version 4 signer (presigned URLs)

    The authentication parameters are added to the URL and take part in the
    canonical query; the signature is appended last as ``X-Amz-Signature``.
    Only ``host`` and headers already present on the request are signed.
    """

    def __init__(
        self,
        credentials: CredentialsLike,
        service_and_region: ServiceAndRegion,
        timestamp_provider: Optional[TimestampProvider] = None,
        expires_seconds: Optional[int] = None,
        sign_payload: bool = True,
        log_canonical_strings: bool = False,
        log_timing: bool = False,
        slow_signing_threshold_ms: float = 10.0,
    ):
        if expires_seconds is not None and not 1 <= expires_seconds <= MAX_EXPIRES_SECONDS:
            raise MalformedRequestError(
                f"expires_seconds must be between 1 and {MAX_EXPIRES_SECONDS}",
                details={"expires_seconds": expires_seconds}
            )
        self.credentials = as_credentials_source(credentials)
        self.service_and_region = service_and_region
        self.timestamp_provider = timestamp_provider or aws_timestamp
        self.expires_seconds = expires_seconds
        self.sign_payload = sign_payload
        self.log_canonical_strings = log_canonical_strings
        self.log_timing = log_timing
        self.slow_signing_threshold_ms = slow_signing_threshold_ms

    def sign(self, request: HttpRequest) -> HttpRequest:
        """Presign a request; see ``AwsV4FormSigner.sign``."""
        return run_signing_call(
            request,
            self.credentials,
            self.create_context,
            self.sign_with_context,
            self.slow_signing_threshold_ms,
            self.log_timing,
        )

    def create_context(self, request: HttpRequest) -> SigningContext:
        return SigningContext(
            timestamp=self.timestamp_provider(),
            service=self.service_and_region.service(),
            region=self.service_and_region.region(request.host_header),
        )

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
        Compute the presigned query parameters.

        Any authentication parameters left on the URL by an earlier signing
        are dropped first.

        Returns:
            SignatureResult: Hex signature, query parameters and cleaned URL
        """
        url = remove_query_params(request.url, PRESIGN_QUERY_PARAMS)
        working = request.replace(url=url, headers=request.headers.without(AUTHORIZATION, AMZ_SECURITY_TOKEN))
        builder = CanonicalRequestBuilder(working)

        params = [
            ("X-Amz-Algorithm", ALGORITHM),
            ("X-Amz-Credential", credential_value(credentials.identity, context.credential_scope)),
            ("X-Amz-Date", context.timestamp),
        ]
        if self.expires_seconds is not None:
            params.append(("X-Amz-Expires", str(self.expires_seconds)))
        params.append(("X-Amz-SignedHeaders", builder.signed_headers))
        if credentials.session_token:
            params.append((AMZ_SECURITY_TOKEN, credentials.session_token))

        payload_hash = hash_payload(request.payload).hex() if self.sign_payload else UNSIGNED_PAYLOAD
        canonical_request = builder.build(payload_hash, params)
        string_to_sign = build_string_to_sign(context.timestamp, context.credential_scope, canonical_request)
        log_canonical_strings(canonical_request, string_to_sign, self.log_canonical_strings)

        signing_key = derive_signing_key(credentials.secret, context.date_stamp, context.region, context.service)
        signature = compute_signature(signing_key, string_to_sign)
        params.append(("X-Amz-Signature", signature))

        return SignatureResult(
            value=signature,
            query_params=tuple(params),
            removed_headers=(AUTHORIZATION, AMZ_SECURITY_TOKEN),
            url=url if url != request.url else None,
            canonical_request=canonical_request,
            string_to_sign=string_to_sign,
        )

    def __repr__(self) -> str:
        return f"AwsV4QuerySigner(service_and_region={self.service_and_region!r}, expires_seconds={self.expires_seconds})"
