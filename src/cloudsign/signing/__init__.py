"""
cloudsign - Request Signing Module

AWS Signature Version 4 (header and presigned-URL forms) and Chef
mixlib-authentication RSA header signing. Signers take an immutable
``HttpRequest`` and return a new, signed one.
"""

from .types import (
    FORM_CONTENT_TYPE,
    BytesPayload,
    FilePayload,
    FormPayload,
    Headers,
    HttpMethod,
    HttpRequest,
    MultipartForm,
    Part,
    Payload,
    SignatureResult,
    SigningContext,
    StreamPayload,
    StringPayload,
    as_payload,
)

from .utils import (
    aws_timestamp,
    canonical_path,
    canonical_query_string,
    canonical_uri,
    chef_timestamp,
    parse_url,
    split_fixed_width,
)

from .canonical_request import (
    CanonicalRequestBuilder,
    build_string_to_sign,
)

from .region import (
    AwsServiceAndRegion,
    ServiceAndRegion,
    StaticServiceAndRegion,
)

from .mutator import apply_signature

from .aws_v4_signer import (
    UNSIGNED_PAYLOAD,
    AwsV4FormSigner,
    AwsV4QuerySigner,
    compute_signature,
    derive_signing_key,
)

from .chef_signer import (
    AUTHORIZATION_CHUNK_WIDTH,
    EMPTY_STRING_HASH,
    SIGNING_DESCRIPTION,
    ChefRsaSigner,
)

from .signing_config import (
    SIGNING_PROFILES,
    DebugConfig,
    SigningConfig,
    SigningConfigBuilder,
    SigningProfile,
    SigningScheme,
    create_signer,
    create_signing_config,
    get_signing_profile,
    list_signing_profiles,
    load_signing_config_from_dict,
    load_signing_config_from_env,
    load_signing_config_from_file,
    load_signing_config_from_json,
    validate_signing_config,
)

from .integration import (
    SigningAuth,
    SigningSession,
    create_signing_session,
    sign_prepared_request,
)

# Public API exports
__all__ = [
    # Request model
    'FORM_CONTENT_TYPE',
    'BytesPayload',
    'FilePayload',
    'FormPayload',
    'Headers',
    'HttpMethod',
    'HttpRequest',
    'MultipartForm',
    'Part',
    'Payload',
    'SignatureResult',
    'SigningContext',
    'StreamPayload',
    'StringPayload',
    'as_payload',

    # Canonicalization helpers
    'aws_timestamp',
    'canonical_path',
    'canonical_query_string',
    'canonical_uri',
    'chef_timestamp',
    'parse_url',
    'split_fixed_width',
    'CanonicalRequestBuilder',
    'build_string_to_sign',

    # Scope resolution
    'AwsServiceAndRegion',
    'ServiceAndRegion',
    'StaticServiceAndRegion',

    # Signers
    'apply_signature',
    'UNSIGNED_PAYLOAD',
    'AwsV4FormSigner',
    'AwsV4QuerySigner',
    'compute_signature',
    'derive_signing_key',
    'AUTHORIZATION_CHUNK_WIDTH',
    'EMPTY_STRING_HASH',
    'SIGNING_DESCRIPTION',
    'ChefRsaSigner',

    # Configuration
    'SIGNING_PROFILES',
    'DebugConfig',
    'SigningConfig',
    'SigningConfigBuilder',
    'SigningProfile',
    'SigningScheme',
    'create_signer',
    'create_signing_config',
    'get_signing_profile',
    'list_signing_profiles',
    'load_signing_config_from_dict',
    'load_signing_config_from_env',
    'load_signing_config_from_file',
    'load_signing_config_from_json',
    'validate_signing_config',

    # HTTP client integration
    'SigningAuth',
    'SigningSession',
    'create_signing_session',
    'sign_prepared_request',
]
