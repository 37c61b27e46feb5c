"""
cloudsign
Request signing for cloud-provider HTTP APIs (AWS SigV4, Chef RSA headers)
"""

from .version import __version__
from .exceptions import (
    CloudSignError,
    ConfigurationError,
    CryptoProviderError,
    MalformedRequestError,
    MissingCredentialsError,
    SigningError,
    SigningErrorCodes,
    UnreadablePayloadError,
)
from .credentials import (
    Credentials,
    CredentialsSource,
    EnvironmentCredentialsSource,
    RefreshingCredentialsSource,
    StaticCredentialsSource,
    as_credentials_source,
)
from .signing import (
    # Request model
    BytesPayload,
    FilePayload,
    FormPayload,
    Headers,
    HttpRequest,
    MultipartForm,
    Part,
    StreamPayload,
    StringPayload,

    # Signers
    AwsServiceAndRegion,
    AwsV4FormSigner,
    AwsV4QuerySigner,
    ChefRsaSigner,
    StaticServiceAndRegion,

    # Configuration
    SigningConfig,
    SigningScheme,
    create_signer,
    create_signing_config,
    load_signing_config_from_env,
    load_signing_config_from_file,

    # HTTP client integration
    SigningAuth,
    SigningSession,
    create_signing_session,
)

__all__ = [
    '__version__',
    'CloudSignError',
    'ConfigurationError',
    'CryptoProviderError',
    'MalformedRequestError',
    'MissingCredentialsError',
    'SigningError',
    'SigningErrorCodes',
    'UnreadablePayloadError',
    'Credentials',
    'CredentialsSource',
    'EnvironmentCredentialsSource',
    'RefreshingCredentialsSource',
    'StaticCredentialsSource',
    'as_credentials_source',
    'BytesPayload',
    'FilePayload',
    'FormPayload',
    'Headers',
    'HttpRequest',
    'MultipartForm',
    'Part',
    'StreamPayload',
    'StringPayload',
    'AwsServiceAndRegion',
    'AwsV4FormSigner',
    'AwsV4QuerySigner',
    'ChefRsaSigner',
    'StaticServiceAndRegion',
    'SigningConfig',
    'SigningScheme',
    'create_signer',
    'create_signing_config',
    'load_signing_config_from_env',
    'load_signing_config_from_file',
    'SigningAuth',
    'SigningSession',
    'create_signing_session',
]
