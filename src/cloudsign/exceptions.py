"""
Exception classes for cloudsign

Every failure raised while signing a request is a ``SigningError`` subclass so
callers can abort the outbound call before any network I/O happens.
"""

from typing import Optional, Dict, Any


class SigningErrorCodes:
    """Standard error codes for signing operations"""

    # Configuration errors
    INVALID_CONFIG = "INVALID_CONFIG"

    # Credential errors
    MISSING_CREDENTIALS = "MISSING_CREDENTIALS"
    EXPIRED_CREDENTIALS = "EXPIRED_CREDENTIALS"

    # Request errors
    MALFORMED_REQUEST = "MALFORMED_REQUEST"
    UNREADABLE_PAYLOAD = "UNREADABLE_PAYLOAD"

    # Crypto errors
    CRYPTO_ERROR = "CRYPTO_ERROR"

    # Anything else that went wrong inside a signer
    SIGNING_FAILED = "SIGNING_FAILED"


class CloudSignError(Exception):
    """Base exception for all cloudsign errors"""

    default_code = "UNKNOWN_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (code: {self.code}, details: {self.details})"
        return f"{self.message} (code: {self.code})"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message='{self.message}', "
            f"code='{self.code}', details={self.details})"
        )


class SigningError(CloudSignError):
    """Raised when a request cannot be signed"""

    default_code = SigningErrorCodes.SIGNING_FAILED


class MissingCredentialsError(SigningError):
    """Identity, secret or private key is absent (or the credentials expired)"""

    default_code = SigningErrorCodes.MISSING_CREDENTIALS


class UnreadablePayloadError(SigningError):
    """Payload is not repeatable or could not be read while hashing"""

    default_code = SigningErrorCodes.UNREADABLE_PAYLOAD


class CryptoProviderError(SigningError):
    """Underlying HMAC/SHA/RSA primitive failed or the key is malformed"""

    default_code = SigningErrorCodes.CRYPTO_ERROR


class MalformedRequestError(SigningError):
    """Request endpoint or method cannot be canonicalized"""

    default_code = SigningErrorCodes.MALFORMED_REQUEST


class ConfigurationError(CloudSignError):
    """Invalid signing configuration"""

    default_code = SigningErrorCodes.INVALID_CONFIG
