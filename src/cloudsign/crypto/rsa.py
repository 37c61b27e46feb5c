"""
RSA key handling and the mixlib-authentication signature transform

The Chef request-signing protocol does not use a standard RSA signature.
It "encrypts" the string to sign with the private key, which is OpenSSL's
``RSA_private_encrypt`` with PKCS#1 v1.5 block type 1 padding: no digest is
taken and no DigestInfo is prepended. Chef servers verify exactly this, so the
transform is reproduced bit for bit here instead of being swapped for
RSASSA-PKCS1-v1_5. It is a known non-standard construction.
"""

import math
import secrets
from typing import Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ..exceptions import CryptoProviderError

# 0x00 0x01 <at least 8 x 0xFF> 0x00
PKCS1_TYPE1_OVERHEAD = 11


def load_private_key(pem: Union[str, bytes]) -> rsa.RSAPrivateKey:
    """
    Load an unencrypted PEM RSA private key (PKCS#1 or PKCS#8).

    Args:
        pem: PEM text

    Returns:
        RSAPrivateKey: Parsed key

    Raises:
        CryptoProviderError: If the PEM is malformed or not an RSA key
    """
    if isinstance(pem, str):
        pem = pem.encode("ascii", errors="replace")
    try:
        key = serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CryptoProviderError(
            f"Invalid private key: {e}",
            details={"original_error": str(e)}
        )
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CryptoProviderError(
            f"Expected an RSA private key, got {type(key).__name__}",
            details={"key_type": type(key).__name__}
        )
    return key


def load_public_key(pem: Union[str, bytes]) -> rsa.RSAPublicKey:
    """Load a PEM RSA public key (SubjectPublicKeyInfo or PKCS#1)."""
    if isinstance(pem, str):
        pem = pem.encode("ascii", errors="replace")
    try:
        key = serialization.load_pem_public_key(pem)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CryptoProviderError(f"Invalid public key: {e}", details={"original_error": str(e)})
    if not isinstance(key, rsa.RSAPublicKey):
        raise CryptoProviderError(f"Expected an RSA public key, got {type(key).__name__}")
    return key


def private_encrypt(private_key: rsa.RSAPrivateKey, message: bytes) -> bytes:
    """
    Apply the RSA private-key operation to a PKCS#1 type 1 padded message.

    Equivalent to ``openssl rsautl -sign`` / Ruby's ``private_encrypt``.
    Deterministic: the same key and message always give the same bytes.
    The exponentiation is blinded with a fresh random factor, and the result
    is checked against the public key before it is returned.

    Args:
        private_key: RSA private key
        message: Raw bytes to transform (not hashed)

    Returns:
        bytes: Result, exactly the modulus length

    Raises:
        CryptoProviderError: If the message does not fit the modulus, or the
            key produced a result that does not verify
    """
    size = (private_key.key_size + 7) // 8
    if len(message) > size - PKCS1_TYPE1_OVERHEAD:
        raise CryptoProviderError(
            f"Message of {len(message)} bytes is too long for a {private_key.key_size}-bit key",
            details={"message_length": len(message), "key_size": private_key.key_size}
        )

    block = b"\x00\x01" + b"\xff" * (size - 3 - len(message)) + b"\x00" + message
    numbers = private_key.private_numbers()
    n = numbers.public_numbers.n
    e = numbers.public_numbers.e
    m = int.from_bytes(block, "big")

    r = _blinding_factor(n)
    blinded = (m * pow(r, e, n)) % n

    # CRT form of blinded^d mod n
    s1 = pow(blinded, numbers.dmp1, numbers.p)
    s2 = pow(blinded, numbers.dmq1, numbers.q)
    h = (numbers.iqmp * (s1 - s2)) % numbers.p
    s = ((s2 + h * numbers.q) * pow(r, -1, n)) % n

    if pow(s, e, n) != m:
        raise CryptoProviderError(
            "RSA private-key operation produced an invalid result",
            details={"key_size": private_key.key_size}
        )
    return s.to_bytes(size, "big")


def _blinding_factor(n: int) -> int:
    while True:
        r = secrets.randbelow(n - 2) + 2
        if math.gcd(r, n) == 1:
            return r


def public_decrypt(public_key: rsa.RSAPublicKey, data: bytes) -> bytes:
    """
    Invert ``private_encrypt`` with the public key.

    Raises:
        CryptoProviderError: If the data was not produced by the matching private key
    """
    try:
        return public_key.recover_data_from_signature(data, padding.PKCS1v15(), None)
    except (InvalidSignature, ValueError) as e:
        raise CryptoProviderError(f"Cannot recover signed data: {e}", details={"original_error": str(e)})
