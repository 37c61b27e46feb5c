"""
Cryptographic helpers for cloudsign
"""

from .rsa import (
    load_private_key,
    load_public_key,
    private_encrypt,
    public_decrypt,
)

__all__ = [
    'load_private_key',
    'load_public_key',
    'private_encrypt',
    'public_decrypt',
]
