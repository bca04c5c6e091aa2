"""
Veilpix Cryptographic Package.

Password-gated encryption of payload text before it is framed and embedded.

Modules:
    cipher: PayloadCipher with AES-GCM, ChaCha20-Poly1305 and AES-CBC-HMAC

Usage:
    >>> from veilpix.crypto import PayloadCipher
    >>> cipher = PayloadCipher(algorithm="aes")
    >>> token = cipher.encrypt("Secret", "password")
    >>> cipher.decrypt(token, "password")
    'Secret'
"""

from .cipher import (
    CipherAlgorithm,
    KdfType,
    PayloadCipher,
    RandomSource,
    resolve_cipher,
    resolve_kdf,
)

__all__ = [
    "CipherAlgorithm",
    "KdfType",
    "PayloadCipher",
    "RandomSource",
    "resolve_cipher",
    "resolve_kdf",
]
