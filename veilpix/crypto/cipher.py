"""
Veilpix Payload Cipher.

This module wraps message plaintext in a password-keyed symmetric cipher
before it is framed and embedded. The ciphertext is returned as an ASCII
token (base64) so the frame text never contains a NUL byte, which would
otherwise terminate extraction early.

Supported ciphers:
    - aes: AES-256-GCM (default)
    - chacha20: ChaCha20-Poly1305
    - aes-cbc: AES-256-CBC with HMAC-SHA256 (encrypt-then-MAC)

Supported key derivation functions:
    - pbkdf2-sha256 (default)
    - pbkdf2-sha512
    - argon2id

Token layout (before base64):
    kdf_id (1 byte) | salt (8 bytes) | nonce or IV | ciphertext | tag or MAC

All three ciphers authenticate the ciphertext, so a wrong password always
fails with DecryptionFailureError rather than yielding garbage text.

Randomness for salts and nonces comes from an injected ``random_source``
callable (``secrets.token_bytes`` by default), so tests can supply a seeded
generator.

Example:
    >>> cipher = PayloadCipher(algorithm="aes")
    >>> token = cipher.encrypt("TOP SECRET", "abc123456789")
    >>> cipher.decrypt(token, "abc123456789")
    'TOP SECRET'
"""

import base64
import binascii
import logging
import secrets
from enum import Enum
from typing import Callable, Optional, Tuple, Union

from argon2.low_level import Type as Argon2Type, hash_secret_raw
from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..config import StegoOptions
from ..errors import DecryptionFailureError, UnsupportedCipherError


logger = logging.getLogger(__name__)

RandomSource = Callable[[int], bytes]


class CipherAlgorithm(Enum):
    """Payload cipher identifiers as they appear in frame metadata."""

    AES_GCM = "aes"
    CHACHA20_POLY1305 = "chacha20"
    AES_CBC_HMAC = "aes-cbc"


class KdfType(Enum):
    """Password key derivation functions."""

    PBKDF2_SHA256 = "pbkdf2-sha256"
    PBKDF2_SHA512 = "pbkdf2-sha512"
    ARGON2ID = "argon2id"


# One-byte identifiers written at the start of every token
KDF_IDS = {
    KdfType.PBKDF2_SHA256: 1,
    KdfType.PBKDF2_SHA512: 2,
    KdfType.ARGON2ID: 3,
}


def resolve_cipher(identifier: Union[str, CipherAlgorithm]) -> CipherAlgorithm:
    """
    Map a cipher identifier onto CipherAlgorithm.

    Raises:
        UnsupportedCipherError: If the identifier is unknown
    """
    if isinstance(identifier, CipherAlgorithm):
        return identifier
    try:
        return CipherAlgorithm(str(identifier).lower())
    except ValueError:
        raise UnsupportedCipherError(
            f"Unsupported cipher: {identifier}",
            details={"supported": [c.value for c in CipherAlgorithm]},
        ) from None


def resolve_kdf(identifier: Union[str, KdfType]) -> KdfType:
    """
    Map a key derivation identifier onto KdfType.

    Raises:
        UnsupportedCipherError: If the identifier is unknown
    """
    if isinstance(identifier, KdfType):
        return identifier
    try:
        return KdfType(str(identifier).lower())
    except ValueError:
        raise UnsupportedCipherError(
            f"Unsupported key derivation function: {identifier}",
            details={"supported": [k.value for k in KdfType]},
        ) from None


class PayloadCipher:
    """
    Password-gated symmetric cipher for frame bodies.

    Attributes:
        algorithm: Selected CipherAlgorithm
        kdf: Key derivation function used for new tokens
        iterations: PBKDF2 iteration count

    Example:
        >>> cipher = PayloadCipher("chacha20", random_source=os.urandom)
        >>> token = cipher.encrypt("hello", "pw")
    """

    SALT_SIZE = 8
    TAG_SIZE = 16
    MAC_SIZE = 32
    KEY_SIZE = 32

    NONCE_SIZES = {
        CipherAlgorithm.AES_GCM: 12,
        CipherAlgorithm.CHACHA20_POLY1305: 12,
        CipherAlgorithm.AES_CBC_HMAC: 16,
    }

    # Argon2id cost parameters (memory in KiB)
    ARGON2_TIME_COST = 2
    ARGON2_MEMORY_COST = 19456
    ARGON2_PARALLELISM = 1

    def __init__(
        self,
        algorithm: Union[str, CipherAlgorithm] = CipherAlgorithm.AES_GCM,
        kdf: Union[str, KdfType] = KdfType.PBKDF2_SHA256,
        iterations: int = 100_000,
        random_source: Optional[RandomSource] = None,
    ):
        """
        Initialize the payload cipher.

        Args:
            algorithm: Cipher identifier
            kdf: Key derivation identifier for new tokens
            iterations: PBKDF2 iteration count
            random_source: Callable returning n random bytes

        Raises:
            UnsupportedCipherError: If the cipher or KDF is unknown
        """
        self._algorithm = resolve_cipher(algorithm)
        self._kdf = resolve_kdf(kdf)
        self._iterations = iterations
        self._random = random_source or secrets.token_bytes

        logger.debug(f"PayloadCipher initialized with algorithm={self._algorithm.value}, kdf={self._kdf.value}")

    @classmethod
    def from_options(cls, options: StegoOptions, random_source: Optional[RandomSource] = None) -> "PayloadCipher":
        """Build a cipher from StegoOptions."""
        return cls(
            algorithm=options.cipher,
            kdf=options.kdf,
            iterations=options.kdf_iterations,
            random_source=random_source,
        )

    @property
    def algorithm(self) -> CipherAlgorithm:
        """Get the selected cipher."""
        return self._algorithm

    @property
    def kdf(self) -> KdfType:
        """Get the key derivation function used for new tokens."""
        return self._kdf

    def derive_key(
        self,
        password: str,
        salt: bytes,
        kdf: Optional[KdfType] = None,
        length: int = KEY_SIZE,
    ) -> bytes:
        """
        Derive key material from a password.

        Args:
            password: Caller supplied password
            salt: Random salt stored in the token
            kdf: Key derivation function (defaults to the cipher's)
            length: Number of key bytes to derive

        Returns:
            Derived key bytes
        """
        kdf = kdf or self._kdf
        secret = password.encode("utf-8")

        if kdf == KdfType.ARGON2ID:
            return hash_secret_raw(
                secret=secret,
                salt=salt,
                time_cost=self.ARGON2_TIME_COST,
                memory_cost=self.ARGON2_MEMORY_COST,
                parallelism=self.ARGON2_PARALLELISM,
                hash_len=length,
                type=Argon2Type.ID,
            )

        algorithm = hashes.SHA512() if kdf == KdfType.PBKDF2_SHA512 else hashes.SHA256()
        return PBKDF2HMAC(
            algorithm=algorithm,
            length=length,
            salt=salt,
            iterations=self._iterations,
        ).derive(secret)

    def encrypt(self, plaintext: str, password: str) -> str:
        """
        Encrypt plaintext under a password.

        Args:
            plaintext: Message text
            password: Non-empty password

        Returns:
            ASCII token safe to place in a frame body
        """
        if not password:
            raise ValueError("A non-empty password is required for encryption")

        salt = self._random(self.SALT_SIZE)
        nonce = self._random(self.NONCE_SIZES[self._algorithm])
        header = bytes([KDF_IDS[self._kdf]]) + salt
        data = plaintext.encode("utf-8")

        if self._algorithm == CipherAlgorithm.AES_CBC_HMAC:
            key_material = self.derive_key(password, salt, length=2 * self.KEY_SIZE)
            body = self._encrypt_cbc(data, key_material, header, nonce)
        else:
            key = self.derive_key(password, salt)
            body = self._encrypt_aead(data, key, header, nonce)

        return base64.b64encode(header + nonce + body).decode("ascii")

    def decrypt(self, token: str, password: str) -> str:
        """
        Decrypt a token produced by encrypt().

        Args:
            token: ASCII token from a frame body
            password: Candidate password

        Returns:
            Recovered plaintext

        Raises:
            DecryptionFailureError: On a wrong password, a tampered or malformed token
        """
        if not password:
            raise DecryptionFailureError("A password is required to decrypt this payload", details={"encrypted": True})

        try:
            raw = base64.b64decode(token.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise DecryptionFailureError(f"Malformed ciphertext token: {e}") from e

        kdf, salt, nonce, body = self._split_token(raw)
        header = raw[:1 + self.SALT_SIZE]

        try:
            if self._algorithm == CipherAlgorithm.AES_CBC_HMAC:
                key_material = self.derive_key(password, salt, kdf=kdf, length=2 * self.KEY_SIZE)
                data = self._decrypt_cbc(body, key_material, header, nonce)
            else:
                key = self.derive_key(password, salt, kdf=kdf)
                data = self._decrypt_aead(body, key, header, nonce)
            return data.decode("utf-8")
        except (InvalidTag, InvalidSignature) as e:
            raise DecryptionFailureError("Incorrect password or corrupted payload") from e
        except (ValueError, UnicodeDecodeError) as e:
            raise DecryptionFailureError(f"Corrupted payload: {e}") from e

    def _split_token(self, raw: bytes) -> Tuple[KdfType, bytes, bytes, bytes]:
        """Split a decoded token into kdf, salt, nonce and the remaining body."""
        nonce_size = self.NONCE_SIZES[self._algorithm]
        trailer = self.MAC_SIZE if self._algorithm == CipherAlgorithm.AES_CBC_HMAC else self.TAG_SIZE
        if len(raw) < 1 + self.SALT_SIZE + nonce_size + trailer:
            raise DecryptionFailureError("Ciphertext token too short", details={"length": len(raw)})

        kdf_by_id = {value: key for key, value in KDF_IDS.items()}
        kdf = kdf_by_id.get(raw[0])
        if kdf is None:
            raise DecryptionFailureError(f"Unknown key derivation id: {raw[0]}")

        salt = raw[1:1 + self.SALT_SIZE]
        nonce = raw[1 + self.SALT_SIZE:1 + self.SALT_SIZE + nonce_size]
        body = raw[1 + self.SALT_SIZE + nonce_size:]
        return kdf, salt, nonce, body

    def _encrypt_aead(self, data: bytes, key: bytes, header: bytes, nonce: bytes) -> bytes:
        """Encrypt with AES-GCM or ChaCha20-Poly1305; returns ciphertext + tag."""
        if self._algorithm == CipherAlgorithm.CHACHA20_POLY1305:
            return ChaCha20Poly1305(key).encrypt(nonce, data, header)

        encryptor = Cipher(algorithms.AES(key), modes.GCM(nonce)).encryptor()
        encryptor.authenticate_additional_data(header)
        ciphertext = encryptor.update(data) + encryptor.finalize()
        return ciphertext + encryptor.tag

    def _decrypt_aead(self, body: bytes, key: bytes, header: bytes, nonce: bytes) -> bytes:
        if self._algorithm == CipherAlgorithm.CHACHA20_POLY1305:
            return ChaCha20Poly1305(key).decrypt(nonce, body, header)

        ciphertext, tag = body[:-self.TAG_SIZE], body[-self.TAG_SIZE:]
        decryptor = Cipher(algorithms.AES(key), modes.GCM(nonce, tag)).decryptor()
        decryptor.authenticate_additional_data(header)
        return decryptor.update(ciphertext) + decryptor.finalize()

    def _encrypt_cbc(self, data: bytes, key_material: bytes, header: bytes, iv: bytes) -> bytes:
        """Encrypt-then-MAC with AES-256-CBC and HMAC-SHA256; returns ciphertext + MAC."""
        enc_key, mac_key = key_material[:self.KEY_SIZE], key_material[self.KEY_SIZE:]

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(data) + padder.finalize()

        encryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        mac = hmac.HMAC(mac_key, hashes.SHA256())
        mac.update(header + iv + ciphertext)
        return ciphertext + mac.finalize()

    def _decrypt_cbc(self, body: bytes, key_material: bytes, header: bytes, iv: bytes) -> bytes:
        enc_key, mac_key = key_material[:self.KEY_SIZE], key_material[self.KEY_SIZE:]
        ciphertext, tag = body[:-self.MAC_SIZE], body[-self.MAC_SIZE:]

        # MAC is verified before any decryption
        mac = hmac.HMAC(mac_key, hashes.SHA256())
        mac.update(header + iv + ciphertext)
        mac.verify(tag)

        decryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
