"""
Veilpix Error Taxonomy.

Every failure raised by the codec core derives from StegoError, which carries
a human readable message, a stable numeric code and an optional details
mapping. Errors are raised synchronously where they are detected and are
never retried internally.

Codes:
    1001-1099: Embedding / extraction errors
    1101-1199: Image boundary errors
    2000-2099: Cipher errors
"""

from typing import Any, Dict, Optional


class StegoError(Exception):
    """Base exception for all steganography errors."""

    default_code: int = 1000

    def __init__(self, message: str, code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.details = details or {}

    def __str__(self) -> str:
        base = f"{type(self).__name__}: {self.message}"
        if self.code:
            base += f" (Code: {self.code})"
        return base


class CapacityExceededError(StegoError):
    """Raised before any pixel is touched when the payloads do not fit."""

    default_code = 1001


class UnsupportedTransformError(StegoError):
    """Raised for an unknown transform selector or header identifier."""

    default_code = 1002


class InvalidLengthFieldError(StegoError):
    """Raised when a decoded length is non-positive or larger than the image can address."""

    default_code = 1003


class EmptyPayloadError(StegoError):
    """Raised when an encode call has nothing to embed."""

    default_code = 1004


class FrameFormatError(StegoError):
    """Raised when extracted text does not parse as a tagged frame."""

    default_code = 1005


class PayloadNotFoundError(StegoError):
    """Raised when no embedded frame matches the requested index."""

    default_code = 1006


class MessageExpiredError(StegoError):
    """Raised when the selected frame carries a time expiry in the past."""

    default_code = 1007


class InvalidPixelBufferError(StegoError):
    """Raised when a pixel buffer does not match its declared dimensions."""

    default_code = 1008


class ImageLoadError(StegoError):
    """Raised when an image source cannot be read or decoded."""

    default_code = 1101


class MissingRenderContextError(StegoError):
    """Raised when a decoded image cannot be rendered into an RGBA buffer."""

    default_code = 1102


class CryptoError(StegoError):
    """Base exception for payload cipher failures."""

    default_code = 2000


class UnsupportedCipherError(CryptoError):
    """Raised for an unknown cipher or key derivation identifier."""

    default_code = 2001


class DecryptionFailureError(CryptoError):
    """Raised for a wrong password, a failed authenticity check or a missing password."""

    default_code = 2002
