"""
Bitstream Codec and Message Framing.

Text is carried as UTF-8 bytes, each byte written as eight '0'/'1'
characters, most significant bit first. A frame is the unit embedded for one
payload::

    ("RAW:" | "ENC:") + JSON(metadata) + "::" + body + <NUL sentinel>

The body is the plaintext for RAW frames and a cipher token for ENC frames.
Extraction stops at the first all-zero byte, so a plaintext containing U+0000
is truncated there. Cipher tokens are base64 and never contain one.

Metadata is serialised as compact JSON with short keys to keep frames small
enough for the block-based transforms:

    v    format version
    alg  transform identifier (lsb, dct, dwt, multibit-lsb)
    enc  cipher identifier (omitted for RAW frames)
    exp  expiry policy (omitted when unset)
    dec  True for decoy payloads
    idx  priority index (0 for the primary payload)
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..config import Expiry
from ..errors import FrameFormatError


logger = logging.getLogger(__name__)

FORMAT_VERSION = 2
SENTINEL = "0" * 8
RAW_TAG = "RAW:"
ENC_TAG = "ENC:"
BODY_SEPARATOR = "::"

_JSON_DECODER = json.JSONDecoder()


def text_to_bits(text: str) -> str:
    """Convert text to a bit string, eight bits per UTF-8 byte, MSB first."""
    return "".join(f"{byte:08b}" for byte in text.encode("utf-8"))


def bits_to_text(bits: str) -> str:
    """
    Convert a bit string back to text.

    Consumes eight bits at a time and stops at the first all-zero byte,
    which is not included. A trailing partial byte is ignored. Invalid
    UTF-8 sequences are replaced rather than raised, since extraction from
    an unrelated region legitimately yields arbitrary bytes.
    """
    data = bytearray()
    for i in range(0, len(bits) - 7, 8):
        byte = bits[i:i + 8]
        if byte == SENTINEL:
            break
        data.append(int(byte, 2))
    return data.decode("utf-8", errors="replace")


def int_to_bits(value: int, width: int) -> str:
    """Encode a non-negative integer as a big-endian bit string of fixed width."""
    if value < 0 or value >= 1 << width:
        raise ValueError(f"{value} does not fit in {width} bits")
    return format(value, f"0{width}b")


def bits_to_int(bits: str) -> int:
    """Decode a big-endian bit string."""
    return int(bits, 2) if bits else 0


@dataclass(frozen=True)
class PayloadMetadata:
    """
    Metadata embedded ahead of every payload body.

    Attributes:
        transform: Transform identifier used to embed the frame
        cipher: Cipher identifier, or None for plaintext frames
        expiry: Optional expiry policy
        is_decoy: Whether the payload is a decoy
        priority_index: Caller supplied ordering hint (0 for the primary)
        version: Frame format version
    """

    transform: str
    cipher: Optional[str] = None
    expiry: Optional[Expiry] = None
    is_decoy: bool = False
    priority_index: int = 0
    version: int = FORMAT_VERSION

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"v": self.version, "alg": self.transform}
        if self.cipher is not None:
            data["enc"] = self.cipher
        if self.expiry is not None:
            data["exp"] = self.expiry.to_dict()
        data["dec"] = self.is_decoy
        data["idx"] = self.priority_index
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PayloadMetadata":
        """
        Rebuild metadata from its decoded JSON form.

        Raises:
            FrameFormatError: If required keys are missing or malformed
        """
        try:
            expiry = data.get("exp")
            return cls(
                transform=str(data["alg"]),
                cipher=data.get("enc"),
                expiry=Expiry.from_dict(expiry) if expiry else None,
                is_decoy=bool(data.get("dec", False)),
                priority_index=int(data.get("idx", 0)),
                version=int(data.get("v", FORMAT_VERSION)),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise FrameFormatError(f"Invalid frame metadata: {e}") from e


@dataclass(frozen=True)
class Frame:
    """A parsed frame: metadata plus the (possibly encrypted) body."""

    metadata: PayloadMetadata
    body: str
    encrypted: bool


def frame_text(metadata: PayloadMetadata, body: str, encrypted: bool) -> str:
    """Build the frame text without the sentinel."""
    tag = ENC_TAG if encrypted else RAW_TAG
    return tag + metadata.to_json() + BODY_SEPARATOR + body


def build_frame(metadata: PayloadMetadata, body: str, encrypted: bool) -> str:
    """
    Build the bit string embedded for one payload.

    Args:
        metadata: Frame metadata
        body: Plaintext, or a cipher token when encrypted
        encrypted: Selects the ENC: tag instead of RAW:

    Returns:
        Bit string of the frame text followed by the all-zero sentinel byte
    """
    return text_to_bits(frame_text(metadata, body, encrypted)) + SENTINEL


def has_frame_tag(text: str) -> bool:
    """Return True if text starts with a frame tag."""
    return text.startswith(RAW_TAG) or text.startswith(ENC_TAG)


def parse_frame(text: str) -> Frame:
    """
    Parse frame text (already cut at the sentinel).

    Raises:
        FrameFormatError: If the tag, metadata or separator is missing
    """
    if not has_frame_tag(text):
        raise FrameFormatError("No frame tag found", details={"prefix": text[:4]})

    encrypted = text.startswith(ENC_TAG)
    try:
        data, end = _JSON_DECODER.raw_decode(text, len(RAW_TAG))
    except json.JSONDecodeError as e:
        raise FrameFormatError(f"Frame metadata is not valid JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise FrameFormatError("Frame metadata is not a JSON object")
    if not text.startswith(BODY_SEPARATOR, end):
        raise FrameFormatError("Frame body separator missing")

    metadata = PayloadMetadata.from_dict(data)
    body = text[end + len(BODY_SEPARATOR):]

    logger.debug(f"Parsed {'ENC' if encrypted else 'RAW'} frame idx={metadata.priority_index} decoy={metadata.is_decoy}")
    return Frame(metadata=metadata, body=body, encrypted=encrypted)
