"""
Multi-Message Orchestrator.

Lays one primary payload and any number of decoy payloads out inside a
single image and reads them back by password.

Binary layout (logical carrier positions of the selected transform)::

    0-31                 primary frame bit length, big-endian
    32-35                transform identifier
    start .. start+S0    primary frame
    +100 gap             decoy 1 frame
    +100 gap             decoy 2 frame ...

The 36 header bits always sit in the least significant bits of the first 36
colour samples, whatever transform carries the frames. ``start`` is the
codec's first position that cannot overlap them. A frame occupies ``S``
positions: its bit length for spatial codecs, plus a 32-bit length prefix for
the block codecs.

Every call works on its own copy of the pixel buffer; all capacity checks
run before the copy is written to.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from ..config import StegoOptions
from ..crypto import PayloadCipher, RandomSource
from ..errors import (
    CapacityExceededError,
    DecryptionFailureError,
    EmptyPayloadError,
    FrameFormatError,
    InvalidLengthFieldError,
    MessageExpiredError,
    PayloadNotFoundError,
)
from .bitstream import (
    SENTINEL,
    Frame,
    PayloadMetadata,
    bits_to_int,
    bits_to_text,
    build_frame,
    has_frame_tag,
    int_to_bits,
    parse_frame,
)
from .codecs import SpatialCodec, Transform, TransformCodec, as_pixel_array, get_codec


logger = logging.getLogger(__name__)

HEADER_LENGTH_BITS = 32
HEADER_TRANSFORM_BITS = 4
HEADER_BITS = HEADER_LENGTH_BITS + HEADER_TRANSFORM_BITS
DECOY_GAP_BITS = 100
CAPACITY_RATIO = 0.75

# Bits needed to recognise a frame tag ("RAW:" / "ENC:")
TAG_BITS = 32


class Stage(Enum):
    """Encode pipeline stages."""

    IDLE = "idle"
    FRAMING = "framing"
    CAPACITY_CHECK = "capacity_check"
    EMBEDDING_MAIN = "embedding_main"
    EMBEDDING_DECOYS = "embedding_decoys"
    DONE = "done"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Payload:
    """
    One message to hide.

    Attributes:
        text: Message text
        password: Optional password; without one the frame is stored as RAW
        priority_index: Ordering hint for decoys (the primary always uses 0)
    """

    text: str
    password: Optional[str] = None
    priority_index: int = 0

    @classmethod
    def coerce(cls, value: Union["Payload", Mapping[str, Any], Sequence[Any]]) -> "Payload":
        """Accept a Payload, a {text, password, priority} mapping or a (text, password, priority) tuple."""
        if isinstance(value, Payload):
            return value
        if isinstance(value, Mapping):
            priority = value.get("priority_index", value.get("priority", 0))
            return cls(text=value.get("text", ""), password=value.get("password"), priority_index=int(priority))
        text, password, *rest = value
        return cls(text=text, password=password, priority_index=int(rest[0]) if rest else 0)


@dataclass(frozen=True)
class OffsetTable:
    """
    Start offsets of every frame, in embedding order.

    Attributes:
        offsets: Start position of each frame
        spans: Carrier positions occupied by each frame
        gap: Unused positions between consecutive frames
    """

    offsets: Tuple[int, ...]
    spans: Tuple[int, ...]
    gap: int = DECOY_GAP_BITS

    @classmethod
    def build(cls, start: int, spans: Iterable[int], gap: int = DECOY_GAP_BITS) -> "OffsetTable":
        spans = tuple(spans)
        offsets = []
        position = start
        for span in spans:
            offsets.append(position)
            position += span + gap
        return cls(offsets=tuple(offsets), spans=spans, gap=gap)

    @property
    def end(self) -> int:
        """First position after the last frame."""
        if not self.offsets:
            return 0
        return self.offsets[-1] + self.spans[-1]

    def __len__(self) -> int:
        return len(self.offsets)


@dataclass
class EmbeddingResult:
    """
    Result of an encode call.

    Attributes:
        pixels: New flat RGBA PixelBuffer
        width: Image width
        height: Image height
        transform: Transform used for the frames
        frame_count: Number of frames embedded (primary plus decoys)
        bits_used: Total frame bits embedded, header and prefixes excluded
        capacity_total: Carrier positions of the transform in this image
        offsets: Frame offset table
    """

    pixels: np.ndarray
    width: int
    height: int
    transform: Transform
    frame_count: int
    bits_used: int
    capacity_total: int
    offsets: OffsetTable


@dataclass
class ExtractionResult:
    """
    Result of a decode call.

    Attributes:
        message: Recovered plaintext
        metadata: Metadata of the frame it came from
        encrypted: Whether the frame was encrypted
        transform: Transform read from the header
    """

    message: str
    metadata: PayloadMetadata
    encrypted: bool
    transform: Transform

    @property
    def is_decoy(self) -> bool:
        return self.metadata.is_decoy

    @property
    def priority_index(self) -> int:
        return self.metadata.priority_index


@dataclass
class FrameInfo:
    """Description of one embedded frame, as reported by inspect()."""

    index: int
    offset: int
    bit_length: int
    encrypted: bool
    metadata: PayloadMetadata = field(repr=False)


class MultiMessageOrchestrator:
    """
    Encodes and decodes primary and decoy payloads.

    Attributes:
        options: StegoOptions used for transform, cipher and codec settings

    Example:
        >>> orchestrator = MultiMessageOrchestrator(StegoOptions(transform="dct"))
        >>> result = orchestrator.encode(pixels, 256, 256, "TOP SECRET", password="abc123456789")
        >>> orchestrator.decode(result.pixels, 256, 256, password="abc123456789").message
        'TOP SECRET'
    """

    def __init__(self, options: Optional[StegoOptions] = None, random_source: Optional[RandomSource] = None):
        """
        Initialize the orchestrator.

        Args:
            options: Encode/decode options (defaults to StegoOptions())
            random_source: Callable returning n random bytes for cipher salts and nonces
        """
        self.options = options or StegoOptions()
        self.options.validate()
        self._random_source = random_source
        self._header_codec = SpatialCodec()

    # =========================================================================
    # ENCODE
    # =========================================================================

    def encode(
        self,
        pixels,
        width: int,
        height: int,
        message: Optional[str] = None,
        password: Optional[str] = None,
        decoys: Iterable[Any] = (),
        transform: Union[str, Transform, None] = None,
    ) -> EmbeddingResult:
        """
        Embed a primary message and decoys into a copy of pixels.

        Args:
            pixels: Source RGBA PixelBuffer (never modified)
            width: Image width
            height: Image height
            message: Primary message text, or None for decoys only
            password: Password for the primary message
            decoys: Decoy payloads (Payload, mapping or (text, password, priority))
            transform: Overrides options.transform

        Returns:
            EmbeddingResult with the new PixelBuffer

        Raises:
            EmptyPayloadError: If there is nothing to embed
            CapacityExceededError: If the frames do not fit
            UnsupportedTransformError: If the transform is unknown
            UnsupportedCipherError: If the configured cipher is unknown
        """
        stage = Stage.IDLE
        transform = Transform.parse(transform or self.options.transform)
        codec = get_codec(transform, self.options)
        source = as_pixel_array(pixels, width, height, copy=False)
        cipher = PayloadCipher.from_options(self.options, random_source=self._random_source)

        logger.info(f"Encoding into {width}x{height} image using {transform.value}")

        stage = self._advance(stage, Stage.FRAMING)
        payloads = self._collect_payloads(message, password, decoys)
        frames = [self._build_frame(payload, is_decoy, transform, cipher) for payload, is_decoy in payloads]

        stage = self._advance(stage, Stage.CAPACITY_CHECK)
        table = OffsetTable.build(codec.payload_start(HEADER_BITS), (codec.span(len(bits)) for bits in frames))
        try:
            self._check_capacity(codec, frames, table, width, height)
        except CapacityExceededError:
            self._advance(stage, Stage.REJECTED)
            raise

        stage = self._advance(stage, Stage.EMBEDDING_MAIN)
        header = int_to_bits(len(frames[0]), HEADER_LENGTH_BITS) + int_to_bits(transform.header_id, HEADER_TRANSFORM_BITS)
        output = codec.encode(source, frames[0], width, height, table.offsets[0])
        output = self._header_codec.encode(output, header, width, height, 0)

        stage = self._advance(stage, Stage.EMBEDDING_DECOYS)
        for bits, offset in zip(frames[1:], table.offsets[1:]):
            output = codec.encode(output, bits, width, height, offset)

        self._advance(stage, Stage.DONE)

        bits_used = sum(len(bits) for bits in frames)
        logger.info(f"Embedded {len(frames)} frame(s), {bits_used} bits using {transform.value}")

        return EmbeddingResult(
            pixels=output,
            width=width,
            height=height,
            transform=transform,
            frame_count=len(frames),
            bits_used=bits_used,
            capacity_total=codec.capacity(width, height),
            offsets=table,
        )

    def _advance(self, current: Stage, new: Stage) -> Stage:
        logger.debug(f"Stage {current.value} -> {new.value}")
        return new

    def _collect_payloads(
        self,
        message: Optional[str],
        password: Optional[str],
        decoys: Iterable[Any],
    ) -> List[Tuple[Payload, bool]]:
        """Return [(payload, is_decoy)] in embedding order, primary first."""
        decoy_payloads = [Payload.coerce(decoy) for decoy in decoys]
        decoy_payloads = [p for p in decoy_payloads if p.text and p.text.strip()]
        decoy_payloads.sort(key=lambda p: p.priority_index)

        payloads: List[Tuple[Payload, bool]] = []
        if message is not None:
            payloads.append((Payload(text=message, password=password or None, priority_index=0), False))
        elif decoy_payloads:
            logger.debug("No primary message; promoting the first decoy to the primary slot")
        else:
            raise EmptyPayloadError("Nothing to embed: no primary message and no non-empty decoys")

        payloads.extend((payload, True) for payload in decoy_payloads)
        logger.debug(f"Collected {len(payloads)} payload(s), {len(decoy_payloads)} decoy(s)")
        return payloads

    def _build_frame(self, payload: Payload, is_decoy: bool, transform: Transform, cipher: PayloadCipher) -> str:
        encrypted = bool(payload.password)
        metadata = PayloadMetadata(
            transform=transform.value,
            cipher=cipher.algorithm.value if encrypted else None,
            expiry=self.options.expiry,
            is_decoy=is_decoy,
            priority_index=payload.priority_index,
        )
        body = cipher.encrypt(payload.text, payload.password) if encrypted else payload.text
        return build_frame(metadata, body, encrypted)

    def _check_capacity(
        self,
        codec: TransformCodec,
        frames: List[str],
        table: OffsetTable,
        width: int,
        height: int,
    ) -> None:
        """
        Run every capacity check before any pixel is written.

        Raises:
            CapacityExceededError: If the frames, the header or the layout do not fit
        """
        total = sum(len(bits) for bits in frames)
        available = codec.capacity(width, height)
        limit = CAPACITY_RATIO * available

        logger.debug(f"Capacity check: {total} frame bits against limit {limit:.0f} of {available}")

        if total > limit:
            raise CapacityExceededError(
                f"Payload of {total} bits exceeds {CAPACITY_RATIO:.0%} of the image capacity ({available} bits)",
                details={"required": total, "limit": int(limit), "capacity": available},
            )

        self._header_codec.validate(HEADER_BITS, width, height, 0)
        for bits, offset in zip(frames, table.offsets):
            codec.validate(len(bits), width, height, offset)

    # =========================================================================
    # DECODE
    # =========================================================================

    def decode(
        self,
        pixels,
        width: int,
        height: int,
        password: Optional[str] = None,
        index: Optional[int] = None,
    ) -> ExtractionResult:
        """
        Recover the message a password unlocks.

        With a password, encrypted frames are tried in layout order and the
        first one that decrypts is returned. Without one, the first plaintext
        frame is returned. With an index, only frames whose priority index
        matches are considered.

        Args:
            pixels: Stego RGBA PixelBuffer
            width: Image width
            height: Image height
            password: Candidate password
            index: Priority index of the wanted frame

        Returns:
            ExtractionResult

        Raises:
            InvalidLengthFieldError: If the header length is implausible
            UnsupportedTransformError: If the header names an unknown transform
            FrameFormatError: If no frame can be parsed at the primary offset
            PayloadNotFoundError: If no frame has the requested index
            DecryptionFailureError: If the password unlocks nothing, or only
                encrypted frames exist and no password was given
            MessageExpiredError: If the selected frame has expired
        """
        flat = as_pixel_array(pixels, width, height, copy=False)
        transform, frames = self._read_frames(flat, width, height)
        logger.info(f"Decoding {width}x{height} image using {transform.value}")

        candidates = [frame for _, _, frame in frames]
        if index is not None:
            candidates = [frame for frame in candidates if frame.metadata.priority_index == index]
            if not candidates:
                raise PayloadNotFoundError(f"No payload with index {index}", details={"index": index})

        encrypted = [frame for frame in candidates if frame.encrypted]
        plain = [frame for frame in candidates if not frame.encrypted]

        if password and encrypted:
            for frame in encrypted:
                message = self._try_decrypt(frame, password)
                if message is not None:
                    return self._select(frame, message, transform)
            raise DecryptionFailureError("Incorrect password or corrupted payload", details={"tried": len(encrypted)})

        if plain:
            return self._select(plain[0], plain[0].body, transform)

        raise DecryptionFailureError(
            "Payload is encrypted; a password is required",
            details={"encrypted": True},
        )

    def _try_decrypt(self, frame: Frame, password: str) -> Optional[str]:
        cipher = PayloadCipher(
            algorithm=frame.metadata.cipher or self.options.cipher,
            kdf=self.options.kdf,
            iterations=self.options.kdf_iterations,
        )
        try:
            return cipher.decrypt(frame.body, password)
        except DecryptionFailureError:
            logger.debug(f"Password did not unlock frame idx={frame.metadata.priority_index}")
            return None

    def _select(self, frame: Frame, message: str, transform: Transform) -> ExtractionResult:
        expiry = frame.metadata.expiry
        if expiry is not None and expiry.is_expired():
            raise MessageExpiredError("This message has expired", details={"expiry": expiry.to_dict()})

        logger.info(f"Recovered {'encrypted' if frame.encrypted else 'plaintext'} frame idx={frame.metadata.priority_index}")
        return ExtractionResult(message=message, metadata=frame.metadata, encrypted=frame.encrypted, transform=transform)

    def inspect(self, pixels, width: int, height: int) -> List[FrameInfo]:
        """
        List every parsable frame without decrypting anything.

        Returns:
            FrameInfo per frame, in layout order
        """
        flat = as_pixel_array(pixels, width, height, copy=False)
        _, frames = self._read_frames(flat, width, height)
        return [
            FrameInfo(index=i, offset=offset, bit_length=length, encrypted=frame.encrypted, metadata=frame.metadata)
            for i, (offset, length, frame) in enumerate(frames)
        ]

    def read_header(self, pixels, width: int, height: int) -> Tuple[int, Transform]:
        """
        Read the global header.

        Returns:
            (primary frame bit length, transform)

        Raises:
            InvalidLengthFieldError: If the length is zero or exceeds the transform's capacity
            UnsupportedTransformError: If the transform identifier is unknown
        """
        header = self._header_codec.decode(pixels, width, height, 0, count=HEADER_BITS)
        length = bits_to_int(header[:HEADER_LENGTH_BITS])
        transform = Transform.from_header_id(bits_to_int(header[HEADER_LENGTH_BITS:]))

        available = get_codec(transform, self.options).capacity(width, height)
        if length <= 0 or length > available:
            raise InvalidLengthFieldError(
                f"No hidden message found or the image is corrupted (length field {length})",
                details={"length": length, "capacity": available},
            )

        logger.debug(f"Header: length={length} transform={transform.value}")
        return length, transform

    def _read_frames(self, flat: np.ndarray, width: int, height: int) -> Tuple[Transform, List[Tuple[int, int, Frame]]]:
        length, transform = self.read_header(flat, width, height)
        codec = get_codec(transform, self.options)
        return transform, list(self._walk(codec, flat, width, height, length))

    def _walk(
        self,
        codec: TransformCodec,
        flat: np.ndarray,
        width: int,
        height: int,
        primary_length: int,
    ) -> Iterator[Tuple[int, int, Frame]]:
        """
        Yield (offset, bit_length, frame) for the primary and each decoy.

        The primary must parse. Decoys are read until a position yields no
        frame or the image runs out.
        """
        offset = codec.payload_start(HEADER_BITS)
        bits = codec.decode(flat, width, height, offset, count=primary_length)
        yield offset, len(bits), parse_frame(bits_to_text(bits))

        available = codec.capacity(width, height)
        offset += codec.span(len(bits)) + DECOY_GAP_BITS

        while offset < available:
            try:
                bits = self._read_frame_bits(codec, flat, width, height, offset)
                frame = parse_frame(bits_to_text(bits))
            except (InvalidLengthFieldError, FrameFormatError) as e:
                logger.debug(f"No further frame at offset {offset}: {e.message}")
                return
            yield offset, len(bits), frame
            offset += codec.span(len(bits)) + DECOY_GAP_BITS

    def _read_frame_bits(self, codec: TransformCodec, flat: np.ndarray, width: int, height: int, offset: int) -> str:
        if codec.prefix_bits:
            return codec.decode(flat, width, height, offset)

        available = codec.capacity(width, height)
        if available - offset < TAG_BITS:
            raise FrameFormatError("Not enough room left for a frame")

        head = codec.decode(flat, width, height, offset, count=TAG_BITS)
        if not has_frame_tag(bits_to_text(head)):
            raise FrameFormatError("No frame tag at offset", details={"offset": offset})

        bits = codec.decode(flat, width, height, offset)
        if not bits.endswith(SENTINEL):
            raise FrameFormatError("Frame is not terminated", details={"offset": offset})
        return bits


def encode(
    pixels,
    width: int,
    height: int,
    message: Optional[str] = None,
    password: Optional[str] = None,
    decoys: Iterable[Any] = (),
    options: Optional[StegoOptions] = None,
    random_source: Optional[RandomSource] = None,
) -> np.ndarray:
    """
    Embed a message (and decoys) and return the new PixelBuffer.

    Example:
        >>> stego = encode(pixels, 64, 64, "HELLO")
        >>> decode(stego, 64, 64)
        'HELLO'
    """
    orchestrator = MultiMessageOrchestrator(options, random_source=random_source)
    return orchestrator.encode(pixels, width, height, message, password=password, decoys=decoys).pixels


def decode(
    pixels,
    width: int,
    height: int,
    password: Optional[str] = None,
    index: Optional[int] = None,
    options: Optional[StegoOptions] = None,
) -> str:
    """Recover the message a password (or no password) unlocks."""
    return MultiMessageOrchestrator(options).decode(pixels, width, height, password=password, index=index).message
