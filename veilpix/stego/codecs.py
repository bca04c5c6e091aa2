"""
Transform Codecs.

Each codec maps a logical bit stream onto carrier positions inside an RGBA
PixelBuffer and implements the same contract::

    encode(pixels, bits, width, height, offset=0) -> new PixelBuffer
    decode(pixels, width, height, offset=0, count=None) -> bits

Carrier positions per codec:

    lsb           one bit per colour sample (R, G, B; alpha untouched),
                  pixels row-major, channels in R, G, B order
    multibit-lsb  bit_depth bits per colour sample, MSB first within a sample
    dct           one bit per (8x8 block, colour channel), blocks row-major;
                  parity of DCT coefficient 5 of that channel
    dwt           three bits per 8x8 block, one per high-frequency sub-band
                  (HL[1][1], LH[2][1], HH[1][2]); the same bit is written to
                  the R, G and B planes and read back by majority vote

The block codecs prefix every call's bits with a 32-bit length so a reader
can recover exactly the bits that were written. Their coefficient parity is
taken on the coefficient divided by a quantisation step (``strength``) so
that rounding samples back to uint8 cannot flip it.

Example:
    >>> codec = get_codec("dct")
    >>> stego = codec.encode(pixels, "1011", 64, 64, offset=36)
    >>> codec.decode(stego, 64, 64, offset=36)
    '1011'
"""

import logging
import math
from abc import ABC, abstractmethod
from enum import Enum
from itertools import groupby
from typing import Dict, Iterable, List, Optional, Tuple, Union

import numpy as np

from ..config import StegoOptions
from ..errors import (
    CapacityExceededError,
    InvalidLengthFieldError,
    InvalidPixelBufferError,
    UnsupportedTransformError,
)
from .bitstream import SENTINEL, bits_to_int, int_to_bits
from .transforms import BLOCK_SIZE, forward_dct, forward_dwt, inverse_dct, inverse_dwt, to_samples


logger = logging.getLogger(__name__)

CHANNELS = 4
COLOR_CHANNELS = 3
LENGTH_PREFIX_BITS = 32


class Transform(Enum):
    """Transform selectors; values are the identifiers stored in frame metadata."""

    SPATIAL = "lsb"
    FREQUENCY = "dct"
    WAVELET = "dwt"
    MULTI_BIT_SPATIAL = "multibit-lsb"

    @property
    def header_id(self) -> int:
        """4-bit identifier written into the global header."""
        return TRANSFORM_IDS[self]

    @classmethod
    def parse(cls, value: Union[str, "Transform", None]) -> "Transform":
        """
        Resolve a selector or alias.

        Raises:
            UnsupportedTransformError: If the selector is unknown
        """
        if isinstance(value, Transform):
            return value
        key = str(value).strip().lower()
        key = TRANSFORM_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise UnsupportedTransformError(
                f"Unsupported transform: {value}",
                details={"supported": [t.value for t in cls] + sorted(TRANSFORM_ALIASES)},
            ) from None

    @classmethod
    def from_header_id(cls, header_id: int) -> "Transform":
        for transform, value in TRANSFORM_IDS.items():
            if value == header_id:
                return transform
        raise UnsupportedTransformError(f"Unknown transform identifier in header: {header_id:04b}")


TRANSFORM_IDS = {
    Transform.SPATIAL: 0b0000,
    Transform.FREQUENCY: 0b0001,
    Transform.WAVELET: 0b0010,
    Transform.MULTI_BIT_SPATIAL: 0b0011,
}

TRANSFORM_ALIASES = {
    "spatial": "lsb",
    "frequency": "dct",
    "wavelet": "dwt",
    "multi-bit-spatial": "multibit-lsb",
    "multibit": "multibit-lsb",
}


# =============================================================================
# PIXEL BUFFER HELPERS
# =============================================================================

def as_pixel_array(pixels, width: int, height: int, copy: bool = True) -> np.ndarray:
    """
    Return a PixelBuffer as a flat uint8 array.

    Args:
        pixels: bytes, bytearray, memoryview or array-like of RGBA samples
        width: Image width in pixels
        height: Image height in pixels
        copy: Return an owned copy (for writers) or a read-only view (for readers)

    Raises:
        InvalidPixelBufferError: If the length is not width * height * 4
    """
    if width <= 0 or height <= 0:
        raise InvalidPixelBufferError(f"Invalid dimensions {width}x{height}")

    if isinstance(pixels, (bytes, bytearray, memoryview)):
        flat = np.frombuffer(pixels, dtype=np.uint8)
    else:
        flat = np.asarray(pixels, dtype=np.uint8).reshape(-1)

    expected = width * height * CHANNELS
    if flat.size != expected:
        raise InvalidPixelBufferError(
            f"Pixel buffer has {flat.size} samples, expected {expected} for {width}x{height} RGBA",
            details={"length": int(flat.size), "expected": expected},
        )
    return flat.copy() if copy else flat


def bits_to_array(bits: str) -> np.ndarray:
    """Convert a '0'/'1' string into a uint8 array of 0/1 values."""
    values = np.frombuffer(bits.encode("ascii"), dtype=np.uint8) - ord("0")
    if values.size and values.max() > 1:
        raise ValueError("Bit string may only contain '0' and '1'")
    return values


def array_to_bits(values: Iterable[int]) -> str:
    return "".join("1" if v else "0" for v in values)


def block_count(width: int, height: int) -> int:
    """Number of whole 8x8 blocks in an image."""
    return (width // BLOCK_SIZE) * (height // BLOCK_SIZE)


def capacity(
    width: int,
    height: int,
    transform: Union[str, Transform] = Transform.SPATIAL,
    channels: int = COLOR_CHANNELS,
    bit_depth: int = 2,
) -> int:
    """
    Maximum number of carrier positions (bits) for a transform.

    Args:
        width: Image width in pixels
        height: Image height in pixels
        transform: Transform selector
        channels: Colour channels used as carriers
        bit_depth: Bits per sample for the multi-bit spatial transform

    Returns:
        Carrier positions available, before any header or gap
    """
    transform = Transform.parse(transform)
    if transform == Transform.SPATIAL:
        return width * height * channels
    if transform == Transform.MULTI_BIT_SPATIAL:
        return width * height * channels * bit_depth
    if transform == Transform.FREQUENCY:
        return block_count(width, height) * channels
    return block_count(width, height) * WaveletCodec.BITS_PER_BLOCK


# =============================================================================
# PARITY EMBEDDING
# =============================================================================

def embed_floor_parity(value: float, bit: int, step: float) -> float:
    """
    Force floor(value / step) to have the parity of bit.

    The quantised index is moved by one only when its parity is wrong, in
    the direction closest to the original value, and the result is placed
    at the centre of its cell so read-back tolerates +/- step / 2.
    """
    scaled = float(value) / step
    index = math.floor(scaled)
    if index % 2 != bit:
        index += 1 if scaled - index >= 0.5 else -1
    return (index + 0.5) * step


def read_floor_parity(value: float, step: float) -> int:
    return math.floor(float(value) / step) % 2


def embed_rounded_parity(value: float, bit: int, step: float) -> float:
    """Round value / step to an integer, nudging by one if its parity does not match bit."""
    scaled = float(value) / step
    index = round(scaled)
    if index % 2 != bit:
        index += 1 if scaled > index else -1
    return index * step


def read_rounded_parity(value: float, step: float) -> int:
    return round(float(value) / step) % 2


# =============================================================================
# CODEC BASE
# =============================================================================

class TransformCodec(ABC):
    """
    Base class for all transform codecs.

    Subclasses define how logical bit positions map onto the pixel buffer.
    ``encode`` never mutates its input; it returns a new flat uint8 array.
    """

    transform: Transform
    prefix_bits: int = 0

    def encode(self, pixels, bits: str, width: int, height: int, offset: int = 0) -> np.ndarray:
        """
        Embed bits starting at a logical offset.

        Args:
            pixels: Source PixelBuffer (left untouched)
            bits: '0'/'1' string to embed
            width: Image width
            height: Image height
            offset: First logical carrier position to use

        Returns:
            New flat uint8 PixelBuffer

        Raises:
            CapacityExceededError: If the bits do not fit at this offset
        """
        self.validate(len(bits), width, height, offset)
        flat = as_pixel_array(pixels, width, height)
        self._embed(flat, bits, width, height, offset)
        logger.debug(f"{self.transform.value}: embedded {len(bits)} bits at offset {offset}")
        return flat

    @abstractmethod
    def decode(self, pixels, width: int, height: int, offset: int = 0, count: Optional[int] = None) -> str:
        """Recover bits written by encode() at the same offset."""

    @abstractmethod
    def capacity(self, width: int, height: int) -> int:
        """Number of logical carrier positions in an image of this size."""

    @abstractmethod
    def _embed(self, flat: np.ndarray, bits: str, width: int, height: int, offset: int) -> None:
        """Write bits into flat in place."""

    def span(self, n_bits: int) -> int:
        """Carrier positions consumed by n_bits of payload, including any length prefix."""
        return self.prefix_bits + n_bits

    def payload_start(self, header_bits: int) -> int:
        """First logical position that cannot overlap a header stored in the LSBs of the first header_bits samples."""
        return header_bits

    def validate(self, n_bits: int, width: int, height: int, offset: int = 0) -> None:
        """
        Check that n_bits fit at offset.

        Raises:
            CapacityExceededError: If they do not
        """
        available = self.capacity(width, height)
        end = offset + self.span(n_bits)
        if end > available:
            raise CapacityExceededError(
                f"{n_bits} bits at offset {offset} exceed {self.transform.value} capacity of {available} positions",
                details={"required": end, "capacity": available, "transform": self.transform.value},
            )


# =============================================================================
# SPATIAL CODECS
# =============================================================================

class SpatialCodec(TransformCodec):
    """One payload bit per colour sample via least significant bit substitution."""

    transform = Transform.SPATIAL

    # Bits read per step while scanning for a sentinel
    READ_CHUNK_BITS = 512

    @property
    def bits_per_sample(self) -> int:
        return 1

    def capacity(self, width: int, height: int) -> int:
        return width * height * COLOR_CHANNELS * self.bits_per_sample

    def payload_start(self, header_bits: int) -> int:
        return header_bits * self.bits_per_sample

    def _locate(self, positions: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Map logical positions to (flat sample index, bit plane)."""
        depth = self.bits_per_sample
        samples = positions // depth
        planes = depth - 1 - positions % depth
        index = (samples // COLOR_CHANNELS) * CHANNELS + samples % COLOR_CHANNELS
        return index, planes

    def _embed(self, flat: np.ndarray, bits: str, width: int, height: int, offset: int) -> None:
        values = bits_to_array(bits)
        index, planes = self._locate(np.arange(offset, offset + len(bits)))

        # Each sample appears at most once per plane
        for plane in np.unique(planes):
            plane = int(plane)
            selected = planes == plane
            mask = np.uint8(1 << plane)
            target = index[selected]
            flat[target] = (flat[target] & ~mask) | (values[selected] << plane).astype(np.uint8)

    def _extract(self, flat: np.ndarray, offset: int, count: int) -> str:
        index, planes = self._locate(np.arange(offset, offset + count))
        return array_to_bits((flat[index] >> planes) & 1)

    def decode(self, pixels, width: int, height: int, offset: int = 0, count: Optional[int] = None) -> str:
        """
        Read bits back.

        With count given, exactly count bits are returned. Without it, whole
        bytes are read until (and including) the first all-zero sentinel byte,
        or until the image runs out.

        Raises:
            InvalidLengthFieldError: If count reaches past the image
        """
        flat = as_pixel_array(pixels, width, height, copy=False)
        available = self.capacity(width, height)

        if count is not None:
            if count < 0 or offset + count > available:
                raise InvalidLengthFieldError(
                    f"Cannot read {count} bits at offset {offset}; image holds {available}",
                    details={"count": count, "offset": offset, "capacity": available},
                )
            return self._extract(flat, offset, count)

        collected: List[str] = []
        position = offset
        while available - position >= 8:
            size = min(self.READ_CHUNK_BITS, (available - position) // 8 * 8)
            chunk = self._extract(flat, position, size)
            for i in range(0, size, 8):
                byte = chunk[i:i + 8]
                collected.append(byte)
                if byte == SENTINEL:
                    return "".join(collected)
            position += size
        return "".join(collected)


class MultiBitSpatialCodec(SpatialCodec):
    """bit_depth payload bits per colour sample, most significant first."""

    transform = Transform.MULTI_BIT_SPATIAL

    def __init__(self, bit_depth: int = 2):
        if not 1 <= bit_depth <= 8:
            raise ValueError(f"bit_depth must be between 1 and 8, got {bit_depth}")
        self._bit_depth = bit_depth

    @property
    def bits_per_sample(self) -> int:
        return self._bit_depth


# =============================================================================
# BLOCK CODECS
# =============================================================================

class BlockCodec(TransformCodec):
    """
    Shared traversal for codecs that carry bits in 8x8 block coefficients.

    A slot is one logical position. Slots are grouped per block
    (``slots_per_block`` consecutive slots share a block) and blocks are
    visited row-major. Each call writes a 32-bit length ahead of its bits.
    """

    prefix_bits = LENGTH_PREFIX_BITS
    slots_per_block = 1

    def __init__(self, strength: float = 4.0):
        if strength <= 0:
            raise ValueError(f"strength must be positive, got {strength}")
        self._strength = float(strength)

    @property
    def strength(self) -> float:
        return self._strength

    def capacity(self, width: int, height: int) -> int:
        return block_count(width, height) * self.slots_per_block

    def _block_origin(self, block: int, width: int) -> Tuple[int, int]:
        per_row = width // BLOCK_SIZE
        return (block // per_row) * BLOCK_SIZE, (block % per_row) * BLOCK_SIZE

    def _slot_groups(self, start: int, count: int) -> Iterable[Tuple[int, List[int]]]:
        """Yield (block, [slots]) for consecutive slots, one block at a time."""
        slots = range(start, start + count)
        for block, members in groupby(slots, key=lambda slot: slot // self.slots_per_block):
            yield block, list(members)

    def _embed(self, flat: np.ndarray, bits: str, width: int, height: int, offset: int) -> None:
        image = flat.reshape(height, width, CHANNELS)
        full = int_to_bits(len(bits), LENGTH_PREFIX_BITS) + bits
        values = dict(zip(range(offset, offset + len(full)), (int(b) for b in full)))

        for block, slots in self._slot_groups(offset, len(full)):
            y, x = self._block_origin(block, width)
            patch = image[y:y + BLOCK_SIZE, x:x + BLOCK_SIZE]
            self._embed_block(patch, {slot % self.slots_per_block: values[slot] for slot in slots})

    def _read_slots(self, image: np.ndarray, width: int, start: int, count: int) -> str:
        bits: List[str] = []
        for block, slots in self._slot_groups(start, count):
            y, x = self._block_origin(block, width)
            patch = image[y:y + BLOCK_SIZE, x:x + BLOCK_SIZE]
            read = self._read_block(patch, [slot % self.slots_per_block for slot in slots])
            bits.extend(str(bit) for bit in read)
        return "".join(bits)

    def decode(self, pixels, width: int, height: int, offset: int = 0, count: Optional[int] = None) -> str:
        """
        Read the bits written at offset.

        The 32-bit length prefix is read in a first pass over exactly 32
        slots; the message bits are then read from the next slot on.

        Args:
            count: Expected length (e.g. from the global header); must match the prefix

        Raises:
            InvalidLengthFieldError: If the prefix is non-positive, overruns the
                image, or disagrees with count
        """
        flat = as_pixel_array(pixels, width, height, copy=False)
        image = flat.reshape(height, width, CHANNELS)
        available = self.capacity(width, height)

        if offset + LENGTH_PREFIX_BITS > available:
            raise InvalidLengthFieldError(f"No room for a length prefix at offset {offset}")

        length = bits_to_int(self._read_slots(image, width, offset, LENGTH_PREFIX_BITS))
        if length <= 0 or offset + self.span(length) > available:
            raise InvalidLengthFieldError(
                f"Invalid {self.transform.value} length prefix: {length}",
                details={"length": length, "offset": offset, "capacity": available},
            )
        if count is not None and count != length:
            raise InvalidLengthFieldError(
                f"Length prefix {length} disagrees with expected length {count}",
                details={"length": length, "expected": count},
            )

        return self._read_slots(image, width, offset + LENGTH_PREFIX_BITS, length)

    @abstractmethod
    def _embed_block(self, patch: np.ndarray, bits: Dict[int, int]) -> None:
        """Write {slot-in-block: bit} into an (8, 8, 4) view in place."""

    @abstractmethod
    def _read_block(self, patch: np.ndarray, slots: List[int]) -> List[int]:
        """Read the given slots of an (8, 8, 4) view."""


class FrequencyCodec(BlockCodec):
    """
    One bit per 8x8 block per colour channel in DCT coefficient 5.

    Coefficient 5 (row 0, column 5 of the block) is a fixed mid-frequency
    position; the DC term is never touched. Slot k addresses block k // 3,
    channel k % 3.
    """

    transform = Transform.FREQUENCY
    slots_per_block = COLOR_CHANNELS
    COEFFICIENT = (0, 5)

    def validate(self, n_bits: int, width: int, height: int, offset: int = 0) -> None:
        # Length prefix plus message must not exceed the number of blocks
        total = LENGTH_PREFIX_BITS + n_bits
        blocks = block_count(width, height)
        if total > blocks:
            raise CapacityExceededError(
                f"Message of {n_bits} bits is too large for this image using DCT encoding",
                details={"required": total, "blocks": blocks},
            )
        super().validate(n_bits, width, height, offset)

    def _embed_block(self, patch: np.ndarray, bits: Dict[int, int]) -> None:
        for channel, bit in bits.items():
            coefficients = forward_dct(patch[:, :, channel])
            coefficients[self.COEFFICIENT] = embed_floor_parity(coefficients[self.COEFFICIENT], bit, self._strength)
            patch[:, :, channel] = to_samples(inverse_dct(coefficients))

    def _read_block(self, patch: np.ndarray, slots: List[int]) -> List[int]:
        return [
            read_floor_parity(forward_dct(patch[:, :, channel])[self.COEFFICIENT], self._strength)
            for channel in slots
        ]


class WaveletCodec(BlockCodec):
    """
    Three bits per 8x8 block, one per high-frequency Haar sub-band.

    The whole RGBA patch goes through the transform; the bit is written to
    the chosen coefficient of each colour plane and alpha is written back
    unchanged.
    """

    transform = Transform.WAVELET
    BITS_PER_BLOCK = 3
    slots_per_block = BITS_PER_BLOCK

    # (sub-band, row, column) cycled by slot % 3
    POSITIONS = (("hl", 1, 1), ("lh", 2, 1), ("hh", 1, 2))

    def validate(self, n_bits: int, width: int, height: int, offset: int = 0) -> None:
        total = LENGTH_PREFIX_BITS + n_bits
        blocks = block_count(width, height)
        if math.ceil(total / self.BITS_PER_BLOCK) > blocks:
            raise CapacityExceededError(
                f"Message of {n_bits} bits is too large for this image using DWT encoding",
                details={"required": total, "blocks": blocks},
            )
        super().validate(n_bits, width, height, offset)

    def _embed_block(self, patch: np.ndarray, bits: Dict[int, int]) -> None:
        bands = forward_dwt(patch)
        for slot, bit in bits.items():
            band, row, col = self.POSITIONS[slot]
            coefficients = getattr(bands, band)
            for channel in range(COLOR_CHANNELS):
                coefficients[row, col, channel] = embed_rounded_parity(
                    coefficients[row, col, channel], bit, self._strength
                )
        restored = inverse_dwt(bands)
        patch[:, :, :COLOR_CHANNELS] = to_samples(restored[:, :, :COLOR_CHANNELS])

    def _read_block(self, patch: np.ndarray, slots: List[int]) -> List[int]:
        bands = forward_dwt(patch)
        bits = []
        for slot in slots:
            band, row, col = self.POSITIONS[slot]
            coefficients = getattr(bands, band)
            votes = sum(
                read_rounded_parity(coefficients[row, col, channel], self._strength)
                for channel in range(COLOR_CHANNELS)
            )
            bits.append(1 if votes >= 2 else 0)
        return bits


# =============================================================================
# FACTORY
# =============================================================================

def get_codec(
    transform: Union[str, Transform],
    options: Optional[StegoOptions] = None,
) -> TransformCodec:
    """
    Build the codec for a transform selector.

    Args:
        transform: Selector or alias
        options: Supplies bit_depth and strength

    Raises:
        UnsupportedTransformError: If the selector is unknown
    """
    options = options or StegoOptions()
    transform = Transform.parse(transform)

    if transform == Transform.SPATIAL:
        return SpatialCodec()
    if transform == Transform.MULTI_BIT_SPATIAL:
        return MultiBitSpatialCodec(bit_depth=options.bit_depth)
    if transform == Transform.FREQUENCY:
        return FrequencyCodec(strength=options.strength)
    return WaveletCodec(strength=options.strength)
