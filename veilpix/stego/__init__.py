"""
Veilpix Steganography Module - Hidden Payloads in Pixel Data.

This module hides a primary message and any number of password-gated decoys
inside an RGBA pixel buffer, using one of four transforms.

Modules:
    bitstream: Text/bit conversion and frame build/parse
    transforms: 8x8 DCT and Haar wavelet primitives
    codecs: Spatial, multi-bit spatial, DCT and DWT transform codecs
    orchestrator: Header, offset table, primary and decoy layout
    image: Image file <-> PixelBuffer boundary

Usage:
    >>> from veilpix.stego import encode, decode
    >>> stego = encode(pixels, 64, 64, "HELLO")
    >>> decode(stego, 64, 64)
    'HELLO'
"""

from .bitstream import Frame, PayloadMetadata, bits_to_text, build_frame, parse_frame, text_to_bits
from .codecs import (
    FrequencyCodec,
    MultiBitSpatialCodec,
    SpatialCodec,
    Transform,
    TransformCodec,
    WaveletCodec,
    capacity,
    get_codec,
)
from .image import decode_image, decode_image_async, encode_image, load_pixels, load_pixels_async, save_pixels
from .orchestrator import (
    EmbeddingResult,
    ExtractionResult,
    FrameInfo,
    MultiMessageOrchestrator,
    OffsetTable,
    Payload,
    Stage,
    decode,
    encode,
)

__all__ = [
    "EmbeddingResult",
    "ExtractionResult",
    "Frame",
    "FrameInfo",
    "FrequencyCodec",
    "MultiBitSpatialCodec",
    "MultiMessageOrchestrator",
    "OffsetTable",
    "Payload",
    "PayloadMetadata",
    "SpatialCodec",
    "Stage",
    "Transform",
    "TransformCodec",
    "WaveletCodec",
    "bits_to_text",
    "build_frame",
    "capacity",
    "decode",
    "decode_image",
    "decode_image_async",
    "encode",
    "encode_image",
    "get_codec",
    "load_pixels",
    "load_pixels_async",
    "parse_frame",
    "save_pixels",
    "text_to_bits",
]
