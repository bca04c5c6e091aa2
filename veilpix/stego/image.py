"""
Image Boundary.

Converts image files to RGBA PixelBuffers and back with Pillow. The codec
core never sees an Image object; it works on the flat uint8 buffer returned
by load_pixels().

Frames survive only lossless storage. Saving to JPEG or WebP re-quantises
the samples and destroys spatial payloads, so save_pixels() warns when asked
for a lossy format.
"""

import asyncio
import io
import logging
import os
from typing import Any, BinaryIO, Iterable, Optional, Tuple, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..config import StegoOptions
from ..crypto import RandomSource
from ..errors import ImageLoadError, MissingRenderContextError
from .codecs import CHANNELS, as_pixel_array
from .orchestrator import MultiMessageOrchestrator


logger = logging.getLogger(__name__)

ImageSource = Union[str, os.PathLike, bytes, bytearray, BinaryIO, Image.Image]

LOSSY_FORMATS = {"JPEG", "JPG", "WEBP"}


def load_pixels(source: ImageSource) -> Tuple[np.ndarray, int, int]:
    """
    Decode an image into an RGBA PixelBuffer.

    Args:
        source: File path, encoded bytes, binary file object or PIL Image

    Returns:
        (pixels, width, height) with pixels a flat uint8 array of width * height * 4

    Raises:
        ImageLoadError: If the source cannot be opened or decoded
        MissingRenderContextError: If the decoded image cannot be rendered to RGBA
    """
    if isinstance(source, Image.Image):
        return _render(source)

    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)

    try:
        with Image.open(source) as image:
            image.load()
            return _render(image)
    except (FileNotFoundError, UnidentifiedImageError) as e:
        raise ImageLoadError(f"Failed to load image: {e}") from e
    except OSError as e:
        raise ImageLoadError(f"Failed to decode image: {e}", details={"source": str(source)}) from e


def _render(image: Image.Image) -> Tuple[np.ndarray, int, int]:
    width, height = image.size
    if width == 0 or height == 0:
        raise MissingRenderContextError("Image has no drawable area", details={"size": (width, height)})

    try:
        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
    except (ValueError, OSError) as e:
        raise MissingRenderContextError(f"Could not render {image.mode} image as RGBA: {e}") from e

    pixels = np.asarray(rgba, dtype=np.uint8).reshape(-1).copy()
    logger.debug(f"Loaded {width}x{height} image (mode {image.mode})")
    return pixels, width, height


async def load_pixels_async(source: ImageSource) -> Tuple[np.ndarray, int, int]:
    """Decode an image in a worker thread; the only suspension point of a decode."""
    return await asyncio.to_thread(load_pixels, source)


def save_pixels(
    pixels,
    width: int,
    height: int,
    destination: Union[str, os.PathLike, BinaryIO, None] = None,
    format: str = "PNG",
    quality: int = 90,
) -> bytes:
    """
    Encode a PixelBuffer as an image file.

    Args:
        pixels: Flat RGBA PixelBuffer
        width: Image width
        height: Image height
        destination: Optional path or file object to write to
        format: Pillow format name
        quality: Quality for lossy formats

    Returns:
        The encoded image bytes
    """
    format = format.upper()
    flat = as_pixel_array(pixels, width, height, copy=False)
    image = Image.fromarray(flat.reshape(height, width, CHANNELS))

    save_kwargs: dict = {}
    if format in LOSSY_FORMATS:
        logger.warning(f"Saving as {format} is lossy and will likely destroy embedded payloads; use PNG")
        if format in ("JPEG", "JPG"):
            format = "JPEG"
            image = image.convert("RGB")
        save_kwargs["quality"] = quality

    buffer = io.BytesIO()
    image.save(buffer, format=format, **save_kwargs)
    data = buffer.getvalue()

    if destination is not None:
        if hasattr(destination, "write"):
            destination.write(data)
        else:
            with open(destination, "wb") as f:
                f.write(data)
        logger.debug(f"Wrote {len(data)} bytes of {format}")

    return data


def encode_image(
    source: ImageSource,
    message: Optional[str] = None,
    password: Optional[str] = None,
    decoys: Iterable[Any] = (),
    options: Optional[StegoOptions] = None,
    destination: Union[str, os.PathLike, BinaryIO, None] = None,
    format: str = "PNG",
    random_source: Optional[RandomSource] = None,
) -> bytes:
    """
    Load an image, embed payloads and return the encoded result.

    Example:
        >>> data = encode_image("cover.png", "HELLO", destination="stego.png")
        >>> decode_image("stego.png")
        'HELLO'
    """
    options = options or StegoOptions()
    pixels, width, height = load_pixels(source)
    result = MultiMessageOrchestrator(options, random_source=random_source).encode(
        pixels, width, height, message, password=password, decoys=decoys
    )
    return save_pixels(result.pixels, width, height, destination, format=format, quality=options.quality)


def decode_image(
    source: ImageSource,
    password: Optional[str] = None,
    index: Optional[int] = None,
    options: Optional[StegoOptions] = None,
) -> str:
    """Load an image and recover the message a password unlocks."""
    pixels, width, height = load_pixels(source)
    return MultiMessageOrchestrator(options).decode(pixels, width, height, password=password, index=index).message


async def decode_image_async(
    source: ImageSource,
    password: Optional[str] = None,
    index: Optional[int] = None,
    options: Optional[StegoOptions] = None,
) -> str:
    """Like decode_image(), awaiting the image decode once before running the codec core."""
    pixels, width, height = await load_pixels_async(source)
    return MultiMessageOrchestrator(options).decode(pixels, width, height, password=password, index=index).message
