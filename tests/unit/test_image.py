"""
Unit Tests for the Veilpix Image Boundary

This module tests loading images into PixelBuffers, saving them back and
the file-level encode/decode helpers.
"""

import io

import numpy as np
import pytest
from PIL import Image

from veilpix.config import StegoOptions
from veilpix.errors import ImageLoadError, MissingRenderContextError
from veilpix.stego.image import (
    decode_image,
    decode_image_async,
    encode_image,
    load_pixels,
    load_pixels_async,
    save_pixels,
)


class TestLoadPixels:
    """Test cases for load_pixels."""

    def test_rgb_is_converted_to_rgba(self, cover_png):
        pixels, width, height = load_pixels(cover_png)

        assert (width, height) == (64, 64)
        assert pixels.dtype == np.uint8
        assert pixels.size == 64 * 64 * 4
        assert np.all(pixels[3::4] == 255)

    def test_sources(self, cover_png):
        data = cover_png.read_bytes()
        from_path, _, _ = load_pixels(str(cover_png))
        from_bytes, _, _ = load_pixels(data)
        from_file, _, _ = load_pixels(io.BytesIO(data))
        with Image.open(cover_png) as image:
            from_image, _, _ = load_pixels(image)

        assert np.array_equal(from_path, from_bytes)
        assert np.array_equal(from_path, from_file)
        assert np.array_equal(from_path, from_image)

    def test_grayscale_and_palette(self):
        gray = Image.new("L", (8, 4), 90)
        pixels, width, height = load_pixels(gray)
        assert (width, height) == (8, 4)
        assert pixels[:4].tolist() == [90, 90, 90, 255]

        palette = gray.convert("P")
        assert load_pixels(palette)[0].size == 8 * 4 * 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(ImageLoadError):
            load_pixels(tmp_path / "missing.png")

    def test_not_an_image(self):
        with pytest.raises(ImageLoadError):
            load_pixels(b"definitely not an image")

    def test_zero_size(self):
        with pytest.raises(MissingRenderContextError):
            load_pixels(Image.new("RGBA", (0, 0)))

    @pytest.mark.asyncio
    async def test_async_load(self, cover_png):
        pixels, width, height = await load_pixels_async(cover_png)
        expected, _, _ = load_pixels(cover_png)
        assert (width, height) == (64, 64)
        assert np.array_equal(pixels, expected)


class TestSavePixels:
    """Test cases for save_pixels."""

    def test_png_round_trip(self, carrier_64, tmp_path):
        path = tmp_path / "out.png"
        data = save_pixels(carrier_64, 64, 64, path)

        assert path.read_bytes() == data
        assert np.array_equal(load_pixels(path)[0], carrier_64)

    def test_file_object_destination(self, carrier_64):
        buffer = io.BytesIO()
        data = save_pixels(carrier_64, 64, 64, buffer)
        assert buffer.getvalue() == data

    def test_lossy_format_warns(self, carrier_64, caplog):
        data = save_pixels(carrier_64, 64, 64, format="jpeg", quality=80)
        assert data[:2] == b"\xff\xd8"
        assert "lossy" in caplog.text


class TestFileHelpers:
    """Test cases for encode_image/decode_image."""

    def test_file_round_trip(self, cover_png, tmp_path):
        options = StegoOptions(kdf_iterations=1000)
        output = tmp_path / "stego.png"

        encode_image(cover_png, "MAIN", "p0", decoys=[("ALPHA", "p1", 1)], options=options, destination=output)

        assert decode_image(output, "p0", options=options) == "MAIN"
        assert decode_image(output, "p1", options=options) == "ALPHA"

    def test_returns_png_bytes(self, cover_png):
        data = encode_image(cover_png, "HELLO")
        assert data[:8] == b"\x89PNG\r\n\x1a\n"
        assert decode_image(data) == "HELLO"

    @pytest.mark.asyncio
    async def test_async_decode(self, cover_png):
        data = encode_image(cover_png, "HELLO", options=StegoOptions(transform="multibit-lsb"))
        message = await decode_image_async(data, options=StegoOptions(transform="multibit-lsb"))
        assert message == "HELLO"
