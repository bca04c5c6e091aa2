"""
Fuzz Tests for Veilpix Codecs

This module contains property-based tests for the bitstream, frame
parser, spatial codecs and orchestrator using hypothesis.
"""

import pytest
import hypothesis.strategies as st
from hypothesis import HealthCheck, given, settings, Verbosity

from veilpix.config import StegoOptions
from veilpix.errors import FrameFormatError, StegoError
from veilpix.stego.bitstream import SENTINEL, bits_to_text, parse_frame, text_to_bits
from veilpix.stego.codecs import MultiBitSpatialCodec, SpatialCodec
from veilpix.stego.orchestrator import MultiMessageOrchestrator


# Hypothesis strategies for fuzz testing
frame_safe_text = st.text(
    min_size=0,
    max_size=200,
    alphabet=st.characters(blacklist_categories=["Cs"], blacklist_characters="\x00"),
)
bit_strings = st.text(alphabet="01", min_size=1, max_size=2000)
offsets = st.integers(min_value=0, max_value=8000)
pixel_noise = st.binary(min_size=16 * 16 * 4, max_size=16 * 16 * 4)

fuzz_settings = settings(
    verbosity=Verbosity.quiet,
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)


class TestBitstreamFuzzing:
    """Fuzz tests for text and frame handling."""

    @given(text=frame_safe_text)
    @fuzz_settings
    def test_text_round_trip(self, text):
        assert bits_to_text(text_to_bits(text) + SENTINEL) == text

    @given(text=st.text(max_size=300))
    @fuzz_settings
    def test_parse_frame_only_raises_frame_errors(self, text):
        try:
            frame = parse_frame(text)
        except FrameFormatError:
            return
        assert text.startswith(("RAW:", "ENC:"))
        assert text.endswith(frame.body)


class TestSpatialFuzzing:
    """Fuzz tests for the spatial codecs."""

    @given(bits=bit_strings, offset=offsets)
    @fuzz_settings
    def test_spatial_round_trip(self, carrier_factory, bits, offset):
        carrier = carrier_factory(64, 64)
        codec = SpatialCodec()
        out = codec.encode(carrier, bits, 64, 64, offset=offset)
        assert codec.decode(out, 64, 64, offset=offset, count=len(bits)) == bits

    @given(bits=bit_strings, offset=offsets, depth=st.integers(min_value=1, max_value=8))
    @fuzz_settings
    def test_multibit_round_trip(self, carrier_factory, bits, offset, depth):
        carrier = carrier_factory(64, 64)
        codec = MultiBitSpatialCodec(bit_depth=depth)
        out = codec.encode(carrier, bits, 64, 64, offset=offset)
        assert codec.decode(out, 64, 64, offset=offset, count=len(bits)) == bits


class TestOrchestratorFuzzing:
    """Fuzz tests for the orchestrator."""

    @given(message=frame_safe_text)
    @fuzz_settings
    def test_plain_round_trip(self, carrier_factory, message):
        carrier = carrier_factory(64, 64)
        orchestrator = MultiMessageOrchestrator()
        result = orchestrator.encode(carrier, 64, 64, message)
        assert orchestrator.decode(result.pixels, 64, 64).message == message

    @given(pixels=pixel_noise)
    @fuzz_settings
    def test_random_pixels_never_crash(self, pixels):
        """Decoding arbitrary pixels either fails with a StegoError or yields text."""
        orchestrator = MultiMessageOrchestrator(StegoOptions(kdf_iterations=1000))
        try:
            result = orchestrator.decode(pixels, 16, 16)
        except StegoError:
            return
        assert isinstance(result.message, str)

    @given(message=st.text(min_size=1, max_size=40, alphabet="abcdefghij "))
    @settings(verbosity=Verbosity.quiet, max_examples=10, deadline=None)
    def test_block_codec_round_trip(self, carrier_factory, message):
        carrier = carrier_factory(256, 256, seed=3)
        for transform in ("dct", "dwt"):
            orchestrator = MultiMessageOrchestrator(StegoOptions(transform=transform))
            result = orchestrator.encode(carrier, 256, 256, message)
            assert orchestrator.decode(result.pixels, 256, 256).message == message


@pytest.mark.parametrize("bit_count", [8, 64, 512])
def test_spatial_decode_stops_on_byte_boundary(carrier_factory, bit_count):
    carrier = carrier_factory(32, 32)
    bits = ("10110111" * bit_count)[:bit_count] + SENTINEL
    out = SpatialCodec().encode(carrier, bits, 32, 32, offset=40)
    assert SpatialCodec().decode(out, 32, 32, offset=40) == bits
