"""
Integration Tests for Veilpix Complete Workflows

This module runs end-to-end scenarios: embedding primary and decoy
payloads with every transform, saving through PNG and recovering each
payload by password.
"""

from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from veilpix import StegoOptions, decode, encode
from veilpix.errors import CapacityExceededError, DecryptionFailureError
from veilpix.stego import MultiMessageOrchestrator, Transform, capacity, load_pixels, save_pixels


ALL_TRANSFORMS = [t.value for t in Transform]


class TestScenarios:
    """The reference scenarios for the codec core."""

    def test_plain_message_on_small_image(self, carrier_64):
        """64x64, spatial, "HELLO", no password."""
        stego = encode(carrier_64, 64, 64, "HELLO")
        assert decode(stego, 64, 64) == "HELLO"

    def test_encrypted_message_with_frequency_transform(self, carrier_256, fast_options):
        """256x256, frequency, "TOP SECRET" under a password."""
        options = fast_options.replace(transform="dct")
        stego = encode(carrier_256, 256, 256, "TOP SECRET", password="abc123456789", options=options)

        assert decode(stego, 256, 256, password="abc123456789", options=options) == "TOP SECRET"
        with pytest.raises(DecryptionFailureError):
            decode(stego, 256, 256, password="abc12345678", options=options)

    def test_primary_and_two_decoys(self, carrier_256, fast_options):
        """Each password unlocks exactly its own payload."""
        stego = encode(
            carrier_256, 256, 256, "MAIN", password="p0",
            decoys=[("ALPHA", "p1", 1), ("BETA", "p2", 2)],
            options=fast_options,
        )

        assert decode(stego, 256, 256, password="p0", options=fast_options) == "MAIN"
        assert decode(stego, 256, 256, password="p1", options=fast_options) == "ALPHA"
        assert decode(stego, 256, 256, password="p2", options=fast_options) == "BETA"

    def test_oversized_message_rejected(self, carrier_64):
        limit = 0.75 * capacity(64, 64, "lsb")
        message = "x" * int(limit // 8)
        before = carrier_64.copy()

        with pytest.raises(CapacityExceededError):
            encode(carrier_64, 64, 64, message)
        assert np.array_equal(carrier_64, before)


class TestRoundTrip:
    """Round trips across all transforms."""

    @pytest.mark.parametrize("transform", ALL_TRANSFORMS)
    def test_encrypted_round_trip(self, transform, carrier_256, fast_options):
        options = fast_options.replace(transform=transform)
        stego = encode(carrier_256, 256, 256, "round trip", password="secret", options=options)
        assert decode(stego, 256, 256, password="secret", options=options) == "round trip"

    def test_unicode_round_trip(self, carrier_256, fast_options):
        message = "grüße, 東京 ✓"
        stego = encode(carrier_256, 256, 256, message, password="secret", options=fast_options)
        assert decode(stego, 256, 256, password="secret", options=fast_options) == message

    @pytest.mark.parametrize("transform", ALL_TRANSFORMS)
    def test_empty_message(self, transform, carrier_256):
        options = StegoOptions(transform=transform)
        stego = encode(carrier_256, 256, 256, "", options=options)
        assert decode(stego, 256, 256, options=options) == ""

    @pytest.mark.parametrize("transform", ALL_TRANSFORMS)
    def test_survives_png(self, transform, carrier_256, tmp_path):
        options = StegoOptions(transform=transform)
        stego = encode(carrier_256, 256, 256, "through a file", options=options)

        path = tmp_path / f"{transform}.png"
        save_pixels(stego, 256, 256, path)
        pixels, width, height = load_pixels(path)

        assert decode(pixels, width, height, options=options) == "through a file"

    @pytest.mark.parametrize("transform", ["dct", "dwt"])
    def test_block_codec_decoys(self, transform, fast_options, carrier_factory):
        carrier = carrier_factory(512, 512, seed=2)
        options = fast_options.replace(transform=transform)
        stego = encode(
            carrier, 512, 512, "MAIN", password="p0",
            decoys=[("ALPHA", "p1", 1), ("BETA", "p2", 2)],
            options=options,
        )

        for password, expected in (("p0", "MAIN"), ("p1", "ALPHA"), ("p2", "BETA")):
            assert decode(stego, 512, 512, password=password, options=options) == expected

    def test_multibit_depth_from_options(self, carrier_64, fast_options):
        options = fast_options.replace(transform="multibit-lsb", bit_depth=4)
        stego = encode(carrier_64, 64, 64, "deep", password="pw", options=options)
        assert decode(stego, 64, 64, password="pw", options=options) == "deep"


class TestDecoyIndependence:
    """Decoy payloads are independent of each other and of the primary."""

    def test_embedding_order_does_not_matter(self, carrier_256, fast_options):
        forward = encode(
            carrier_256, 256, 256, "MAIN", password="p0",
            decoys=[("ALPHA", "p1", 1), ("BETA", "p2", 2)], options=fast_options,
        )
        reverse = encode(
            carrier_256, 256, 256, "MAIN", password="p0",
            decoys=[("BETA", "p2", 2), ("ALPHA", "p1", 1)], options=fast_options,
        )

        for stego in (forward, reverse):
            assert decode(stego, 256, 256, password="p1", options=fast_options) == "ALPHA"
            assert decode(stego, 256, 256, password="p2", options=fast_options) == "BETA"

    def test_passwords_never_cross(self, carrier_256, fast_options):
        stego = encode(
            carrier_256, 256, 256, "MAIN", password="p0",
            decoys=[("ALPHA", "p1", 1)], options=fast_options,
        )
        recovered = {
            password: decode(stego, 256, 256, password=password, options=fast_options)
            for password in ("p0", "p1")
        }
        assert recovered == {"p0": "MAIN", "p1": "ALPHA"}

    def test_decoys_visible_to_inspect(self, carrier_256, fast_options):
        orchestrator = MultiMessageOrchestrator(fast_options)
        result = orchestrator.encode(
            carrier_256, 256, 256, "MAIN", password="p0",
            decoys=[("ALPHA", "p1", 1), ("BETA", "p2", 2)],
        )
        frames = orchestrator.inspect(result.pixels, 256, 256)
        assert [f.metadata.is_decoy for f in frames] == [False, True, True]


class TestIsolation:
    """Calls share no state."""

    def test_concurrent_encodes(self, fast_options, carrier_factory):
        carriers = [carrier_factory(64, 64, seed=s) for s in range(4)]

        def run(i):
            stego = encode(carriers[i], 64, 64, f"message {i}", password=f"pw{i}", options=fast_options)
            return decode(stego, 64, 64, password=f"pw{i}", options=fast_options)

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(run, range(4)))

        assert results == [f"message {i}" for i in range(4)]

    def test_reencoding_a_stego_image(self, carrier_64):
        first = encode(carrier_64, 64, 64, "first")
        second = encode(first, 64, 64, "second")
        assert decode(first, 64, 64) == "first"
        assert decode(second, 64, 64) == "second"
