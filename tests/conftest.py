# Veilpix Test Configuration
# This file contains test settings and fixtures

import random

import numpy as np
import pytest
from PIL import Image

from veilpix.config import StegoOptions


def make_carrier(width, height, seed=0):
    """Mid-tone noise RGBA buffer; values stay clear of 0 and 255 so block codecs never clip."""
    rng = np.random.default_rng(seed)
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[:, :, :3] = rng.integers(32, 224, size=(height, width, 3), dtype=np.uint8)
    pixels[:, :, 3] = 255
    return pixels.reshape(-1)


def seeded_random_source(seed=0):
    """Deterministic stand-in for secrets.token_bytes."""
    rng = random.Random(seed)
    return lambda n: bytes(rng.getrandbits(8) for _ in range(n))


@pytest.fixture(scope="session")
def carrier_factory():
    """Return the carrier builder (session scoped so hypothesis tests may use it)."""
    return make_carrier


@pytest.fixture
def carrier_64():
    """64x64 mid-tone carrier."""
    return make_carrier(64, 64)


@pytest.fixture
def carrier_256():
    """256x256 mid-tone carrier."""
    return make_carrier(256, 256, seed=1)


@pytest.fixture(scope="session")
def fast_options():
    """Options with a cheap key derivation for tests that encrypt."""
    return StegoOptions(kdf_iterations=1000)


@pytest.fixture
def deterministic_random():
    """Factory for seeded random sources."""
    return seeded_random_source


@pytest.fixture
def cover_png(tmp_path):
    """Write a 64x64 RGB cover image and return its path."""
    rng = np.random.default_rng(7)
    array = rng.integers(32, 224, size=(64, 64, 3), dtype=np.uint8)
    path = tmp_path / "cover.png"
    Image.fromarray(array).save(str(path))
    return path
