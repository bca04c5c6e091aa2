"""
Unit Tests for Veilpix Configuration
"""

import pytest

from veilpix.config import Expiry, StegoOptions


class TestStegoOptions:
    """Test cases for StegoOptions."""

    def test_defaults(self):
        options = StegoOptions()
        assert options.transform == "lsb"
        assert options.cipher == "aes"
        assert options.kdf == "pbkdf2-sha256"
        assert options.bit_depth == 2
        assert options.strength == 4.0
        assert options.expiry is None

    def test_from_dict_accepts_ui_shape(self):
        options = StegoOptions.from_dict({
            "algorithm": "dct",
            "encryption": {"algorithm": "chacha20"},
            "quality": 85,
            "capacity": 3,
            "expiry": {"type": "views", "value": 5},
            "theme": "dark",
            "strength": None,
        })

        assert options.transform == "dct"
        assert options.cipher == "chacha20"
        assert options.quality == 85
        assert options.bit_depth == 3
        assert options.expiry == Expiry(type="views", value=5)
        assert options.strength == 4.0

    def test_from_dict_empty(self):
        assert StegoOptions.from_dict(None) == StegoOptions()

    @pytest.mark.parametrize("changes", [
        {"bit_depth": 0},
        {"bit_depth": 9},
        {"quality": 0},
        {"kdf_iterations": 0},
        {"strength": 0},
        {"expiry": Expiry(type="clicks", value=1)},
    ])
    def test_validate_rejects(self, changes):
        with pytest.raises(ValueError):
            StegoOptions(**changes).validate()

    def test_replace(self):
        options = StegoOptions()
        changed = options.replace(transform="dwt")
        assert changed.transform == "dwt"
        assert options.transform == "lsb"


class TestExpiry:
    """Test cases for Expiry."""

    def test_time_expiry(self):
        assert Expiry("time", 1000).is_expired(now_ms=2000)
        assert not Expiry("time", 3000).is_expired(now_ms=2000)

    def test_views_never_expire_here(self):
        assert not Expiry("views", 0).is_expired(now_ms=2000)

    def test_dict_round_trip(self):
        expiry = Expiry("time", 1893456000000)
        assert Expiry.from_dict(expiry.to_dict()) == expiry
