"""
Veilpix Configuration.

This module holds the options object shared by the orchestrator, the codecs
and the cipher. Options are plain data: every encode/decode call receives
them explicitly and nothing is read from global state.

The UI layer typically hands over a loose mapping such as
``{"algorithm": "dct", "quality": 85, "expiry": {"type": "time", "value": ...}}``;
``StegoOptions.from_dict`` accepts that shape.

Example:
    >>> from veilpix.config import StegoOptions
    >>> options = StegoOptions(transform="dwt", cipher="chacha20")
    >>> options.validate()
"""

import time
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class Expiry:
    """
    Expiry policy stamped into frame metadata.

    Attributes:
        type: "time" (value is a Unix timestamp in milliseconds) or "views"
        value: Timestamp or view budget
    """

    type: str
    value: int

    KINDS = ("time", "views")

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "value": self.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Expiry":
        return cls(type=str(data["type"]), value=int(data["value"]))

    def is_expired(self, now_ms: Optional[int] = None) -> bool:
        """Return True if a time expiry lies in the past. View budgets are never enforced here."""
        if self.type != "time":
            return False
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return self.value < now_ms


@dataclass
class StegoOptions:
    """
    Options for a single encode or decode call.

    Attributes:
        transform: Transform selector (lsb, dct, dwt, multibit-lsb or an alias)
        cipher: Payload cipher identifier (aes, chacha20, aes-cbc)
        kdf: Key derivation identifier (pbkdf2-sha256, pbkdf2-sha512, argon2id)
        kdf_iterations: PBKDF2 iteration count
        quality: Output quality used when saving to a lossy format
        expiry: Optional expiry stamped into every frame
        bit_depth: Bits per sample for the multi-bit spatial codec
        strength: Quantisation step for coefficient parity in dct/dwt
    """

    transform: str = "lsb"
    cipher: str = "aes"
    kdf: str = "pbkdf2-sha256"
    kdf_iterations: int = 100_000
    quality: int = 90
    expiry: Optional[Expiry] = None
    bit_depth: int = 2
    strength: float = 4.0

    # Keys accepted from the UI layer that map onto differently named fields
    ALIASES = {
        "algorithm": "transform",
        "encryption": "cipher",
        "capacity": "bit_depth",
        "iterations": "kdf_iterations",
    }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]] = None) -> "StegoOptions":
        """
        Build options from a loose mapping, ignoring unknown keys.

        Args:
            data: Mapping with option names or their UI aliases

        Returns:
            A validated StegoOptions instance
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}

        for key, value in (data or {}).items():
            name = cls.ALIASES.get(key, key)
            if name not in known or value is None:
                continue
            if name == "cipher" and isinstance(value, Mapping):
                value = value.get("algorithm", cls.cipher)
            if name == "expiry" and isinstance(value, Mapping):
                value = Expiry.from_dict(value)
            values[name] = value

        options = cls(**values)
        options.validate()
        return options

    def validate(self) -> None:
        """
        Check option ranges.

        Raises:
            ValueError: If any option is out of range
        """
        if not 1 <= self.bit_depth <= 8:
            raise ValueError(f"bit_depth must be between 1 and 8, got {self.bit_depth}")
        if not 1 <= self.quality <= 100:
            raise ValueError(f"quality must be between 1 and 100, got {self.quality}")
        if self.kdf_iterations < 1:
            raise ValueError(f"kdf_iterations must be positive, got {self.kdf_iterations}")
        if self.strength <= 0:
            raise ValueError(f"strength must be positive, got {self.strength}")
        if self.expiry is not None and self.expiry.type not in Expiry.KINDS:
            raise ValueError(f"Unknown expiry type: {self.expiry.type}")

    def replace(self, **changes: Any) -> "StegoOptions":
        """Return a copy with the given fields changed."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update(changes)
        return type(self)(**values)
