"""
Veilpix Python Package

Multi-message image steganography: a primary payload and password-gated
decoys hidden in the pixels of a single image.

Subpackages:
    crypto: Payload encryption and key derivation
    stego: Bitstream framing, transform codecs and the orchestrator

Version: 1.0.0
"""

from . import crypto
from . import stego
from .config import Expiry, StegoOptions
from .errors import StegoError
from .stego import decode, encode

__all__ = ["crypto", "stego", "Expiry", "StegoOptions", "StegoError", "encode", "decode"]

__version__ = "1.0.0"
