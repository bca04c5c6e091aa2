#!/usr/bin/env python3
"""
Veilpix Command Line Interface

Hide and recover primary and decoy messages in PNG images.

Usage:
    veilpix embed [OPTIONS]
    veilpix extract [OPTIONS]
    veilpix capacity [OPTIONS]
    veilpix inspect [OPTIONS]
    veilpix --version
    veilpix --help
"""

import argparse
import json
import logging
import sys
import time
from typing import List, Optional

from . import __version__
from .config import Expiry, StegoOptions
from .errors import StegoError
from .stego.codecs import Transform, capacity
from .stego.image import load_pixels, save_pixels
from .stego.orchestrator import CAPACITY_RATIO, MultiMessageOrchestrator, Payload


logger = logging.getLogger(__name__)

TRANSFORM_CHOICES = [t.value for t in Transform]
CIPHER_CHOICES = ["aes", "chacha20", "aes-cbc"]
KDF_CHOICES = ["pbkdf2-sha256", "pbkdf2-sha512", "argon2id"]


class VeilpixCLI:
    """Main CLI application for Veilpix."""

    def run(self, args: List[str]) -> int:
        """Run the CLI with given arguments."""
        parser = self.create_parser()
        parsed = parser.parse_args(args)

        logging.basicConfig(
            level=logging.DEBUG if getattr(parsed, "verbose", False) else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s",
        )

        if not hasattr(parsed, "func"):
            parser.print_help()
            return 0

        try:
            return parsed.func(parsed)
        except (StegoError, ValueError, OSError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    def create_parser(self) -> argparse.ArgumentParser:
        """Create the argument parser."""
        parser = argparse.ArgumentParser(
            prog="veilpix",
            description="Multi-message image steganography",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
    veilpix embed -i cover.png -o stego.png -m "MAIN" -p p0 --decoy ALPHA p1 1
    veilpix extract -i stego.png -p p1
    veilpix capacity -i cover.png --transform dct
    veilpix inspect -i stego.png --json
            """
        )

        parser.add_argument(
            "--version",
            action="version",
            version=f"Veilpix v{__version__}"
        )
        parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

        subparsers = parser.add_subparsers(title="commands", dest="command")

        self.add_embed_command(subparsers)
        self.add_extract_command(subparsers)
        self.add_capacity_command(subparsers)
        self.add_inspect_command(subparsers)

        return parser

    def _add_codec_options(self, cmd) -> None:
        cmd.add_argument("--bit-depth", type=int, default=2,
                         help="Bits per sample for multibit-lsb (must match on extract)")
        cmd.add_argument("--strength", type=float, default=4.0,
                         help="Quantisation step for dct/dwt (must match on extract)")
        cmd.add_argument("--iterations", type=int, default=100_000,
                         help="PBKDF2 iteration count")

    def add_embed_command(self, subparsers):
        """Add embed command to parser."""
        cmd = subparsers.add_parser("embed", help="Embed messages in an image")
        cmd.add_argument("--input", "-i", required=True, help="Cover image")
        cmd.add_argument("--output", "-o", required=True, help="Output image (PNG recommended)")
        message = cmd.add_mutually_exclusive_group()
        message.add_argument("--message", "-m", help="Primary message text")
        message.add_argument("--message-file", help="Read the primary message from a UTF-8 file")
        cmd.add_argument("--password", "-p", help="Password for the primary message")
        cmd.add_argument("--decoy", nargs=3, action="append", default=[],
                         metavar=("TEXT", "PASSWORD", "INDEX"),
                         help="Add a decoy message (repeatable)")
        cmd.add_argument("--transform", "-t", default="lsb", choices=TRANSFORM_CHOICES,
                         help="Embedding transform")
        cmd.add_argument("--cipher", "-c", default="aes", choices=CIPHER_CHOICES,
                         help="Payload cipher")
        cmd.add_argument("--kdf", default="pbkdf2-sha256", choices=KDF_CHOICES,
                         help="Key derivation function")
        cmd.add_argument("--expires-in", type=int, metavar="SECONDS",
                         help="Stamp a time expiry this many seconds from now")
        cmd.add_argument("--format", "-f", default="PNG", help="Output image format")
        self._add_codec_options(cmd)
        cmd.set_defaults(func=self.handle_embed)

    def add_extract_command(self, subparsers):
        """Add extract command to parser."""
        cmd = subparsers.add_parser("extract", help="Recover a message")
        cmd.add_argument("--input", "-i", required=True, help="Stego image")
        cmd.add_argument("--password", "-p", help="Password")
        cmd.add_argument("--index", type=int, help="Priority index of the wanted payload")
        cmd.add_argument("--output", "-o", help="Write the message to a file instead of stdout")
        self._add_codec_options(cmd)
        cmd.set_defaults(func=self.handle_extract)

    def add_capacity_command(self, subparsers):
        """Add capacity command to parser."""
        cmd = subparsers.add_parser("capacity", help="Show image capacity per transform")
        cmd.add_argument("--input", "-i", required=True, help="Cover image")
        cmd.add_argument("--transform", "-t", choices=TRANSFORM_CHOICES,
                         help="Only show this transform")
        cmd.add_argument("--bit-depth", type=int, default=2, help="Bits per sample for multibit-lsb")
        cmd.set_defaults(func=self.handle_capacity)

    def add_inspect_command(self, subparsers):
        """Add inspect command to parser."""
        cmd = subparsers.add_parser("inspect", help="List embedded frames without decrypting")
        cmd.add_argument("--input", "-i", required=True, help="Stego image")
        cmd.add_argument("--json", action="store_true", help="Output as JSON")
        self._add_codec_options(cmd)
        cmd.set_defaults(func=self.handle_inspect)

    # Command handlers

    def _options(self, args, **extra) -> StegoOptions:
        return StegoOptions(
            bit_depth=args.bit_depth,
            strength=args.strength,
            kdf_iterations=args.iterations,
            **extra,
        )

    def handle_embed(self, args) -> int:
        """Handle embed command."""
        message: Optional[str] = args.message
        if args.message_file:
            with open(args.message_file, encoding="utf-8") as f:
                message = f.read()

        expiry = None
        if args.expires_in is not None:
            expiry = Expiry(type="time", value=int((time.time() + args.expires_in) * 1000))

        options = self._options(args, transform=args.transform, cipher=args.cipher, kdf=args.kdf, expiry=expiry)
        options.validate()

        decoys = [Payload(text=text, password=password, priority_index=int(index))
                  for text, password, index in args.decoy]

        pixels, width, height = load_pixels(args.input)
        logger.info(f"Embedding {len(decoys)} decoy(s) into {args.input} ({width}x{height})")
        result = MultiMessageOrchestrator(options).encode(
            pixels, width, height, message, password=args.password, decoys=decoys
        )
        save_pixels(result.pixels, width, height, args.output, format=args.format, quality=options.quality)

        print(f"Embedded {result.frame_count} frame(s), {result.bits_used} bits "
              f"using {result.transform.value} -> {args.output}")
        return 0

    def handle_extract(self, args) -> int:
        """Handle extract command."""
        options = self._options(args)
        pixels, width, height = load_pixels(args.input)
        result = MultiMessageOrchestrator(options).decode(
            pixels, width, height, password=args.password, index=args.index
        )

        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(result.message)
            print(f"Written to {args.output}")
        else:
            print(result.message)
        return 0

    def handle_capacity(self, args) -> int:
        """Handle capacity command."""
        _, width, height = load_pixels(args.input)
        transforms = [Transform.parse(args.transform)] if args.transform else list(Transform)

        print(f"{width}x{height}")
        for transform in transforms:
            total = capacity(width, height, transform, bit_depth=args.bit_depth)
            usable = int(total * CAPACITY_RATIO)
            print(f"  {transform.value:<14} {total:>10} positions  {usable:>10} usable bits  ~{usable // 8} bytes")
        return 0

    def handle_inspect(self, args) -> int:
        """Handle inspect command."""
        pixels, width, height = load_pixels(args.input)
        frames = MultiMessageOrchestrator(self._options(args)).inspect(pixels, width, height)

        if args.json:
            print(json.dumps([
                {
                    "index": info.index,
                    "offset": info.offset,
                    "bits": info.bit_length,
                    "encrypted": info.encrypted,
                    "metadata": info.metadata.to_dict(),
                }
                for info in frames
            ], indent=2))
            return 0

        for info in frames:
            kind = "decoy" if info.metadata.is_decoy else "primary"
            tag = "ENC" if info.encrypted else "RAW"
            print(f"#{info.index} {kind:<7} {tag} idx={info.metadata.priority_index} "
                  f"offset={info.offset} bits={info.bit_length} transform={info.metadata.transform}")
        return 0


def main():
    """Main entry point."""
    cli = VeilpixCLI()
    sys.exit(cli.run(sys.argv[1:]))


if __name__ == "__main__":
    main()
