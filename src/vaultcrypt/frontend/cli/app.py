"""Command-line entry point for vaultcrypt.

Usage:
  vaultcrypt -k base64key://<key> ./input-file ./output-file
  vaultcrypt -d -k hashivault://<transit-key>?version=2 ./input.enc ./output
  cat plain | vaultcrypt -k ... - - > cipher

"-" as input or output means stdin/stdout. Progress is only shown when
writing to a real file.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from vaultcrypt import __version__
from vaultcrypt.core.exceptions import VaultCryptError
from vaultcrypt.core.invocation import execute
from vaultcrypt.frontend.cli.context import build_context
from vaultcrypt.frontend.cli.logging_config import configure_logging
from vaultcrypt.security.pipeline import Mode

logger = logging.getLogger("vaultcrypt.cli")

LOG_LEVELS = ("debug", "info", "warning", "error")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vaultcrypt",
        description="Encrypt or decrypt a file with a key from an inline value or Vault transit.",
    )
    parser.add_argument("input", help="input file, or - for stdin")
    parser.add_argument("output", help="output file, or - for stdout")
    parser.add_argument("-d", "--decrypt", action="store_true", help="Decrypt input file")
    parser.add_argument(
        "-k",
        "--key",
        required=True,
        help="Key for encoding or decoding input file "
        "(base64key://encoded-key, hashivault://transit-key-id?version=latest)",
    )
    parser.add_argument("--no-progress", action="store_true", help="Never show the progress spinner")
    parser.add_argument(
        "--no-preserve-mode",
        action="store_true",
        help="Create the output with 0644 instead of the input file's permissions",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, default="warning")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI; returns the process exit code (argparse exits with 2 on bad usage)."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(getattr(logging, args.log_level.upper()))

    ctx = build_context()
    mode = Mode.DECRYPT if args.decrypt else Mode.ENCRYPT

    try:
        execute(
            mode,
            args.key,
            args.input,
            args.output,
            resolver=ctx.resolver,
            show_progress=not args.no_progress,
            preserve_mode=not args.no_preserve_mode,
        )
    except VaultCryptError as e:
        logger.debug("%s failed", mode.value, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
