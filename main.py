"""Run vaultcrypt from a source checkout without installing it.

    python main.py -k base64key://<key> plain.txt plain.enc

Same arguments and exit codes as the ``vaultcrypt`` console script.
"""

from __future__ import annotations

import sys
from pathlib import Path

SRC = Path(__file__).resolve().parent / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from vaultcrypt.frontend.cli.app import main  # noqa: E402


if __name__ == "__main__":
    sys.exit(main())
