"""Allow ``python -m vaultcrypt``."""

import sys

from vaultcrypt.frontend.cli.app import main

if __name__ == "__main__":
    sys.exit(main())
