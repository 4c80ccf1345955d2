"""Logging for vaultcrypt runs.

Everything goes to stderr: with ``-`` as output, stdout is the ciphertext
(or plaintext) stream and a single log line would corrupt it. The default
level is WARNING, so a clean run prints nothing; ``--log-level info`` adds
one line per resolved key and per finished job. Key material is never
passed to a logger.
"""

import logging
import sys

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def configure_logging(level: int = logging.WARNING) -> None:
    """Point the root logger at stderr with ``level``; later calls are no-ops."""
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S", stream=sys.stderr)
