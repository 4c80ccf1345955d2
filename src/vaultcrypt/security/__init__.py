"""Security helpers: key backends, resolver and the streaming cipher for vaultcrypt.

This package provides:
- key resolution from inline base64 or a Vault transit key export
- a chunked AES-GCM stream codec with an authenticated header
- the bounded-memory pipeline that pipes a source through the codec
"""

from .backends import Base64KeyBackend, TransitExportBackend, TransitKeyExport
from .crypto import new_decoding_stream, new_encoding_stream
from .pipeline import Mode, decrypt, encrypt, run
from .resolver import KeyResolver, default_resolver

__all__ = [
    "Base64KeyBackend",
    "TransitExportBackend",
    "TransitKeyExport",
    "new_encoding_stream",
    "new_decoding_stream",
    "Mode",
    "run",
    "encrypt",
    "decrypt",
    "KeyResolver",
    "default_resolver",
]
