"""Dispatch a parsed key locator to the backend registered for its scheme."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from vaultcrypt.core.config import VaultConfig
from vaultcrypt.core.exceptions import KeyDecodeError, UnsupportedSchemeError
from vaultcrypt.core.locator import KeyLocator, parse_locator

from .backends import Base64KeyBackend, KeyBackend, TransitExportBackend

logger = logging.getLogger("vaultcrypt.security")


class KeyResolver:
    def __init__(self, backends: Optional[Dict[str, KeyBackend]] = None):
        self._backends: Dict[str, KeyBackend] = dict(backends or {})

    def register(self, scheme: str, backend: KeyBackend) -> None:
        self._backends[scheme] = backend

    @property
    def schemes(self) -> tuple:
        return tuple(self._backends)

    def resolve(self, locator: KeyLocator) -> bytes:
        """Return raw key bytes for ``locator``; unknown schemes fail closed."""
        backend = self._backends.get(locator.scheme)
        if backend is None:
            raise UnsupportedSchemeError(locator.scheme)

        key = backend.resolve(locator.identifier, locator.parameters)
        if not key:
            raise KeyDecodeError(f"{locator.scheme} backend returned an empty key")
        logger.debug("Resolved %d-byte key via %s", len(key), locator.scheme)
        return key

    def resolve_string(self, raw: str) -> bytes:
        return self.resolve(parse_locator(raw))


def default_resolver(config: Optional[VaultConfig] = None) -> KeyResolver:
    """Resolver with the inline and Vault transit backends registered."""
    config = config or VaultConfig()
    return KeyResolver(
        {
            Base64KeyBackend.scheme: Base64KeyBackend(),
            TransitExportBackend.scheme: TransitExportBackend(config),
        }
    )
