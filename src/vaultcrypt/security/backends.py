"""Key backends: each turns a locator identifier into raw key bytes.

Two schemes are supported:

- ``base64key``   the identifier *is* the key, standard base64 encoded
- ``hashivault``  the identifier names a Vault transit key; the key is
                  exported from ``transit/export/encryption-key/<name>/<version>``

Resolved keys are returned to the caller and never stored or logged.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol, Tuple
from urllib.parse import quote

from vaultcrypt.core.config import VaultConfig
from vaultcrypt.core.exceptions import KeyDecodeError, KeyNotFoundError, SchemaError
from vaultcrypt.network.vault_client import VaultClient

logger = logging.getLogger("vaultcrypt.security")

LATEST_VERSION = "latest"
EXPORT_PATH = "transit/export/encryption-key/{name}/{version}"


class KeyBackend(Protocol):
    def resolve(self, identifier: str, parameters: Mapping[str, str]) -> bytes: ...


class SecretReader(Protocol):
    def read(self, path: str, params: Optional[dict] = None) -> Optional[dict]: ...


def decode_base64_key(value: str, what: str = "key") -> bytes:
    try:
        decoded = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyDecodeError(f"{what} is not valid base64") from e
    if not decoded:
        raise KeyDecodeError(f"{what} is empty")
    return decoded


class Base64KeyBackend:
    """Inline key: the identifier is decoded as standard base64."""

    scheme = "base64key"

    def resolve(self, identifier: str, parameters: Mapping[str, str]) -> bytes:
        return decode_base64_key(identifier)


# ----------------------------------------------------------------------
# Transit export response
# ----------------------------------------------------------------------


def _version_sort_key(version: str) -> Tuple[int, int, str]:
    # numeric versions first in numeric order, anything else after, lexically
    if version.isdigit():
        return (0, int(version), "")
    return (1, 0, version)


@dataclass(frozen=True)
class TransitKeyExport:
    """Decoded ``data`` of a transit export response."""

    name: Optional[str]
    keys: Tuple[Tuple[str, str], ...]

    @classmethod
    def from_secret(cls, secret: Optional[Mapping[str, Any]]) -> "TransitKeyExport":
        """
        Validate the shape of a Vault secret.

        ``KeyNotFoundError`` when there is no secret or no data,
        ``SchemaError`` when ``keys`` is missing or not a mapping of strings.
        """
        if not secret:
            raise KeyNotFoundError("Vault: secret not found")

        data = secret.get("data")
        if data is None:
            raise KeyNotFoundError("Vault: secret not found")
        if not isinstance(data, Mapping):
            raise SchemaError("Vault: secret data is not an object")
        if not data:
            raise KeyNotFoundError("Vault: secret not found")

        if "keys" not in data:
            raise SchemaError("Vault: keys not found")
        keys = data["keys"]
        if not isinstance(keys, Mapping):
            raise SchemaError("Vault: keys is not an object")

        fragments = []
        for version, value in keys.items():
            if not isinstance(value, str):
                raise SchemaError(f"Vault: key {version} is not a string")
            fragments.append((str(version), value))
        fragments.sort(key=lambda item: _version_sort_key(item[0]))

        name = data.get("name")
        return cls(name=name if isinstance(name, str) else None, keys=tuple(fragments))

    def key_bytes(self) -> bytes:
        """Concatenate every decoded fragment in ascending version order."""
        if not self.keys:
            raise KeyNotFoundError("Vault: secret contains no keys")
        if len(self.keys) > 1:
            logger.warning(
                "Vault returned %d key versions (%s); concatenating in version order",
                len(self.keys),
                ", ".join(version for version, _ in self.keys),
            )
        out = bytearray()
        for version, value in self.keys:
            out += decode_base64_key(value, what=f"Vault: {version} key")
        return bytes(out)


class TransitExportBackend:
    """Export a named transit key from Vault."""

    scheme = "hashivault"

    def __init__(
        self,
        config: VaultConfig,
        client_factory: Callable[[VaultConfig], SecretReader] = VaultClient.from_config,
    ):
        self.config = config
        self._client_factory = client_factory

    def resolve(self, identifier: str, parameters: Mapping[str, str]) -> bytes:
        name = identifier.strip("/")
        if not name:
            raise KeyNotFoundError("Vault: transit key name is empty")

        # On empty the current key will be provided
        version = parameters.get("version") or LATEST_VERSION

        # each becomes exactly one path segment of the export route
        if name in (".", "..") or version in (".", ".."):
            raise KeyNotFoundError(f"Vault: invalid transit key {name!r} version {version!r}")

        client = self._client_factory(self.config)
        route = EXPORT_PATH.format(name=quote(name, safe=""), version=quote(version, safe=""))
        logger.info("Exporting transit key %s (version %s)", name, version)

        secret = client.read(route)
        return TransitKeyExport.from_secret(secret).key_bytes()
