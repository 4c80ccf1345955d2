"""
Key locator parsing.

A key locator is a URI-shaped string telling vaultcrypt where the key lives:

    base64key://<base64-encoded-key>
    hashivault://<transit-key-name>?version=<n|latest>

Parsing only splits the string; whether the scheme can actually be resolved
is decided later by the resolver.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping
from urllib.parse import parse_qsl, unquote, urlsplit

from .exceptions import LocatorParseError


@dataclass(frozen=True)
class KeyLocator:
    scheme: str
    identifier: str
    parameters: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def get(self, name: str, default: str = "") -> str:
        return self.parameters.get(name, default)

    def __repr__(self) -> str:
        # identifier may be an inline key, keep it out of reprs and logs
        return f"KeyLocator(scheme={self.scheme!r}, parameters={dict(self.parameters)!r})"


def parse_locator(raw: str) -> KeyLocator:
    """
    Split ``raw`` into scheme, identifier and query parameters.

    The identifier is the URI authority followed by any path, percent-decoded.
    Standard base64 may contain ``/`` so the path is kept rather than dropped.
    When a query parameter repeats, the first value wins.

    Raises ``LocatorParseError`` if ``raw`` is not a ``scheme://...`` URI.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise LocatorParseError("Key locator is empty")

    if "://" not in raw:
        raise LocatorParseError("Key locator must look like scheme://identifier")

    try:
        parts = urlsplit(raw.strip())
    except ValueError as e:
        raise LocatorParseError(f"Malformed key locator: {e}") from e

    if not parts.scheme:
        raise LocatorParseError("Key locator has no scheme")

    params: dict[str, str] = {}
    for name, value in parse_qsl(parts.query, keep_blank_values=True):
        params.setdefault(name, value)

    return KeyLocator(
        scheme=parts.scheme,
        identifier=unquote(parts.netloc + parts.path),
        parameters=MappingProxyType(params),
    )
