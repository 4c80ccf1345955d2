"""Small helper to build the runtime context for a CLI invocation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from vaultcrypt.core.config import VaultConfig
from vaultcrypt.security.resolver import KeyResolver, default_resolver


@dataclass
class AppContext:
    """Container for runtime objects the CLI needs."""

    config: VaultConfig
    resolver: KeyResolver


def build_context(environ: Optional[Mapping[str, str]] = None) -> AppContext:
    """
    Read configuration from the environment once and wire up the resolver.

    The Vault settings are only used when a ``hashivault://`` locator is
    resolved; missing settings are reported at that point, not here, so
    ``base64key://`` works without any Vault environment.
    """
    config = VaultConfig.from_env(environ)
    return AppContext(config=config, resolver=default_resolver(config))
