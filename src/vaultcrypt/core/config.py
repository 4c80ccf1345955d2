"""
Runtime configuration for the Vault transit backend.

Values are read from the environment once at startup and then passed around
explicitly; nothing below the CLI reads os.environ on its own.

    VAULT_SERVER_URL    (or VAULT_ADDR)   Vault base address
    VAULT_SERVER_TOKEN  (or VAULT_TOKEN)  access token
    VAULT_LOGIN / VAULT_PASSWORD / VAULT_METHOD
                                          login used when no token is set
    VAULT_NAMESPACE                       optional enterprise namespace
    VAULT_CLIENT_TIMEOUT                  request timeout in seconds

Never log the token or password.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .exceptions import BackendUnavailableError

logger = logging.getLogger("vaultcrypt.config")

DEFAULT_AUTH_METHOD = "userpass"
DEFAULT_TIMEOUT = 60.0


def _first_env(environ: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = environ.get(name)
        if value:
            return value
    return None


@dataclass(frozen=True)
class VaultConfig:
    """Connection settings for the secret store client."""

    address: Optional[str] = None
    token: Optional[str] = None
    login: Optional[str] = None
    password: Optional[str] = None
    auth_method: str = DEFAULT_AUTH_METHOD
    namespace: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "VaultConfig":
        environ = os.environ if environ is None else environ

        raw_timeout = environ.get("VAULT_CLIENT_TIMEOUT")
        timeout = DEFAULT_TIMEOUT
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                logger.warning(
                    "Ignoring invalid VAULT_CLIENT_TIMEOUT=%r, using %ss", raw_timeout, DEFAULT_TIMEOUT
                )

        return cls(
            address=_first_env(environ, "VAULT_SERVER_URL", "VAULT_ADDR"),
            token=_first_env(environ, "VAULT_SERVER_TOKEN", "VAULT_TOKEN"),
            login=_first_env(environ, "VAULT_LOGIN"),
            password=_first_env(environ, "VAULT_PASSWORD"),
            auth_method=_first_env(environ, "VAULT_METHOD") or DEFAULT_AUTH_METHOD,
            namespace=_first_env(environ, "VAULT_NAMESPACE"),
            timeout=timeout,
        )

    @property
    def has_login(self) -> bool:
        return bool(self.login and self.password)

    def validate(self) -> None:
        """Raise ``BackendUnavailableError`` if a client could not be built from this config."""
        if not self.address:
            raise BackendUnavailableError(
                "Vault address is not configured; set VAULT_SERVER_URL"
            )
        if not self.token and not self.has_login:
            raise BackendUnavailableError(
                "Vault credentials are not configured; set VAULT_SERVER_TOKEN "
                "or VAULT_LOGIN and VAULT_PASSWORD"
            )

    def __repr__(self) -> str:
        return (
            f"VaultConfig(address={self.address!r}, token={'***' if self.token else None}, "
            f"login={self.login!r}, auth_method={self.auth_method!r}, "
            f"namespace={self.namespace!r}, timeout={self.timeout!r})"
        )
