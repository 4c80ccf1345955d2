"""
Minimal HashiCorp Vault HTTP client.

Only what the transit backend needs:
  read(path, params)            -> GET /v1/<path>, returns the secret dict or None
  login(method, user, password) -> POST /v1/auth/<method>/login/<user>, stores the token

A 404 is the server's way of saying "nothing here"; it is returned as None
unless the body still carries data or warnings.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from vaultcrypt.core.config import VaultConfig
from vaultcrypt.core.exceptions import BackendUnavailableError, SecretStoreError

logger = logging.getLogger("vaultcrypt.network")


class VaultClient:
    def __init__(
        self,
        address: str,
        token: Optional[str] = None,
        namespace: Optional[str] = None,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        if not address:
            raise BackendUnavailableError("Vault address is not configured")
        self.address = address.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if namespace:
            self.session.headers["X-Vault-Namespace"] = namespace
        if token:
            self.set_token(token)

    @classmethod
    def from_config(cls, config: VaultConfig, session: Optional[requests.Session] = None) -> "VaultClient":
        """Build a client, logging in first when only login credentials are configured."""
        config.validate()
        client = cls(
            config.address,
            token=config.token,
            namespace=config.namespace,
            timeout=config.timeout,
            session=session,
        )
        if not config.token:
            client.login(config.auth_method, config.login, config.password)
        return client

    def set_token(self, token: str) -> None:
        self.session.headers["X-Vault-Token"] = token

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        url = f"{self.address}/v1/{path.lstrip('/')}"
        try:
            return self.session.request(
                method=method,
                url=url,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            raise BackendUnavailableError(f"Vault is unreachable at {self.address}") from e
        except requests.exceptions.RequestException as e:
            raise BackendUnavailableError(f"Vault request failed: {e}") from e

    @staticmethod
    def _parse_body(response: requests.Response) -> Optional[Dict[str, Any]]:
        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else None

    def _raise_for_status(self, response: requests.Response) -> None:
        body = self._parse_body(response) or {}
        raise SecretStoreError(response.status_code, body.get("errors"))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def read(self, path: str, params: Optional[Dict[str, str]] = None) -> Optional[Dict[str, Any]]:
        """Read a secret; returns None when the server reports nothing at ``path``."""
        logger.debug("Vault read %s", path)
        response = self._request("GET", path, params=params or None)

        if response.status_code == 404:
            secret = self._parse_body(response)
            if secret and (secret.get("warnings") or secret.get("data")):
                return secret
            return None

        if not response.ok:
            self._raise_for_status(response)

        secret = self._parse_body(response)
        if secret is None and response.content:
            raise SecretStoreError(response.status_code, ["response body is not a JSON object"])
        return secret

    def login(self, method: str, user: str, password: str) -> str:
        """Exchange login credentials for a client token and start using it."""
        logger.debug("Vault login via auth/%s as %s", method, user)
        response = self._request(
            "POST", f"auth/{method}/login/{user}", json={"password": password}
        )
        if not response.ok:
            self._raise_for_status(response)

        body = self._parse_body(response) or {}
        auth = body.get("auth")
        token = auth.get("client_token") if isinstance(auth, dict) else None
        if not token:
            raise BackendUnavailableError("Vault login did not return a client token")
        self.set_token(token)
        return token
