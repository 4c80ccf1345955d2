"""Unit tests for scheme dispatch in the key resolver."""

import pytest
from unittest.mock import MagicMock, patch

from vaultcrypt.core.config import VaultConfig
from vaultcrypt.core.exceptions import (
    KeyDecodeError,
    LocatorParseError,
    UnsupportedSchemeError,
)
from vaultcrypt.core.locator import parse_locator
from vaultcrypt.security.backends import Base64KeyBackend, TransitExportBackend
from vaultcrypt.security.resolver import KeyResolver, default_resolver


@pytest.fixture
def resolver():
    return default_resolver(VaultConfig(address="http://vault:8200", token="t"))


def test_default_resolver_schemes(resolver):
    assert set(resolver.schemes) == {"base64key", "hashivault"}


def test_resolve_inline_key(resolver):
    assert resolver.resolve(parse_locator("base64key://QUJD")) == b"ABC"


def test_resolve_string(resolver):
    assert resolver.resolve_string("base64key://QUJD") == b"ABC"


def test_unknown_scheme_fails_closed(resolver):
    with pytest.raises(UnsupportedSchemeError) as exc:
        resolver.resolve(parse_locator("foo://bar"))
    assert exc.value.scheme == "foo"


def test_parse_error_surfaces(resolver):
    with pytest.raises(LocatorParseError):
        resolver.resolve_string("not a locator")


def test_malformed_inline_key_makes_no_network_call(resolver):
    with patch.object(TransitExportBackend, "resolve") as vault_resolve:
        with pytest.raises(KeyDecodeError):
            resolver.resolve_string("base64key://not-valid-base64!!")
    vault_resolve.assert_not_called()


def test_hashivault_dispatches_to_transit_backend():
    backend = MagicMock()
    backend.resolve.return_value = b"secret"
    resolver = KeyResolver({"hashivault": backend})

    assert resolver.resolve_string("hashivault://name") == b"secret"
    identifier, params = backend.resolve.call_args[0]
    assert identifier == "name"
    assert dict(params) == {}


def test_scheme_match_is_exact():
    backend = MagicMock()
    resolver = KeyResolver({"Base64Key": backend})
    # locator schemes are lower-cased by URI parsing; registry keys are not
    with pytest.raises(UnsupportedSchemeError):
        resolver.resolve_string("base64key://QUJD")
    backend.resolve.assert_not_called()


def test_empty_key_from_backend_is_rejected():
    backend = MagicMock()
    backend.resolve.return_value = b""
    resolver = KeyResolver({"x": backend})
    with pytest.raises(KeyDecodeError):
        resolver.resolve_string("x://y")


def test_register_backend():
    resolver = KeyResolver()
    with pytest.raises(UnsupportedSchemeError):
        resolver.resolve_string("base64key://QUJD")
    resolver.register("base64key", Base64KeyBackend())
    assert resolver.resolve_string("base64key://QUJD") == b"ABC"
