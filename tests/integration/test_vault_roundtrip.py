"""
End-to-end: CLI -> transit backend -> Vault client -> pipeline, with Vault faked
at the HTTP session level.
"""

import base64
import json
import os

import pytest
import requests
from unittest.mock import MagicMock, patch

from vaultcrypt.frontend.cli.app import main

TRANSIT_KEY = os.urandom(32)


def _response(status, body=None):
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(body).encode("utf-8") if body is not None else b""
    return response


@pytest.fixture
def vault_env(monkeypatch):
    monkeypatch.setenv("VAULT_SERVER_URL", "http://vault.test:8200")
    monkeypatch.setenv("VAULT_SERVER_TOKEN", "s.integration")


@pytest.fixture
def fake_session():
    session = MagicMock()
    session.headers = {}

    def request(method, url, **kwargs):
        if url.endswith("/transit/export/encryption-key/app/latest"):
            keys = {"1": base64.b64encode(TRANSIT_KEY).decode("ascii")}
            return _response(200, {"data": {"name": "app", "keys": keys}})
        return _response(404)

    session.request.side_effect = request
    with patch("vaultcrypt.network.vault_client.requests.Session", return_value=session):
        yield session


def test_transit_roundtrip(tmp_path, vault_env, fake_session):
    plain = tmp_path / "report.csv"
    plain.write_bytes(os.urandom(300_000))
    enc = tmp_path / "report.csv.enc"
    dec = tmp_path / "report.out.csv"

    assert main(["--no-progress", "-k", "hashivault://app", str(plain), str(enc)]) == 0
    assert main(["--no-progress", "-d", "-k", "hashivault://app?version=", str(enc), str(dec)]) == 0

    assert dec.read_bytes() == plain.read_bytes()
    assert fake_session.headers["X-Vault-Token"] == "s.integration"


def test_transit_key_matches_inline_key(tmp_path, vault_env, fake_session):
    plain = tmp_path / "notes.txt"
    plain.write_bytes(b"same key, two locators\n")
    enc = tmp_path / "notes.enc"
    dec = tmp_path / "notes.dec"

    inline = "base64key://" + base64.b64encode(TRANSIT_KEY).decode("ascii")
    assert main(["--no-progress", "-k", "hashivault://app", str(plain), str(enc)]) == 0
    assert main(["--no-progress", "-d", "-k", inline, str(enc), str(dec)]) == 0
    assert dec.read_bytes() == plain.read_bytes()


def test_unknown_transit_key(tmp_path, vault_env, fake_session, capsys):
    plain = tmp_path / "a.txt"
    plain.write_bytes(b"x")
    code = main(["--no-progress", "-k", "hashivault://missing", str(plain), str(tmp_path / "a.enc")])

    assert code == 1
    assert "secret not found" in capsys.readouterr().err
    assert not (tmp_path / "a.enc").exists()
