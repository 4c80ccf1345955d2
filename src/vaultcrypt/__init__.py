"""vaultcrypt: stream files through an authenticated cipher with keys from Vault."""

__version__ = "0.1.0"
