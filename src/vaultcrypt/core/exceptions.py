"""
Exceptions for vaultcrypt
Everything derives from VaultCryptError so the CLI has a single catch point
"""


class VaultCryptError(Exception):
    # general container for errors
    pass


class LocatorParseError(VaultCryptError):
    # raised when a key locator is not a usable URI
    pass


class ResolveError(VaultCryptError):
    # raised when key material cannot be produced from a locator
    pass


class UnsupportedSchemeError(ResolveError):
    # raised when no backend is registered for the locator scheme
    def __init__(self, scheme: str):
        super().__init__(f"Unsupported key scheme: {scheme!r}")
        self.scheme = scheme


class KeyDecodeError(ResolveError):
    # raised on malformed base64 key material
    pass


class BackendUnavailableError(ResolveError):
    # raised when the secret store client cannot be built or reached
    pass


class SecretStoreError(ResolveError):
    # raised on an unexpected HTTP status from the secret store
    def __init__(self, status_code: int, errors=None):
        self.status_code = status_code
        self.errors = list(errors or [])
        detail = "; ".join(str(e) for e in self.errors) or "no details"
        super().__init__(f"Vault: unexpected status {status_code} ({detail})")


class KeyNotFoundError(ResolveError):
    # raised when the secret store has no secret (or no data) at the path
    pass


class SchemaError(ResolveError):
    # raised when the secret store response does not have the expected shape
    pass


class SourceError(VaultCryptError):
    # raised when a local input/output file cannot be opened
    pass


class SourceNotFoundError(SourceError):
    # raised when the input file DNE
    pass


class PermissionDeniedError(SourceError):
    # raised when a file can't be opened due to perms
    pass


class CipherError(VaultCryptError):
    # raised while transforming the stream
    pass


class AuthenticationError(CipherError):
    # raised on tamper / wrong key / truncated ciphertext
    pass


class StreamIOError(CipherError):
    # raised on a read or write fault of the underlying handles
    pass
