"""Streaming AEAD codec with compact binary header.

Header layout (binary, all big-endian):
- 4 bytes: magic b'VCS1'
- 1 byte: version (1)
- 1 byte: alg_id (1 = AESGCM)
- 1 byte: len_salt (S)
- S bytes: salt
- 4 bytes: chunk_size (max plaintext bytes per record)
- 32 bytes: HMAC-SHA256 over everything above

Body: sequence of records: 4-byte big-endian header + ciphertext bytes.
The top bit of the record header marks the final record, the low 31 bits are
the ciphertext length. Exactly one final record is written, even for empty
input, so truncation is detectable.

Content and header-MAC keys are derived from the caller's key with HKDF and
the per-stream random salt, so keys of any length work. Each record is
sealed with a nonce derived from the salt and the record index, and the
associated data binds the index and the final flag.

Both streams expose ``read(size)`` and pull from their source lazily, so
memory use is bounded by the chunk size, not the payload.
"""

import hashlib
import hmac
import os
import struct
from typing import BinaryIO, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from vaultcrypt.core.exceptions import AuthenticationError


MAGIC = b"VCS1"
VERSION = 1
ALG_ID_AESGCM = 1

SALT_SIZE = 32
TAG_SIZE = 16
HEADER_MAC_SIZE = 32
DEFAULT_CHUNK_SIZE = 64 * 1024
MAX_CHUNK_SIZE = 16 * 1024 * 1024

FINAL_FLAG = 0x80000000
LENGTH_MASK = 0x7FFFFFFF


def _derive_key(key: bytes, salt: bytes, info: bytes) -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=salt, info=info)
    return hkdf.derive(key)


def _derive_content_key(key: bytes, salt: bytes) -> bytes:
    return _derive_key(key, salt, b"vaultcrypt-content")


def _derive_header_mac_key(key: bytes, salt: bytes) -> bytes:
    return _derive_key(key, salt, b"vaultcrypt-header-mac")


def _make_nonce(seed: bytes, chunk_index: int) -> bytes:
    # Produce a 12-byte nonce by hashing seed||chunk_index and taking first 12 bytes.
    h = hashlib.sha256()
    h.update(seed)
    h.update(chunk_index.to_bytes(8, "big"))
    return h.digest()[:12]


def _associated_data(chunk_index: int, final: bool) -> bytes:
    return f"chunk:{chunk_index}:{'final' if final else 'more'}".encode("utf-8")


def _pack_header(salt: bytes, chunk_size: int) -> bytes:
    header = bytearray()
    header += MAGIC
    header += struct.pack("B", VERSION)
    header += struct.pack("B", ALG_ID_AESGCM)
    header += struct.pack("B", len(salt))
    header += salt
    header += struct.pack(">I", chunk_size)
    return bytes(header)


def _require_key(key: bytes) -> bytes:
    if not key:
        raise ValueError("key must not be empty")
    return bytes(key)


def _read_exact(source: BinaryIO, n: int) -> bytes:
    # Keep reading until n bytes or EOF; pipes may return short reads.
    buf = bytearray()
    while len(buf) < n:
        data = source.read(n - len(buf))
        if not data:
            break
        buf += data
    return bytes(buf)


class EncodingStream:
    """Readable stream producing the encrypted form of ``source``."""

    def __init__(
        self,
        source: BinaryIO,
        key: bytes,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        salt: Optional[bytes] = None,
    ):
        key = _require_key(key)
        if not 0 < chunk_size <= MAX_CHUNK_SIZE:
            raise ValueError(f"chunk_size must be between 1 and {MAX_CHUNK_SIZE}")

        self._source = source
        self._chunk_size = chunk_size
        self._salt = salt if salt is not None else os.urandom(SALT_SIZE)
        self._aead = AESGCM(_derive_content_key(key, self._salt))

        header = _pack_header(self._salt, chunk_size)
        mac_key = _derive_header_mac_key(key, self._salt)
        header_mac = hmac.new(mac_key, header, hashlib.sha256).digest()

        self._buffer = bytearray(header + header_mac)
        self._pending: Optional[bytes] = None
        self._chunk_index = 0
        self._done = False

    def _emit_record(self) -> None:
        # Read one chunk ahead so the last record can carry the final flag.
        if self._pending is None:
            self._pending = _read_exact(self._source, self._chunk_size)
        current = self._pending
        following = _read_exact(self._source, self._chunk_size) if current else b""
        final = not following

        nonce = _make_nonce(self._salt, self._chunk_index)
        ct = self._aead.encrypt(nonce, current, _associated_data(self._chunk_index, final))
        self._buffer += struct.pack(">I", len(ct) | (FINAL_FLAG if final else 0))
        self._buffer += ct
        self._chunk_index += 1

        if final:
            self._done = True
            self._pending = None
        else:
            self._pending = following

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            while not self._done:
                self._emit_record()
            out = bytes(self._buffer)
            self._buffer.clear()
            return out

        while len(self._buffer) < size and not self._done:
            self._emit_record()
        out = bytes(self._buffer[:size])
        del self._buffer[:size]
        return out


class DecodingStream:
    """
    Readable stream producing the plaintext of an encrypted ``source``.

    The header is read and authenticated on construction, so a wrong key
    fails before any output is produced. Plaintext of a record is only
    released after its tag verifies.
    """

    def __init__(self, source: BinaryIO, key: bytes):
        key = _require_key(key)
        self._source = source

        magic = _read_exact(source, 4)
        if magic != MAGIC:
            raise AuthenticationError("Invalid stream format (magic mismatch)")
        fixed = _read_exact(source, 3)
        if len(fixed) != 3:
            raise AuthenticationError("truncated stream header")
        ver, alg, salt_len = struct.unpack("BBB", fixed)
        if ver != VERSION:
            raise AuthenticationError("Unsupported version")
        if alg != ALG_ID_AESGCM:
            raise AuthenticationError("Unsupported algorithm")

        salt = _read_exact(source, salt_len)
        size_bytes = _read_exact(source, 4)
        mac = _read_exact(source, HEADER_MAC_SIZE)
        if len(salt) != salt_len or len(size_bytes) != 4 or len(mac) != HEADER_MAC_SIZE:
            raise AuthenticationError("truncated stream header")
        (chunk_size,) = struct.unpack(">I", size_bytes)

        header = _pack_header(salt, chunk_size)
        expected = hmac.new(_derive_header_mac_key(key, salt), header, hashlib.sha256).digest()
        if not hmac.compare_digest(mac, expected):
            raise AuthenticationError("header authentication failed (wrong key or tampered header)")
        if not 0 < chunk_size <= MAX_CHUNK_SIZE:
            raise AuthenticationError("invalid chunk size in header")

        self._salt = salt
        self._chunk_size = chunk_size
        self._aead = AESGCM(_derive_content_key(key, salt))
        self._buffer = bytearray()
        self._chunk_index = 0
        self._done = False

    def _open_record(self) -> None:
        record_header = _read_exact(self._source, 4)
        if len(record_header) != 4:
            raise AuthenticationError("truncated ciphertext (missing final record)")
        (raw_len,) = struct.unpack(">I", record_header)
        final = bool(raw_len & FINAL_FLAG)
        ct_len = raw_len & LENGTH_MASK
        if not TAG_SIZE <= ct_len <= self._chunk_size + TAG_SIZE:
            raise AuthenticationError("invalid record length")

        ct = _read_exact(self._source, ct_len)
        if len(ct) != ct_len:
            raise AuthenticationError("truncated ciphertext")

        nonce = _make_nonce(self._salt, self._chunk_index)
        try:
            pt = self._aead.decrypt(nonce, ct, _associated_data(self._chunk_index, final))
        except InvalidTag as e:
            raise AuthenticationError(
                "ciphertext authentication failed (wrong key or tampered data)"
            ) from e

        self._buffer += pt
        self._chunk_index += 1

        if final:
            if self._source.read(1):
                raise AuthenticationError("unexpected data after final record")
            self._done = True

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            while not self._done:
                self._open_record()
            out = bytes(self._buffer)
            self._buffer.clear()
            return out

        while len(self._buffer) < size and not self._done:
            self._open_record()
        out = bytes(self._buffer[:size])
        del self._buffer[:size]
        return out


def new_encoding_stream(source: BinaryIO, key: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> EncodingStream:
    return EncodingStream(source, key, chunk_size=chunk_size)


def new_decoding_stream(source: BinaryIO, key: bytes) -> DecodingStream:
    return DecodingStream(source, key)
