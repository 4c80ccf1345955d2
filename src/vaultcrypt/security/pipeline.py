"""Stream cipher pipeline: codec-wrapped source copied to a sink in fixed chunks."""

from __future__ import annotations

import enum
import logging
from typing import BinaryIO, Optional

from vaultcrypt.core.exceptions import StreamIOError
from vaultcrypt.core.progress import BytesWrittenObserver

from .crypto import DEFAULT_CHUNK_SIZE, new_decoding_stream, new_encoding_stream

logger = logging.getLogger("vaultcrypt.security")

COPY_BUFFER_SIZE = 32 * 1024


class Mode(enum.Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"


class CountingWriter:
    """Wraps a sink, counting bytes written and notifying an optional observer."""

    def __init__(self, sink: BinaryIO, observer: Optional[BytesWrittenObserver] = None):
        self.sink = sink
        self.observer = observer
        self.total = 0

    def write(self, data: bytes) -> int:
        view = memoryview(data)
        while view:
            written = self.sink.write(view)
            # some file-likes return None instead of a count
            n = len(view) if written is None else written
            if n <= 0:
                raise StreamIOError("sink accepted no bytes")
            view = view[n:]
            self.total += n
            if self.observer is not None:
                self.observer.on_bytes_written(self.total)
        return len(data)


def run(
    mode: Mode,
    source: BinaryIO,
    sink: BinaryIO,
    key: bytes,
    observer: Optional[BytesWrittenObserver] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    buffer_size: int = COPY_BUFFER_SIZE,
) -> int:
    """
    Transform ``source`` into ``sink`` and return the number of bytes written.

    Only ``buffer_size`` bytes (plus one codec record) are held at a time.
    ``AuthenticationError`` is raised by the codec on tamper or wrong key;
    any read/write fault of the handles surfaces as ``StreamIOError``.
    The run is one-shot: a failed run may leave partial output in ``sink``.
    """
    writer = CountingWriter(sink, observer)
    try:
        if mode is Mode.ENCRYPT:
            stream = new_encoding_stream(source, key, chunk_size=chunk_size)
        elif mode is Mode.DECRYPT:
            stream = new_decoding_stream(source, key)
        else:
            raise ValueError(f"Unknown mode: {mode!r}")

        while True:
            chunk = stream.read(buffer_size)
            if not chunk:
                break
            writer.write(chunk)
        flush = getattr(sink, "flush", None)
        if flush is not None:
            flush()
    except OSError as e:
        raise StreamIOError(f"I/O error during {mode.value}: {e}") from e

    logger.debug("%s finished, %d bytes written", mode.value, writer.total)
    return writer.total


def encrypt(source: BinaryIO, sink: BinaryIO, key: bytes, observer: Optional[BytesWrittenObserver] = None) -> int:
    return run(Mode.ENCRYPT, source, sink, key, observer=observer)


def decrypt(source: BinaryIO, sink: BinaryIO, key: bytes, observer: Optional[BytesWrittenObserver] = None) -> int:
    return run(Mode.DECRYPT, source, sink, key, observer=observer)
