"""
Invocation orchestrator: one encrypt/decrypt job from locator + paths to result.

Steps, each of which may fail and stop the job:
  1. parse the key locator and resolve the key
  2. open the source ("-" = stdin)
  3. open the sink ("-" = stdout), inheriting the source's mode bits
  4. attach a progress observer when the sink is a real file
  5. run the pipeline
  6. close whatever was opened, on every path
"""

from __future__ import annotations

import logging
import os
import stat
import sys
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from typing import BinaryIO, Callable, Optional

from vaultcrypt.core.exceptions import (
    PermissionDeniedError,
    SourceNotFoundError,
    StreamIOError,
)
from vaultcrypt.core.locator import parse_locator
from vaultcrypt.core.progress import ProgressObserver
from vaultcrypt.security.pipeline import Mode, run
from vaultcrypt.security.resolver import KeyResolver, default_resolver

logger = logging.getLogger("vaultcrypt.core")

STD_STREAM = "-"
DEFAULT_FILE_MODE = 0o644


@dataclass
class StreamJob:
    """Everything one pipeline run needs; handles are owned by execute()."""

    mode: Mode
    source: BinaryIO
    sink: BinaryIO
    key: bytes

    def __repr__(self) -> str:
        return f"StreamJob(mode={self.mode!r}, key=<{len(self.key)} bytes>)"


@dataclass
class JobResult:
    mode: Mode
    bytes_written: int
    source: str
    sink: str


def _open_source(path: str, stdin: BinaryIO) -> tuple[BinaryIO, Optional[int]]:
    """Return (handle, permission bits) for the input; bits are None for stdin."""
    if path == STD_STREAM:
        return stdin, None
    try:
        handle = open(path, "rb")
    except FileNotFoundError as e:
        raise SourceNotFoundError(f"Input file not found: {path}") from e
    except PermissionError as e:
        raise PermissionDeniedError(f"Permission denied reading {path}") from e
    except IsADirectoryError as e:
        raise StreamIOError(f"Input is a directory: {path}") from e
    except OSError as e:
        raise StreamIOError(f"Cannot open input {path}: {e}") from e
    try:
        mode_bits = stat.S_IMODE(os.fstat(handle.fileno()).st_mode)
    except OSError as e:
        handle.close()
        raise StreamIOError(f"Cannot stat input {path}: {e}") from e
    return handle, mode_bits


def _ensure_distinct(source: BinaryIO, sink_path: str) -> None:
    # Opening the sink truncates it; if it is the source, the input is gone.
    try:
        src = os.fstat(source.fileno())
        dst = os.stat(sink_path)
    except FileNotFoundError:
        return
    except OSError as e:
        raise StreamIOError(f"Cannot stat output {sink_path}: {e}") from e
    if (src.st_dev, src.st_ino) == (dst.st_dev, dst.st_ino):
        raise StreamIOError("input and output are the same file")


@contextmanager
def _released(action: Callable[[], None], what: str):
    """Run ``action`` (close/flush) on exit, reporting its failure as ``StreamIOError``.

    When the job is already failing, a release failure is only logged so the
    original error reaches the caller.
    """
    try:
        yield
    except BaseException:
        try:
            action()
        except OSError as e:
            logger.debug("Ignoring failure to %s after an earlier error: %s", what, e)
        raise
    try:
        action()
    except OSError as e:
        raise StreamIOError(f"Cannot {what}: {e}") from e


def _open_sink(path: str, stdout: BinaryIO, file_mode: int) -> BinaryIO:
    if path == STD_STREAM:
        return stdout
    try:
        fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, file_mode)
    except FileNotFoundError as e:
        raise SourceNotFoundError(f"Output directory not found: {path}") from e
    except PermissionError as e:
        raise PermissionDeniedError(f"Permission denied writing {path}") from e
    except IsADirectoryError as e:
        raise StreamIOError(f"Output is a directory: {path}") from e
    except OSError as e:
        raise StreamIOError(f"Cannot open output {path}: {e}") from e
    return os.fdopen(fd, "wb")


def execute(
    mode: Mode,
    key_locator: str,
    source_path: str,
    sink_path: str,
    resolver: Optional[KeyResolver] = None,
    show_progress: bool = True,
    preserve_mode: bool = True,
    observer_factory: Callable[[], ProgressObserver] = ProgressObserver,
    stdin: Optional[BinaryIO] = None,
    stdout: Optional[BinaryIO] = None,
) -> JobResult:
    """Run a single encrypt or decrypt job and return its result.

    Raises a ``VaultCryptError`` subclass on the first failure. Files opened
    here are closed before returning; standard streams are only flushed.
    A failed run may leave a truncated output file behind.
    """
    resolver = resolver or default_resolver()
    stdin = stdin if stdin is not None else sys.stdin.buffer
    stdout = stdout if stdout is not None else sys.stdout.buffer

    key = resolver.resolve(parse_locator(key_locator))

    with ExitStack() as stack:
        source, source_bits = _open_source(source_path, stdin)
        if source is not stdin:
            stack.enter_context(_released(source.close, f"close input {source_path}"))
            if sink_path != STD_STREAM:
                _ensure_distinct(source, sink_path)

        file_mode = DEFAULT_FILE_MODE
        if preserve_mode and source_bits is not None:
            file_mode = source_bits

        sink = _open_sink(sink_path, stdout, file_mode)
        if sink is stdout:
            stack.enter_context(_released(sink.flush, "flush standard output"))
        else:
            stack.enter_context(_released(sink.close, f"close output {sink_path}"))

        job = StreamJob(mode=mode, source=source, sink=sink, key=key)
        logger.info("Starting %s: %s -> %s", mode.value, source_path, sink_path)

        observer = None
        if show_progress and sink_path != STD_STREAM:
            observer = stack.enter_context(observer_factory())

        written = run(job.mode, job.source, job.sink, job.key, observer=observer)

    logger.info("Finished %s: %d bytes written to %s", mode.value, written, sink_path)
    return JobResult(mode=mode, bytes_written=written, source=source_path, sink=sink_path)
