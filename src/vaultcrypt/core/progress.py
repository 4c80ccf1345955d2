"""Progress reporting for long-running file transforms.

The pipeline hands the observer the cumulative number of bytes written; the
observer only renders it. Output goes to stderr through a rich status
spinner, throttled so large files don't flood the terminal.
"""

from __future__ import annotations

import time
from typing import Callable, Optional, Protocol

from rich.console import Console
from rich.status import Status


class BytesWrittenObserver(Protocol):
    def on_bytes_written(self, total: int) -> None: ...


def human_size(num: float) -> str:
    # Simple human-readable bytes formatter (decimal units).
    for unit in ("B", "kB", "MB", "GB", "TB"):
        if num < 1000:
            return f"{num:.1f} {unit}" if unit != "B" else f"{int(num)} B"
        num /= 1000
    return f"{num:.1f} PB"


class ProgressObserver:
    """Spinner showing ``Writing <size>...`` while a job runs."""

    def __init__(
        self,
        console: Optional[Console] = None,
        min_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.console = console or Console(stderr=True)
        self.min_interval = min_interval
        self._clock = clock
        self._status: Optional[Status] = None
        self._last_render: Optional[float] = None
        self.total = 0
        self.updates = 0

    @staticmethod
    def message(total: int) -> str:
        return f"Writing {human_size(total)}..."

    def start(self) -> "ProgressObserver":
        # reset per job
        self.total = 0
        self.updates = 0
        self._last_render = None
        self._status = self.console.status(self.message(0), spinner="dots")
        self._status.start()
        return self

    def on_bytes_written(self, total: int) -> None:
        if total < self.total:
            raise ValueError("byte total must not decrease")
        self.total = total

        now = self._clock()
        if self._last_render is not None and now - self._last_render < self.min_interval:
            return
        self._last_render = now
        self._render()

    def _render(self) -> None:
        self.updates += 1
        if self._status is not None:
            self._status.update(self.message(self.total))

    def stop(self) -> None:
        if self._status is None:
            return
        self._render()
        self._status.stop()
        self._status = None

    def __enter__(self) -> "ProgressObserver":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
