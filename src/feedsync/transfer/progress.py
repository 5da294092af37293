"""
Download progress tracking.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import BinaryIO

from feedsync.exceptions import TransferError, TransferFailure
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.transfer.progress")

MB = 1024 * 1024


class ProgressTracker:
    """Counts downloaded bytes and logs throughput at most every ``interval_s``."""

    def __init__(
        self,
        expected_size: int = 0,
        *,
        interval_s: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.expected_size = expected_size
        self.interval_s = interval_s
        self._clock = clock
        self.bytes_written = 0
        self._started = clock()
        self._last_time = self._started
        self._last_bytes = 0

    def advance(self, count: int) -> None:
        self.bytes_written += count
        now = self._clock()
        elapsed = now - self._last_time
        if elapsed < self.interval_s:
            return

        speed = ((self.bytes_written - self._last_bytes) / MB) / elapsed
        msg = f"Downloaded: {self.bytes_written / MB:.2f} MB"
        if self.expected_size > 0:
            percent = self.bytes_written / self.expected_size * 100
            msg += f" / {self.expected_size / MB:.2f} MB ({percent:.1f}%)"
        logger.info(f"{msg} | Speed: {speed:.2f} MB/s")
        self._last_time = now
        self._last_bytes = self.bytes_written

    def finish(self) -> None:
        total = max(self._clock() - self._started, 1e-9)
        logger.info(
            f"Download completed: {self.bytes_written / MB:.2f} MB in {total:.2f}s "
            f"(avg: {self.bytes_written / MB / total:.2f} MB/s)"
        )


class ProgressWriter:
    """Binary stream wrapper feeding every write into a ProgressTracker."""

    def __init__(self, raw: BinaryIO, tracker: ProgressTracker):
        self._raw = raw
        self.tracker = tracker

    def write(self, data: bytes) -> int:
        try:
            written = self._raw.write(data)
        except OSError as e:
            raise TransferError(TransferFailure.IO_ERROR, f"local write failed: {e}", original=e) from e
        self.tracker.advance(len(data))
        return written if written is not None else len(data)

    def flush(self) -> None:
        self._raw.flush()
