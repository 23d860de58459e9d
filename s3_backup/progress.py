from __future__ import annotations
from dataclasses import replace
from typing import Callable, Optional

from tqdm import tqdm

from .models import ProgressState

ProgressListener = Callable[[ProgressState], None]

BAR_FORMAT = " {bar} | {percentage:3.0f}% | ({n_fmt}/{total_fmt})"


class ProgressAccumulator:
    """
    Tracks downloaded objects/bytes against the first-pass total.

    The object counter only moves forward and is clamped at the total, so a
    bucket that grew between passes never reports more than 100%. Each change
    is pushed to ``listener`` as a snapshot copy of the state.
    """

    def __init__(self, bucket: str = "", listener: Optional[ProgressListener] = None, bar: bool = False):
        self.state = ProgressState(bucket=bucket)
        self._listener = listener
        self._want_bar = bar
        self._bar: Optional[tqdm] = None
        self._started = False
        self._closed = False

    def start(self, total: int, total_bytes: int = 0) -> None:
        if total < 0:
            raise ValueError("total must be >= 0")
        self.state = ProgressState(bucket=self.state.bucket, total_objects=total, total_bytes=total_bytes)
        self._started = True
        self._closed = False
        if self._want_bar:
            self._bar = tqdm(total=total, desc=self.state.bucket or None, bar_format=BAR_FORMAT, ascii="░█", unit="obj")
        self._emit()

    def advance(self, by: int = 1, nbytes: int = 0) -> None:
        if not self._started or self._closed:
            raise RuntimeError("advance() called outside start()/finish()")
        if by < 0 or nbytes < 0:
            raise ValueError("progress cannot move backward")
        s = self.state
        new_count = min(s.total_objects, s.downloaded_objects + by)
        delta = new_count - s.downloaded_objects
        s.downloaded_objects = new_count
        s.downloaded_bytes += nbytes
        if self._bar and delta:
            self._bar.update(delta)
        self._emit()

    def finish(self) -> None:
        """Jump to 100% and stop."""
        if not self._started or self._closed:
            return
        s = self.state
        delta = s.total_objects - s.downloaded_objects
        if delta > 0:
            s.downloaded_objects = s.total_objects
            if self._bar:
                self._bar.update(delta)
            self._emit()
        self.close()

    def close(self) -> None:
        """Stop without forcing completion (aborted traversal)."""
        if self._bar:
            self._bar.close()
            self._bar = None
        self._closed = True

    def snapshot(self) -> ProgressState:
        return replace(self.state)

    def _emit(self) -> None:
        if self._listener:
            self._listener(self.snapshot())
