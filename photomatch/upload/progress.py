"""Dual-stage (normalize, transfer) progress with throughput and ETA."""

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum


class Stage(str, Enum):
    NORMALIZE = "normalize"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class StageSnapshot:
    current: int = 0
    total: int = 0
    processed_bytes: int = 0
    total_bytes: int = 0
    bytes_per_second: float = 0.0
    eta_seconds: float | None = None


@dataclass(frozen=True)
class ProgressSnapshot:
    normalize: StageSnapshot
    transfer: StageSnapshot
    current_stage: Stage
    current_file: str | None = None

    def stage(self, stage: Stage) -> StageSnapshot:
        return self.normalize if stage == Stage.NORMALIZE else self.transfer


class _StageCounter:
    def __init__(self, window_seconds: float) -> None:
        self.window_seconds = window_seconds
        self.current = 0
        self.total = 0
        self.processed_bytes = 0
        self.total_bytes = 0
        self.samples: deque[tuple[float, int]] = deque()

    def record(self, now: float) -> None:
        self.samples.append((now, self.processed_bytes))
        while len(self.samples) > 2 and now - self.samples[0][0] > self.window_seconds:
            self.samples.popleft()

    def rate(self) -> float:
        if len(self.samples) < 2:
            return 0.0
        (t0, b0), (t1, b1) = self.samples[0], self.samples[-1]
        if t1 <= t0:
            return 0.0
        return (b1 - b0) / (t1 - t0)

    def snapshot(self) -> StageSnapshot:
        rate = self.rate()
        remaining = max(self.total_bytes - self.processed_bytes, 0)
        eta = remaining / rate if rate > 0 else None
        return StageSnapshot(
            current=self.current,
            total=self.total,
            processed_bytes=self.processed_bytes,
            total_bytes=self.total_bytes,
            bytes_per_second=rate,
            eta_seconds=eta,
        )


class ProgressTracker:
    """Caller-owned progress context for one batch submission.

    All changes go through :meth:`update`. Processed counts only grow within
    a batch and are cleared by :meth:`reset`.
    """

    def __init__(
        self,
        *,
        window_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        listener: Callable[[ProgressSnapshot], None] | None = None,
    ) -> None:
        self._window = window_seconds
        self._clock = clock
        self._listener = listener
        self._lock = threading.Lock()
        self._reset_state()

    def _reset_state(self) -> None:
        self._stages = {stage: _StageCounter(self._window) for stage in Stage}
        self._current_stage = Stage.NORMALIZE
        self._current_file: str | None = None

    def reset(self) -> None:
        with self._lock:
            self._reset_state()

    def update(
        self,
        stage: Stage,
        *,
        items: int = 0,
        processed_bytes: int = 0,
        total_items: int | None = None,
        total_bytes: int | None = None,
        current_file: str | None = None,
    ) -> ProgressSnapshot:
        if items < 0 or processed_bytes < 0:
            raise ValueError("progress can only move forward")
        with self._lock:
            counter = self._stages[stage]
            if total_items is not None:
                counter.total = total_items
            if total_bytes is not None:
                counter.total_bytes = total_bytes
            if items or processed_bytes:
                counter.current += items
                counter.processed_bytes += processed_bytes
                counter.record(self._clock())
                self._current_stage = stage
            if current_file is not None:
                self._current_file = current_file
            snapshot = self._snapshot()
        if self._listener is not None:
            self._listener(snapshot)
        return snapshot

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            normalize=self._stages[Stage.NORMALIZE].snapshot(),
            transfer=self._stages[Stage.TRANSFER].snapshot(),
            current_stage=self._current_stage,
            current_file=self._current_file,
        )


def format_eta(seconds: float | None) -> str:
    if seconds is None:
        return "--"
    seconds = round(seconds)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        minutes, rest = divmod(seconds, 60)
        return f"{minutes}m {rest}s"
    hours, rest = divmod(seconds, 3600)
    return f"{hours}h {rest // 60}m"


def format_rate(bytes_per_second: float) -> str:
    if bytes_per_second < 1024:
        return f"{round(bytes_per_second)} B/s"
    if bytes_per_second < 1024 * 1024:
        return f"{bytes_per_second / 1024:.1f} KB/s"
    return f"{bytes_per_second / (1024 * 1024):.1f} MB/s"
