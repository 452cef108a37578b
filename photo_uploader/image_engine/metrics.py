"""Upload pipeline counters and timings.

Keys are module constants so callers and tests agree on names. Timings are
kept as running aggregates; a widget may stay open for a whole session.
"""

from __future__ import annotations

import time
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from typing import Any

INGEST_ACCEPTED = "ingest.accepted"
INGEST_REJECTED = "ingest.rejected"
INGEST_DROPPED = "ingest.dropped"
CLASSIFY_BATCH_DURATION = "classify.batch_duration"
CLASSIFY_DECODE_FAILURES = "classify.decode_failures"
COMPRESS_DURATION = "compress.duration"
COMPRESS_APPLIED = "compress.applied"
COMPRESS_FALLBACKS = "compress.fallbacks"
CROP_RASTER_DURATION = "crop.raster_duration"
CROP_APPLIED = "crop.applied"


@dataclass
class TimingStats:
    count: int = 0
    total: float = 0.0
    longest: float = 0.0

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0

    def add(self, seconds: float) -> None:
        self.count += 1
        self.total += seconds
        self.longest = max(self.longest, seconds)


class UploadMetrics:
    def __init__(self) -> None:
        self._counters: Counter[str] = Counter()
        self._timings: dict[str, TimingStats] = {}
        # Classification workers record from pool threads.
        self._lock = Lock()

    def inc(self, key: str, amount: int = 1) -> None:
        if amount:
            with self._lock:
                self._counters[key] += int(amount)

    @contextmanager
    def timed(self, key: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            with self._lock:
                self._timings.setdefault(key, TimingStats()).add(elapsed)

    def counter(self, key: str) -> int:
        with self._lock:
            return self._counters[key]

    def timing(self, key: str) -> TimingStats:
        with self._lock:
            stats = self._timings.get(key)
            return TimingStats(stats.count, stats.total, stats.longest) if stats else TimingStats()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "timings": {k: {"count": s.count, "mean": s.mean, "max": s.longest} for k, s in self._timings.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()


metrics = UploadMetrics()
