"""
Metric Window
Time-bounded, time-ordered sample buffer for one metric
"""
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Deque, List, Optional


@dataclass(frozen=True)
class Sample:
    value: float
    timestamp: datetime


class MetricWindow:
    """Samples for one metric, bounded by a time span rather than a count.

    Eviction is relative to the newest sample, so a window never depends on
    wall-clock time. Samples older than the newest one are rejected; the
    window does not resequence late data.
    """

    def __init__(self, window_seconds: float):
        self.span = timedelta(seconds=window_seconds)
        self._samples: Deque[Sample] = deque()

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self):
        return iter(list(self._samples))

    @property
    def newest(self) -> Optional[Sample]:
        return self._samples[-1] if self._samples else None

    @property
    def oldest(self) -> Optional[Sample]:
        return self._samples[0] if self._samples else None

    def add(self, value: float, timestamp: datetime) -> bool:
        """Append a sample; returns False if it arrived out of order"""
        newest = self.newest
        if newest is not None and timestamp < newest.timestamp:
            return False
        self._samples.append(Sample(value, timestamp))
        self._evict(timestamp - self.span)
        return True

    def prune(self, cutoff: datetime) -> int:
        """Drop samples older than cutoff; returns how many were removed"""
        return self._evict(cutoff)

    def samples(self) -> List[Sample]:
        return list(self._samples)

    def samples_between(self, start: datetime, end: datetime, include_end: bool = True) -> List[Sample]:
        """Samples with start <= timestamp < end (or <= end when include_end)"""
        if include_end:
            return [s for s in self._samples if start <= s.timestamp <= end]
        return [s for s in self._samples if start <= s.timestamp < end]

    def velocities(self) -> List[float]:
        """Finite differences (units/second) between consecutive samples

        Pairs sharing a timestamp have zero duration and are skipped.
        """
        result = []
        prev = None
        for sample in self._samples:
            if prev is not None:
                elapsed = (sample.timestamp - prev.timestamp).total_seconds()
                if elapsed > 0:
                    result.append((sample.value - prev.value) / elapsed)
            prev = sample
        return result

    def clear(self):
        self._samples.clear()

    def _evict(self, cutoff: datetime) -> int:
        removed = 0
        while self._samples and self._samples[0].timestamp < cutoff:
            self._samples.popleft()
            removed += 1
        return removed
