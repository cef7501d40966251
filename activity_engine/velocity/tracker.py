"""
Velocity Tracker
Rate-of-change statistics over time-bounded metric windows
"""
import logging
import math
import statistics
from datetime import datetime
from threading import Lock
from typing import Dict, Hashable, List, Optional

from activity_engine.config import get_section, validate_config
from activity_engine.utils import Clock, parse_timestamp, utc_now
from activity_engine.velocity.models import (
    MetricKey,
    MetricsResult,
    NoData,
    VelocityDirection,
    VelocityMetrics,
    price_key,
    volume_key,
)
from activity_engine.velocity.window import MetricWindow, Sample

# Relative floor below which a velocity stddev is float noise
_FLAT_EPSILON = 1e-9


class VelocityTracker:
    """Tracks velocity (rate of change) for any number of keyed metrics"""

    def __init__(self, config: Optional[Dict] = None, clock: Optional[Clock] = None):
        validate_config(config)
        tracker_config = get_section(config, 'velocity_tracker')
        self.window_seconds = float(tracker_config['window_seconds'])
        self.min_data_points = int(tracker_config['min_data_points'])
        self.velocity_threshold_stddev = float(tracker_config['velocity_threshold_stddev'])
        self.steady_tolerance = float(tracker_config['steady_tolerance'])

        self.clock = clock or utc_now
        self.logger = logging.getLogger("VelocityTracker")
        self._lock = Lock()
        self._windows: Dict[Hashable, MetricWindow] = {}

    def add_point(self, key: Hashable, value: float, timestamp: Optional[datetime] = None) -> bool:
        """Add a new data point for tracking; returns False if it was ignored

        Naive timestamps are taken as UTC; a missing one is read from the clock.
        """
        if value is None or not math.isfinite(value):
            self.logger.debug(f"Ignoring non-finite value for {key}: {value}")
            return False
        ts = parse_timestamp(timestamp) or self.clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                window = MetricWindow(self.window_seconds)
                self._windows[key] = window
            accepted = window.add(float(value), ts)
        if not accepted:
            self.logger.debug(f"Dropping out-of-order sample for {key} at {ts.isoformat()}")
        return accepted

    def get_metrics(self, key: Hashable) -> MetricsResult:
        """Get velocity metrics for a metric, or NoData on cold start"""
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                return NoData(NoData.UNKNOWN_METRIC, 0, self.min_data_points)
            samples = window.samples()
            velocities = window.velocities()

        if len(samples) < self.min_data_points:
            return NoData(NoData.INSUFFICIENT_DATA, len(samples), self.min_data_points)
        return self._compute_metrics(samples, velocities)

    def is_unusual(self, key: Hashable) -> bool:
        metrics = self.get_metrics(key)
        return bool(metrics) and metrics.is_unusual

    def get_current_velocity(self, key: Hashable) -> Optional[float]:
        metrics = self.get_metrics(key)
        if not metrics:
            return None
        return metrics.current_velocity

    def get_price_velocity(self, symbol: str) -> MetricsResult:
        return self.get_metrics(price_key(symbol))

    def get_volume_velocity(self, symbol: str) -> MetricsResult:
        return self.get_metrics(volume_key(symbol))

    def track_price(self, symbol: str, price: float, timestamp: Optional[datetime] = None) -> bool:
        return self.add_point(price_key(symbol), price, timestamp)

    def track_volume(self, symbol: str, volume: float, timestamp: Optional[datetime] = None) -> bool:
        return self.add_point(volume_key(symbol), volume, timestamp)

    def get_samples(self, key: Hashable) -> List[Sample]:
        """Copy of the samples currently in a metric's window"""
        with self._lock:
            window = self._windows.get(key)
            return window.samples() if window is not None else []

    def samples_between(self, key: Hashable, start: datetime, end: datetime,
                        include_end: bool = True) -> List[Sample]:
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                return []
            return window.samples_between(start, end, include_end=include_end)

    def keys(self) -> List[Hashable]:
        with self._lock:
            return list(self._windows.keys())

    def symbols(self) -> List[str]:
        """Distinct symbols tracked under typed keys"""
        seen = []
        for key in self.keys():
            if isinstance(key, MetricKey) and key.symbol not in seen:
                seen.append(key.symbol)
        return seen

    def prune(self, cutoff: datetime, keys: Optional[List[Hashable]] = None) -> int:
        """Drop samples older than cutoff; empty windows are removed"""
        cutoff = parse_timestamp(cutoff)
        if cutoff is None:
            return 0
        removed = 0
        with self._lock:
            targets = list(self._windows.keys()) if keys is None else list(keys)
            for key in targets:
                window = self._windows.get(key)
                if window is None:
                    continue
                removed += window.prune(cutoff)
                if len(window) == 0:
                    del self._windows[key]
        return removed

    def clear_metric(self, key: Hashable):
        with self._lock:
            self._windows.pop(key, None)

    def clear_all(self):
        with self._lock:
            self._windows.clear()

    def get_tracked_count(self) -> int:
        with self._lock:
            return len(self._windows)

    def _compute_metrics(self, samples: List[Sample], velocities: List[float]) -> VelocityMetrics:
        first, last = samples[0], samples[-1]

        # Current velocity: the two most recent samples (zero duration -> 0)
        current_velocity = _rate(samples[-2], last) if len(samples) >= 2 else 0.0

        avg_velocity = _rate(first, last)
        acceleration, direction = self._calculate_acceleration(samples)
        stddev_from_mean = _stddev_from_mean(current_velocity, velocities)

        return VelocityMetrics(
            current_velocity=current_velocity,
            avg_velocity=avg_velocity,
            acceleration=acceleration,
            direction=direction,
            is_unusual=stddev_from_mean > self.velocity_threshold_stddev,
            stddev_from_mean=stddev_from_mean,
            sample_count=len(samples),
        )

    def _calculate_acceleration(self, samples: List[Sample]):
        """Compare endpoint velocity of the earlier half against the later half.

        The halves share the middle sample. Acceleration is the change in
        velocity magnitude divided by the time between the half midpoints.
        """
        if len(samples) < 3:
            return 0.0, VelocityDirection.STEADY

        mid = len(samples) // 2
        early, late = samples[:mid + 1], samples[mid:]
        early_elapsed = (early[-1].timestamp - early[0].timestamp).total_seconds()
        late_elapsed = (late[-1].timestamp - late[0].timestamp).total_seconds()
        if early_elapsed <= 0 or late_elapsed <= 0:
            return 0.0, VelocityDirection.STEADY

        early_speed = abs(_rate(early[0], early[-1]))
        late_speed = abs(_rate(late[0], late[-1]))
        midpoint_gap = (
            (late[0].timestamp - early[0].timestamp).total_seconds()
            + (late[-1].timestamp - early[-1].timestamp).total_seconds()
        ) / 2
        if midpoint_gap <= 0:
            return 0.0, VelocityDirection.STEADY

        change = late_speed - early_speed
        acceleration = change / midpoint_gap

        scale = max(early_speed, late_speed)
        if scale == 0 or abs(change) <= self.steady_tolerance * scale:
            return acceleration, VelocityDirection.STEADY
        if change > 0:
            return acceleration, VelocityDirection.ACCELERATING
        return acceleration, VelocityDirection.DECELERATING


def _rate(start: Sample, end: Sample) -> float:
    elapsed = (end.timestamp - start.timestamp).total_seconds()
    if elapsed <= 0:
        return 0.0
    return (end.value - start.value) / elapsed


def _stddev_from_mean(current: float, velocities: List[float]) -> float:
    """How many population stddevs the current velocity sits from the window mean"""
    if len(velocities) < 2:
        return 0.0
    mean = statistics.fmean(velocities)
    stddev = statistics.pstdev(velocities, mu=mean)
    largest = max(abs(v) for v in velocities)
    if stddev <= _FLAT_EPSILON * max(largest, 1.0):
        return 0.0
    return abs(current - mean) / stddev
