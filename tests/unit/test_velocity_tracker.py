"""
Unit tests for VelocityTracker
Tests velocity math, direction, unusual detection and cold start
"""
import math
from datetime import datetime

import pytest
from tests.unit.test_event_utils import FakeClock, at
from activity_engine.velocity import (
    MetricKey,
    MetricKind,
    NoData,
    VelocityDirection,
    VelocityMetrics,
    VelocityTracker,
    price_key,
    volume_key,
)


class TestVelocityTracker:
    """Unit tests for VelocityTracker"""

    @pytest.fixture
    def config(self):
        return {
            'velocity_tracker': {
                'window_seconds': 300,
                'min_data_points': 3,
                'velocity_threshold_stddev': 2.0,
            }
        }

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def tracker(self, config, clock):
        return VelocityTracker(config, clock=clock)

    def test_add_points_for_multiple_metrics(self, tracker):
        tracker.add_point(price_key('BTC'), 50000, at(0))
        tracker.add_point(volume_key('BTC'), 1000000, at(0))

        assert tracker.get_tracked_count() == 2
        assert tracker.symbols() == ['BTC']

    def test_constant_velocity(self, tracker):
        for i, value in enumerate([100, 110, 120, 130]):
            tracker.add_point('test', value, at(i))

        metrics = tracker.get_metrics('test')

        assert isinstance(metrics, VelocityMetrics)
        assert metrics.current_velocity == pytest.approx(10)
        assert metrics.avg_velocity == pytest.approx(10)
        assert metrics.direction == VelocityDirection.STEADY
        assert metrics.is_unusual is False
        assert metrics.sample_count == 4

    def test_detects_acceleration(self, tracker):
        for i, value in enumerate([100, 101, 103, 108, 118]):
            tracker.add_point('test', value, at(i))

        metrics = tracker.get_metrics('test')

        assert metrics.direction == VelocityDirection.ACCELERATING
        assert metrics.acceleration > 0

    def test_detects_deceleration(self, tracker):
        for i, value in enumerate([100, 120, 130, 135, 136]):
            tracker.add_point('test', value, at(i))

        metrics = tracker.get_metrics('test')

        assert metrics.direction == VelocityDirection.DECELERATING
        assert metrics.acceleration < 0

    def test_detects_unusual_velocity(self, tracker):
        for i in range(10):
            tracker.add_point('test', 100 + i, at(i))

        assert tracker.get_metrics('test').is_unusual is False
        assert tracker.is_unusual('test') is False

        tracker.add_point('test', 200, at(10))  # Huge jump

        metrics = tracker.get_metrics('test')
        assert metrics.is_unusual is True
        assert metrics.stddev_from_mean == pytest.approx(3.0)
        assert tracker.is_unusual('test') is True

    def test_flat_series_is_not_unusual(self, tracker):
        for i in range(6):
            tracker.add_point('flat', 0.5, at(i))

        metrics = tracker.get_metrics('flat')
        assert metrics.current_velocity == 0
        assert metrics.stddev_from_mean == 0
        assert metrics.is_unusual is False

    def test_insufficient_data_returns_no_data(self, tracker):
        tracker.add_point('test', 100, at(0))
        tracker.add_point('test', 120, at(1))

        metrics = tracker.get_metrics('test')

        assert isinstance(metrics, NoData)
        assert not metrics
        assert metrics.reason == NoData.INSUFFICIENT_DATA
        assert metrics.sample_count == 2
        assert metrics.required == 3
        assert tracker.get_current_velocity('test') is None

    def test_unknown_metric_returns_no_data(self, tracker):
        metrics = tracker.get_metrics('unknown')

        assert metrics.reason == NoData.UNKNOWN_METRIC
        assert tracker.get_current_velocity('unknown') is None
        assert tracker.is_unusual('unknown') is False

    def test_get_current_velocity(self, tracker):
        tracker.add_point('test', 100, at(0))
        tracker.add_point('test', 110, at(1))
        tracker.add_point('test', 130, at(2))

        assert tracker.get_current_velocity('test') == pytest.approx(20)

    def test_zero_duration_last_pair(self, tracker):
        tracker.add_point('test', 100, at(0))
        tracker.add_point('test', 110, at(1))
        tracker.add_point('test', 150, at(1))

        metrics = tracker.get_metrics('test')
        assert metrics.current_velocity == 0
        assert metrics.avg_velocity == pytest.approx(50)

    def test_track_price(self, tracker):
        for i, price in enumerate([50000, 50100, 50200, 50300]):
            tracker.track_price('BTC', price, at(i))

        velocity = tracker.get_price_velocity('BTC')
        assert velocity
        assert velocity.current_velocity == pytest.approx(100)
        assert not tracker.get_volume_velocity('BTC')

    def test_track_volume(self, tracker):
        for i, volume in enumerate([1000, 1500, 2000, 2500]):
            tracker.track_volume('ETH', volume, at(i))

        velocity = tracker.get_volume_velocity('ETH')
        assert velocity.current_velocity == pytest.approx(500)

    def test_typed_keys_render_as_strings(self):
        key = price_key('BTC-YES')
        assert key == MetricKey(MetricKind.PRICE, 'BTC-YES')
        assert str(key) == 'price:BTC-YES'
        assert str(volume_key('BTC-YES')) == 'volume:BTC-YES'

    def test_ignores_non_finite_values(self, tracker):
        assert tracker.add_point('test', math.nan, at(0)) is False
        assert tracker.add_point('test', math.inf, at(0)) is False
        assert tracker.get_tracked_count() == 0

    def test_out_of_order_sample_dropped(self, tracker):
        tracker.add_point('test', 100, at(5))
        assert tracker.add_point('test', 90, at(4)) is False
        assert len(tracker.get_samples('test')) == 1

    def test_default_timestamp_uses_clock(self, tracker, clock):
        tracker.add_point('test', 100)
        clock.advance(2)
        tracker.add_point('test', 104)

        samples = tracker.get_samples('test')
        assert samples[0].timestamp == at(0)
        assert samples[1].timestamp == at(2)

    def test_naive_timestamps_taken_as_utc(self, tracker):
        tracker.add_point('test', 1.0, datetime(2024, 11, 6, 12, 0, 0))
        tracker.add_point('test', 2.0, at(1))

        assert [s.timestamp for s in tracker.get_samples('test')] == [at(0), at(1)]
        assert tracker.prune(datetime(2024, 11, 6, 12, 0, 0, 500000)) == 1

    def test_single_jump_needs_seven_samples(self, clock):
        tracker = VelocityTracker(clock=clock)
        for i in range(4):
            tracker.add_point('short', 0.0, at(i))
        tracker.add_point('short', 10.0, at(4))
        for i in range(6):
            tracker.add_point('long', 0.0, at(i))
        tracker.add_point('long', 10.0, at(6))

        # The current velocity counts toward its own mean and stddev
        assert tracker.get_metrics('short').stddev_from_mean == pytest.approx(math.sqrt(3))
        assert tracker.is_unusual('short') is False
        assert tracker.get_metrics('long').stddev_from_mean == pytest.approx(math.sqrt(5))
        assert tracker.is_unusual('long') is True

    def test_window_eviction(self, tracker):
        tracker.add_point('test', 1, at(0))
        tracker.add_point('test', 2, at(100))
        tracker.add_point('test', 3, at(400))

        assert [s.value for s in tracker.get_samples('test')] == [2, 3]

    def test_prune_removes_empty_windows(self, tracker):
        tracker.add_point('old', 1, at(0))
        tracker.add_point('new', 1, at(100))

        removed = tracker.prune(at(50))

        assert removed == 1
        assert tracker.keys() == ['new']

    def test_clear_metric(self, tracker):
        tracker.add_point('metric1', 100, at(0))
        tracker.add_point('metric2', 200, at(0))

        tracker.clear_metric('metric1')

        assert tracker.get_tracked_count() == 1

    def test_clear_all(self, tracker):
        tracker.add_point('metric1', 100, at(0))
        tracker.add_point('metric2', 200, at(0))
        tracker.add_point('metric3', 300, at(0))

        tracker.clear_all()

        assert tracker.get_tracked_count() == 0

    def test_default_config(self):
        tracker = VelocityTracker()
        assert tracker.window_seconds == 300
        assert tracker.min_data_points == 5

    def test_instances_are_isolated(self, config):
        first = VelocityTracker(config)
        second = VelocityTracker(config)
        first.add_point('test', 1, at(0))

        assert first.get_tracked_count() == 1
        assert second.get_tracked_count() == 0
