"""Velocity tracking for market metrics."""

from activity_engine.velocity.models import (
    MarketState,
    MetricKey,
    MetricKind,
    MetricsResult,
    NoData,
    OverallState,
    VelocityDirection,
    VelocityMetrics,
    price_key,
    volume_key,
)
from activity_engine.velocity.window import MetricWindow, Sample
from activity_engine.velocity.tracker import VelocityTracker
from activity_engine.velocity.monitor import MarketVelocityMonitor

__all__ = [
    'MarketState',
    'MarketVelocityMonitor',
    'MetricKey',
    'MetricKind',
    'MetricWindow',
    'MetricsResult',
    'NoData',
    'OverallState',
    'Sample',
    'VelocityDirection',
    'VelocityMetrics',
    'VelocityTracker',
    'price_key',
    'volume_key',
]
