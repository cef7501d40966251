"""Stream adapters: raw feed messages to typed events and alerts."""

from activity_engine.stream.normalizer import MessageNormalizer, StreamEvent
from activity_engine.stream.monitor import AlertCallback, RealtimeMonitor

__all__ = [
    'AlertCallback',
    'MessageNormalizer',
    'RealtimeMonitor',
    'StreamEvent',
]
