"""
Realtime monitor - wires normalized stream events into the detector and velocity monitor
"""
import logging
from collections import Counter
from datetime import timedelta
from threading import Lock
from typing import Callable, Dict, List, Optional

from activity_engine.config import get_section, validate_config
from activity_engine.detection import (
    Alert,
    OrderbookUpdate,
    PriceChangeEvent,
    TradeUpdate,
    UnusualActivityDetector,
)
from activity_engine.stream.normalizer import MessageNormalizer, StreamEvent
from activity_engine.utils import Clock, utc_now
from activity_engine.velocity import MarketState, MarketVelocityMonitor

AlertCallback = Callable[[Alert], None]


class RealtimeMonitor:
    """Entry point for a live feed: raw messages in, alerts out"""

    def __init__(
        self,
        config: Optional[Dict] = None,
        clock: Optional[Clock] = None,
        market_titles: Optional[Dict[str, str]] = None,
    ):
        validate_config(config)
        monitor_config = get_section(config, 'monitor')
        self.logger = logging.getLogger("RealtimeMonitor")
        self.alert_logger = logging.getLogger("RealtimeMonitor.Alerts")
        self.clock = clock or utc_now

        self.cleanup_interval = timedelta(seconds=monitor_config['cleanup_interval_seconds'])
        self.normalizer = MessageNormalizer(
            clock=self.clock,
            price_change_threshold_percent=monitor_config['price_change_threshold_percent'],
        )
        self.detector = UnusualActivityDetector(config, clock=self.clock)
        self.velocity = MarketVelocityMonitor(config, clock=self.clock)

        self._callbacks: List[AlertCallback] = []
        self._callbacks_lock = Lock()
        self._stats_lock = Lock()
        self._event_counts: Counter = Counter()
        self._alert_counts: Counter = Counter()
        self._callback_errors = 0
        self._last_cleanup = self.clock()

        if market_titles:
            self.add_market_titles(market_titles)

    def add_alert_callback(self, callback: AlertCallback):
        with self._callbacks_lock:
            self._callbacks.append(callback)

    def add_market_titles(self, titles: Dict[str, str]):
        self.detector.set_market_titles(titles)

    def handle_message(self, raw) -> List[Alert]:
        """Normalize a raw stream message and process every resulting event"""
        alerts: List[Alert] = []
        for event in self.normalizer.normalize(raw):
            alerts.extend(self.handle_event(event))
        return alerts

    def handle_event(self, event: StreamEvent) -> List[Alert]:
        """Route one typed event to the detector and velocity monitor"""
        if isinstance(event, TradeUpdate):
            self._count_event('trade')
            alerts = self.detector.process_trade_update(event)
            self._record_trade_velocity(event)
        elif isinstance(event, OrderbookUpdate):
            self._count_event('book')
            alerts = self.detector.process_book_update(event)
        elif isinstance(event, PriceChangeEvent):
            self._count_event('price_change')
            alert = self.detector.process_price_change(event)
            alerts = [alert] if alert else []
            self._record_price_velocity(event)
        else:
            self.logger.warning(f"Ignoring unsupported event {type(event).__name__}")
            return []

        for alert in alerts:
            self._deliver(alert)
        return alerts

    def maybe_cleanup(self) -> int:
        """Run detector and velocity cleanup once the cleanup interval has elapsed"""
        now = self.clock()
        if now - self._last_cleanup < self.cleanup_interval:
            return 0
        self._last_cleanup = now

        cutoff = self.detector.retention_cutoff()
        removed = self.detector.cleanup()
        if cutoff is not None:
            removed += self.velocity.prune(cutoff)
        tracked = set(self.detector.tracked_assets())
        for asset_id in self.normalizer.assets():
            if asset_id not in tracked:
                self.normalizer.forget(asset_id)
        self.logger.info(f"Cleanup removed {removed} samples; tracking {len(tracked)} assets")
        return removed

    def get_market_velocity(self, asset_id: str) -> MarketState:
        return self.velocity.get_market_state(asset_id)

    def get_unusual_velocity_markets(self) -> List[MarketState]:
        return self.velocity.get_unusual_markets()

    def stats(self) -> Dict:
        with self._stats_lock:
            events = dict(self._event_counts)
            alerts = dict(self._alert_counts)
            callback_errors = self._callback_errors
        return {
            'events': events,
            'alerts': alerts,
            'total_alerts': sum(alerts.values()),
            'callback_errors': callback_errors,
            'tracked_assets': len(self.detector.tracked_assets()),
            'velocity_markets': len(self.velocity.get_tracked_markets()),
            'last_cleanup': self._last_cleanup.isoformat(),
        }

    def _record_trade_velocity(self, trade: TradeUpdate):
        try:
            price = float(trade.price)
            size = float(trade.size)
        except (TypeError, ValueError):
            return
        self.velocity.record_trade(trade.asset_id, price, price * size, trade.timestamp)

    def _record_price_velocity(self, event: PriceChangeEvent):
        try:
            price = float(event.new_price)
        except (TypeError, ValueError):
            return
        self.velocity.record_price(event.asset_id, price, event.timestamp)

    def _count_event(self, kind: str):
        with self._stats_lock:
            self._event_counts[kind] += 1

    def _deliver(self, alert: Alert):
        with self._stats_lock:
            self._alert_counts[alert.type.value] += 1
        self.alert_logger.info(f"ALERT: {alert.to_dict()}")

        with self._callbacks_lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(alert)
            except Exception:
                with self._stats_lock:
                    self._callback_errors += 1
                self.logger.exception(f"{alert.asset_id}: Alert callback {callback!r} failed")

