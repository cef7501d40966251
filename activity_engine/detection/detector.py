"""
Unusual Activity Detector - classifies streaming market events as unusual

Four independent rules run against each event:
- Flash moves (large price change between observations)
- Whale trades (single trade notional above threshold)
- Volume spikes (recent trade notional vs. baseline)
- Order-book imbalance (bid depth vs. ask depth)

Repeated alerts for the same condition are debounced by a per-(type, asset)
cooldown keyed on event time. Event timestamps are normalized to aware UTC on
entry; naive datetimes are taken as UTC.
"""
import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional

from activity_engine.config import get_section, validate_config
from activity_engine.detection.cooldown import CooldownRegistry
from activity_engine.detection.insider import InsiderScoreFactors, calculate_insider_score
from activity_engine.detection.models import (
    Alert,
    AlertType,
    BookLevel,
    Direction,
    OrderbookUpdate,
    PriceChangeEvent,
    Side,
    TradeUpdate,
)
from activity_engine.utils import Clock, parse_timestamp, utc_now
from activity_engine.velocity import VelocityTracker, price_key, volume_key


class UnusualActivityDetector:
    """Runs the anomaly rules and owns all per-asset auxiliary state"""

    def __init__(
        self,
        config: Optional[Dict] = None,
        clock: Optional[Clock] = None,
        alert_callback: Optional[Callable[[Alert], None]] = None,
    ):
        validate_config(config)
        activity_config = get_section(config, 'unusual_activity')
        self.logger = logging.getLogger("UnusualActivityDetector")
        self.clock = clock or utc_now
        self.alert_callback = alert_callback

        # Flash move detection
        self.flash_move_threshold_percent = float(activity_config['flash_move_threshold_percent'])
        self.flash_move_window = timedelta(seconds=activity_config['flash_move_window_seconds'])

        # Volume spike detection
        self.volume_spike_multiple = float(activity_config['volume_spike_multiple'])
        self.volume_window = timedelta(seconds=activity_config['volume_window_seconds'])
        self.min_data_points = int(activity_config['min_data_points'])

        # Whale detection
        self.whale_trade_notional_threshold = float(activity_config['whale_trade_notional_threshold'])
        self.whale_position_notional = float(activity_config['whale_position_notional'])

        # Orderbook imbalance
        self.orderbook_imbalance_ratio = float(activity_config['orderbook_imbalance_ratio'])

        # Rate limiting
        self.cooldowns = CooldownRegistry(float(activity_config['alert_cooldown_seconds']))

        # History windows span the longest rule window; cleanup keeps twice that
        history_window = max(self.flash_move_window, self.volume_window)
        self.retention = history_window * 2
        self.history = VelocityTracker(
            {'velocity_tracker': {
                'window_seconds': history_window.total_seconds(),
                'min_data_points': self.min_data_points,
            }},
            clock=self.clock,
        )

        self._market_titles: Dict[str, str] = {}
        self._asset_markets: Dict[str, str] = {}
        self._first_seen: Dict[str, datetime] = {}
        self._last_seen: Dict[str, datetime] = {}
        self._latest_event_time: Optional[datetime] = None
        self._asset_locks: Dict[str, Lock] = {}
        self._locks_guard = Lock()

    # -------------------------------------------------------------------------
    # Public surface
    # -------------------------------------------------------------------------

    def set_market_title(self, asset_id: str, title: str):
        """Set market title for better alert messages"""
        self._market_titles[asset_id] = title

    def set_market_titles(self, titles: Dict[str, str]):
        for asset_id, title in titles.items():
            self.set_market_title(asset_id, title)

    def get_market_title(self, asset_id: str) -> Optional[str]:
        return self._market_titles.get(asset_id)

    def process_price_change(self, event: PriceChangeEvent) -> Optional[Alert]:
        """Process price change and detect flash moves"""
        event = self._at_event_time(event)
        with self._asset_lock(event.asset_id):
            self._remember_market(event.asset_id, event.market, event.timestamp)
            alert = self._detect_flash_move(event)
        if alert:
            self._dispatch([alert])
        return alert

    def process_trade_update(self, trade: TradeUpdate) -> List[Alert]:
        """Process trade update; whale and volume-spike alerts can both fire"""
        alerts: List[Alert] = []
        trade = self._at_event_time(trade)
        price = _finite(trade.price)
        size = _finite(trade.size)
        if price is None or size is None or price < 0 or size < 0:
            self.logger.debug(f"{trade.asset_id}: Ignoring malformed trade (price={trade.price}, size={trade.size})")
            return alerts

        notional = price * size
        with self._asset_lock(trade.asset_id):
            self._remember_market(trade.asset_id, trade.market, trade.timestamp)
            self.history.add_point(price_key(trade.asset_id), price, trade.timestamp)
            self.history.add_point(volume_key(trade.asset_id), notional, trade.timestamp)

            whale_alert = self._detect_whale_trade(trade, price, size, notional)
            if whale_alert:
                alerts.append(whale_alert)

            volume_alert = self._detect_volume_spike(trade.asset_id, trade.market, trade.timestamp)
            if volume_alert:
                alerts.append(volume_alert)

        self._dispatch(alerts)
        return alerts

    def process_book_update(self, update: OrderbookUpdate) -> List[Alert]:
        """Process orderbook snapshot and detect imbalance"""
        alerts: List[Alert] = []
        update = self._at_event_time(update)
        bid_depth = _total_depth(update.bids)
        ask_depth = _total_depth(update.asks)
        if bid_depth is None or ask_depth is None:
            self.logger.debug(f"{update.asset_id}: Ignoring book with malformed levels")
            return alerts

        with self._asset_lock(update.asset_id):
            self._remember_market(update.asset_id, update.market, update.timestamp)
            mid_price = _finite(update.mid_price)
            if mid_price is not None:
                self.history.add_point(price_key(update.asset_id), mid_price, update.timestamp)

            imbalance_alert = self._detect_orderbook_imbalance(update, bid_depth, ask_depth)
            if imbalance_alert:
                alerts.append(imbalance_alert)

        self._dispatch(alerts)
        return alerts

    def analyze_market(self, asset_id: str, now: Optional[datetime] = None) -> List[Alert]:
        """Run history-based rules (flash move over the window, volume spike)"""
        alerts: List[Alert] = []
        now = parse_timestamp(now) or self.clock()
        with self._asset_lock(asset_id):
            market = self._asset_markets.get(asset_id, asset_id)

            flash_alert = self._detect_flash_move_from_history(asset_id, market, now)
            if flash_alert:
                alerts.append(flash_alert)

            volume_alert = self._detect_volume_spike(asset_id, market, now)
            if volume_alert:
                alerts.append(volume_alert)

        self._dispatch(alerts)
        return alerts

    def cleanup(self) -> int:
        """Clear old historical data to prevent memory growth

        Returns the number of samples removed. Retention is measured on event
        time, so replayed or delayed feeds keep their active rule windows.
        Assets left without data have their lock and expired cooldowns dropped.
        """
        cutoff = self.retention_cutoff()
        if cutoff is None:
            return 0

        removed = 0
        dropped = []
        for asset_id in self.tracked_assets():
            with self._asset_lock(asset_id):
                removed += self.history.prune(
                    cutoff, keys=[price_key(asset_id), volume_key(asset_id)]
                )
                if self._is_stale(asset_id, cutoff):
                    with self._locks_guard:
                        self._first_seen.pop(asset_id, None)
                        self._last_seen.pop(asset_id, None)
                    self._asset_markets.pop(asset_id, None)
                    dropped.append(asset_id)

        stream_time = cutoff + self.retention
        for asset_id in dropped:
            self.cooldowns.forget(asset_id, now=stream_time)
            with self._locks_guard:
                lock = self._asset_locks.get(asset_id)
                if lock is not None and not lock.locked() and asset_id not in self._first_seen:
                    del self._asset_locks[asset_id]

        if removed or dropped:
            self.logger.debug(
                f"Cleanup removed {removed} samples older than {cutoff.isoformat()}, "
                f"dropped {len(dropped)} assets"
            )
        return removed

    def retention_cutoff(self) -> Optional[datetime]:
        """Oldest event time kept by cleanup, or None before any event

        Measured back from the latest event seen, capped by the clock so
        future-dated events cannot push the cutoff forward.
        """
        with self._locks_guard:
            latest = self._latest_event_time
        if latest is None:
            return None
        return min(latest, self.clock()) - self.retention

    def tracked_assets(self) -> List[str]:
        with self._locks_guard:
            assets = set(self._first_seen.keys())
        assets.update(self.history.symbols())
        return sorted(assets)

    # -------------------------------------------------------------------------
    # Detection rules
    # -------------------------------------------------------------------------

    def _detect_flash_move(self, event: PriceChangeEvent) -> Optional[Alert]:
        change = _finite(event.change_percent)
        old_price = _finite(event.old_price)
        new_price = _finite(event.new_price)
        if change is None or old_price is None or new_price is None:
            self.logger.debug(f"{event.asset_id}: Ignoring malformed price change {event}")
            return None

        if abs(change) < self.flash_move_threshold_percent:
            return None

        if self._on_cooldown(AlertType.FLASH_MOVE, event.asset_id, event.timestamp):
            return None

        direction = Direction.BULLISH if change > 0 else Direction.BEARISH
        verb = 'spiked' if direction == Direction.BULLISH else 'dropped'

        alert = Alert(
            type=AlertType.FLASH_MOVE,
            market=event.market,
            asset_id=event.asset_id,
            market_title=self._market_titles.get(event.asset_id),
            direction=direction,
            magnitude=abs(change) / 100,
            details={
                'price_move': change,
                'old_price': old_price,
                'new_price': new_price,
            },
            reasoning=(
                f"Price {verb} {abs(change):.1f}% "
                f"from {old_price * 100:.0f}¢ to {new_price * 100:.0f}¢"
            ),
            timestamp=event.timestamp,
        )
        return self._fire(alert)

    def _detect_flash_move_from_history(self, asset_id: str, market: str, now: datetime) -> Optional[Alert]:
        recent = self.history.samples_between(price_key(asset_id), now - self.flash_move_window, now)
        if len(recent) < 2:
            return None

        first_price = recent[0].value
        last_price = recent[-1].value
        if first_price <= 0:
            return None
        change = (last_price - first_price) / first_price * 100

        if abs(change) < self.flash_move_threshold_percent:
            return None

        if self._on_cooldown(AlertType.FLASH_MOVE, asset_id, now):
            return None

        direction = Direction.BULLISH if change > 0 else Direction.BEARISH
        verb = 'jumped' if direction == Direction.BULLISH else 'fell'
        window_minutes = round(self.flash_move_window.total_seconds() / 60)

        alert = Alert(
            type=AlertType.FLASH_MOVE,
            market=market,
            asset_id=asset_id,
            market_title=self._market_titles.get(asset_id),
            direction=direction,
            magnitude=abs(change) / 100,
            details={
                'price_move': change,
                'old_price': first_price,
                'new_price': last_price,
            },
            reasoning=f"Price {verb} {abs(change):.1f}% in the last {window_minutes} minutes",
            timestamp=now,
        )
        return self._fire(alert)

    def _detect_whale_trade(self, trade: TradeUpdate, price: float, size: float,
                            notional: float) -> Optional[Alert]:
        if notional < self.whale_trade_notional_threshold:
            return None

        side = Side.parse(trade.side)
        if side is None:
            self.logger.debug(f"{trade.asset_id}: Whale-sized trade with unknown side {trade.side!r}")
            return None

        if self._on_cooldown(AlertType.WHALE_ENTRY, trade.asset_id, trade.timestamp):
            return None

        direction = Direction.BULLISH if side == Side.BUY else Direction.BEARISH

        avg_notional = self._average_notional(trade.asset_id)
        size_multiple = notional / avg_notional if avg_notional > 0 else 2.0
        insider_score = calculate_insider_score(InsiderScoreFactors(
            low_probability_bet=price < 0.15 or price > 0.85,
            size_multiple=size_multiple,
            market_age_hours=self._market_age_hours(trade.asset_id, trade.timestamp),
            outcome_price=price if side == Side.BUY else 1 - price,
        ))

        reasoning = f"Large {side.value} trade of ${notional:,.0f} at {price * 100:.0f}¢"
        if insider_score >= 60:
            reasoning += f" | HIGH insider score ({insider_score}/100) - likely informed"
        elif insider_score >= 40:
            reasoning += f" | MEDIUM insider score ({insider_score}/100)"

        alert = Alert(
            type=AlertType.WHALE_ENTRY,
            market=trade.market,
            asset_id=trade.asset_id,
            market_title=self._market_titles.get(trade.asset_id),
            direction=direction,
            magnitude=notional / self.whale_position_notional,
            details={
                'trade_size': notional,
                'price': price,
                'size': size,
                'side': side.value,
                'size_multiple': size_multiple,
            },
            reasoning=reasoning,
            timestamp=trade.timestamp,
            insider_score=insider_score,
        )
        return self._fire(alert)

    def _detect_volume_spike(self, asset_id: str, market: str, now: datetime) -> Optional[Alert]:
        key = volume_key(asset_id)
        recent_start = now - self.flash_move_window
        window_start = now - self.volume_window

        baseline = self.history.samples_between(key, window_start, recent_start, include_end=False)
        if len(baseline) < self.min_data_points:
            return None

        recent = self.history.samples_between(key, recent_start, now)
        if not recent:
            return None

        avg_baseline = sum(s.value for s in baseline) / len(baseline)
        avg_recent = sum(s.value for s in recent) / len(recent)
        if avg_baseline <= 0:
            return None

        volume_multiple = avg_recent / avg_baseline
        if volume_multiple < self.volume_spike_multiple:
            return None

        if self._on_cooldown(AlertType.VOLUME_SPIKE, asset_id, now):
            return None

        alert = Alert(
            type=AlertType.VOLUME_SPIKE,
            market=market,
            asset_id=asset_id,
            market_title=self._market_titles.get(asset_id),
            direction=Direction.NEUTRAL,
            magnitude=volume_multiple / self.volume_spike_multiple,
            details={
                'volume_multiple': volume_multiple,
                'recent_avg_notional': avg_recent,
                'baseline_avg_notional': avg_baseline,
                'recent_trades': len(recent),
                'baseline_trades': len(baseline),
            },
            reasoning=(
                f"Volume is {volume_multiple:.1f}x normal "
                f"(${avg_recent:,.0f} vs ${avg_baseline:,.0f} baseline)"
            ),
            timestamp=now,
        )
        return self._fire(alert)

    def _detect_orderbook_imbalance(self, update: OrderbookUpdate,
                                    bid_depth: float, ask_depth: float) -> Optional[Alert]:
        total = bid_depth + ask_depth
        if total <= 0:
            return None

        larger, smaller = max(bid_depth, ask_depth), min(bid_depth, ask_depth)
        ratio = larger / smaller if smaller > 0 else math.inf
        if ratio < self.orderbook_imbalance_ratio:
            return None

        if self._on_cooldown(AlertType.ORDERBOOK_IMBALANCE, update.asset_id, update.timestamp):
            return None

        share = (bid_depth - ask_depth) / total
        direction = Direction.BULLISH if bid_depth > ask_depth else Direction.BEARISH
        heavy_side = 'bid' if direction == Direction.BULLISH else 'ask'
        ratio_str = f"{ratio:.1f}:1" if math.isfinite(ratio) else "one-sided"

        alert = Alert(
            type=AlertType.ORDERBOOK_IMBALANCE,
            market=update.market,
            asset_id=update.asset_id,
            market_title=self._market_titles.get(update.asset_id),
            direction=direction,
            magnitude=abs(share),
            details={
                'imbalance_ratio': ratio,
                'imbalance_share': share,
                'bid_depth': bid_depth,
                'ask_depth': ask_depth,
            },
            reasoning=(
                f"Orderbook is {abs(share) * 100:.0f}% {heavy_side}-heavy ({ratio_str}) "
                f"- potential price move incoming"
            ),
            timestamp=update.timestamp,
        )
        return self._fire(alert)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _on_cooldown(self, alert_type: AlertType, asset_id: str, now: datetime) -> bool:
        if self.cooldowns.is_active(alert_type, asset_id, now):
            self.logger.debug(f"{asset_id}: {alert_type.value} suppressed by cooldown")
            return True
        return False

    def _fire(self, alert: Alert) -> Alert:
        self.cooldowns.record(alert.type, alert.asset_id, alert.timestamp)
        self.logger.info(
            f"{alert.asset_id}: {alert.type.value} ({alert.direction.value}, "
            f"magnitude={alert.magnitude:.2f}) - {alert.reasoning}"
        )
        return alert

    def _dispatch(self, alerts: List[Alert]):
        # Runs outside the asset lock so callbacks may call back into the detector
        if not self.alert_callback:
            return
        for alert in alerts:
            try:
                self.alert_callback(alert)
            except Exception:
                self.logger.exception(f"{alert.asset_id}: Alert callback failed for {alert.type.value}")

    def _asset_lock(self, asset_id: str) -> Lock:
        with self._locks_guard:
            lock = self._asset_locks.get(asset_id)
            if lock is None:
                lock = Lock()
                self._asset_locks[asset_id] = lock
            return lock

    def _at_event_time(self, event):
        """Event with an aware UTC timestamp; a missing one is taken from the clock"""
        timestamp = parse_timestamp(event.timestamp) or self.clock()
        if timestamp is event.timestamp:
            return event
        return replace(event, timestamp=timestamp)

    def _remember_market(self, asset_id: str, market: str, timestamp: datetime):
        self._asset_markets[asset_id] = market or asset_id
        with self._locks_guard:
            if asset_id not in self._first_seen:
                self._first_seen[asset_id] = timestamp
            last_seen = self._last_seen.get(asset_id)
            if last_seen is None or timestamp > last_seen:
                self._last_seen[asset_id] = timestamp
            if self._latest_event_time is None or timestamp > self._latest_event_time:
                self._latest_event_time = timestamp

    def _is_stale(self, asset_id: str, cutoff: datetime) -> bool:
        if self.history.get_samples(price_key(asset_id)) or self.history.get_samples(volume_key(asset_id)):
            return False
        with self._locks_guard:
            last_seen = self._last_seen.get(asset_id)
        return last_seen is None or last_seen < cutoff

    def _average_notional(self, asset_id: str) -> float:
        samples = self.history.get_samples(volume_key(asset_id))
        if not samples:
            return 0.0
        return sum(s.value for s in samples) / len(samples)

    def _market_age_hours(self, asset_id: str, now: datetime) -> float:
        first_seen = self._first_seen.get(asset_id)
        if first_seen is None:
            return 24.0  # Default to "not new"
        hours = (now - first_seen).total_seconds() / 3600
        return max(hours, 1.0)  # At least 1 hour of observation


def _finite(value) -> Optional[float]:
    """Float value or None for missing, unparseable or non-finite input"""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _total_depth(levels: Iterable[BookLevel]) -> Optional[float]:
    total = 0.0
    for level in levels:
        size = _finite(level.size)
        if size is None or size < 0:
            return None
        total += size
    return total
