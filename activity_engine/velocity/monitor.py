"""
Market Velocity Monitor
Per-market facade over separate price and volume velocity trackers
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from activity_engine.utils import Clock
from activity_engine.velocity.models import MarketState, OverallState, VelocityDirection
from activity_engine.velocity.tracker import VelocityTracker


class MarketVelocityMonitor:
    """Classifies each market as calm, unusual or volatile.

    Price velocity and volume velocity are tracked separately so callers can
    tell a fast-moving price (momentum) from a surge in trading (liquidity).
    """

    def __init__(self, config: Optional[Dict] = None, clock: Optional[Clock] = None):
        self.price_tracker = VelocityTracker(config, clock=clock)
        self.volume_tracker = VelocityTracker(config, clock=clock)
        self.logger = logging.getLogger("MarketVelocityMonitor")

    def record_trade(self, market_id: str, price: float, volume: float,
                     timestamp: Optional[datetime] = None):
        """Record a trade for price and volume velocity tracking"""
        self.price_tracker.track_price(market_id, price, timestamp)
        self.volume_tracker.track_volume(market_id, volume, timestamp)

    def record_price(self, market_id: str, price: float, timestamp: Optional[datetime] = None):
        """Record a price update without volume (e.g. a price change event)"""
        self.price_tracker.track_price(market_id, price, timestamp)

    def get_market_state(self, market_id: str) -> MarketState:
        """Get the velocity state for a market; never None"""
        price_velocity = self.price_tracker.get_price_velocity(market_id)
        volume_velocity = self.volume_tracker.get_volume_velocity(market_id)

        price_unusual = bool(price_velocity) and price_velocity.is_unusual
        volume_unusual = bool(volume_velocity) and volume_velocity.is_unusual

        alerts = []
        if price_unusual:
            alerts.append(f"Price velocity is {price_velocity.stddev_from_mean:.1f} stddev from mean")
            if price_velocity.direction == VelocityDirection.ACCELERATING:
                alerts.append("Price is accelerating rapidly")
        if volume_unusual:
            alerts.append(f"Volume velocity is {volume_velocity.stddev_from_mean:.1f} stddev from mean")
        if price_unusual and volume_unusual:
            alerts.append("Both price and volume showing unusual velocity - major move underway")

        if price_unusual and (volume_unusual or price_velocity.direction == VelocityDirection.ACCELERATING):
            overall_state = OverallState.VOLATILE
        elif price_unusual or volume_unusual:
            overall_state = OverallState.UNUSUAL
        else:
            overall_state = OverallState.CALM

        return MarketState(
            market_id=market_id,
            price_velocity=price_velocity,
            volume_velocity=volume_velocity,
            overall_state=overall_state,
            alerts=alerts,
        )

    def get_tracked_markets(self) -> List[str]:
        markets = self.price_tracker.symbols()
        for market_id in self.volume_tracker.symbols():
            if market_id not in markets:
                markets.append(market_id)
        return markets

    def get_unusual_markets(self) -> List[MarketState]:
        """Get all markets whose overall state is not calm"""
        unusual = []
        for market_id in self.get_tracked_markets():
            state = self.get_market_state(market_id)
            if not state.is_calm:
                unusual.append(state)
        if unusual:
            self.logger.debug(f"{len(unusual)} markets showing unusual velocity")
        return unusual

    def prune(self, cutoff: datetime) -> int:
        return self.price_tracker.prune(cutoff) + self.volume_tracker.prune(cutoff)

    def clear(self):
        """Clear all tracking data"""
        self.price_tracker.clear_all()
        self.volume_tracker.clear_all()
