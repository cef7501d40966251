"""
Data models for unusual activity detection
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, raw) -> Optional["Side"]:
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str):
            return None
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return None


class Direction(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class AlertType(str, Enum):
    FLASH_MOVE = "flash_move"
    WHALE_ENTRY = "whale_entry"
    VOLUME_SPIKE = "volume_spike"
    ORDERBOOK_IMBALANCE = "orderbook_imbalance"


@dataclass(frozen=True)
class BookLevel:
    price: float
    size: float


@dataclass(frozen=True)
class PriceChangeEvent:
    """Price moved between two observations of one asset"""
    market: str
    asset_id: str
    old_price: float
    new_price: float
    change_percent: float
    timestamp: datetime


@dataclass(frozen=True)
class TradeUpdate:
    """Single executed trade"""
    market: str
    asset_id: str
    price: float
    size: float
    side: Side
    timestamp: datetime
    maker: Optional[str] = None
    taker: Optional[str] = None

    @property
    def notional(self) -> float:
        return self.price * self.size


@dataclass(frozen=True)
class OrderbookUpdate:
    """Order book snapshot; bids best-first, asks best-first"""
    market: str
    asset_id: str
    bids: List[BookLevel]
    asks: List[BookLevel]
    timestamp: datetime

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0].price if self.asks else None

    @property
    def mid_price(self) -> Optional[float]:
        """Mid of best bid/ask; a missing side counts as 0 (bid) or 1 (ask)

        None for an empty book or a non-numeric best price.
        """
        if not self.bids and not self.asks:
            return None
        try:
            best_bid = float(self.best_bid) if self.bids else 0.0
            best_ask = float(self.best_ask) if self.asks else 1.0
        except (TypeError, ValueError):
            return None
        mid = (best_bid + best_ask) / 2
        return mid if math.isfinite(mid) else None


@dataclass(frozen=True)
class Alert:
    """Event emitted when unusual activity is detected"""
    type: AlertType
    market: str
    asset_id: str
    direction: Direction
    magnitude: float            # How unusual (fraction, multiple or share depending on type)
    reasoning: str
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)
    market_title: Optional[str] = None
    insider_score: Optional[int] = None     # Whale alerts only (0-100)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging"""
        return {
            'type': self.type.value,
            'market': self.market,
            'asset_id': self.asset_id,
            'market_title': self.market_title,
            'direction': self.direction.value,
            'magnitude': self.magnitude,
            'details': dict(self.details),
            'reasoning': self.reasoning,
            'timestamp': self.timestamp.isoformat(),
            'insider_score': self.insider_score,
        }
