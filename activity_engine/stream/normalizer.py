"""
Message normalizer - turns raw market-channel messages into typed events

Accepts the JSON payloads of a Polymarket-style market channel:
- Book: {"event_type": "book", "asset_id": ..., "bids": [{"price": "0.48", "size": "120"}], ...}
- Trade: {"event_type": "trade", "price": "0.52", "size": "300", "side": "BUY", ...}
- Price change: {"event_type": "price_change", "old_price": 0.40, "new_price": 0.46, ...}
- Control: subscribed / heartbeat / pong (ignored)

Book mid prices and trade prices are compared against the previous price of the
same asset to derive PriceChangeEvents.
"""
import json
import logging
import math
from threading import Lock
from typing import Any, Dict, List, Optional, Union

from activity_engine.detection.models import (
    BookLevel,
    OrderbookUpdate,
    PriceChangeEvent,
    Side,
    TradeUpdate,
)
from activity_engine.utils import Clock, parse_timestamp, parse_timestamp_cached, utc_now

StreamEvent = Union[OrderbookUpdate, TradeUpdate, PriceChangeEvent]

BOOK_TYPES = {"book"}
TRADE_TYPES = {"trade", "last_trade_price"}
PRICE_CHANGE_TYPES = {"price_change"}
CONTROL_TYPES = {"subscribed", "heartbeat", "pong", "ping"}


class MessageNormalizer:
    """Parses stream messages and remembers the last price per asset"""

    def __init__(self, clock: Optional[Clock] = None, price_change_threshold_percent: float = 1.0):
        self.logger = logging.getLogger("MessageNormalizer")
        self.clock = clock or utc_now
        self.price_change_threshold_percent = float(price_change_threshold_percent)
        self._last_prices: Dict[str, float] = {}
        self._lock = Lock()

    def normalize(self, message) -> List[StreamEvent]:
        """Normalize one raw message (dict, JSON text or list of messages)"""
        if isinstance(message, (bytes, bytearray)):
            message = message.decode('utf-8', errors='replace')
        if isinstance(message, str):
            try:
                message = json.loads(message)
            except json.JSONDecodeError as e:
                self.logger.warning(f"Failed to parse stream message: {e}")
                return []

        if isinstance(message, list):
            events: List[StreamEvent] = []
            for item in message:
                events.extend(self.normalize(item))
            return events

        if not isinstance(message, dict):
            self.logger.warning(f"Ignoring stream message of type {type(message).__name__}")
            return []

        msg_type = message.get("event_type") or message.get("type")
        try:
            if msg_type in BOOK_TYPES:
                return self._handle_book(message)
            if msg_type in TRADE_TYPES:
                return self._handle_trade(message)
            if msg_type in PRICE_CHANGE_TYPES:
                return self._handle_price_change(message)
            if msg_type in CONTROL_TYPES:
                if msg_type == "subscribed":
                    self.logger.debug(f"Subscription confirmed: {message.get('market') or message.get('markets')}")
                return []
            # Untyped snapshots still carry book levels
            if "bids" in message or "asks" in message:
                return self._handle_book(message)
        except (TypeError, ValueError, KeyError, IndexError, AttributeError) as e:
            self.logger.warning(f"Dropping malformed {msg_type or 'untyped'} message: {e}")
            return []

        self.logger.debug(f"Ignoring stream message type: {msg_type}")
        return []

    def last_price(self, asset_id: str) -> Optional[float]:
        with self._lock:
            return self._last_prices.get(asset_id)

    def assets(self) -> List[str]:
        with self._lock:
            return list(self._last_prices.keys())

    def forget(self, asset_id: str):
        """Drop the remembered price for an asset"""
        with self._lock:
            self._last_prices.pop(asset_id, None)

    def reset(self):
        with self._lock:
            self._last_prices.clear()

    # -------------------------------------------------------------------------
    # Message handlers
    # -------------------------------------------------------------------------

    def _handle_book(self, message: Dict[str, Any]) -> List[StreamEvent]:
        asset_id = _asset_id(message)
        if not asset_id:
            self.logger.debug("Ignoring book message without asset_id")
            return []
        market = message.get("market") or asset_id
        timestamp = self._timestamp(message)

        bids = sorted(_parse_levels(message.get("bids")), key=lambda level: level.price, reverse=True)
        asks = sorted(_parse_levels(message.get("asks")), key=lambda level: level.price)
        update = OrderbookUpdate(market=market, asset_id=asset_id, bids=bids, asks=asks, timestamp=timestamp)

        events: List[StreamEvent] = [update]
        mid_price = update.mid_price
        if mid_price is not None:
            change = self._check_price_change(asset_id, market, mid_price, update)
            if change:
                events.append(change)
        return events

    def _handle_trade(self, message: Dict[str, Any]) -> List[StreamEvent]:
        asset_id = _asset_id(message)
        if not asset_id:
            self.logger.debug("Ignoring trade message without asset_id")
            return []
        price = _to_float(message.get("price"))
        size = _to_float(message.get("size"))
        if price is None or size is None:
            self.logger.warning(
                f"{asset_id}: Dropping trade with bad price/size "
                f"(price={message.get('price')!r}, size={message.get('size')!r})"
            )
            return []

        market = message.get("market") or asset_id
        side = Side.parse(message.get("side"))
        trade = TradeUpdate(
            market=market,
            asset_id=asset_id,
            price=price,
            size=size,
            side=side,
            timestamp=self._timestamp(message),
            maker=message.get("maker"),
            taker=message.get("taker"),
        )

        events: List[StreamEvent] = [trade]
        change = self._check_price_change(asset_id, market, price, trade)
        if change:
            events.append(change)
        return events

    def _handle_price_change(self, message: Dict[str, Any]) -> List[StreamEvent]:
        asset_id = _asset_id(message)
        old_price = _to_float(_first_of(message, "old_price", "oldPrice"))
        new_price = _to_float(_first_of(message, "new_price", "newPrice"))
        if not asset_id or old_price is None or new_price is None:
            self.logger.debug(f"Ignoring price_change message without asset/prices: {message}")
            return []

        change_percent = _to_float(_first_of(message, "change_percent", "changePercent"))
        if change_percent is None:
            if old_price <= 0:
                self.logger.debug(f"{asset_id}: Cannot compute price change from {old_price}")
                return []
            change_percent = (new_price - old_price) / old_price * 100

        with self._lock:
            self._last_prices[asset_id] = new_price

        return [PriceChangeEvent(
            market=message.get("market") or asset_id,
            asset_id=asset_id,
            old_price=old_price,
            new_price=new_price,
            change_percent=change_percent,
            timestamp=self._timestamp(message),
        )]

    def _check_price_change(self, asset_id: str, market: str, new_price: float,
                            source: Union[OrderbookUpdate, TradeUpdate]) -> Optional[PriceChangeEvent]:
        with self._lock:
            old_price = self._last_prices.get(asset_id)
            self._last_prices[asset_id] = new_price

        if old_price is None or old_price <= 0:
            return None
        change_percent = (new_price - old_price) / old_price * 100
        if abs(change_percent) < self.price_change_threshold_percent:
            return None

        self.logger.debug(f"{asset_id}: Price moved {change_percent:+.2f}% ({old_price:.4f} -> {new_price:.4f})")
        return PriceChangeEvent(
            market=market,
            asset_id=asset_id,
            old_price=old_price,
            new_price=new_price,
            change_percent=change_percent,
            timestamp=source.timestamp,
        )

    def _timestamp(self, message: Dict[str, Any]):
        raw = _first_of(message, "timestamp", "ts")
        if isinstance(raw, str):
            parsed = parse_timestamp_cached(raw)
        else:
            parsed = parse_timestamp(raw)
        if parsed is None:
            if raw is not None:
                self.logger.debug(f"Unparseable timestamp {raw!r}, using clock")
            return self.clock()
        return parsed


def _asset_id(message: Dict[str, Any]) -> Optional[str]:
    asset_id = message.get("asset_id") or message.get("market")
    return str(asset_id) if asset_id else None


def _first_of(message: Dict[str, Any], *names):
    for name in names:
        if message.get(name) is not None:
            return message[name]
    return None


def _to_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _parse_levels(raw_levels) -> List[BookLevel]:
    """Parse [{"price": "0.48", "size": "120"}] or [[0.48, 120]] levels"""
    levels = []
    for raw in raw_levels or []:
        if isinstance(raw, dict):
            price, size = raw.get("price"), raw.get("size")
        else:
            price, size = raw[0], raw[1]
        price, size = _to_float(price), _to_float(size)
        if price is None or size is None:
            raise ValueError(f"bad book level {raw!r}")
        levels.append(BookLevel(price=price, size=size))
    return levels
