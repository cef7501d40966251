"""Unusual activity detection over streaming market events."""

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
from activity_engine.detection.cooldown import CooldownRegistry
from activity_engine.detection.insider import InsiderScoreFactors, calculate_insider_score
from activity_engine.detection.detector import UnusualActivityDetector

__all__ = [
    'Alert',
    'AlertType',
    'BookLevel',
    'CooldownRegistry',
    'Direction',
    'InsiderScoreFactors',
    'OrderbookUpdate',
    'PriceChangeEvent',
    'Side',
    'TradeUpdate',
    'UnusualActivityDetector',
    'calculate_insider_score',
]
