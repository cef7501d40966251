"""
Data models for velocity tracking
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, NamedTuple, Union


class MetricKind(str, Enum):
    """Kinds of per-market metrics the trackers understand"""
    PRICE = "price"
    VOLUME = "volume"


class MetricKey(NamedTuple):
    """Typed metric identifier, e.g. MetricKey(MetricKind.PRICE, 'BTC-YES')"""
    kind: MetricKind
    symbol: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.symbol}"


def price_key(symbol: str) -> MetricKey:
    return MetricKey(MetricKind.PRICE, symbol)


def volume_key(symbol: str) -> MetricKey:
    return MetricKey(MetricKind.VOLUME, symbol)


class VelocityDirection(str, Enum):
    STEADY = "steady"
    ACCELERATING = "accelerating"
    DECELERATING = "decelerating"


@dataclass(frozen=True)
class VelocityMetrics:
    """Rate-of-change statistics for one metric window

    stddev_from_mean is a population z-score of the current velocity against
    every velocity in the window, the current one included. With n velocities
    it can never exceed sqrt(n - 1), so a threshold of 2.0 needs at least six
    velocities (seven samples) before a single jump can mark the window unusual.
    """
    current_velocity: float     # Units/second between the two most recent samples
    avg_velocity: float         # Units/second between oldest and newest sample
    acceleration: float         # Change in velocity magnitude between window halves, per second
    direction: VelocityDirection
    is_unusual: bool            # Current velocity beyond threshold stddevs from the mean
    stddev_from_mean: float
    sample_count: int

    def __bool__(self) -> bool:
        return True

    def to_dict(self) -> dict:
        """Convert to dictionary for logging"""
        return {
            'current_velocity': self.current_velocity,
            'avg_velocity': self.avg_velocity,
            'acceleration': self.acceleration,
            'direction': self.direction.value,
            'is_unusual': self.is_unusual,
            'stddev_from_mean': self.stddev_from_mean,
            'sample_count': self.sample_count,
        }


@dataclass(frozen=True)
class NoData:
    """Cold-start result: the metric is unknown or has too few samples"""
    reason: str                 # 'unknown_metric' or 'insufficient_data'
    sample_count: int = 0
    required: int = 0

    UNKNOWN_METRIC = 'unknown_metric'
    INSUFFICIENT_DATA = 'insufficient_data'

    def __bool__(self) -> bool:
        return False

    def to_dict(self) -> dict:
        return {
            'no_data': self.reason,
            'sample_count': self.sample_count,
            'required': self.required,
        }


MetricsResult = Union[VelocityMetrics, NoData]


class OverallState(str, Enum):
    CALM = "calm"
    UNUSUAL = "unusual"
    VOLATILE = "volatile"


@dataclass
class MarketState:
    """Combined price/volume velocity view of one market"""
    market_id: str
    price_velocity: MetricsResult
    volume_velocity: MetricsResult
    overall_state: OverallState = OverallState.CALM
    alerts: List[str] = field(default_factory=list)

    @property
    def is_calm(self) -> bool:
        return self.overall_state == OverallState.CALM

    def to_dict(self) -> dict:
        """Convert to dictionary for logging"""
        return {
            'market_id': self.market_id,
            'price_velocity': self.price_velocity.to_dict(),
            'volume_velocity': self.volume_velocity.to_dict(),
            'overall_state': self.overall_state.value,
            'alerts': list(self.alerts),
        }
