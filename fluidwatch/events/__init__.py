from .aggregator import (
    INTAKE_CATEGORIES,
    OUTPUT_CATEGORIES,
    Aggregation,
    BalanceEvent,
    Direction,
    EventAggregator,
    Origin,
    aggregate,
    is_valid_volume,
)
from .trend import TrendPoint, balance_trend

__all__ = [
    "INTAKE_CATEGORIES",
    "OUTPUT_CATEGORIES",
    "Aggregation",
    "BalanceEvent",
    "Direction",
    "EventAggregator",
    "Origin",
    "aggregate",
    "is_valid_volume",
    "TrendPoint",
    "balance_trend",
]
