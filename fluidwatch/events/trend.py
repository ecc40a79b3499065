"""Running net-balance series for charting."""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from .aggregator import BalanceEvent, Direction, is_valid_volume


@dataclass(frozen=True)
class TrendPoint:
    timestamp: datetime
    direction: Direction
    volume_ml: float  # signed: output is negative
    cumulative_balance_ml: float


def balance_trend(events: Iterable[BalanceEvent], limit: Optional[int] = None) -> List[TrendPoint]:
    """
    Plain running sum of every valid event in time order.
    No insensible estimate and no sensor-latest rule; this is the raw chart
    series, not the clinical balance.
    """
    ordered = sorted(
        (ev for ev in events if is_valid_volume(ev.volume_ml)),
        key=lambda ev: ev.timestamp,
    )
    points: List[TrendPoint] = []
    running = 0.0
    for ev in ordered:
        direction = Direction(ev.direction)
        signed = float(ev.volume_ml) if direction is Direction.INTAKE else -float(ev.volume_ml)
        running += signed
        points.append(
            TrendPoint(
                timestamp=ev.timestamp,
                direction=direction,
                volume_ml=signed,
                cumulative_balance_ml=running,
            )
        )
    if limit is not None and limit >= 0:
        points = points[-limit:] if limit else []
    return points
