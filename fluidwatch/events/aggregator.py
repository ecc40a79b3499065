"""
Reduction of raw balance events into per-origin intake/output subtotals.
Intake always sums; sensor output keeps only the latest meter reading.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


class Direction(str, Enum):
    INTAKE = "intake"
    OUTPUT = "output"


class Origin(str, Enum):
    SENSOR = "sensor"
    MANUAL = "manual"


INTAKE_CATEGORIES = frozenset(
    {"oral", "iv", "enteral", "parenteral", "blood_products", "other_intake"}
)
OUTPUT_CATEGORIES = frozenset(
    {"urine", "liquid_stool", "vomit", "surgical_drain", "gastric_aspirate", "bleeding", "other_output"}
)


@dataclass(frozen=True)
class BalanceEvent:
    direction: Direction
    volume_ml: float
    origin: Origin
    timestamp: datetime
    patient_id: Optional[int] = None
    category: Optional[str] = None
    entry_id: Optional[int] = None  # ThingSpeak entry id for sensor rows
    id: Optional[int] = None


@dataclass(frozen=True)
class Aggregation:
    intake_sensor_total: float = 0.0
    intake_manual_total: float = 0.0
    output_sensor_total: float = 0.0  # latest sensor reading, never a sum
    output_manual_total: float = 0.0
    intake_sensor_latest: float = 0.0
    intake_manual_latest: float = 0.0
    output_sensor_latest: float = 0.0
    output_manual_latest: float = 0.0

    @property
    def intake_total(self) -> float:
        return self.intake_sensor_total + self.intake_manual_total

    @property
    def output_total(self) -> float:
        return self.output_sensor_total + self.output_manual_total

    @property
    def has_events(self) -> bool:
        return self.intake_total != 0 or self.output_total != 0


def is_valid_volume(volume) -> bool:
    """True for finite, strictly positive volumes."""
    try:
        value = float(volume)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and value > 0


class EventAggregator:
    """
    Partitions events by (direction, origin) and reduces each group.
    Stateless: the same event list always gives the same Aggregation.
    """

    # groups whose total is the most recent reading instead of a sum
    LATEST_ONLY = {(Direction.OUTPUT, Origin.SENSOR)}

    def aggregate(self, events: Iterable[BalanceEvent]) -> Aggregation:
        groups: Dict[Tuple[Direction, Origin], List[Tuple[int, BalanceEvent]]] = {
            (d, o): [] for d in Direction for o in Origin
        }
        for index, ev in enumerate(events):
            if not is_valid_volume(ev.volume_ml):
                continue
            key = (Direction(ev.direction), Origin(ev.origin))
            groups[key].append((index, ev))

        totals = {}
        latest = {}
        for key, members in groups.items():
            last = self._latest(members)
            latest[key] = float(last.volume_ml) if last is not None else 0.0
            if key in self.LATEST_ONLY:
                totals[key] = latest[key]
            else:
                totals[key] = float(sum(ev.volume_ml for _, ev in members))

        return Aggregation(
            intake_sensor_total=totals[(Direction.INTAKE, Origin.SENSOR)],
            intake_manual_total=totals[(Direction.INTAKE, Origin.MANUAL)],
            output_sensor_total=totals[(Direction.OUTPUT, Origin.SENSOR)],
            output_manual_total=totals[(Direction.OUTPUT, Origin.MANUAL)],
            intake_sensor_latest=latest[(Direction.INTAKE, Origin.SENSOR)],
            intake_manual_latest=latest[(Direction.INTAKE, Origin.MANUAL)],
            output_sensor_latest=latest[(Direction.OUTPUT, Origin.SENSOR)],
            output_manual_latest=latest[(Direction.OUTPUT, Origin.MANUAL)],
        )

    @staticmethod
    def _latest(members: List[Tuple[int, BalanceEvent]]) -> Optional[BalanceEvent]:
        # equal timestamps: the event listed later wins
        if not members:
            return None
        return max(members, key=lambda item: (item[1].timestamp, item[0]))[1]


_default_aggregator = EventAggregator()


def aggregate(events: Iterable[BalanceEvent]) -> Aggregation:
    return _default_aggregator.aggregate(events)
