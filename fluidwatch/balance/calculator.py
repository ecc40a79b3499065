"""
Net fluid balance from aggregated events plus insensible estimates.
"""

import math
from dataclasses import dataclass
from typing import Optional

from ..events.aggregator import Aggregation, Direction
from .insensible import INTAKE_ML_KG_H, OUTPUT_ML_KG_H, InsensibleEstimate, estimate_insensible


@dataclass(frozen=True)
class BalanceSnapshot:
    aggregation: Aggregation
    weight_kg: float
    elapsed_hours: float
    insensible_intake: InsensibleEstimate
    insensible_output: InsensibleEstimate
    total_intake_ml: float
    total_output_ml: float
    net_balance_ml: float
    net_balance_ml_per_kg: Optional[float]  # None when weight is unknown

    @property
    def has_weight(self) -> bool:
        return self.net_balance_ml_per_kg is not None

    def to_dict(self) -> dict:
        agg = self.aggregation
        return {
            "intake_sensor_total": agg.intake_sensor_total,
            "intake_manual_total": agg.intake_manual_total,
            "intake_sensor_latest": agg.intake_sensor_latest,
            "intake_manual_latest": agg.intake_manual_latest,
            "output_sensor_total": agg.output_sensor_total,
            "output_manual_total": agg.output_manual_total,
            "output_sensor_latest": agg.output_sensor_latest,
            "output_manual_latest": agg.output_manual_latest,
            "insensible_intake_per_hour": self.insensible_intake.per_hour,
            "insensible_intake_cumulative": self.insensible_intake.cumulative,
            "insensible_output_per_hour": self.insensible_output.per_hour,
            "insensible_output_cumulative": self.insensible_output.cumulative,
            "total_intake_ml": self.total_intake_ml,
            "total_output_ml": self.total_output_ml,
            "net_balance_ml": self.net_balance_ml,
            "net_balance_ml_per_kg": self.net_balance_ml_per_kg,
            "elapsed_hours": self.elapsed_hours,
        }


class BalanceCalculator:
    """
    total_intake = sensor + manual + insensible intake
    total_output = latest sensor reading + manual + insensible output

    The insensible window is a single 1 h bucket whenever any event exists,
    whatever the real time span. Long stays are undercounted; the displayed
    figure intentionally keeps that behaviour.
    """

    BUCKET_HOURS = 1.0

    def __init__(
        self,
        intake_coefficient: float = INTAKE_ML_KG_H,
        output_coefficient: float = OUTPUT_ML_KG_H,
    ):
        self._intake_coef = intake_coefficient
        self._output_coef = output_coefficient

    def compute(
        self,
        aggregation: Aggregation,
        weight_kg: Optional[float],
        elapsed_hours: Optional[float] = None,
    ) -> BalanceSnapshot:
        weight = float(weight_kg) if weight_kg and math.isfinite(weight_kg) and weight_kg > 0 else 0.0
        if elapsed_hours is None:
            hours = self.BUCKET_HOURS if aggregation.has_events else 0.0
        else:
            hours = max(0.0, float(elapsed_hours))

        ins_in = estimate_insensible(
            Direction.INTAKE, weight, hours, self._intake_coef, self._output_coef
        )
        ins_out = estimate_insensible(
            Direction.OUTPUT, weight, hours, self._intake_coef, self._output_coef
        )

        total_intake = aggregation.intake_total + ins_in.cumulative
        total_output = aggregation.output_total + ins_out.cumulative
        net = total_intake - total_output

        return BalanceSnapshot(
            aggregation=aggregation,
            weight_kg=weight,
            elapsed_hours=hours,
            insensible_intake=ins_in,
            insensible_output=ins_out,
            total_intake_ml=total_intake,
            total_output_ml=total_output,
            net_balance_ml=net,
            net_balance_ml_per_kg=net / weight if weight > 0 else None,
        )


def compute_balance(
    aggregation: Aggregation,
    weight_kg: Optional[float],
    elapsed_hours: Optional[float] = None,
) -> BalanceSnapshot:
    return BalanceCalculator().compute(aggregation, weight_kg, elapsed_hours)
