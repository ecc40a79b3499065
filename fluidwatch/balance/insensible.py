"""
Insensible gains/losses estimated from body weight.
Intake 0.2 mL/kg/h, output 0.5 mL/kg/h.
"""

from dataclasses import dataclass

from ..events.aggregator import Direction

INTAKE_ML_KG_H = 0.2
OUTPUT_ML_KG_H = 0.5


@dataclass(frozen=True)
class InsensibleEstimate:
    per_hour: float = 0.0
    cumulative: float = 0.0


def estimate_insensible(
    direction: Direction,
    weight_kg: float,
    elapsed_hours: float,
    intake_coefficient: float = INTAKE_ML_KG_H,
    output_coefficient: float = OUTPUT_ML_KG_H,
) -> InsensibleEstimate:
    if not weight_kg or not elapsed_hours or weight_kg <= 0 or elapsed_hours <= 0:
        return InsensibleEstimate()
    if Direction(direction) is Direction.INTAKE:
        coefficient = intake_coefficient
    else:
        coefficient = output_coefficient
    per_hour = coefficient * weight_kg
    return InsensibleEstimate(per_hour=per_hour, cumulative=per_hour * elapsed_hours)
