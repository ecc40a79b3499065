"""
KDIGO acute kidney injury staging by urine output.

Urine output criteria (KDIGO 2012):
    Stage 1: < 0.5 mL/kg/h for 6-12 h
    Stage 2: < 0.5 mL/kg/h for >= 12 h
    Stage 3: < 0.3 mL/kg/h for >= 24 h, or anuria for >= 12 h

Each call evaluates the whole observation window from scratch; there is no
incremental state. Checks run from most to least severe and the first match
wins, so a longer window at the same rate never yields a lower stage.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

MIN_OBSERVATION_HOURS = 6.0
ANURIA_MAX_ML = 1.0


class KdigoStatus(str, Enum):
    NOT_EVALUABLE = "not_evaluable"
    OBSERVING = "observing"
    STAGED = "staged"


@dataclass(frozen=True)
class KdigoState:
    status: KdigoStatus
    stage: Optional[int]
    label: str
    description: str
    observed_hours: float
    cumulative_output_ml: float
    diuresis_ml_kg_h: float
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "stage": self.stage,
            "label": self.label,
            "description": self.description,
            "observed_hours": self.observed_hours,
            "cumulative_output_ml": self.cumulative_output_ml,
            "diuresis_ml_kg_h": self.diuresis_ml_kg_h,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


def classify_kdigo(
    cumulative_output_ml: float,
    weight_kg: Optional[float],
    observed_hours: float,
    min_observation_hours: float = MIN_OBSERVATION_HOURS,
) -> KdigoState:
    output = float(cumulative_output_ml or 0.0)
    hours = float(observed_hours or 0.0)

    weight = float(weight_kg or 0.0)
    finite = math.isfinite(output) and math.isfinite(hours) and math.isfinite(weight)
    if not finite or weight <= 0 or hours <= 0:
        return KdigoState(
            status=KdigoStatus.NOT_EVALUABLE,
            stage=None,
            label="Not evaluable",
            description="Patient weight and an observation time above 0 h are required.",
            observed_hours=max(hours, 0.0) if math.isfinite(hours) else 0.0,
            cumulative_output_ml=output if math.isfinite(output) else 0.0,
            diuresis_ml_kg_h=0.0,
        )

    diuresis = output / (weight * hours)

    if hours < min_observation_hours:
        return KdigoState(
            status=KdigoStatus.OBSERVING,
            stage=None,
            label="In observation",
            description=(
                f"Less than {min_observation_hours:g} h of observation; "
                "urine output cannot be staged yet."
            ),
            observed_hours=hours,
            cumulative_output_ml=output,
            diuresis_ml_kg_h=diuresis,
        )

    if output <= ANURIA_MAX_ML and hours >= 12:
        stage, label = 3, "Stage 3 (anuria)"
        description = "Anuria for at least 12 h."
    elif diuresis < 0.3 and hours >= 24:
        stage, label = 3, "Stage 3"
        description = "Urine output < 0.3 mL/kg/h for at least 24 h."
    elif diuresis < 0.5 and hours >= 12:
        stage, label = 2, "Stage 2"
        description = "Urine output < 0.5 mL/kg/h for at least 12 h."
    elif diuresis < 0.5 and hours >= min_observation_hours:
        stage, label = 1, "Stage 1"
        description = "Urine output < 0.5 mL/kg/h for 6 to 12 h."
    else:
        stage, label = 0, "No AKI by urine output"
        description = "Urine output is adequate by KDIGO criteria."

    return KdigoState(
        status=KdigoStatus.STAGED,
        stage=stage,
        label=label,
        description=description,
        observed_hours=hours,
        cumulative_output_ml=output,
        diuresis_ml_kg_h=diuresis,
    )
