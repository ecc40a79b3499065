import math
from typing import Optional


def compute_bmi(weight_kg: Optional[float], height_cm: Optional[float]) -> float:
    """BMI in kg/m2, rounded to 2 decimals. 0 when weight or height is missing."""
    if not weight_kg or not height_cm:
        return 0.0
    if not (math.isfinite(weight_kg) and math.isfinite(height_cm)):
        return 0.0
    if weight_kg <= 0 or height_cm <= 0:
        return 0.0
    height_m = height_cm / 100.0
    return round(weight_kg / (height_m * height_m), 2)
