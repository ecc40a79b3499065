"""
Weight-normalised fluid balance risk.
Tiers: neutral (|x| <= 10 mL/kg), medium (10-40), high (>= 40), not evaluable without weight.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RiskTier(str, Enum):
    NOT_EVALUABLE = "not_evaluable"
    NEUTRAL = "neutral"
    MEDIUM_RISK = "medium_risk"
    HIGH_RISK = "high_risk"


RISK_LABELS = {
    RiskTier.NOT_EVALUABLE: "Not evaluable (no weight)",
    RiskTier.NEUTRAL: "Neutral balance",
    RiskTier.MEDIUM_RISK: "Medium risk",
    RiskTier.HIGH_RISK: "High risk",
}


@dataclass(frozen=True)
class RiskResult:
    tier: RiskTier
    label: str
    balance_ml_per_kg: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "tier": self.tier.value,
            "label": self.label,
            "balance_ml_per_kg": self.balance_ml_per_kg,
        }


class RiskClassifier:
    def __init__(self, neutral_limit: float = 10.0, high_limit: float = 40.0):
        self._neutral = neutral_limit
        self._high = high_limit

    def classify(self, balance_ml_per_kg: Optional[float], has_weight: bool) -> RiskResult:
        if not has_weight or balance_ml_per_kg is None or not math.isfinite(balance_ml_per_kg):
            return RiskResult(RiskTier.NOT_EVALUABLE, RISK_LABELS[RiskTier.NOT_EVALUABLE])

        abs_val = abs(balance_ml_per_kg)
        if abs_val <= self._neutral:
            tier = RiskTier.NEUTRAL
        elif abs_val < self._high:
            tier = RiskTier.MEDIUM_RISK
        else:
            tier = RiskTier.HIGH_RISK
        return RiskResult(tier, RISK_LABELS[tier], balance_ml_per_kg)


def classify_risk(balance_ml_per_kg: Optional[float], has_weight: bool) -> RiskResult:
    return RiskClassifier().classify(balance_ml_per_kg, has_weight)
