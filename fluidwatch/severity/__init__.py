from .kdigo import KdigoState, KdigoStatus, classify_kdigo
from .scoring import RiskClassifier, RiskResult, RiskTier, classify_risk

__all__ = [
    "KdigoState",
    "KdigoStatus",
    "classify_kdigo",
    "RiskClassifier",
    "RiskResult",
    "RiskTier",
    "classify_risk",
]
