from .anthropometry import compute_bmi
from .calculator import BalanceCalculator, BalanceSnapshot, compute_balance
from .insensible import InsensibleEstimate, estimate_insensible

__all__ = [
    "compute_bmi",
    "BalanceCalculator",
    "BalanceSnapshot",
    "compute_balance",
    "InsensibleEstimate",
    "estimate_insensible",
]
