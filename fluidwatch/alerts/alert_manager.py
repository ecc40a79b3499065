"""
Alert manager: logs clinical alerts, keeps a recent list, emits to WebSocket.
"""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ..severity.kdigo import KdigoState
from ..severity.scoring import RiskResult, RiskTier

logger = logging.getLogger("fluidwatch.alerts")

WARNING = "Warning"
CRITICAL = "Critical"

_RISK_LEVELS = {
    RiskTier.MEDIUM_RISK: WARNING,
    RiskTier.HIGH_RISK: CRITICAL,
}
_KDIGO_LEVELS = {1: WARNING, 2: CRITICAL, 3: CRITICAL}


@dataclass
class AlertPayload:
    patient_id: int
    kind: str  # "balance" or "kdigo"
    severity: str
    label: str
    value: Optional[float]
    time: float


class AlertManager:
    """
    Raises an alert for medium/high balance risk and KDIGO stage >= 1.
    Repeats of the same (patient, kind, severity) are muted for cooldown_seconds.
    """

    def __init__(self, cooldown_seconds: float = 300.0, max_stored: int = 100):
        self._cooldown = cooldown_seconds
        self._max_stored = max_stored
        self._ws_broadcast: Optional[Callable[[dict], None]] = None
        self._alerts: List[AlertPayload] = []
        self._last_fired: Dict[Tuple[int, str, str], float] = {}

    def set_ws_broadcast(self, callback: Callable[[dict], None]) -> None:
        """Set a function to broadcast JSON to WebSocket clients."""
        self._ws_broadcast = callback

    def evaluate(
        self,
        patient_id: int,
        risk: RiskResult,
        kdigo: KdigoState,
        timestamp: Optional[float] = None,
    ) -> List[AlertPayload]:
        ts = timestamp if timestamp is not None else time.time()
        emitted = []
        level = _RISK_LEVELS.get(risk.tier)
        if level:
            payload = AlertPayload(
                patient_id=patient_id,
                kind="balance",
                severity=level,
                label=risk.label,
                value=round(risk.balance_ml_per_kg, 2) if risk.balance_ml_per_kg is not None else None,
                time=ts,
            )
            if self._emit(payload):
                emitted.append(payload)
        level = _KDIGO_LEVELS.get(kdigo.stage) if kdigo.stage is not None else None
        if level:
            payload = AlertPayload(
                patient_id=patient_id,
                kind="kdigo",
                severity=level,
                label=kdigo.label,
                value=round(kdigo.diuresis_ml_kg_h, 3),
                time=ts,
            )
            if self._emit(payload):
                emitted.append(payload)
        return emitted

    def _emit(self, payload: AlertPayload) -> bool:
        key = (payload.patient_id, payload.kind, payload.severity)
        last = self._last_fired.get(key)
        if last is not None and payload.time - last < self._cooldown:
            return False
        self._last_fired[key] = payload.time

        self._alerts.append(payload)
        if len(self._alerts) > self._max_stored:
            self._alerts = self._alerts[-self._max_stored :]

        logger.warning(
            "[%s] patient %s %s: %s (value=%s)",
            payload.severity, payload.patient_id, payload.kind, payload.label, payload.value,
        )

        if self._ws_broadcast:
            try:
                self._ws_broadcast(asdict(payload))
            except Exception as e:
                logger.exception("WebSocket broadcast error: %s", e)
        return True

    def get_recent(self, limit: int = 50) -> List[dict]:
        """Return recent alerts as list of dicts (newest last)."""
        return [asdict(a) for a in self._alerts[-limit:]]
