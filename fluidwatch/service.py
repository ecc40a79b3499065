"""
Balance service: events -> aggregation -> balance -> {risk, KDIGO}.

Every evaluation is a fresh pass over the stored events of one patient.
The only write is the KDIGO state upsert, issued after the state is fully
computed.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .alerts import AlertManager
from .balance.calculator import BalanceCalculator, BalanceSnapshot
from .db.repository import BalanceRepository, PatientInfo
from .errors import FluidWatchError, PatientNotFound
from .events.aggregator import EventAggregator
from .events.trend import TrendPoint, balance_trend
from .severity.kdigo import MIN_OBSERVATION_HOURS, KdigoState, classify_kdigo
from .severity.scoring import RiskClassifier, RiskResult

logger = logging.getLogger("fluidwatch.service")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PatientEvaluation:
    patient: PatientInfo
    snapshot: BalanceSnapshot
    risk: RiskResult
    kdigo: KdigoState

    def to_dict(self) -> dict:
        return {
            "patient": self.patient.to_dict(),
            "balance": self.snapshot.to_dict(),
            "risk": self.risk.to_dict(),
            "kdigo": self.kdigo.to_dict(),
        }


def observed_hours(created_at: datetime, now: datetime) -> float:
    """Hours since patient creation; 0 when the clock is behind the record."""
    seconds = (now - created_at).total_seconds()
    return seconds / 3600.0 if seconds > 0 else 0.0


class BalanceService:
    def __init__(
        self,
        repository: BalanceRepository,
        aggregator: Optional[EventAggregator] = None,
        calculator: Optional[BalanceCalculator] = None,
        risk_classifier: Optional[RiskClassifier] = None,
        min_observation_hours: float = MIN_OBSERVATION_HOURS,
        alert_manager: Optional[AlertManager] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._repo = repository
        self._aggregator = aggregator or EventAggregator()
        self._calculator = calculator or BalanceCalculator()
        self._risk = risk_classifier or RiskClassifier()
        self._min_obs_hours = min_observation_hours
        self._alerts = alert_manager
        self._clock = clock

    @property
    def repository(self) -> BalanceRepository:
        return self._repo

    def _snapshot(self, patient: PatientInfo) -> BalanceSnapshot:
        events = self._repo.list_events(patient.id)
        aggregation = self._aggregator.aggregate(events)
        return self._calculator.compute(aggregation, patient.weight_kg)

    def compute_balance(self, patient_id: int) -> BalanceSnapshot:
        return self._snapshot(self._repo.get_patient(patient_id))

    def compute_risk(self, snapshot: BalanceSnapshot) -> RiskResult:
        return self._risk.classify(snapshot.net_balance_ml_per_kg, snapshot.has_weight)

    def _kdigo(self, patient: PatientInfo, snapshot: BalanceSnapshot, now: datetime) -> KdigoState:
        state = classify_kdigo(
            snapshot.total_output_ml,
            patient.weight_kg,
            observed_hours(patient.created_at, now),
            min_observation_hours=self._min_obs_hours,
        )
        return replace(state, updated_at=now)

    def compute_kdigo(self, patient_id: int, now: Optional[datetime] = None) -> KdigoState:
        return self.evaluate(patient_id, now=now).kdigo

    def evaluate(self, patient_id: int, now: Optional[datetime] = None) -> PatientEvaluation:
        """Full pass for one patient; persists the KDIGO state."""
        now = now or self._clock()
        patient = self._repo.get_patient(patient_id)
        snapshot = self._snapshot(patient)
        risk = self.compute_risk(snapshot)
        kdigo = self._kdigo(patient, snapshot, now)

        self._repo.upsert_kdigo_state(patient.id, kdigo)

        if self._alerts is not None:
            self._alerts.evaluate(patient.id, risk, kdigo, timestamp=now.timestamp())
        return PatientEvaluation(patient=patient, snapshot=snapshot, risk=risk, kdigo=kdigo)

    def evaluate_all(self, now: Optional[datetime] = None) -> List[PatientEvaluation]:
        """Evaluates every active patient; a failing patient is logged and skipped."""
        now = now or self._clock()
        results = []
        for patient in self._repo.list_patients(active_only=True):
            try:
                results.append(self.evaluate(patient.id, now=now))
            except PatientNotFound:
                logger.warning("patient %s disappeared during evaluation, skipped", patient.id)
            except (FluidWatchError, ValueError) as e:
                logger.error("evaluation of patient %s failed: %s", patient.id, e)
        return results

    def reset_balance(self, patient_id: int) -> int:
        deleted = self._repo.reset_balance(patient_id)
        logger.info("balance reset for patient %s (%s events removed)", patient_id, deleted)
        return deleted

    def trend(self, patient_id: int, limit: Optional[int] = None) -> List[TrendPoint]:
        self._repo.get_patient(patient_id)
        return balance_trend(self._repo.list_events(patient_id), limit=limit)
