"""
Persistence operations used by the balance service and the sensor sync.
Rows are converted to plain dataclasses before the session closes so callers
never hold detached ORM instances.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import PatientNotFound, UpstreamUnavailable
from ..events.aggregator import BalanceEvent, Direction, Origin
from ..severity.kdigo import KdigoState, KdigoStatus
from . import models as db_models

logger = logging.getLogger("fluidwatch.db")

# INSERT .. ON CONFLICT DO UPDATE, one statement per write
_UPSERT_INSERTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}


@dataclass(frozen=True)
class PatientInfo:
    id: int
    name: str
    age_years: Optional[int]
    weight_kg: Optional[float]
    height_cm: Optional[float]
    bmi: float
    device_id: Optional[int]
    active: bool
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "age_years": self.age_years,
            "weight_kg": self.weight_kg,
            "height_cm": self.height_cm,
            "bmi": self.bmi,
            "device_id": self.device_id,
            "active": self.active,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class DeviceInfo:
    id: int
    name: str
    channel_id: str
    api_key: Optional[str]
    active: bool


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; they were stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _patient_info(row: db_models.Patient) -> PatientInfo:
    return PatientInfo(
        id=row.id,
        name=row.name,
        age_years=row.age_years,
        weight_kg=row.weight_kg,
        height_cm=row.height_cm,
        bmi=row.bmi or 0.0,
        device_id=row.device_id,
        active=bool(row.active),
        created_at=as_utc(row.created_at),
    )


def _device_info(row: db_models.Device) -> DeviceInfo:
    return DeviceInfo(
        id=row.id,
        name=row.name,
        channel_id=row.channel_id,
        api_key=row.api_key,
        active=bool(row.active),
    )


def _event(row: db_models.BalanceEventRecord) -> BalanceEvent:
    return BalanceEvent(
        direction=Direction(row.direction),
        volume_ml=row.volume_ml,
        origin=Origin(row.origin),
        timestamp=as_utc(row.timestamp),
        patient_id=row.patient_id,
        category=row.category,
        entry_id=row.entry_id,
        id=row.id,
    )


class BalanceRepository:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        sess = self._session_factory()
        try:
            yield sess
            sess.commit()
        except SQLAlchemyError as e:
            sess.rollback()
            logger.exception("database operation failed: %s", e)
            raise UpstreamUnavailable(f"database unavailable: {e}") from e
        except Exception:
            sess.rollback()
            raise
        finally:
            sess.close()

    @staticmethod
    def _require_patient(sess: Session, patient_id: int) -> db_models.Patient:
        row = sess.get(db_models.Patient, patient_id)
        if row is None:
            raise PatientNotFound(patient_id)
        return row

    # ---- patients ----

    def create_patient(
        self,
        name: str,
        weight_kg: Optional[float] = None,
        height_cm: Optional[float] = None,
        age_years: Optional[int] = None,
        device_id: Optional[int] = None,
        created_at: Optional[datetime] = None,
    ) -> PatientInfo:
        with self._session() as sess:
            row = db_models.Patient(
                name=name,
                age_years=age_years,
                weight_kg=weight_kg,
                height_cm=height_cm,
                device_id=device_id,
            )
            if created_at is not None:
                row.created_at = as_utc(created_at)
            sess.add(row)
            sess.flush()
            return _patient_info(row)

    def update_patient(self, patient_id: int, **fields) -> PatientInfo:
        allowed = {"name", "age_years", "weight_kg", "height_cm", "device_id", "active"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"cannot update patient fields: {sorted(unknown)}")
        with self._session() as sess:
            row = self._require_patient(sess, patient_id)
            for key, value in fields.items():
                setattr(row, key, value)
            sess.flush()
            return _patient_info(row)

    def get_patient(self, patient_id: int) -> PatientInfo:
        with self._session() as sess:
            return _patient_info(self._require_patient(sess, patient_id))

    def patient_exists(self, patient_id: int) -> bool:
        with self._session() as sess:
            return sess.get(db_models.Patient, patient_id) is not None

    def list_patients(self, active_only: bool = False) -> List[PatientInfo]:
        with self._session() as sess:
            q = sess.query(db_models.Patient)
            if active_only:
                q = q.filter(db_models.Patient.active.is_(True))
            return [_patient_info(r) for r in q.order_by(db_models.Patient.created_at.desc()).all()]

    def delete_patient(self, patient_id: int) -> None:
        """Removes the patient together with its events and KDIGO state."""
        with self._session() as sess:
            row = self._require_patient(sess, patient_id)
            sess.query(db_models.BalanceEventRecord).filter_by(patient_id=patient_id).delete(
                synchronize_session=False
            )
            sess.query(db_models.KdigoStateRecord).filter_by(patient_id=patient_id).delete(
                synchronize_session=False
            )
            sess.expire(row)
            sess.delete(row)

    # ---- events ----

    def list_events(self, patient_id: int) -> List[BalanceEvent]:
        with self._session() as sess:
            rows = (
                sess.query(db_models.BalanceEventRecord)
                .filter_by(patient_id=patient_id)
                .order_by(db_models.BalanceEventRecord.timestamp.asc(), db_models.BalanceEventRecord.id.asc())
                .all()
            )
            events = []
            for r in rows:
                try:
                    events.append(_event(r))
                except ValueError:
                    logger.warning(
                        "skipping event %s of patient %s: direction=%r origin=%r",
                        r.id, patient_id, r.direction, r.origin,
                    )
            return events

    def add_event(
        self,
        patient_id: int,
        direction: Direction,
        volume_ml: float,
        origin: Origin = Origin.MANUAL,
        timestamp: Optional[datetime] = None,
        category: Optional[str] = None,
        weight_g: Optional[float] = None,
        notes: Optional[str] = None,
        entry_id: Optional[int] = None,
    ) -> BalanceEvent:
        with self._session() as sess:
            self._require_patient(sess, patient_id)
            row = db_models.BalanceEventRecord(
                patient_id=patient_id,
                direction=Direction(direction).value,
                origin=Origin(origin).value,
                volume_ml=volume_ml,
                category=category,
                weight_g=weight_g,
                notes=notes,
                entry_id=entry_id,
            )
            if timestamp is not None:
                row.timestamp = as_utc(timestamp)
            sess.add(row)
            sess.flush()
            return _event(row)

    def last_sensor_entry_id(self, patient_id: int) -> int:
        with self._session() as sess:
            value = (
                sess.query(func.max(db_models.BalanceEventRecord.entry_id))
                .filter(
                    db_models.BalanceEventRecord.patient_id == patient_id,
                    db_models.BalanceEventRecord.origin == Origin.SENSOR.value,
                )
                .scalar()
            )
            return int(value or 0)

    def reset_balance(self, patient_id: int) -> int:
        """Deletes every event and the KDIGO state of a patient in one transaction."""
        with self._session() as sess:
            self._require_patient(sess, patient_id)
            deleted = (
                sess.query(db_models.BalanceEventRecord)
                .filter_by(patient_id=patient_id)
                .delete(synchronize_session=False)
            )
            sess.query(db_models.KdigoStateRecord).filter_by(patient_id=patient_id).delete(
                synchronize_session=False
            )
            return deleted

    # ---- KDIGO ----

    def upsert_kdigo_state(self, patient_id: int, state: KdigoState) -> None:
        """Insert or replace the KDIGO row of a patient; concurrent writers converge."""
        values = {
            "patient_id": patient_id,
            "status": state.status.value,
            "stage": state.stage,
            "label": state.label,
            "observed_hours": state.observed_hours,
            "cumulative_output_ml": state.cumulative_output_ml,
            "diuresis_ml_kg_h": state.diuresis_ml_kg_h,
            "updated_at": state.updated_at or db_models.utc_now(),
        }
        with self._session() as sess:
            insert = _UPSERT_INSERTS.get(sess.get_bind().dialect.name)
            if insert is None:
                sess.merge(db_models.KdigoStateRecord(**values))
                return
            table = db_models.KdigoStateRecord.__table__
            stmt = insert(table).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.patient_id],
                set_={key: value for key, value in values.items() if key != "patient_id"},
            )
            sess.execute(stmt)

    def get_kdigo_state(self, patient_id: int) -> Optional[KdigoState]:
        with self._session() as sess:
            row = sess.get(db_models.KdigoStateRecord, patient_id)
            if row is None:
                return None
            return KdigoState(
                status=KdigoStatus(row.status),
                stage=row.stage,
                label=row.label,
                description="",
                observed_hours=row.observed_hours,
                cumulative_output_ml=row.cumulative_output_ml,
                diuresis_ml_kg_h=row.diuresis_ml_kg_h,
                updated_at=as_utc(row.updated_at),
            )

    # ---- devices ----

    def create_device(
        self, name: str, channel_id: str, api_key: Optional[str] = None, active: bool = True
    ) -> DeviceInfo:
        with self._session() as sess:
            row = db_models.Device(name=name, channel_id=channel_id, api_key=api_key, active=active)
            sess.add(row)
            sess.flush()
            return _device_info(row)

    def list_active_devices(self) -> List[DeviceInfo]:
        with self._session() as sess:
            rows = (
                sess.query(db_models.Device)
                .filter(db_models.Device.active.is_(True))
                .order_by(db_models.Device.id)
                .all()
            )
            return [_device_info(r) for r in rows]

    def patients_for_device(self, device_id: int) -> List[PatientInfo]:
        with self._session() as sess:
            rows = (
                sess.query(db_models.Patient)
                .filter(
                    db_models.Patient.device_id == device_id,
                    db_models.Patient.active.is_(True),
                )
                .order_by(db_models.Patient.id)
                .all()
            )
            return [_patient_info(r) for r in rows]
