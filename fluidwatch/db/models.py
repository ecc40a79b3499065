"""SQLAlchemy ORM models for FluidWatch.
Compatible with both SQLite (local) and PostgreSQL (Docker/production).
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship, validates

from ..balance.anthropometry import compute_bmi

Base = declarative_base()


def utc_now():
    return datetime.now(timezone.utc)


class Device(Base):
    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    channel_id = Column(String, nullable=False)
    api_key = Column(String, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    patients = relationship("Patient", back_populates="device")


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    age_years = Column(Integer, nullable=True)
    weight_kg = Column(Float, nullable=True)
    height_cm = Column(Float, nullable=True)
    bmi = Column(Float, nullable=False, default=0.0)
    active = Column(Boolean, nullable=False, default=True)
    device_id = Column(Integer, ForeignKey("devices.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    device = relationship("Device", back_populates="patients")
    events = relationship(
        "BalanceEventRecord", back_populates="patient", cascade="all, delete-orphan"
    )
    kdigo_state = relationship(
        "KdigoStateRecord", back_populates="patient", cascade="all, delete-orphan", uselist=False
    )

    @validates("weight_kg", "height_cm")
    def _recompute_bmi(self, key, value):
        weight = value if key == "weight_kg" else self.weight_kg
        height = value if key == "height_cm" else self.height_cm
        self.bmi = compute_bmi(weight, height)
        return value


class BalanceEventRecord(Base):
    __tablename__ = "balance_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    direction = Column(String(16), nullable=False)
    origin = Column(String(16), nullable=False)
    category = Column(String, nullable=True)
    volume_ml = Column(Float, nullable=False)
    weight_g = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    entry_id = Column(Integer, nullable=True, index=True)
    timestamp = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    patient = relationship("Patient", back_populates="events")


class KdigoStateRecord(Base):
    __tablename__ = "kdigo_state"

    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), primary_key=True)
    status = Column(String(16), nullable=False)
    stage = Column(Integer, nullable=True)
    label = Column(String, nullable=False)
    observed_hours = Column(Float, nullable=False)
    cumulative_output_ml = Column(Float, nullable=False)
    diuresis_ml_kg_h = Column(Float, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    patient = relationship("Patient", back_populates="kdigo_state")
