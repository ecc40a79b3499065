from datetime import datetime, timedelta, timezone

from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from fluidwatch.db.models import Base
from fluidwatch.db.repository import BalanceRepository
from fluidwatch.db.session import build_engine
from fluidwatch.events import BalanceEvent, Direction, Origin

T0 = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    return T0 + timedelta(minutes=minutes)


def event(direction, origin, volume, minutes=0.0, **kwargs) -> BalanceEvent:
    return BalanceEvent(
        direction=Direction(direction),
        volume_ml=volume,
        origin=Origin(origin),
        timestamp=at(minutes),
        **kwargs,
    )


def memory_repository():
    """Fresh in-memory SQLite repository; returns (repository, engine)."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    return BalanceRepository(sessionmaker(bind=engine)), engine


def scenario_events():
    """60 kg reference case: manual intake 500, sensor intake 100+300,
    sensor output readings 40 then 25, manual output 10."""
    return [
        event("intake", "manual", 500, 10),
        event("intake", "sensor", 100, 20),
        event("intake", "sensor", 300, 40),
        event("output", "sensor", 40, 30),
        event("output", "sensor", 25, 50),
        event("output", "manual", 10, 60),
    ]


def corrupt_event(engine, event_id, direction="ingreso"):
    """Writes a direction outside the enum straight into the events table."""
    with engine.begin() as conn:
        conn.execute(
            text("UPDATE balance_events SET direction = :direction WHERE id = :id"),
            {"direction": direction, "id": event_id},
        )
