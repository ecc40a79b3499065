"""Database session management with retry logic.
Local deployment: defaults to SQLite (no PostgreSQL required).
Docker / production: set DATABASE_URL or POSTGRES_* to use PostgreSQL.
"""
import logging
import os
import time
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger("fluidwatch.db")


def resolve_database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    if os.getenv("USE_POSTGRES", "").lower() in ("1", "true", "yes"):
        user = os.getenv("POSTGRES_USER", "admin")
        pwd = os.getenv("POSTGRES_PASSWORD", "password")
        db = os.getenv("POSTGRES_DB", "fluidwatch")
        host = os.getenv("POSTGRES_HOST", "localhost")
        port = os.getenv("POSTGRES_PORT", "5432")
        return f"postgresql://{user}:{pwd}@{host}:{port}/{db}"
    db_path = Path(__file__).resolve().parent.parent.parent / "fluidwatch.db"
    logger.info("Using SQLite for local deployment: %s", db_path)
    return f"sqlite:///{db_path}"


_engine = None
SessionLocal = None


def build_engine(url: str):
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        kwargs["pool_pre_ping"] = False
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty db
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(url, **kwargs)


def get_engine(url: Optional[str] = None):
    global _engine, SessionLocal
    if _engine is None:
        url = url or resolve_database_url()
        attempts = 3
        for i in range(attempts):
            try:
                _engine = build_engine(url)
                SessionLocal = sessionmaker(bind=_engine)
                break
            except OperationalError as e:
                logger.warning("Database connection failed (attempt %s): %s", i + 1, e)
                time.sleep(2)
        if _engine is None:
            raise RuntimeError("Could not create database engine")
    return _engine


def create_tables():
    eng = get_engine()
    Base.metadata.create_all(bind=eng)


def get_session():
    if SessionLocal is None:
        get_engine()
    return SessionLocal()


def dispose():
    global _engine, SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    SessionLocal = None
