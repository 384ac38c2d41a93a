"""
Database configuration and session management.
Uses SQLite for development, PostgreSQL for production.
"""
from contextlib import contextmanager
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Shuttle database URL; local SQLite file unless DATABASE_URL is set
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./shuttle.db")

# Some hosts still hand out postgres:// URLs, which SQLAlchemy rejects
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
else:
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for FastAPI to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(session_factory=SessionLocal):
    """
    Session for scripts: rolled back if the block raises, always closed.

    Usage:
        with session_scope() as db:
            db_service.normalize_vehicle_type_tiers(db, vehicle_type)
    """
    db = session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind=None):
    """Create the vehicle type, tier, surge, area and booking tables."""
    import db_models  # noqa: F401  registers the tables on Base.metadata
    Base.metadata.create_all(bind=bind or engine)
