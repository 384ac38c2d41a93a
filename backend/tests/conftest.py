"""
Pytest configuration and shared fixtures.

Loads environment variables from .env and runs every test against an
isolated in-memory SQLite database.
"""
import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Load .env file before any imports that might use settings
from dotenv import load_dotenv

backend_dir = Path(__file__).parent.parent
env_file = backend_dir / ".env"
if env_file.exists():
    load_dotenv(env_file)

# Never touch a real database from the test suite
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

sys.path.insert(0, str(backend_dir))

from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
import db_models  # noqa: F401
import db_service
from models import DistanceTier, VehicleTypeRequest


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (uses the database)"
    )


# =============================================================================
# Test Database Setup - Isolated In-Memory SQLite
# =============================================================================

test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # Share connection across threads for in-memory DB
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


def override_get_db():
    """Override database dependency for isolated testing."""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create all tables and point the app at the test database."""
    from main import app

    Base.metadata.create_all(bind=test_engine)
    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(autouse=True)
def clean_tables():
    """Empty every table before each test for isolation."""
    db = TestSessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture
def db_session():
    """Get a test database session."""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def session_factory():
    """Session factory bound to the test database, for scripts."""
    return TestSessionLocal


@pytest_asyncio.fixture
async def client():
    """Create an async test client."""
    from main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# =============================================================================
# Shared Data Fixtures
# =============================================================================

# Tiers measured in additional miles beyond a 12 mile threshold
STANDARD_TIERS = [
    DistanceTier(from_miles=0, to_miles=13, price_per_mile=4.0),
    DistanceTier(from_miles=13, to_miles=25, price_per_mile=3.5),
    DistanceTier(from_miles=25, to_miles=0, price_per_mile=3.0),
]


@pytest.fixture
def sedan(db_session):
    """Active sedan: $55 up to 12 miles, three tiers, $5 extras, 10% round-trip discount."""
    return db_service.create_vehicle_type(db_session, VehicleTypeRequest(
        name="Sedan",
        description="Up to 3 passengers",
        capacity=3,
        base_price=55.0,
        base_distance_threshold=12.0,
        distance_tiers=STANDARD_TIERS,
        stop_charge=5.0,
        child_seat_charge=5.0,
        round_trip_discount=10.0,
    ))


@pytest.fixture
def broken_suv(db_session):
    """SUV whose tiers are unsorted, have a gap and no open-ended last tier."""
    return db_service.create_vehicle_type(db_session, VehicleTypeRequest(
        name="SUV",
        capacity=6,
        base_price=75.0,
        distance_tiers=[
            DistanceTier(from_miles=20, to_miles=40, price_per_mile=3.0),
            DistanceTier(from_miles=0, to_miles=10, price_per_mile=5.0),
        ],
    ))
