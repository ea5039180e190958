# Imports for testing tools
import os
import datetime
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from unittest.mock import AsyncMock

# Point the application at a throwaway database before it is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_bnb_booking.db")
os.environ.setdefault("PAYMENT_GATEWAY_SECRET", "test-gateway-secret")

# Import your application code
from bnb_booking.main import app
from bnb_booking.database import Base, get_db
from bnb_booking.routers.booking_router import public_limiter
from bnb_booking import models, schemas, booking_service

# Saturday 1 March 2025, 10:00 in Asia/Taipei
NOW = datetime.datetime(2025, 3, 1, 2, 0, 0)


# --- Database Management Fixtures ---
@pytest.fixture(scope="function")
def engine(tmp_path):
    """A fresh SQLite file per test, so a rolled-back conflict never leaks into the next test."""
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'test_booking.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    """Provides a database session for each booking test."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


# --- Mocking External Services ---
@pytest.fixture(scope="function", autouse=True)
def mock_background_tasks(mocker):
    """
    Mocks the background tasks (poller and scheduler) and the Redis-backed
    limiter that the app lifespan starts.
    """
    mocker.patch("bnb_booking.main.run_outbox_poller", new_callable=AsyncMock)
    mocker.patch("bnb_booking.main.run_booking_scheduler", new_callable=AsyncMock)
    mocker.patch("bnb_booking.main.FastAPILimiter.init", new_callable=AsyncMock)


# --- API Test Client Fixture ---
@pytest.fixture(scope="function")
def client(db_session):
    """Provides a TestClient for the booking service."""
    def override_get_db():
        """Overrides the get_db dependency for booking tests."""
        yield db_session

    async def no_rate_limit():
        return None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[public_limiter] = no_rate_limit

    with TestClient(app) as c:
        yield c

    # Clean up overrides
    app.dependency_overrides.clear()


# --- Seed data ---
@pytest.fixture
def room_types(db_session):
    """Deluxe at 2000/night (+500 on holidays) and Standard at 1500/night (+300)."""
    deluxe = models.RoomType(name="deluxe", display_name="Deluxe", price=2000, holiday_surcharge=500,
                             max_occupancy=2, display_order=1)
    standard = models.RoomType(name="standard", display_name="Standard", price=1500, holiday_surcharge=300,
                               max_occupancy=2, display_order=2)
    db_session.add_all([deluxe, standard])
    db_session.commit()
    return {"deluxe": deluxe, "standard": standard}


@pytest.fixture
def breakfast(db_session):
    addon = models.Addon(name="breakfast", display_name="Breakfast", price=250)
    db_session.add(addon)
    db_session.commit()
    return addon


@pytest.fixture
def make_booking(db_session, room_types):
    """Factory that books through the service layer at a fixed `now`."""
    def _make(check_in="2025-03-10", check_out="2025-03-12", room_type="deluxe", payment_method="transfer",
              email="guest@example.com", now=NOW, **extra):
        request = schemas.BookingCreate(
            check_in_date=check_in,
            check_out_date=check_out,
            room_type=room_type,
            guest_name="Chen Mei",
            guest_phone="0912345678",
            guest_email=email,
            payment_method=payment_method,
            **extra,
        )
        return booking_service.create_booking(db_session, request, now=now)
    return _make
