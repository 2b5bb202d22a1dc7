from datetime import datetime
from typing import Callable, Generator, Optional
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.settings import settings
from app.db.models import Base, Booking, BookingDay, BookingStatus, PaymentStatus
from app.utils.datetime_utils import to_naive_utc
from tests.factories import FakeNotifier, FrozenClock

# Test database setup
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture
def test_engine():
    """Create test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a database session for each test."""
    session_maker = sessionmaker(
        bind=test_engine, class_=Session, expire_on_commit=False
    )
    session = session_maker()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture(autouse=True)
def notification_settings(monkeypatch):
    """Pin the settings the engine reads so a local .env cannot change results."""
    monkeypatch.setattr(settings, "BASE_URL", "https://bookings.example.com")
    monkeypatch.setattr(settings, "CRON_SECRET", "")
    monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", "twilio-token")
    monkeypatch.setattr(settings, "TWILIO_STATUS_CALLBACK_URL", "")
    monkeypatch.setattr(settings, "NOTIFICATION_MAX_ATTEMPTS", 1)
    monkeypatch.setattr(settings, "NOTIFICATION_CLAIM_TIMEOUT_MINUTES", 15)
    monkeypatch.setattr(settings, "NOTIFICATION_SWEEP_CONCURRENCY", 5)
    monkeypatch.setattr(settings, "NOTIFICATION_SWEEP_BATCH_SIZE", 200)
    monkeypatch.setattr(settings, "NOTIFICATION_SEND_TIMEOUT_SECONDS", 10.0)
    monkeypatch.setattr(settings, "NOTIFICATION_SCHEDULING_MODE", "inline")
    monkeypatch.setattr(settings, "IMMEDIATE_DISPATCH_ENABLED", False)
    monkeypatch.setattr(settings, "IMMEDIATE_DISPATCH_WINDOW_MINUTES", 5)


@pytest.fixture
def mock_celery_task():
    """Mock Celery task for testing retry behavior."""
    mock_task = Mock()
    mock_task.request.retries = 0
    mock_task.max_retries = 3
    mock_task.retry = Mock(side_effect=Exception("Retry called"))
    return mock_task


# Test data factories
@pytest.fixture
def make_booking(db_session: Session, clock: FrozenClock) -> Callable[..., Booking]:
    """Persist a booking created at the clock's current time."""

    def factory(
        status: BookingStatus = BookingStatus.QUOTED,
        advance_payment_status: PaymentStatus = PaymentStatus.PENDING,
        event_date: Optional[str] = None,
        appointment_time: Optional[str] = None,
        customer_email: Optional[str] = "ana@example.com",
        customer_phone: Optional[str] = "(416) 555-0134",
        created_at: Optional[datetime] = None,
    ) -> Booking:
        days = []
        if event_date or appointment_time:
            days.append(
                BookingDay(
                    position=0,
                    event_date=event_date,
                    appointment_time=appointment_time,
                )
            )
        booking = Booking(
            customer_name="Ana Lima",
            customer_email=customer_email,
            customer_phone=customer_phone,
            status=status,
            advance_payment_status=advance_payment_status,
            days=days,
            created_at=to_naive_utc(created_at or clock.now()),
        )
        db_session.add(booking)
        db_session.commit()
        db_session.refresh(booking)
        return booking

    return factory
