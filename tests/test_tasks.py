from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from app.db.models import NotificationKind
from app.services.notifications.store import NotificationRecordStore
from app.tasks.background.booking_notifications import (
    _async_ensure_booking_notifications,
)
from app.tasks.cron.scheduled_notification_sweeper import (
    _async_scheduled_notification_sweeper,
)
from app.utils.errors import DatabaseError
from tests.factories import FakeNotifier


@pytest.fixture
def task_session(db_session):
    """Route the tasks' session loop to the test session."""

    def sessions():
        yield db_session

    return sessions


class TestScheduledNotificationSweeper:
    """Test the periodic sweep task."""

    @pytest.mark.asyncio
    async def test_sweep_task_reports_counts(self, db_session, task_session, make_booking):
        """Test the task returns the sweep summary with the request ID."""
        # Old enough that every creation-relative record is due on the real clock
        booking = make_booking(created_at=datetime(2020, 1, 6, 15, 0, tzinfo=timezone.utc))
        with patch(
            "app.tasks.background.booking_notifications.get_sync_session", task_session
        ):
            await _async_ensure_booking_notifications(None, "req-1", booking.id, False)

        notifier = FakeNotifier()
        with patch(
            "app.tasks.cron.scheduled_notification_sweeper.get_sync_session", task_session
        ), patch(
            "app.tasks.cron.scheduled_notification_sweeper.get_default_notifier",
            return_value=notifier,
        ):
            result = await _async_scheduled_notification_sweeper("sweep-1")

        assert result["success"] is True
        assert result["request_id"] == "sweep-1"
        assert result["sent"] >= 1
        assert NotificationKind.INITIAL in notifier.kinds()

    @pytest.mark.asyncio
    async def test_sweep_task_failure(self, task_session):
        """Test a failing sweep is reported, not raised."""
        with patch(
            "app.tasks.cron.scheduled_notification_sweeper.get_sync_session", task_session
        ), patch(
            "app.tasks.cron.scheduled_notification_sweeper.DueSweeper.run_sweep",
            side_effect=DatabaseError("Failed to claim scheduled notification"),
        ):
            result = await _async_scheduled_notification_sweeper("sweep-2")

        assert result["success"] is False
        assert "claim" in result["error"]


class TestEnsureBookingNotificationsTask:
    """Test the background scheduling task."""

    @pytest.mark.asyncio
    async def test_schedules_booking(self, db_session, task_session, make_booking):
        """Test the task creates the booking's records."""
        booking = make_booking()

        with patch(
            "app.tasks.background.booking_notifications.get_sync_session", task_session
        ):
            result = await _async_ensure_booking_notifications(
                None, "req-2", booking.id, False
            )

        assert result["success"] is True
        assert "initial" in result["created"]
        records = NotificationRecordStore(db_session).list_for_booking(booking.id)
        assert len(records) == 8

    @pytest.mark.asyncio
    async def test_missing_booking(self, task_session):
        """Test an unknown booking is reported without retrying."""
        with patch(
            "app.tasks.background.booking_notifications.get_sync_session", task_session
        ):
            result = await _async_ensure_booking_notifications(
                None, "req-3", "missing", False
            )

        assert result["success"] is False
        assert result["booking_id"] == "missing"

    @pytest.mark.asyncio
    async def test_database_error_retries(self, task_session, mock_celery_task, make_booking):
        """Test store outages trigger a Celery retry with backoff."""
        booking = make_booking()

        with patch(
            "app.tasks.background.booking_notifications.get_sync_session", task_session
        ), patch(
            "app.tasks.background.booking_notifications.BookingService.run_scheduling",
            side_effect=DatabaseError("Failed to insert scheduled notification"),
        ):
            with pytest.raises(Exception, match="Retry called"):
                await _async_ensure_booking_notifications(
                    mock_celery_task, "req-4", booking.id, False
                )

        mock_celery_task.retry.assert_called_once_with(countdown=60)

    @pytest.mark.asyncio
    async def test_database_error_after_last_retry(self, task_session, mock_celery_task, make_booking):
        """Test the failure is returned once retries are used up."""
        booking = make_booking()
        mock_celery_task.request.retries = 3

        with patch(
            "app.tasks.background.booking_notifications.get_sync_session", task_session
        ), patch(
            "app.tasks.background.booking_notifications.BookingService.run_scheduling",
            side_effect=DatabaseError("Failed to insert scheduled notification"),
        ):
            result = await _async_ensure_booking_notifications(
                mock_celery_task, "req-5", booking.id, False
            )

        assert result["success"] is False
        mock_celery_task.retry.assert_not_called()
