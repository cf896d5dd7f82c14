"""
Tests for the reminder sweep
"""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from interview_dispatch.dispatch_gateway import DispatchGateway
from interview_dispatch.errors import DeliveryError
from interview_dispatch.models import OutcomeStatus
from interview_dispatch.reminder_sweep import ReminderSweeper
from interview_dispatch.status_tracker import StatusTracker


@pytest.fixture
def gateway(mock_generator, mock_delivery, db_manager):
    return DispatchGateway(mock_generator, mock_delivery, db_manager, "https://app", "Brand")


@pytest.fixture
def sweeper(db_manager, gateway):
    return ReminderSweeper(StatusTracker(db_manager), gateway, delay_seconds=0, max_reminders_per_sweep=50)


class TestReminderSweep:
    """Test reminder sweep runs"""

    def test_nothing_to_remind(self, sweeper, mock_delivery):
        result = asyncio.run(sweeper.run())

        assert result.success is True
        assert result.reminders_sent == 0
        assert result.failures == 0
        assert result.details == []
        mock_delivery.send_email.assert_not_called()

    def test_sends_only_inside_window(self, sweeper, mock_delivery, db_manager, create_outcome):
        eligible = create_outcome(email="a@example.com", hours_ago=30)
        create_outcome(email="b@example.com", hours_ago=10)
        create_outcome(email="c@example.com", hours_ago=60)
        create_outcome(email="d@example.com", hours_ago=30, status=OutcomeStatus.CONFIRMED.value)

        result = asyncio.run(sweeper.run())

        assert result.reminders_sent == 1
        assert [d.email for d in result.details] == ["a@example.com"]
        assert result.details[0].reminder_count == 1
        assert db_manager.get_outcome(eligible.id).reminder_count == 1

    def test_one_reminder_per_email(self, sweeper, mock_delivery, create_outcome):
        create_outcome(email="a@example.com", hours_ago=40)
        create_outcome(email="a@example.com", hours_ago=30)

        result = asyncio.run(sweeper.run())

        assert result.reminders_sent == 1
        assert mock_delivery.send_email.call_count == 1

    def test_failure_does_not_stop_sweep(self, sweeper, mock_delivery, create_outcome):
        create_outcome(email="a@example.com", hours_ago=40)
        create_outcome(email="b@example.com", hours_ago=30)
        mock_delivery.send_email = AsyncMock(side_effect=[DeliveryError("rejected"), "email-2"])

        result = asyncio.run(sweeper.run())

        assert result.success is True
        assert result.reminders_sent == 1
        assert result.failures == 1
        assert result.details[0].success is False
        assert "rejected" in result.details[0].error
        assert result.details[1].success is True

    def test_max_per_sweep(self, db_manager, gateway, mock_delivery, create_outcome):
        for i in range(3):
            create_outcome(email=f"c{i}@example.com", hours_ago=30 + i)
        sweeper = ReminderSweeper(StatusTracker(db_manager), gateway, delay_seconds=0, max_reminders_per_sweep=2)

        result = asyncio.run(sweeper.run())

        assert result.reminders_sent == 2
        assert mock_delivery.send_email.call_count == 2

    def test_paces_between_sends(self, db_manager, gateway, create_outcome):
        for i in range(3):
            create_outcome(email=f"c{i}@example.com", hours_ago=30 + i)
        sweeper = ReminderSweeper(StatusTracker(db_manager), gateway, delay_seconds=1.0)

        with patch("interview_dispatch.reminder_sweep.asyncio.sleep", new=AsyncMock()) as sleep:
            asyncio.run(sweeper.run())

        assert sleep.await_count == 2
        sleep.assert_awaited_with(1.0)

    def test_newer_invitation_is_not_reminded(self, sweeper, mock_delivery, db_manager, create_outcome):
        older = create_outcome(hours_ago=30)
        latest = create_outcome(hours_ago=2)

        result = asyncio.run(sweeper.run())

        assert result.reminders_sent == 0
        assert result.failures == 0
        assert result.details == []
        mock_delivery.send_email.assert_not_called()
        assert db_manager.get_outcome(latest.id).reminder_count == 0
        assert db_manager.get_outcome(older.id).reminder_count == 0

    def test_confirmed_latest_is_skipped_without_failure(self, sweeper, mock_delivery, create_outcome):
        create_outcome(hours_ago=40)
        create_outcome(hours_ago=30, status=OutcomeStatus.CONFIRMED.value)

        result = asyncio.run(sweeper.run())

        assert result.failures == 0
        assert result.reminders_sent == 0
        mock_delivery.send_email.assert_not_called()
