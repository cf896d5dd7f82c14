"""
Status Tracker

Read/update operations over persisted dispatch outcomes: confirmation
state, reminder eligibility and the dashboard views.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from interview_dispatch.database import DatabaseManager, normalize_email, utcnow
from interview_dispatch.errors import NotFoundError
from interview_dispatch.models import (
    ConfirmationState,
    DispatchOutcome,
    OutcomeStatistics,
    OutcomeStatus,
)

logger = logging.getLogger(__name__)


class StatusTracker:
    """Tracks candidate confirmation state"""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def get_latest(self, email: str) -> Optional[DispatchOutcome]:
        """Active outcome for a candidate (latest by sent_at)"""
        return self.db.get_latest_outcome(email)

    def update_status(self, email: str, status: OutcomeStatus, now: Optional[datetime] = None) -> DispatchOutcome:
        """
        Set the status of a candidate's latest outcome.

        Args:
            email: Candidate email
            status: New status
            now: Timestamp used for confirmed_at

        Returns:
            Updated outcome

        Raises:
            NotFoundError: If the candidate has no outcome
        """
        outcome = self.db.set_status(email, status, now=now or utcnow())
        if not outcome:
            raise NotFoundError(f"No dispatch found for {email}")
        return outcome

    def list_pending_for_reminder(self, now: Optional[datetime] = None) -> List[DispatchOutcome]:
        """Outcomes inside the 24h-48h reminder window"""
        return self.db.list_pending_for_reminder(now or utcnow())

    def list_stale_for_cron(self, now: Optional[datetime] = None) -> List[DispatchOutcome]:
        """Outcomes still 'sent' more than 48h after sending"""
        return self.db.list_stale(now or utcnow())

    def list_recent(self, limit: int = 5) -> List[DispatchOutcome]:
        return self.db.list_recent(limit=limit)

    def list_outcomes(self, status: Optional[OutcomeStatus] = None, limit: int = 100) -> List[DispatchOutcome]:
        return self.db.list_outcomes(status=status, limit=limit)

    def get_statistics(self) -> OutcomeStatistics:
        return self.db.get_statistics()

    def confirm(self, email: str, token: str, now: Optional[datetime] = None) -> Tuple[ConfirmationState, DispatchOutcome]:
        """
        Apply a one-shot confirmation link.

        A token that was already consumed, or whose outcome is already
        confirmed, leaves state untouched.

        Args:
            email: Candidate email from the link
            token: Confirmation token from the link

        Returns:
            Tuple of (state, outcome)

        Raises:
            NotFoundError: If the token is unknown or issued for another email
        """
        record = self.db.get_confirmation_token(token)
        if not record or record.candidate_email != normalize_email(email):
            raise NotFoundError("Unknown confirmation token")

        outcome = self.db.get_outcome(record.outcome_id)
        if not outcome:
            raise NotFoundError(f"Outcome {record.outcome_id} not found")

        if record.consumed_at is not None:
            logger.info(f"Confirmation token for {email} already used")
            return ConfirmationState.ALREADY_CONFIRMED, outcome

        if outcome.status == OutcomeStatus.CONFIRMED:
            self.db.consume_confirmation_token(token, now)
            logger.info(f"Outcome {outcome.id} already confirmed")
            return ConfirmationState.ALREADY_CONFIRMED, outcome

        if not self.db.consume_confirmation_token(token, now):
            # Consumed concurrently
            return ConfirmationState.ALREADY_CONFIRMED, outcome

        updated = self.db.set_status(email, OutcomeStatus.CONFIRMED, now=now or utcnow(), outcome_id=outcome.id)
        logger.info(f"Candidate {email} confirmed outcome {outcome.id}")
        return ConfirmationState.CONFIRMED, updated or outcome
