"""
Reminder Sweep

Invoked by an external scheduled trigger. Sends one reminder per eligible
candidate, sequentially, pausing between sends to pace the delivery
provider.
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from interview_dispatch.dispatch_gateway import DispatchGateway
from interview_dispatch.errors import WorkflowError
from interview_dispatch.models import SweepDetail, SweepResult
from interview_dispatch.status_tracker import StatusTracker

logger = logging.getLogger(__name__)


class ReminderSweeper:
    """Sends reminders to every candidate inside the reminder window"""

    def __init__(
        self,
        tracker: StatusTracker,
        gateway: DispatchGateway,
        delay_seconds: float = 1.0,
        max_reminders_per_sweep: int = 50
    ):
        """
        Initialize reminder sweeper.

        Args:
            tracker: Source of eligible outcomes
            gateway: Sends each reminder
            delay_seconds: Pause between two sends
            max_reminders_per_sweep: Safety limit per invocation
        """
        self.tracker = tracker
        self.gateway = gateway
        self.delay_seconds = delay_seconds
        self.max_reminders_per_sweep = max_reminders_per_sweep

    async def run(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Run one sweep.

        Args:
            now: Reference time for the reminder window

        Returns:
            SweepResult with per-candidate details
        """
        eligible = self.tracker.list_pending_for_reminder(now)
        logger.info(f"Reminder sweep: {len(eligible)} eligible outcome(s)")

        details = []
        seen = set()
        for outcome in eligible:
            # Reminders always target the latest outcome of an email
            if outcome.candidate_email in seen:
                continue
            seen.add(outcome.candidate_email)

            latest = self.tracker.get_latest(outcome.candidate_email)
            if latest is None or latest.id != outcome.id:
                logger.info(f"Skipping {outcome.candidate_email}: a newer invitation was sent")
                continue

            if len(details) >= self.max_reminders_per_sweep:
                logger.warning(f"Reached max reminders per sweep ({self.max_reminders_per_sweep}), skipping remaining")
                break

            if details and self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)

            try:
                result = await self.gateway.send_reminder(outcome.candidate_email)
                logger.info(f"Reminder sent to {outcome.candidate_email} ({result.reminder_count})")
                details.append(SweepDetail(
                    email=outcome.candidate_email,
                    candidate_name=outcome.candidate_name,
                    success=True,
                    reminder_count=result.reminder_count
                ))
            except WorkflowError as e:
                logger.error(f"Reminder failed for {outcome.candidate_email}: {e}")
                details.append(SweepDetail(
                    email=outcome.candidate_email,
                    candidate_name=outcome.candidate_name,
                    success=False,
                    error=str(e)
                ))

        sent = sum(1 for d in details if d.success)
        failures = len(details) - sent
        logger.info(f"Reminder sweep complete: {sent} sent, {failures} failed")

        return SweepResult(
            success=True,
            message=f"{sent} rappel(s) envoyé(s)" if details else "Aucun email à relancer pour le moment",
            reminders_sent=sent,
            failures=failures,
            details=details
        )
