"""
Dispatch Gateway

Renders invitation and reminder emails, sends them through the delivery
provider and persists the outcome. A store write that fails after the
email left is reported as a PersistenceWarning, never as a failure.
"""
import json
import logging
import re
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from interview_dispatch.database import DatabaseManager, generate_token
from interview_dispatch.delivery_client import DeliveryClient
from interview_dispatch.email_templates import EmailTemplates
from interview_dispatch.errors import (
    AlreadyConfirmedError,
    GenerationError,
    NotFoundError,
    PersistenceWarning,
    ReminderLimitError,
)
from interview_dispatch.generation_client import GenerationClient
from interview_dispatch.models import (
    MAX_REMINDERS,
    ChatMessage,
    DispatchOutcome,
    GeneratedEmail,
    InvitationRecord,
    InvitationResult,
    OutcomeStatus,
    ReminderResult,
)
from interview_dispatch.prompt_templates import PromptTemplates

logger = logging.getLogger(__name__)

CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)
JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


class DispatchGateway:
    """Sends invitation and reminder emails and records their outcome"""

    EMAIL_TEMPERATURE = 0.3

    def __init__(
        self,
        generator: GenerationClient,
        delivery: DeliveryClient,
        db_manager: DatabaseManager,
        app_url: str,
        brand_name: str
    ):
        """
        Initialize dispatch gateway.

        Args:
            generator: Text-generation client for email content
            delivery: Email delivery client
            db_manager: Outcome store
            app_url: Public base URL for confirmation links
            brand_name: Company name shown in emails
        """
        self.generator = generator
        self.delivery = delivery
        self.db = db_manager
        self.app_url = app_url
        self.brand_name = brand_name

    async def send_invitation(self, record: InvitationRecord) -> InvitationResult:
        """
        Generate, render, send and record an interview invitation.

        Args:
            record: Complete invitation fields

        Returns:
            InvitationResult (success even if recording the outcome failed)

        Raises:
            DeliveryError: If the delivery provider did not accept the email
        """
        content = await self.generate_email_content(record)

        outcome_id = str(uuid.uuid4())
        token = generate_token()
        confirmation_link = EmailTemplates.build_confirmation_link(self.app_url, record.candidate_email, token)
        html = EmailTemplates.render_invitation_html(
            record,
            body=content.body,
            confirmation_link=confirmation_link,
            brand_name=self.brand_name,
            calendar_link=EmailTemplates.build_google_calendar_link(record)
        )

        logger.info(f"Sending invitation to {record.candidate_email} for {record.post_title}")
        email_id = await self.delivery.send_email(record.candidate_email, content.subject, html)

        persistence_warning = None
        try:
            self._record_invitation(record, content, email_id, outcome_id, token)
        except PersistenceWarning as warning:
            logger.warning(str(warning))
            persistence_warning = str(warning)
            outcome_id = None

        return InvitationResult(
            success=True,
            email_id=email_id,
            outcome_id=outcome_id,
            subject=content.subject,
            used_fallback=content.used_fallback,
            persistence_warning=persistence_warning
        )

    async def send_reminder(self, email: str) -> ReminderResult:
        """
        Send a reminder for a candidate's latest invitation.

        Args:
            email: Candidate email

        Returns:
            ReminderResult with the new reminder count

        Raises:
            NotFoundError: No invitation was sent to this email
            AlreadyConfirmedError: Candidate already confirmed
            ReminderLimitError: MAX_REMINDERS reminders already sent
            DeliveryError: Delivery provider failure
        """
        outcome = self.db.get_latest_outcome(email)
        if not outcome:
            raise NotFoundError(f"No dispatch found for {email}")
        if outcome.status == OutcomeStatus.CONFIRMED:
            raise AlreadyConfirmedError(f"{email} already confirmed")
        if outcome.reminder_count >= MAX_REMINDERS:
            raise ReminderLimitError(f"Maximum number of reminders reached ({MAX_REMINDERS})")

        token = generate_token()
        confirmation_link = EmailTemplates.build_confirmation_link(self.app_url, outcome.candidate_email, token)
        html = EmailTemplates.render_reminder_html(outcome, confirmation_link, self.brand_name)
        subject = EmailTemplates.build_reminder_subject(outcome.post_title)

        logger.info(f"Sending reminder {outcome.reminder_count + 1}/{MAX_REMINDERS} to {outcome.candidate_email}")
        email_id = await self.delivery.send_email(outcome.candidate_email, subject, html)

        persistence_warning = None
        try:
            self._record_reminder(outcome, token)
        except PersistenceWarning as warning:
            logger.warning(str(warning))
            persistence_warning = str(warning)

        return ReminderResult(
            success=True,
            reminder_count=outcome.reminder_count + 1,
            email_id=email_id,
            persistence_warning=persistence_warning
        )

    async def generate_email_content(self, record: InvitationRecord) -> GeneratedEmail:
        """
        Ask the generation service for subject and body.

        Falls back to the deterministic template when the service fails or
        its reply is not the expected JSON object.
        """
        prompt = PromptTemplates.build_invitation_email_prompt(record)
        try:
            reply = await self.generator.generate(
                system=PromptTemplates.EMAIL_SYSTEM_PROMPT,
                messages=[ChatMessage(role="user", content=prompt)],
                temperature=self.EMAIL_TEMPERATURE
            )
        except GenerationError as e:
            logger.warning(f"Email content generation failed, using fallback template: {e}")
            return EmailTemplates.build_fallback_email(record)

        content = self.parse_generated_email(reply.text)
        if content is None:
            logger.warning(f"Unparseable email content, using fallback template: {reply.text[:100]}")
            return EmailTemplates.build_fallback_email(record)

        return content

    @staticmethod
    def parse_generated_email(text: str) -> Optional[GeneratedEmail]:
        """
        Parse a {"subject", "body"} JSON reply, tolerating code fences.

        Returns:
            GeneratedEmail or None if the text is not a usable object
        """
        content = (text or "").strip()
        fenced = CODE_FENCE_PATTERN.match(content)
        if fenced:
            content = fenced.group(1)

        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            # Object embedded in surrounding prose
            match = JSON_OBJECT_PATTERN.search(content)
            if not match:
                return None
            try:
                data = json.loads(match.group(0))
            except json.JSONDecodeError:
                return None

        if not isinstance(data, dict):
            return None

        subject = data.get("subject")
        body = data.get("body")
        if not isinstance(subject, str) or not isinstance(body, str) or not subject.strip() or not body.strip():
            return None

        return GeneratedEmail(subject=subject.strip(), body=body.strip())

    def _record_invitation(
        self,
        record: InvitationRecord,
        content: GeneratedEmail,
        email_id: str,
        outcome_id: str,
        token: str
    ):
        try:
            self.db.create_outcome(
                record,
                email_subject=content.subject,
                email_body=content.body,
                email_id=email_id,
                outcome_id=outcome_id
            )
            self.db.create_confirmation_token(outcome_id, record.candidate_email, token=token)
        except SQLAlchemyError as e:
            raise PersistenceWarning(
                f"Invitation to {record.candidate_email} was sent but could not be recorded: {e}"
            ) from e

    def _record_reminder(self, outcome: DispatchOutcome, token: str):
        try:
            self.db.record_reminder(outcome.id)
            self.db.create_confirmation_token(outcome.id, outcome.candidate_email, token=token)
        except SQLAlchemyError as e:
            raise PersistenceWarning(
                f"Reminder to {outcome.candidate_email} was sent but could not be fully recorded: {e}"
            ) from e
