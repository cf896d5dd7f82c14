"""
Conversation Orchestrator

Runs one chat turn: asks the generation service for the assistant reply,
detects the requested action (tool call or sentinel token) and performs
it through the dispatch gateway and status tracker.
"""
import logging
import re
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from interview_dispatch.dispatch_gateway import DispatchGateway
from interview_dispatch.errors import ValidationError, WorkflowError
from interview_dispatch.field_extractor import FieldExtractor
from interview_dispatch.generation_client import GenerationClient
from interview_dispatch.models import (
    EMAIL_PATTERN,
    MAX_REMINDERS,
    ActionType,
    AssistantAction,
    ChatMessage,
    DispatchOutcome,
    TurnResult,
)
from interview_dispatch.prompt_templates import PromptTemplates
from interview_dispatch.status_tracker import StatusTracker

logger = logging.getLogger(__name__)

VALID_ROLES = ("user", "assistant")


class ConversationOrchestrator:
    """Turns assistant replies into invitation, reminder and status actions"""

    # Checked in order; the first matching sentinel decides the action
    REMINDER_PATTERN = rf"SEND_REMINDER:\s*({EMAIL_PATTERN})"
    STATUS_PATTERN = rf"CHECK_STATUS:\s*({EMAIL_PATTERN})"
    INVITATION_PATTERN = r"\bSEND_EMAIL\b"

    # Removed from the displayed text whether or not an action fired
    STRIP_PATTERNS = [
        rf"SEND_REMINDER:\s*(?:{EMAIL_PATTERN})?",
        rf"CHECK_STATUS:\s*(?:{EMAIL_PATTERN})?",
        r"\bSEND_EMAIL\b",
    ]

    TOOL_ACTIONS = {
        "send_invitation_email": ActionType.INVITATION,
        "send_reminder_email": ActionType.REMINDER,
        "check_candidate_status": ActionType.STATUS,
    }

    def __init__(
        self,
        generator: GenerationClient,
        extractor: FieldExtractor,
        gateway: DispatchGateway,
        tracker: StatusTracker,
        use_tools: bool = True
    ):
        """
        Initialize conversation orchestrator.

        Args:
            generator: Text-generation client for assistant replies
            extractor: Field extractor (any object with extract/format_missing_fields)
            gateway: Sends invitations and reminders
            tracker: Answers status queries
            use_tools: Offer the structured tool contract to the provider
        """
        self.generator = generator
        self.extractor = extractor
        self.gateway = gateway
        self.tracker = tracker
        self.use_tools = use_tools

    @staticmethod
    def sanitize_history(raw_history: Optional[List[Any]]) -> List[ChatMessage]:
        """
        Drop malformed or blank history entries and coerce unknown roles to user.

        Args:
            raw_history: Entries as received from the client

        Returns:
            Ordered list of well-formed turns
        """
        history = []
        for entry in raw_history or []:
            if not isinstance(entry, dict):
                continue
            role = entry.get("role")
            content = entry.get("content")
            if role is None or content is None or not str(content).strip():
                continue
            if role not in VALID_ROLES:
                role = "user"
            history.append(ChatMessage(role=role, content=str(content)))
        return history

    async def handle_turn(
        self,
        history: Optional[List[Any]],
        message: str,
        context_summary: Optional[str] = None
    ) -> TurnResult:
        """
        Handle one chat turn.

        Args:
            history: Prior turns of the session (raw entries)
            message: New user message
            context_summary: Optional summary of recent dispatch outcomes

        Returns:
            TurnResult with the text to display and the action outcome

        Raises:
            ValidationError: If the message is empty
            GenerationError: If the generation service fails
        """
        if not message or not message.strip():
            raise ValidationError("Message is required", fields=["message"])

        turns = self.sanitize_history(history)
        turns.append(ChatMessage(role="user", content=message))

        reply = await self.generator.generate(
            system=PromptTemplates.build_system_prompt(context_summary),
            messages=turns,
            tools=PromptTemplates.TOOLS if self.use_tools else None
        )

        action = self.detect_action(reply.text, reply.tool_calls)
        logger.info(f"Assistant action: {action.kind.value}")

        result = TurnResult(display_text=reply.text, action=action.kind)

        if action.kind == ActionType.INVITATION:
            transcript = "\n".join([turn.content for turn in turns] + [reply.text])
            await self._handle_invitation(result, transcript)
        elif action.kind == ActionType.REMINDER:
            await self._handle_reminder(result, action.email)
        elif action.kind == ActionType.STATUS:
            self._handle_status(result, action.email)

        result.display_text = self.strip_sentinels(result.display_text)
        return result

    def detect_action(self, text: str, tool_calls=None) -> AssistantAction:
        """
        Map a reply to the action it requests.

        Tool calls take precedence over sentinel tokens in the text.
        """
        for call in tool_calls or []:
            kind = self.TOOL_ACTIONS.get(call.name)
            if kind is None:
                logger.warning(f"Ignoring unknown tool call: {call.name}")
                continue
            email = call.arguments.get("email")
            if kind != ActionType.INVITATION and not email:
                logger.warning(f"Tool call {call.name} without email, ignored")
                continue
            return AssistantAction(kind=kind, email=email)

        text = text or ""
        match = re.search(self.REMINDER_PATTERN, text, re.IGNORECASE)
        if match:
            return AssistantAction(kind=ActionType.REMINDER, email=match.group(1))

        match = re.search(self.STATUS_PATTERN, text, re.IGNORECASE)
        if match:
            return AssistantAction(kind=ActionType.STATUS, email=match.group(1))

        if re.search(self.INVITATION_PATTERN, text, re.IGNORECASE):
            return AssistantAction(kind=ActionType.INVITATION)

        return AssistantAction()

    def strip_sentinels(self, text: str) -> str:
        for pattern in self.STRIP_PATTERNS:
            text = re.sub(pattern, "", text, flags=re.IGNORECASE)
        text = re.sub(r"[ \t]+\n", "\n", text)
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()

    async def _handle_invitation(self, result: TurnResult, transcript: str):
        result.dispatch_triggered = True

        extraction = self.extractor.extract(transcript)
        if not extraction.is_complete:
            logger.info(f"Invitation not sent, missing fields: {extraction.missing_fields}")
            result.missing_fields = extraction.missing_fields
            result.display_text = self._append(
                result.display_text,
                self.extractor.format_missing_fields(extraction.missing_fields)
            )
            return

        record = extraction.record
        try:
            dispatch = await self.gateway.send_invitation(record)
        except WorkflowError as e:
            logger.error(f"Automatic invitation to {record.candidate_email} failed: {e}")
            result.display_text = self._append(
                result.display_text,
                "⚠️ L'envoi automatique de l'email a échoué. Veuillez réessayer."
            )
            return

        result.email_sent = True
        result.dispatch_result = dispatch

        confirmation = f"✅ Email de convocation envoyé à {record.candidate_email} !"
        if re.search(self.INVITATION_PATTERN, result.display_text, re.IGNORECASE):
            result.display_text = re.sub(
                self.INVITATION_PATTERN,
                confirmation,
                result.display_text,
                count=1,
                flags=re.IGNORECASE
            )
        else:
            result.display_text = self._append(result.display_text, confirmation)

    async def _handle_reminder(self, result: TurnResult, email: str):
        try:
            reminder = await self.gateway.send_reminder(email)
        except WorkflowError as e:
            logger.warning(f"Reminder to {email} not sent: {e}")
            return
        except SQLAlchemyError as e:
            logger.error(f"Reminder to {email} not sent, outcome store unavailable: {e}")
            return

        result.reminder_result = reminder
        result.display_text = self._append(
            result.display_text,
            f"✅ Rappel envoyé à {email} ({reminder.reminder_count}/{MAX_REMINDERS})."
        )

    def _handle_status(self, result: TurnResult, email: str):
        try:
            outcome = self.tracker.get_latest(email)
        except SQLAlchemyError as e:
            logger.error(f"Status lookup for {email} failed, outcome store unavailable: {e}")
            return

        if not outcome:
            result.display_text = self._append(result.display_text, f"Aucune convocation trouvée pour {email}.")
            return

        result.status_outcome = outcome
        result.display_text = self._append(result.display_text, self.format_status(outcome))

    @staticmethod
    def format_status(outcome: DispatchOutcome) -> str:
        lines = [
            f"📊 Statut de {outcome.candidate_name} ({outcome.candidate_email}) :",
            f"- Statut : {outcome.status.value}",
            f"- Envoyé le : {outcome.sent_at:%d/%m/%Y %H:%M}",
        ]
        if outcome.confirmed_at:
            lines.append(f"- Confirmé le : {outcome.confirmed_at:%d/%m/%Y %H:%M}")
        if outcome.reminder_count:
            lines.append(f"- Rappels envoyés : {outcome.reminder_count}/{MAX_REMINDERS}")
        return "\n".join(lines)

    @staticmethod
    def _append(text: str, addition: str) -> str:
        text = (text or "").rstrip()
        return f"{text}\n\n{addition}" if text else addition
