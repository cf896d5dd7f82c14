"""
Pydantic models for the Interview Dispatch service
"""
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Shared with the field extractor so API input and chat extraction agree
EMAIL_PATTERN = r'[a-zA-Z0-9._-]+@[a-zA-Z0-9._-]+\.[a-zA-Z0-9_-]+'

DEFAULT_DURATION = "30 minutes"
DEFAULT_LOCATION = "Visioconférence"
REMOTE_LOCATION = "Visioconférence (lien envoyé par email)"
ONSITE_LOCATION = "En présentiel"

MAX_REMINDERS = 3


class CamelModel(BaseModel):
    """Base model exchanging camelCase JSON with the chat extension and dashboard"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OutcomeStatus(str, Enum):
    """Lifecycle status of a dispatch outcome"""
    SENT = "sent"
    PENDING = "pending"
    NO_RESPONSE = "no_response"
    CONFIRMED = "confirmed"
    DECLINED = "declined"


class ActionType(str, Enum):
    """Side effect requested by the assistant reply"""
    NONE = "none"
    INVITATION = "invitation"
    REMINDER = "reminder"
    STATUS = "status"


# Invitation Models
class InvitationRecord(CamelModel):
    """Structured fields describing one interview to be communicated"""
    candidate_name: str = Field(..., min_length=1)
    candidate_email: str = Field(..., min_length=3)
    post_title: str = Field(..., min_length=1)
    interview_date: str = Field(..., pattern=r'^\d{2}/\d{2}/\d{4}$', description="DD/MM/YYYY")
    interview_time: str = Field(..., pattern=r'^\d{2}:\d{2}$', description="HH:MM")
    interview_duration: str = DEFAULT_DURATION
    interview_location: str = DEFAULT_LOCATION

    @field_validator("candidate_email")
    @classmethod
    def check_email(cls, value: str) -> str:
        value = value.strip()
        if not re.fullmatch(EMAIL_PATTERN, value):
            raise ValueError("candidate_email is not a valid email address")
        return value


class ExtractionResult(BaseModel):
    """Outcome of running a field extractor over a transcript"""
    record: Optional[InvitationRecord] = None
    missing_fields: List[str] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.record is not None and not self.missing_fields


class GeneratedEmail(BaseModel):
    """Subject and plain-text body for an invitation"""
    subject: str
    body: str
    used_fallback: bool = False


class InvitationResult(CamelModel):
    """Result of sending an invitation"""
    success: bool
    email_id: Optional[str] = None
    outcome_id: Optional[str] = None
    subject: Optional[str] = None
    used_fallback: bool = False
    persistence_warning: Optional[str] = None


class ReminderRequest(CamelModel):
    """Request to send a reminder to a candidate"""
    email: str = Field(..., min_length=1)


class ReminderResult(CamelModel):
    """Result of sending a reminder"""
    success: bool
    reminder_count: int
    email_id: Optional[str] = None
    persistence_warning: Optional[str] = None


# Dispatch Outcome Models
class DispatchOutcome(CamelModel):
    """Persisted result of one invitation send, with lifecycle status"""
    id: str
    candidate_name: str
    candidate_email: str
    post_title: str
    interview_date: str
    interview_time: str
    interview_duration: str
    interview_location: str
    email_subject: Optional[str] = None
    email_body: Optional[str] = None
    email_id: Optional[str] = None
    status: OutcomeStatus
    reminder_count: int = 0
    last_reminder_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    sent_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class StatusUpdateRequest(CamelModel):
    """Request to change the status of a candidate's latest outcome"""
    email: str = Field(..., min_length=1)
    status: OutcomeStatus


class OutcomeStatistics(CamelModel):
    """Outcome counts for the dashboard"""
    total: int
    sent: int
    pending: int
    no_response: int
    confirmed: int
    declined: int
    reminders_sent: int


# Reminder Sweep Models
class SweepDetail(CamelModel):
    """Per-candidate result of a reminder sweep"""
    email: str
    candidate_name: Optional[str] = None
    success: bool
    reminder_count: Optional[int] = None
    error: Optional[str] = None


class SweepResult(CamelModel):
    """Summary of a reminder sweep"""
    success: bool = True
    message: str
    reminders_sent: int
    failures: int
    details: List[SweepDetail] = Field(default_factory=list)


# Conversation Models
class ChatMessage(BaseModel):
    """One conversation turn"""
    role: str
    content: str


class ToolCall(BaseModel):
    """Structured action requested by the generation provider"""
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class GenerationReply(BaseModel):
    """Single assistant reply from the generation provider"""
    text: str
    tool_calls: List[ToolCall] = Field(default_factory=list)


class AssistantAction(BaseModel):
    """Side effect to perform for a turn"""
    kind: ActionType = ActionType.NONE
    email: Optional[str] = None


class TurnResult(BaseModel):
    """Everything the chat endpoint needs to answer one turn"""
    display_text: str
    action: ActionType = ActionType.NONE
    dispatch_triggered: bool = False
    email_sent: bool = False
    dispatch_result: Optional[InvitationResult] = None
    missing_fields: Optional[List[str]] = None
    reminder_result: Optional[ReminderResult] = None
    status_outcome: Optional[DispatchOutcome] = None


class ChatRequest(CamelModel):
    """Chat turn from the browser extension"""
    message: str = ""
    # Raw entries: malformed ones are dropped by the orchestrator, not rejected here
    conversation_history: List[Any] = Field(default_factory=list)


class ChatResponse(CamelModel):
    """Chat turn response"""
    response: str
    action: ActionType = ActionType.NONE
    should_send_email: bool = False
    email_sent: bool = False
    email_result: Optional[InvitationResult] = None
    missing_fields: Optional[List[str]] = None
    reminder_result: Optional[ReminderResult] = None
    status_outcome: Optional[DispatchOutcome] = None
    recent_outcomes: List[DispatchOutcome] = Field(default_factory=list)


# Health Check Models
class HealthCheckResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    database_connected: bool
    uptime_seconds: float


class ConfirmationToken(BaseModel):
    """One-shot confirmation link token"""
    token: str
    outcome_id: str
    candidate_email: str
    created_at: datetime
    consumed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ConfirmationState(str, Enum):
    """Result of following a confirmation link"""
    CONFIRMED = "confirmed"
    ALREADY_CONFIRMED = "already_confirmed"
