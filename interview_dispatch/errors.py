"""
Error types raised by the dispatch workflow
"""
from typing import List, Optional


class WorkflowError(Exception):
    """Base class for all dispatch workflow errors"""


class ValidationError(WorkflowError):
    """Missing or malformed request fields (user-correctable)"""

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = fields or []


class UpstreamError(WorkflowError):
    """A provider (generation or delivery) call failed"""


class GenerationError(UpstreamError):
    """Text-generation provider failure"""


class DeliveryError(UpstreamError):
    """Email delivery provider failure"""


class NotFoundError(WorkflowError):
    """No matching dispatch outcome or confirmation token"""


class PreconditionError(WorkflowError):
    """The targeted outcome is not in a state that allows the action"""


class AlreadyConfirmedError(PreconditionError):
    """Candidate already confirmed; no further reminders"""


class ReminderLimitError(PreconditionError):
    """Maximum number of reminders already sent"""


class PersistenceWarning(WorkflowError):
    """
    A store write failed after the email already left.

    Never surfaced as a failure of the user-facing action: callers log it
    and report it alongside the successful result.
    """
