"""Shared fixtures for Interview Dispatch tests."""

import os
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing the app
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")
os.environ.setdefault("RESEND_API_KEY", "test-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from interview_dispatch.config import Settings
from interview_dispatch.database import DatabaseManager, DispatchOutcomeDB, utcnow
from interview_dispatch.models import GenerationReply, InvitationRecord


@pytest.fixture
def db_manager(tmp_path):
    """Throwaway SQLite database."""
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'test.db'}")
    manager.init_tables()
    yield manager
    manager.close()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        anthropic_api_key="test-key",
        resend_api_key="test-key",
        app_url="https://recrutement.example.com",
        brand_name="Test Brand",
        reminder_sweep_secret="",
        reminder_sweep_delay=0,
        generation_use_tools=False,
    )


@pytest.fixture
def mock_generator():
    """Generation client double; replies with plain text by default."""
    generator = MagicMock()
    generator.generate = AsyncMock(return_value=GenerationReply(text="Bonjour !"))
    return generator


@pytest.fixture
def mock_delivery():
    """Delivery client double accepting every email."""
    delivery = MagicMock()
    delivery.send_email = AsyncMock(return_value="email-123")
    delivery.close = AsyncMock()
    return delivery


@pytest.fixture
def record():
    return InvitationRecord(
        candidate_name="Marie Dupont",
        candidate_email="marie.dupont@example.com",
        post_title="Développeuse Python",
        interview_date="15/03/2025",
        interview_time="14:30",
        interview_duration="45 minutes",
        interview_location="En présentiel",
    )


@pytest.fixture
def create_outcome(db_manager, record):
    """Insert an outcome sent `hours_ago` hours ago, with optional overrides."""

    def _create(hours_ago: float = 30, email: str = None, name: str = None, **fields):
        data = record.model_dump()
        if email:
            data["candidate_email"] = email
        if name:
            data["candidate_name"] = name
        outcome = db_manager.create_outcome(
            InvitationRecord(**data),
            email_subject="Convocation",
            email_body="Bonjour",
            email_id="email-0",
            sent_at=utcnow() - timedelta(hours=hours_ago),
        )
        if fields:
            with db_manager.get_session() as session:
                row = session.get(DispatchOutcomeDB, outcome.id)
                for key, value in fields.items():
                    setattr(row, key, value)
                session.commit()
            outcome = db_manager.get_outcome(outcome.id)
        return outcome

    return _create
