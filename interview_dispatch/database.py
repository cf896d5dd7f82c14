"""
Database manager for the Interview Dispatch service

Handles dispatch outcome persistence and one-shot confirmation tokens.
"""
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, create_engine, func, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from interview_dispatch.config import Settings, get_settings
from interview_dispatch.models import (
    MAX_REMINDERS,
    ConfirmationToken,
    DispatchOutcome,
    InvitationRecord,
    OutcomeStatistics,
    OutcomeStatus,
)

logger = logging.getLogger(__name__)

Base = declarative_base()

# Statuses that end the reminder cycle
CLOSED_STATUSES = [OutcomeStatus.CONFIRMED.value, OutcomeStatus.DECLINED.value]

REMINDER_WINDOW_START = timedelta(hours=24)
REMINDER_WINDOW_END = timedelta(hours=48)


def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def generate_token() -> str:
    return secrets.token_urlsafe(24)


class DispatchOutcomeDB(Base):
    """SQLAlchemy model for dispatch_outcomes table"""
    __tablename__ = 'dispatch_outcomes'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    candidate_name = Column(String(255), nullable=False)
    candidate_email = Column(String(255), nullable=False, index=True)
    post_title = Column(String(255), nullable=False)
    interview_date = Column(String(10), nullable=False)
    interview_time = Column(String(5), nullable=False)
    interview_duration = Column(String(50), nullable=False)
    interview_location = Column(String(100), nullable=False)

    email_subject = Column(String(500))
    email_body = Column(Text)
    email_id = Column(String(255))

    status = Column(String(20), nullable=False, default=OutcomeStatus.SENT.value, index=True)
    reminder_count = Column(Integer, nullable=False, default=0)
    last_reminder_at = Column(DateTime)
    confirmed_at = Column(DateTime)
    sent_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class ConfirmationTokenDB(Base):
    """SQLAlchemy model for confirmation_tokens table"""
    __tablename__ = 'confirmation_tokens'

    id = Column(Integer, primary_key=True)
    token = Column(String(64), unique=True, nullable=False, index=True)
    outcome_id = Column(String(36), ForeignKey('dispatch_outcomes.id', ondelete='CASCADE'), nullable=False)
    candidate_email = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    consumed_at = Column(DateTime)


class DatabaseManager:
    """Manage database operations for dispatch outcomes"""

    def __init__(self, database_url: str):
        """
        Initialize database manager.

        Args:
            database_url: SQLAlchemy connection string (PostgreSQL or SQLite)
        """
        if database_url.startswith("sqlite"):
            # Requests are served from a threadpool
            self.engine = create_engine(database_url, connect_args={"check_same_thread": False})
        else:
            self.engine = create_engine(database_url, pool_size=10, max_overflow=20, pool_pre_ping=True)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def init_tables(self):
        """Create tables if they do not exist"""
        Base.metadata.create_all(self.engine)

    def close(self):
        """Dispose of the connection pool"""
        self.engine.dispose()

    def get_session(self) -> Session:
        """Get a new database session"""
        return self.SessionLocal()

    def check_connection(self) -> bool:
        """
        Check database connectivity.

        Returns:
            True if a trivial query succeeds
        """
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    def create_outcome(
        self,
        record: InvitationRecord,
        email_subject: str,
        email_body: str,
        email_id: Optional[str] = None,
        sent_at: Optional[datetime] = None,
        outcome_id: Optional[str] = None
    ) -> DispatchOutcome:
        """
        Persist a sent invitation.

        Args:
            record: Invitation fields
            email_subject: Subject that was sent
            email_body: Plain-text body that was sent
            email_id: Delivery provider email ID
            sent_at: Send timestamp (defaults to now)
            outcome_id: Pre-allocated outcome ID (defaults to a new uuid4)

        Returns:
            Created dispatch outcome
        """
        with self.get_session() as session:
            db_outcome = DispatchOutcomeDB(
                id=outcome_id or str(uuid.uuid4()),
                candidate_name=record.candidate_name,
                candidate_email=normalize_email(record.candidate_email),
                post_title=record.post_title,
                interview_date=record.interview_date,
                interview_time=record.interview_time,
                interview_duration=record.interview_duration,
                interview_location=record.interview_location,
                email_subject=email_subject,
                email_body=email_body,
                email_id=email_id,
                status=OutcomeStatus.SENT.value,
                reminder_count=0,
                sent_at=sent_at or utcnow()
            )
            session.add(db_outcome)
            session.commit()
            session.refresh(db_outcome)
            return DispatchOutcome.model_validate(db_outcome)

    def get_outcome(self, outcome_id: str) -> Optional[DispatchOutcome]:
        """Get a dispatch outcome by ID"""
        with self.get_session() as session:
            db_outcome = session.get(DispatchOutcomeDB, outcome_id)
            return DispatchOutcome.model_validate(db_outcome) if db_outcome else None

    def get_latest_outcome(self, email: str) -> Optional[DispatchOutcome]:
        """
        Get the active (most recently sent) outcome for a candidate.

        Args:
            email: Candidate email

        Returns:
            Latest outcome or None if the candidate was never contacted
        """
        with self.get_session() as session:
            db_outcome = self._latest(session, email)
            return DispatchOutcome.model_validate(db_outcome) if db_outcome else None

    def set_status(
        self,
        email: str,
        status: OutcomeStatus,
        now: Optional[datetime] = None,
        outcome_id: Optional[str] = None
    ) -> Optional[DispatchOutcome]:
        """
        Set the status of a candidate's latest outcome.

        confirmed_at is stamped only for 'confirmed' and cleared otherwise.

        Args:
            email: Candidate email
            status: New status
            now: Timestamp for confirmed_at (defaults to now)
            outcome_id: Target this outcome instead of the latest one

        Returns:
            Updated outcome or None if not found
        """
        with self.get_session() as session:
            if outcome_id:
                db_outcome = session.get(DispatchOutcomeDB, outcome_id)
            else:
                db_outcome = self._latest(session, email)
            if not db_outcome:
                return None

            old_status = db_outcome.status
            db_outcome.status = status.value
            db_outcome.confirmed_at = (now or utcnow()) if status == OutcomeStatus.CONFIRMED else None

            session.commit()
            session.refresh(db_outcome)
            logger.info(f"Outcome {db_outcome.id} status: {old_status} -> {status.value}")
            return DispatchOutcome.model_validate(db_outcome)

    def record_reminder(self, outcome_id: str, now: Optional[datetime] = None) -> Optional[DispatchOutcome]:
        """
        Increment the reminder counter of an outcome (capped) and stamp it.

        Returns:
            Updated outcome or None if not found
        """
        with self.get_session() as session:
            db_outcome = session.get(DispatchOutcomeDB, outcome_id)
            if not db_outcome:
                return None

            db_outcome.reminder_count = min(db_outcome.reminder_count + 1, MAX_REMINDERS)
            db_outcome.last_reminder_at = now or utcnow()

            session.commit()
            session.refresh(db_outcome)
            return DispatchOutcome.model_validate(db_outcome)

    def list_recent(self, limit: int = 5) -> List[DispatchOutcome]:
        """Most recently sent outcomes, newest first"""
        return self.list_outcomes(limit=limit)

    def list_outcomes(self, status: Optional[OutcomeStatus] = None, limit: int = 100) -> List[DispatchOutcome]:
        """
        List outcomes, optionally filtered by status.

        Args:
            status: Status to filter by
            limit: Maximum number of results

        Returns:
            Outcomes, newest first
        """
        with self.get_session() as session:
            query = session.query(DispatchOutcomeDB)
            if status:
                query = query.filter(DispatchOutcomeDB.status == status.value)
            rows = query.order_by(DispatchOutcomeDB.sent_at.desc()).limit(limit).all()
            return [DispatchOutcome.model_validate(row) for row in rows]

    def list_pending_for_reminder(self, now: datetime) -> List[DispatchOutcome]:
        """
        Outcomes eligible for an automatic reminder.

        Not confirmed or declined, fewer than MAX_REMINDERS reminders, and
        sent strictly between 48h and 24h before now.

        Returns:
            Eligible outcomes, oldest first
        """
        with self.get_session() as session:
            rows = session.query(DispatchOutcomeDB)\
                .filter(
                    DispatchOutcomeDB.status.notin_(CLOSED_STATUSES),
                    DispatchOutcomeDB.reminder_count < MAX_REMINDERS,
                    DispatchOutcomeDB.sent_at > now - REMINDER_WINDOW_END,
                    DispatchOutcomeDB.sent_at < now - REMINDER_WINDOW_START
                )\
                .order_by(DispatchOutcomeDB.sent_at.asc())\
                .all()
            return [DispatchOutcome.model_validate(row) for row in rows]

    def list_stale(self, now: datetime) -> List[DispatchOutcome]:
        """
        Outcomes still 'sent' more than 48h after sending.

        Returns:
            Stale outcomes, oldest first
        """
        with self.get_session() as session:
            rows = session.query(DispatchOutcomeDB)\
                .filter(
                    DispatchOutcomeDB.status == OutcomeStatus.SENT.value,
                    DispatchOutcomeDB.sent_at < now - REMINDER_WINDOW_END
                )\
                .order_by(DispatchOutcomeDB.sent_at.asc())\
                .all()
            return [DispatchOutcome.model_validate(row) for row in rows]

    def get_statistics(self) -> OutcomeStatistics:
        """
        Get outcome statistics.

        Returns:
            Counts by status and total reminders sent
        """
        with self.get_session() as session:
            counts = dict(
                session.query(DispatchOutcomeDB.status, func.count(DispatchOutcomeDB.id))
                .group_by(DispatchOutcomeDB.status)
                .all()
            )
            reminders = session.query(func.coalesce(func.sum(DispatchOutcomeDB.reminder_count), 0)).scalar()

            return OutcomeStatistics(
                total=sum(counts.values()),
                sent=counts.get(OutcomeStatus.SENT.value, 0),
                pending=counts.get(OutcomeStatus.PENDING.value, 0),
                no_response=counts.get(OutcomeStatus.NO_RESPONSE.value, 0),
                confirmed=counts.get(OutcomeStatus.CONFIRMED.value, 0),
                declined=counts.get(OutcomeStatus.DECLINED.value, 0),
                reminders_sent=int(reminders or 0)
            )

    def create_confirmation_token(self, outcome_id: str, email: str, token: Optional[str] = None) -> str:
        """
        Store a one-shot confirmation token for an outcome.

        Args:
            outcome_id: Outcome the token confirms
            email: Candidate email the token was sent to
            token: Pre-generated token (defaults to a new random one)

        Returns:
            The token string
        """
        token = token or generate_token()
        with self.get_session() as session:
            session.add(ConfirmationTokenDB(
                token=token,
                outcome_id=outcome_id,
                candidate_email=normalize_email(email)
            ))
            session.commit()
        return token

    def get_confirmation_token(self, token: str) -> Optional[ConfirmationToken]:
        """Get a confirmation token record"""
        with self.get_session() as session:
            row = session.query(ConfirmationTokenDB).filter_by(token=token).first()
            return ConfirmationToken.model_validate(row) if row else None

    def consume_confirmation_token(self, token: str, now: Optional[datetime] = None) -> bool:
        """
        Mark a token as consumed.

        Returns:
            True if this call consumed it, False if it was already consumed
            or does not exist
        """
        with self.get_session() as session:
            updated = session.query(ConfirmationTokenDB)\
                .filter(ConfirmationTokenDB.token == token, ConfirmationTokenDB.consumed_at.is_(None))\
                .update({ConfirmationTokenDB.consumed_at: now or utcnow()}, synchronize_session=False)
            session.commit()
            return updated == 1

    def _latest(self, session: Session, email: str) -> Optional[DispatchOutcomeDB]:
        return session.query(DispatchOutcomeDB)\
            .filter_by(candidate_email=normalize_email(email))\
            .order_by(DispatchOutcomeDB.sent_at.desc())\
            .first()


def get_database_manager(settings: Optional[Settings] = None) -> DatabaseManager:
    """
    Get database manager instance.

    Returns:
        DatabaseManager instance
    """
    settings = settings or get_settings()
    return DatabaseManager(settings.database_url)
