"""
Interview Dispatch Service - Main FastAPI Application

Serves the recruiting assistant chat used by the browser extension, the
invitation/reminder dispatch endpoints, the one-shot confirmation link
followed by candidates and the dashboard read surface.
"""
import hmac
import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from sqlalchemy.exc import SQLAlchemyError

from interview_dispatch import __version__
from interview_dispatch.config import Settings, get_settings
from interview_dispatch.database import DatabaseManager, get_database_manager, utcnow
from interview_dispatch.delivery_client import DeliveryClient, get_delivery_client
from interview_dispatch.dispatch_gateway import DispatchGateway
from interview_dispatch.email_templates import EmailTemplates
from interview_dispatch.errors import (
    NotFoundError,
    PreconditionError,
    UpstreamError,
    ValidationError,
    WorkflowError,
)
from interview_dispatch.field_extractor import FieldExtractor
from interview_dispatch.generation_client import GenerationClient, get_generation_client
from interview_dispatch.models import (
    ChatRequest,
    ChatResponse,
    ConfirmationState,
    DispatchOutcome,
    HealthCheckResponse,
    InvitationRecord,
    InvitationResult,
    OutcomeStatistics,
    OutcomeStatus,
    ReminderRequest,
    ReminderResult,
    StatusUpdateRequest,
    SweepResult,
)
from interview_dispatch.orchestrator import ConversationOrchestrator
from interview_dispatch.prompt_templates import PromptTemplates
from interview_dispatch.reminder_sweep import ReminderSweeper
from interview_dispatch.status_tracker import StatusTracker

load_dotenv()

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

RECENT_CONTEXT_LIMIT = 5

start_time = utcnow()


class AppServices:
    """Components shared by the request handlers"""

    def __init__(
        self,
        settings: Settings,
        db: DatabaseManager,
        generator: GenerationClient,
        delivery: DeliveryClient
    ):
        self.settings = settings
        self.db = db
        self.generator = generator
        self.delivery = delivery
        self.tracker = StatusTracker(db)
        self.gateway = DispatchGateway(
            generator,
            delivery,
            db,
            app_url=settings.app_url,
            brand_name=settings.brand_name
        )
        self.orchestrator = ConversationOrchestrator(
            generator,
            FieldExtractor(),
            self.gateway,
            self.tracker,
            use_tools=settings.generation_use_tools
        )
        self.sweeper = ReminderSweeper(
            self.tracker,
            self.gateway,
            delay_seconds=settings.reminder_sweep_delay,
            max_reminders_per_sweep=settings.max_reminders_per_sweep
        )

    async def close(self):
        await self.delivery.close()
        self.db.close()


def build_services(settings: Optional[Settings] = None) -> AppServices:
    """Build every component from settings"""
    settings = settings or get_settings()

    if not settings.resend_api_key:
        logger.warning("RESEND_API_KEY not set - email delivery will fail")
    if not settings.reminder_sweep_secret:
        logger.warning("REMINDER_SWEEP_SECRET not set - reminder sweep endpoint is unprotected")

    db = get_database_manager(settings)
    db.init_tables()

    return AppServices(
        settings=settings,
        db=db,
        generator=get_generation_client(settings),
        delivery=get_delivery_client(settings)
    )


def get_services(request: Request) -> AppServices:
    services = request.app.state.services
    if services is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return services


def workflow_http_error(error: WorkflowError) -> HTTPException:
    """Map a workflow error to the HTTP error returned to API callers"""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail={"message": str(error), "fields": error.fields})
    if isinstance(error, UpstreamError):
        return HTTPException(
            status_code=502,
            detail={"message": "External provider request failed", "details": str(error)}
        )
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, PreconditionError):
        return HTTPException(status_code=400, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


def create_app(services: Optional[AppServices] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        services: Prebuilt components (tests); built from settings at
            startup when omitted

    Returns:
        FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown"""
        logger.info("Starting Interview Dispatch service...")

        try:
            if app.state.services is None:
                app.state.services = build_services()
            logger.info("Interview Dispatch service started successfully")
        except Exception as e:
            logger.error(f"Failed to start Interview Dispatch service: {e}")
            raise

        yield

        logger.info("Shutting down Interview Dispatch service...")
        await app.state.services.close()
        logger.info("Interview Dispatch service stopped")

    app = FastAPI(
        title="Interview Dispatch",
        description="Interview invitation assistant, dispatch and confirmation tracking",
        version=__version__,
        lifespan=lifespan
    )
    app.state.services = services

    # The browser extension calls the chat endpoint cross-origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthCheckResponse)
    async def health_check(services: AppServices = Depends(get_services)):
        """Health check endpoint"""
        connected = services.db.check_connection()
        uptime = (utcnow() - start_time).total_seconds()

        return HealthCheckResponse(
            status="healthy" if connected else "degraded",
            service="interview-dispatch",
            database_connected=connected,
            uptime_seconds=uptime
        )

    @app.post("/chat", response_model=ChatResponse)
    async def chat(request: ChatRequest, services: AppServices = Depends(get_services)):
        """
        Handle one assistant turn.

        The recent outcomes are used as context for the assistant and
        returned for display; a store failure here does not block the turn.
        """
        recent = []
        context = None
        try:
            recent = services.tracker.list_recent(RECENT_CONTEXT_LIMIT)
            context = PromptTemplates.build_context_summary(recent)
        except SQLAlchemyError as e:
            logger.warning(f"Could not load recent outcomes for chat context: {e}")

        try:
            result = await services.orchestrator.handle_turn(
                request.conversation_history,
                request.message,
                context_summary=context
            )
        except WorkflowError as e:
            logger.error(f"Chat turn failed: {e}")
            raise workflow_http_error(e)

        return ChatResponse(
            response=result.display_text,
            action=result.action,
            should_send_email=result.dispatch_triggered,
            email_sent=result.email_sent,
            email_result=result.dispatch_result,
            missing_fields=result.missing_fields,
            reminder_result=result.reminder_result,
            status_outcome=result.status_outcome,
            recent_outcomes=recent
        )

    @app.post("/dispatch-invitation", response_model=InvitationResult)
    async def dispatch_invitation(record: InvitationRecord, services: AppServices = Depends(get_services)):
        """
        Send an interview invitation.

        Returns success with a persistence warning if the email left but
        could not be recorded.
        """
        try:
            return await services.gateway.send_invitation(record)
        except WorkflowError as e:
            logger.error(f"Invitation to {record.candidate_email} failed: {e}")
            raise workflow_http_error(e)

    @app.post("/dispatch-reminder", response_model=ReminderResult)
    async def dispatch_reminder(request: ReminderRequest, services: AppServices = Depends(get_services)):
        """Send a reminder for a candidate's latest invitation"""
        try:
            return await services.gateway.send_reminder(request.email)
        except WorkflowError as e:
            logger.warning(f"Reminder to {request.email} refused: {e}")
            raise workflow_http_error(e)

    @app.post("/update-status", response_model=DispatchOutcome)
    async def update_status(request: StatusUpdateRequest, services: AppServices = Depends(get_services)):
        """Set the status of a candidate's latest outcome"""
        try:
            outcome = services.tracker.update_status(request.email, request.status)
        except WorkflowError as e:
            raise workflow_http_error(e)

        logger.info(f"Status of {request.email} set to {request.status.value}")
        return outcome

    @app.get("/confirm", response_class=HTMLResponse)
    async def confirm(
        email: Optional[str] = None,
        token: Optional[str] = None,
        services: AppServices = Depends(get_services)
    ):
        """
        One-shot confirmation link followed by the candidate.

        Always answers with an HTML page.
        """
        if not email or not token:
            return HTMLResponse(EmailTemplates.render_invalid_link(), status_code=400)

        try:
            state, outcome = services.tracker.confirm(email, token)
        except NotFoundError as e:
            logger.warning(f"Invalid confirmation link for {email}: {e}")
            return HTMLResponse(EmailTemplates.render_invalid_link(), status_code=404)
        except Exception as e:
            logger.error(f"Error confirming {email}: {e}", exc_info=True)
            return HTMLResponse(EmailTemplates.render_confirmation_error(), status_code=500)

        if state == ConfirmationState.ALREADY_CONFIRMED:
            return HTMLResponse(EmailTemplates.render_already_confirmed())
        return HTMLResponse(EmailTemplates.render_confirmation_success(outcome))

    @app.post("/reminder-sweep", response_model=SweepResult)
    async def reminder_sweep(
        services: AppServices = Depends(get_services),
        authorization: Optional[str] = Header(None),
        x_api_key: Optional[str] = Header(None)
    ):
        """
        Send reminders to every candidate inside the reminder window.

        Called by an external scheduler. When a sweep secret is configured
        it must be sent as a bearer token or X-API-Key header.
        """
        secret = services.settings.reminder_sweep_secret
        if secret and not verify_sweep_secret(secret, authorization, x_api_key):
            logger.warning("Reminder sweep called without a valid secret")
            raise HTTPException(status_code=401, detail="Unauthorized")

        return await services.sweeper.run()

    @app.get("/outcomes")
    async def list_outcomes(
        status: Optional[OutcomeStatus] = Query(None, description="Filter by status"),
        limit: int = Query(50, ge=1, le=500, description="Maximum number of outcomes"),
        services: AppServices = Depends(get_services)
    ):
        """Most recent outcomes, newest first"""
        outcomes = services.tracker.list_outcomes(status=status, limit=limit)
        return {
            "outcomes": outcomes,
            "total": len(outcomes)
        }

    @app.get("/outcomes/stats", response_model=OutcomeStatistics)
    async def outcome_statistics(services: AppServices = Depends(get_services)):
        """Outcome counts per status"""
        return services.tracker.get_statistics()

    @app.get("/outcomes/stale")
    async def stale_outcomes(services: AppServices = Depends(get_services)):
        """Outcomes still unanswered more than 48h after sending"""
        outcomes = services.tracker.list_stale_for_cron()
        return {
            "outcomes": outcomes,
            "total": len(outcomes)
        }

    @app.get("/outcomes/{email}", response_model=DispatchOutcome)
    async def get_outcome(email: str, services: AppServices = Depends(get_services)):
        """Latest outcome for a candidate"""
        outcome = services.tracker.get_latest(email)
        if not outcome:
            raise HTTPException(status_code=404, detail="No dispatch found for this email")
        return outcome

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": "Interview Dispatch",
            "version": __version__,
            "status": "running"
        }

    return app


def verify_sweep_secret(secret: str, authorization: Optional[str], api_key: Optional[str]) -> bool:
    """
    Check the shared secret sent by the scheduler.

    Accepts "Authorization: Bearer <secret>" or "X-API-Key: <secret>".
    """
    if authorization and authorization.startswith("Bearer "):
        if hmac.compare_digest(authorization[len("Bearer "):].encode(), secret.encode()):
            return True
    if api_key and hmac.compare_digest(api_key.encode(), secret.encode()):
        return True
    return False


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
