"""
FastAPI Endpoints for Claim Sessions

Provides the REST API the operator console drives: policy lookup, the
claim steps, and read-only views of the session for presentation.
"""
import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from app.coordinator.submission import SubmissionCoordinator
from app.core import ledger
from app.core.config import get_settings
from app.core.errors import ClaimError, ClaimErrorType, InvalidTransitionError, LookupReason
from app.core.evidence import EvidenceCollector
from app.core.ledger import BenefitUsage
from app.core.models import Attachment, ClaimSession, DocumentCategory, ProcessedRequest
from app.core.states import ClaimStep, PaymentMethod
from app.integrations.audit_notifier import TelegramNotifier
from app.integrations.policy_repository import PolicyRepositoryClient
from app.state_machine.machine import ClaimSessionMachine
from app.workflow.claim_workflow import ClaimWorkflow

logger = logging.getLogger(__name__)

# Initialize router
router = APIRouter(prefix="/sessions", tags=["sessions"])

# HTTP status for each way a lookup can come back empty
LOOKUP_STATUS = {
    LookupReason.MISSING_ID: status.HTTP_400_BAD_REQUEST,
    LookupReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    LookupReason.UNAVAILABLE: status.HTTP_502_BAD_GATEWAY,
}

# Finalize failures that are the claim's fault rather than an upstream service's
LEDGER_REJECTIONS = {ClaimErrorType.INVALID_AMOUNT, ClaimErrorType.LIMIT_EXCEEDED}

# In-memory store for sessions; drafts are never persisted
sessions_store: Dict[str, ClaimSession] = {}


@lru_cache(maxsize=1)
def get_workflow() -> ClaimWorkflow:
    """Build the workflow and its collaborators from settings."""
    settings = get_settings()
    repository = PolicyRepositoryClient(settings.policy_api_url, timeout=settings.http_timeout)
    notifier = TelegramNotifier(
        settings.telegram_bot_token,
        api_url=settings.telegram_api_url,
        timeout=settings.http_timeout,
    )
    return ClaimWorkflow(
        machine=ClaimSessionMachine(EvidenceCollector(settings.max_attachments)),
        repository=repository,
        coordinator=SubmissionCoordinator(notifier, repository, settings.receipt_group_id),
    )


class SessionResponse(BaseModel):
    """Response model for session operations."""
    session: Dict[str, Any] = Field(..., description="Session snapshot; document contents are omitted")
    message: str
    next_valid_steps: List[ClaimStep]


class LookupRequest(BaseModel):
    """Request model for a policy lookup."""
    employee_id: str = Field(..., description="Employee id to look up")


class AmountRequest(BaseModel):
    """Request model for the amount step. Validation happens in the ledger."""
    amount: Optional[float | str] = None


class PaymentMethodRequest(BaseModel):
    """Request model for the payment step."""
    method: PaymentMethod


def _get_session(session_id: str) -> ClaimSession:
    session = sessions_store.get(session_id)
    if not session:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} not found"
        )
    return session


def _refused(e: InvalidTransitionError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.error.model_dump(mode="json"))


def _failed(status_code: int, error: ClaimError) -> HTTPException:
    return HTTPException(status_code=status_code, detail=error.model_dump(mode="json"))


def _respond(workflow: ClaimWorkflow, session: ClaimSession, message: str) -> SessionResponse:
    return SessionResponse(
        session=session.model_dump(mode="json", by_alias=True),
        message=message,
        next_valid_steps=workflow.machine.get_valid_transitions(session),
    )


@router.post("/", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(workflow: ClaimWorkflow = Depends(get_workflow)) -> SessionResponse:
    """
    Open a new operator session.

    The session starts in IDLE with no policy.
    """
    session = ClaimSession()
    sessions_store[session.id] = session
    logger.info(f"Created session {session.id}")
    return _respond(workflow, session, f"Session created with ID {session.id}")


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, workflow: ClaimWorkflow = Depends(get_workflow)) -> SessionResponse:
    """Get the current step, draft and policy of a session."""
    session = _get_session(session_id)
    return _respond(workflow, session, f"Session {session_id} is in {session.current_step.value}")


@router.post("/{session_id}/lookup", response_model=SessionResponse)
async def lookup_policy(
    session_id: str,
    request: LookupRequest,
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> SessionResponse:
    """
    Look up the policy of an employee.

    Any claim in progress is voided first.
    """
    session = _get_session(session_id)

    try:
        workflow.machine.reset(session)
    except InvalidTransitionError as e:
        raise _refused(e)

    session = await run_in_threadpool(workflow.lookup, session, request.employee_id)

    if session.policy is None:
        error = session.last_error
        raise _failed(LOOKUP_STATUS.get(error.reason, status.HTTP_400_BAD_REQUEST), error)

    return _respond(workflow, session, f"Policy loaded for employee {session.employee_id}")


@router.get("/{session_id}/usage", response_model=List[BenefitUsage])
async def get_usage(session_id: str) -> List[BenefitUsage]:
    """Utilization figures for every benefit of the loaded policy."""
    session = _get_session(session_id)
    if session.policy is None:
        return []
    return [ledger.usage(benefit) for benefit in session.policy.benefits]


@router.get("/{session_id}/history", response_model=List[ProcessedRequest])
async def get_history(session_id: str) -> List[ProcessedRequest]:
    """Processed requests derived from the loaded policy."""
    session = _get_session(session_id)
    if session.policy is None:
        return []
    return ledger.claim_history(session.policy)


@router.post("/{session_id}/benefits/{index}/select", response_model=SessionResponse)
async def select_benefit(
    session_id: str,
    index: int,
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> SessionResponse:
    """
    Open a benefit for processing.

    Selecting the benefit of the open claim again voids it.
    """
    session = _get_session(session_id)
    try:
        session = workflow.machine.select_benefit(session, index)
    except InvalidTransitionError as e:
        raise _refused(e)

    return _respond(workflow, session, f"Session is in {session.current_step.value}")


@router.post("/{session_id}/amount", response_model=SessionResponse)
async def submit_amount(
    session_id: str,
    request: AmountRequest,
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> SessionResponse:
    """
    Authorize a claim amount.

    Once accepted the amount cannot be modified.
    """
    session = _get_session(session_id)
    try:
        decision = workflow.machine.submit_amount(session, request.amount)
    except InvalidTransitionError as e:
        raise _refused(e)

    if not decision.accepted:
        raise _failed(status.HTTP_422_UNPROCESSABLE_ENTITY, decision.error)

    return _respond(workflow, session, f"Amount {decision.amount:.2f} authorized")


@router.post("/{session_id}/payment-method", response_model=SessionResponse)
async def select_payment_method(
    session_id: str,
    request: PaymentMethodRequest,
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> SessionResponse:
    """Choose cash or credit."""
    session = _get_session(session_id)
    try:
        session = workflow.machine.select_payment_method(session, request.method)
    except InvalidTransitionError as e:
        raise _refused(e)

    return _respond(workflow, session, f"Payment method set to {request.method.value}")


@router.post("/{session_id}/attachments", response_model=SessionResponse)
async def attach_document(
    session_id: str,
    document: UploadFile = File(..., description="Supporting document"),
    category: DocumentCategory = Form(DocumentCategory.GENERIC_RECEIPT),
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> SessionResponse:
    """
    Attach a supporting document to a cash claim.

    All documents are optional; upload whichever the claimant has.
    """
    session = _get_session(session_id)
    content = await document.read()

    if not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded document is empty"
        )

    attachment = Attachment(
        filename=document.filename or f"{category.value}.bin",
        content=content,
        content_type=document.content_type or "application/octet-stream",
        category=category,
    )

    try:
        session = workflow.machine.attach(session, attachment)
    except InvalidTransitionError as e:
        raise _refused(e)

    return _respond(workflow, session, f"{category.label} attached")


@router.delete("/{session_id}/attachments/{position}", response_model=SessionResponse)
async def detach_document(
    session_id: str,
    position: int,
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> SessionResponse:
    """Remove an attached document by position."""
    session = _get_session(session_id)
    try:
        session = workflow.machine.detach(session, position)
    except InvalidTransitionError as e:
        raise _refused(e)

    return _respond(workflow, session, f"Document {position} removed")


@router.post("/{session_id}/finalize", response_model=SessionResponse)
async def finalize_claim(
    session_id: str,
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> SessionResponse:
    """
    Submit the claim: notify the audit channel, then commit the new used amount.

    The network calls run off the event loop; while they are in flight the
    session is FINALIZING and every other request against it is refused.
    On failure the claim returns to EVIDENCE_COLLECTION intact, ready for a
    manual retry (which sends the notification again).
    """
    session = _get_session(session_id)
    try:
        draft = workflow.begin_finalize(session)
    except InvalidTransitionError as e:
        raise _refused(e)

    try:
        result = await run_in_threadpool(workflow.submit, session, draft)
    except Exception as e:
        logger.exception(f"Session {session_id}: finalize crashed")
        workflow.abort(session)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Submission failed: {type(e).__name__}"
        )

    session = workflow.settle(session, result)
    if not result.ok:
        if result.error.error_type in LEDGER_REJECTIONS:
            raise _failed(status.HTTP_422_UNPROCESSABLE_ENTITY, session.last_error)
        raise _failed(status.HTTP_502_BAD_GATEWAY, session.last_error)

    return _respond(workflow, session, session.notice)


@router.post("/{session_id}/cancel", response_model=SessionResponse)
async def cancel_claim(
    session_id: str,
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> SessionResponse:
    """Void the claim in progress. Nothing is sent or committed."""
    session = _get_session(session_id)
    try:
        session = workflow.machine.cancel(session)
    except InvalidTransitionError as e:
        raise _refused(e)

    return _respond(workflow, session, "Claim voided")
