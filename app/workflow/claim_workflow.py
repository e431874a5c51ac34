"""
Claim Workflow

Ties a session's state machine to its external collaborators: policy
lookup on one side, the submission coordinator on the other.
"""
import logging

from app.coordinator.submission import PhaseResult, SubmissionCoordinator
from app.core.errors import (
    GENERIC_LOOKUP_ERROR,
    POLICY_NOT_FOUND,
    ClaimError,
    ClaimErrorType,
    LookupReason,
    PolicyRepositoryError,
)
from app.core.models import ClaimDraft, ClaimSession
from app.core.states import ClaimStep
from app.integrations.policy_repository import PolicyRepositoryClient
from app.state_machine.machine import ClaimSessionMachine

logger = logging.getLogger(__name__)


class ClaimWorkflow:
    """
    Drives claim sessions.

    Failures are attached to the session as last_error rather than raised;
    only input the state machine refuses raises InvalidTransitionError.
    """

    def __init__(
        self,
        machine: ClaimSessionMachine,
        repository: PolicyRepositoryClient,
        coordinator: SubmissionCoordinator,
    ):
        self.machine = machine
        self.repository = repository
        self.coordinator = coordinator

    def lookup(self, session: ClaimSession, employee_id: str) -> ClaimSession:
        """
        Load the policy for an employee.

        Any open draft is discarded first. A policy that is not found, or a
        service that cannot be reached, leaves the session without a policy
        and with a LOOKUP_FAILED error.
        """
        employee_id = (employee_id or "").strip()
        self.machine.reset(session)
        session.policy = None
        session.employee_id = None
        session.notice = None

        if not employee_id:
            return self._lookup_failed(session, LookupReason.MISSING_ID, "Enter an Employee ID.")

        try:
            policy = self.repository.find_by_employee_id(employee_id)
        except PolicyRepositoryError as e:
            logger.error(f"Policy lookup for {employee_id} failed: {e}")
            return self._lookup_failed(session, LookupReason.UNAVAILABLE, GENERIC_LOOKUP_ERROR)

        if policy is None:
            logger.info(f"No policy found for employee {employee_id}")
            return self._lookup_failed(session, LookupReason.NOT_FOUND, POLICY_NOT_FOUND)

        session.policy = policy
        session.employee_id = employee_id
        session.last_error = None
        logger.info(f"Session {session.id} loaded policy {policy.id} for employee {employee_id}")
        return session

    def _lookup_failed(self, session: ClaimSession, reason: LookupReason, message: str) -> ClaimSession:
        session.last_error = ClaimError(
            error_type=ClaimErrorType.LOOKUP_FAILED, message=message, step=ClaimStep.IDLE, reason=reason
        )
        return session

    def begin_finalize(self, session: ClaimSession) -> ClaimDraft:
        """Move the session into FINALIZING and hand back the draft to submit."""
        return self.machine.begin_finalize(session)

    def submit(self, session: ClaimSession, draft: ClaimDraft) -> PhaseResult:
        """Run the network side effects. Safe to call off the event loop."""
        return self.coordinator.finalize(session.policy, session.employee_id, draft)

    def settle(self, session: ClaimSession, result: PhaseResult) -> ClaimSession:
        """Leave FINALIZING according to the submission outcome."""
        if result.ok:
            logger.info(f"Session {session.id}: claim committed")
            return self.machine.complete_finalize(session, result.value)

        logger.warning(f"Session {session.id}: submission failed - {result.error.message}")
        return self.machine.fail_finalize(session, result.error)

    def abort(self, session: ClaimSession) -> None:
        """
        Release a session stuck in FINALIZING after an unexpected exception.

        Reported as SYSTEM_ERROR; the failing phase is not known.
        """
        if session.current_step == ClaimStep.FINALIZING:
            self.machine.fail_finalize(session, ClaimError(
                error_type=ClaimErrorType.SYSTEM_ERROR,
                message="Failed to finalize submission: Unexpected system error.",
            ))

    def finalize(self, session: ClaimSession) -> ClaimSession:
        """
        Submit the open draft.

        On failure the session returns to EVIDENCE_COLLECTION with the draft
        intact and the reason in last_error.
        """
        draft = self.begin_finalize(session)
        try:
            result = self.submit(session, draft)
        except Exception:
            logger.exception(f"Session {session.id}: unexpected error while finalizing")
            self.abort(session)
            raise
        return self.settle(session, result)
