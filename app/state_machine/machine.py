"""
Claim Session State Machine

Owns the step sequence of a claim and refuses any input that is not legal
in the session's current step.
"""
import logging
from typing import Any, Dict, List, Optional, Set, Union

from app.core import ledger
from app.core.errors import ClaimError, ClaimErrorType, InvalidTransitionError
from app.core.evidence import EvidenceCollector
from app.core.ledger import LedgerDecision
from app.core.models import Attachment, Benefit, CashPayment, ClaimDraft, ClaimSession, CreditPayment
from app.core.states import ClaimStep, PaymentMethod

logger = logging.getLogger(__name__)


class ClaimSessionMachine:
    """
    State machine for the claim-submission workflow.

    Works on one ClaimSession at a time. The draft on the session is
    replaced wholesale on every transition; a refused input raises
    InvalidTransitionError and leaves the session untouched.
    """

    # Define standard step flow
    STANDARD_FLOW: List[ClaimStep] = [
        ClaimStep.IDLE,
        ClaimStep.AMOUNT_ENTRY,
        ClaimStep.PAYMENT_SELECTION,
        ClaimStep.EVIDENCE_COLLECTION,
        ClaimStep.FINALIZING,
    ]

    # Define valid transitions (from_step -> set of valid to_steps)
    TRANSITIONS: Dict[ClaimStep, Set[ClaimStep]] = {
        ClaimStep.IDLE: {ClaimStep.AMOUNT_ENTRY},
        ClaimStep.AMOUNT_ENTRY: {ClaimStep.PAYMENT_SELECTION, ClaimStep.IDLE},
        ClaimStep.PAYMENT_SELECTION: {ClaimStep.EVIDENCE_COLLECTION, ClaimStep.IDLE},
        ClaimStep.EVIDENCE_COLLECTION: {ClaimStep.FINALIZING, ClaimStep.IDLE},
        ClaimStep.FINALIZING: {ClaimStep.IDLE, ClaimStep.EVIDENCE_COLLECTION},
    }

    # Steps a draft can be voided from
    CANCELLABLE: Set[ClaimStep] = {
        ClaimStep.AMOUNT_ENTRY,
        ClaimStep.PAYMENT_SELECTION,
        ClaimStep.EVIDENCE_COLLECTION,
    }

    def __init__(self, evidence: Optional[EvidenceCollector] = None):
        """Initialize the state machine."""
        self.evidence = evidence or EvidenceCollector()

    def get_valid_transitions(self, session: ClaimSession) -> List[ClaimStep]:
        """Get list of steps reachable from the session's current step."""
        return sorted(self.TRANSITIONS.get(session.current_step, set()), key=self.STANDARD_FLOW.index)

    def can_transition(self, session: ClaimSession, target_step: ClaimStep) -> bool:
        """Check if a transition to target_step is valid."""
        return target_step in self.TRANSITIONS.get(session.current_step, set())

    def _require(self, session: ClaimSession, step: ClaimStep, action: str) -> ClaimDraft:
        if session.current_step != step or session.draft is None:
            logger.warning(f"Session {session.id}: refused to {action} in {session.current_step.value}")
            raise InvalidTransitionError.refused(session.current_step, action)
        return session.draft

    def _advance(self, session: ClaimSession, draft: Optional[ClaimDraft]) -> ClaimSession:
        target = draft.step if draft else ClaimStep.IDLE
        if not self.can_transition(session, target):
            raise InvalidTransitionError.refused(
                session.current_step, f"move to {target.value}"
            )

        previous = session.current_step
        session.record_step_change(draft)
        logger.info(f"Session {session.id} transitioned from {previous.value} to {target.value}")
        return session

    def _benefit(self, session: ClaimSession, draft: ClaimDraft) -> Benefit:
        return session.policy.benefits[draft.benefit_index]

    def select_benefit(self, session: ClaimSession, index: int) -> ClaimSession:
        """
        Open a benefit for processing.

        Re-selecting the benefit of the open draft voids it (toggle back to
        IDLE). Selecting any benefit while another draft is open is refused.

        Raises:
            InvalidTransitionError: If no policy is loaded, a different draft
                is open, the index is out of range or the benefit's limit is
                already reached
        """
        step = session.current_step

        if step in self.CANCELLABLE and session.draft.benefit_index == index:
            return self.cancel(session)

        if step != ClaimStep.IDLE:
            logger.warning(f"Session {session.id}: benefit {index} selected while in {step.value}")
            raise InvalidTransitionError.refused(
                step, "select a benefit", "Finish or void the claim in progress first."
            )

        if session.policy is None:
            raise InvalidTransitionError.refused(step, "select a benefit", "Look up a policy first.")

        if not 0 <= index < len(session.policy.benefits):
            raise InvalidTransitionError.refused(step, "select a benefit", f"No benefit at position {index}.")

        benefit = session.policy.benefits[index]
        if ledger.usage(benefit).limit_reached:
            raise InvalidTransitionError(ClaimError(
                error_type=ClaimErrorType.LIMIT_EXCEEDED,
                message=f"The {benefit.type or 'selected'} benefit has reached its limit.",
                step=step,
            ))

        session.last_error = None
        session.notice = None
        draft = ClaimDraft(benefit_index=index, benefit_type=benefit.type, step=ClaimStep.AMOUNT_ENTRY)
        return self._advance(session, draft)

    def submit_amount(self, session: ClaimSession, amount: Any) -> LedgerDecision:
        """
        Run the ledger check on a proposed amount.

        On accept the amount is frozen into the draft and the session moves
        to PAYMENT_SELECTION; there is no way back to AMOUNT_ENTRY. On reject
        the session stays put and the reason is attached to the step.

        Returns:
            The ledger decision
        """
        draft = self._require(session, ClaimStep.AMOUNT_ENTRY, "enter an amount")
        decision = ledger.validate(self._benefit(session, draft), amount)

        if not decision.accepted:
            session.last_error = decision.error
            logger.warning(f"Session {session.id}: amount {amount!r} rejected - {decision.reason}")
            return decision

        session.last_error = None
        self._advance(
            session,
            draft.model_copy(update={"amount": decision.amount, "step": ClaimStep.PAYMENT_SELECTION}),
        )
        return decision

    def select_payment_method(
        self, session: ClaimSession, method: Union[PaymentMethod, str]
    ) -> ClaimSession:
        """Choose cash or credit and move on to EVIDENCE_COLLECTION."""
        draft = self._require(session, ClaimStep.PAYMENT_SELECTION, "choose a payment method")

        try:
            method = PaymentMethod(method)
        except ValueError:
            raise InvalidTransitionError.refused(
                session.current_step, "choose a payment method", f"Unknown payment method {method!r}."
            )

        payment = CashPayment() if method == PaymentMethod.CASH else CreditPayment()
        return self._advance(
            session,
            draft.model_copy(update={"payment": payment, "step": ClaimStep.EVIDENCE_COLLECTION}),
        )

    def attach(self, session: ClaimSession, attachment: Attachment) -> ClaimSession:
        """Add a supporting document to a cash claim."""
        draft = self._require(session, ClaimStep.EVIDENCE_COLLECTION, "attach a document")

        if not isinstance(draft.payment, CashPayment):
            raise InvalidTransitionError.refused(
                session.current_step, "attach a document", "Credit claims take no documents."
            )

        try:
            payment = self.evidence.add(draft.payment, attachment)
        except ValueError as e:
            raise InvalidTransitionError.refused(session.current_step, "attach a document", str(e))

        session.record_step_change(draft.model_copy(update={"payment": payment}))
        return session

    def detach(self, session: ClaimSession, position: int) -> ClaimSession:
        """Remove a supporting document from a cash claim."""
        draft = self._require(session, ClaimStep.EVIDENCE_COLLECTION, "remove a document")

        if not isinstance(draft.payment, CashPayment):
            raise InvalidTransitionError.refused(
                session.current_step, "remove a document", "Credit claims take no documents."
            )

        try:
            payment = self.evidence.remove(draft.payment, position)
        except IndexError as e:
            raise InvalidTransitionError.refused(session.current_step, "remove a document", str(e))

        session.record_step_change(draft.model_copy(update={"payment": payment}))
        return session

    def begin_finalize(self, session: ClaimSession) -> ClaimDraft:
        """
        Enter FINALIZING.

        From here until complete_finalize or fail_finalize every other input,
        cancel included, is refused.

        Returns:
            The draft to submit
        """
        draft = self._require(session, ClaimStep.EVIDENCE_COLLECTION, "finalize")
        session.last_error = None
        self._advance(session, draft.model_copy(update={"step": ClaimStep.FINALIZING}))
        return session.draft

    def complete_finalize(self, session: ClaimSession, updated_benefit: Benefit) -> ClaimSession:
        """Write the committed benefit into the policy and return to IDLE."""
        draft = self._require(session, ClaimStep.FINALIZING, "complete a submission")
        session.policy.replace_benefit(draft.benefit_index, updated_benefit)
        session.notice = "Claim has been successfully recorded in the system."
        return self._advance(session, None)

    def fail_finalize(self, session: ClaimSession, error: ClaimError) -> ClaimSession:
        """
        Return to EVIDENCE_COLLECTION with the draft intact.

        Amount, payment method and attachments are preserved so the operator
        can retry without redoing earlier steps.
        """
        draft = self._require(session, ClaimStep.FINALIZING, "fail a submission")
        session.last_error = error.model_copy(update={"step": ClaimStep.EVIDENCE_COLLECTION})
        return self._advance(session, draft.model_copy(update={"step": ClaimStep.EVIDENCE_COLLECTION}))

    def cancel(self, session: ClaimSession) -> ClaimSession:
        """
        Void the open draft.

        Nothing is sent and nothing is committed.

        Raises:
            InvalidTransitionError: From IDLE or FINALIZING
        """
        if session.current_step not in self.CANCELLABLE:
            logger.warning(f"Session {session.id}: refused to void in {session.current_step.value}")
            raise InvalidTransitionError.refused(session.current_step, "void the claim")

        session.last_error = None
        return self._advance(session, None)

    def reset(self, session: ClaimSession) -> ClaimSession:
        """Drop any open draft ahead of a new policy lookup."""
        if session.current_step == ClaimStep.FINALIZING:
            raise InvalidTransitionError.refused(session.current_step, "look up a policy")
        if session.current_step != ClaimStep.IDLE:
            self.cancel(session)
        return session
