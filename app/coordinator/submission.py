"""
Submission Coordinator

Performs the two side effects of a finalized claim, strictly in order:
notify the audit channel, then commit the new used amount to the policy
service. A failed notification leaves the ledger untouched. A failed
commit comes after the notification was already sent; a manual retry will
notify again.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from pydantic import BaseModel

from app.core import ledger
from app.core.errors import (
    GENERIC_COMMIT_ERROR,
    AuditNotifierError,
    ClaimError,
    ClaimErrorType,
    PolicyRepositoryError,
)
from app.core.models import Attachment, Benefit, CashPayment, ClaimDraft, CreditPayment, Policy
from app.core.states import ClaimStep
from app.integrations.audit_notifier import TelegramNotifier
from app.integrations.policy_repository import PolicyRepositoryClient

logger = logging.getLogger(__name__)


@dataclass
class PhaseResult:
    """Outcome of one submission phase; chained with then()."""
    value: Any = None
    error: Optional[ClaimError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def then(self, phase: Callable[[Any], "PhaseResult"]) -> "PhaseResult":
        """Run the next phase on success; pass a failure through untouched."""
        return phase(self.value) if self.ok else self

    @classmethod
    def success(cls, value: Any = None) -> "PhaseResult":
        return cls(value=value)

    @classmethod
    def failure(cls, error_type: ClaimErrorType, message: str) -> "PhaseResult":
        return cls(error=ClaimError(error_type=error_type, message=message, step=ClaimStep.FINALIZING))


class AuditMessage(BaseModel):
    """What the audit channel receives: a text, optionally with documents."""
    text: str
    attachments: Tuple[Attachment, ...] = ()


def format_amount(amount: float) -> str:
    """Render an amount the way operators type it: 30, 30.5, 30.25."""
    if float(amount).is_integer():
        return str(int(amount))
    return f"{amount:.2f}".rstrip("0").rstrip(".")


def _cash_message(policy: Policy, employee_id: str, draft: ClaimDraft) -> AuditMessage:
    header = (
        f"[Cash Claim] {policy.claimant_name} (ID: {employee_id})\n"
        f"Benefit: {draft.benefit_type}\n"
        f"Amount: {format_amount(draft.amount)}"
    )
    attachments = draft.payment.attachments
    if not attachments:
        return AuditMessage(text=f"{header}\nNo documents uploaded.")

    labels = ", ".join(a.category.label for a in attachments)
    return AuditMessage(text=f"{header}\nIncludes: {labels}", attachments=attachments)


def _credit_message(policy: Policy, employee_id: str, draft: ClaimDraft) -> AuditMessage:
    return AuditMessage(text=(
        f"Credit claim submitted for {policy.claimant_name} (Employee ID: {employee_id})\n"
        f"Benefit: {draft.benefit_type}\n"
        f"Amount: {format_amount(draft.amount)}\n"
        f"Payment: Credit"
    ))


_MESSAGE_BUILDERS = {
    CashPayment: _cash_message,
    CreditPayment: _credit_message,
}


def build_audit_message(policy: Policy, employee_id: str, draft: ClaimDraft) -> AuditMessage:
    """Build the audit message for a draft, dispatching on its payment variant."""
    builder = _MESSAGE_BUILDERS.get(type(draft.payment))
    if builder is None:
        raise ValueError(f"Draft for {draft.benefit_type!r} has no payment method")
    return builder(policy, employee_id, draft)


class SubmissionCoordinator:
    """
    Runs notify-then-commit for a finalized draft.

    No automatic retry is performed; a failure is returned to the caller,
    which keeps the draft for a manual retry.
    """

    def __init__(
        self,
        notifier: TelegramNotifier,
        repository: PolicyRepositoryClient,
        channel: str,
    ):
        self.notifier = notifier
        self.repository = repository
        self.channel = channel

    def finalize(self, policy: Policy, employee_id: str, draft: ClaimDraft) -> PhaseResult:
        """
        Submit a draft.

        Args:
            policy: The session's policy; not modified here
            employee_id: Employee the claim is recorded against
            draft: Draft with an authorized amount and a payment method

        Returns:
            PhaseResult holding the updated Benefit, or the first failure
        """
        benefit = policy.benefits[draft.benefit_index]
        new_used_amount = ledger.add_amounts(benefit.used_amount or 0.0, draft.amount)

        logger.info(
            f"Finalizing {draft.payment.method.value} claim for employee {employee_id}: "
            f"{draft.benefit_type} {format_amount(draft.amount)} "
            f"({len(draft.attachments)} document(s))"
        )

        return (
            self._check_limit(benefit, draft)
            .then(lambda _: self._notify(build_audit_message(policy, employee_id, draft)))
            .then(lambda _: self._commit(employee_id, benefit, new_used_amount))
        )

    def _check_limit(self, benefit: Benefit, draft: ClaimDraft) -> PhaseResult:
        decision = ledger.validate(benefit, draft.amount)
        if not decision.accepted:
            return PhaseResult.failure(decision.error.error_type, decision.error.message)
        return PhaseResult.success()

    def _notify(self, message: AuditMessage) -> PhaseResult:
        try:
            if message.attachments:
                self.notifier.send_media_group(self.channel, message.attachments, message.text)
            else:
                self.notifier.send_text(self.channel, message.text)
        except (AuditNotifierError, ValueError) as e:
            logger.error(f"Audit notification failed, ledger untouched: {e}")
            return PhaseResult.failure(
                ClaimErrorType.NOTIFICATION_FAILED, f"Failed to finalize submission: {e}"
            )
        return PhaseResult.success(message)

    def _commit(self, employee_id: str, benefit: Benefit, new_used_amount: float) -> PhaseResult:
        try:
            result = self.repository.patch_benefit_usage(employee_id, benefit.type, new_used_amount)
        except PolicyRepositoryError as e:
            logger.error(f"Commit failed after notification was sent: {e}")
            return PhaseResult.failure(
                ClaimErrorType.COMMIT_FAILED,
                "Failed to finalize submission: System error while updating the benefit.",
            )

        if not result.success:
            logger.error(f"Commit rejected after notification was sent: {result.message}")
            return PhaseResult.failure(
                ClaimErrorType.COMMIT_FAILED,
                f"Failed to finalize submission: {result.message or GENERIC_COMMIT_ERROR}",
            )

        return PhaseResult.success(benefit.model_copy(update={"used_amount": new_used_amount}))
