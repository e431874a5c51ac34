"""
Claim Pydantic Models

Defines the policy records read from the policy service and the ephemeral
draft a claim is assembled in.
"""
import math
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Tuple, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .errors import ClaimError
from .states import ClaimStep, PaymentMethod


class Member(BaseModel):
    """A main member or dependent listed on a policy."""
    model_config = ConfigDict(extra="allow")

    name: str = Field(default="", description="Member full name")


class Benefit(BaseModel):
    """
    One coverage category of a policy.

    `limit` travels as `amount` on the wire. Missing or non-numeric figures are
    kept as None so the ledger can tell them apart from a real zero.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str = Field(default="", description="Benefit type label")
    limit: Optional[float] = Field(default=None, alias="amount", description="Maximum claimable total")
    used_amount: Optional[float] = Field(default=None, alias="usedAmount", description="Amount already claimed")

    @field_validator("limit", "used_amount", mode="before")
    @classmethod
    def _coerce_numeric(cls, value: Any) -> Optional[float]:
        if value is None or isinstance(value, bool):
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        return number if math.isfinite(number) else None


class Policy(BaseModel):
    """An employee's personal-accident insurance record."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[Union[int, str]] = Field(default=None, description="Policy identifier")
    employee_id: str = Field(..., description="Employee the policy belongs to")
    created_at: Optional[Any] = Field(default=None, description="Creation timestamp as reported by the service")
    benefits: List[Benefit] = Field(default_factory=list)
    main_members: List[Member] = Field(default_factory=list, alias="mainMembers")
    dependents: List[Member] = Field(default_factory=list)

    @field_validator("employee_id", mode="before")
    @classmethod
    def _employee_id_as_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @property
    def claimant_name(self) -> str:
        """Name used on audit messages: the first main member."""
        if self.main_members and self.main_members[0].name:
            return self.main_members[0].name
        return "Unknown"

    def replace_benefit(self, index: int, benefit: Benefit) -> None:
        """Swap one benefit in place; every other field passes through unchanged."""
        self.benefits[index] = benefit


class DocumentCategory(str, Enum):
    """Informational label for a supporting document."""
    CERTIFICATE = "certificate"
    PRESCRIPTION = "prescription"
    RECEIPT = "receipt"
    GENERIC_RECEIPT = "generic-receipt"

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]


_CATEGORY_LABELS = {
    DocumentCategory.CERTIFICATE: "Medical Certificate",
    DocumentCategory.PRESCRIPTION: "Prescription",
    DocumentCategory.RECEIPT: "Receipt",
    DocumentCategory.GENERIC_RECEIPT: "General Receipt",
}


class Attachment(BaseModel):
    """A supporting document held in memory until the claim is finalized."""
    model_config = ConfigDict(frozen=True)

    filename: str = Field(..., min_length=1)
    content: bytes = Field(..., exclude=True, repr=False)
    content_type: str = Field(default="application/octet-stream")
    category: DocumentCategory = Field(default=DocumentCategory.GENERIC_RECEIPT)

    @computed_field  # type: ignore[misc]
    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")


class CashPayment(BaseModel):
    """Cash path: zero or more optional documents travel with the claim."""
    model_config = ConfigDict(frozen=True)

    method: Literal[PaymentMethod.CASH] = PaymentMethod.CASH
    attachments: Tuple[Attachment, ...] = ()


class CreditPayment(BaseModel):
    """Credit path: no documents apply."""
    model_config = ConfigDict(frozen=True)

    method: Literal[PaymentMethod.CREDIT] = PaymentMethod.CREDIT


Payment = Annotated[Union[CashPayment, CreditPayment], Field(discriminator="method")]


class ClaimDraft(BaseModel):
    """
    The in-progress, uncommitted claim.

    Frozen: every transition produces a new draft via model_copy, so the
    authorized amount can never be edited through a stale handle.
    """
    model_config = ConfigDict(frozen=True)

    benefit_index: int = Field(..., ge=0)
    benefit_type: str = Field(default="")
    step: ClaimStep = Field(default=ClaimStep.AMOUNT_ENTRY)
    amount: Optional[float] = Field(default=None, gt=0)
    payment: Optional[Payment] = None

    @property
    def attachments(self) -> Tuple[Attachment, ...]:
        if isinstance(self.payment, CashPayment):
            return self.payment.attachments
        return ()


class ClaimSession(BaseModel):
    """
    One operator session.

    Holds the looked-up policy and at most one draft. The current step is
    read from the draft; no draft means IDLE.
    """
    id: str = Field(default_factory=lambda: str(uuid4()), description="Session identifier")
    employee_id: Optional[str] = Field(default=None, description="Employee id of the last successful lookup")
    policy: Optional[Policy] = None
    draft: Optional[ClaimDraft] = None
    last_error: Optional[ClaimError] = Field(default=None, description="Error attached to the current step")
    notice: Optional[str] = Field(default=None, description="Last success message")
    step_history: List[ClaimStep] = Field(default_factory=lambda: [ClaimStep.IDLE])
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None

    @computed_field  # type: ignore[misc]
    @property
    def current_step(self) -> ClaimStep:
        return self.draft.step if self.draft else ClaimStep.IDLE

    def record_step_change(self, draft: Optional[ClaimDraft]) -> None:
        """Replace the draft wholesale and record the step it lands on."""
        previous = self.current_step
        self.draft = draft
        if self.current_step != previous:
            self.step_history.append(self.current_step)
        self.updated_at = datetime.now()


class ProcessedRequest(BaseModel):
    """A processed claim record derived from a benefit's used amount."""
    id: str
    date: Optional[Any] = None
    benefit: str
    amount: float
    status: str = "Processed"
