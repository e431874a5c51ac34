# Core module - steps, models, errors and the ledger
from .states import ClaimStep, PaymentMethod
from .models import (
    Attachment,
    Benefit,
    CashPayment,
    ClaimDraft,
    ClaimSession,
    CreditPayment,
    DocumentCategory,
    Member,
    Policy,
    ProcessedRequest,
)
from .errors import ClaimError, ClaimErrorType, ClaimWorkflowError, InvalidTransitionError, LookupReason

__all__ = [
    "ClaimStep",
    "PaymentMethod",
    "Attachment",
    "Benefit",
    "CashPayment",
    "ClaimDraft",
    "ClaimSession",
    "CreditPayment",
    "DocumentCategory",
    "Member",
    "Policy",
    "ProcessedRequest",
    "ClaimError",
    "ClaimErrorType",
    "ClaimWorkflowError",
    "InvalidTransitionError",
    "LookupReason",
]
