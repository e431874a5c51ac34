"""
Claim Session Step Definitions

Defines the steps an operator moves through while recording a benefit claim.
"""
from enum import Enum


class ClaimStep(str, Enum):
    """
    Enum representing the steps of the claim-submission workflow.

    Flow: IDLE -> AMOUNT_ENTRY -> PAYMENT_SELECTION -> EVIDENCE_COLLECTION -> FINALIZING
    FINALIZING returns to IDLE on success or to EVIDENCE_COLLECTION on failure.
    """
    IDLE = "IDLE"
    AMOUNT_ENTRY = "AMOUNT_ENTRY"
    PAYMENT_SELECTION = "PAYMENT_SELECTION"
    EVIDENCE_COLLECTION = "EVIDENCE_COLLECTION"
    FINALIZING = "FINALIZING"  # Side effects in flight - all input refused


class PaymentMethod(str, Enum):
    """How the claim is being paid out."""
    CASH = "cash"
    CREDIT = "credit"
