"""
Evidence Collector

Accumulates the optional supporting documents of a cash claim. Documents
are held in memory on the draft; nothing is stored until the claim is
finalized, and no category is required.
"""
import logging
from typing import List

from .models import Attachment, CashPayment

logger = logging.getLogger(__name__)

# One claim's documents go out as a single audit media group, which holds at most 10 items.
MAX_ATTACHMENTS = 10


class EvidenceCollector:
    """
    Adds and removes attachments on a cash payment.

    Payments are frozen, so every operation returns a new CashPayment and
    leaves the one it was given untouched.
    """

    def __init__(self, max_attachments: int = MAX_ATTACHMENTS):
        if not 1 <= max_attachments <= MAX_ATTACHMENTS:
            raise ValueError(
                f"max_attachments must be between 1 and {MAX_ATTACHMENTS}, got {max_attachments}"
            )
        self.max_attachments = max_attachments

    def can_attach(self, payment: CashPayment) -> bool:
        return len(payment.attachments) < self.max_attachments

    def add(self, payment: CashPayment, attachment: Attachment) -> CashPayment:
        """
        Append an attachment, keeping upload order.

        Raises:
            ValueError: If the payment already holds max_attachments documents
        """
        if not self.can_attach(payment):
            raise ValueError(
                f"At most {self.max_attachments} documents can accompany one claim."
            )

        logger.info(
            f"Attached {attachment.category.label} '{attachment.filename}' "
            f"({attachment.size} bytes), {len(payment.attachments) + 1} document(s) held"
        )
        return payment.model_copy(update={"attachments": payment.attachments + (attachment,)})

    def remove(self, payment: CashPayment, position: int) -> CashPayment:
        """
        Drop the attachment at a position.

        Raises:
            IndexError: If no attachment sits at that position
        """
        if not 0 <= position < len(payment.attachments):
            raise IndexError(f"No document at position {position}.")

        removed = payment.attachments[position]
        remaining = payment.attachments[:position] + payment.attachments[position + 1:]
        logger.info(f"Removed {removed.category.label} '{removed.filename}'")
        return payment.model_copy(update={"attachments": remaining})

    @staticmethod
    def labels(payment: CashPayment) -> List[str]:
        """Category labels of the held documents, in upload order."""
        return [a.category.label for a in payment.attachments]
