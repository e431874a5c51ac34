"""
Ledger Validator

Pure functions computing remaining coverage for a benefit and deciding
whether a proposed claim amount fits under its limit. Nothing here mutates
the benefit, so every function is safe to call repeatedly.
"""
import math
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from .errors import ClaimError, ClaimErrorType
from .models import Benefit, Policy, ProcessedRequest
from .states import ClaimStep

# Utilization thresholds (percent)
HIGH_USAGE_PERCENT = 75.0
LIMIT_REACHED_PERCENT = 100.0

# Stand-in limit when the real one is missing; keeps the percentage defined.
FALLBACK_LIMIT = 1.0

# Amounts are compared and summed at cent precision.
CENT_PLACES = 2

INVALID_AMOUNT_MESSAGE = "Please enter a valid numeric amount."
LIMIT_UNAVAILABLE_MESSAGE = "Limit data unavailable for this benefit."


class BenefitUsage(BaseModel):
    """Display figures for one benefit."""
    benefit_type: str
    used_amount: float = Field(..., description="Used amount, 0 when missing")
    limit: float = Field(..., description="Limit, FALLBACK_LIMIT when missing")
    limit_available: bool = Field(..., description="False when the limit figure was missing or not numeric")
    remaining: float
    utilization: float = Field(..., ge=0, le=100, description="Percent used, clamped at 100")
    high_usage: bool
    limit_reached: bool


class LedgerDecision(BaseModel):
    """Accept, or Reject with a reason."""
    accepted: bool
    amount: Optional[float] = None
    error: Optional[ClaimError] = None

    @property
    def reason(self) -> Optional[str]:
        return self.error.message if self.error else None

    @classmethod
    def accept(cls, amount: float) -> "LedgerDecision":
        return cls(accepted=True, amount=amount)

    @classmethod
    def reject(cls, error_type: ClaimErrorType, message: str) -> "LedgerDecision":
        return cls(
            accepted=False,
            error=ClaimError(error_type=error_type, message=message, step=ClaimStep.AMOUNT_ENTRY),
        )


def coerce_amount(value: Any) -> Optional[float]:
    """Parse a proposed amount; None unless it is a finite number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def add_amounts(used: float, amount: float) -> float:
    """Sum two amounts at cent precision."""
    return round(used + amount, CENT_PLACES)


def usage(benefit: Benefit) -> BenefitUsage:
    """Compute the display figures for a benefit."""
    used = benefit.used_amount if benefit.used_amount is not None else 0.0
    limit_available = benefit.limit is not None
    limit = benefit.limit if limit_available else FALLBACK_LIMIT

    if limit > 0:
        percent = used / limit * 100
    else:
        # A real zero limit has nothing left to claim.
        percent = LIMIT_REACHED_PERCENT

    utilization = min(max(percent, 0.0), LIMIT_REACHED_PERCENT)

    return BenefitUsage(
        benefit_type=benefit.type,
        used_amount=used,
        limit=limit,
        limit_available=limit_available,
        remaining=max(limit - used, 0.0),
        utilization=utilization,
        high_usage=utilization >= HIGH_USAGE_PERCENT,
        limit_reached=utilization >= LIMIT_REACHED_PERCENT,
    )


def utilization(benefit: Benefit) -> float:
    """Used amount as a percentage of the limit, clamped at 100."""
    return usage(benefit).utilization


def validate(benefit: Benefit, proposed_amount: Any) -> LedgerDecision:
    """
    Decide whether a proposed claim amount fits under the benefit's limit.

    Accepts iff the amount is a finite number > 0 and
    used_amount + amount <= limit, both sides rounded to cents.
    """
    amount = coerce_amount(proposed_amount)
    if amount is None or amount <= 0:
        return LedgerDecision.reject(ClaimErrorType.INVALID_AMOUNT, INVALID_AMOUNT_MESSAGE)

    figures = usage(benefit)
    if add_amounts(figures.used_amount, amount) > round(figures.limit, CENT_PLACES):
        message = (
            f"Cannot process. This claim amount ({amount:.2f}) exceeds the "
            f"remaining maximum limit for this benefit."
        )
        if not figures.limit_available:
            message = f"{message} {LIMIT_UNAVAILABLE_MESSAGE}"
        return LedgerDecision.reject(ClaimErrorType.LIMIT_EXCEEDED, message)

    return LedgerDecision.accept(amount)


def claim_history(policy: Policy) -> List[ProcessedRequest]:
    """
    Derive processed-request records from a policy.

    The policy service keeps only cumulative usage, so each benefit with a
    positive used amount becomes one record dated at policy creation.
    """
    prefix = policy.id if policy.id not in (None, "") else "SYS"
    used = [b for b in policy.benefits if (b.used_amount or 0) > 0]
    return [
        ProcessedRequest(
            id=f"REQ-{prefix}-{position}",
            date=policy.created_at,
            benefit=benefit.type,
            amount=benefit.used_amount,
        )
        for position, benefit in enumerate(used, start=1)
    ]
