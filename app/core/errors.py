"""
Claim Workflow Errors

Every failure the workflow can surface is described by a ClaimError: a
user-visible message attached to the step the operator is on. None of them
is fatal to the session - the operator can always cancel back to IDLE.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .states import ClaimStep


GENERIC_LOOKUP_ERROR = "System error: Unable to fetch policy details."
GENERIC_COMMIT_ERROR = "Failed to update benefit amount in the database."
POLICY_NOT_FOUND = "No policy found for this Employee ID."


class ClaimErrorType(str, Enum):
    """Error taxonomy for the claim-submission workflow."""
    INVALID_AMOUNT = "INVALID_AMOUNT"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    LOOKUP_FAILED = "LOOKUP_FAILED"
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"
    COMMIT_FAILED = "COMMIT_FAILED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    SYSTEM_ERROR = "SYSTEM_ERROR"


class LookupReason(str, Enum):
    """Why a policy lookup came back without a policy."""
    MISSING_ID = "missing_id"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


class ClaimError(BaseModel):
    """A user-visible error attached to the current step."""
    error_type: ClaimErrorType = Field(..., description="Category of the failure")
    message: str = Field(..., description="Message shown to the operator")
    step: Optional[ClaimStep] = Field(default=None, description="Step the error belongs to")
    reason: Optional[LookupReason] = Field(default=None, description="Lookup outcome, set on LOOKUP_FAILED only")


class ClaimWorkflowError(Exception):
    """
    Base exception for the claim workflow.

    Wraps a ClaimError so the API layer can report it without inspecting
    the exception type.
    """

    def __init__(self, error: ClaimError):
        self.error = error
        super().__init__(error.message)

    @property
    def error_type(self) -> ClaimErrorType:
        return self.error.error_type

    def __str__(self) -> str:
        return f"{self.error.error_type.value}: {self.error.message}"


class InvalidTransitionError(ClaimWorkflowError, ValueError):
    """Raised when input is not legal in the session's current step."""

    @classmethod
    def refused(cls, step: ClaimStep, action: str, detail: str = "") -> "InvalidTransitionError":
        message = f"Cannot {action} while in {step.value}."
        if detail:
            message = f"{message} {detail}"
        return cls(ClaimError(
            error_type=ClaimErrorType.INVALID_TRANSITION,
            message=message,
            step=step,
        ))


class PolicyRepositoryError(Exception):
    """Transport or parse failure talking to the policy service."""


class AuditNotifierError(Exception):
    """Transport failure or rejected request talking to the audit channel."""
