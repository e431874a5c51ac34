# Coordinator module - notify-then-commit submission
from .submission import AuditMessage, PhaseResult, SubmissionCoordinator, build_audit_message

__all__ = ["AuditMessage", "PhaseResult", "SubmissionCoordinator", "build_audit_message"]
