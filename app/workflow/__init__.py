from .claim_workflow import ClaimWorkflow

__all__ = ["ClaimWorkflow"]
