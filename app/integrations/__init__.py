# Integrations module - policy service and audit channel clients
from .policy_repository import PatchResult, PolicyRepositoryClient, unwrap_policies
from .audit_notifier import TelegramNotifier

__all__ = ["PatchResult", "PolicyRepositoryClient", "unwrap_policies", "TelegramNotifier"]
