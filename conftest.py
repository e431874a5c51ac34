"""Shared fixtures: in-memory stand-ins for the policy service and audit channel."""
from typing import List, Optional

import pytest

from app.coordinator.submission import SubmissionCoordinator
from app.core.errors import AuditNotifierError, PolicyRepositoryError
from app.core.evidence import EvidenceCollector
from app.core.models import Attachment, ClaimSession, DocumentCategory, Policy
from app.integrations.policy_repository import PatchResult
from app.state_machine.machine import ClaimSessionMachine
from app.workflow.claim_workflow import ClaimWorkflow

CHANNEL = "-100200300"


class FakeNotifier:
    """Records every message; raises when told to fail."""

    def __init__(self):
        self.texts: List[tuple] = []
        self.groups: List[tuple] = []
        self.fail_with: Optional[str] = None

    @property
    def sent(self) -> int:
        return len(self.texts) + len(self.groups)

    def send_text(self, channel, message):
        if self.fail_with:
            raise AuditNotifierError(self.fail_with)
        self.texts.append((channel, message))
        return {"ok": True}

    def send_media_group(self, channel, attachments, caption):
        if self.fail_with:
            raise AuditNotifierError(self.fail_with)
        self.groups.append((channel, list(attachments), caption))
        return {"ok": True}


class FakeRepository:
    """Serves policies from memory and records patches."""

    def __init__(self, policies: List[dict]):
        self.records = policies
        self.patches: List[tuple] = []
        self.patch_results: List[PatchResult] = []
        self.fetch_error = False
        self.patch_error = False

    def find_by_employee_id(self, employee_id):
        if self.fetch_error:
            raise PolicyRepositoryError("connection refused")
        for record in self.records:
            if str(record["employee_id"]) == employee_id:
                return Policy.model_validate(record)
        return None

    def patch_benefit_usage(self, employee_id, benefit_type, new_used_amount):
        self.patches.append((employee_id, benefit_type, new_used_amount))
        if self.patch_error:
            raise PolicyRepositoryError("read timed out")
        if self.patch_results:
            return self.patch_results.pop(0)
        return PatchResult(success=True, status_code=200, message="Updated")


def make_policy_record() -> dict:
    return {
        "id": 42,
        "employee_id": "EMP001",
        "created_at": "2024-01-15T08:00:00Z",
        "benefits": [
            {"type": "Medical", "amount": 200, "usedAmount": 50},
            {"type": "Dental", "amount": 200, "usedAmount": 190},
            {"type": "Optical", "amount": 100, "usedAmount": 100},
            {"type": "Hospital", "amount": None, "usedAmount": None},
        ],
        "mainMembers": [{"name": "Jane Perera", "relationship": "Self"}],
        "dependents": [{"name": "Sam Perera"}],
    }


def make_attachment(category=DocumentCategory.RECEIPT, name="receipt.jpg") -> Attachment:
    return Attachment(filename=name, content=b"\xff\xd8\xff-fake-jpeg", content_type="image/jpeg", category=category)


@pytest.fixture
def policy_record() -> dict:
    return make_policy_record()


@pytest.fixture
def policy(policy_record) -> Policy:
    return Policy.model_validate(policy_record)


@pytest.fixture
def machine() -> ClaimSessionMachine:
    return ClaimSessionMachine(EvidenceCollector(max_attachments=3))


@pytest.fixture
def session(policy) -> ClaimSession:
    return ClaimSession(employee_id="EMP001", policy=policy)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def repository(policy_record) -> FakeRepository:
    return FakeRepository([policy_record])


@pytest.fixture
def coordinator(notifier, repository) -> SubmissionCoordinator:
    return SubmissionCoordinator(notifier, repository, CHANNEL)


@pytest.fixture
def workflow(machine, repository, coordinator) -> ClaimWorkflow:
    return ClaimWorkflow(machine=machine, repository=repository, coordinator=coordinator)
