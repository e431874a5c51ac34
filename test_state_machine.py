"""Tests for the claim session state machine."""
import pytest
from pydantic import ValidationError

from app.core.config import Settings
from app.core.errors import ClaimError, ClaimErrorType, InvalidTransitionError
from app.core.evidence import MAX_ATTACHMENTS, EvidenceCollector
from app.core.models import CashPayment, ClaimSession, CreditPayment, DocumentCategory
from app.core.states import ClaimStep, PaymentMethod

from conftest import make_attachment


def to_evidence(machine, session, method=PaymentMethod.CASH, amount=30):
    machine.select_benefit(session, 0)
    machine.submit_amount(session, amount)
    machine.select_payment_method(session, method)
    return session


class TestHappyPath:

    def test_steps_in_order(self, machine, session):
        assert session.current_step == ClaimStep.IDLE

        machine.select_benefit(session, 0)
        assert session.current_step == ClaimStep.AMOUNT_ENTRY
        assert session.draft.benefit_type == "Medical"

        decision = machine.submit_amount(session, 30)
        assert decision.accepted
        assert session.current_step == ClaimStep.PAYMENT_SELECTION
        assert session.draft.amount == 30

        machine.select_payment_method(session, "cash")
        assert session.current_step == ClaimStep.EVIDENCE_COLLECTION
        assert isinstance(session.draft.payment, CashPayment)

        machine.begin_finalize(session)
        assert session.current_step == ClaimStep.FINALIZING

        assert session.step_history == [
            ClaimStep.IDLE,
            ClaimStep.AMOUNT_ENTRY,
            ClaimStep.PAYMENT_SELECTION,
            ClaimStep.EVIDENCE_COLLECTION,
            ClaimStep.FINALIZING,
        ]

    def test_credit_path_holds_no_documents(self, machine, session):
        to_evidence(machine, session, PaymentMethod.CREDIT)
        assert isinstance(session.draft.payment, CreditPayment)
        assert session.draft.attachments == ()

    def test_valid_transitions_follow_the_flow(self, machine, session):
        assert machine.get_valid_transitions(session) == [ClaimStep.AMOUNT_ENTRY]
        machine.select_benefit(session, 0)
        assert machine.get_valid_transitions(session) == [ClaimStep.IDLE, ClaimStep.PAYMENT_SELECTION]


class TestAmountEntry:

    def test_rejected_amount_stays_in_amount_entry(self, machine, session):
        machine.select_benefit(session, 1)
        decision = machine.submit_amount(session, 15)

        assert not decision.accepted
        assert session.current_step == ClaimStep.AMOUNT_ENTRY
        assert session.last_error.error_type == ClaimErrorType.LIMIT_EXCEEDED
        assert session.draft.amount is None

    def test_error_clears_once_an_amount_is_accepted(self, machine, session):
        machine.select_benefit(session, 1)
        machine.submit_amount(session, 15)
        machine.submit_amount(session, 10)
        assert session.last_error is None
        assert session.current_step == ClaimStep.PAYMENT_SELECTION

    @pytest.mark.parametrize("method", [None, PaymentMethod.CASH, PaymentMethod.CREDIT])
    def test_amount_is_immutable_once_authorized(self, machine, session, method):
        machine.select_benefit(session, 0)
        machine.submit_amount(session, 30)
        if method:
            machine.select_payment_method(session, method)

        with pytest.raises(InvalidTransitionError):
            machine.submit_amount(session, 5)
        assert session.draft.amount == 30

    def test_draft_is_frozen(self, machine, session):
        machine.select_benefit(session, 0)
        machine.submit_amount(session, 30)
        with pytest.raises(ValidationError):
            session.draft.amount = 99


class TestSelectBenefit:

    @pytest.mark.parametrize("steps", [1, 2, 3, 4])
    def test_selecting_another_benefit_mid_claim_is_refused(self, machine, session, steps):
        actions = [
            lambda: machine.select_benefit(session, 0),
            lambda: machine.submit_amount(session, 30),
            lambda: machine.select_payment_method(session, "cash"),
            lambda: machine.begin_finalize(session),
        ]
        for action in actions[:steps]:
            action()
        step, draft = session.current_step, session.draft

        with pytest.raises(InvalidTransitionError):
            machine.select_benefit(session, 3)

        assert session.current_step == step
        assert session.draft == draft

    def test_reselecting_the_same_benefit_toggles_back_to_idle(self, machine, session):
        machine.select_benefit(session, 0)
        machine.select_benefit(session, 0)
        assert session.current_step == ClaimStep.IDLE
        assert session.draft is None

    def test_benefit_at_limit_cannot_be_selected(self, machine, session):
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.select_benefit(session, 2)
        assert exc_info.value.error_type == ClaimErrorType.LIMIT_EXCEEDED
        assert session.current_step == ClaimStep.IDLE

    def test_out_of_range_index_is_refused(self, machine, session):
        with pytest.raises(InvalidTransitionError):
            machine.select_benefit(session, 9)

    def test_selection_needs_a_policy(self, machine):
        with pytest.raises(InvalidTransitionError):
            machine.select_benefit(ClaimSession(), 0)


class TestCancel:

    @pytest.mark.parametrize("steps", [1, 2, 3])
    def test_cancel_returns_to_idle_and_discards_everything(self, machine, session, steps):
        machine.select_benefit(session, 0)
        if steps >= 2:
            machine.submit_amount(session, 30)
        if steps >= 3:
            machine.select_payment_method(session, "cash")
            machine.attach(session, make_attachment())

        machine.cancel(session)

        assert session.current_step == ClaimStep.IDLE
        assert session.draft is None
        assert session.policy.benefits[0].used_amount == 50

    def test_cancel_from_idle_is_refused(self, machine, session):
        with pytest.raises(InvalidTransitionError):
            machine.cancel(session)

    def test_cancel_while_finalizing_is_refused(self, machine, session):
        to_evidence(machine, session)
        machine.begin_finalize(session)

        with pytest.raises(InvalidTransitionError):
            machine.cancel(session)
        with pytest.raises(InvalidTransitionError):
            machine.begin_finalize(session)
        assert session.current_step == ClaimStep.FINALIZING

    def test_reset_refused_while_finalizing(self, machine, session):
        to_evidence(machine, session)
        machine.begin_finalize(session)
        with pytest.raises(InvalidTransitionError):
            machine.reset(session)


class TestEvidence:

    def test_attachments_keep_upload_order(self, machine, session):
        to_evidence(machine, session)
        machine.attach(session, make_attachment(DocumentCategory.CERTIFICATE, "cert.jpg"))
        machine.attach(session, make_attachment(DocumentCategory.RECEIPT, "r1.jpg"))
        machine.attach(session, make_attachment(DocumentCategory.RECEIPT, "r2.jpg"))

        assert [a.filename for a in session.draft.attachments] == ["cert.jpg", "r1.jpg", "r2.jpg"]
        assert session.current_step == ClaimStep.EVIDENCE_COLLECTION

    def test_attachment_capacity(self, machine, session):
        to_evidence(machine, session)
        for _ in range(3):
            machine.attach(session, make_attachment())
        with pytest.raises(InvalidTransitionError):
            machine.attach(session, make_attachment())
        assert len(session.draft.attachments) == 3

    def test_detach_by_position(self, machine, session):
        to_evidence(machine, session)
        machine.attach(session, make_attachment(name="a.jpg"))
        machine.attach(session, make_attachment(name="b.jpg"))
        machine.detach(session, 0)
        assert [a.filename for a in session.draft.attachments] == ["b.jpg"]

        with pytest.raises(InvalidTransitionError):
            machine.detach(session, 5)

    def test_credit_claims_refuse_documents(self, machine, session):
        to_evidence(machine, session, PaymentMethod.CREDIT)
        with pytest.raises(InvalidTransitionError):
            machine.attach(session, make_attachment())

    def test_attach_before_payment_is_refused(self, machine, session):
        machine.select_benefit(session, 0)
        with pytest.raises(InvalidTransitionError):
            machine.attach(session, make_attachment())


class TestAttachmentCapacity:

    @pytest.mark.parametrize("capacity", [0, MAX_ATTACHMENTS + 1, 20])
    def test_capacity_beyond_one_media_group_is_refused(self, capacity):
        with pytest.raises(ValueError):
            EvidenceCollector(max_attachments=capacity)

    def test_full_media_group_is_allowed(self):
        assert EvidenceCollector(max_attachments=MAX_ATTACHMENTS).max_attachments == 10

    @pytest.mark.parametrize("configured,expected", [("20", 10), ("10", 10), ("4", 4)])
    def test_settings_cap_the_configured_capacity(self, monkeypatch, configured, expected):
        monkeypatch.setenv("MAX_ATTACHMENTS", configured)
        assert Settings.from_env().max_attachments == expected


class TestFinalizeOutcome:

    def test_failure_returns_to_evidence_with_draft_intact(self, machine, session):
        to_evidence(machine, session)
        machine.attach(session, make_attachment())
        draft = machine.begin_finalize(session)

        machine.fail_finalize(session, ClaimError(error_type=ClaimErrorType.COMMIT_FAILED, message="nope"))

        assert session.current_step == ClaimStep.EVIDENCE_COLLECTION
        assert session.draft.amount == draft.amount
        assert session.draft.attachments == draft.attachments
        assert session.last_error.step == ClaimStep.EVIDENCE_COLLECTION

    def test_success_updates_the_benefit_in_place(self, machine, session):
        to_evidence(machine, session)
        machine.begin_finalize(session)
        updated = session.policy.benefits[0].model_copy(update={"used_amount": 80})

        machine.complete_finalize(session, updated)

        assert session.current_step == ClaimStep.IDLE
        assert session.draft is None
        assert session.policy.benefits[0].used_amount == 80
        assert session.policy.benefits[1].used_amount == 190
