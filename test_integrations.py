"""Tests for the policy service and audit channel clients."""
import json
from unittest.mock import MagicMock

import pytest
import requests

from app.core.errors import AuditNotifierError, PolicyRepositoryError
from app.core.models import Attachment, DocumentCategory
from app.integrations.audit_notifier import TelegramNotifier
from app.integrations.policy_repository import PolicyRepositoryClient, unwrap_policies

from conftest import make_attachment, make_policy_record


def fake_response(status_code=200, body=None, raw=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    if raw is not None:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = body
    if response.ok:
        response.raise_for_status.return_value = None
    else:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status_code} error")
    return response


class TestUnwrapPolicies:

    @pytest.mark.parametrize("envelope", [
        lambda records: records,
        lambda records: {"policies": records},
        lambda records: {"personalaccidents": records},
        lambda records: {"body": {"personalaccidents": records}},
        lambda records: {"body": json.dumps({"personalaccidents": records})},
    ])
    def test_known_envelopes(self, envelope):
        records = [make_policy_record()]
        assert unwrap_policies(envelope(records)) == records

    def test_empty_body_list(self):
        assert unwrap_policies({"body": {"personalaccidents": None}}) == []

    @pytest.mark.parametrize("data", [{"items": []}, "nope", {"body": "{not json"}, 12])
    def test_unrecognized_shapes(self, data):
        with pytest.raises(PolicyRepositoryError):
            unwrap_policies(data)


class TestPolicyRepositoryClient:

    def make_client(self, response):
        session = MagicMock()
        session.get.return_value = response
        session.patch.return_value = response
        return PolicyRepositoryClient("http://policies.test/personal-accidents/", timeout=5, session=session), session

    def test_find_by_employee_id(self):
        other = dict(make_policy_record(), employee_id="EMP999", id=7)
        client, session = self.make_client(
            fake_response(body={"personalaccidents": [other, make_policy_record()]})
        )

        policy = client.find_by_employee_id("EMP001")

        assert policy.id == 42
        assert policy.benefits[0].limit == 200
        session.get.assert_called_once_with("http://policies.test/personal-accidents", timeout=5)

    def test_not_found_is_none(self):
        client, _ = self.make_client(fake_response(body=[make_policy_record()]))
        assert client.find_by_employee_id("EMP404") is None

    def test_numeric_employee_ids_match(self):
        record = dict(make_policy_record(), employee_id=1001)
        client, _ = self.make_client(fake_response(body=[record]))
        assert client.find_by_employee_id("1001") is not None

    def test_malformed_records_are_skipped(self):
        client, _ = self.make_client(fake_response(body=[{"id": 1}, make_policy_record()]))
        assert len(client.fetch()) == 1

    def test_transport_error(self):
        session = MagicMock()
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        client = PolicyRepositoryClient("http://policies.test", session=session)
        with pytest.raises(PolicyRepositoryError):
            client.fetch()

    def test_invalid_json(self):
        client, _ = self.make_client(fake_response(raw="<html>"))
        with pytest.raises(PolicyRepositoryError):
            client.fetch()

    def test_patch_success(self):
        client, session = self.make_client(fake_response(body={"message": "Updated"}))

        result = client.patch_benefit_usage("EMP 001", "Medical", 80)

        assert result.success
        session.patch.assert_called_once_with(
            "http://policies.test/personal-accidents/EMP%20001/benefits-used-amount",
            json={"benefits": [{"type": "Medical", "usedAmount": 80}]},
            timeout=5,
        )

    def test_patch_rejection_carries_the_reason(self):
        client, _ = self.make_client(fake_response(status_code=404, body={"message": "Employee not found"}))
        result = client.patch_benefit_usage("EMP001", "Medical", 80)
        assert not result.success
        assert result.message == "Employee not found"
        assert result.status_code == 404

    def test_patch_non_json_rejection(self):
        client, _ = self.make_client(fake_response(status_code=502, raw="Bad Gateway"))
        result = client.patch_benefit_usage("EMP001", "Medical", 80)
        assert not result.success
        assert result.message is None

    def test_patch_transport_error(self):
        session = MagicMock()
        session.patch.side_effect = requests.exceptions.Timeout("slow")
        client = PolicyRepositoryClient("http://policies.test", session=session)
        with pytest.raises(PolicyRepositoryError):
            client.patch_benefit_usage("EMP001", "Medical", 80)


class TestTelegramNotifier:

    def make_notifier(self, response=None, token="123:abc"):
        session = MagicMock()
        session.post.return_value = response or fake_response(body={"ok": True, "result": {}})
        return TelegramNotifier(token, api_url="https://tg.test", timeout=5, session=session), session

    def test_send_text(self):
        notifier, session = self.make_notifier()
        notifier.send_text("-100", "hello")
        session.post.assert_called_once_with(
            "https://tg.test/bot123:abc/sendMessage",
            data={"chat_id": "-100", "text": "hello"},
            files=None,
            timeout=5,
        )

    def test_group_of_one_goes_out_as_a_photo(self):
        notifier, session = self.make_notifier()
        notifier.send_media_group("-100", [make_attachment()], "caption")

        url = session.post.call_args.args[0]
        kwargs = session.post.call_args.kwargs
        assert url.endswith("/sendPhoto")
        assert kwargs["data"] == {"chat_id": "-100", "caption": "caption"}
        assert set(kwargs["files"]) == {"photo"}

    def test_media_group_captions_only_the_first_item(self):
        notifier, session = self.make_notifier()
        attachments = [make_attachment(name=f"{i}.jpg") for i in range(3)]

        notifier.send_media_group("-100", attachments, "caption")

        kwargs = session.post.call_args.kwargs
        assert session.post.call_args.args[0].endswith("/sendMediaGroup")
        media = json.loads(kwargs["data"]["media"])
        assert [m.get("caption") for m in media] == ["caption", None, None]
        assert [m["media"] for m in media] == ["attach://photo0", "attach://photo1", "attach://photo2"]
        assert set(kwargs["files"]) == {"photo0", "photo1", "photo2"}

    def test_mixed_files_are_sent_as_documents(self):
        notifier, session = self.make_notifier()
        pdf = Attachment(filename="cert.pdf", content=b"%PDF", content_type="application/pdf",
                         category=DocumentCategory.CERTIFICATE)

        notifier.send_media_group("-100", [pdf, make_attachment()], "caption")

        media = json.loads(session.post.call_args.kwargs["data"]["media"])
        assert {m["type"] for m in media} == {"document"}

    def test_api_rejection_raises(self):
        notifier, _ = self.make_notifier(
            fake_response(status_code=400, body={"ok": False, "description": "Bad Request: chat not found"})
        )
        with pytest.raises(AuditNotifierError, match="chat not found"):
            notifier.send_text("-100", "hello")

    def test_transport_error_hides_the_token(self):
        session = MagicMock()
        session.post.side_effect = requests.exceptions.ConnectionError(
            "Max retries exceeded with url: /bot123:abc/sendMessage"
        )
        notifier = TelegramNotifier("123:abc", session=session)

        with pytest.raises(AuditNotifierError) as exc_info:
            notifier.send_text("-100", "hello")
        assert "123:abc" not in str(exc_info.value)

    def test_missing_token(self):
        notifier, session = self.make_notifier(token="")
        with pytest.raises(AuditNotifierError):
            notifier.send_text("-100", "hello")
        session.post.assert_not_called()

    def test_empty_group_is_a_programming_error(self):
        notifier, _ = self.make_notifier()
        with pytest.raises(ValueError):
            notifier.send_media_group("-100", [], "caption")
