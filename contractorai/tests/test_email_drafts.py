"""
Draft storage and the explicit approve-and-send boundary.
"""
import json

import httpx
import pytest
from sqlalchemy import insert

from contractorai.core.database import get_db_session, email_connections
from contractorai.core.errors import ConflictError, NotFoundError, UpstreamServiceError, ValidationError
from contractorai.features.email.service import EmailDraftService, GmailSender
from contractorai.tests.mocks import FakeSender


USER = "user_1"


def _draft(service, recipients=("ann@example.com",)):
    return service.save_draft(USER, "crm", list(recipients), "Quote", "Please find the quote attached.")


def test_saved_draft_is_pending_and_unsent():
    sender = FakeSender()
    service = EmailDraftService(sender=sender)
    pending = _draft(service)

    draft = service.get_draft(USER, pending.draft_id)
    assert draft["status"] == "pending"
    assert draft["recipients"] == ["ann@example.com"]
    assert sender.sent == []


def test_approve_sends_once():
    sender = FakeSender(message_id="gmail_1")
    service = EmailDraftService(sender=sender)
    pending = _draft(service)

    sent = service.approve_and_send(USER, pending.draft_id)

    assert sent["status"] == "sent"
    assert sent["provider_message_id"] == "gmail_1"
    assert len(sender.sent) == 1
    with pytest.raises(ConflictError):
        service.approve_and_send(USER, pending.draft_id)
    assert len(sender.sent) == 1


def test_approve_applies_user_edits():
    sender = FakeSender()
    service = EmailDraftService(sender=sender)
    pending = _draft(service)

    sent = service.approve_and_send(
        USER, pending.draft_id, {"subject": "Updated quote", "recipients": ["bo@example.com"], "body": None}
    )

    assert sender.sent[0]["subject"] == "Updated quote"
    assert sender.sent[0]["recipients"] == ["bo@example.com"]
    assert sender.sent[0]["body"] == "Please find the quote attached."
    assert sent["subject"] == "Updated quote"


def test_failed_send_returns_draft_to_pending():
    service = EmailDraftService(sender=FakeSender(error=UpstreamServiceError("down", service="gmail")))
    pending = _draft(service)

    with pytest.raises(UpstreamServiceError):
        service.approve_and_send(USER, pending.draft_id)
    assert service.get_draft(USER, pending.draft_id)["status"] == "pending"


def test_discarded_draft_cannot_be_sent():
    sender = FakeSender()
    service = EmailDraftService(sender=sender)
    pending = _draft(service)

    assert service.discard(USER, pending.draft_id)["status"] == "discarded"
    with pytest.raises(ConflictError):
        service.approve_and_send(USER, pending.draft_id)
    with pytest.raises(ConflictError):
        service.discard(USER, pending.draft_id)
    assert sender.sent == []


def test_draft_without_recipients_is_rejected_at_send():
    service = EmailDraftService(sender=FakeSender())
    pending = _draft(service, recipients=())
    with pytest.raises(ValidationError):
        service.approve_and_send(USER, pending.draft_id)


def test_drafts_are_scoped_to_their_owner():
    service = EmailDraftService(sender=FakeSender())
    pending = _draft(service)
    with pytest.raises(NotFoundError):
        service.get_draft("someone_else", pending.draft_id)
    with pytest.raises(NotFoundError):
        service.approve_and_send("someone_else", pending.draft_id)


def _connect_gmail():
    with get_db_session() as session:
        session.execute(
            insert(email_connections).values(
                user_id=USER, provider="gmail", email_address="me@example.com", access_token="tok"
            )
        )


def test_gmail_sender_posts_raw_message():
    _connect_gmail()
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        seen["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "gmail_42"})

    sender = GmailSender(base_url="https://gmail.test/v1", transport=httpx.MockTransport(handler))
    message_id = sender.send(USER, ["ann@example.com"], "Hello", "Body")

    assert message_id == "gmail_42"
    assert seen["path"] == "/v1/users/me/messages/send"
    assert seen["auth"] == "Bearer tok"
    assert seen["payload"]["raw"]


def test_gmail_sender_maps_http_errors():
    _connect_gmail()
    sender = GmailSender(
        base_url="https://gmail.test/v1",
        transport=httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "expired"})),
    )
    with pytest.raises(UpstreamServiceError) as exc:
        sender.send(USER, ["ann@example.com"], "Hello", "Body")
    assert exc.value.service == "gmail"


def test_gmail_sender_requires_connection():
    sender = GmailSender(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})))
    with pytest.raises(ValidationError):
        sender.send(USER, ["ann@example.com"], "Hello", "Body")
