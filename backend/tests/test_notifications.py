import asyncio
import json
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from trudify.services.email_sender import EmailSender
from trudify.services.magic_links import MagicLinkService
from trudify.services.marketplace_db import MarketplaceNotFoundError, MarketplaceValidationError
from trudify.services.notification_service import NotificationService, resolve_delivery_channel
from trudify.services.notification_store import NotificationStore
from trudify.services.telegram_sender import TelegramSender
from trudify.services.translation import category_label, contact_line, normalize_locale, render_notification

BASE_URL = "https://trudify.test"


class RecordingHandler:
    """MockTransport handler that records requests and answers per host."""

    def __init__(self, telegram_status=200, email_status=202):
        self.requests = []
        self.telegram_status = telegram_status
        self.email_status = email_status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "api.telegram.org":
            if self.telegram_status == 200:
                return httpx.Response(200, json={"ok": True, "result": {"message_id": 7}})
            return httpx.Response(self.telegram_status, json={"ok": False, "description": "Bad Request: chat not found"})
        return httpx.Response(self.email_status, headers={"x-message-id": "sg-1"})


def _service(db, handler, *, telegram_token="bot-token", sendgrid_key="sg-key"):
    transport = httpx.MockTransport(handler)
    store = NotificationStore(db)
    return NotificationService(
        db,
        store,
        TelegramSender(telegram_token, transport=transport),
        EmailSender(sendgrid_key, "noreply@trudify.test", transport=transport),
        MagicLinkService(db, BASE_URL),
        BASE_URL,
    )


def test_telegram_sender_without_token_skips():
    result = asyncio.run(TelegramSender("").send_message(1, "hi"))
    assert result.success is False
    assert result.skipped is True
    assert result.skip_reason == "not_configured"


def test_telegram_sender_posts_to_bot_api():
    handler = RecordingHandler()
    sender = TelegramSender("abc", transport=httpx.MockTransport(handler))
    result = asyncio.run(sender.send_message(42, "<b>Hello</b>"))

    assert result.success is True
    assert result.message_id == "7"
    request = handler.requests[0]
    assert request.url.path == "/botabc/sendMessage"
    payload = json.loads(request.content)
    assert payload["chat_id"] == 42
    assert payload["parse_mode"] == "HTML"


def test_telegram_sender_reports_api_and_network_errors():
    rejected = TelegramSender("abc", transport=httpx.MockTransport(RecordingHandler(telegram_status=400)))
    result = asyncio.run(rejected.send_message(42, "hi"))
    assert result.success is False
    assert result.error == "Bad Request: chat not found"

    def broken(request):
        raise httpx.ConnectError("connection refused", request=request)

    offline = TelegramSender("abc", transport=httpx.MockTransport(broken))
    result = asyncio.run(offline.send_message(42, "hi"))
    assert result.success is False
    assert result.error == "Telegram request failed: ConnectError"


def test_email_sender_success_and_rejection():
    ok = EmailSender("key", "from@trudify.test", transport=httpx.MockTransport(RecordingHandler()))
    result = asyncio.run(ok.send("to@example.com", "Subject", "Body"))
    assert result.success is True
    assert result.message_id == "sg-1"

    handler = RecordingHandler(email_status=401)
    rejected = EmailSender("key", "from@trudify.test", transport=httpx.MockTransport(handler))
    result = asyncio.run(rejected.send("to@example.com", "Subject", "Body"))
    assert result.success is False
    assert "401" in result.error
    assert handler.requests[0].headers["authorization"] == "Bearer key"

    assert asyncio.run(EmailSender("", "from@trudify.test").send("a@b.c", "s", "t")).skip_reason == "not_configured"


def test_magic_link_round_trip(db, make_professional):
    user = make_professional(id="pro")
    links = MagicLinkService(db, BASE_URL + "/")

    url = links.generate_auto_login_url(user.id, "telegram", "/en/tasks/t1?tab=details")
    parts = urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://trudify.test/en/tasks/t1"
    query = parse_qs(parts.query)
    assert query["tab"] == ["details"]
    token = query["notificationSession"][0]

    assert links.validate(token) == "pro"
    # tokens are reusable until they expire
    assert links.validate(token) == "pro"
    assert links.validate("unknown") is None
    assert links.validate("") is None


def test_magic_link_expiry_and_channel_validation(db, make_professional):
    user = make_professional(id="pro")
    expired = MagicLinkService(db, BASE_URL, ttl_days=-1)
    assert expired.validate(expired.create_token(user.id, "email")) is None

    with pytest.raises(MarketplaceValidationError):
        MagicLinkService(db, BASE_URL).create_token(user.id, "carrier-pigeon")


def test_translation_helpers():
    assert normalize_locale("EN-us") == "en"
    assert normalize_locale("de") == "bg"
    assert normalize_locale(None) == "bg"
    assert category_label("plumbing", "en") == "Plumbing"
    assert category_label("unknown_slug", "en") == "unknown_slug"
    assert contact_line("phone", "+359888", "en") == "Phone: +359888"
    assert contact_line("phone", "", "en") == ""

    title, message = render_notification("application_accepted", "en", taskTitle="Fix sink")
    assert title == "Application accepted"
    assert message == 'Your application for "Fix sink" was accepted.'


def test_resolve_delivery_channel_defaults_and_preferences():
    assert resolve_delivery_channel("task_invitation", {}) == "both"
    assert resolve_delivery_channel("application_received", {}) == "in_app"
    assert resolve_delivery_channel("task_invitation", {"task_invitation": {"telegram": False}}) == "in_app"
    assert resolve_delivery_channel("application_rejected", {"application_rejected": {"telegram": True}}) == "both"
    assert resolve_delivery_channel("unknown", {}) == "in_app"


def test_notify_telegram_user_gets_in_app_record_and_magic_link(db, make_professional):
    make_professional(id="pro", telegram_id=555, preferred_language="en")
    handler = RecordingHandler()
    service = _service(db, handler)

    outcome = asyncio.run(
        service.notify(
            "pro",
            "task_invitation",
            {"taskTitle": "Fix sink", "customerName": "Maria", "category": "Plumbing"},
            metadata={"taskId": "t1"},
            path="/tasks/t1",
        )
    )

    assert outcome.record.title == "New task in Plumbing"
    assert outcome.record.action_url == "https://trudify.test/en/tasks/t1"
    assert outcome.delivery.success is True
    text = json.loads(handler.requests[0].content)["text"]
    assert text.startswith("<b>New task in Plumbing</b>")
    assert "https://trudify.test/en/tasks/t1?notificationSession=" in text

    stored = service.store.list_for_user("pro")
    assert [n.id for n in stored] == [outcome.record.id]
    assert stored[0].metadata == {"taskId": "t1"}


def test_notify_email_fallback_requires_verified_address(db, make_professional):
    make_professional(id="verified", email="v@example.com", is_email_verified=True)
    make_professional(id="unverified", email="u@example.com")
    handler = RecordingHandler()
    service = _service(db, handler)

    sent = asyncio.run(service.notify("verified", "task_completed", {"taskTitle": "Paint"}, path="/tasks/t1"))
    assert sent.delivery.success is True
    body = json.loads(handler.requests[0].content)
    assert body["personalizations"][0]["to"][0]["email"] == "v@example.com"
    assert "notificationSession=" in body["content"][0]["value"]
    # default locale is Bulgarian
    assert sent.record.action_url == "https://trudify.test/bg/tasks/t1"

    skipped = asyncio.run(service.notify("unverified", "task_completed", {"taskTitle": "Paint"}))
    assert skipped.delivery.skipped is True
    assert skipped.delivery.skip_reason == "email_not_verified"
    assert len(handler.requests) == 1


def test_in_app_only_types_never_leave_the_app(db, make_professional):
    make_professional(id="pro", telegram_id=555)
    handler = RecordingHandler()
    outcome = asyncio.run(_service(db, handler).notify("pro", "application_rejected", {"taskTitle": "Paint"}))
    assert outcome.delivery is None
    assert handler.requests == []


def test_failed_external_delivery_keeps_in_app_record(db, make_professional):
    make_professional(id="pro", telegram_id=555)
    service = _service(db, RecordingHandler(telegram_status=403))
    outcome = asyncio.run(service.notify("pro", "task_invitation", {"taskTitle": "Paint"}))
    assert outcome.delivery.success is False
    assert outcome.delivery.skipped is False
    assert len(service.store.list_for_user("pro")) == 1


def test_notify_unknown_recipient_raises(db):
    with pytest.raises(MarketplaceNotFoundError):
        asyncio.run(_service(db, RecordingHandler()).notify("ghost", "task_invitation", {}))


def test_store_read_state_and_invitation_lookup(db, make_professional):
    make_professional(id="pro")
    store = NotificationStore(db)
    invite = store.create("pro", "task_invitation", "t", "m", metadata={"taskId": "t1"})
    store.create("pro", "application_rejected", "t", "m", metadata={"taskId": "t2"})

    assert store.invited_user_ids("t1") == {"pro"}
    assert store.invited_user_ids("t2") == set()
    assert store.has_invitation("pro", "t1")

    assert store.mark_read("someone-else", invite.id) is None
    assert store.mark_read("pro", invite.id).read is True
    assert [n.type for n in store.list_for_user("pro", unread_only=True)] == ["application_rejected"]
