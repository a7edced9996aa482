import asyncio

import httpx
import pytest

from trudify.models import ProfessionalRecord
from trudify.services.auto_invite import AlreadyInvitedError, AutoInviteDispatcher, AutoInviteTaskData
from trudify.services.email_sender import EmailSender
from trudify.services.magic_links import MagicLinkService
from trudify.services.marketplace_db import MarketplaceNotFoundError, MarketplacePermissionError
from trudify.services.notification_service import NotificationService
from trudify.services.notification_store import NotificationStore
from trudify.services.professional_matching import ProfessionalMatcher, serves_city
from trudify.services.telegram_sender import TelegramSender


def _ok(request):
    return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})


def _dispatcher(db, handler=_ok, **kwargs):
    transport = httpx.MockTransport(handler)
    store = NotificationStore(db)
    notifications = NotificationService(
        db,
        store,
        TelegramSender("bot-token", transport=transport),
        EmailSender("", "noreply@trudify.test", transport=transport),
        MagicLinkService(db, "https://trudify.test"),
        "https://trudify.test",
    )
    return AutoInviteDispatcher(ProfessionalMatcher(db, store), notifications, **kwargs)


@pytest.fixture
def task_data(make_customer):
    customer = make_customer(id="customer", full_name="Maria")
    return AutoInviteTaskData(
        task_id="task-1",
        task_title="Fix the sink",
        category="plumbing",
        city="Sofia",
        customer_id=customer.id,
        customer_name="Maria",
    )


def test_matching_filters(db, make_professional, task_data):
    make_professional(id="local", service_categories=["plumbing"], city="Sofia")
    make_professional(id="area", service_categories=["plumbing"], city="Pernik", service_area_cities=["Sofia"])
    make_professional(id="far", service_categories=["plumbing"], city="Varna")
    make_professional(id="other_trade", service_categories=["painting"], city="Sofia")
    make_professional(id="banned", service_categories=["plumbing"], city="Sofia", is_banned=True)
    make_professional(id="customer_self", service_categories=["plumbing"], city="Sofia")

    dispatcher = _dispatcher(db)
    matches = dispatcher.matcher.find_matching_professionals(
        task_id=task_data.task_id,
        category="plumbing",
        city="Sofia",
        customer_id="customer_self",
    )
    assert [p.id for p in matches] == ["local", "area"]


def test_serves_city():
    assert serves_city(ProfessionalRecord(id="a", city="Sofia"), "Sofia")
    assert serves_city(ProfessionalRecord(id="b", city="Pernik", service_area_cities=["Sofia"]), "Sofia")
    assert not serves_city(ProfessionalRecord(id="c", city="Varna"), "Sofia")


def test_auto_invite_is_idempotent_per_task(db, make_professional, task_data):
    make_professional(id="p1", service_categories=["plumbing"], telegram_id=1)
    make_professional(id="p2", service_categories=["plumbing"], telegram_id=2)
    dispatcher = _dispatcher(db)

    first = asyncio.run(dispatcher.send_auto_invitations(task_data))
    assert first.invited_count == 2
    assert first.errors == []

    second = asyncio.run(dispatcher.send_auto_invitations(task_data))
    assert second.invited_count == 0
    assert dispatcher.notifications.store.invited_user_ids(task_data.task_id) == {"p1", "p2"}

    invitation = dispatcher.notifications.store.list_for_user("p1")[0]
    assert invitation.metadata["taskId"] == "task-1"
    assert invitation.metadata["autoInvite"] is True


def test_auto_invite_respects_limit(db, make_professional, task_data):
    for i in range(5):
        make_professional(id=f"p{i}", service_categories=["plumbing"])
    result = asyncio.run(_dispatcher(db, max_per_task=3).send_auto_invitations(task_data))
    assert result.invited_count == 3


def test_delivery_failure_for_one_recipient_does_not_stop_others(db, make_professional, task_data):
    make_professional(id="good", service_categories=["plumbing"], telegram_id=1)
    make_professional(id="bad", service_categories=["plumbing"], telegram_id=2)

    def handler(request):
        if b'"chat_id":2' in request.content.replace(b" ", b""):
            return httpx.Response(400, json={"ok": False, "description": "Forbidden: bot was blocked"})
        return _ok(request)

    result = asyncio.run(_dispatcher(db, handler).send_auto_invitations(task_data))
    assert result.invited_count == 2
    assert result.skipped_count == 0
    assert result.errors == ["Delivery failed for bad: Forbidden: bot was blocked"]


def test_notify_failure_counts_as_skipped(db, make_professional, task_data):
    make_professional(id="p1", service_categories=["plumbing"])
    make_professional(id="p2", service_categories=["plumbing"])
    dispatcher = _dispatcher(db)
    original_create = dispatcher.notifications.store.create

    def flaky_create(user_id, *args, **kwargs):
        if user_id == "p2":
            raise MarketplaceNotFoundError("gone")
        return original_create(user_id, *args, **kwargs)

    dispatcher.notifications.store.create = flaky_create
    result = asyncio.run(dispatcher.send_auto_invitations(task_data))
    assert result.invited_count == 1
    assert result.skipped_count == 1
    assert result.errors == ["Notification failed for p2"]


def test_disabled_dispatcher_does_nothing(db, make_professional, task_data):
    make_professional(id="p1", service_categories=["plumbing"])
    dispatcher = _dispatcher(db, enabled=False)
    result = asyncio.run(dispatcher.send_auto_invitations(task_data))
    assert (result.invited_count, result.skipped_count, result.errors) == (0, 0, [])
    assert dispatcher.notifications.store.list_for_user("p1") == []


def test_no_matches_is_an_empty_result(db, task_data):
    result = asyncio.run(_dispatcher(db).send_auto_invitations(task_data))
    assert result.invited_count == 0
    assert result.errors == []


def test_scheduled_job_records_outcome(db, make_professional, task_data):
    make_professional(id="p1", service_categories=["plumbing"])
    dispatcher = _dispatcher(db)

    job = dispatcher.schedule(task_data)
    assert job.status == "pending"
    finished = asyncio.run(dispatcher.run_job(job.id, task_data))

    assert finished.status == "completed"
    assert finished.result.invited_count == 1
    assert finished.finished_at is not None
    assert dispatcher.get_job(job.id) == finished
    assert list(dispatcher.jobs_for_task("task-1")) == [job.id]
    assert dispatcher.jobs_for_task("other") == {}


def test_job_failure_is_recorded(db, task_data):
    dispatcher = _dispatcher(db)

    async def explode(_task_data):
        raise RuntimeError("matcher crashed")

    dispatcher.send_auto_invitations = explode
    job = dispatcher.schedule(task_data)
    finished = asyncio.run(dispatcher.run_job(job.id, task_data))
    assert finished.status == "failed"
    assert finished.error == "matcher crashed"


def test_manual_invite(db, make_professional, task_data):
    make_professional(id="p1", service_categories=["painting"], city="Varna")
    dispatcher = _dispatcher(db)

    result = asyncio.run(dispatcher.invite_professional(task_data, "p1", "customer"))
    assert result.invited_count == 1
    assert dispatcher.notifications.store.list_for_user("p1")[0].metadata["autoInvite"] is False

    with pytest.raises(AlreadyInvitedError):
        asyncio.run(dispatcher.invite_professional(task_data, "p1", "customer"))
    with pytest.raises(MarketplacePermissionError):
        asyncio.run(dispatcher.invite_professional(task_data, "p1", "p1"))
    with pytest.raises(MarketplaceNotFoundError):
        asyncio.run(dispatcher.invite_professional(task_data, "missing", "customer"))
