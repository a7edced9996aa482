from datetime import datetime, timedelta, timezone

import pytest

from trudify.services.magic_links import MagicLinkService
from trudify.services.privacy import find_sensitive_fields


@pytest.fixture
def people(make_customer, make_professional):
    customer = make_customer(id="customer", full_name="Maria")
    plumber = make_professional(
        id="plumber",
        full_name="Ivan",
        professional_title="Plumber",
        service_categories=["plumbing"],
        email="ivan@example.com",
        phone="+359888000001",
        vat_number="BG123",
        preferred_language="en",
    )
    return customer, plumber


def _create_task(client, headers, **overrides):
    body = {"title": "Fix the kitchen sink", "category": "plumbing", "city": "Sofia", "budgetMinBgn": 50}
    body.update(overrides)
    return client.post("/api/tasks", json=body, headers=headers)


def test_health_ok(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_auth_login_and_me(client, people):
    login = client.post("/api/auth/login", json={"userId": "customer", "password": "trudify-demo"})
    assert login.status_code == 200
    token = login.json()["accessToken"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json() == {"userId": "customer", "authMethod": "session"}

    bad = client.post("/api/auth/login", json={"userId": "customer", "password": "wrong"})
    assert bad.status_code == 401
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer forged.token"}).status_code == 401


def test_notification_token_authenticates(client, db, people, settings):
    token = MagicLinkService(db, settings.base_url).create_token("plumber", "telegram")
    me = client.get("/api/auth/me", headers={"X-Notification-Token": token})
    assert me.status_code == 200
    assert me.json() == {"userId": "plumber", "authMethod": "notification"}


def test_professionals_listing_is_public_and_private_fields_are_gone(client, people):
    response = client.get("/api/professionals", params={"category": "plumbing", "sortBy": "rating"})
    assert response.status_code == 200
    payload = response.json()
    assert set(payload) == {"professionals", "featuredProfessionals", "pagination"}
    assert [p["id"] for p in payload["professionals"]] == ["plumber"]
    assert payload["pagination"]["hasNext"] is False
    assert find_sensitive_fields(payload) == []

    detail = client.get("/api/professionals/plumber")
    assert detail.status_code == 200
    assert "phone" not in detail.json()
    assert client.get("/api/professionals/nobody").json() is None

    featured = client.get("/api/professionals/featured")
    assert featured.status_code == 200
    assert "professionals" in featured.json()


def test_professionals_listing_rejects_oversized_filters(client):
    response = client.get("/api/professionals", params={"city": "x" * 101})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid_query"


def test_golden_path(client, people, auth_headers):
    customer_headers = auth_headers("customer")
    plumber_headers = auth_headers("plumber")

    created = _create_task(client, customer_headers)
    assert created.status_code == 201
    task = created.json()["task"]
    job = created.json()["inviteJob"]
    assert task["status"] == "open"
    assert job["status"] == "pending"

    # the background invitation job has run by the time the response is returned
    jobs = client.get(f"/api/tasks/{task['id']}/invite-jobs", headers=customer_headers).json()
    assert jobs[0]["status"] == "completed"
    assert jobs[0]["result"]["invitedCount"] == 1
    invitations = client.get("/api/notifications", headers=plumber_headers).json()
    assert invitations[0]["type"] == "task_invitation"
    assert invitations[0]["action_url"] == f"https://trudify.test/en/tasks/{task['id']}"

    applied = client.post(
        "/api/applications",
        json={"taskId": task["id"], "proposedPrice": 80, "message": "I can start Monday"},
        headers=plumber_headers,
    )
    assert applied.status_code == 201
    application = applied.json()
    assert application["status"] == "pending"

    inbox = client.get("/api/notifications", params={"unreadOnly": "true"}, headers=customer_headers).json()
    assert [n["type"] for n in inbox] == ["application_received"]
    read = client.post(f"/api/notifications/{inbox[0]['id']}/read", headers=customer_headers)
    assert read.json()["read"] is True

    listed = client.get(f"/api/tasks/{task['id']}/applications", headers=customer_headers).json()
    assert [a["id"] for a in listed] == [application["id"]]

    accepted = client.patch(
        f"/api/applications/{application['id']}",
        json={"action": "accept", "contactInfo": {"method": "phone", "phone": "+359888111222"}},
        headers=customer_headers,
    )
    assert accepted.status_code == 200
    assert accepted.json()["task"]["status"] == "in_progress"
    accepted_note = client.get("/api/notifications", headers=plumber_headers).json()[0]
    assert accepted_note["type"] == "application_accepted"
    assert "+359888111222" in accepted_note["message"]

    completed = client.patch(
        f"/api/tasks/{task['id']}/mark-complete",
        json={"completionNotes": "Replaced the siphon"},
        headers=plumber_headers,
    )
    assert completed.status_code == 200
    assert completed.json()["marked_by"] == "professional"
    assert completed.json()["task"]["status"] == "completed"

    gate = client.get("/api/tasks/can-create", headers=customer_headers).json()
    assert gate == {"canCreate": True, "blockType": "soft_block", "unreviewedCount": 1, "message": gate["message"]}

    review = client.post(f"/api/tasks/{task['id']}/reviews", json={"rating": 5}, headers=customer_headers)
    assert review.status_code == 201
    assert review.json()["reviewee_id"] == "plumber"
    assert client.get("/api/tasks/can-create", headers=customer_headers).json()["blockType"] is None

    profile = client.get("/api/professionals/plumber").json()
    assert profile["tasks_completed"] == 1
    assert [t["id"] for t in profile["completed_tasks"]] == [task["id"]]
    assert profile["completed_tasks"][0]["client_name"] == "Maria"
    assert [r["rating"] for r in profile["reviews"]] == [5]
    assert find_sensitive_fields(profile) == []


def test_error_statuses(client, people, auth_headers, make_professional):
    customer_headers = auth_headers("customer")
    plumber_headers = auth_headers("plumber")
    make_professional(id="second", service_categories=["plumbing"])
    second_headers = auth_headers("second")
    task = _create_task(client, customer_headers).json()["task"]

    assert client.post("/api/applications", json={"taskId": task["id"], "proposedPrice": 10}).status_code == 401

    leaked = client.post(
        "/api/applications",
        json={"taskId": task["id"], "proposedPrice": 10, "message": "call 0888123456"},
        headers=plumber_headers,
    )
    assert leaked.status_code == 400
    assert leaked.json()["detail"]["code"] == "contains_phone"

    missing = client.post("/api/applications", json={"taskId": "nope", "proposedPrice": 10}, headers=plumber_headers)
    assert missing.status_code == 404

    first = client.post(
        "/api/applications", json={"taskId": task["id"], "proposedPrice": 10}, headers=plumber_headers
    ).json()
    second = client.post(
        "/api/applications", json={"taskId": task["id"], "proposedPrice": 12}, headers=second_headers
    ).json()
    duplicate = client.post("/api/applications", json={"taskId": task["id"], "proposedPrice": 10}, headers=plumber_headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["code"] == "duplicate_application"

    forbidden = client.patch(f"/api/applications/{first['id']}", json={"action": "accept"}, headers=plumber_headers)
    assert forbidden.status_code == 403

    assert client.patch(
        f"/api/applications/{first['id']}", json={"action": "accept"}, headers=customer_headers
    ).status_code == 200
    race_loser = client.patch(f"/api/applications/{second['id']}", json={"action": "accept"}, headers=customer_headers)
    assert race_loser.status_code == 409
    assert race_loser.json()["detail"]["code"] == "task_not_open"

    no_reason = client.post(f"/api/tasks/{task['id']}/withdraw", json={}, headers=plumber_headers)
    assert no_reason.status_code == 400

    assert client.get("/api/tasks/nope").status_code == 404
    assert client.get(f"/api/tasks/{task['id']}/invite-jobs", headers=plumber_headers).status_code == 403


def test_withdrawal_quota_maps_to_429(client, db, people, auth_headers):
    customer_headers = auth_headers("customer")
    plumber_headers = auth_headers("plumber")
    task = _create_task(client, customer_headers).json()["task"]
    application = client.post(
        "/api/applications", json={"taskId": task["id"], "proposedPrice": 10}, headers=plumber_headers
    ).json()
    client.patch(f"/api/applications/{application['id']}", json={"action": "accept"}, headers=customer_headers)

    now = datetime.now(timezone.utc)
    with db.connect() as conn:
        conn.execute(
            "UPDATE applications SET accepted_at = ? WHERE id = ?",
            ((now - timedelta(hours=5)).isoformat(), application["id"]),
        )
        for i in range(2):
            conn.execute(
                """
                INSERT INTO professional_withdrawals (
                    id, professional_id, task_id, application_id, reason, timing_impact,
                    hours_since_acceptance, created_at
                ) VALUES (?, 'plumber', 'old-task', 'old-app', 'schedule', 'high', 30, ?)
                """,
                (f"wdr_old_{i}", (now - timedelta(days=i + 1)).isoformat()),
            )

    response = client.post(f"/api/tasks/{task['id']}/withdraw", json={"reason": "schedule"}, headers=plumber_headers)
    assert response.status_code == 429
    assert response.json()["detail"]["code"] == "withdrawal_quota_exceeded"


def test_pending_withdraw_and_reject(client, people, auth_headers):
    customer_headers = auth_headers("customer")
    plumber_headers = auth_headers("plumber")
    task = _create_task(client, customer_headers).json()["task"]

    application = client.post(
        "/api/applications", json={"taskId": task["id"], "proposedPrice": 10}, headers=plumber_headers
    ).json()
    withdrawn = client.patch(f"/api/applications/{application['id']}/withdraw", headers=plumber_headers)
    assert withdrawn.status_code == 200
    assert withdrawn.json()["application"]["status"] == "withdrawn"
    assert withdrawn.json()["timing_impact"] is None

    again = client.post(
        "/api/applications", json={"taskId": task["id"], "proposedPrice": 15}, headers=plumber_headers
    ).json()
    rejected = client.patch(
        f"/api/applications/{again['id']}", json={"action": "reject", "reason": "Too far"}, headers=customer_headers
    )
    assert rejected.status_code == 200
    assert rejected.json()["application"]["rejection_reason"] == "Too far"

    mine = client.get("/api/applications", params={"status": "rejected"}, headers=plumber_headers).json()
    assert [a["id"] for a in mine] == [again["id"]]


def test_manual_invite_endpoint(client, people, auth_headers, make_professional):
    customer_headers = auth_headers("customer")
    make_professional(id="painter", service_categories=["painting"])
    task = _create_task(client, customer_headers).json()["task"]

    invited = client.post("/api/professionals/painter/invite", json={"taskId": task["id"]}, headers=customer_headers)
    assert invited.status_code == 200
    assert invited.json()["invitedCount"] == 1

    again = client.post("/api/professionals/painter/invite", json={"taskId": task["id"]}, headers=customer_headers)
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "already_invited"


def test_hard_review_block_refuses_new_tasks(client, db, people, auth_headers):
    for i in range(3):
        db.insert_task(
            customer_id="customer",
            title=f"Old job {i}",
            category="plumbing",
            city="Sofia",
            status="completed",
            selected_professional_id="plumber",
        )
    response = _create_task(client, auth_headers("customer"))
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "review_required"

    gate = client.get("/api/tasks/can-create", headers=auth_headers("customer")).json()
    assert gate["canCreate"] is False
    assert gate["blockType"] == "hard_block"


def test_invalid_body_is_rejected_by_validation(client, people, auth_headers):
    response = _create_task(client, auth_headers("customer"), title="ab")
    assert response.status_code == 422


def test_non_finite_price_is_rejected_before_anything_is_stored(client, db, people, auth_headers):
    task = _create_task(client, auth_headers("customer")).json()["task"]
    for price in ("NaN", "Infinity"):
        response = client.post(
            "/api/applications",
            json={"taskId": task["id"], "proposedPrice": price, "message": "I can start Monday"},
            headers=auth_headers("plumber"),
        )
        assert response.status_code == 422
    assert db.get_task(task["id"]).applications_count == 0


def test_task_loads_in_every_status(client, db, people):
    task = db.insert_task(customer_id="customer", title="Paint the fence", category="painting", city="Sofia")
    for status in ("open", "in_progress", "completed", "cancelled", "expired"):
        with db.connect() as conn:
            conn.execute("UPDATE tasks SET status = ? WHERE id = ?", (status, task.id))
        response = client.get(f"/api/tasks/{task.id}")
        assert response.status_code == 200
        assert response.json()["status"] == status

    with db.connect() as conn:
        conn.execute(
            "UPDATE tasks SET status = 'cancelled', cancelled_at = '2026-03-01T09:00:00+00:00' WHERE id = ?",
            (task.id,),
        )
    assert client.get(f"/api/tasks/{task.id}").json()["cancelled_at"] == "2026-03-01T09:00:00+00:00"
