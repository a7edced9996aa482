import json
import sqlite3

import pytest

from trudify.auth import create_access_token, parse_bearer_token, verify_access_token
from trudify.config import Settings
from trudify.data import DEMO_USERS, seed_demo_data
from trudify.main import create_app
from trudify.services.marketplace_db import MarketplaceDB, StoreUnavailableError
from trudify.services.notification_store import NotificationStore


def test_settings_invalid_env_falls_back(monkeypatch):
    monkeypatch.setenv("AUTH_TOKEN_TTL_HOURS", "not-a-number")
    monkeypatch.setenv("WITHDRAWAL_MONTHLY_LIMIT", "0")
    monkeypatch.setenv("AUTO_INVITE_MAX_PER_TASK", "-3")
    settings = Settings.from_env()
    assert settings.auth_token_ttl_hours == 24
    assert settings.withdrawal_monthly_limit == 2
    assert settings.auto_invite_max_per_task == 10


def test_settings_parse_lists_and_flags(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "https://a.test, https://b.test,")
    monkeypatch.setenv("AUTO_INVITE_ENABLED", "false")
    monkeypatch.setenv("BASE_URL", "https://trudify.bg/")
    monkeypatch.setenv("TRUDIFY_ENV", "Production")
    settings = Settings.from_env()
    assert settings.cors_origins == ["https://a.test", "https://b.test"]
    assert settings.auto_invite_enabled is False
    assert settings.base_url == "https://trudify.bg"
    assert settings.is_production


def test_access_tokens():
    token, expires_in = create_access_token("u1", "secret", 2)
    assert expires_in == 7200
    assert verify_access_token(token, "secret") == "u1"
    assert verify_access_token(token, "other-secret") is None
    assert verify_access_token("garbage", "secret") is None

    expired, _ = create_access_token("u1", "secret", -1)
    assert verify_access_token(expired, "secret") is None

    assert parse_bearer_token("Bearer abc") == "abc"
    assert parse_bearer_token("Basic abc") is None
    assert parse_bearer_token(None) is None


def test_store_tolerates_invalid_json_columns(db, make_professional):
    make_professional(id="p1")
    with sqlite3.connect(db.db_path) as conn:
        conn.execute(
            "UPDATE users SET service_area_cities_json = ?, notification_preferences_json = ? WHERE id = ?",
            ("{bad", json.dumps([1, 2]), "p1"),
        )
        conn.execute(
            """
            INSERT INTO notifications (id, user_id, type, title, message, metadata_json, created_at)
            VALUES ('n1', 'p1', 'task_invitation', 't', 'm', 'not json', '2026-01-01T00:00:00+00:00')
            """
        )
        conn.commit()

    user = db.get_user("p1")
    assert user.service_area_cities == []
    assert user.notification_preferences == {}
    assert NotificationStore(db).list_for_user("p1")[0].metadata == {}


def test_sqlite_errors_surface_as_store_unavailable(db):
    with pytest.raises(StoreUnavailableError):
        with db.connect() as conn:
            conn.execute("SELECT * FROM no_such_table")


def test_failed_transaction_is_rolled_back(db, make_customer):
    customer = make_customer(id="c1")
    with pytest.raises(RuntimeError):
        with db.connect() as conn:
            conn.execute("UPDATE users SET full_name = 'Changed' WHERE id = ?", (customer.id,))
            raise RuntimeError("abort")
    assert db.get_user("c1").full_name == "Customer"


def test_seed_demo_data_only_fills_empty_database(tmp_path):
    db = MarketplaceDB(str(tmp_path / "seed.sqlite3"))
    assert seed_demo_data(db) == len(DEMO_USERS)
    assert seed_demo_data(db) == 0
    assert db.get_user("user_pro_1").professional_title == "Licensed plumber"


def test_create_app_seeds_when_enabled(tmp_path):
    app = create_app(Settings(db_path=str(tmp_path / "app.sqlite3"), seed_demo_data=True))
    assert app.state.services.db.get_user("user_customer_1") is not None
