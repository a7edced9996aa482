import os
import sys
import tempfile

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
# trudify.main builds a module-level app on import; keep its database out of the repo.
os.environ.setdefault("TRUDIFY_DB_PATH", os.path.join(tempfile.mkdtemp(prefix="trudify-tests-"), "app.sqlite3"))

from fastapi.testclient import TestClient  # noqa: E402

from trudify.auth import create_access_token  # noqa: E402
from trudify.config import Settings  # noqa: E402
from trudify.main import create_app  # noqa: E402
from trudify.services.marketplace_db import MarketplaceDB  # noqa: E402


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=str(tmp_path / "trudify.sqlite3"),
        environment="test",
        auth_secret="test-secret",
        base_url="https://trudify.test",
    )


@pytest.fixture
def db(settings):
    return MarketplaceDB(settings.db_path)


@pytest.fixture
def make_professional(db):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "full_name": f"Professional {counter['n']}",
            "professional_title": "Handyman",
            "service_categories": ["handyman"],
            "city": "Sofia",
        }
        fields.update(overrides)
        return db.insert_user(**fields)

    return _make


@pytest.fixture
def make_customer(db):
    def _make(**overrides):
        fields = {"full_name": "Customer", "city": "Sofia"}
        fields.update(overrides)
        return db.insert_user(**fields)

    return _make


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers(settings):
    def _headers(user_id):
        token, _ = create_access_token(user_id, settings.auth_secret, settings.auth_token_ttl_hours)
        return {"Authorization": f"Bearer {token}"}

    return _headers
