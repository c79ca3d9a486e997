"""Pytest configuration and shared fixtures for submitin tests."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RESEND_API_KEY", "")

import pytest
from fastapi.testclient import TestClient

from submitin.core import database as database_module
from submitin.core.database import Database, get_db
from submitin.core.rate_limit import limiter
from submitin.main import app
from submitin.repositories import Client
from submitin.services import auth_service


@pytest.fixture
def database(tmp_path):
    """テストごとに使い捨てのSQLiteファイルDB"""
    db = Database(f"sqlite:///{tmp_path / 'test.db'}")
    db.connect()
    db.create_all()
    yield db
    db.disconnect()


@pytest.fixture
def db_session(database):
    with database.session() as session:
        yield session


@pytest.fixture
def client(db_session):
    return Client(db_session)


@pytest.fixture
def user(client):
    return auth_service.create_user(client, "owner@example.com", password="Passw0rd!", name="Owner")


@pytest.fixture
def other_user(client):
    return auth_service.create_user(client, "other@example.com", password="Passw0rd!")


@pytest.fixture
def auth_headers(client, user):
    token = auth_service.create_session(client, user)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api(database, db_session, monkeypatch):
    """get_db を共有セッションに差し替えたTestClient"""

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    monkeypatch.setattr(database_module, "database", database)
    limiter.enabled = False
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        limiter.enabled = True


@pytest.fixture
def make_form(client):
    """フォーム作成ヘルパー"""

    def _make(owner, slug="survey-1", name="Survey", published=False):
        return client.form.create({"slug": slug, "name": name, "user_id": owner.id, "published": published})

    return _make


@pytest.fixture
def make_field(client):
    """項目作成ヘルパー"""

    def _make(form, label="Name", type="text", order=0, required=False, options=None):
        return client.field.create({
            "type": type,
            "label": label,
            "order": order,
            "required": required,
            "options": options,
            "form_id": form.id,
        })

    return _make
