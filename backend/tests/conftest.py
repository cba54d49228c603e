"""
Light Management - Fixtures de test
MongoDB remplacé par mongomock-motor, une base neuve par test.
"""

import importlib

import pytest
from mongomock_motor import AsyncMongoMockClient

# Modules qui ont fait `from config import db`
DB_MODULES = [
    "config",
    "services.event_logger",
    "services.stock_reconciler",
    "services.import_engine",
    "services.export_assembler",
    "routes.auth",
    "routes.users",
    "routes.clients",
    "routes.products",
    "routes.commandes",
]


@pytest.fixture(autouse=True)
def mock_db(monkeypatch):
    database = AsyncMongoMockClient()["light_management_test"]
    for name in DB_MODULES:
        monkeypatch.setattr(importlib.import_module(name), "db", database)
    return database


@pytest.fixture
def app_client(mock_db):
    from fastapi.testclient import TestClient
    from server import app

    with TestClient(app) as c:
        yield c


def _register(c, username, role, client_id=None):
    payload = {"username": username, "password": "Secret123!", "role": role}
    if client_id:
        payload["client_id"] = client_id
    r = c.post("/api/auth/register", json=payload)
    assert r.status_code == 201, r.text
    return r.json()["token"]


def auth_h(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(app_client):
    return auth_h(_register(app_client, "admin", "admin"))


@pytest.fixture
def user_headers(app_client):
    return auth_h(_register(app_client, "operator", "user"))


@pytest.fixture
def register(app_client):
    """register(username, role, client_id=None) -> headers"""
    def _do(username, role, client_id=None):
        return auth_h(_register(app_client, username, role, client_id))
    return _do
