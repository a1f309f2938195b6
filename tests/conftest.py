# tests/conftest.py
import json

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from heyauto.config import settings
from heyauto.db import init_db
from heyauto.deps import get_provider, provider_scope
from heyauto.main import app
from heyauto.provider.local import LocalProvider
from heyauto.seed import seed_locations
from heyauto.utils.security import create_jwt

PHONE = "9876543210"
PASSWORD = "secret123"


@pytest.fixture
def session_factory():
    # одна общая in-memory БД на весь тест
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)
    db = factory()
    seed_locations(db, "Kerala")
    db.close()
    yield factory
    engine.dispose()


@pytest.fixture
def make_provider(session_factory):
    created = []

    def _make(cookies=None) -> LocalProvider:
        p = LocalProvider(session_factory(), cookies or {})
        created.append(p)
        return p

    yield _make
    for p in created:
        p.close()


@pytest.fixture
def client(session_factory):
    def _provider(request: Request):
        yield from provider_scope(request, LocalProvider(session_factory(), request.cookies))

    app.dependency_overrides[get_provider] = _provider
    yield TestClient(app)
    app.dependency_overrides.clear()


def driver_form(**overrides) -> dict:
    form = {
        "name": "Ravi Kumar",
        "phone": PHONE,
        "password": PASSWORD,
        "address": "MG Road, Kochi",
        "auto_registration_number": "KL-07-AB-1234",
    }
    form.update(overrides)
    return {k: v for k, v in form.items() if v is not None}


@pytest.fixture
def register(client):
    def _register(files=None, **overrides):
        return client.post("/api/drivers/register", data=driver_form(**overrides), files=files)

    return _register


@pytest.fixture
def logged_in(client, register):
    """Зарегистрированный и вошедший водитель; cookie уже в клиенте."""
    r = register()
    assert r.status_code == 201, r.text
    r = client.post("/api/drivers/login", json={"phone": PHONE, "password": PASSWORD})
    assert r.status_code == 200, r.text
    return r.json()["driver"]


@pytest.fixture
def session_cookie(make_provider):
    """Заголовок Cookie с сессией аккаунта; expired=True — access token уже истёк."""

    def _cookie(email: str, password: str = PASSWORD, expired: bool = False) -> str:
        session = make_provider().password_grant(email, password)
        data = session.to_cookie_payload()
        if expired:
            data["access_token"] = create_jwt({"sub": session.user.id, "email": email}, ttl_sec=-60)
        return f"{settings.auth_cookie_name}={json.dumps(data, separators=(',', ':'))}"

    return _cookie
