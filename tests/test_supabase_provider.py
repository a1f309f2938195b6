# tests/test_supabase_provider.py
import json
import time

import httpx
import pytest
from jose import jwt

from heyauto.auth.session import resolve_user
from heyauto.errors import Conflict
from heyauto.provider.base import ProviderError
from heyauto.provider.supabase import SupabaseProvider
from heyauto.services import drivers as driver_service

URL = "https://abcd.supabase.co"
ANON = "anon-key"
SERVICE = "service-key"
USER = {"id": "u-1", "email": "9876543210@phone.heyauto.in", "user_metadata": {"name": "Ravi"}}


def _token(ttl: int) -> str:
    return jwt.encode({"sub": USER["id"], "exp": int(time.time()) + ttl}, "whatever", algorithm="HS256")


def _session(ttl: int = 3600) -> dict:
    return {
        "access_token": _token(ttl),
        "refresh_token": "r-1",
        "expires_in": ttl,
        "token_type": "bearer",
        "user": USER,
    }


class Recorder:
    """Отвечает по (method, path) и запоминает запросы."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"message": "no route"})
        status, body = self.routes[key]
        return httpx.Response(status, json=body)

    def last(self, method, path) -> httpx.Request:
        return [c for c in self.calls if c.method == method and c.url.path == path][-1]


def _provider(routes, cookies=None, service_key=SERVICE):
    rec = Recorder(routes)
    p = SupabaseProvider(URL, ANON, service_key, cookies, transport=httpx.MockTransport(rec))
    return p, rec


def test_sign_in_with_password_queues_session_cookie():
    p, rec = _provider({("POST", "/auth/v1/token"): (200, _session())})
    session = p.sign_in_with_password("9876543210@phone.heyauto.in", "secret123")
    assert session.user.id == "u-1"

    req = rec.last("POST", "/auth/v1/token")
    assert req.url.params["grant_type"] == "password"
    assert req.headers["apikey"] == ANON
    assert json.loads(req.content) == {"email": "9876543210@phone.heyauto.in", "password": "secret123"}

    cookie = p.cookies_to_set[-1]
    assert cookie.name == p.cookie_name
    assert json.loads(cookie.value)["refresh_token"] == "r-1"


def test_invalid_credentials_error_shape():
    p, _ = _provider({("POST", "/auth/v1/token"): (
        400, {"error_code": "invalid_credentials", "msg": "Invalid login credentials"},
    )})
    with pytest.raises(ProviderError) as exc:
        p.password_grant("x@example.com", "bad")
    assert exc.value.status == 400
    assert exc.value.code == "invalid_credentials"
    assert exc.value.message == "Invalid login credentials"


def test_select_builds_postgrest_query():
    p, rec = _provider({("GET", "/rest/v1/drivers"): (200, [{"id": "d-1", "name": "Ravi"}])})
    rows = p.select(
        "drivers",
        columns=["id", "name"],
        filters={"is_active": True, "active_district": "Ernakulam", "photo_url": None},
        order="name",
        limit=5,
    )
    assert rows == [{"id": "d-1", "name": "Ravi"}]

    req = rec.last("GET", "/rest/v1/drivers")
    params = req.url.params
    assert params["select"] == "id,name"
    assert params["is_active"] == "eq.true"
    assert params["active_district"] == "eq.Ernakulam"
    assert params["photo_url"] == "is.null"
    assert params["order"] == "name.asc"
    assert params["limit"] == "5"
    assert req.headers["authorization"] == f"Bearer {SERVICE}"


def test_data_calls_use_user_token_without_service_key():
    cookies = {"sb-local-auth-token": json.dumps(_session())}
    p, rec = _provider({("GET", "/rest/v1/locations"): (200, [])}, cookies=cookies, service_key=None)
    p.select("locations", filters={"state": "Kerala"})
    req = rec.last("GET", "/rest/v1/locations")
    assert req.headers["apikey"] == ANON
    assert req.headers["authorization"].startswith("Bearer ey")


def test_insert_unique_violation():
    p, rec = _provider({("POST", "/rest/v1/locations"): (
        409, {"code": "23505", "message": "duplicate key value violates unique constraint"},
    )})
    with pytest.raises(ProviderError) as exc:
        p.insert("locations", {"state": "Kerala", "district": "Ernakulam", "sub_location": "Kochi"})
    assert exc.value.is_unique_violation
    assert rec.last("POST", "/rest/v1/locations").headers["prefer"] == "return=representation"


def test_update_filters_and_returns_rows():
    p, rec = _provider({("PATCH", "/rest/v1/drivers"): (200, [{"id": "d-1", "is_active": True}])})
    rows = p.update("drivers", {"is_active": True}, {"user_id": "u-1"})
    assert rows[0]["is_active"] is True
    req = rec.last("PATCH", "/rest/v1/drivers")
    assert req.url.params["user_id"] == "eq.u-1"
    assert json.loads(req.content) == {"is_active": True}


def test_admin_calls_need_service_key():
    p, rec = _provider({}, service_key=None)
    with pytest.raises(ProviderError) as exc:
        p.admin_create_user("a@example.com", "secret123")
    assert exc.value.code == "config"
    assert rec.calls == []


def test_network_failure_is_provider_error():
    def boom(request):
        raise httpx.ConnectError("down", request=request)

    p = SupabaseProvider(URL, ANON, SERVICE, transport=httpx.MockTransport(boom))
    with pytest.raises(ProviderError) as exc:
        p.select("drivers")
    assert exc.value.status == 502


def test_logout_tolerates_dead_session():
    cookies = {"sb-local-auth-token": json.dumps(_session())}
    p, rec = _provider({("POST", "/auth/v1/logout"): (401, {"msg": "invalid JWT"})}, cookies=cookies)
    p.sign_out()
    assert rec.last("POST", "/auth/v1/logout")
    assert any(c.name == "sb-local-auth-token" and c.max_age == 0 for c in p.cookies_to_set)


def test_storage_urls():
    p, rec = _provider({
        ("POST", "/storage/v1/object/driver-photos/u-1/photo.jpg"): (200, {"Key": "driver-photos/u-1/photo.jpg"}),
        ("POST", "/storage/v1/object/sign/license-images/u-1/license.jpg"): (
            200, {"signedURL": "/object/sign/license-images/u-1/license.jpg?token=abc"},
        ),
    })
    p.upload("driver-photos", "u-1/photo.jpg", b"jpeg", "image/jpeg")
    up = rec.last("POST", "/storage/v1/object/driver-photos/u-1/photo.jpg")
    assert up.headers["x-upsert"] == "false"
    assert up.headers["content-type"] == "image/jpeg"
    assert up.content == b"jpeg"

    assert p.get_public_url("driver-photos", "u-1/photo.jpg") == (
        f"{URL}/storage/v1/object/public/driver-photos/u-1/photo.jpg"
    )
    signed = p.create_signed_url("license-images", "u-1/license.jpg", 3600)
    assert signed == f"{URL}/storage/v1/object/sign/license-images/u-1/license.jpg?token=abc"
    sign_req = rec.last("POST", "/storage/v1/object/sign/license-images/u-1/license.jpg")
    assert json.loads(sign_req.content) == {"expiresIn": 3600}


def test_fallback_cookie_refreshes_through_provider():
    refreshed = _session()
    refreshed["refresh_token"] = "r-2"
    p, rec = _provider(
        {("POST", "/auth/v1/token"): (200, refreshed)},
        cookies={"sb-abcd-auth-token": json.dumps(_session(ttl=-60))},
    )
    user = resolve_user(p)
    assert user.id == "u-1"

    req = rec.last("POST", "/auth/v1/token")
    assert req.url.params["grant_type"] == "refresh_token"
    assert json.loads(req.content) == {"refresh_token": "r-1"}
    assert json.loads(p.cookies_to_set[-1].value)["refresh_token"] == "r-2"


def test_register_rolls_back_account_when_row_insert_fails():
    p, rec = _provider({
        ("GET", "/rest/v1/drivers"): (200, []),
        ("POST", "/auth/v1/admin/users"): (200, USER),
        ("POST", "/rest/v1/drivers"): (409, {"code": "23505", "message": "duplicate key"}),
        ("DELETE", "/auth/v1/admin/users/u-1"): (200, {}),
    })
    payload = {
        "name": "Ravi", "phone": "9876543210", "password": "secret123",
        "address": "MG Road", "auto_registration_number": "KL-07-1234",
    }
    with pytest.raises(Conflict):
        driver_service.register_driver(p, payload)

    created = json.loads(rec.last("POST", "/auth/v1/admin/users").content)
    assert created["email"] == "9876543210@phone.heyauto.in"
    assert created["email_confirm"] is True
    assert rec.last("DELETE", "/auth/v1/admin/users/u-1").headers["authorization"] == f"Bearer {SERVICE}"
