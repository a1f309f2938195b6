# tests/test_session_resolver.py
import base64
import json

import pytest

from heyauto.auth.cookies import MAX_CHUNK_SIZE, read_chunked, split_chunks
from heyauto.auth.session import resolve_user
from heyauto.config import settings
from heyauto.errors import Unauthorized
from heyauto.provider.base import ProviderError
from heyauto.utils.security import create_jwt

EMAIL = "ravi@example.com"
PASSWORD = "secret123"


@pytest.fixture
def account(make_provider):
    return make_provider().admin_create_user(EMAIL, PASSWORD)


@pytest.fixture
def session(make_provider, account):
    return make_provider().password_grant(EMAIL, PASSWORD)


def _blob(session, **overrides) -> str:
    data = session.to_cookie_payload()
    data.update(overrides)
    return json.dumps(data, separators=(",", ":"))


def test_no_cookies_is_unauthorized(make_provider):
    with pytest.raises(Unauthorized):
        resolve_user(make_provider())


def test_standard_read(make_provider, account, session):
    p = make_provider({settings.auth_cookie_name: _blob(session)})
    user = resolve_user(p)
    assert user.id == account.id
    # стандартное чтение cookie не переписывает
    assert p.cookies_to_set == []


def test_standard_read_base64_value(make_provider, account, session):
    encoded = base64.urlsafe_b64encode(_blob(session).encode()).decode().rstrip("=")
    p = make_provider({settings.auth_cookie_name: "base64-" + encoded})
    assert resolve_user(p).id == account.id


def test_standard_read_chunked_value(make_provider, account, session):
    # длинные метаданные не влезают в одну cookie
    blob = _blob(session, padding="x" * (MAX_CHUNK_SIZE * 2))
    chunks = dict(split_chunks(settings.auth_cookie_name, blob))
    assert len(chunks) == 3
    assert read_chunked(chunks, settings.auth_cookie_name) == blob

    p = make_provider(chunks)
    assert resolve_user(p).id == account.id


def test_fallback_cookie_with_other_name(make_provider, account, session):
    p = make_provider({"sb-legacy-auth-token": _blob(session)})
    user = resolve_user(p)
    assert user.id == account.id
    # провайдер записал сессию под своим именем
    names = [c.name for c in p.cookies_to_set]
    assert settings.auth_cookie_name in names


def test_fallback_refreshes_expired_token(make_provider, account, session):
    expired = create_jwt({"sub": account.id, "email": EMAIL}, ttl_sec=-60)
    p = make_provider({"sb-legacy-auth-token": _blob(session, access_token=expired)})
    user = resolve_user(p)
    assert user.id == account.id

    written = next(c for c in p.cookies_to_set if c.name == settings.auth_cookie_name)
    fresh = json.loads(written.value)
    assert fresh["access_token"] != expired
    assert fresh["refresh_token"] != session.refresh_token

    # refresh token одноразовый
    again = make_provider({"sb-legacy-auth-token": _blob(session, access_token=expired)})
    with pytest.raises(Unauthorized):
        resolve_user(again)


def test_fallback_expired_without_refresh_token(make_provider, account, session):
    expired = create_jwt({"sub": account.id}, ttl_sec=-60)
    p = make_provider({"my-auth-token": _blob(session, access_token=expired, refresh_token="")})
    with pytest.raises(Unauthorized):
        resolve_user(p)


@pytest.mark.parametrize("value", ["not-json", "[1, 2]", '{"refresh_token": "x"}', "base64-eyJ9"])
def test_fallback_unusable_cookie(make_provider, value):
    p = make_provider({"sb-x-auth-token": value})
    with pytest.raises(Unauthorized):
        resolve_user(p)


def test_fallback_rejects_forged_token(make_provider, account, session):
    forged = session.access_token[:-4] + "AAAA"
    p = make_provider({"sb-legacy-auth-token": _blob(session, access_token=forged)})
    with pytest.raises(Unauthorized):
        resolve_user(p)


def test_cookie_without_marker_is_ignored(make_provider, session):
    p = make_provider({"session": _blob(session)})
    with pytest.raises(Unauthorized):
        resolve_user(p)


def test_sign_out_revokes_refresh_tokens(make_provider, account, session):
    p = make_provider({settings.auth_cookie_name: _blob(session)})
    p.sign_out()
    assert all(c.max_age == 0 for c in p.cookies_to_set)

    q = make_provider()
    with pytest.raises(ProviderError):
        q.refresh_session(session.refresh_token)
