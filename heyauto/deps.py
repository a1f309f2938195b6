# heyauto/deps.py
from __future__ import annotations

from typing import Iterator

from fastapi import Depends, Request

from .auth.session import resolve_user
from .config import settings
from .db import SessionLocal
from .errors import Internal
from .provider.base import AuthUser, IdentityProvider


# ------------------ Provider client (один на запрос) ------------------

def build_provider(cookies) -> IdentityProvider:
    backend = (settings.PROVIDER_BACKEND or "local").lower()
    if backend == "supabase":
        from .provider.supabase import SupabaseProvider

        if not settings.SUPABASE_URL or not settings.SUPABASE_ANON_KEY:
            raise Internal("Server configuration error")
        return SupabaseProvider(
            settings.SUPABASE_URL,
            settings.SUPABASE_ANON_KEY,
            settings.SUPABASE_SERVICE_ROLE_KEY,
            cookies,
            timeout=settings.PROVIDER_TIMEOUT_SEC,
        )
    if backend == "local":
        from .provider.local import LocalProvider

        return LocalProvider(SessionLocal(), cookies)
    raise Internal("Server configuration error")


def provider_scope(request: Request, provider: IdentityProvider) -> Iterator[IdentityProvider]:
    # провайдер виден обработчикам ошибок: им тоже нужны обновлённые cookie
    request.state.provider = provider
    try:
        yield provider
    finally:
        provider.close()


def get_provider(request: Request) -> Iterator[IdentityProvider]:
    yield from provider_scope(request, build_provider(request.cookies))


# ------------------ Session resolver ------------------

def get_current_user(provider: IdentityProvider = Depends(get_provider)) -> AuthUser:
    """Аккаунт текущего запроса или 401 (см. auth/session.py)."""
    return resolve_user(provider)
