# heyauto/provider/base.py
"""
Интерфейс провайдера авторизации и хранилища.

Провайдер — чёрный ящик: аккаунты и сессии, таблицы ``drivers``/``locations``
и два бакета с файлами. Реализации: ``SupabaseProvider`` (REST API supabase
через httpx) и ``LocalProvider`` (своя БД через SQLAlchemy).

Один экземпляр живёт ровно один HTTP-запрос: он получает cookie запроса и
копит cookie для ответа (``cookies_to_set``), как серверный клиент supabase.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence

from ..auth.cookies import (
    CookieSpec,
    chunk_names,
    decode_storage_value,
    encode_session_value,
    find_auth_cookie,
    parse_token_cookie,
    read_chunked,
    split_chunks,
)
from ..config import settings
from ..utils.security import unverified_claims

logger = logging.getLogger(__name__)

DRIVER_PHOTOS_BUCKET = "driver-photos"
LICENSE_IMAGES_BUCKET = "license-images"
PUBLIC_BUCKETS = {DRIVER_PHOTOS_BUCKET}

# код Postgres для нарушения уникальности
UNIQUE_VIOLATION = "23505"


class ProviderError(Exception):
    def __init__(self, message: str, status: int = 500, code: Optional[str] = None):
        self.message = message
        self.status = status
        self.code = code
        super().__init__(message)

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuthUser":
        return cls(
            id=str(data["id"]),
            email=data.get("email"),
            user_metadata=dict(data.get("user_metadata") or {}),
            created_at=data.get("created_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "user_metadata": self.user_metadata,
            "created_at": self.created_at,
        }


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str
    expires_in: int
    expires_at: int
    user: AuthUser
    token_type: str = "bearer"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuthSession":
        expires_in = int(data.get("expires_in") or 0)
        expires_at = int(data.get("expires_at") or (int(time.time()) + expires_in))
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            expires_in=expires_in,
            expires_at=expires_at,
            token_type=data.get("token_type") or "bearer",
            user=AuthUser.from_dict(data["user"]),
        )

    def to_cookie_payload(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "expires_in": self.expires_in,
            "token_type": self.token_type,
            "user": self.user.to_dict(),
        }


class IdentityProvider(ABC):
    def __init__(self, cookies: Optional[Mapping[str, str]] = None):
        self.request_cookies: Dict[str, str] = dict(cookies or {})
        self.cookies_to_set: list[CookieSpec] = []
        self.cookie_name = settings.auth_cookie_name

    # ---------- хранение сессии в cookie ----------

    def stored_session(self) -> Optional[Dict[str, Any]]:
        raw = read_chunked(self.request_cookies, self.cookie_name)
        return decode_storage_value(raw)

    def save_session(self, session: AuthSession) -> None:
        value = encode_session_value(session.to_cookie_payload())
        chunks = split_chunks(self.cookie_name, value)
        fresh = {name for name, _ in chunks}
        for name in chunk_names(self.request_cookies, self.cookie_name):
            if name not in fresh:
                self.cookies_to_set.append(CookieSpec(name, "", 0))
        for name, chunk in chunks:
            self.cookies_to_set.append(CookieSpec(name, chunk, settings.COOKIE_MAX_AGE_SEC))

    def clear_session(self) -> None:
        names = set(chunk_names(self.request_cookies, self.cookie_name))
        names.update(k for k in self.request_cookies if "auth-token" in k)
        names.add(self.cookie_name)
        for name in sorted(names):
            self.cookies_to_set.append(CookieSpec(name, "", 0))

    def apply_cookies(self, response) -> None:
        for c in self.cookies_to_set:
            if c.max_age == 0:
                response.delete_cookie(c.name, path="/")
                continue
            response.set_cookie(
                c.name,
                c.value,
                max_age=c.max_age,
                path="/",
                httponly=True,
                secure=settings.COOKIE_SECURE,
                samesite=settings.COOKIE_SAMESITE,
            )

    # ---------- auth ----------

    def get_user(self) -> Optional[AuthUser]:
        """
        Стандартное чтение: сессия из cookie провайдера (по точному имени),
        access token проверяется у провайдера без обновления.
        """
        data = self.stored_session()
        token = (data or {}).get("access_token")
        if not token:
            return None
        try:
            return self.user_from_access_token(token)
        except ProviderError as e:
            logger.debug("standard session read failed: %s", e.message)
            return None

    def set_session(self, access_token: str, refresh_token: Optional[str]) -> AuthSession:
        """
        Восстановить сессию из пары токенов. Просроченный access token
        обновляется по refresh token. Сессия записывается в cookie ответа.
        """
        claims = unverified_claims(access_token) or {}
        now = int(time.time())
        exp = int(claims.get("exp") or 0)
        if exp <= now:
            if not refresh_token:
                raise ProviderError("Auth session missing!", status=401)
            session = self.refresh_session(refresh_token)
        else:
            user = self.user_from_access_token(access_token)
            session = AuthSession(
                access_token=access_token,
                refresh_token=refresh_token or "",
                expires_in=exp - now,
                expires_at=exp,
                user=user,
            )
        self.save_session(session)
        return session

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        session = self.password_grant(email, password)
        self.save_session(session)
        return session

    def sign_out(self) -> None:
        data = self.stored_session()
        if not data or not data.get("access_token"):
            found = find_auth_cookie(self.request_cookies)
            data = parse_token_cookie(found[1]) if found else None
        if data:
            self.revoke(data["access_token"], data.get("refresh_token"))
        self.clear_session()

    @abstractmethod
    def user_from_access_token(self, access_token: str) -> AuthUser: ...

    @abstractmethod
    def refresh_session(self, refresh_token: str) -> AuthSession: ...

    @abstractmethod
    def password_grant(self, email: str, password: str) -> AuthSession: ...

    @abstractmethod
    def revoke(self, access_token: str, refresh_token: Optional[str]) -> None: ...

    @abstractmethod
    def admin_create_user(
        self, email: str, password: str, *, email_confirm: bool = True,
        user_metadata: Optional[Dict[str, Any]] = None,
    ) -> AuthUser: ...

    @abstractmethod
    def admin_delete_user(self, user_id: str) -> None: ...

    # ---------- таблицы ----------

    @abstractmethod
    def select(
        self, table: str, *, columns: Optional[Sequence[str]] = None,
        filters: Optional[Mapping[str, Any]] = None, order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Dict[str, Any]]: ...

    def select_one(
        self, table: str, *, columns: Optional[Sequence[str]] = None,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        rows = self.select(table, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    @abstractmethod
    def insert(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    def update(self, table: str, values: Mapping[str, Any], filters: Mapping[str, Any]) -> list[Dict[str, Any]]: ...

    # ---------- файлы ----------

    @abstractmethod
    def upload(self, bucket: str, path: str, data: bytes, content_type: Optional[str] = None) -> str: ...

    @abstractmethod
    def get_public_url(self, bucket: str, path: str) -> str: ...

    @abstractmethod
    def create_signed_url(self, bucket: str, path: str, expires_in: int) -> str: ...

    def close(self) -> None:
        pass
