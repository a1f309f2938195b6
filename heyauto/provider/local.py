# heyauto/provider/local.py
"""
Локальный провайдер: аккаунты, таблицы и файлы в своей БД (SQLAlchemy).

Ведёт себя как supabase там, где это видно приложению: JWT access token +
одноразовый refresh token, коды ошибок Postgres (23505), публичные и
подписанные URL для файлов (отдаёт их routers/storage.py).
"""
from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

from sqlalchemy import select, insert, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..db import Base
from ..models import driver, location  # noqa: F401  (регистрация таблиц в metadata)
from ..models.account import AuthAccount, RefreshToken
from ..models.storage import StoredObject
from ..utils.security import (
    create_jwt, decode_jwt, hash_password, verify_password, new_refresh_token,
)
from .base import AuthSession, AuthUser, IdentityProvider, ProviderError, UNIQUE_VIOLATION

DATA_TABLES = {"drivers", "locations"}
MIN_PASSWORD_LENGTH = 6


def _iso(x):
    if isinstance(x, (dt.date, dt.datetime)):
        return x.isoformat()
    return x


def _to_user(a: AuthAccount) -> AuthUser:
    return AuthUser(id=a.id, email=a.email, user_metadata=dict(a.user_metadata or {}), created_at=_iso(a.created_at))


def _integrity_error(e: IntegrityError) -> ProviderError:
    orig = e.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    text = str(orig)
    if sqlstate == UNIQUE_VIOLATION or "UNIQUE constraint failed" in text:
        return ProviderError("duplicate key value violates unique constraint", status=409, code=UNIQUE_VIOLATION)
    if sqlstate == "23502" or "NOT NULL constraint failed" in text:
        return ProviderError(f"null value violates not-null constraint: {text}", status=400, code="23502")
    return ProviderError(text, status=400, code=sqlstate or "23000")


class LocalProvider(IdentityProvider):
    def __init__(self, db: Session, cookies: Optional[Mapping[str, str]] = None):
        super().__init__(cookies)
        self.db = db

    # ---------- auth ----------

    def _issue_session(self, account: AuthAccount) -> AuthSession:
        access = create_jwt({"sub": account.id, "email": account.email, "role": "authenticated"})
        claims = decode_jwt(access) or {}
        refresh = RefreshToken(token=new_refresh_token(), user_id=account.id)
        self.db.add(refresh)
        self.db.commit()
        return AuthSession(
            access_token=access,
            refresh_token=refresh.token,
            expires_in=settings.JWT_TTL_SEC,
            expires_at=int(claims.get("exp") or 0),
            user=_to_user(account),
        )

    def user_from_access_token(self, access_token: str) -> AuthUser:
        claims = decode_jwt(access_token)
        if not claims or not claims.get("sub"):
            raise ProviderError("invalid JWT: unable to parse or verify signature", status=401, code="bad_jwt")
        account = self.db.get(AuthAccount, claims["sub"])
        if not account:
            raise ProviderError("User from sub claim in JWT does not exist", status=403, code="user_not_found")
        return _to_user(account)

    def refresh_session(self, refresh_token: str) -> AuthSession:
        row = self.db.execute(
            select(RefreshToken).where(RefreshToken.token == refresh_token)
        ).scalar_one_or_none()
        if not row or row.revoked:
            raise ProviderError("Invalid Refresh Token: Refresh Token Not Found", status=400,
                                code="refresh_token_not_found")
        account = self.db.get(AuthAccount, row.user_id)
        if not account:
            raise ProviderError("User not found", status=404, code="user_not_found")
        # refresh token одноразовый
        row.revoked = True
        self.db.commit()
        return self._issue_session(account)

    def password_grant(self, email: str, password: str) -> AuthSession:
        account = self.db.execute(
            select(AuthAccount).where(AuthAccount.email == (email or "").strip().lower())
        ).scalar_one_or_none()
        if not account or not verify_password(password or "", account.password_hash):
            raise ProviderError("Invalid login credentials", status=400, code="invalid_credentials")
        if account.email_confirmed_at is None:
            raise ProviderError("Email not confirmed", status=400, code="email_not_confirmed")
        return self._issue_session(account)

    def revoke(self, access_token: str, refresh_token: Optional[str]) -> None:
        claims = decode_jwt(access_token)
        if claims and claims.get("sub"):
            cond = RefreshToken.user_id == claims["sub"]
        elif refresh_token:
            cond = RefreshToken.token == refresh_token
        else:
            return
        self.db.execute(update(RefreshToken).where(cond).values(revoked=True))
        self.db.commit()

    def admin_create_user(self, email, password, *, email_confirm=True, user_metadata=None) -> AuthUser:
        email = (email or "").strip().lower()
        if not email or "@" not in email:
            raise ProviderError("Unable to validate email address: invalid format", status=400,
                                code="validation_failed")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ProviderError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters.", status=422,
                                code="weak_password")
        exists = self.db.execute(select(AuthAccount.id).where(AuthAccount.email == email)).scalar_one_or_none()
        if exists:
            raise ProviderError("A user with this email address has already been registered", status=422,
                                code="email_exists")

        account = AuthAccount(
            email=email,
            password_hash=hash_password(password),
            user_metadata=dict(user_metadata or {}),
            email_confirmed_at=dt.datetime.now(dt.timezone.utc) if email_confirm else None,
        )
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ProviderError("A user with this email address has already been registered", status=422,
                                code="email_exists")
        self.db.refresh(account)
        return _to_user(account)

    def admin_delete_user(self, user_id: str) -> None:
        account = self.db.get(AuthAccount, user_id)
        if not account:
            raise ProviderError("User not found", status=404, code="user_not_found")
        self.db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
        self.db.delete(account)
        self.db.commit()

    # ---------- таблицы ----------

    def _table(self, name: str):
        if name not in DATA_TABLES:
            raise ProviderError(f'relation "public.{name}" does not exist', status=404, code="42P01")
        return Base.metadata.tables[name]

    @staticmethod
    def _column(table, name: str):
        if name not in table.c:
            raise ProviderError(f"column {table.name}.{name} does not exist", status=400, code="42703")
        return table.c[name]

    def _where(self, table, filters: Optional[Mapping[str, Any]]):
        conds = []
        for k, v in (filters or {}).items():
            col = self._column(table, k)
            conds.append(col.is_(None) if v is None else col == v)
        return conds

    def select(self, table, *, columns=None, filters=None, order=None, limit=None) -> list[Dict[str, Any]]:
        t = self._table(table)
        cols = [self._column(t, c) for c in columns] if columns else list(t.c)
        stmt = select(*cols).where(*self._where(t, filters))
        if order:
            stmt = stmt.order_by(self._column(t, order).asc())
        if limit:
            stmt = stmt.limit(limit)
        rows = self.db.execute(stmt).mappings().all()
        return [{k: _iso(v) for k, v in r.items()} for r in rows]

    def insert(self, table, row) -> Dict[str, Any]:
        t = self._table(table)
        for k in row:
            self._column(t, k)
        try:
            result = self.db.execute(insert(t).values(**row))
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise _integrity_error(e)
        pk = result.inserted_primary_key[0]
        return self.select(table, filters={"id": pk})[0]

    def update(self, table, values, filters) -> list[Dict[str, Any]]:
        t = self._table(table)
        ids = self.db.execute(select(t.c.id).where(*self._where(t, filters))).scalars().all()
        if not ids:
            return []
        for k in values:
            self._column(t, k)
        try:
            self.db.execute(update(t).where(t.c.id.in_(ids)).values(**values))
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise _integrity_error(e)
        rows = self.db.execute(select(t).where(t.c.id.in_(ids))).mappings().all()
        return [{k: _iso(v) for k, v in r.items()} for r in rows]

    # ---------- файлы ----------

    def _object(self, bucket: str, path: str) -> Optional[StoredObject]:
        return self.db.execute(
            select(StoredObject).where(StoredObject.bucket == bucket, StoredObject.path == path)
        ).scalar_one_or_none()

    def upload(self, bucket, path, data, content_type=None) -> str:
        if self._object(bucket, path):
            raise ProviderError("The resource already exists", status=409, code="Duplicate")
        self.db.add(StoredObject(bucket=bucket, path=path, content_type=content_type, data=data))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ProviderError("The resource already exists", status=409, code="Duplicate")
        return path

    def download(self, bucket: str, path: str) -> Optional[StoredObject]:
        return self._object(bucket, path)

    def get_public_url(self, bucket, path) -> str:
        base = settings.PUBLIC_BASE_URL.rstrip("/")
        return f"{base}/storage/v1/object/public/{bucket}/{quote(path)}"

    def create_signed_url(self, bucket, path, expires_in) -> str:
        if not self._object(bucket, path):
            raise ProviderError("Object not found", status=404, code="not_found")
        token = create_jwt({"url": f"{bucket}/{path}"}, ttl_sec=expires_in)
        base = settings.PUBLIC_BASE_URL.rstrip("/")
        return f"{base}/storage/v1/object/sign/{bucket}/{quote(path)}?token={token}"

    @staticmethod
    def verify_signed_token(bucket: str, path: str, token: str) -> bool:
        claims = decode_jwt(token or "")
        return bool(claims) and claims.get("url") == f"{bucket}/{path}"

    def close(self) -> None:
        self.db.close()
