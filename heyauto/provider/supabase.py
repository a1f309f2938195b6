# heyauto/provider/supabase.py
"""
Провайдер поверх REST API supabase: GoTrue (/auth/v1), PostgREST (/rest/v1)
и Storage (/storage/v1). Ходим через httpx, по одному клиенту на запрос.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import httpx

from .base import AuthSession, AuthUser, IdentityProvider, ProviderError


def _fmt(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


class SupabaseProvider(IdentityProvider):
    def __init__(
        self,
        url: str,
        anon_key: str,
        service_role_key: Optional[str] = None,
        cookies: Optional[Mapping[str, str]] = None,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(cookies)
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self.http = httpx.Client(base_url=self.url, timeout=timeout, transport=transport)

    # ---------- http ----------

    def _headers(self, token: Optional[str] = None, *, admin: bool = False) -> Dict[str, str]:
        key = self.service_role_key if admin else self.anon_key
        if not key:
            raise ProviderError("Server configuration error: service role key is not set", status=500,
                                code="config")
        return {"apikey": key, "Authorization": f"Bearer {token or key}"}

    def _data_headers(self) -> Dict[str, str]:
        # Таблицы и файлы — сервисным ключом (в обход RLS), иначе от имени пользователя
        if self.service_role_key:
            return self._headers(admin=True)
        token = (self.stored_session() or {}).get("access_token")
        return self._headers(token)

    @staticmethod
    def _error(resp: httpx.Response) -> ProviderError:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = (
            body.get("msg") or body.get("message") or body.get("error_description")
            or body.get("error") or resp.text or f"HTTP {resp.status_code}"
        )
        # GoTrue: error_code, PostgREST: code ("23505"), Storage: error ("Duplicate")
        code = body.get("error_code") or body.get("code") or body.get("error")
        return ProviderError(str(message), status=resp.status_code, code=str(code) if code is not None else None)

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = self.http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"Provider request failed: {e}", status=502, code="network")
        if resp.status_code >= 400:
            raise self._error(resp)
        return resp

    # ---------- auth ----------

    def user_from_access_token(self, access_token: str) -> AuthUser:
        resp = self._request("GET", "/auth/v1/user", headers=self._headers(access_token))
        return AuthUser.from_dict(resp.json())

    def refresh_session(self, refresh_token: str) -> AuthSession:
        resp = self._request(
            "POST", "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
            headers=self._headers(),
        )
        return AuthSession.from_dict(resp.json())

    def password_grant(self, email: str, password: str) -> AuthSession:
        resp = self._request(
            "POST", "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers=self._headers(),
        )
        return AuthSession.from_dict(resp.json())

    def revoke(self, access_token: str, refresh_token: Optional[str]) -> None:
        try:
            self._request("POST", "/auth/v1/logout", headers=self._headers(access_token))
        except ProviderError as e:
            # сессия уже недействительна — выходить не из чего
            if e.status not in (401, 403, 404):
                raise

    def admin_create_user(self, email, password, *, email_confirm=True, user_metadata=None) -> AuthUser:
        resp = self._request(
            "POST", "/auth/v1/admin/users",
            json={
                "email": email,
                "password": password,
                "email_confirm": email_confirm,
                "user_metadata": dict(user_metadata or {}),
            },
            headers=self._headers(admin=True),
        )
        return AuthUser.from_dict(resp.json())

    def admin_delete_user(self, user_id: str) -> None:
        self._request("DELETE", f"/auth/v1/admin/users/{user_id}", headers=self._headers(admin=True))

    # ---------- таблицы ----------

    @staticmethod
    def _filter_params(filters: Optional[Mapping[str, Any]]) -> list[tuple[str, str]]:
        return [(k, "is.null" if v is None else f"eq.{_fmt(v)}") for k, v in (filters or {}).items()]

    def select(self, table, *, columns=None, filters=None, order=None, limit=None) -> list[Dict[str, Any]]:
        params = [("select", ",".join(columns) if columns else "*")]
        params += self._filter_params(filters)
        if order:
            params.append(("order", f"{order}.asc"))
        if limit:
            params.append(("limit", str(limit)))
        resp = self._request("GET", f"/rest/v1/{table}", params=params, headers=self._data_headers())
        return list(resp.json() or [])

    def insert(self, table, row) -> Dict[str, Any]:
        headers = {**self._data_headers(), "Prefer": "return=representation"}
        resp = self._request("POST", f"/rest/v1/{table}", json=dict(row), headers=headers)
        rows = resp.json() or []
        if not rows:
            raise ProviderError("Insert returned no rows", status=500)
        return rows[0]

    def update(self, table, values, filters) -> list[Dict[str, Any]]:
        headers = {**self._data_headers(), "Prefer": "return=representation"}
        resp = self._request(
            "PATCH", f"/rest/v1/{table}",
            params=self._filter_params(filters), json=dict(values), headers=headers,
        )
        return list(resp.json() or [])

    # ---------- файлы ----------

    def upload(self, bucket, path, data, content_type=None) -> str:
        headers = {
            **self._data_headers(),
            "Content-Type": content_type or "application/octet-stream",
            "Cache-Control": "max-age=3600",
            "x-upsert": "false",
        }
        self._request("POST", f"/storage/v1/object/{bucket}/{quote(path)}", content=data, headers=headers)
        return path

    def get_public_url(self, bucket, path) -> str:
        return f"{self.url}/storage/v1/object/public/{bucket}/{quote(path)}"

    def create_signed_url(self, bucket, path, expires_in) -> str:
        resp = self._request(
            "POST", f"/storage/v1/object/sign/{bucket}/{quote(path)}",
            json={"expiresIn": expires_in}, headers=self._data_headers(),
        )
        signed = (resp.json() or {}).get("signedURL")
        if not signed:
            raise ProviderError("Signed URL missing in provider response", status=500)
        return f"{self.url}/storage/v1{signed}"

    def close(self) -> None:
        self.http.close()
