# heyauto/auth/cookies.py
"""
Формат cookie с сессией провайдера.

Провайдер хранит сессию в cookie ``sb-<project_ref>-auth-token``. Значение —
JSON (access_token, refresh_token, expires_at, expires_in, token_type, user),
иногда с префиксом ``base64-`` (так пишет JS-клиент supabase), а длинные
значения режутся на куски ``<name>.0``, ``<name>.1``, ...
"""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

AUTH_COOKIE_MARKER = "auth-token"
BASE64_PREFIX = "base64-"
MAX_CHUNK_SIZE = 3180


@dataclass
class CookieSpec:
    name: str
    value: str
    max_age: int  # 0 — удалить cookie


def read_chunked(cookies: Mapping[str, str], name: str) -> Optional[str]:
    if name in cookies:
        return cookies[name]
    parts = []
    i = 0
    while f"{name}.{i}" in cookies:
        parts.append(cookies[f"{name}.{i}"])
        i += 1
    return "".join(parts) or None


def chunk_names(cookies: Mapping[str, str], name: str) -> list[str]:
    """Все cookie, которые относятся к сессии name (целиком или кусками)."""
    return [k for k in cookies if k == name or (k.startswith(name + ".") and k[len(name) + 1:].isdigit())]


def decode_storage_value(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    text = raw
    if raw.startswith(BASE64_PREFIX):
        encoded = raw[len(BASE64_PREFIX):]
        try:
            text = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def encode_session_value(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def split_chunks(name: str, value: str) -> list[Tuple[str, str]]:
    if len(value) <= MAX_CHUNK_SIZE:
        return [(name, value)]
    return [
        (f"{name}.{i}", value[start:start + MAX_CHUNK_SIZE])
        for i, start in enumerate(range(0, len(value), MAX_CHUNK_SIZE))
    ]


def find_auth_cookie(cookies: Mapping[str, str]) -> Optional[Tuple[str, str]]:
    """Первая cookie, в имени которой есть "auth-token"."""
    for name, value in cookies.items():
        if AUTH_COOKIE_MARKER in name:
            return name, value
    return None


def parse_token_cookie(value: str) -> Optional[Dict[str, Any]]:
    """
    Сырой JSON из cookie. None, если это не JSON-объект или в нём нет access_token.
    """
    try:
        data = json.loads(value)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict) or not data.get("access_token"):
        return None
    return data
