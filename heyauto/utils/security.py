import secrets
import time

import bcrypt
from jose import jwt, JWTError

from ..config import settings

# bcrypt учитывает только первые 72 байта пароля
_BCRYPT_MAX_BYTES = 72


def create_jwt(payload: dict, ttl_sec: int | None = None) -> str:
    now = int(time.time())
    exp = now + (ttl_sec if ttl_sec is not None else settings.JWT_TTL_SEC)
    return jwt.encode({**payload, "iat": now, "exp": exp}, settings.SECRET_KEY, algorithm=settings.JWT_ALG)


def decode_jwt(token: str):
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALG])
    except JWTError:
        return None


def unverified_claims(token: str) -> dict | None:
    """Claims без проверки подписи — только чтобы посмотреть exp."""
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return None


def new_refresh_token() -> str:
    return secrets.token_urlsafe(32)


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed.encode("utf-8"))
    except (ValueError, AttributeError):
        # пустой или чужой формат хеша
        return False
