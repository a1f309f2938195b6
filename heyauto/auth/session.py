# heyauto/auth/session.py
from __future__ import annotations

import logging

from ..errors import Unauthorized
from ..provider.base import AuthUser, IdentityProvider, ProviderError
from .cookies import find_auth_cookie, parse_token_cookie

logger = logging.getLogger(__name__)


def resolve_user(provider: IdentityProvider) -> AuthUser:
    """
    Кто делает запрос.

    1) стандартное чтение сессии провайдером;
    2) если пусто — ищем любую cookie с "auth-token" в имени, разбираем её
       как JSON и просим провайдера поднять сессию из пары токенов.

    Всё остальное — Unauthorized. Если провайдер обновил токены, новые cookie
    лежат в provider.cookies_to_set, их переносит на ответ обработчик.
    """
    user = provider.get_user()
    if user:
        return user

    found = find_auth_cookie(provider.request_cookies)
    if not found:
        raise Unauthorized()

    name, value = found
    data = parse_token_cookie(value)
    if not data:
        logger.warning("auth cookie %s has no usable access token", name)
        raise Unauthorized()

    try:
        session = provider.set_session(data["access_token"], data.get("refresh_token"))
    except ProviderError as e:
        logger.warning("session from cookie %s rejected: %s", name, e.message)
        raise Unauthorized()

    logger.info("session restored from cookie %s for user %s", name, session.user.id)
    return session.user
