# heyauto/errors.py
from __future__ import annotations


class AppError(Exception):
    """Ошибка уровня приложения: HTTP-статус + сообщение для пользователя."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequest(AppError):
    status_code = 400
    default_message = "Bad request"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Unauthorized"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Conflict"


class Internal(AppError):
    status_code = 500
    default_message = "Internal server error"
