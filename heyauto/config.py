# heyauto/config.py
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices


class Settings(BaseSettings):
    # Настройки pydantic: читаем .env, не падаем на лишние ключи
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    # Провайдер авторизации/хранилища: "local" (своя БД) или "supabase"
    PROVIDER_BACKEND: str = "local"
    SUPABASE_URL: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"),
    )
    SUPABASE_ANON_KEY: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
    )
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    PROVIDER_TIMEOUT_SEC: float = 10.0

    # База данных локального провайдера
    DATABASE_URL: str = "sqlite:///./heyauto.db"

    # Безопасность и куки
    SECRET_KEY: str = "dev-secret"
    COOKIE_SECURE: bool = False
    COOKIE_SAMESITE: str = "lax"
    COOKIE_MAX_AGE_SEC: int = 60 * 60 * 24 * 7

    # JWT (access token локального провайдера)
    JWT_TTL_SEC: int = 60 * 60
    JWT_ALG: str = "HS256"

    # Адрес, с которого локальный провайдер отдаёт файлы
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # Вход по телефону: телефон превращается в служебный email
    PHONE_EMAIL_DOMAIN: str = "phone.heyauto.in"

    # Справочник локаций
    DEFAULT_STATE: str = "Kerala"
    SEED_LOCATIONS: bool = True

    # CORS
    ALLOWED_ORIGINS: str = "*"

    LOG_LEVEL: str = "INFO"

    @property
    def project_ref(self) -> str:
        """
        Первая метка хоста провайдера: https://abcd.supabase.co -> "abcd".
        Для локального провайдера — "local".
        """
        if self.PROVIDER_BACKEND != "supabase" or not self.SUPABASE_URL:
            return "local"
        host = urlparse(self.SUPABASE_URL).hostname or ""
        return host.split(".")[0] or "local"

    @property
    def auth_cookie_name(self) -> str:
        return f"sb-{self.project_ref}-auth-token"


settings = Settings()
