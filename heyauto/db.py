from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from .config import settings

# ---------- Declarative Base ----------
class Base(DeclarativeBase):
    pass

# ---------- Engine / Session ----------
# Нужна только локальному провайдеру; supabase-бэкенд в БД сам не ходит
DATABASE_URL = settings.DATABASE_URL


def make_engine(url: str):
    # Для sqlite важно указать check_same_thread=False для многопоточного доступа
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, pool_pre_ping=True, future=True)
    return create_engine(url, pool_pre_ping=True, future=True)


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


def init_db(bind=None) -> None:
    # Импорт моделей, чтобы create_all увидел все таблицы
    from .models import account, driver, location, storage  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
