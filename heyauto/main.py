# heyauto/main.py
import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .db import SessionLocal, init_db
from .errors import AppError
from .seed import seed_locations

from .routers import (
    drivers as drivers_router,
    locations as locations_router,
    pages as pages_router,
    storage as storage_router,
)

logging.basicConfig(
    level=(settings.LOG_LEVEL or "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("heyauto")

app = FastAPI(title="HeyAuto")

# --- CORS ---
allowed_origins = (
    [o.strip() for o in settings.ALLOWED_ORIGINS.split(",")]
    if settings.ALLOWED_ORIGINS
    else ["*"]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Статика ---
STATIC_DIR = Path(__file__).resolve().parent / "static"
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

# --- Подключение роутеров ---
app.include_router(drivers_router.router)      # /api/drivers/...
app.include_router(locations_router.router)    # /api/locations
app.include_router(storage_router.router)      # файлы локального провайдера
app.include_router(pages_router.router)        # /, /driver/auth, /driver/dashboard


# --- Ошибки: всегда {"error": "..."} ---
def _error_response(request: Request, message: str, status_code: int, headers=None) -> JSONResponse:
    resp = JSONResponse({"error": message}, status_code=status_code, headers=headers)
    # сессию могли обновить до ошибки: старый refresh token уже погашен
    provider = getattr(request.state, "provider", None)
    if provider is not None:
        provider.apply_cookies(resp)
    return resp


@app.exception_handler(AppError)
def on_app_error(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s: %s", request.method, request.url.path, exc.message)
    return _error_response(request, exc.message, exc.status_code)


@app.exception_handler(RequestValidationError)
def on_validation_error(request: Request, exc: RequestValidationError):
    return _error_response(request, "Invalid request body", 400)


@app.exception_handler(StarletteHTTPException)
def on_http_error(request: Request, exc: StarletteHTTPException):
    return _error_response(request, str(exc.detail), exc.status_code, headers=exc.headers)


@app.exception_handler(Exception)
def on_unhandled(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return _error_response(request, "Internal server error", 500)


# --- Инициализация БД ---
@app.on_event("startup")
def on_startup():
    if settings.PROVIDER_BACKEND != "local":
        return
    init_db()
    if settings.SEED_LOCATIONS:
        db = SessionLocal()
        try:
            seed_locations(db, settings.DEFAULT_STATE)
        finally:
            db.close()
