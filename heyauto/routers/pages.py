# heyauto/routers/pages.py
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from ..auth.session import resolve_user
from ..config import settings
from ..deps import get_provider
from ..errors import AppError, NotFound, Unauthorized
from ..provider.base import IdentityProvider
from ..services import drivers as driver_service
from ..services import locations as location_service

router = APIRouter(tags=["pages"])

# Абсолютный путь к templates/, чтобы не ловить TemplateNotFound
TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def _states() -> list[str]:
    # пока один штат: тот, что в настройках
    return [settings.DEFAULT_STATE]


def _pickers(provider: IdentityProvider, state: str, district: Optional[str]) -> dict:
    districts = location_service.list_districts(provider, state)
    sub_locations = location_service.list_sub_locations(provider, state, district) if district else []
    return {"districts": districts, "sub_locations": sub_locations}


@router.get("/", response_class=HTMLResponse)
def index(
    request: Request,
    state: Optional[str] = Query(None),
    district: Optional[str] = Query(None),
    sub_location: Optional[str] = Query(None),
    provider: IdentityProvider = Depends(get_provider),
):
    """
    Поиск водителей: штат -> район -> подлокация.
    Список рендерится на сервере, когда выбраны все три значения.
    """
    state = state or settings.DEFAULT_STATE
    ctx = {
        "states": _states(),
        "state": state,
        "district": district or "",
        "sub_location": sub_location or "",
        "districts": [],
        "sub_locations": [],
        "drivers": None,
        "error": None,
    }
    try:
        ctx.update(_pickers(provider, state, district))
        if district and sub_location:
            ctx["drivers"] = driver_service.list_by_location(provider, state, district, sub_location)
    except AppError as e:
        ctx["error"] = e.message
    return templates.TemplateResponse(request, "index.html", ctx)


@router.get("/driver/auth", response_class=HTMLResponse)
def driver_auth(request: Request):
    return templates.TemplateResponse(request, "driver_auth.html", {})


@router.get("/driver/dashboard", response_class=HTMLResponse)
def driver_dashboard(request: Request, provider: IdentityProvider = Depends(get_provider)):
    try:
        user = resolve_user(provider)
    except Unauthorized:
        return RedirectResponse("/driver/auth", status_code=303)

    driver = None
    error = None
    try:
        driver = driver_service.get_self(provider, user)
    except NotFound as e:
        error = e.message

    state = (driver or {}).get("active_state") or settings.DEFAULT_STATE
    district = (driver or {}).get("active_district") or ""
    ctx = {
        "driver": driver,
        "error": error,
        "states": _states(),
        "state": state,
        "district": district,
        "sub_location": (driver or {}).get("active_location") or "",
        "districts": [],
        "sub_locations": [],
    }
    try:
        ctx.update(_pickers(provider, state, district))
    except AppError as e:
        ctx["error"] = ctx["error"] or e.message

    resp = templates.TemplateResponse(request, "driver_dashboard.html", ctx)
    provider.apply_cookies(resp)
    return resp
