# heyauto/routers/drivers.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse, RedirectResponse

from ..auth.session import resolve_user
from ..deps import get_current_user, get_provider
from ..errors import BadRequest
from ..provider.base import AuthUser, IdentityProvider
from ..services import drivers as driver_service
from ..services.drivers import UploadedFile

router = APIRouter(prefix="/api/drivers", tags=["drivers"])


def _json(provider: IdentityProvider, payload: dict, status_code: int = 200) -> JSONResponse:
    # cookie, которые выставил провайдер (вход, обновление сессии), уходят с ответом
    resp = JSONResponse(payload, status_code=status_code)
    provider.apply_cookies(resp)
    return resp


def _file(upload: Optional[UploadFile]) -> Optional[UploadedFile]:
    if upload is None or not upload.filename:
        return None
    return UploadedFile(upload.filename, upload.content_type, upload.file.read())


# ---------- регистрация / вход ----------

@router.post("/register")
def api_register(
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    auto_registration_number: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    license_id_image: Optional[UploadFile] = File(None),
    provider: IdentityProvider = Depends(get_provider),
):
    payload = {
        "name": name,
        "email": email,
        "phone": phone,
        "password": password,
        "address": address,
        "auto_registration_number": auto_registration_number,
    }
    driver = driver_service.register_driver(provider, payload, _file(photo), _file(license_id_image))
    return _json(provider, {"driver": driver, "message": "Registration successful"}, status_code=201)


@router.post("/login")
def api_login(payload: dict, provider: IdentityProvider = Depends(get_provider)):
    driver = driver_service.login_driver(provider, payload)
    return _json(provider, {"driver": driver, "message": "Login successful"})


@router.post("/logout")
def api_logout(provider: IdentityProvider = Depends(get_provider)):
    driver_service.logout(provider)
    return _json(provider, {"message": "Logout successful"})


# ---------- свой профиль ----------

@router.get("/me")
def api_me(
    user: AuthUser = Depends(get_current_user),
    provider: IdentityProvider = Depends(get_provider),
):
    return _json(provider, {"driver": driver_service.get_self(provider, user)})


@router.patch("/status")
def api_status(
    payload: dict,
    user: AuthUser = Depends(get_current_user),
    provider: IdentityProvider = Depends(get_provider),
):
    return _json(provider, {"driver": driver_service.update_status(provider, user, payload)})


@router.patch("/location")
def api_location(
    payload: dict,
    user: AuthUser = Depends(get_current_user),
    provider: IdentityProvider = Depends(get_provider),
):
    return _json(provider, {"driver": driver_service.update_location(provider, user, payload)})


# ---------- публичный список ----------

@router.get("")
def api_list_drivers(
    state: Optional[str] = Query(None),
    district: Optional[str] = Query(None),
    sub_location: Optional[str] = Query(None),
    provider: IdentityProvider = Depends(get_provider),
):
    drivers = driver_service.list_by_location(provider, state, district, sub_location)
    return {"drivers": drivers}


# ---------- права водителя (приватный бакет) ----------

@router.get("/license-image")
def api_license_image(
    path: Optional[str] = Query(None),
    provider: IdentityProvider = Depends(get_provider),
):
    if not path:
        raise BadRequest("Path parameter is required")
    resolve_user(provider)
    url = driver_service.license_image_url(provider, path)
    resp = RedirectResponse(url, status_code=302)
    provider.apply_cookies(resp)
    return resp
