from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..config import settings
from ..errors import BadRequest, Conflict, Internal, NotFound, Unauthorized
from ..provider.base import (
    AuthUser, IdentityProvider, ProviderError,
    DRIVER_PHOTOS_BUCKET, LICENSE_IMAGES_BUCKET,
)

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^\d{10}$")
PUBLIC_COLUMNS = ("id", "name", "phone", "auto_registration_number", "photo_url")
SIGNED_URL_TTL_SEC = 60 * 60

# форматы прав, которые не загружаем при регистрации по телефону
UNSUPPORTED_LICENSE_FORMATS = frozenset({"webp"})


# -------- входные данные --------

@dataclass
class UploadedFile:
    filename: str
    content_type: Optional[str]
    data: bytes

    @property
    def ext(self) -> str:
        name = self.filename or ""
        if "." not in name:
            return "jpg"
        return name.rsplit(".", 1)[-1].lower() or "jpg"

    @property
    def is_empty(self) -> bool:
        return not self.data


@dataclass(frozen=True)
class IdentifierStrategy:
    """
    Чем водитель входит в систему: email или телефон.
    Для телефона аккаунт у провайдера заводится на служебный email.
    """
    kind: str
    account_email: str
    skip_license_formats: frozenset = field(default_factory=frozenset)

    @property
    def conflict_message(self) -> str:
        what = "email" if self.kind == "email" else "phone number"
        return f"An account with this {what} already exists. Please login instead."


def phone_to_email(phone: str) -> str:
    return f"{phone}@{settings.PHONE_EMAIL_DOMAIN}"


def pick_identifier(email: Optional[str], phone: str) -> IdentifierStrategy:
    email = (email or "").strip().lower()
    if email:
        return IdentifierStrategy("email", email)
    return IdentifierStrategy("phone", phone_to_email(phone), UNSUPPORTED_LICENSE_FORMATS)


def _text(payload: Dict[str, Any], key: str) -> str:
    v = payload.get(key)
    return v.strip() if isinstance(v, str) else ""


# -------- регистрация / вход --------

def _upload(provider: IdentityProvider, bucket: str, path: str, f: UploadedFile) -> bool:
    try:
        provider.upload(bucket, path, f.data, f.content_type)
        return True
    except ProviderError as e:
        logger.warning("upload to %s/%s failed: %s", bucket, path, e.message)
        return False


def _is_skipped_format(f: UploadedFile, formats: frozenset) -> bool:
    if f.ext in formats:
        return True
    ctype = (f.content_type or "").lower()
    return any(ctype == f"image/{fmt}" for fmt in formats)


def register_driver(
    provider: IdentityProvider,
    payload: Dict[str, Any],
    photo: Optional[UploadedFile] = None,
    license_image: Optional[UploadedFile] = None,
) -> Dict[str, Any]:
    """
    Аккаунт у провайдера (сразу подтверждён, без письма) -> файлы -> строка drivers.
    Если строку вставить не удалось, аккаунт удаляется (best effort).
    Загруженные файлы при этом остаются.
    """
    name = _text(payload, "name")
    phone = _text(payload, "phone")
    address = _text(payload, "address")
    auto_no = _text(payload, "auto_registration_number")
    password = payload.get("password") if isinstance(payload.get("password"), str) else ""

    if not (name and phone and password and address and auto_no):
        raise BadRequest("All fields are required")
    if not PHONE_RE.match(phone):
        raise BadRequest("Phone number must be exactly 10 digits")

    ident = pick_identifier(payload.get("email") if isinstance(payload.get("email"), str) else None, phone)

    try:
        taken = provider.select_one("drivers", columns=["id"], filters={"phone": phone})
    except ProviderError as e:
        logger.error("phone lookup failed: %s", e.message)
        raise Internal()
    if taken:
        raise Conflict("An account with this phone number already exists. Please login instead.")

    try:
        account = provider.admin_create_user(
            ident.account_email,
            password,
            email_confirm=True,
            user_metadata={"name": name, "phone": phone},
        )
    except ProviderError as e:
        msg = (e.message or "").lower()
        if e.code in ("email_exists", "user_already_exists") or "already registered" in msg or "already exists" in msg:
            raise Conflict(ident.conflict_message)
        raise BadRequest(e.message or "Failed to create user account")

    photo_url = None
    license_path = None

    if photo and not photo.is_empty:
        path = f"{account.id}/photo.{photo.ext}"
        if _upload(provider, DRIVER_PHOTOS_BUCKET, path, photo):
            photo_url = provider.get_public_url(DRIVER_PHOTOS_BUCKET, path)

    if license_image and not license_image.is_empty:
        if _is_skipped_format(license_image, ident.skip_license_formats):
            logger.warning("license image %s skipped: unsupported format", license_image.filename)
        else:
            path = f"{account.id}/license.{license_image.ext}"
            if _upload(provider, LICENSE_IMAGES_BUCKET, path, license_image):
                # приватный бакет: храним путь, а не URL
                license_path = path

    try:
        driver = provider.insert("drivers", {
            "user_id": account.id,
            "name": name,
            "phone": phone,
            "address": address,
            "auto_registration_number": auto_no,
            "photo_url": photo_url,
            "license_id_image_url": license_path,
            "is_active": False,
        })
    except ProviderError as e:
        try:
            provider.admin_delete_user(account.id)
        except ProviderError as cleanup:
            logger.warning("could not delete account %s after failed registration: %s", account.id, cleanup.message)
        if e.is_unique_violation:
            raise Conflict(ident.conflict_message)
        raise BadRequest(e.message)

    logger.info("driver registered: %s (%s)", driver.get("id"), ident.kind)
    return driver


def login_driver(provider: IdentityProvider, payload: Dict[str, Any]) -> Dict[str, Any]:
    email = _text(payload, "email")
    phone = _text(payload, "phone")
    password = payload.get("password") if isinstance(payload.get("password"), str) else ""

    if not (email or phone) or not password:
        raise BadRequest("Email or phone and password are required")
    if not email:
        if not PHONE_RE.match(phone):
            raise BadRequest("Phone number must be exactly 10 digits")
        email = phone_to_email(phone)

    try:
        session = provider.sign_in_with_password(email.lower(), password)
    except ProviderError as e:
        if e.status >= 500:
            logger.error("sign in failed at provider: %s", e.message)
            raise Internal()
        if "Email not confirmed" in e.message:
            raise Unauthorized("Please confirm your email before logging in")
        if "Invalid login credentials" in e.message or e.code == "invalid_credentials":
            raise Unauthorized("Invalid email or password")
        raise Unauthorized(e.message)

    driver = _driver_row(provider, session.user)
    if not driver:
        raise NotFound("Driver profile not found. Please register your auto first.")
    return driver


def logout(provider: IdentityProvider) -> None:
    try:
        provider.sign_out()
    except ProviderError as e:
        logger.error("sign out failed: %s", e.message)
        raise Internal("Failed to logout")


# -------- профиль --------

def _driver_row(provider: IdentityProvider, user: AuthUser) -> Optional[Dict[str, Any]]:
    try:
        return provider.select_one("drivers", filters={"user_id": user.id})
    except ProviderError as e:
        logger.error("driver lookup for %s failed: %s", user.id, e.message)
        raise Internal()


def get_self(provider: IdentityProvider, user: AuthUser) -> Dict[str, Any]:
    driver = _driver_row(provider, user)
    if not driver:
        raise NotFound("Driver profile not found. Please complete your registration.")
    return driver


def _write_own_row(provider: IdentityProvider, user: AuthUser, values: Dict[str, Any]) -> Dict[str, Any]:
    try:
        rows = provider.update("drivers", values, {"user_id": user.id})
    except ProviderError as e:
        raise BadRequest(e.message or "Failed to update driver")
    if not rows:
        raise NotFound("Driver profile not found")
    return rows[0]


def update_status(provider: IdentityProvider, user: AuthUser, payload: Dict[str, Any]) -> Dict[str, Any]:
    is_active = payload.get("is_active")
    # строго bool: "true" или 1 не принимаем
    if not isinstance(is_active, bool):
        raise BadRequest("is_active must be a boolean")

    if not _driver_row(provider, user):
        raise NotFound("Driver profile not found")
    driver = _write_own_row(provider, user, {"is_active": is_active})
    logger.info("driver %s is_active=%s", driver.get("id"), driver.get("is_active"))
    return driver


def update_location(provider: IdentityProvider, user: AuthUser, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Зона работы + (необязательно) видимость одной записью.
    Параллельно с update_status — кто записал последним, тот и прав.
    """
    state = payload.get("state")
    district = payload.get("district")
    sub_location = payload.get("sub_location")
    if not (isinstance(state, str) and state and isinstance(district, str) and district
            and isinstance(sub_location, str) and sub_location):
        raise BadRequest("State, district, and sub-location are required")

    values: Dict[str, Any] = {
        "active_state": state,
        "active_district": district,
        "active_location": sub_location,
    }
    if "is_active" in payload:
        # null тоже не bool
        if not isinstance(payload["is_active"], bool):
            raise BadRequest("is_active must be a boolean")
        values["is_active"] = payload["is_active"]

    return _write_own_row(provider, user, values)


# -------- публичный список --------

def list_by_location(
    provider: IdentityProvider, state: Optional[str], district: Optional[str], sub_location: Optional[str]
) -> list[Dict[str, Any]]:
    if not state or not district or not sub_location:
        raise BadRequest("State, district, and sub-location are required")
    try:
        return provider.select(
            "drivers",
            columns=list(PUBLIC_COLUMNS),
            filters={
                "is_active": True,
                "active_state": state,
                "active_district": district,
                "active_location": sub_location,
            },
            order="name",
        )
    except ProviderError as e:
        logger.error("driver listing failed: %s", e.message)
        raise Internal("Failed to fetch drivers")


# -------- права (приватный бакет) --------

def license_image_url(provider: IdentityProvider, path: str) -> str:
    try:
        return provider.create_signed_url(LICENSE_IMAGES_BUCKET, path, SIGNED_URL_TTL_SEC)
    except ProviderError as e:
        logger.error("signing %s failed: %s", path, e.message)
        raise Internal("Failed to get license image")
