from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..errors import BadRequest, Conflict, Internal
from ..provider.base import IdentityProvider, ProviderError

logger = logging.getLogger(__name__)


def list_districts(provider: IdentityProvider, state: Optional[str]) -> list[str]:
    """Районы штата без повторов, по алфавиту."""
    if not state:
        raise BadRequest("State is required")
    try:
        rows = provider.select("locations", columns=["district"], filters={"state": state}, order="district")
    except ProviderError as e:
        logger.error("districts for %s: %s", state, e.message)
        raise Internal("Failed to fetch districts")

    out: list[str] = []
    for r in rows:
        d = r.get("district")
        if d and d not in out:
            out.append(d)
    return out


def list_sub_locations(provider: IdentityProvider, state: Optional[str], district: str) -> list[str]:
    if not state:
        raise BadRequest("State is required")
    try:
        rows = provider.select(
            "locations",
            columns=["sub_location"],
            filters={"state": state, "district": district},
            order="sub_location",
        )
    except ProviderError as e:
        logger.error("sub-locations for %s/%s: %s", state, district, e.message)
        raise Internal("Failed to fetch sub-locations")
    return [r["sub_location"] for r in rows if r.get("sub_location")]


def add_location(provider: IdentityProvider, payload: Dict[str, Any]) -> Dict[str, Any]:
    state = payload.get("state")
    district = payload.get("district")
    sub_location = payload.get("sub_location")
    if not (state and district and sub_location):
        raise BadRequest("State, district, and sub-location are required")
    if not all(isinstance(v, str) for v in (state, district, sub_location)):
        raise BadRequest("State, district, and sub-location must be strings")

    state, district, sub_location = state.strip(), district.strip(), sub_location.strip()
    if not (state and district and sub_location):
        raise BadRequest("State, district, and sub-location cannot be empty")

    try:
        location = provider.insert("locations", {
            "state": state,
            "district": district,
            "sub_location": sub_location,
        })
    except ProviderError as e:
        if e.is_unique_violation:
            raise Conflict("This location already exists")
        logger.error("creating location %s/%s/%s: %s", state, district, sub_location, e.message)
        raise Internal("Failed to create location")

    logger.info("location added: %s / %s / %s", state, district, sub_location)
    return location
