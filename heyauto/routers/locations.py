from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..deps import get_current_user, get_provider
from ..provider.base import AuthUser, IdentityProvider
from ..services import locations as location_service

router = APIRouter(prefix="/api/locations", tags=["locations"])


@router.get("")
def api_locations(
    state: Optional[str] = Query(None),
    district: Optional[str] = Query(None),
    provider: IdentityProvider = Depends(get_provider),
):
    # с district — подлокации района, без него — районы штата
    if district:
        return {"sub_locations": location_service.list_sub_locations(provider, state, district)}
    return {"districts": location_service.list_districts(provider, state)}


@router.post("")
def api_add_location(
    payload: dict,
    user: AuthUser = Depends(get_current_user),
    provider: IdentityProvider = Depends(get_provider),
):
    location = location_service.add_location(provider, payload)
    resp = JSONResponse({"location": location, "message": "Location added successfully"}, status_code=201)
    provider.apply_cookies(resp)
    return resp
