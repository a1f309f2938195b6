# heyauto/routers/storage.py
# Раздача файлов локального провайдера. С supabase файлы отдаёт сам supabase.
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from ..deps import get_provider
from ..provider.base import IdentityProvider, PUBLIC_BUCKETS
from ..provider.local import LocalProvider

router = APIRouter(prefix="/storage/v1/object", tags=["storage"], include_in_schema=False)


def _local(provider: IdentityProvider) -> LocalProvider:
    if not isinstance(provider, LocalProvider):
        raise HTTPException(status_code=404, detail="Not found")
    return provider


def _send(provider: LocalProvider, bucket: str, path: str, cache: str) -> Response:
    obj = provider.download(bucket, path)
    if not obj:
        raise HTTPException(status_code=404, detail="Object not found")
    return Response(
        content=obj.data,
        media_type=obj.content_type or "application/octet-stream",
        headers={"Cache-Control": cache},
    )


@router.get("/public/{bucket}/{path:path}")
def public_object(bucket: str, path: str, provider: IdentityProvider = Depends(get_provider)):
    local = _local(provider)
    if bucket not in PUBLIC_BUCKETS:
        raise HTTPException(status_code=400, detail="Bucket not public")
    return _send(local, bucket, path, "max-age=3600")


@router.get("/sign/{bucket}/{path:path}")
def signed_object(
    bucket: str,
    path: str,
    token: Optional[str] = Query(None),
    provider: IdentityProvider = Depends(get_provider),
):
    local = _local(provider)
    if not token or not local.verify_signed_token(bucket, path, token):
        raise HTTPException(status_code=400, detail="Invalid signature or expired URL")
    return _send(local, bucket, path, "private, no-store")
