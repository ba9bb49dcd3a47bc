from __future__ import annotations

from fastapi import APIRouter, Depends

from authz_engine.engine.context import PermissionCache
from authz_engine.engine.resolver import is_admin
from authz_engine.schemas.permissions import PermissionsOut
from authz_engine.security.dependencies import get_permission_cache

router = APIRouter(prefix="/user", tags=["permissions"])


@router.get("/permissions", response_model=PermissionsOut)
def get_my_permissions(cache: PermissionCache = Depends(get_permission_cache)) -> dict[str, object]:
    return {**cache.to_dict(), "is_admin": is_admin(cache)}
