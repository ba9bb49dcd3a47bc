"""
FastAPI dependencies for permission enforcement.

The caller's ``PermissionCache`` is resolved once per request and kept on
``request.state.permission_cache``; every ``require_*`` dependency of the
same request reuses it.

Denials surface as a plain 403 "Access denied". The resolver's reason is
logged, never returned, so responses do not reveal which rule applied.
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Depends, HTTPException, Request, status

from authz_engine.engine.context import PermissionCache, PermissionCheckContext, PermissionCheckResult
from authz_engine.engine.grammar import parse_permission
from authz_engine.engine.manager import PermissionCacheManager
from authz_engine.engine.resolver import check_permission, has_role, is_admin
from authz_engine.engine.sensitivity import SensitivityRegistry
from authz_engine.security.auth import extract_user_id
from authz_engine.security.context import TargetContextGetter

logger = logging.getLogger(__name__)

ACCESS_DENIED = "Access denied"
AUTHENTICATION_REQUIRED = "Authentication required"


def get_permission_manager(request: Request) -> PermissionCacheManager:
    manager = getattr(request.app.state, "permission_manager", None)
    if manager is None:
        raise RuntimeError("Permission manager not configured. Did app startup run?")
    return manager


def get_sensitivity_registry(request: Request) -> SensitivityRegistry:
    registry = getattr(request.app.state, "sensitivity_registry", None)
    if registry is None:
        raise RuntimeError("Sensitivity registry not configured. Did app startup run?")
    return registry


def get_current_user_id(request: Request) -> str:
    user_id = extract_user_id(request)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=AUTHENTICATION_REQUIRED)
    return user_id


def get_permission_cache(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    manager: PermissionCacheManager = Depends(get_permission_manager),
) -> PermissionCache:
    cache = getattr(request.state, "permission_cache", None)
    if isinstance(cache, PermissionCache) and cache.user_id == user_id:
        return cache
    cache = manager.get_or_load(user_id)
    request.state.permission_cache = cache
    return cache


def _deny(request: Request, cache: PermissionCache, what: str, reason: str | None) -> HTTPException:
    logger.info(
        "access denied user=%s path=%s method=%s required=%s reason=%s",
        cache.user_id,
        request.url.path,
        request.method,
        what,
        reason,
    )
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED)


def _context(request: Request, get_context: TargetContextGetter | None) -> PermissionCheckContext | None:
    return get_context(request) if get_context is not None else None


def require_permission(code: str, get_context: TargetContextGetter | None = None) -> Callable[..., PermissionCache]:
    """
    Dependency factory: 403 unless the caller holds ``code`` for the request's target.

    The code is parsed here, so a malformed code fails when the route is declared.
    """

    parsed = parse_permission(code)

    def dependency(request: Request, cache: PermissionCache = Depends(get_permission_cache)) -> PermissionCache:
        result = check_permission(cache, parsed, _context(request, get_context))
        if not result.allowed:
            raise _deny(request, cache, parsed.code, result.reason)
        return cache

    return dependency


def require_any_permission(
    *codes: str, get_context: TargetContextGetter | None = None
) -> Callable[..., PermissionCache]:
    parsed = [parse_permission(c) for c in codes]

    def dependency(request: Request, cache: PermissionCache = Depends(get_permission_cache)) -> PermissionCache:
        context = _context(request, get_context)
        if not any(check_permission(cache, p, context).allowed for p in parsed):
            raise _deny(request, cache, f"any of {list(codes)}", None)
        return cache

    return dependency


def require_all_permissions(
    *codes: str, get_context: TargetContextGetter | None = None
) -> Callable[..., PermissionCache]:
    parsed = [parse_permission(c) for c in codes]

    def dependency(request: Request, cache: PermissionCache = Depends(get_permission_cache)) -> PermissionCache:
        context = _context(request, get_context)
        for p in parsed:
            result = check_permission(cache, p, context)
            if not result.allowed:
                raise _deny(request, cache, p.code, result.reason)
        return cache

    return dependency


def require_role(*role_codes: str) -> Callable[..., PermissionCache]:
    def dependency(request: Request, cache: PermissionCache = Depends(get_permission_cache)) -> PermissionCache:
        if not any(has_role(cache, r) for r in role_codes):
            raise _deny(request, cache, f"role in {list(role_codes)}", None)
        return cache

    return dependency


def require_admin() -> Callable[..., PermissionCache]:
    def dependency(request: Request, cache: PermissionCache = Depends(get_permission_cache)) -> PermissionCache:
        if not is_admin(cache):
            raise _deny(request, cache, "admin", None)
        return cache

    return dependency


def check_permission_from_request(
    request: Request,
    code: str,
    context: PermissionCheckContext | None = None,
) -> PermissionCheckResult:
    """In-handler check against the cache a ``require_*`` dependency already resolved."""
    cache = getattr(request.state, "permission_cache", None)
    if not isinstance(cache, PermissionCache):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=AUTHENTICATION_REQUIRED)
    return check_permission(cache, code, context)
