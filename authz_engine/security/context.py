from __future__ import annotations

from typing import Callable

from fastapi import Request

from authz_engine.engine.context import PermissionCheckContext

TargetContextGetter = Callable[[Request], PermissionCheckContext | None]


def target_from_path(
    user_param: str = "user_id",
    department_param: str | None = None,
) -> TargetContextGetter:
    """
    Build a context getter that reads the target from path parameters.

    Usage:
        @router.get("/users/{user_id}", dependencies=[Depends(require_permission("users.view.basic.department", target_from_path()))])
    """

    def getter(request: Request) -> PermissionCheckContext | None:
        target_user_id = request.path_params.get(user_param)
        target_department_id = request.path_params.get(department_param) if department_param else None
        if target_user_id is None and target_department_id is None:
            return None
        return PermissionCheckContext(
            target_user_id=target_user_id,
            target_department_id=target_department_id,
        )

    return getter
