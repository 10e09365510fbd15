"""
FastAPI dependencies guarding routes with checker verdicts.

Thin adapters: they translate a denied verdict into a 403 and a context that
could not be resolved into a 503.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core.database.engine import get_db
from entitlements.core.errors import AuthenticationError, NotFoundError
from entitlements.features.catalog.catalog import load_catalog
from entitlements.features.users.models import User
from entitlements.features.users.dependencies import get_current_user
from entitlements.features.permissions.builder import build_context
from entitlements.features.permissions.checker import can, can_access_module
from entitlements.features.permissions.context import PermissionContext
from entitlements.utils import get_logger


log = get_logger(__name__)


async def get_permission_context(
    organization_id: str,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> PermissionContext:
    """
    Permission context of the current user for the organization in the path.

    Raises:
        HTTPException: 403 if the user is not a member of the organization
    """
    try:
        return await build_context(db, user.id, organization_id)
    except AuthenticationError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a member of this organization"
        )


async def get_member_context(
    context: Annotated[PermissionContext, Depends(get_permission_context)]
) -> PermissionContext:
    """
    Permission context that is known to belong to a member.

    A degraded context proves nothing about membership, so it is refused.

    Raises:
        HTTPException: 503 if the context could not be resolved
    """
    if context.degraded:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Permissions could not be resolved, retry later"
        )
    return context


async def _log_unknown_code(db: AsyncSession, kind: str, code: str) -> None:
    catalog = await load_catalog(db)
    try:
        if kind == "permission":
            catalog.permission_code(code)
        else:
            catalog.module_code(code)
    except NotFoundError:
        log.error("Route guard requires unknown %s '%s'; it can never be granted", kind, code)


def require_permission(permission_code: str):
    """
    FastAPI dependency to require a specific permission.

    Usage:
        @router.post("/{organization_id}/reports")
        async def create_report(
            context: PermissionContext = Depends(require_permission("reports.create"))
        ):
            pass
    """
    async def permission_dependency(
        context: Annotated[PermissionContext, Depends(get_permission_context)],
        db: Annotated[AsyncSession, Depends(get_db)]
    ) -> PermissionContext:
        if not can(context, permission_code):
            if not context.degraded:
                await _log_unknown_code(db, "permission", permission_code)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {permission_code}"
            )
        return context

    return permission_dependency


def require_module(module_code: str):
    """
    FastAPI dependency to require that a module is accessible.

    Usage:
        @router.get("/{organization_id}/payroll/runs")
        async def list_runs(context: PermissionContext = Depends(require_module("payroll"))):
            pass
    """
    async def module_dependency(
        context: Annotated[PermissionContext, Depends(get_permission_context)],
        db: Annotated[AsyncSession, Depends(get_db)]
    ) -> PermissionContext:
        if not can_access_module(context, module_code):
            if not context.degraded:
                await _log_unknown_code(db, "module", module_code)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Module {module_code} is not active for this organization"
            )
        return context

    return module_dependency
