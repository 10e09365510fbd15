"""
Permission context routes for UI guards.
"""
from typing import Annotated
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core.database.engine import get_db
from entitlements.features.catalog.catalog import load_catalog
from entitlements.features.permissions.checker import PermissionChecker
from entitlements.features.permissions.context import PermissionContext
from entitlements.features.permissions.dependencies import get_permission_context
from entitlements.features.permissions.schemas import (
    PermissionContextResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
)


router = APIRouter(tags=["permissions"])


@router.get("/{organization_id}/permissions/me", response_model=PermissionContextResponse)
async def get_my_permissions(
    context: Annotated[PermissionContext, Depends(get_permission_context)]
):
    """Resolved permission context of the current user."""
    return context.to_dict()


@router.post("/{organization_id}/permissions/check", response_model=PermissionCheckResponse)
async def check_permissions(
    check: PermissionCheckRequest,
    context: Annotated[PermissionContext, Depends(get_permission_context)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Evaluate permissions and module access against the current user's context.

    Unknown permission or module codes are rejected with 404.
    """
    catalog = await load_catalog(db)
    for code in check.permissions:
        catalog.permission_code(code)
    for code in check.modules:
        catalog.module_code(code)

    checker = PermissionChecker(context)

    permissions = {code: checker.can(code) for code in check.permissions}
    modules = {code: checker.can_access_module(code) for code in check.modules}

    if check.mode == "any" and check.permissions:
        permissions_ok = checker.can_any(check.permissions)
    else:
        permissions_ok = checker.can_all(check.permissions)

    return PermissionCheckResponse(
        allowed=permissions_ok and all(modules.values()),
        permissions=permissions,
        modules=modules,
        is_super_admin=checker.is_super_admin(),
    )
