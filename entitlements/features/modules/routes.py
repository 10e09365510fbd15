"""
Module status and activation routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core import config
from entitlements.core.database.engine import get_db
from entitlements.core.errors import HTTP_STATUS_BY_KIND
from entitlements.core.limiter import limiter
from entitlements.features.users.models import User
from entitlements.features.users.dependencies import get_current_user
from entitlements.features.permissions.context import PermissionContext
from entitlements.features.permissions.dependencies import get_member_context, require_permission
from entitlements.features.modules.activation import (
    MODULES_MANAGE_PERMISSION,
    ActivationResult,
    activate,
    deactivate,
    ensure_core_modules,
)
from entitlements.features.modules.schemas import ActivationResponse, ModuleStatusResponse
from entitlements.features.modules.status import get_module_status


router = APIRouter(tags=["modules"])


def result_response(result: ActivationResult) -> JSONResponse:
    status_code = status.HTTP_200_OK if result.success else HTTP_STATUS_BY_KIND[result.kind]
    return JSONResponse(status_code=status_code, content=jsonable_encoder(result.to_dict()))


@router.get("/{organization_id}/modules/status", response_model=ModuleStatusResponse)
async def get_organization_module_status(
    organization_id: str,
    _context: Annotated[PermissionContext, Depends(get_member_context)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Active modules, plan limits and remaining slots (members only)."""
    return await get_module_status(db, organization_id)


@router.post(
    "/{organization_id}/modules/{module_code}/activate",
    response_model=ActivationResponse,
    responses={403: {"model": ActivationResponse}, 404: {"model": ActivationResponse}, 409: {"model": ActivationResponse}},
)
@limiter.limit(config.RATE_LIMIT)
async def activate_module(
    request: Request,
    organization_id: str,
    module_code: str,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Activate a module for the organization.

    Requires modules.manage. Activating an active module succeeds without
    changes. Fails with 409 when a required module is inactive or the plan
    has no free slot.
    """
    actor_id = user.id
    result = await activate(db, organization_id, module_code, actor_id)
    return result_response(result)


@router.post(
    "/{organization_id}/modules/{module_code}/deactivate",
    response_model=ActivationResponse,
    responses={403: {"model": ActivationResponse}, 404: {"model": ActivationResponse}, 409: {"model": ActivationResponse}},
)
@limiter.limit(config.RATE_LIMIT)
async def deactivate_module(
    request: Request,
    organization_id: str,
    module_code: str,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Deactivate a module for the organization.

    Requires modules.manage. Core modules and modules other active modules
    depend on cannot be deactivated.
    """
    actor_id = user.id
    result = await deactivate(db, organization_id, module_code, actor_id)
    return result_response(result)


@router.post("/{organization_id}/modules/ensure-core", response_model=ActivationResponse)
async def ensure_organization_core_modules(
    organization_id: str,
    context: Annotated[PermissionContext, Depends(require_permission(MODULES_MANAGE_PERMISSION))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Activate any core module the organization is missing."""
    result = await ensure_core_modules(db, organization_id, context.user_id)
    return result_response(result)
