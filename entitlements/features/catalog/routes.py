"""
Module and plan catalog routes.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core.database.engine import get_db
from entitlements.features.users.models import User
from entitlements.features.users.dependencies import get_current_user
from entitlements.features.catalog.catalog import list_modules, list_plans, load_module_requirements
from entitlements.features.catalog.schemas import ModuleResponse, PlanResponse


router = APIRouter(tags=["catalog"])


@router.get("", response_model=List[ModuleResponse])
async def get_modules(
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    is_core: Optional[bool] = Query(None, description="Filter core or paid modules")
):
    """List catalog modules ordered by rank, with the modules each one requires."""
    modules = await list_modules(db, is_core=is_core)
    requirements = await load_module_requirements(db)
    return [
        ModuleResponse.model_validate(m).model_copy(
            update={"required_module_codes": sorted(requirements.get(m.code, ()))}
        )
        for m in modules
    ]


@router.get("/plans", response_model=List[PlanResponse])
async def get_plans(
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List active subscription plans."""
    return await list_plans(db)
