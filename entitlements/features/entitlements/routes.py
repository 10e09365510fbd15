"""
Entitlement audit and repair routes (platform admin).
"""
from typing import Annotated
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core.database.engine import get_db
from entitlements.features.users.models import User
from entitlements.features.users.dependencies import get_current_admin_user
from entitlements.features.entitlements.audit import audit_organizations, repair_organization
from entitlements.features.entitlements.schemas import EntitlementAuditResponse
from entitlements.features.modules.routes import result_response
from entitlements.features.modules.schemas import ActivationResponse


router = APIRouter(tags=["entitlements"])


@router.get("/audit", response_model=EntitlementAuditResponse)
async def audit(
    _admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Report organizations with missing subscriptions, excess modules or missing core modules."""
    report = await audit_organizations(db)
    return EntitlementAuditResponse.model_validate(report)


@router.post("/repair/{organization_id}", response_model=ActivationResponse)
async def repair(
    organization_id: str,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Give the organization a default subscription and its core modules."""
    admin_id = admin.id
    result = await repair_organization(db, organization_id, admin_id)
    return result_response(result)
