"""
Organization subscription routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core.database.engine import get_db
from entitlements.features.users.models import User
from entitlements.features.users.dependencies import get_current_admin_user
from entitlements.features.organizations.schemas import SubscriptionUpdate, SubscriptionResponse
from entitlements.features.organizations.service import apply_subscription_event


router = APIRouter(tags=["organizations"])


@router.put("/{organization_id}/subscription", response_model=SubscriptionResponse)
async def update_subscription(
    organization_id: str,
    subscription_data: SubscriptionUpdate,
    _admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Record the organization's current subscription (admin only).

    Downgrades keep already active modules; only new activations are blocked.
    """
    return await apply_subscription_event(
        db,
        organization_id,
        subscription_data.plan_code,
        subscription_data.status,
        period_start=subscription_data.period_start,
        period_end=subscription_data.period_end,
        trial_end=subscription_data.trial_end,
    )
