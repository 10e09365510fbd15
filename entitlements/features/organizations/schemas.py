"""
Pydantic schemas for subscription state.
"""
from datetime import datetime
from pydantic import BaseModel, Field

from entitlements.features.organizations.models import SubscriptionStatus


class SubscriptionUpdate(BaseModel):
    """Billing event: the organization's current subscription."""
    plan_code: str = Field(..., min_length=1, max_length=50)
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    period_start: datetime | None = None
    period_end: datetime | None = None
    trial_end: datetime | None = None


class SubscriptionResponse(BaseModel):
    id: str
    organization_id: str
    plan_code: str
    status: SubscriptionStatus
    period_start: datetime | None = None
    period_end: datetime | None = None
    trial_end: datetime | None = None
    updated_at: datetime

    model_config = {"from_attributes": True}
