"""
Pydantic schemas for the entitlement audit.
"""
from typing import Dict, List
from pydantic import BaseModel, Field


class OverLimitResponse(BaseModel):
    organization_id: str
    plan_code: str
    current_modules: int
    max_allowed: int

    model_config = {"from_attributes": True}


class EntitlementAuditResponse(BaseModel):
    """Inconsistencies found across organizations. Nothing is changed."""
    is_clean: bool
    organizations_without_subscription: List[str] = []
    organizations_exceeding_limits: List[OverLimitResponse] = Field(
        default_factory=list,
        description="Grandfathered after a downgrade; reported, never auto-fixed"
    )
    organizations_missing_core_modules: Dict[str, List[str]] = {}

    model_config = {"from_attributes": True}
