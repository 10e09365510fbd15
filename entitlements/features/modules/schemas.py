"""
Pydantic schemas for module status and activation results.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class PlanSummary(BaseModel):
    code: str
    name: str
    max_modules: int
    max_branches: int


class AvailableModule(BaseModel):
    code: str
    name: str
    category: Optional[str] = None
    is_core: bool
    required_modules: List[str] = []


class ModuleStatusResponse(BaseModel):
    """Entitlement view of one organization."""
    organization_id: str
    active_modules: List[str]
    plan: PlanSummary
    plan_source: str
    used: int
    remaining: int
    active_modules_count: int
    paid_modules_count: int
    can_activate_more: bool
    over_limit: bool = Field(..., description="Active paid modules exceed the plan after a downgrade")
    available_modules: List[AvailableModule] = []


class ActivationResponse(BaseModel):
    """Outcome of an activate/deactivate request."""
    success: bool
    message: str
    kind: Optional[str] = Field(None, description="Failure kind, null on success")
    data: Optional[Dict[str, Any]] = None
