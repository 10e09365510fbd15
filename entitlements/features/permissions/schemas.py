"""
Pydantic schemas for permission context and permission checks.
"""
from typing import List, Literal, Optional
from pydantic import BaseModel, Field


class PermissionContextResponse(BaseModel):
    """Resolved rights of the caller within one organization."""
    user_id: str
    organization_id: str
    role_id: Optional[str] = None
    role_name: Optional[str] = None
    permissions: List[str] = []
    is_super_admin: bool
    active_modules: List[str] = []
    plan_code: Optional[str] = None
    degraded: bool = False


class PermissionCheckRequest(BaseModel):
    """
    Evaluate permissions and module access for UI guards.

    mode "all" requires every permission, "any" at least one.
    """
    permissions: List[str] = Field(default_factory=list, description="Permission codes")
    mode: Literal["all", "any"] = "all"
    modules: List[str] = Field(default_factory=list, description="Module codes that must be accessible")


class PermissionCheckResponse(BaseModel):
    allowed: bool
    permissions: dict[str, bool] = {}
    modules: dict[str, bool] = {}
    is_super_admin: bool
