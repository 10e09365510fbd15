"""
Resolved, immutable snapshot of a user's rights within one organization.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from entitlements.features.catalog.catalog import ModuleCode, PermissionCode, PlanLimits


@dataclass(frozen=True)
class PermissionContext:
    """
    Built fresh per authorization episode and discarded afterwards.

    permissions maps each granted permission code to its owning module
    (None for global permissions).
    """
    user_id: str
    organization_id: str
    role_id: Optional[str] = None
    role_name: Optional[str] = None
    permissions: Mapping[PermissionCode, Optional[ModuleCode]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    is_super_admin: bool = False
    active_modules: frozenset[ModuleCode] = frozenset()
    plan_limits: Optional[PlanLimits] = None
    # True when the context is the zero-trust fallback of a failed load
    degraded: bool = False

    @classmethod
    def deny(cls, user_id: str, organization_id: str) -> "PermissionContext":
        """Zero trust: no permissions, no modules, not super admin."""
        return cls(user_id=user_id, organization_id=organization_id, degraded=True)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "role_id": self.role_id,
            "role_name": self.role_name,
            "permissions": sorted(self.permissions),
            "is_super_admin": self.is_super_admin,
            "active_modules": sorted(self.active_modules),
            "plan_code": self.plan_limits.code if self.plan_limits else None,
            "degraded": self.degraded,
        }
