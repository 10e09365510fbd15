"""
Authorization queries over a PermissionContext.

No I/O and no failure modes: anything not explicitly granted is denied.
Entitlement gates permission, so a module-scoped permission is only
effective while its module is active for the organization.
"""
from typing import Iterable

from entitlements.features.permissions.context import PermissionContext


def can(context: PermissionContext, permission_code: str) -> bool:
    if context.is_super_admin:
        return True
    if permission_code not in context.permissions:
        return False
    module_code = context.permissions[permission_code]
    return module_code is None or module_code in context.active_modules


def can_all(context: PermissionContext, permission_codes: Iterable[str]) -> bool:
    return all(can(context, code) for code in permission_codes)


def can_any(context: PermissionContext, permission_codes: Iterable[str]) -> bool:
    return any(can(context, code) for code in permission_codes)


def can_access_module(context: PermissionContext, module_code: str) -> bool:
    return context.is_super_admin or module_code in context.active_modules


class PermissionChecker:
    """
    Convenience wrapper binding the query functions to one context.

    Usage:
        checker = PermissionChecker(context)
        if checker.can("reports.view"):
            ...
    """

    def __init__(self, context: PermissionContext):
        self.context = context

    def can(self, permission_code: str) -> bool:
        return can(self.context, permission_code)

    def can_all(self, permission_codes: Iterable[str]) -> bool:
        return can_all(self.context, permission_codes)

    def can_any(self, permission_codes: Iterable[str]) -> bool:
        return can_any(self.context, permission_codes)

    def can_access_module(self, module_code: str) -> bool:
        return can_access_module(self.context, module_code)

    def is_super_admin(self) -> bool:
        return self.context.is_super_admin
