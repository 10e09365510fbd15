"""
Permission context construction for one (user, organization) pair.
"""
import asyncio
from types import MappingProxyType
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core import config
from entitlements.core.errors import AuthenticationError, CatalogError, NotFoundError, TransientError
from entitlements.features.catalog.catalog import ModuleCode, PermissionCode, get_role, load_catalog
from entitlements.features.entitlements.resolver import resolve
from entitlements.features.organizations.store import get_membership
from entitlements.features.permissions.context import PermissionContext
from entitlements.utils import get_logger


log = get_logger(__name__)


async def _load_context(db: AsyncSession, user_id: str, organization_id: str) -> PermissionContext:
    membership = await get_membership(db, user_id, organization_id)
    if membership is None:
        raise AuthenticationError(
            f"User '{user_id}' is not a member of organization '{organization_id}'",
            {"user_id": user_id, "organization_id": organization_id},
        )

    role = await get_role(db, membership.role_id)
    if role.organization_id not in (None, organization_id):
        # another tenant's role grants nothing here
        raise NotFoundError("role", role.id)
    catalog = await load_catalog(db)
    entitlement = await resolve(db, organization_id, catalog)

    permissions = {
        PermissionCode(p.code): ModuleCode(p.module_code) if p.module_code else None
        for p in role.permissions
    }

    return PermissionContext(
        user_id=user_id,
        organization_id=organization_id,
        role_id=role.id,
        role_name=role.name,
        permissions=MappingProxyType(permissions),
        is_super_admin=membership.is_super_admin or role.is_super_admin,
        active_modules=entitlement.active_modules,
        plan_limits=entitlement.plan,
    )


async def build_context(
    db: AsyncSession,
    user_id: str,
    organization_id: str,
    timeout: Optional[float] = None,
) -> PermissionContext:
    """
    Build the permission context of a user within an organization.

    Store timeouts and failures, a dangling or foreign role reference and an invalid
    catalog all yield PermissionContext.deny(): unknown resolves to denied.
    Callers may memoize the result for the lifetime of one request only.

    Raises:
        AuthenticationError: no active membership for (user, organization)
    """
    timeout = config.STORE_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        return await asyncio.wait_for(
            _load_context(db, user_id, organization_id),
            timeout=timeout,
        )
    except AuthenticationError:
        raise
    except asyncio.TimeoutError:
        log.warning(
            "Context for user %s in org %s timed out after %.1fs; denying",
            user_id, organization_id, timeout
        )
    except (TransientError, NotFoundError, CatalogError) as e:
        log.warning("Context for user %s in org %s incomplete (%s); denying", user_id, organization_id, e)
    return PermissionContext.deny(user_id, organization_id)
