"""
Read access to tenant state.

Every function takes the organization id explicitly; there is no ambient
"current organization".
"""
from typing import Optional
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core.errors import NotFoundError, store_errors
from entitlements.features.organizations.models import (
    Organization,
    Subscription,
    ModuleActivation,
    ActivationStatus,
    OrganizationMembership,
)


async def get_organization(db: AsyncSession, organization_id: str, for_update: bool = False) -> Organization:
    """
    Load an organization or raise NotFoundError.

    for_update takes a row lock (PostgreSQL) that serializes writers of the
    organization's activation ledger across processes.
    """
    stmt = select(Organization).where(Organization.id == organization_id)
    if for_update:
        stmt = stmt.with_for_update()
    async with store_errors("load organization"):
        result = await db.execute(stmt)
    organization = result.scalar_one_or_none()
    if organization is None:
        raise NotFoundError("organization", organization_id)
    return organization


async def get_current_subscription(db: AsyncSession, organization_id: str) -> Optional[Subscription]:
    async with store_errors("load subscription"):
        result = await db.execute(
            select(Subscription).where(Subscription.organization_id == organization_id)
            .execution_options(populate_existing=True)
        )
    return result.scalar_one_or_none()


async def get_membership(
    db: AsyncSession,
    user_id: str,
    organization_id: str
) -> Optional[OrganizationMembership]:
    """Active membership for (user, organization), or None."""
    async with store_errors("load membership"):
        result = await db.execute(
            select(OrganizationMembership).where(
                and_(
                    OrganizationMembership.user_id == user_id,
                    OrganizationMembership.organization_id == organization_id,
                    OrganizationMembership.is_active == True,  # noqa: E712
                )
            ).execution_options(populate_existing=True)
        )
    return result.scalar_one_or_none()


async def get_activation(
    db: AsyncSession,
    organization_id: str,
    module_code: str
) -> Optional[ModuleActivation]:
    async with store_errors("load module activation"):
        result = await db.execute(
            select(ModuleActivation).where(
                and_(
                    ModuleActivation.organization_id == organization_id,
                    ModuleActivation.module_code == module_code,
                )
            ).execution_options(populate_existing=True)
        )
    return result.scalar_one_or_none()


async def list_active_module_codes(db: AsyncSession, organization_id: str) -> set[str]:
    async with store_errors("load active modules"):
        result = await db.execute(
            select(ModuleActivation.module_code).where(
                and_(
                    ModuleActivation.organization_id == organization_id,
                    ModuleActivation.status == ActivationStatus.ACTIVE,
                )
            )
        )
    return set(result.scalars().all())
