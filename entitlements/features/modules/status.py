"""
Module status view of one organization.
"""
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.features.catalog.catalog import load_catalog
from entitlements.features.entitlements.resolver import resolve


async def get_module_status(db: AsyncSession, organization_id: str) -> dict:
    """
    Active modules, plan limits and capacity of an organization.

    Raises:
        NotFoundError: unknown organization
    """
    catalog = await load_catalog(db)
    entitlement = await resolve(db, organization_id, catalog)

    available = sorted(
        (m for c, m in catalog.modules.items() if c not in entitlement.active_modules),
        key=lambda m: (m.rank, m.code),
    )

    return {
        "organization_id": organization_id,
        "active_modules": sorted(entitlement.active_modules),
        "plan": {
            "code": entitlement.plan.code,
            "name": entitlement.plan.name,
            "max_modules": entitlement.plan.max_modules,
            "max_branches": entitlement.plan.max_branches,
        },
        "plan_source": entitlement.plan_source,
        "used": entitlement.used_slots,
        "remaining": entitlement.remaining_slots,
        "active_modules_count": len(entitlement.active_modules),
        "paid_modules_count": len(entitlement.paid_modules),
        "can_activate_more": entitlement.can_activate_more,
        "over_limit": entitlement.over_limit,
        "available_modules": [
            {
                "code": m.code,
                "name": m.name,
                "category": m.category,
                "is_core": m.is_core,
                "required_modules": sorted(m.required_module_codes),
            }
            for m in available
        ],
    }
