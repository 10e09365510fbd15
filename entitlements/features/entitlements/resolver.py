"""
Entitlement resolution: which modules an organization may use right now and
how much plan capacity it has left.

Pure read. Re-resolved on every call so subscription changes and ledger
writes are picked up without any push notification.
"""
from dataclasses import dataclass
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core import config
from entitlements.features.catalog.catalog import Catalog, ModuleCode, PlanLimits, get_plan, load_catalog
from entitlements.features.organizations.models import Subscription, SubscriptionStatus
from entitlements.features.organizations.store import (
    get_organization,
    get_current_subscription,
    list_active_module_codes,
)


PLAN_SOURCE_SUBSCRIPTION = "subscription"
PLAN_SOURCE_DEFAULT = "default"


@dataclass(frozen=True)
class Entitlement:
    organization_id: str
    plan: PlanLimits
    plan_source: str
    active_modules: frozenset[ModuleCode]
    core_modules: frozenset[ModuleCode]
    used_slots: int

    @property
    def remaining_slots(self) -> int:
        return max(0, self.plan.max_modules - self.used_slots)

    @property
    def can_activate_more(self) -> bool:
        return self.remaining_slots >= 1

    @property
    def over_limit(self) -> bool:
        """True after a downgrade left more active modules than the plan allows."""
        return self.used_slots > self.plan.max_modules

    @property
    def paid_modules(self) -> frozenset[ModuleCode]:
        return self.active_modules - self.core_modules


def effective_plan_code(subscription: Optional[Subscription]) -> tuple[str, str]:
    """
    Plan code that governs an organization, and where it came from.

    No subscription, or a canceled one, falls back to DEFAULT_PLAN_CODE.
    """
    if subscription is None or subscription.status == SubscriptionStatus.CANCELED:
        return config.DEFAULT_PLAN_CODE, PLAN_SOURCE_DEFAULT
    return subscription.plan_code, PLAN_SOURCE_SUBSCRIPTION


def count_used_slots(active_modules: frozenset[ModuleCode], catalog: Catalog) -> int:
    """Active modules that consume plan slots; core modules are free."""
    return sum(1 for code in active_modules if code not in catalog.core_module_codes)


async def resolve(
    db: AsyncSession,
    organization_id: str,
    catalog: Optional[Catalog] = None,
) -> Entitlement:
    """
    Resolve the entitlement of one organization.

    Raises:
        NotFoundError: organization unknown, or the governing plan is missing
        TransientError: store unavailable
    """
    await get_organization(db, organization_id)

    if catalog is None:
        catalog = await load_catalog(db)

    subscription = await get_current_subscription(db, organization_id)
    plan_code, plan_source = effective_plan_code(subscription)
    plan = await get_plan(db, plan_code)

    active = frozenset(
        ModuleCode(code) for code in await list_active_module_codes(db, organization_id)
    )

    return Entitlement(
        organization_id=organization_id,
        plan=PlanLimits.from_model(plan),
        plan_source=plan_source,
        active_modules=active,
        core_modules=active & catalog.core_module_codes,
        used_slots=count_used_slots(active, catalog),
    )
