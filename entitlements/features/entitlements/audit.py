"""
Entitlement audit and repair across organizations.

The audit only reports. Repair restores missing baseline state (default
subscription, core modules) and never deactivates anything: organizations
over their plan after a downgrade stay grandfathered.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core.errors import store_errors
from entitlements.features.catalog.catalog import ModuleCode, get_plan, load_catalog
from entitlements.features.entitlements.resolver import count_used_slots, effective_plan_code
from entitlements.features.modules.activation import ActivationResult, ensure_core_modules
from entitlements.features.organizations.models import (
    Organization,
    Subscription,
    ModuleActivation,
    ActivationStatus,
)
from entitlements.features.organizations.service import ensure_default_subscription
from entitlements.utils import get_logger


log = get_logger(__name__)


@dataclass
class OverLimit:
    organization_id: str
    plan_code: str
    current_modules: int
    max_allowed: int


@dataclass
class EntitlementAudit:
    organizations_without_subscription: list[str] = field(default_factory=list)
    organizations_exceeding_limits: list[OverLimit] = field(default_factory=list)
    organizations_missing_core_modules: dict[str, list[str]] = field(default_factory=dict)

    @property
    def is_clean(self) -> bool:
        return not (
            self.organizations_without_subscription
            or self.organizations_exceeding_limits
            or self.organizations_missing_core_modules
        )


async def audit_organizations(db: AsyncSession) -> EntitlementAudit:
    catalog = await load_catalog(db)

    async with store_errors("audit organizations"):
        organizations = (await db.execute(select(Organization.id).order_by(Organization.id))).scalars().all()
        subscriptions = {
            s.organization_id: s for s in (await db.execute(select(Subscription))).scalars().all()
        }
        rows = (await db.execute(
            select(ModuleActivation.organization_id, ModuleActivation.module_code)
            .where(ModuleActivation.status == ActivationStatus.ACTIVE)
        )).all()

    active_by_org: dict[str, set[ModuleCode]] = defaultdict(set)
    for organization_id, module_code in rows:
        active_by_org[organization_id].add(ModuleCode(module_code))

    limits: dict[str, int] = {}
    report = EntitlementAudit()
    for organization_id in organizations:
        subscription = subscriptions.get(organization_id)
        if subscription is None:
            report.organizations_without_subscription.append(organization_id)

        plan_code, _ = effective_plan_code(subscription)
        if plan_code not in limits:
            limits[plan_code] = (await get_plan(db, plan_code)).max_modules

        active = frozenset(active_by_org.get(organization_id, set()))
        used = count_used_slots(active, catalog)
        if used > limits[plan_code]:
            report.organizations_exceeding_limits.append(
                OverLimit(organization_id, plan_code, used, limits[plan_code])
            )

        missing_core = sorted(catalog.core_module_codes - active)
        if missing_core:
            report.organizations_missing_core_modules[organization_id] = missing_core

    log.info(
        "Entitlement audit: %d without subscription, %d over limit, %d missing core modules",
        len(report.organizations_without_subscription),
        len(report.organizations_exceeding_limits),
        len(report.organizations_missing_core_modules),
    )
    return report


async def repair_organization(db: AsyncSession, organization_id: str, actor_id: str | None = None) -> ActivationResult:
    """
    Ensure the organization has a subscription and all core modules.

    Raises:
        NotFoundError: unknown organization or missing default plan
    """
    _, created = await ensure_default_subscription(db, organization_id)
    result = await ensure_core_modules(db, organization_id, actor_id)
    if not result.success:
        return result

    activated = result.data.get("activated_modules", [])
    return ActivationResult.ok(
        "Organization entitlements repaired",
        subscription_created=created,
        activated_modules=activated,
    )
