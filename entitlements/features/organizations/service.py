"""
Subscription state changes consumed from the billing system.

The engine never computes subscriptions; it records the latest state it is
told about and re-resolves entitlements from it on every request.
"""
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core import config
from entitlements.core.errors import store_errors
from entitlements.features.catalog.catalog import get_plan
from entitlements.features.organizations.models import Subscription, SubscriptionStatus
from entitlements.features.organizations.store import get_organization, get_current_subscription
from entitlements.utils import get_logger, utcnow


log = get_logger(__name__)


async def apply_subscription_event(
    db: AsyncSession,
    organization_id: str,
    plan_code: str,
    status: SubscriptionStatus,
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
    trial_end: Optional[datetime] = None,
) -> Subscription:
    """
    Upsert the organization's current subscription.

    A downgrade never touches the activation ledger: modules already active
    stay active and only new activations are blocked.

    Raises:
        NotFoundError: unknown organization or plan
    """
    await get_organization(db, organization_id)
    await get_plan(db, plan_code)

    subscription = await get_current_subscription(db, organization_id)
    if subscription is None:
        subscription = Subscription(organization_id=organization_id)
        db.add(subscription)
        previous_plan = None
    else:
        previous_plan = subscription.plan_code

    subscription.plan_code = plan_code
    subscription.status = status
    subscription.period_start = period_start
    subscription.period_end = period_end
    subscription.trial_end = trial_end

    async with store_errors("save subscription"):
        await db.commit()
        await db.refresh(subscription)

    log.info(
        "Subscription for org %s: plan %s -> %s (%s)",
        organization_id, previous_plan, plan_code, status.value
    )
    return subscription


async def ensure_default_subscription(db: AsyncSession, organization_id: str) -> tuple[Subscription, bool]:
    """
    Give an organization without a subscription the default plan.

    Returns:
        (subscription, created)
    """
    existing = await get_current_subscription(db, organization_id)
    if existing is not None:
        return existing, False

    subscription = await apply_subscription_event(
        db,
        organization_id,
        config.DEFAULT_PLAN_CODE,
        SubscriptionStatus.ACTIVE,
        period_start=utcnow(),
    )
    return subscription, True
