"""
Module activation engine: the only writer of the activation ledger.

activate/deactivate validate in a fixed order (first failure wins) and
return an ActivationResult; business-rule failures never escape as
exceptions. TransientError does, so callers can retry.

Check-then-write runs under a per-organization serialization point:
an in-process asyncio lock plus a row lock on the organization
(SELECT ... FOR UPDATE) held until commit, so concurrent activations
can never overshoot the plan limit. The (organization, module) unique
constraint backs up idempotent activation of the same module.
"""
import asyncio
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core.errors import (
    AuthenticationError,
    AuthorizationError,
    DependencyError,
    EntitlementError,
    ErrorKind,
    PlanLimitExceeded,
    ProtectedModuleError,
    TransientError,
    store_errors,
)
from entitlements.features.catalog.catalog import Catalog, ModuleSpec, load_catalog
from entitlements.features.entitlements.resolver import resolve
from entitlements.features.organizations.models import ModuleActivation, ActivationStatus
from entitlements.features.organizations.store import (
    get_organization,
    get_activation,
    list_active_module_codes,
)
from entitlements.features.permissions.builder import build_context
from entitlements.features.permissions.checker import can
from entitlements.utils import get_logger, utcnow


log = get_logger(__name__)

MODULES_MANAGE_PERMISSION = "modules.manage"


@dataclass
class ActivationResult:
    success: bool
    message: str
    kind: Optional[ErrorKind] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **data: Any) -> "ActivationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def failure(cls, error: EntitlementError) -> "ActivationResult":
        return cls(success=False, message=error.message, kind=error.kind, data=dict(error.details))

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "kind": self.kind.value if self.kind else None,
            "data": self.data or None,
        }


class OrganizationLocks:
    """asyncio locks keyed by organization id, dropped once unused."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def hold(self, organization_id: str):
        lock = self._locks.get(organization_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[organization_id] = lock
        async with lock:
            yield


organization_locks = OrganizationLocks()


@asynccontextmanager
async def _ledger_transaction(db: AsyncSession, organization_id: str):
    """
    Serialize ledger writers of one organization for the enclosed block.

    The transaction commits on normal exit and on business-rule failures
    (nothing was written); anything else, cancellation included, rolls back.
    """
    async with organization_locks.hold(organization_id):
        try:
            await get_organization(db, organization_id, for_update=True)
            yield
        except EntitlementError:
            await db.commit()
            raise
        except BaseException:
            await db.rollback()
            raise
        else:
            async with store_errors("commit module activation"):
                await db.commit()


async def _authorize(db: AsyncSession, actor_id: str, organization_id: str) -> None:
    try:
        context = await build_context(db, actor_id, organization_id)
    except AuthenticationError:
        raise AuthorizationError(
            f"User '{actor_id}' is not a member of this organization",
            {"required_permission": MODULES_MANAGE_PERMISSION},
        )
    if context.degraded:
        raise TransientError("Could not resolve the actor's permissions")
    if not can(context, MODULES_MANAGE_PERMISSION):
        raise AuthorizationError(
            f"Permission '{MODULES_MANAGE_PERMISSION}' is required to manage modules",
            {"required_permission": MODULES_MANAGE_PERMISSION},
        )


def _module_data(module: ModuleSpec) -> dict:
    return {"module": {"code": module.code, "name": module.name, "is_core": module.is_core}}


async def _write_active(db: AsyncSession, organization_id: str, module: ModuleSpec, actor_id: Optional[str]) -> None:
    row = await get_activation(db, organization_id, module.code)
    now = utcnow()
    if row is None:
        db.add(ModuleActivation(
            organization_id=organization_id,
            module_code=module.code,
            status=ActivationStatus.ACTIVE,
            activated_at=now,
            activated_by_id=actor_id,
        ))
    else:
        row.status = ActivationStatus.ACTIVE
        row.activated_at = now
        row.activated_by_id = actor_id
        row.deactivated_at = None
        row.deactivated_by_id = None
    async with store_errors("write module activation"):
        await db.flush()


async def _activate_locked(
    db: AsyncSession,
    organization_id: str,
    module: ModuleSpec,
    actor_id: Optional[str],
    catalog: Catalog,
) -> ActivationResult:
    async with _ledger_transaction(db, organization_id):
        entitlement = await resolve(db, organization_id, catalog)

        if module.code in entitlement.active_modules:
            return ActivationResult.ok(f"Module {module.name} is already active", **_module_data(module))

        missing = sorted(module.required_module_codes - entitlement.active_modules)
        if missing:
            names = ", ".join(catalog.modules[c].name for c in missing)
            raise DependencyError(
                f"Module {module.name} requires {names} to be active first",
                {"module_code": module.code, "missing_modules": missing},
            )

        if not module.is_core and not entitlement.can_activate_more:
            raise PlanLimitExceeded(
                f"{entitlement.used_slots}/{entitlement.plan.max_modules} modules used on "
                f"{entitlement.plan.name} plan. Upgrade your plan to activate {module.name}.",
                {
                    "plan_code": entitlement.plan.code,
                    "used": entitlement.used_slots,
                    "limit": entitlement.plan.max_modules,
                },
            )

        await _write_active(db, organization_id, module, actor_id)

    log.info("Activated module %s for org %s by %s", module.code, organization_id, actor_id)
    return ActivationResult.ok(f"Module {module.name} activated", **_module_data(module))


async def activate(db: AsyncSession, organization_id: str, module_code: str, actor_id: str) -> ActivationResult:
    """
    Activate a module for an organization on behalf of actor_id.

    Validation order: organization and module exist, actor holds
    modules.manage, module not already active (idempotent success),
    requirements active, a plan slot is free (core modules need none).
    Super admins pass the permission gate but never the plan limit.

    Raises:
        TransientError: store unavailable
    """
    try:
        await get_organization(db, organization_id)
        catalog = await load_catalog(db)
        module = catalog.module(module_code)
        await _authorize(db, actor_id, organization_id)
        return await _activate_locked(db, organization_id, module, actor_id, catalog)
    except IntegrityError:
        # Another writer inserted the same (organization, module) row first
        await db.rollback()
        log.info("Concurrent activation of %s for org %s resolved as already active", module_code, organization_id)
        return ActivationResult.ok(f"Module {module_code} is already active", module={"code": module_code})
    except EntitlementError as e:
        log.info("Activation of %s for org %s blocked: %s", module_code, organization_id, e.message)
        return ActivationResult.failure(e)


async def deactivate(db: AsyncSession, organization_id: str, module_code: str, actor_id: str) -> ActivationResult:
    """
    Deactivate a module for an organization on behalf of actor_id.

    Validation order: organization and module exist, module currently
    active (else no-op success), actor holds modules.manage, module is not
    core, no active module requires it. Dependents block rather than cascade.

    Raises:
        TransientError: store unavailable
    """
    try:
        await get_organization(db, organization_id)
        catalog = await load_catalog(db)
        module = catalog.module(module_code)

        if module.code not in await list_active_module_codes(db, organization_id):
            return ActivationResult.ok(f"Module {module.name} is already inactive", **_module_data(module))

        await _authorize(db, actor_id, organization_id)

        if module.is_core:
            raise ProtectedModuleError(
                f"Core module {module.name} cannot be deactivated",
                {"module_code": module.code},
            )

        async with _ledger_transaction(db, organization_id):
            active = await list_active_module_codes(db, organization_id)
            if module.code not in active:
                return ActivationResult.ok(f"Module {module.name} is already inactive", **_module_data(module))

            dependents = catalog.dependents_of(module.code, active)
            if dependents:
                names = ", ".join(catalog.modules[c].name for c in dependents)
                raise DependencyError(
                    f"Module {module.name} cannot be deactivated while {names} depend on it",
                    {"module_code": module.code, "dependent_modules": dependents},
                )

            row = await get_activation(db, organization_id, module.code)
            row.status = ActivationStatus.INACTIVE
            row.deactivated_at = utcnow()
            row.deactivated_by_id = actor_id
            async with store_errors("write module deactivation"):
                await db.flush()

        log.info("Deactivated module %s for org %s by %s", module.code, organization_id, actor_id)
        return ActivationResult.ok(f"Module {module.name} deactivated", **_module_data(module))
    except EntitlementError as e:
        log.info("Deactivation of %s for org %s blocked: %s", module_code, organization_id, e.message)
        return ActivationResult.failure(e)


async def ensure_core_modules(
    db: AsyncSession,
    organization_id: str,
    actor_id: Optional[str] = None,
) -> ActivationResult:
    """
    Activate every core module the organization does not have yet.

    Provisioning entry point: no permission gate, callers guard it.
    """
    try:
        await get_organization(db, organization_id)
        catalog = await load_catalog(db)
        active = await list_active_module_codes(db, organization_id)
        missing = [c for c in catalog.activation_order(catalog.core_module_codes) if c not in active]

        activated = []
        for code in missing:
            result = await _activate_locked(db, organization_id, catalog.modules[code], actor_id, catalog)
            if not result.success:
                return result
            activated.append(code)
    except EntitlementError as e:
        return ActivationResult.failure(e)

    if activated:
        log.info("Activated core modules %s for org %s", activated, organization_id)
    return ActivationResult.ok(
        f"{len(activated)} core module(s) activated",
        activated_modules=activated,
    )
