"""
Read access to the catalog and its validated in-memory snapshot.

Dependency edges are read straight from the module_dependencies table.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Collection, Iterable, Mapping, NewType, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core.errors import CatalogError, NotFoundError, store_errors
from entitlements.features.catalog.models import Plan, Module, Permission, Role, module_dependencies
from entitlements.utils import get_logger


log = get_logger(__name__)

ModuleCode = NewType("ModuleCode", str)
PermissionCode = NewType("PermissionCode", str)


@dataclass(frozen=True)
class PlanLimits:
    """Immutable view of a Plan row."""
    code: str
    name: str
    max_modules: int
    max_branches: int
    features: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, plan: Plan) -> "PlanLimits":
        return cls(
            code=plan.code,
            name=plan.name,
            max_modules=plan.max_modules,
            max_branches=plan.max_branches,
            features=MappingProxyType(dict(plan.features or {})),
        )


@dataclass(frozen=True)
class ModuleSpec:
    code: ModuleCode
    name: str
    category: Optional[str]
    is_core: bool
    rank: int
    required_module_codes: frozenset[ModuleCode]


@dataclass(frozen=True)
class Catalog:
    """
    Validated snapshot of modules and permissions.

    Invariants checked by load_catalog:
    - every dependency edge points at a known module
    - dependency edges form a DAG
    - every module-scoped permission points at a known module
    """
    modules: Mapping[ModuleCode, ModuleSpec]
    permission_modules: Mapping[PermissionCode, Optional[ModuleCode]]

    def module(self, code: str) -> ModuleSpec:
        module_spec = self.modules.get(ModuleCode(code))
        if module_spec is None:
            raise NotFoundError("module", code)
        return module_spec

    def module_code(self, code: str) -> ModuleCode:
        return self.module(code).code

    def permission_code(self, code: str) -> PermissionCode:
        if code not in self.permission_modules:
            raise NotFoundError("permission", code)
        return PermissionCode(code)

    @property
    def core_module_codes(self) -> frozenset[ModuleCode]:
        return frozenset(c for c, m in self.modules.items() if m.is_core)

    def dependents_of(self, code: ModuleCode, among: Iterable[ModuleCode]) -> list[ModuleCode]:
        """Modules in `among` that list `code` as a direct requirement."""
        return sorted(
            c for c in among
            if c in self.modules and code in self.modules[c].required_module_codes
        )

    def activation_order(self, codes: Iterable[ModuleCode]) -> list[ModuleCode]:
        """Order `codes` so that every module comes after its requirements."""
        wanted = set(codes)
        ordered: list[ModuleCode] = []

        def visit(code: ModuleCode) -> None:
            if code in ordered:
                return
            for required in sorted(self.modules[code].required_module_codes):
                if required in wanted:
                    visit(required)
            ordered.append(code)

        for code in sorted(wanted):
            visit(code)
        return ordered


def _check_acyclic(modules: Mapping[ModuleCode, ModuleSpec]) -> None:
    visiting: set[ModuleCode] = set()
    done: set[ModuleCode] = set()

    def visit(code: ModuleCode, path: list[ModuleCode]) -> None:
        if code in done:
            return
        if code in visiting:
            cycle = " -> ".join(path[path.index(code):] + [code])
            raise CatalogError(f"Module dependency cycle: {cycle}")
        visiting.add(code)
        for required in sorted(modules[code].required_module_codes):
            visit(required, path + [code])
        visiting.discard(code)
        done.add(code)

    for code in sorted(modules):
        visit(code, [])


def build_catalog(
    modules: Iterable[Module],
    permissions: Iterable[Permission],
    requirements: Mapping[str, Collection[str]],
) -> Catalog:
    """Build and validate a Catalog from ORM rows and dependency edges."""
    specs: dict[ModuleCode, ModuleSpec] = {}
    for m in modules:
        specs[ModuleCode(m.code)] = ModuleSpec(
            code=ModuleCode(m.code),
            name=m.name,
            category=m.category,
            is_core=m.is_core,
            rank=m.rank,
            required_module_codes=frozenset(ModuleCode(c) for c in requirements.get(m.code, ())),
        )

    for module_spec in specs.values():
        unknown = module_spec.required_module_codes - specs.keys()
        if unknown:
            raise CatalogError(f"Module '{module_spec.code}' requires unknown module(s): {', '.join(sorted(unknown))}")
    _check_acyclic(specs)

    permission_modules: dict[PermissionCode, Optional[ModuleCode]] = {}
    for p in permissions:
        if p.module_code is not None and p.module_code not in specs:
            raise CatalogError(f"Permission '{p.code}' is scoped to unknown module '{p.module_code}'")
        permission_modules[PermissionCode(p.code)] = (
            ModuleCode(p.module_code) if p.module_code is not None else None
        )

    return Catalog(
        modules=MappingProxyType(specs),
        permission_modules=MappingProxyType(permission_modules),
    )


async def load_module_requirements(db: AsyncSession) -> dict[str, set[str]]:
    """Module code -> codes of the modules it requires."""
    async with store_errors("load module dependencies"):
        result = await db.execute(
            select(module_dependencies.c.module_code, module_dependencies.c.required_module_code)
        )
    requirements: dict[str, set[str]] = {}
    for module_code, required_code in result.all():
        requirements.setdefault(module_code, set()).add(required_code)
    return requirements


async def load_catalog(db: AsyncSession) -> Catalog:
    async with store_errors("load catalog"):
        modules = (await db.execute(select(Module))).scalars().all()
        permissions = (await db.execute(select(Permission))).scalars().all()
    requirements = await load_module_requirements(db)
    try:
        return build_catalog(modules, permissions, requirements)
    except CatalogError as e:
        log.error("Catalog validation failed: %s", e)
        raise


async def list_modules(db: AsyncSession, is_core: Optional[bool] = None) -> list[Module]:
    """All catalog modules ordered by rank, optionally filtered to core or paid."""
    stmt = select(Module).order_by(Module.rank, Module.code)
    if is_core is not None:
        stmt = stmt.where(Module.is_core == is_core)
    async with store_errors("list modules"):
        result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_plans(db: AsyncSession) -> list[Plan]:
    async with store_errors("list plans"):
        result = await db.execute(
            select(Plan).where(Plan.is_active == True).order_by(Plan.max_modules)  # noqa: E712
        )
    return list(result.scalars().all())


async def get_plan(db: AsyncSession, plan_code: str) -> Plan:
    async with store_errors("load plan"):
        plan = await db.get(Plan, plan_code)
    if plan is None:
        raise NotFoundError("plan", plan_code)
    return plan


async def get_role(db: AsyncSession, role_id: str) -> Role:
    """Role with its permissions eagerly loaded."""
    async with store_errors("load role"):
        role = await db.get(Role, role_id)
    if role is None:
        raise NotFoundError("role", role_id)
    return role


async def get_permissions_for_role(db: AsyncSession, role_id: str) -> list[Permission]:
    role = await get_role(db, role_id)
    return list(role.permissions)
