"""
Seed script to populate the module catalog, plans and system roles.

Run this script after database initialization to create:
- Subscription plans
- Modules and their dependency edges
- Module-scoped and global permissions
- System roles with their permission assignments

Existing rows are left untouched, so the script can be re-run safely.

Usage:
    uv run python -m scripts.seed_catalog
"""
import asyncio
from decimal import Decimal
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core.database.engine import get_db, init_db
from entitlements.features.catalog.catalog import load_catalog
from entitlements.features.catalog.models import Plan, Module, Permission, Role
from entitlements.utils import get_logger


log = get_logger(__name__)


# code, name, max_modules, max_branches, price_usd_month, trial_days
DEFAULT_PLANS = [
    ("free", "Free", 1, 1, Decimal("0"), 0),
    ("starter", "Starter", 2, 1, Decimal("29"), 14),
    ("pro", "Pro", 5, 3, Decimal("79"), 14),
    ("enterprise", "Enterprise", 10, 10, Decimal("199"), 30),
]


# code, name, category, is_core, rank, required modules
DEFAULT_MODULES = [
    ("settings", "Settings", "core", True, 0, []),
    ("crm", "CRM", "sales", False, 10, []),
    ("pos", "Point of Sale", "sales", False, 20, []),
    ("inventory", "Inventory", "operations", False, 30, []),
    ("hrm", "Human Resources", "people", False, 40, []),
    ("payroll", "Payroll", "people", False, 50, ["hrm"]),
    ("pms", "Property Management", "hospitality", False, 60, []),
]


# code, module_code (None = global), description
DEFAULT_PERMISSIONS = [
    # Global permissions
    ("modules.manage", None, "Activate and deactivate modules"),
    ("roles.manage", None, "Manage organization roles"),
    ("users.invite", None, "Invite users to the organization"),

    # Settings
    ("settings.view", "settings", "View organization settings"),
    ("settings.update", "settings", "Update organization settings"),

    # CRM
    ("crm.view", "crm", "View customers and opportunities"),
    ("crm.edit", "crm", "Edit customers and opportunities"),

    # POS
    ("pos.sell", "pos", "Register sales"),
    ("pos.refund", "pos", "Refund sales"),

    # Inventory
    ("inventory.view", "inventory", "View stock"),
    ("inventory.adjust", "inventory", "Adjust stock levels"),

    # HRM
    ("hrm.view", "hrm", "View employees"),
    ("hrm.edit", "hrm", "Edit employees"),

    # Payroll
    ("payroll.view", "payroll", "View payroll runs"),
    ("payroll.run", "payroll", "Run payroll"),

    # PMS
    ("pms.view", "pms", "View reservations"),
    ("pms.checkin", "pms", "Check guests in and out"),
]


DEFAULT_ROLES = {
    "owner": {
        "description": "Organization owner with full access",
        "is_super_admin": True,
        "permissions": "ALL"  # Special case - gets all permissions
    },
    "admin": {
        "description": "Organization administrator",
        "is_super_admin": False,
        "permissions": [
            "modules.manage", "roles.manage", "users.invite",
            "settings.view", "settings.update",
            "crm.view", "crm.edit",
            "pos.sell", "pos.refund",
            "inventory.view", "inventory.adjust",
            "hrm.view", "hrm.edit",
            "payroll.view", "payroll.run",
            "pms.view", "pms.checkin",
        ]
    },
    "manager": {
        "description": "Department manager",
        "is_super_admin": False,
        "permissions": [
            "settings.view",
            "crm.view", "crm.edit",
            "pos.sell", "pos.refund",
            "inventory.view", "inventory.adjust",
            "hrm.view",
            "pms.view", "pms.checkin",
        ]
    },
    "employee": {
        "description": "Day-to-day operations",
        "is_super_admin": False,
        "permissions": [
            "crm.view",
            "pos.sell",
            "inventory.view",
            "pms.view",
        ]
    },
}


async def seed_plans(db: AsyncSession):
    log.info("Creating plans...")

    for code, name, max_modules, max_branches, price, trial_days in DEFAULT_PLANS:
        if await db.get(Plan, code) is not None:
            log.debug("Plan '%s' already exists, skipping", code)
            continue

        db.add(Plan(
            code=code,
            name=name,
            max_modules=max_modules,
            max_branches=max_branches,
            price_usd_month=price,
            trial_days=trial_days,
        ))
        log.info("Created plan: %s (%d modules)", code, max_modules)

    await db.commit()


async def seed_modules(db: AsyncSession):
    """
    Create modules with their dependency edges.

    Modules are listed after the modules they require. Existing modules keep
    whatever dependencies they have.
    """
    log.info("Creating modules...")
    modules_by_code: dict[str, Module] = {}

    for code, name, category, is_core, rank, requires in DEFAULT_MODULES:
        existing = await db.get(Module, code)
        if existing is not None:
            log.debug("Module '%s' already exists, skipping", code)
            modules_by_code[code] = existing
            continue

        module = Module(
            code=code,
            name=name,
            category=category,
            is_core=is_core,
            rank=rank,
            required_modules=[modules_by_code[r] for r in requires],
        )
        db.add(module)
        modules_by_code[code] = module
        log.info("Created module: %s", code)

    await db.commit()


async def seed_permissions(db: AsyncSession) -> dict[str, Permission]:
    """
    Create default permissions.

    Returns:
        Dictionary mapping permission codes to Permission objects
    """
    log.info("Creating permissions...")
    permissions_map = {}

    for code, module_code, description in DEFAULT_PERMISSIONS:
        result = await db.execute(select(Permission).where(Permission.code == code))
        existing = result.scalars().first()

        if existing:
            log.debug("Permission '%s' already exists, skipping", code)
            permissions_map[code] = existing
            continue

        permission = Permission(code=code, name=code, module_code=module_code, description=description)
        db.add(permission)
        permissions_map[code] = permission
        log.info("Created permission: %s", code)

    await db.commit()
    log.info("Catalog has %d permissions", len(permissions_map))
    return permissions_map


async def seed_roles(db: AsyncSession, permissions_map: dict[str, Permission]):
    """
    Create system roles and assign permissions.

    Args:
        db: Database session
        permissions_map: Dictionary of permission code -> Permission object
    """
    log.info("Creating system roles...")

    for role_name, role_config in DEFAULT_ROLES.items():
        result = await db.execute(
            select(Role).where(Role.name == role_name, Role.organization_id.is_(None))
        )
        if result.scalars().first():
            log.debug("Role '%s' already exists, skipping", role_name)
            continue

        role = Role(
            name=role_name,
            description=role_config["description"],
            is_super_admin=role_config["is_super_admin"],
            is_system=True,
            organization_id=None,
        )

        if role_config["permissions"] == "ALL":
            role.permissions = list(permissions_map.values())
        else:
            role_permissions = []
            for code in role_config["permissions"]:
                if code in permissions_map:
                    role_permissions.append(permissions_map[code])
                else:
                    log.warning("Permission '%s' not found for role '%s'", code, role_name)
            role.permissions = role_permissions

        db.add(role)
        log.info("Created role '%s' with %d permissions", role_name, len(role.permissions))

    await db.commit()


async def main():
    """Seed the catalog, then load it once to validate dependency edges."""
    log.info("Starting catalog seeding...")
    await init_db()

    async for db in get_db():
        await seed_plans(db)
        await seed_modules(db)
        permissions_map = await seed_permissions(db)
        await seed_roles(db, permissions_map)

        catalog = await load_catalog(db)
        log.info(
            "Catalog seeding completed: %d modules (%d core)",
            len(catalog.modules), len(catalog.core_module_codes)
        )
        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
