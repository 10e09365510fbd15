"""
Shared fixtures: a fresh file-backed SQLite database per test, a small seeded
catalog, and an HTTP client with authentication overridden.
"""
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from entitlements.core.database.engine import build_engine, build_sessionmaker, get_db, init_db
from entitlements.core.limiter import limiter
from entitlements.features.catalog.models import Plan, Module, Permission, Role
from entitlements.features.organizations.models import (
    Organization,
    Subscription,
    SubscriptionStatus,
    ModuleActivation,
    ActivationStatus,
    OrganizationMembership,
)
from entitlements.features.users.models import User
from entitlements.features.users.dependencies import get_current_user


PLANS = [
    # code, name, max_modules
    ("free", "Free", 1),
    ("starter", "Starter", 2),
    ("pro", "Pro", 5),
]

PERMISSIONS = [
    # code, module_code
    ("modules.manage", None),
    ("users.invite", None),
    ("settings.view", "settings"),
    ("crm.view", "crm"),
    ("crm.edit", "crm"),
    ("pos.sell", "pos"),
    ("hrm.view", "hrm"),
    ("payroll.run", "payroll"),
    ("pms.view", "pms"),
]


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'entitlements.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def catalog(db):
    """Plans, modules (payroll requires hrm, settings is core), permissions and roles."""
    for code, name, max_modules in PLANS:
        db.add(Plan(code=code, name=name, max_modules=max_modules, max_branches=1))

    settings = Module(code="settings", name="Settings", category="core", is_core=True, rank=0)
    crm = Module(code="crm", name="CRM", category="sales", rank=10)
    pos = Module(code="pos", name="Point of Sale", category="sales", rank=20)
    hrm = Module(code="hrm", name="Human Resources", category="people", rank=30)
    payroll = Module(code="payroll", name="Payroll", category="people", rank=40, required_modules=[hrm])
    pms = Module(code="pms", name="Property Management", category="hospitality", rank=50)
    db.add_all([settings, crm, pos, hrm, payroll, pms])

    permissions = {code: Permission(code=code, name=code, module_code=module) for code, module in PERMISSIONS}
    db.add_all(permissions.values())

    roles = SimpleNamespace(
        owner=Role(name="owner", is_super_admin=True, is_system=True,
                   permissions=list(permissions.values())),
        admin=Role(name="admin", is_system=True,
                   permissions=[p for c, p in permissions.items() if c != "users.invite"]),
        viewer=Role(name="viewer", is_system=True,
                    permissions=[permissions["crm.view"], permissions["hrm.view"], permissions["settings.view"]]),
    )
    db.add_all([roles.owner, roles.admin, roles.viewer])

    await db.commit()
    return roles


def _user(name: str, is_admin: bool = False) -> User:
    return User(appwrite_id=f"aw-{name}", email=f"{name}@example.com", name=name.title(), is_admin=is_admin)


@pytest_asyncio.fixture
async def users(db):
    users = SimpleNamespace(
        admin=_user("admin"),
        owner=_user("owner"),
        viewer=_user("viewer"),
        outsider=_user("outsider"),
        operator=_user("operator", is_admin=True),
    )
    db.add_all(vars(users).values())
    await db.commit()
    return users


@pytest_asyncio.fixture
async def make_org(db, catalog, users):
    """
    Factory creating an organization with a subscription and memberships.

    Usage:
        org = await make_org(plan="starter", modules=["crm"])
    """
    async def factory(
        plan: str | None = "free",
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        modules: tuple[str, ...] | list[str] = (),
        name: str = "Acme",
    ) -> Organization:
        org = Organization(name=name)
        db.add(org)
        await db.flush()

        if plan is not None:
            db.add(Subscription(organization_id=org.id, plan_code=plan, status=status))
        for code in modules:
            db.add(ModuleActivation(organization_id=org.id, module_code=code, status=ActivationStatus.ACTIVE))

        db.add_all([
            OrganizationMembership(user_id=users.admin.id, organization_id=org.id, role_id=catalog.admin.id),
            OrganizationMembership(user_id=users.owner.id, organization_id=org.id, role_id=catalog.owner.id),
            OrganizationMembership(user_id=users.viewer.id, organization_id=org.id, role_id=catalog.viewer.id),
        ])
        await db.commit()
        return org

    return factory


@pytest_asyncio.fixture
async def app(session_factory):
    from entitlements.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def login(app):
    """Authenticate subsequent requests as the given user."""
    def set_user(user: User) -> None:
        app.dependency_overrides[get_current_user] = lambda: user
    return set_user


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
