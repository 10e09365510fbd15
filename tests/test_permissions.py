"""Tests for permission context building and checking."""

import asyncio
from types import MappingProxyType

import pytest
from sqlalchemy import select

from entitlements.core.errors import AuthenticationError, TransientError
from entitlements.features.catalog.catalog import PlanLimits
from entitlements.features.catalog.models import Permission, Role
from entitlements.features.modules.activation import activate, deactivate
from entitlements.features.organizations.models import OrganizationMembership
from entitlements.features.permissions import builder
from entitlements.features.permissions.builder import build_context
from entitlements.features.permissions.checker import (
    PermissionChecker,
    can,
    can_access_module,
    can_all,
    can_any,
)
from entitlements.features.permissions.context import PermissionContext


def make_context(permissions=None, active_modules=(), is_super_admin=False):
    return PermissionContext(
        user_id="user",
        organization_id="org",
        role_id="role",
        role_name="staff",
        permissions=MappingProxyType(permissions or {}),
        is_super_admin=is_super_admin,
        active_modules=frozenset(active_modules),
        plan_limits=PlanLimits(code="free", name="Free", max_modules=1, max_branches=1),
    )


class TestChecker:
    """Pure checks over a resolved context."""

    def test_global_permission(self):
        context = make_context({"modules.manage": None})

        assert can(context, "modules.manage")
        assert not can(context, "users.invite")

    def test_module_permission_requires_active_module(self):
        context = make_context({"crm.view": "crm", "hrm.view": "hrm"}, active_modules=["crm"])

        assert can(context, "crm.view")
        assert not can(context, "hrm.view")

    def test_can_all_and_any(self):
        context = make_context({"crm.view": "crm", "hrm.view": "hrm"}, active_modules=["crm"])

        assert can_all(context, ["crm.view"])
        assert not can_all(context, ["crm.view", "hrm.view"])
        assert can_any(context, ["crm.view", "hrm.view"])
        assert not can_any(context, ["hrm.view", "pos.sell"])

    def test_empty_permission_lists(self):
        context = make_context()

        assert can_all(context, [])
        assert not can_any(context, [])

    def test_module_access(self):
        context = make_context(active_modules=["crm"])

        assert can_access_module(context, "crm")
        assert not can_access_module(context, "pos")

    def test_super_admin_bypass(self):
        context = make_context(is_super_admin=True)
        checker = PermissionChecker(context)

        assert checker.is_super_admin()
        assert checker.can("payroll.run")
        assert checker.can_all(["payroll.run", "anything.at.all"])
        assert checker.can_access_module("pms")

    def test_deny_context_grants_nothing(self):
        checker = PermissionChecker(PermissionContext.deny("user", "org"))

        assert not checker.is_super_admin()
        assert not checker.can("modules.manage")
        assert not checker.can_any(["crm.view", "modules.manage"])
        assert not checker.can_access_module("settings")


class TestBuildContext:
    """Context assembly from membership, role and entitlement."""

    @pytest.mark.asyncio
    async def test_role_and_modules(self, db, make_org, users):
        org = await make_org(plan="starter", modules=["crm"])

        context = await build_context(db, users.viewer.id, org.id)

        assert context.role_name == "viewer"
        assert set(context.permissions) == {"crm.view", "hrm.view", "settings.view"}
        assert context.active_modules == {"crm"}
        assert context.plan_limits.code == "starter"
        assert not context.is_super_admin
        assert not context.degraded

    @pytest.mark.asyncio
    async def test_role_permission_gated_by_module(self, db, make_org, users):
        org = await make_org(plan="starter", modules=["crm"])

        checker = PermissionChecker(await build_context(db, users.viewer.id, org.id))

        assert checker.can("crm.view")
        assert not checker.can("hrm.view")

    @pytest.mark.asyncio
    async def test_deactivation_revokes_module_permissions(self, db, make_org, users):
        org = await make_org(plan="starter", modules=["crm"])
        assert can(await build_context(db, users.viewer.id, org.id), "crm.view")

        assert (await deactivate(db, org.id, "crm", users.admin.id)).success

        assert not can(await build_context(db, users.viewer.id, org.id), "crm.view")

    @pytest.mark.asyncio
    async def test_role_super_admin(self, db, make_org, users):
        org = await make_org(plan="free")

        context = await build_context(db, users.owner.id, org.id)

        assert context.is_super_admin
        assert can_access_module(context, "payroll")

    @pytest.mark.asyncio
    async def test_non_member(self, db, make_org, users):
        org = await make_org(plan="free")

        with pytest.raises(AuthenticationError):
            await build_context(db, users.outsider.id, org.id)

    @pytest.mark.asyncio
    async def test_timeout_denies(self, db, make_org, users, monkeypatch):
        org = await make_org(plan="free", modules=["crm"])

        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        monkeypatch.setattr(builder, "_load_context", slow)

        context = await build_context(db, users.admin.id, org.id, timeout=0.01)

        assert context.degraded
        assert not context.permissions
        assert not context.active_modules
        assert not context.is_super_admin

    @pytest.mark.asyncio
    async def test_store_failure_denies(self, db, make_org, users, monkeypatch):
        org = await make_org(plan="free")

        async def unavailable(*args, **kwargs):
            raise TransientError("Store unavailable during load membership")

        monkeypatch.setattr(builder, "get_membership", unavailable)

        context = await build_context(db, users.owner.id, org.id)

        assert context.degraded
        assert not PermissionChecker(context).can("modules.manage")

    @pytest.mark.asyncio
    async def test_dangling_role_denies(self, db, make_org, users, monkeypatch):
        org = await make_org(plan="free")

        real_get_role = builder.get_role

        async def missing_role(db, role_id):
            return await real_get_role(db, "01MISSINGROLE0000000000000")

        monkeypatch.setattr(builder, "get_role", missing_role)

        context = await build_context(db, users.admin.id, org.id)

        assert context.degraded

    @pytest.mark.asyncio
    async def test_role_of_another_organization_denies(self, db, make_org, users):
        org = await make_org(plan="pro", modules=["crm"])
        other = await make_org(plan="pro", name="Globex")
        crm_view = await db.scalar(select(Permission).where(Permission.code == "crm.view"))
        foreign_role = Role(name="globex-staff", organization_id=other.id, permissions=[crm_view])
        db.add(foreign_role)
        await db.flush()
        membership = await db.scalar(
            select(OrganizationMembership).where(
                OrganizationMembership.user_id == users.viewer.id,
                OrganizationMembership.organization_id == org.id,
            )
        )
        membership.role_id = foreign_role.id
        await db.commit()

        context = await build_context(db, users.viewer.id, org.id)

        assert context.degraded
        assert not can(context, "crm.view")

    @pytest.mark.asyncio
    async def test_role_of_own_organization(self, db, make_org, users):
        org = await make_org(plan="pro", modules=["crm"])
        crm_view = await db.scalar(select(Permission).where(Permission.code == "crm.view"))
        local_role = Role(name="acme-staff", organization_id=org.id, permissions=[crm_view])
        db.add(local_role)
        await db.flush()
        membership = await db.scalar(
            select(OrganizationMembership).where(
                OrganizationMembership.user_id == users.viewer.id,
                OrganizationMembership.organization_id == org.id,
            )
        )
        membership.role_id = local_role.id
        await db.commit()

        context = await build_context(db, users.viewer.id, org.id)

        assert context.role_name == "acme-staff"
        assert can(context, "crm.view")

    @pytest.mark.asyncio
    async def test_activation_grants_module_permissions(self, db, make_org, users):
        org = await make_org(plan="starter", modules=["crm"])
        before = await build_context(db, users.admin.id, org.id)
        assert "pms.view" in before.permissions
        assert not can(before, "pms.view")

        assert (await activate(db, org.id, "pms", users.admin.id)).success

        after = await build_context(db, users.admin.id, org.id)
        assert after.role_id == before.role_id
        assert can(after, "pms.view")
