"""Tests for entitlement audit and repair."""

import pytest

from entitlements.core.errors import NotFoundError
from entitlements.features.entitlements.audit import audit_organizations, repair_organization
from entitlements.features.organizations.store import get_current_subscription, list_active_module_codes


class TestAudit:

    @pytest.mark.asyncio
    async def test_clean(self, db, make_org):
        await make_org(plan="starter", modules=["settings", "crm"])

        report = await audit_organizations(db)

        assert report.is_clean

    @pytest.mark.asyncio
    async def test_reports_each_inconsistency(self, db, make_org):
        missing_subscription = await make_org(plan=None, modules=["settings"], name="No plan")
        over_limit = await make_org(plan="free", modules=["settings", "crm", "pos"], name="Downgraded")
        missing_core = await make_org(plan="pro", modules=["crm"], name="No core")

        report = await audit_organizations(db)

        assert not report.is_clean
        assert report.organizations_without_subscription == [missing_subscription.id]
        assert len(report.organizations_exceeding_limits) == 1
        excess = report.organizations_exceeding_limits[0]
        assert excess.organization_id == over_limit.id
        assert excess.plan_code == "free"
        assert excess.current_modules == 2
        assert excess.max_allowed == 1
        assert report.organizations_missing_core_modules == {missing_core.id: ["settings"]}


class TestRepair:

    @pytest.mark.asyncio
    async def test_repair_creates_subscription_and_core_modules(self, db, make_org):
        org = await make_org(plan=None)

        result = await repair_organization(db, org.id)

        assert result.success
        assert result.data["subscription_created"] is True
        assert result.data["activated_modules"] == ["settings"]
        subscription = await get_current_subscription(db, org.id)
        assert subscription.plan_code == "free"
        assert await list_active_module_codes(db, org.id) == {"settings"}

    @pytest.mark.asyncio
    async def test_repair_never_deactivates(self, db, make_org):
        org = await make_org(plan="free", modules=["crm", "pos"])

        result = await repair_organization(db, org.id)

        assert result.success
        assert result.data["subscription_created"] is False
        assert await list_active_module_codes(db, org.id) == {"settings", "crm", "pos"}

    @pytest.mark.asyncio
    async def test_repair_unknown_organization(self, db, catalog):
        with pytest.raises(NotFoundError):
            await repair_organization(db, "01UNKNOWNORGANIZATION00000")
