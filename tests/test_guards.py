"""Tests for the route guard dependencies."""

from typing import Annotated
from unittest.mock import Mock

import pytest
import pytest_asyncio
from fastapi import APIRouter, Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from entitlements.core.database.engine import get_db
from entitlements.features.permissions import dependencies
from entitlements.features.permissions.context import PermissionContext
from entitlements.features.permissions.dependencies import require_module, require_permission
from entitlements.features.users.dependencies import get_current_user


router = APIRouter()


@router.get("/{organization_id}/payroll/runs")
async def list_payroll_runs(context: Annotated[PermissionContext, Depends(require_module("payroll"))]):
    return {"organization_id": context.organization_id}


@router.post("/{organization_id}/crm/contacts")
async def create_contact(context: Annotated[PermissionContext, Depends(require_permission("crm.edit"))]):
    return {"created_by": context.user_id}


@router.get("/{organization_id}/crm/exports")
async def export_contacts(context: Annotated[PermissionContext, Depends(require_permission("crm.export"))]):
    return {"exported_by": context.user_id}


@pytest_asyncio.fixture
async def guarded(session_factory):
    app = FastAPI()
    app.include_router(router, prefix="/organizations")

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield app, client


def as_user(app, user):
    app.dependency_overrides[get_current_user] = lambda: user


class TestRequireModule:

    @pytest.mark.asyncio
    async def test_inactive_module_forbidden(self, guarded, users, make_org):
        app, client = guarded
        org = await make_org(plan="pro", modules=["hrm"])
        as_user(app, users.admin)

        response = await client.get(f"/organizations/{org.id}/payroll/runs")

        assert response.status_code == 403
        assert response.json()["detail"] == "Module payroll is not active for this organization"

    @pytest.mark.asyncio
    async def test_active_module_allowed(self, guarded, users, make_org):
        app, client = guarded
        org = await make_org(plan="pro", modules=["hrm", "payroll"])
        as_user(app, users.viewer)

        response = await client.get(f"/organizations/{org.id}/payroll/runs")

        assert response.status_code == 200
        assert response.json() == {"organization_id": org.id}

    @pytest.mark.asyncio
    async def test_super_admin_bypasses_module_gate(self, guarded, users, make_org):
        app, client = guarded
        org = await make_org(plan="free")
        as_user(app, users.owner)

        response = await client.get(f"/organizations/{org.id}/payroll/runs")

        assert response.status_code == 200


class TestRequirePermission:

    @pytest.mark.asyncio
    async def test_permission_of_inactive_module_forbidden(self, guarded, users, make_org):
        app, client = guarded
        org = await make_org(plan="free")
        as_user(app, users.admin)

        response = await client.post(f"/organizations/{org.id}/crm/contacts")

        assert response.status_code == 403
        assert response.json()["detail"] == "Permission denied: crm.edit"

    @pytest.mark.asyncio
    async def test_permission_granted(self, guarded, users, make_org):
        app, client = guarded
        org = await make_org(plan="free", modules=["crm"])
        as_user(app, users.admin)

        response = await client.post(f"/organizations/{org.id}/crm/contacts")

        assert response.status_code == 200
        assert response.json() == {"created_by": users.admin.id}

    @pytest.mark.asyncio
    async def test_non_member_forbidden(self, guarded, users, make_org):
        app, client = guarded
        org = await make_org(plan="free", modules=["crm"])
        as_user(app, users.outsider)

        response = await client.post(f"/organizations/{org.id}/crm/contacts")

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_permission_is_denied_and_reported(self, guarded, users, make_org, monkeypatch):
        app, client = guarded
        org = await make_org(plan="free", modules=["crm"])
        as_user(app, users.admin)
        log = Mock()
        monkeypatch.setattr(dependencies, "log", log)

        response = await client.get(f"/organizations/{org.id}/crm/exports")

        assert response.status_code == 403
        log.error.assert_called_once()
        assert "crm.export" in log.error.call_args.args

    @pytest.mark.asyncio
    async def test_known_permission_denial_is_not_reported(self, guarded, users, make_org, monkeypatch):
        app, client = guarded
        org = await make_org(plan="free")
        as_user(app, users.admin)
        log = Mock()
        monkeypatch.setattr(dependencies, "log", log)

        response = await client.post(f"/organizations/{org.id}/crm/contacts")

        assert response.status_code == 403
        log.error.assert_not_called()
