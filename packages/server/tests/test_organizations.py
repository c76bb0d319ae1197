"""
Tests for Organization endpoints, settings and departments.

Tests cover:
- Slug generation
- Settings validation and deep merge
- Org get/update and membership listing
- Department CRUD and default seeding
"""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from pydantic import ValidationError
from sqlmodel import select

from app.models.department import Department
from app.models.event import WebhookEvent
from app.models.organization import Organization
from app.services.organizations import _deep_merge, seed_default_departments, slugify

from conftest import add_member, bearer
from psicomapa_shared.schemas.organizations import DEFAULT_DEPARTMENTS, OrgSettings


# ---------------------------------------------------------------------------
# Schema and helper tests (no DB needed)
# ---------------------------------------------------------------------------

class TestSlugify:
    def test_accents_and_spaces(self):
        assert slugify("Empresa São João") == "empresa-sao-joao"

    def test_symbols_collapse(self):
        assert slugify("  ACME & Cia. Ltda!! ") == "acme-cia-ltda"

    def test_empty_falls_back(self):
        assert slugify("***") == "empresa"

    def test_length_capped(self):
        assert len(slugify("a" * 80)) == 50


class TestOrgSettingsValidation:
    def test_defaults(self):
        s = OrgSettings()
        assert s.notifications.risk_alerts_enabled is True
        assert s.assessment_defaults.anonymous is True
        assert s.assessment_defaults.default_duration_days == 30
        assert s.employee_count is None

    def test_duration_bounds(self):
        with pytest.raises(ValidationError):
            OrgSettings(assessment_defaults={"default_duration_days": 0})
        with pytest.raises(ValidationError):
            OrgSettings(assessment_defaults={"default_duration_days": 400})

    def test_deep_merge(self):
        base = {"notifications": {"risk_alerts_enabled": True, "response_events_enabled": True}}
        merged = _deep_merge(base, {"notifications": {"response_events_enabled": False}, "employee_count": 90})
        assert merged == {
            "notifications": {"risk_alerts_enabled": True, "response_events_enabled": False},
            "employee_count": 90,
        }
        assert base["notifications"]["response_events_enabled"] is True


# ---------------------------------------------------------------------------
# Org endpoints
# ---------------------------------------------------------------------------

class TestOrgEndpoints:
    @pytest.mark.asyncio
    async def test_list_my_orgs(self, client: AsyncClient, tenant):
        resp = await client.get("/api/v1/orgs", headers=tenant.member_headers)
        assert resp.status_code == 200
        assert [(o["slug"], o["role"]) for o in resp.json()["data"]] == [("acme", "membro")]

    @pytest.mark.asyncio
    async def test_get_org(self, client: AsyncClient, tenant):
        resp = await client.get(tenant.base, headers=tenant.member_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "Acme Indústria"
        assert data["settings"]["notifications"]["risk_alerts_enabled"] is True

    @pytest.mark.asyncio
    async def test_update_settings_deep_merge(self, client: AsyncClient, session, tenant):
        resp = await client.patch(
            tenant.base,
            json={"industry": "Metalurgia", "settings": {"notifications": {"response_events_enabled": False}}},
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["industry"] == "Metalurgia"
        assert data["settings"]["notifications"] == {
            "risk_alerts_enabled": True,
            "response_events_enabled": False,
        }

        events = (await session.execute(select(WebhookEvent))).scalars().all()
        assert [e.event_type for e in events] == ["organization.updated"]

    @pytest.mark.asyncio
    async def test_invalid_settings_rejected(self, client: AsyncClient, tenant):
        resp = await client.patch(
            tenant.base,
            json={"settings": {"assessment_defaults": {"default_duration_days": 0}}},
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_member_cannot_update(self, client: AsyncClient, tenant):
        resp = await client.patch(tenant.base, json={"name": "Outro Nome"}, headers=tenant.member_headers)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_org(self, client: AsyncClient, tenant):
        resp = await client.get("/api/v1/orgs/nao-existe", headers=tenant.member_headers)
        assert resp.status_code == 404


class TestProfileSettings:
    @pytest.mark.asyncio
    async def test_profile_roundtrip(self, client: AsyncClient, tenant):
        resp = await client.get(f"{tenant.base}/settings/profile", headers=tenant.member_headers)
        assert resp.status_code == 200
        assert resp.json()["role"] == "membro"

        resp = await client.patch(
            f"{tenant.base}/settings/profile", json={"full_name": "Bruno Costa"}, headers=tenant.member_headers
        )
        assert resp.status_code == 200
        assert resp.json()["full_name"] == "Bruno Costa"

    @pytest.mark.asyncio
    async def test_change_password_checks_current(self, client: AsyncClient, tenant):
        resp = await client.post(
            f"{tenant.base}/settings/password",
            json={"current_password": "errada", "new_password": "nova-senha-1"},
            headers=tenant.member_headers,
        )
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------

class TestDepartments:
    @pytest.mark.asyncio
    async def test_seed_defaults_is_idempotent(self, session, tenant):
        session.add(Department(org_id=tenant.org.id, name="ti"))
        await session.flush()

        first = await seed_default_departments(tenant.org.id, session)
        assert first.created == len(DEFAULT_DEPARTMENTS) - 1
        assert first.skipped == 1

        second = await seed_default_departments(tenant.org.id, session)
        assert second.created == 0

    @pytest.mark.asyncio
    async def test_crud(self, client: AsyncClient, tenant):
        headers = tenant.owner_headers
        resp = await client.post(f"{tenant.base}/departments", json={"name": "Produção"}, headers=headers)
        assert resp.status_code == 201
        parent_id = resp.json()["id"]

        dup = await client.post(f"{tenant.base}/departments", json={"name": "produção"}, headers=headers)
        assert dup.status_code == 409

        resp = await client.post(
            f"{tenant.base}/departments", json={"name": "Turno A", "parent_id": parent_id}, headers=headers
        )
        assert resp.status_code == 201
        child_id = resp.json()["id"]

        blocked = await client.delete(f"{tenant.base}/departments/{parent_id}", headers=headers)
        assert blocked.status_code == 409

        resp = await client.patch(
            f"{tenant.base}/departments/{child_id}", json={"description": "Manhã"}, headers=headers
        )
        assert resp.status_code == 200
        assert resp.json()["description"] == "Manhã"

        assert (await client.delete(f"{tenant.base}/departments/{child_id}", headers=headers)).status_code == 204
        assert (await client.delete(f"{tenant.base}/departments/{parent_id}", headers=headers)).status_code == 204

        listing = await client.get(f"{tenant.base}/departments", headers=tenant.member_headers)
        assert listing.json()["data"] == []

    @pytest.mark.asyncio
    async def test_self_parent_rejected(self, client: AsyncClient, tenant):
        resp = await client.post(f"{tenant.base}/departments", json={"name": "Vendas"}, headers=tenant.owner_headers)
        department_id = resp.json()["id"]
        resp = await client.patch(
            f"{tenant.base}/departments/{department_id}",
            json={"parent_id": department_id},
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_parent_cycle_rejected(self, client: AsyncClient, tenant):
        headers = tenant.owner_headers
        ids = []
        parent_id = None
        for name in ("Operações", "Logística", "Expedição"):
            resp = await client.post(
                f"{tenant.base}/departments", json={"name": name, "parent_id": parent_id}, headers=headers
            )
            parent_id = resp.json()["id"]
            ids.append(parent_id)

        root, middle, leaf = ids
        resp = await client.patch(f"{tenant.base}/departments/{root}", json={"parent_id": leaf}, headers=headers)
        assert resp.status_code == 400
        assert "ciclo" in resp.json()["detail"]

        resp = await client.patch(f"{tenant.base}/departments/{leaf}", json={"parent_id": root}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["parent_id"] == root

        resp = await client.get(f"{tenant.base}/departments", headers=tenant.member_headers)
        parents = {d["id"]: d["parent_id"] for d in resp.json()["data"]}
        assert parents == {root: None, middle: root, leaf: root}
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_departments_are_scoped_to_org(self, client: AsyncClient, session, tenant):
        other = Organization(name="Outra", slug="outra")
        session.add(other)
        await session.flush()
        outsider = await add_member(session, other, "chefe@outra.com.br", role="responsavel_empresa")
        session.add(Department(org_id=other.id, name="Segredo"))
        await session.commit()

        resp = await client.get(f"{tenant.base}/departments", headers=tenant.member_headers)
        assert "Segredo" not in {d["name"] for d in resp.json()["data"]}
        resp = await client.get(f"{tenant.base}/departments", headers=bearer(outsider))
        assert resp.status_code == 404
