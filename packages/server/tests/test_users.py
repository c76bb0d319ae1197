"""
Tests for member management: invitations, roles, deactivation and bulk import.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from pydantic import ValidationError
from sqlmodel import select

from app.models.department import Department, DepartmentMember
from app.models.event import WebhookEvent
from app.models.user import User

from conftest import add_member, add_subscription
from psicomapa_shared.schemas.users import InviteRequest


# ---------------------------------------------------------------------------
# Schema tests (no DB needed)
# ---------------------------------------------------------------------------

class TestInviteRequest:
    def test_email_lowercased_and_default_role(self):
        req = InviteRequest(email="Nova.Pessoa@Acme.com.br", full_name="Nova Pessoa")
        assert req.email == "nova.pessoa@acme.com.br"
        assert req.role.value == "membro"

    def test_name_must_be_letters(self):
        with pytest.raises(ValidationError):
            InviteRequest(email="x@acme.com.br", full_name="Fulano 123")


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class TestInvite:
    @pytest.mark.asyncio
    async def test_invite_sends_set_password_link(self, client: AsyncClient, session, tenant):
        department = Department(org_id=tenant.org.id, name="Financeiro")
        session.add(department)
        await session.commit()

        with patch("app.services.email.send_invitation_email", AsyncMock()) as send:
            resp = await client.post(
                f"{tenant.base}/users/invite",
                json={"email": "Carla@acme.com.br", "full_name": "Carla Dias", "department_id": str(department.id)},
                headers=tenant.owner_headers,
            )
        assert resp.status_code == 201
        data = resp.json()
        assert data["email"] == "carla@acme.com.br"
        assert data["role"] == "membro"

        to, name, org_name, inviter, link = send.await_args.args
        assert (to, org_name, inviter) == ("carla@acme.com.br", "Acme Indústria", "Ana")
        assert "/auth/set-password?token=" in link

        user = (await session.execute(select(User).where(User.email == "carla@acme.com.br"))).scalar_one()
        assert user.password_hash is None
        membership = (
            await session.execute(select(DepartmentMember).where(DepartmentMember.user_id == user.id))
        ).scalar_one()
        assert membership.department_id == department.id

        events = (await session.execute(select(WebhookEvent))).scalars().all()
        assert [e.event_type for e in events] == ["user.invited"]

    @pytest.mark.asyncio
    async def test_existing_member_conflict(self, client: AsyncClient, tenant):
        resp = await client.post(
            f"{tenant.base}/users/invite",
            json={"email": "bruno@acme.com.br", "full_name": "Bruno"},
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_member_cannot_invite(self, client: AsyncClient, tenant):
        resp = await client.post(
            f"{tenant.base}/users/invite",
            json={"email": "x@acme.com.br", "full_name": "Xavier"},
            headers=tenant.member_headers,
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_team_limit(self, client: AsyncClient, session, tenant):
        await add_subscription(session, tenant.org, "base")
        for i in range(8):
            await add_member(session, tenant.org, f"pessoa{i}@acme.com.br")

        resp = await client.post(
            f"{tenant.base}/users/invite",
            json={"email": "decimo@acme.com.br", "full_name": "Décimo"},
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 403
        assert "Limite de membros" in resp.json()["detail"]


# ---------------------------------------------------------------------------
# Roles and activation
# ---------------------------------------------------------------------------

class TestMembership:
    @pytest.mark.asyncio
    async def test_promote_member(self, client: AsyncClient, tenant):
        resp = await client.patch(
            f"{tenant.base}/users/{tenant.member.id}/role",
            json={"role": "responsavel_empresa"},
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "responsavel_empresa"

    @pytest.mark.asyncio
    async def test_cannot_change_own_role(self, client: AsyncClient, tenant):
        resp = await client.patch(
            f"{tenant.base}/users/{tenant.owner.id}/role",
            json={"role": "membro"},
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_deactivate_blocks_access(self, client: AsyncClient, session, tenant):
        member_id = tenant.member.id
        resp = await client.post(f"{tenant.base}/users/{member_id}/deactivate", headers=tenant.owner_headers)
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False

        events = (await session.execute(select(WebhookEvent))).scalars().all()
        assert [e.event_type for e in events] == ["user.removed"]

        resp = await client.get(f"{tenant.base}/users", headers=tenant.member_headers)
        assert resp.status_code == 403

        resp = await client.post(f"{tenant.base}/users/{member_id}/reactivate", headers=tenant.owner_headers)
        assert resp.status_code == 200
        assert resp.json()["is_active"] is True

    @pytest.mark.asyncio
    async def test_cannot_deactivate_self(self, client: AsyncClient, tenant):
        resp = await client.post(f"{tenant.base}/users/{tenant.owner.id}/deactivate", headers=tenant.owner_headers)
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Bulk import
# ---------------------------------------------------------------------------

class TestBulkImport:
    @pytest.mark.asyncio
    async def test_import_creates_and_skips(self, client: AsyncClient, session, tenant):
        session.add(Department(org_id=tenant.org.id, name="Comercial"))
        await session.commit()

        content = (
            "email;nome;departamento;cargo\n"
            "joana@acme.com.br;Joana Prado;comercial;membro\n"
            "bruno@acme.com.br;Bruno;;membro\n"
            "invalido;Sem Email;;membro\n"
        )
        resp = await client.post(
            f"{tenant.base}/users/import",
            files={"file": ("membros.csv", content.encode("utf-8"), "text/csv")},
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_rows"] == 3
        assert data["created"] == 1
        assert data["skipped"] == 1
        assert [e["line"] for e in data["errors"]] == [4]

        joana = (await session.execute(select(User).where(User.email == "joana@acme.com.br"))).scalar_one()
        membership = (
            await session.execute(select(DepartmentMember).where(DepartmentMember.user_id == joana.id))
        ).scalar_one_or_none()
        assert membership is not None

    @pytest.mark.asyncio
    async def test_template_download(self, client: AsyncClient, tenant):
        resp = await client.get(f"{tenant.base}/users/import/template", headers=tenant.owner_headers)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "modelo_importacao_usuarios.csv" in resp.headers["content-disposition"]
