"""
Tests for saved reports, plan-gated exports and action plans.
"""

from __future__ import annotations

import io
import random

import pytest
from httpx import AsyncClient
from openpyxl import load_workbook
from sqlmodel import select

from app.models.event import WebhookEvent
from app.models.report import ActionPlan
from app.services.seed import seed_responses

from conftest import add_subscription


async def _answered(session, survey, participants: int, closed: bool = True):
    await seed_responses(survey.assessment.id, participants, session, rng=random.Random(5))
    if closed:
        survey.assessment.status = "completed"
    await session.commit()


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

class TestReports:
    @pytest.mark.asyncio
    async def test_open_assessment_rejected(self, client: AsyncClient, tenant, survey):
        resp = await client.post(
            f"{tenant.base}/reports", json={"assessment_id": str(survey.assessment.id)}, headers=tenant.owner_headers
        )
        assert resp.status_code == 409
        assert "precisa estar encerrada" in resp.json()["detail"]
        assert "Aguardando respostas" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_risk_report_snapshot(self, client: AsyncClient, session, tenant, survey):
        await _answered(session, survey, 6)
        resp = await client.post(
            f"{tenant.base}/reports", json={"assessment_id": str(survey.assessment.id)}, headers=tenant.owner_headers
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "completed"
        assert data["title"] == "Relatório de Riscos Psicossociais - Diagnóstico 2026"
        content = data["content"]
        assert content["organization_name"] == "Acme Indústria"
        assert content["closure"]["reason"] == "manual"
        assert content["analytics"]["total_participants"] == 6
        assert content["top_risks"] == ["demands_and_pace"]

        events = (await session.execute(select(WebhookEvent))).scalars().all()
        assert [e.event_type for e in events] == ["risk.report.generated"]

    @pytest.mark.asyncio
    async def test_clima_and_action_plan_reports(self, client: AsyncClient, session, tenant, survey):
        await _answered(session, survey, 5)
        session.add(ActionPlan(
            org_id=tenant.org.id,
            assessment_id=survey.assessment.id,
            title="Revisar metas do time",
            status="in_progress",
            risk_block="demands_and_pace",
        ))
        await session.commit()

        resp = await client.post(
            f"{tenant.base}/reports",
            json={"assessment_id": str(survey.assessment.id), "report_type": "clima_mensal"},
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 201
        assert "clima" in resp.json()["content"]

        resp = await client.post(
            f"{tenant.base}/reports",
            json={"assessment_id": str(survey.assessment.id), "report_type": "plano_acao", "title": "Plano 2026"},
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 201
        plans = resp.json()["content"]["action_plans"]
        assert [(p["title"], p["status_label"]) for p in plans] == [("Revisar metas do time", "Em andamento")]

    @pytest.mark.asyncio
    async def test_history_filter_and_archive(self, client: AsyncClient, session, tenant, survey):
        await _answered(session, survey, 5)
        for report_type in ("riscos_psicossociais", "executivo_lideranca"):
            await client.post(
                f"{tenant.base}/reports",
                json={"assessment_id": str(survey.assessment.id), "report_type": report_type},
                headers=tenant.owner_headers,
            )

        resp = await client.get(f"{tenant.base}/reports?report_type=executivo_lideranca", headers=tenant.member_headers)
        reports = resp.json()["data"]
        assert [r["report_type"] for r in reports] == ["executivo_lideranca"]
        report_id = reports[0]["id"]

        resp = await client.patch(f"{tenant.base}/reports/{report_id}/archive", headers=tenant.member_headers)
        assert resp.status_code == 403
        resp = await client.patch(f"{tenant.base}/reports/{report_id}/archive", headers=tenant.owner_headers)
        assert resp.json()["status"] == "archived"

        resp = await client.get(f"{tenant.base}/reports/{report_id}", headers=tenant.member_headers)
        assert resp.json()["status"] == "archived"


# ---------------------------------------------------------------------------
# Exports
# ---------------------------------------------------------------------------

class TestExports:
    @pytest.mark.asyncio
    async def test_subscription_required(self, client: AsyncClient, session, tenant, survey):
        await _answered(session, survey, 6, closed=False)
        resp = await client.get(f"{tenant.base}/exports/{survey.assessment.id}.csv", headers=tenant.member_headers)
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Assinatura ativa necessária para exportar relatórios"

    @pytest.mark.asyncio
    async def test_suppressed_below_threshold(self, client: AsyncClient, session, tenant, survey):
        await add_subscription(session, tenant.org, "base")
        await _answered(session, survey, 4, closed=False)
        resp = await client.get(f"{tenant.base}/exports/{survey.assessment.id}.pdf", headers=tenant.member_headers)
        assert resp.status_code == 403
        assert resp.json()["detail"].startswith("Exportação indisponível.")

    @pytest.mark.asyncio
    async def test_base_plan_formats(self, client: AsyncClient, session, tenant, survey):
        await add_subscription(session, tenant.org, "base")
        await _answered(session, survey, 6, closed=False)
        url = f"{tenant.base}/exports/{survey.assessment.id}"

        resp = await client.get(f"{url}.csv", headers=tenant.member_headers)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        lines = resp.content.decode("utf-8-sig").splitlines()
        assert lines[0] == "categoria;nome;media;nivel_risco;respostas;perguntas"
        assert lines[1].startswith("demands_and_pace;")

        resp = await client.get(f"{url}.pdf", headers=tenant.member_headers)
        assert resp.status_code == 200
        assert resp.content.startswith(b"%PDF")
        assert 'filename="relatorio-diagnostico-2026-' in resp.headers["content-disposition"]

        resp = await client.get(f"{url}.xlsx", headers=tenant.member_headers)
        assert resp.status_code == 403

        resp = await client.get(f"{url}.csv?kind=responses", headers=tenant.member_headers)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_advanced_plan_workbook_and_raw_answers(self, client: AsyncClient, session, tenant, survey):
        await add_subscription(session, tenant.org, "avancado")
        await _answered(session, survey, 10, closed=False)
        url = f"{tenant.base}/exports/{survey.assessment.id}"

        resp = await client.get(f"{url}.xlsx", headers=tenant.member_headers)
        assert resp.status_code == 200
        workbook = load_workbook(io.BytesIO(resp.content))
        assert workbook.sheetnames == [
            "Resumo Executivo",
            "Análise por Categoria",
            "Respostas Detalhadas",
            "Dados para Gráfico",
        ]
        assert workbook["Respostas Detalhadas"].max_row == 21

        resp = await client.get(f"{url}.csv?kind=responses", headers=tenant.member_headers)
        assert resp.status_code == 200
        assert 'filename="respostas-diagnostico-2026-' in resp.headers["content-disposition"]
        assert len(resp.content.decode("utf-8-sig").splitlines()) == 21

    @pytest.mark.asyncio
    async def test_unknown_format(self, client: AsyncClient, tenant, survey):
        resp = await client.get(f"{tenant.base}/exports/{survey.assessment.id}.docx", headers=tenant.member_headers)
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Action plans
# ---------------------------------------------------------------------------

class TestActionPlans:
    @pytest.mark.asyncio
    async def test_crud(self, client: AsyncClient, tenant, survey):
        headers = tenant.owner_headers
        resp = await client.post(
            f"{tenant.base}/action-plans",
            json={
                "title": "Rodízio de tarefas",
                "assessment_id": str(survey.assessment.id),
                "responsible": "Ana",
                "deadline": "2026-08-30",
                "risk_block": "demands_and_pace",
            },
            headers=headers,
        )
        assert resp.status_code == 201
        plan = resp.json()
        assert plan["status"] == "pending"

        await client.post(f"{tenant.base}/action-plans", json={"title": "Sem avaliação"}, headers=headers)

        resp = await client.get(
            f"{tenant.base}/action-plans?assessment_id={survey.assessment.id}", headers=tenant.member_headers
        )
        assert [p["title"] for p in resp.json()["data"]] == ["Rodízio de tarefas"]

        resp = await client.patch(
            f"{tenant.base}/action-plans/{plan['id']}", json={"status": "delayed"}, headers=headers
        )
        assert resp.json()["status"] == "delayed"

        assert (await client.delete(f"{tenant.base}/action-plans/{plan['id']}", headers=headers)).status_code == 204
        assert (await client.delete(f"{tenant.base}/action-plans/{plan['id']}", headers=headers)).status_code == 404

    @pytest.mark.asyncio
    async def test_risk_block_must_be_nr1_block(self, client: AsyncClient, tenant):
        resp = await client.post(
            f"{tenant.base}/action-plans",
            json={"title": "Âncoras", "risk_block": "anchors"},
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_member_cannot_create(self, client: AsyncClient, tenant):
        resp = await client.post(f"{tenant.base}/action-plans", json={"title": "Plano"}, headers=tenant.member_headers)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_plan_limit(self, client: AsyncClient, session, tenant):
        await add_subscription(session, tenant.org, "base")
        session.add_all([ActionPlan(org_id=tenant.org.id, title=f"Plano {i}") for i in range(10)])
        await session.commit()
        resp = await client.post(f"{tenant.base}/action-plans", json={"title": "Plano 11"}, headers=tenant.owner_headers)
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Limite de planos de ação atingido para o seu plano."
