"""
Tests for questionnaires, questions and the locked NR-1 templates.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from pydantic import ValidationError

from app.models.organization import Organization
from app.models.questionnaire import Question, Questionnaire

from conftest import add_member, bearer
from psicomapa_shared.schemas.questionnaires import (
    LOCKED_QUESTIONNAIRE_MESSAGES,
    NR1_TEMPLATE_ID,
    QuestionCreateRequest,
)


@pytest.fixture
async def template(session):
    questionnaire = Questionnaire(
        id=NR1_TEMPLATE_ID,
        org_id=None,
        title="Diagnóstico de Riscos Psicossociais",
        questionnaire_type="nr1_full",
        status="published",
        introduction_text="Responda com sinceridade.",
    )
    session.add(questionnaire)
    await session.flush()
    session.add_all([
        Question(
            questionnaire_id=questionnaire.id,
            text="Tenho liberdade para organizar minha rotina.",
            category="autonomy_clarity_change",
            order_index=2,
            risk_inverted=False,
        ),
        Question(
            questionnaire_id=questionnaire.id,
            text="Preciso trabalhar em ritmo acelerado.",
            category="demands_and_pace",
            order_index=1,
        ),
    ])
    await session.commit()
    return questionnaire


class TestQuestionCreateRequest:
    def test_choice_needs_options(self):
        with pytest.raises(ValidationError):
            QuestionCreateRequest(text="Qual turno?", question_type="single_choice", options=["Manhã"])

    def test_scale_bounds(self):
        with pytest.raises(ValidationError):
            QuestionCreateRequest(text="De 0 a 10", min_value=10, max_value=0)


class TestQuestionnaires:
    @pytest.mark.asyncio
    async def test_templates_listed_first(self, client: AsyncClient, tenant, survey, template):
        resp = await client.get(f"{tenant.base}/questionnaires", headers=tenant.member_headers)
        assert resp.status_code == 200
        titles = [q["title"] for q in resp.json()["data"]]
        assert titles == ["Diagnóstico de Riscos Psicossociais", "Diagnóstico Acme"]

    @pytest.mark.asyncio
    async def test_questions_ordered(self, client: AsyncClient, tenant, template):
        resp = await client.get(f"{tenant.base}/questionnaires/{template.id}", headers=tenant.member_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["is_locked"] is True
        assert [q["order_index"] for q in data["questions"]] == [1, 2]

    @pytest.mark.asyncio
    async def test_create_from_template_copies_questions(self, client: AsyncClient, tenant, template):
        resp = await client.post(
            f"{tenant.base}/questionnaires",
            json={"title": "NR-1 Acme", "template_based_on": str(template.id)},
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["org_id"] == str(tenant.org.id)
        assert data["is_locked"] is False
        assert data["introduction_text"] == "Responda com sinceridade."
        assert len(data["questions"]) == 2
        assert {q["questionnaire_id"] for q in data["questions"]} == {data["id"]}

    @pytest.mark.asyncio
    async def test_member_cannot_create(self, client: AsyncClient, tenant):
        resp = await client.post(
            f"{tenant.base}/questionnaires", json={"title": "Clima"}, headers=tenant.member_headers
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_locked_template_is_read_only(self, client: AsyncClient, tenant, template):
        url = f"{tenant.base}/questionnaires/{template.id}"
        resp = await client.patch(url, json={"title": "Alterado"}, headers=tenant.owner_headers)
        assert resp.status_code == 409
        assert resp.json()["detail"] == LOCKED_QUESTIONNAIRE_MESSAGES["cannot_edit"]

        resp = await client.post(
            f"{url}/questions",
            json={"text": "Nova pergunta?"},
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 409

        resp = await client.delete(url, headers=tenant.owner_headers)
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_questionnaire_in_use_cannot_be_deleted(self, client: AsyncClient, tenant, survey):
        resp = await client.delete(
            f"{tenant.base}/questionnaires/{survey.questionnaire.id}", headers=tenant.owner_headers
        )
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_other_org_questionnaire_hidden(self, client: AsyncClient, session, tenant):
        other = Organization(name="Outra", slug="outra")
        session.add(other)
        await session.flush()
        outsider = await add_member(session, other, "rh@outra.com.br", role="responsavel_empresa")
        resp = await client.post(
            "/api/v1/orgs/outra/questionnaires", json={"title": "Privado"}, headers=bearer(outsider)
        )
        private_id = resp.json()["id"]

        resp = await client.get(f"{tenant.base}/questionnaires/{private_id}", headers=tenant.member_headers)
        assert resp.status_code == 404


class TestQuestions:
    @pytest.mark.asyncio
    async def test_add_update_delete(self, client: AsyncClient, tenant):
        headers = tenant.owner_headers
        resp = await client.post(f"{tenant.base}/questionnaires", json={"title": "Clima Mensal"}, headers=headers)
        qid = resp.json()["id"]

        first = await client.post(
            f"{tenant.base}/questionnaires/{qid}/questions",
            json={"text": "Como está seu bem-estar?", "category": "work_life_health"},
            headers=headers,
        )
        assert first.status_code == 201
        assert first.json()["order_index"] == 0

        second = await client.post(
            f"{tenant.base}/questionnaires/{qid}/questions",
            json={"text": "Comentários livres", "question_type": "text", "is_required": False},
            headers=headers,
        )
        assert second.json()["order_index"] == 1
        question_id = second.json()["id"]

        resp = await client.patch(
            f"{tenant.base}/questionnaires/{qid}/questions/{question_id}",
            json={"allow_skip": True},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["allow_skip"] is True

        resp = await client.delete(f"{tenant.base}/questionnaires/{qid}/questions/{question_id}", headers=headers)
        assert resp.status_code == 204
        resp = await client.get(f"{tenant.base}/questionnaires/{qid}", headers=headers)
        assert len(resp.json()["questions"]) == 1

    @pytest.mark.asyncio
    async def test_question_limit(self, client: AsyncClient, tenant, survey):
        with patch("app.services.questionnaires._question_limit", AsyncMock(return_value=2)):
            resp = await client.post(
                f"{tenant.base}/questionnaires/{survey.questionnaire.id}/questions",
                json={"text": "Mais uma pergunta?"},
                headers=tenant.owner_headers,
            )
        assert resp.status_code == 403
        assert "Limite de perguntas" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_unknown_question(self, client: AsyncClient, tenant, survey):
        resp = await client.delete(
            f"{tenant.base}/questionnaires/{survey.questionnaire.id}/questions/{survey.questionnaire.id}",
            headers=tenant.owner_headers,
        )
        assert resp.status_code == 404
