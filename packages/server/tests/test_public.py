"""
Tests for the public survey endpoints (anonymous respondents).
"""

from __future__ import annotations

import uuid
from datetime import date, timedelta

import pytest
from httpx import AsyncClient
from sqlmodel import select

from app.models.assessment import AssessmentParticipant, Response
from app.models.event import WebhookEvent
from app.services.public import answer_text


class TestAnswerText:
    def test_scalars(self):
        assert answer_text(4) == "4"
        assert answer_text(4.0) == "4"
        assert answer_text(7.5) == "7.5"
        assert answer_text("  Sim ") == "Sim"

    def test_blank_is_skipped(self):
        assert answer_text(None) is None
        assert answer_text("   ") is None
        assert answer_text([]) is None

    def test_lists_are_joined(self):
        assert answer_text(["Opção A", " ", "Opção B"]) == "Opção A, Opção B"


class TestPublicAssessment:
    @pytest.mark.asyncio
    async def test_get_active_assessment(self, client: AsyncClient, survey):
        resp = await client.get(f"/api/public/assessments/{survey.assessment.id}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["title"] == "Diagnóstico 2026"
        assert data["organization_name"] == "Acme Indústria"
        assert data["lgpd_consent_text"]
        assert [q["order_index"] for q in data["questions"]] == [1, 2]

    @pytest.mark.asyncio
    async def test_draft_is_not_found(self, client: AsyncClient, session, survey):
        survey.assessment.status = "draft"
        await session.commit()
        resp = await client.get(f"/api/public/assessments/{survey.assessment.id}")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_assessment(self, client: AsyncClient):
        resp = await client.get(f"/api/public/assessments/{uuid.uuid4()}")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_expired_assessment(self, client: AsyncClient, session, survey):
        survey.assessment.start_date = date.today() - timedelta(days=30)
        survey.assessment.end_date = date.today() - timedelta(days=1)
        await session.commit()
        resp = await client.get(f"/api/public/assessments/{survey.assessment.id}")
        assert resp.status_code == 403
        assert resp.json()["detail"]["code"] == "expired"


class TestPublicSubmission:
    def _url(self, survey) -> str:
        return f"/api/public/assessments/{survey.assessment.id}/responses"

    @pytest.mark.asyncio
    async def test_consent_required(self, client: AsyncClient, survey):
        likert, _ = survey.questions
        resp = await client.post(self._url(survey), json={"answers": {str(likert.id): 4}})
        assert resp.status_code == 400
        assert "LGPD" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_missing_required_question(self, client: AsyncClient, survey):
        likert, text = survey.questions
        likert_id = likert.id
        resp = await client.post(
            self._url(survey),
            json={"answers": {str(text.id): "Reuniões demais"}, "consent_given": True},
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["missing_questions"] == [str(likert_id)]

    @pytest.mark.asyncio
    async def test_unknown_question_rejected(self, client: AsyncClient, survey):
        likert, _ = survey.questions
        resp = await client.post(
            self._url(survey),
            json={"answers": {str(likert.id): 3, str(uuid.uuid4()): 1}, "consent_given": True},
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_submit_saves_answers(self, client: AsyncClient, session, survey, tenant):
        likert, text = survey.questions
        session.add(
            AssessmentParticipant(
                assessment_id=survey.assessment.id,
                org_id=tenant.org.id,
                email="carla@acme.com.br",
                name="Carla",
                status="sent",
            )
        )
        await session.commit()

        resp = await client.post(
            self._url(survey),
            json={
                "answers": {str(likert.id): 4, str(text.id): "Reuniões demais"},
                "consent_given": True,
                "participant_email": "Carla@acme.com.br",
            },
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["success"] is True
        assert data["answers_saved"] == 2

        rows = (
            await session.execute(select(Response).where(Response.assessment_id == survey.assessment.id))
        ).scalars().all()
        assert {r.anonymous_id for r in rows} == {data["anonymous_id"]}
        by_question = {r.question_id: r for r in rows}
        assert by_question[likert.id].value == 4
        assert by_question[text.id].value is None
        assert by_question[text.id].response_text == "Reuniões demais"

        participant = (
            await session.execute(select(AssessmentParticipant).where(AssessmentParticipant.email == "carla@acme.com.br"))
        ).scalar_one()
        assert participant.status == "responded"
        assert participant.responded_at is not None

        events = (
            await session.execute(select(WebhookEvent).where(WebhookEvent.org_id == tenant.org.id))
        ).scalars().all()
        assert [e.event_type for e in events] == ["diagnostic.response_received"]

    @pytest.mark.asyncio
    async def test_optional_question_may_be_skipped(self, client: AsyncClient, survey):
        likert, text = survey.questions
        resp = await client.post(
            self._url(survey),
            json={"answers": {str(likert.id): "2", str(text.id): None}, "consent_given": True},
        )
        assert resp.status_code == 201
        assert resp.json()["answers_saved"] == 1

    @pytest.mark.asyncio
    async def test_answers_outside_scale_rejected(self, client: AsyncClient, session, survey):
        likert, _ = survey.questions
        likert_id = likert.id
        url = self._url(survey)
        for answer in ("inf", "1e999", 9, 0):
            resp = await client.post(
                url,
                json={"answers": {str(likert_id): answer}, "consent_given": True},
            )
            assert resp.status_code == 400
            assert resp.json()["detail"]["invalid_questions"] == [str(likert_id)]

        assert (await session.execute(select(Response))).scalars().all() == []
