#!/usr/bin/env python3
"""Seed a development database with the locked questionnaire templates and a demo organization.

Usage:
    uv run python scripts/seed_dev_data.py

Requires PM_DATABASE_URL (or defaults to localhost). Safe to run repeatedly.
"""

import asyncio
import os
import sys
import uuid

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../packages/server")))
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../packages/shared")))

from app.core.auth import hash_password  # noqa: E402
from app.core.database import get_session_context  # noqa: E402
from app.models import Department, Organization, Question, Questionnaire, User, UserOrg  # noqa: E402

from psicomapa_shared.schemas.questionnaires import CLIMA_TEMPLATE_ID, NR1_TEMPLATE_ID  # noqa: E402

# Deterministic UUIDs for reproducibility
ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
ADMIN_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000010")
DEPARTMENT_IDS = [uuid.UUID(f"00000000-0000-0000-0000-0000000001{i:02d}") for i in range(4)]

FREQUENCY = {"1": "Nunca", "2": "Raramente", "3": "Às vezes", "4": "Frequentemente", "5": "Sempre"}
MONTHLY = {"1": "Nunca", "2": "Raramente", "3": "Às vezes", "4": "Quase sempre", "5": "Sempre"}

# (category, text, question_type, risk_inverted, allow_skip)
NR1_QUESTIONS = [
    ("demands_and_pace", "Sinto que tenho mais tarefas do que consigo fazer dentro do meu horário de trabalho.", "likert_scale", True, False),
    ("demands_and_pace", "Preciso trabalhar em um ritmo acelerado para dar conta de tudo.", "likert_scale", True, False),
    ("demands_and_pace", "Meu trabalho costuma ser muito repetitivo ou parado, com pouca variação e pouco desafio.", "likert_scale", True, False),
    ("demands_and_pace", "Se você pudesse mudar UMA coisa na sua rotina de trabalho para reduzir o estresse, o que seria?", "text", False, False),
    ("autonomy_clarity_change", "Tenho liberdade para decidir como fazer minhas tarefas e organizar minha rotina.", "likert_scale", False, False),
    ("autonomy_clarity_change", "Sei claramente quais são minhas prioridades e o que é esperado de mim.", "likert_scale", False, False),
    ("autonomy_clarity_change", "Mudanças importantes são comunicadas de última hora, sem tempo para me preparar.", "likert_scale", True, False),
    ("autonomy_clarity_change", "O que mais atrapalha sua organização e planejamento no trabalho?", "text", False, False),
    ("leadership_recognition", "Sinto que sou tratado(a) com respeito pela minha liderança direta.", "likert_scale", False, False),
    ("leadership_recognition", "Meu trabalho é reconhecido e valorizado.", "likert_scale", False, False),
    ("leadership_recognition", "Tenho medo de falar abertamente com minha liderança sobre problemas ou dificuldades.", "likert_scale", True, False),
    ("leadership_recognition", "Se você pudesse pedir UMA mudança à sua liderança, qual seria?", "text", False, False),
    ("relationships_communication", "Posso contar com a ajuda dos meus colegas quando preciso.", "likert_scale", False, False),
    ("relationships_communication", "Existe desrespeito, fofoca ou conflito frequente na minha equipe.", "likert_scale", True, False),
    ("relationships_communication", "Sinto que as decisões da empresa são justas e transparentes.", "likert_scale", False, False),
    ("relationships_communication", "Que tipo de injustiça ou dificuldade de comunicação você percebe no seu ambiente de trabalho?", "text", False, False),
    ("work_life_health", "O trabalho interfere no meu descanso, sono ou tempo com família/amigos.", "likert_scale", True, False),
    ("work_life_health", "Fico preocupado(a) com o trabalho mesmo fora do expediente.", "likert_scale", True, False),
    ("work_life_health", "Sinto-me esgotado(a) física ou emocionalmente por causa do trabalho.", "likert_scale", True, False),
    ("work_life_health", "O trabalho já impactou sua saúde física ou mental? Se sim, como?", "text", False, False),
    ("violence_harassment", "Já presenciei ou sofri tratamento humilhante, gritos ou ameaças no trabalho.", "likert_scale", True, True),
    ("violence_harassment", "Já presenciei ou sofri assédio moral ou sexual no ambiente de trabalho.", "likert_scale", True, True),
    ("violence_harassment", "Tenho medo de sofrer represália se fizer uma denúncia ou reclamação.", "likert_scale", True, True),
    ("violence_harassment", "Caso queira descrever alguma situação grave que vivenciou ou presenciou, utilize este espaço (opcional e sigiloso):", "text", False, True),
    ("anchors", "De 0 a 10, qual o seu nível de satisfação geral com o trabalho?", "likert_scale", False, False),
    ("anchors", "Se pudesse, você continuaria trabalhando nesta empresa pelos próximos 2 anos?", "single_choice", False, False),
    ("anchors", "Como você avalia sua saúde física e mental atualmente?", "single_choice", False, False),
    ("suggestions", "Cite até 3 coisas que te ajudam a se sentir bem no trabalho:", "text", False, False),
    ("suggestions", "Cite até 3 coisas que mais te atrapalham ou causam desconforto no trabalho:", "text", False, False),
    ("suggestions", "Se você pudesse sugerir UMA ação prática que a empresa deveria implementar para melhorar o ambiente de trabalho, qual seria?", "text", False, False),
]

NR1_OPTIONS = {
    "Se pudesse, você continuaria trabalhando nesta empresa pelos próximos 2 anos?": [
        "Sim, com certeza", "Provavelmente sim", "Não sei", "Provavelmente não", "Não, com certeza",
    ],
    "Como você avalia sua saúde física e mental atualmente?": [
        "Excelente", "Boa", "Regular", "Ruim", "Muito ruim",
    ],
}

# Question ids are fixed: climate analytics maps each one to a theme.
CLIMA_QUESTIONS = [
    ("bem_estar", "Como você está se sentindo no trabalho este mês?", "likert_scale"),
    ("carga_trabalho", "Neste mês, consegui dar conta do meu trabalho sem me sentir sobrecarregado(a).", "likert_scale"),
    ("carga_trabalho", "Neste mês, consegui concluir minhas principais tarefas dentro do meu horário normal de trabalho.", "likert_scale"),
    ("lideranca", "Neste mês, senti que minha liderança me apoiou quando precisei.", "likert_scale"),
    ("lideranca", "Neste mês, recebi orientações claras sobre prioridades e expectativas do meu trabalho.", "likert_scale"),
    ("lideranca", "Neste mês, senti que pude falar abertamente com minha liderança.", "likert_scale"),
    ("clima", "Neste mês, percebi um ambiente respeitoso e colaborativo no dia a dia.", "likert_scale"),
    ("clima", "Neste mês, senti segurança para trazer dúvidas, problemas ou erros sem medo de consequências injustas.", "likert_scale"),
    ("satisfacao", "De 0 a 10, quão satisfeito(a) você está hoje com seu trabalho nesta empresa?", "likert_scale"),
    ("satisfacao", "Se quiser, explique o motivo da sua nota.", "text"),
]

DEMO_DEPARTMENTS = ["Administrativo", "Comercial", "Operações", "Recursos Humanos"]


def nr1_question(index: int, row: tuple) -> Question:
    category, text, question_type, risk_inverted, allow_skip = row
    question = Question(
        id=uuid.UUID(f"a1111111-{index:04d}-4000-8000-{index:012d}"),
        questionnaire_id=NR1_TEMPLATE_ID,
        text=text,
        question_type=question_type,
        category=category,
        order_index=index,
        is_required=question_type == "likert_scale",
        allow_skip=allow_skip,
        risk_inverted=risk_inverted,
        options=NR1_OPTIONS.get(text),
    )
    if question_type == "likert_scale":
        if category == "anchors":
            question.min_value, question.max_value = 0, 10
            question.scale_labels = {str(n): str(n) for n in range(11)}
        else:
            question.min_value, question.max_value = 1, 5
            question.scale_labels = FREQUENCY
    return question


def clima_question(index: int, row: tuple) -> Question:
    category, text, question_type = row
    question = Question(
        id=uuid.UUID(f"c1111111-{index:04d}-4000-8000-{index:012d}"),
        questionnaire_id=CLIMA_TEMPLATE_ID,
        text=text,
        question_type=question_type,
        category=category,
        order_index=index,
        is_required=question_type != "text",
        risk_inverted=False,
    )
    if index == 9:
        question.min_value, question.max_value = 0, 10
        question.scale_labels = {"0": "Totalmente insatisfeito(a)", "10": "Totalmente satisfeito(a)"}
    elif question_type == "likert_scale":
        question.min_value, question.max_value = 1, 5
        question.scale_labels = MONTHLY
    return question


async def seed_templates(session) -> None:
    templates = [
        (
            Questionnaire(
                id=NR1_TEMPLATE_ID,
                title="Diagnóstico de Riscos Psicossociais",
                description=(
                    "Questionário completo para mapeamento de fatores de risco psicossocial "
                    "relacionados ao trabalho, baseado em NR-1 e NR-17."
                ),
                questionnaire_type="nr1_full",
                status="published",
                is_locked=True,
            ),
            [nr1_question(i, q) for i, q in enumerate(NR1_QUESTIONS, start=1)],
        ),
        (
            Questionnaire(
                id=CLIMA_TEMPLATE_ID,
                title="Pesquisa de Clima Mensal",
                description="Questionário de acompanhamento mensal baseado na NR-1.",
                questionnaire_type="pulse_monthly",
                status="published",
                is_locked=True,
            ),
            [clima_question(i, q) for i, q in enumerate(CLIMA_QUESTIONS, start=1)],
        ),
    ]

    for questionnaire, questions in templates:
        if await session.get(Questionnaire, questionnaire.id):
            print(f"Template already present: {questionnaire.title}")
            continue
        session.add(questionnaire)
        await session.flush()
        session.add_all(questions)
        print(f"Created template {questionnaire.title} with {len(questions)} questions.")


async def seed_demo_org(session, password: str) -> None:
    if await session.get(Organization, ORG_ID):
        print("Demo organization already present.")
        return

    session.add(Organization(id=ORG_ID, name="Acme Indústria", slug="acme-industria", industry="Indústria", size="51-200"))
    session.add(
        User(
            id=ADMIN_USER_ID,
            email="responsavel@acme.dev",
            full_name="Ana Responsável",
            password_hash=hash_password(password),
        )
    )
    await session.flush()
    session.add(UserOrg(user_id=ADMIN_USER_ID, org_id=ORG_ID, role="responsavel_empresa"))
    for dept_id, name in zip(DEPARTMENT_IDS, DEMO_DEPARTMENTS):
        session.add(Department(id=dept_id, org_id=ORG_ID, name=name))
    print("Created demo organization acme-industria (responsavel@acme.dev).")


async def seed(password: str = "psicomapa-dev"):
    async with get_session_context() as session:
        await seed_templates(session)
        await seed_demo_org(session, password)

    print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(seed())
