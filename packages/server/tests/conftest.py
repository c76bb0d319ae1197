"""
Shared fixtures: in-memory SQLite database, app client and seeded tenants.

Redis is replaced by an AsyncMock so rate limits always pass and no token is
ever revoked unless a test says otherwise.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import app.models  # noqa: F401
from app.core.auth import create_jwt, hash_password
from app.core.database import get_session
from app.main import app
from app.models.assessment import Assessment
from app.models.organization import Organization
from app.models.questionnaire import Question, Questionnaire
from app.models.subscription import Subscription
from app.models.user import User
from app.models.user_org import UserOrg

TEST_PASSWORD = "senha-segura-123"


@pytest.fixture
def fake_redis():
    redis = AsyncMock()
    redis.incr = AsyncMock(return_value=1)
    redis.ttl = AsyncMock(return_value=60)
    redis.exists = AsyncMock(return_value=0)
    redis.setex = AsyncMock()
    with patch("app.core.auth.get_redis", AsyncMock(return_value=redis)), \
            patch("app.core.rate_limit.get_redis", AsyncMock(return_value=redis)):
        yield redis


@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(test_engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as test_session:
        yield test_session


@pytest.fixture
async def client(session: AsyncSession, fake_redis) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

def bearer(user: User) -> dict[str, str]:
    token, _ = create_jwt(user.id)
    return {"Authorization": f"Bearer {token}"}


async def add_member(
    session: AsyncSession,
    org: Organization,
    email: str,
    role: str = "membro",
    is_active: bool = True,
    password: str | None = TEST_PASSWORD,
) -> User:
    user = User(
        email=email,
        full_name=email.split("@")[0].title(),
        password_hash=hash_password(password) if password else None,
    )
    session.add(user)
    await session.flush()
    session.add(UserOrg(user_id=user.id, org_id=org.id, role=role, is_active=is_active))
    await session.commit()
    return user


async def add_subscription(session: AsyncSession, org: Organization, plan: str, status: str = "active") -> Subscription:
    subscription = Subscription(org_id=org.id, plan=plan, status=status)
    session.add(subscription)
    await session.commit()
    return subscription


@pytest.fixture
async def tenant(session: AsyncSession) -> SimpleNamespace:
    """An organization with a responsavel and a plain member."""
    org = Organization(name="Acme Indústria", slug="acme")
    session.add(org)
    await session.flush()
    owner = await add_member(session, org, "ana@acme.com.br", role="responsavel_empresa")
    member = await add_member(session, org, "bruno@acme.com.br")
    return SimpleNamespace(
        org=org,
        owner=owner,
        member=member,
        owner_headers=bearer(owner),
        member_headers=bearer(member),
        base=f"/api/v1/orgs/{org.slug}",
    )


@pytest.fixture
async def survey(session: AsyncSession, tenant) -> SimpleNamespace:
    """An active assessment over a small org questionnaire."""
    questionnaire = Questionnaire(
        org_id=tenant.org.id,
        title="Diagnóstico Acme",
        status="published",
        lgpd_consent_text="Concordo com o tratamento dos meus dados.",
    )
    session.add(questionnaire)
    await session.flush()
    questions = [
        Question(
            questionnaire_id=questionnaire.id,
            text="Sinto que tenho mais tarefas do que consigo fazer.",
            question_type="likert_scale",
            category="demands_and_pace",
            order_index=1,
            min_value=1,
            max_value=5,
        ),
        Question(
            questionnaire_id=questionnaire.id,
            text="O que mais atrapalha sua rotina?",
            question_type="text",
            category="demands_and_pace",
            order_index=2,
            is_required=False,
        ),
    ]
    session.add_all(questions)
    today = date.today()
    assessment = Assessment(
        org_id=tenant.org.id,
        questionnaire_id=questionnaire.id,
        title="Diagnóstico 2026",
        status="active",
        start_date=today - timedelta(days=1),
        end_date=today + timedelta(days=30),
        created_by=tenant.owner.id,
    )
    session.add(assessment)
    await session.commit()
    return SimpleNamespace(questionnaire=questionnaire, questions=questions, assessment=assessment)