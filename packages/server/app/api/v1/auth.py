"""
Authentication endpoints.

- Email/password registration (creates the company and its responsavel)
- Login, refresh, logout with JWT session cookies
- Password reset and first-access set-password links
"""

from __future__ import annotations

import uuid
from typing import Optional

import jwt
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import (
    CSRF_COOKIE,
    PURPOSE_PASSWORD_RESET,
    PURPOSE_PASSWORD_SETUP,
    SESSION_COOKIE,
    create_jwt,
    create_password_token,
    decode_jwt,
    generate_csrf_token,
    hash_password,
    is_jwt_revoked,
    password_link,
    revoke_jwt,
    seconds_until_expiry,
    verify_password,
)
from app.core.config import get_settings
from app.core.database import get_session
from app.core.rate_limit import rate_limit
from app.models.organization import Organization
from app.models.user import User
from app.models.user_org import UserOrg
from app.services.email import send_password_reset_email
from app.services.events import dispatch_event
from app.services.organizations import provision_organization

from psicomapa_shared.schemas.events import EventType
from psicomapa_shared.schemas.users import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    SetPasswordRequest,
)

log = structlog.get_logger()
settings = get_settings()
router = APIRouter()

INVALID_CREDENTIALS = "Email ou senha incorretos"


def _set_session_cookies(response: Response, token: str, csrf: str) -> None:
    """Set the session JWT and CSRF cookies on a response."""
    max_age = settings.jwt_expire_minutes * 60
    secure = settings.is_production
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=secure,
        samesite="lax",
        path="/",
        max_age=max_age,
    )
    response.set_cookie(
        key=CSRF_COOKIE,
        value=csrf,
        httponly=False,  # JS must read this
        secure=secure,
        samesite="lax",
        path="/",
        max_age=max_age,
    )


def _start_session(response: Response, user: User) -> None:
    token, _jti = create_jwt(user.id)
    _set_session_cookies(response, token, generate_csrf_token())


async def _user_by_email(email: str, session: AsyncSession) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Registration / Login
# ---------------------------------------------------------------------------

@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=201,
    dependencies=[Depends(rate_limit("auth"))],
)
async def register(
    body: RegisterRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Register a company admin together with their organization."""
    if await _user_by_email(body.email, session):
        raise HTTPException(status_code=409, detail="Este email já está cadastrado")

    user = User(
        email=body.email.lower(),
        full_name=body.full_name.strip(),
        password_hash=hash_password(body.password),
    )
    session.add(user)
    await session.flush()

    org = await provision_organization(
        session,
        user,
        body.organization_name.strip(),
        industry=body.industry,
        size=body.size.value if body.size else None,
    )
    await dispatch_event(
        session,
        EventType.ORGANIZATION_CREATED,
        org.id,
        {"organization_name": org.name, "slug": org.slug, "owner_email": user.email},
    )

    _start_session(response, user)
    log.info("user.registered", user_id=str(user.id), org_id=str(org.id))
    return AuthResponse(
        user_id=str(user.id),
        email=user.email,
        org_slug=org.slug,
        message="Cadastro realizado com sucesso",
    )


@router.post("/login", response_model=AuthResponse, dependencies=[Depends(rate_limit("auth"))])
async def login(
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate with email/password and receive a JWT session."""
    user = await _user_by_email(body.email, session)
    if not user or not user.password_hash:
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

    if not verify_password(body.password, user.password_hash):
        log.warning("auth.login_failure", user_id=str(user.id), reason="bad_password")
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

    result = await session.execute(
        select(UserOrg, Organization.slug)
        .join(Organization, Organization.id == UserOrg.org_id)
        .where(UserOrg.user_id == user.id)
        .order_by(Organization.name)
    )
    memberships = result.all()
    active = [(uo, slug) for uo, slug in memberships if uo.is_active]

    if memberships and not active and not user.is_super_admin:
        log.warning("auth.login_failure", user_id=str(user.id), reason="inactive")
        raise HTTPException(status_code=403, detail="Seu acesso foi desativado. Contate o responsável pela empresa.")

    _start_session(response, user)
    log.info("auth.login_success", user_id=str(user.id))
    return AuthResponse(
        user_id=str(user.id),
        email=user.email,
        org_slug=active[0][1] if active else None,
        message="Login realizado com sucesso",
    )


# ---------------------------------------------------------------------------
# Session Management
# ---------------------------------------------------------------------------

@router.post("/refresh")
async def refresh_session(request: Request, response: Response):
    """Refresh the current JWT session by issuing a new token."""
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        raise HTTPException(status_code=401, detail="No active session")

    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        raise HTTPException(status_code=401, detail="Session has been revoked")

    new_token, _new_jti = create_jwt(uuid.UUID(payload["sub"]))
    if jti:
        await revoke_jwt(jti, ttl_seconds=seconds_until_expiry(payload))

    _set_session_cookies(response, new_token, generate_csrf_token())
    return {"message": "Session refreshed"}


@router.post("/logout")
async def logout(request: Request, response: Response):
    """Invalidate the current session."""
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        try:
            payload = decode_jwt(token)
        except jwt.PyJWTError:
            payload = {}
            log.info("auth.logout_invalid_token")
        if payload.get("jti"):
            await revoke_jwt(payload["jti"], ttl_seconds=seconds_until_expiry(payload))

    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(CSRF_COOKIE, path="/")
    return {"message": "Logged out"}


# ---------------------------------------------------------------------------
# Password reset / first access
# ---------------------------------------------------------------------------

@router.post("/forgot-password", dependencies=[Depends(rate_limit("auth"))])
async def forgot_password(
    body: ForgotPasswordRequest,
    session: AsyncSession = Depends(get_session),
):
    """Email a reset link. Always answers the same way so emails can't be probed."""
    user = await _user_by_email(body.email, session)
    if user:
        link = password_link(create_password_token(user.id, PURPOSE_PASSWORD_RESET))
        await send_password_reset_email(user.email, user.full_name, link)
        log.info("auth.password_reset_requested", user_id=str(user.id))
    return {"message": "Se o email estiver cadastrado, você receberá um link para redefinir sua senha."}


@router.post("/set-password", dependencies=[Depends(rate_limit("auth"))])
async def set_password(
    body: SetPasswordRequest,
    session: AsyncSession = Depends(get_session),
):
    """Consume a reset/setup token and set the user's password."""
    try:
        payload = decode_jwt(body.token, (PURPOSE_PASSWORD_RESET, PURPOSE_PASSWORD_SETUP))
    except jwt.PyJWTError:
        raise HTTPException(status_code=400, detail="Link inválido ou expirado")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        raise HTTPException(status_code=400, detail="Este link já foi utilizado")

    result = await session.execute(select(User).where(User.id == uuid.UUID(payload["sub"])))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=400, detail="Link inválido ou expirado")

    user.password_hash = hash_password(body.password)
    session.add(user)
    await session.flush()

    if jti:
        await revoke_jwt(jti, ttl_seconds=seconds_until_expiry(payload))

    log.info("auth.password_set", user_id=str(user.id), purpose=payload.get("purpose"))
    return {"message": "Senha definida com sucesso"}
