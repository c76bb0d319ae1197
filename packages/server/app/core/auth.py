"""
Authentication and Authorization for PsicoMapa.

Supports:
- Email/password sessions carried in a JWT cookie (or a Bearer header for API clients)
- Purpose-scoped tokens for password setup and reset links
- JWT revocation list in Redis
- Role-based authorization dependencies (responsavel_empresa, membro, super admin)
- Org-scoping for RLS
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import get_session, set_org_context
from app.core.redis import get_redis
from app.models.organization import Organization
from app.models.user import User
from app.models.user_org import UserOrg

from psicomapa_shared.schemas.common import Role

log = structlog.get_logger()
settings = get_settings()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)

SESSION_COOKIE = "pm_session"
CSRF_COOKIE = "pm_csrf"

PURPOSE_SESSION = "session"
PURPOSE_PASSWORD_RESET = "password_reset"
PURPOSE_PASSWORD_SETUP = "password_setup"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    *,
    purpose: str = PURPOSE_SESSION,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "purpose": purpose,
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def create_password_token(user_id: uuid.UUID, purpose: str = PURPOSE_PASSWORD_RESET) -> str:
    """Single-use token embedded in set-password and reset links."""
    token, _jti = create_jwt(
        user_id,
        purpose=purpose,
        expires_delta=timedelta(minutes=settings.password_reset_expire_minutes),
    )
    return token


def password_link(token: str) -> str:
    return f"{settings.site_url.rstrip('/')}/auth/set-password?token={token}"


def decode_jwt(token: str, purpose: str | tuple[str, ...] = PURPOSE_SESSION) -> dict:
    """Decode and verify a JWT and its purpose. Raises jwt.PyJWTError on failure."""
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    allowed = (purpose,) if isinstance(purpose, str) else purpose
    if payload.get("purpose", PURPOSE_SESSION) not in allowed:
        raise jwt.InvalidTokenError("Token purpose mismatch")
    return payload


def seconds_until_expiry(payload: dict) -> int:
    exp = payload.get("exp")
    if not exp:
        return settings.jwt_expire_minutes * 60
    return max(int(exp - datetime.now(timezone.utc).timestamp()), 1)


# ---------------------------------------------------------------------------
# JWT Revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_jwt(jti: str, ttl_seconds: int = 3600) -> None:
    """Add a JWT ID to the revocation list in Redis."""
    redis = await get_redis()
    await redis.setex(f"jwt:revoked:{jti}", ttl_seconds, "1")


async def is_jwt_revoked(jti: str) -> bool:
    """Check if a JWT ID has been revoked."""
    redis = await get_redis()
    return await redis.exists(f"jwt:revoked:{jti}") > 0


# ---------------------------------------------------------------------------
# CSRF Token
# ---------------------------------------------------------------------------

def generate_csrf_token() -> str:
    """Generate a random CSRF token."""
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

class AuthenticatedUser:
    """Container for an authenticated user + their org context."""

    def __init__(self, user: User, org: Organization, user_org: UserOrg):
        self.user = user
        self.org = org
        self.user_org = user_org
        self.user_id = user.id
        self.org_id = org.id
        self.role = user_org.role
        self.is_super_admin = user.is_super_admin

    @property
    def is_responsavel(self) -> bool:
        return self.is_super_admin or self.role == Role.RESPONSAVEL.value


def _session_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip()
    return request.cookies.get(SESSION_COOKIE)


async def _resolve_org(org_slug: str, session: AsyncSession) -> Organization:
    """Resolve an org by slug, raise 404 if not found."""
    result = await session.execute(
        select(Organization).where(Organization.slug == org_slug)
    )
    org = result.scalar_one_or_none()
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return org


async def _user_from_token(token: str, session: AsyncSession) -> User:
    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        raise HTTPException(status_code=401, detail="Session has been revoked")

    result = await session.execute(select(User).where(User.id == uuid.UUID(payload["sub"])))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def _authenticate_jwt(
    token: str, org: Organization, session: AsyncSession
) -> AuthenticatedUser:
    """Authenticate a user via session JWT and check org membership."""
    user = await _user_from_token(token, session)

    result = await session.execute(
        select(UserOrg).where(UserOrg.user_id == user.id, UserOrg.org_id == org.id)
    )
    user_org = result.scalar_one_or_none()
    if not user_org:
        if user.is_super_admin:
            # Platform operators act as the company admin in any org
            user_org = UserOrg(user_id=user.id, org_id=org.id, role=Role.RESPONSAVEL.value)
        else:
            raise HTTPException(status_code=404, detail="Organization not found")

    if not user_org.is_active:
        log.warning("auth.inactive_member", user_id=str(user.id), org_id=str(org.id))
        raise HTTPException(status_code=403, detail="Seu acesso a esta organização foi desativado")

    return AuthenticatedUser(user=user, org=org, user_org=user_org)


async def get_authenticated_user(
    request: Request,
    orgSlug: str,
    authorization: Optional[str] = Depends(api_key_header),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    """Main authentication dependency for org-scoped routes."""
    org = await _resolve_org(orgSlug, session)
    await set_org_context(session, org.id)

    token = _session_token(request, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    auth_user = await _authenticate_jwt(token, org, session)
    request.state.auth = auth_user
    return auth_user


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Depends(api_key_header),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Session user for routes outside an org scope."""
    token = _session_token(request, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")
    return await _user_from_token(token, session)


async def get_optional_user(
    request: Request,
    authorization: Optional[str] = Depends(api_key_header),
    session: AsyncSession = Depends(get_session),
) -> Optional[User]:
    """Session user if a valid session is present, otherwise None."""
    token = _session_token(request, authorization)
    if not token:
        return None
    try:
        return await _user_from_token(token, session)
    except HTTPException:
        return None


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

async def require_member(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Any active org member can access this endpoint."""
    return auth


async def require_responsavel(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Requires the company admin role (or a super admin)."""
    if not auth.is_responsavel:
        raise HTTPException(
            status_code=403,
            detail="Apenas o responsável pela empresa pode realizar esta ação",
        )
    return auth


async def require_super_admin(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    if not auth.is_super_admin:
        raise HTTPException(status_code=403, detail="Super admin access required")
    return auth
