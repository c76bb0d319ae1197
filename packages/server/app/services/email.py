"""
Transactional email through the Resend REST API.

Sending never raises: a missing API key or a delivery error is logged and
reported in the returned ``EmailResult``.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from app.core.config import get_settings

from psicomapa_shared.schemas.billing import PLANS, PlanType

log = structlog.get_logger()

RESEND_API_URL = "https://api.resend.com/emails"
REPLY_TO = "suporte@psicomapa.com.br"
REQUEST_TIMEOUT = 10.0

_TAG_RE = re.compile(r"<[^>]*>")


@dataclass
class EmailResult:
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None


async def send_email(to: str, subject: str, html_body: str, text: Optional[str] = None) -> EmailResult:
    settings = get_settings()
    if not settings.resend_api_key:
        log.warning("email.not_configured", to=to, subject=subject)
        return EmailResult(success=False, error="Resend not configured")

    payload = {
        "from": settings.email_from,
        "to": [to],
        "subject": subject,
        "html": html_body,
        "text": text or _TAG_RE.sub("", html_body),
        "reply_to": REPLY_TO,
    }
    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            response = await client.post(
                RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            )
            response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        log.error("email.send_failed", to=to, status=exc.response.status_code, body=exc.response.text[:200])
        return EmailResult(success=False, error=f"HTTP {exc.response.status_code}")
    except httpx.HTTPError as exc:
        log.error("email.send_error", to=to, error=str(exc))
        return EmailResult(success=False, error=str(exc) or exc.__class__.__name__)

    email_id = response.json().get("id")
    log.info("email.sent", to=to, email_id=email_id)
    return EmailResult(success=True, id=email_id)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def _layout(title: str, body: str, action_url: str, action_label: str) -> str:
    url = html.escape(action_url, quote=True)
    return f"""<!DOCTYPE html>
<html lang="pt-BR">
<body style="margin:0;padding:0;font-family:Arial,sans-serif;background-color:#f5f5f0;">
  <div style="max-width:600px;margin:40px auto;background:#ffffff;border-radius:12px;padding:40px;">
    <p style="margin:0 0 4px;color:#5C6B4A;font-size:22px;font-weight:700;">PsicoMapa</p>
    <p style="margin:0 0 30px;color:#666;font-size:14px;">Diagnóstico NR-1</p>
    <h1 style="margin:0 0 20px;color:#5C6B4A;font-size:24px;">{html.escape(title)}</h1>
    {body}
    <p style="text-align:center;padding:20px 0;">
      <a href="{url}" style="display:inline-block;background-color:#5C6B4A;color:#ffffff;text-decoration:none;padding:16px 40px;border-radius:8px;font-weight:600;">{html.escape(action_label)}</a>
    </p>
    <p style="color:#666;font-size:14px;">Ou copie e cole este link no seu navegador:<br>
      <a href="{url}" style="color:#5C6B4A;word-break:break-all;">{url}</a></p>
    <p style="margin-top:40px;color:#999;font-size:12px;text-align:center;">PsicoMapa - Gestão de riscos psicossociais</p>
  </div>
</body>
</html>"""


def _paragraph(text: str) -> str:
    return f'<p style="margin:0 0 20px;color:#333;font-size:16px;line-height:1.6;">{text}</p>'


async def send_welcome_email(
    to: str, name: str, company_name: str, plan: str, password_setup_url: str
) -> EmailResult:
    """Sent after a paid signup. The account has no password until the link is used."""
    try:
        plan_name = PLANS[PlanType(plan)].name
    except ValueError:
        plan_name = plan
    first_name = name.split(" ")[0] if name else ""
    body = (
        _paragraph(f"Olá, <strong>{html.escape(name)}</strong>!")
        + _paragraph(
            f"Seu pagamento foi confirmado e sua conta para <strong>{html.escape(company_name)}</strong> "
            f"está pronta! Você escolheu o plano <strong>{html.escape(plan_name)}</strong>."
        )
        + _paragraph("<strong>Último passo:</strong> defina sua senha para acessar a plataforma.")
    )
    return await send_email(
        to,
        f"Bem-vindo ao PsicoMapa, {first_name}!",
        _layout("Bem-vindo ao PsicoMapa!", body, password_setup_url, "Definir Minha Senha"),
    )


async def send_invitation_email(
    to: str, name: str, company_name: str, inviter_name: str, password_setup_url: str
) -> EmailResult:
    body = (
        _paragraph(f"Olá, <strong>{html.escape(name)}</strong>!")
        + _paragraph(
            f"{html.escape(inviter_name)} convidou você para acessar o painel de "
            f"<strong>{html.escape(company_name)}</strong> no PsicoMapa."
        )
        + _paragraph("Defina sua senha para ativar o acesso.")
    )
    return await send_email(
        to,
        f"Você foi convidado para {company_name} no PsicoMapa",
        _layout("Convite para o PsicoMapa", body, password_setup_url, "Aceitar Convite"),
    )


async def send_password_reset_email(to: str, name: str, reset_url: str) -> EmailResult:
    body = (
        _paragraph(f"Olá, <strong>{html.escape(name)}</strong>!")
        + _paragraph(
            "Recebemos uma solicitação para redefinir sua senha. "
            "O link abaixo expira em 60 minutos."
        )
        + _paragraph("Se você não fez esta solicitação, ignore este email.")
    )
    return await send_email(
        to,
        "Redefinição de senha - PsicoMapa",
        _layout("Redefinir senha", body, reset_url, "Redefinir Senha"),
    )
