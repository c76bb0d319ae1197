"""
CSV parsing for the bulk import endpoints (members, participants, responses).

Files exported from Excel in pt-BR use ``;`` as separator and carry a BOM,
so both are detected. Lines starting with ``#`` are instructions and skipped.
"""

from __future__ import annotations

import csv
import io
import re
import secrets
import time
import unicodedata
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from email_validator import EmailNotValidError, validate_email
from fastapi import HTTPException

from psicomapa_shared.schemas.common import Role
from psicomapa_shared.schemas.users import BULK_IMPORT_MAX_ROWS, PERSON_NAME_PATTERN

MAX_FILE_BYTES = 10 * 1024 * 1024
MAX_RESPONSE_ROWS = 10000
MAX_PARTICIPANT_ROWS = 5000

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

USER_COLUMNS = {
    "email": ("email", "emailaddress", "mail", "correio"),
    "full_name": ("nome", "name", "fullname", "nomecompleto", "usuario"),
    "department": ("departamento", "department", "dept", "setor", "area", "equipe"),
    "role": ("cargo", "role", "funcao", "perfil", "tipo", "permissao"),
}

PARTICIPANT_COLUMNS = {
    "email": ("email", "emailaddress", "mail", "correio"),
    "name": ("nome", "name", "fullname", "nomecompleto"),
    "department": ("departamento", "department", "dept", "setor", "area"),
    "role": ("cargo", "role", "funcao"),
}

RESPONSE_COLUMNS = {
    "question_id": ("questionid", "perguntaid"),
    "response_text": ("responsetext", "resposta", "response"),
    "value": ("value", "valor"),
    "anonymous_id": ("anonymousid", "participante"),
    "created_at": ("createdat", "data"),
}

ROLE_ALIASES = {
    "": Role.MEMBRO,
    "membro": Role.MEMBRO,
    "member": Role.MEMBRO,
    "colaborador": Role.MEMBRO,
    "responsavel": Role.RESPONSAVEL,
    "responsavelempresa": Role.RESPONSAVEL,
    "admin": Role.RESPONSAVEL,
}


# ---------------------------------------------------------------------------
# Low-level helpers
# ---------------------------------------------------------------------------

def decode_upload(data: bytes) -> str:
    """Decode an uploaded file, accepting UTF-8 (with or without BOM) and Latin-1."""
    if len(data) > MAX_FILE_BYTES:
        size_mb = len(data) / 1024 / 1024
        raise HTTPException(
            status_code=400,
            detail=f"Arquivo muito grande ({size_mb:.2f}MB). Máximo: 10MB",
        )
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def sanitize(value: Optional[str], max_length: int = 1000) -> str:
    if not value:
        return ""
    return _CONTROL_CHARS.sub("", str(value).strip())[:max_length]


def normalize_column(name: str) -> str:
    """Lowercase, accent-free, alphanumeric-only column key ("Nome Completo" -> "nomecompleto")."""
    ascii_name = unicodedata.normalize("NFD", name.strip().lower())
    ascii_name = "".join(ch for ch in ascii_name if unicodedata.category(ch) != "Mn")
    return re.sub(r"[^a-z0-9]", "", ascii_name)


def detect_delimiter(lines: list[str]) -> str:
    first = next((line for line in lines if line.strip()), "")
    return ";" if ";" in first else ","


def anonymous_import_id() -> str:
    return f"import-{int(time.time() * 1000):x}-{secrets.token_hex(3)}"


@dataclass
class Table:
    """Rows keyed by canonical field name, with their 1-based line numbers."""

    rows: list[tuple[int, dict[str, str]]] = field(default_factory=list)
    columns: set[str] = field(default_factory=set)


def read_table(content: str, columns: dict[str, tuple[str, ...]]) -> Table:
    lines = [line for line in content.lstrip("\ufeff").splitlines() if not line.lstrip().startswith("#")]
    table = Table()
    if not lines:
        return table

    reader = csv.DictReader(io.StringIO("\n".join(lines)), delimiter=detect_delimiter(lines))
    mapping: dict[str, str] = {}
    for header in reader.fieldnames or []:
        key = normalize_column(header or "")
        for canonical, aliases in columns.items():
            if key == normalize_column(canonical) or key in aliases:
                mapping.setdefault(header, canonical)
                break
    table.columns = set(mapping.values())

    for index, raw in enumerate(reader):
        row = {canonical: "" for canonical in columns}
        for header, canonical in mapping.items():
            row[canonical] = raw.get(header) or ""
        if any(value.strip() for value in row.values()):
            table.rows.append((index + 2, row))
    return table


def _require_columns(table: Table, required: tuple[str, ...]) -> None:
    missing = [name for name in required if name not in table.columns]
    if missing:
        raise HTTPException(
            status_code=400,
            detail="; ".join(f'Coluna "{name}" não encontrada no arquivo' for name in missing),
        )


def _valid_email(value: str) -> Optional[str]:
    try:
        return validate_email(value, check_deliverability=False).normalized.lower()
    except EmailNotValidError:
        return None


def _csv_text(header: list[str], rows: list[list[str]], comments: list[str] = ()) -> str:
    buf = io.StringIO()
    for comment in comments:
        buf.write(f"{comment}\n")
    writer = csv.writer(buf, delimiter=";", lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return "\ufeff" + buf.getvalue()


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@dataclass
class UserImportRow:
    line: int
    email: str
    full_name: str
    role: Role
    department: Optional[str] = None


def parse_user_rows(content: str) -> tuple[list[UserImportRow], list[tuple[int, Optional[str], str]]]:
    """Valid rows plus (line, email, error) for the rejected ones."""
    table = read_table(content, USER_COLUMNS)
    _require_columns(table, ("email", "full_name"))
    if len(table.rows) > BULK_IMPORT_MAX_ROWS:
        raise HTTPException(
            status_code=400,
            detail=f"Limite de {BULK_IMPORT_MAX_ROWS} usuários excedido ({len(table.rows)} linhas)",
        )

    valid: list[UserImportRow] = []
    errors: list[tuple[int, Optional[str], str]] = []
    seen: set[str] = set()
    for line, row in table.rows:
        raw_email = sanitize(row["email"], 255)
        email = _valid_email(raw_email)
        if not email:
            errors.append((line, raw_email or None, "Email inválido"))
            continue
        if email in seen:
            errors.append((line, email, f'Email "{email}" duplicado no arquivo'))
            continue
        seen.add(email)

        full_name = sanitize(row["full_name"], 100)
        if len(full_name) < 2 or not re.match(PERSON_NAME_PATTERN, full_name):
            errors.append((line, email, "Nome deve conter apenas letras (mínimo 2 caracteres)"))
            continue

        role = ROLE_ALIASES.get(normalize_column(row["role"]))
        if role is None:
            errors.append((line, email, "Cargo inválido. Use: membro, responsavel_empresa"))
            continue

        valid.append(
            UserImportRow(
                line=line,
                email=email,
                full_name=full_name,
                role=role,
                department=sanitize(row["department"], 100) or None,
            )
        )
    return valid, errors


def users_template() -> str:
    return _csv_text(
        ["email", "nome", "departamento", "cargo"],
        [
            ["maria.silva@empresa.com.br", "Maria Silva", "Recursos Humanos", "membro"],
            ["joao.souza@empresa.com.br", "João Souza", "Operações", "membro"],
        ],
    )


# ---------------------------------------------------------------------------
# Assessment participants
# ---------------------------------------------------------------------------

@dataclass
class ParticipantImportRow:
    email: str
    name: str
    department: Optional[str] = None
    role: Optional[str] = None


def parse_participant_rows(content: str) -> tuple[list[ParticipantImportRow], list[str], int]:
    """Returns (valid rows, errors, total data rows). Duplicate emails keep the last row."""
    table = read_table(content, PARTICIPANT_COLUMNS)
    _require_columns(table, ("email", "name"))
    if len(table.rows) > MAX_PARTICIPANT_ROWS:
        raise HTTPException(
            status_code=400,
            detail=f"Arquivo excede o limite de {MAX_PARTICIPANT_ROWS} linhas",
        )

    by_email: dict[str, ParticipantImportRow] = {}
    errors: list[str] = []
    for line, row in table.rows:
        raw_email = sanitize(row["email"], 255)
        email = _valid_email(raw_email)
        if not email:
            errors.append(f'Linha {line}: Email inválido "{raw_email}"' if raw_email else f"Linha {line}: Email é obrigatório")
            continue
        name = sanitize(row["name"], 200)
        if len(name) < 2:
            errors.append(f"Linha {line}: Nome é obrigatório (mínimo 2 caracteres)")
            continue
        by_email[email] = ParticipantImportRow(
            email=email,
            name=name,
            department=sanitize(row["department"], 100) or None,
            role=sanitize(row["role"], 100) or None,
        )
    return list(by_email.values()), errors, len(table.rows)


def participants_template() -> str:
    return _csv_text(
        ["email", "nome", "departamento", "cargo"],
        [
            ["colaborador1@empresa.com.br", "Ana Pereira", "Comercial", "Analista"],
            ["colaborador2@empresa.com.br", "Carlos Lima", "TI", "Desenvolvedor"],
        ],
    )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

@dataclass
class ResponseImportRow:
    question_id: uuid.UUID
    response_text: str
    value: Optional[str]
    anonymous_id: str
    created_at: datetime
    line: int = 0


def _parse_datetime(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_response_rows(
    content: str, question_ids: set[uuid.UUID]
) -> tuple[list[ResponseImportRow], list[str], list[str], int]:
    """Returns (rows, errors, warnings, total). Any error rejects the whole file."""
    table = read_table(content, RESPONSE_COLUMNS)
    _require_columns(table, ("question_id",))

    errors: list[str] = []
    warnings: list[str] = []
    if len(table.rows) > MAX_RESPONSE_ROWS:
        errors.append(
            f"Arquivo excede o limite de {MAX_RESPONSE_ROWS} linhas ({len(table.rows)} linhas encontradas)"
        )

    rows: list[ResponseImportRow] = []
    now = datetime.now(timezone.utc)
    for line, row in table.rows:
        raw_id = sanitize(row["question_id"])
        if not raw_id:
            warnings.append(f"Linha {line}: question_id vazio, linha será ignorada")
            continue
        try:
            question_id = uuid.UUID(raw_id)
        except ValueError:
            errors.append(f"Linha {line}: question_id inválido (deve ser UUID)")
            continue
        if question_id not in question_ids:
            errors.append(f"Linha {line}: question_id não existe neste assessment")
            continue

        value = sanitize(row["value"], 10000)
        response_text = sanitize(row["response_text"], 10000) or value
        if not response_text:
            warnings.append(f"Linha {line}: resposta vazia")

        created_at = now
        raw_date = sanitize(row["created_at"])
        if raw_date:
            parsed = _parse_datetime(raw_date)
            if parsed is None:
                warnings.append(f"Linha {line}: data inválida, usando data atual")
            else:
                created_at = parsed

        rows.append(
            ResponseImportRow(
                question_id=question_id,
                response_text=response_text,
                value=value or None,
                anonymous_id=sanitize(row["anonymous_id"], 100) or anonymous_import_id(),
                created_at=created_at,
                line=line,
            )
        )
    return rows, errors, warnings, len(table.rows)


def responses_template(questions: list[tuple[uuid.UUID, str]]) -> str:
    comments = [
        "# INSTRUÇÕES DE IMPORTAÇÃO",
        "# - question_id: ID da pergunta (obrigatório, UUID)",
        "# - response_text: Texto da resposta (obrigatório)",
        "# - anonymous_id: ID do participante (opcional, será gerado se vazio)",
        "# - created_at: Data da resposta (opcional, formato ISO)",
        "#",
        "# Perguntas disponíveis neste assessment:",
        *(f"# {qid} - {text[:60]}" for qid, text in questions),
        "#",
    ]
    today = datetime.now(timezone.utc).isoformat()
    rows = [
        [str(qid), "Exemplo de resposta", f"participante-{i + 1}", today]
        for i, (qid, _text) in enumerate(questions[:3])
    ]
    return _csv_text(["question_id", "response_text", "anonymous_id", "created_at"], rows, comments)
