from enum import Enum
from typing import Optional
from pydantic import BaseModel


class Role(str, Enum):
    RESPONSAVEL = "responsavel_empresa"
    MEMBRO = "membro"


# Super admin is a platform flag on the user, not an org role
ROLE_LABELS = {
    "admin": "Super Admin",
    Role.RESPONSAVEL.value: "Responsável",
    Role.MEMBRO.value: "Membro",
}


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


RISK_LEVEL_LABELS = {
    RiskLevel.LOW: "Baixo",
    RiskLevel.MEDIUM: "Médio",
    RiskLevel.HIGH: "Alto",
    RiskLevel.CRITICAL: "Crítico",
}


class RiskCategory(str, Enum):
    DEMANDS_AND_PACE = "demands_and_pace"
    AUTONOMY_CLARITY_CHANGE = "autonomy_clarity_change"
    LEADERSHIP_RECOGNITION = "leadership_recognition"
    RELATIONSHIPS_COMMUNICATION = "relationships_communication"
    WORK_LIFE_HEALTH = "work_life_health"
    VIOLENCE_HARASSMENT = "violence_harassment"
    ANCHORS = "anchors"
    SUGGESTIONS = "suggestions"


CATEGORY_LABELS: dict[str, str] = {
    RiskCategory.DEMANDS_AND_PACE.value: "Demandas e Ritmo de Trabalho",
    RiskCategory.AUTONOMY_CLARITY_CHANGE.value: "Autonomia, Clareza e Mudanças",
    RiskCategory.LEADERSHIP_RECOGNITION.value: "Liderança e Reconhecimento",
    RiskCategory.RELATIONSHIPS_COMMUNICATION.value: "Relações, Clima e Comunicação",
    RiskCategory.WORK_LIFE_HEALTH.value: "Equilíbrio Trabalho–Vida e Saúde",
    RiskCategory.VIOLENCE_HARASSMENT.value: "Violência, Assédio e Medo de Repressão",
    RiskCategory.ANCHORS.value: "Âncoras (Satisfação, Saúde, Permanência)",
    RiskCategory.SUGGESTIONS.value: "Sugestões",
}

# The six scored NR-1 blocks (anchors and suggestions are not risk blocks)
RISK_BLOCKS: list[RiskCategory] = [
    RiskCategory.DEMANDS_AND_PACE,
    RiskCategory.AUTONOMY_CLARITY_CHANGE,
    RiskCategory.LEADERSHIP_RECOGNITION,
    RiskCategory.RELATIONSHIPS_COMMUNICATION,
    RiskCategory.WORK_LIFE_HEALTH,
    RiskCategory.VIOLENCE_HARASSMENT,
]


def category_label(category: str) -> str:
    return CATEGORY_LABELS.get(category, category)


class Pagination(BaseModel):
    page: int
    per_page: int
    total: int
    total_pages: int


class APIResponse(BaseModel):
    data: Optional[object] = None
    error: Optional[object] = None
