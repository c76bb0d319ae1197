"""Generated report and action plan schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .common import RISK_BLOCKS, RiskCategory, category_label


class ReportType(str, Enum):
    RISCOS_PSICOSSOCIAIS = "riscos_psicossociais"
    CLIMA_MENSAL = "clima_mensal"
    PLANO_ACAO = "plano_acao"
    EXECUTIVO_LIDERANCA = "executivo_lideranca"
    CORRELACAO = "correlacao"


REPORT_TYPE_LABELS = {
    ReportType.RISCOS_PSICOSSOCIAIS: "Relatório de Riscos Psicossociais",
    ReportType.CLIMA_MENSAL: "Relatório de Clima Mensal",
    ReportType.PLANO_ACAO: "Plano de Ação",
    ReportType.EXECUTIVO_LIDERANCA: "Relatório Executivo para Liderança",
    ReportType.CORRELACAO: "Análise de Correlação",
}


class ReportStatus(str, Enum):
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    ARCHIVED = "archived"


class ReportCreateRequest(BaseModel):
    assessment_id: uuid.UUID
    report_type: ReportType = ReportType.RISCOS_PSICOSSOCIAIS
    title: Optional[str] = Field(None, min_length=3, max_length=200)


class ReportResponse(BaseModel):
    id: uuid.UUID
    assessment_id: uuid.UUID
    report_type: ReportType
    title: str
    status: ReportStatus
    content: dict
    error_message: Optional[str] = None
    generated_by: Optional[uuid.UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReportListResponse(BaseModel):
    data: list[ReportResponse]


# ---------------------------------------------------------------------------
# Action plans
# ---------------------------------------------------------------------------

class ActionPlanStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DELAYED = "delayed"
    COMPLETED = "completed"


ACTION_PLAN_STATUS_LABELS = {
    ActionPlanStatus.PENDING: "Pendente",
    ActionPlanStatus.IN_PROGRESS: "Em andamento",
    ActionPlanStatus.DELAYED: "Atrasado",
    ActionPlanStatus.COMPLETED: "Concluído",
}

RISK_BLOCK_LABELS: dict[str, str] = {
    block.value: category_label(block.value) for block in RISK_BLOCKS
}


def _check_risk_block(value: Optional[RiskCategory]) -> Optional[RiskCategory]:
    if value is not None and value not in RISK_BLOCKS:
        raise ValueError("risk_block must be one of the six NR-1 risk blocks")
    return value


class ActionPlanCreateRequest(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    assessment_id: Optional[uuid.UUID] = None
    responsible: Optional[str] = Field(None, max_length=200)
    deadline: Optional[date] = None
    status: ActionPlanStatus = ActionPlanStatus.PENDING
    risk_block: Optional[RiskCategory] = None
    comments: Optional[str] = Field(None, max_length=5000)

    @field_validator("risk_block")
    @classmethod
    def validate_risk_block(cls, value):
        return _check_risk_block(value)


class ActionPlanUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    responsible: Optional[str] = Field(None, max_length=200)
    deadline: Optional[date] = None
    status: Optional[ActionPlanStatus] = None
    risk_block: Optional[RiskCategory] = None
    comments: Optional[str] = Field(None, max_length=5000)

    @field_validator("risk_block")
    @classmethod
    def validate_risk_block(cls, value):
        return _check_risk_block(value)


class ActionPlanResponse(BaseModel):
    id: uuid.UUID
    assessment_id: Optional[uuid.UUID] = None
    title: str
    description: Optional[str] = None
    responsible: Optional[str] = None
    deadline: Optional[date] = None
    status: ActionPlanStatus
    risk_block: Optional[str] = None
    comments: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ActionPlanListResponse(BaseModel):
    data: list[ActionPlanResponse]
