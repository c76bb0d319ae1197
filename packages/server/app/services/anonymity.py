"""
Anonymity thresholds for analytics.

Aggregates computed over small groups can identify respondents, so every
analytics view checks its group size against one of these minimums before
showing data.
"""

from __future__ import annotations

from enum import Enum

from psicomapa_shared.schemas.analytics import SuppressionInfo


class Threshold(str, Enum):
    ASSESSMENT = "assessment"
    CATEGORY = "category"
    DEPARTMENT = "department"
    QUESTION = "question"
    DETAILED_RESPONSES = "detailed_responses"


ANONYMITY_THRESHOLDS: dict[Threshold, int] = {
    Threshold.ASSESSMENT: 5,
    Threshold.CATEGORY: 5,
    Threshold.DEPARTMENT: 5,
    Threshold.QUESTION: 3,
    Threshold.DETAILED_RESPONSES: 10,
}

SUPPRESSION_MESSAGES: dict[Threshold, str] = {
    Threshold.ASSESSMENT: "Dados suprimidos para proteger o anonimato dos respondentes",
    Threshold.CATEGORY: "Categoria com respostas insuficientes",
    Threshold.DEPARTMENT: "Departamento com poucos funcionários para exibir análise",
    Threshold.QUESTION: "Pergunta com respostas insuficientes",
    Threshold.DETAILED_RESPONSES: "Respostas detalhadas requerem mais participantes",
}

WAITING_MORE_RESPONSES = "Aguardando mais respostas para exibir análise"


def meets_threshold(count: int, threshold: Threshold) -> bool:
    return count >= ANONYMITY_THRESHOLDS[threshold]


def responses_needed(count: int, threshold: Threshold) -> int:
    return max(0, ANONYMITY_THRESHOLDS[threshold] - count)


def suppression_status(count: int, threshold: Threshold) -> SuppressionInfo:
    """Progress towards the threshold, with the suppression message when below it."""
    minimum = ANONYMITY_THRESHOLDS[threshold]
    suppressed = count < minimum
    return SuppressionInfo(
        is_suppressed=suppressed,
        current_count=count,
        minimum_required=minimum,
        remaining=max(0, minimum - count),
        percent_complete=min(100.0, count / minimum * 100),
        message=SUPPRESSION_MESSAGES[threshold] if suppressed else None,
    )
