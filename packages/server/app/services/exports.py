"""
Assessment exports: NR-1 PDF report (reportlab), XLSX workbook (openpyxl) and CSV.

Every export is gated on the assessment anonymity threshold; raw answers
additionally need the detailed-responses threshold.
"""

from __future__ import annotations

import csv
import io
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import HTTPException
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.assessment import Assessment
from app.models.organization import Organization
from app.services import anonymity
from app.services.analytics import (
    ResponseRow,
    compute_assessment_analytics,
    count_questions,
    get_department_analytics,
    load_response_rows,
)
from app.services.anonymity import Threshold

from psicomapa_shared.schemas.analytics import AssessmentAnalytics, DepartmentAnalytics
from psicomapa_shared.schemas.common import RISK_LEVEL_LABELS, RiskLevel, category_label

log = structlog.get_logger()

RISK_COLORS = {
    RiskLevel.LOW.value: "22C55E",
    RiskLevel.MEDIUM.value: "F59E0B",
    RiskLevel.HIGH.value: "EF4444",
    RiskLevel.CRITICAL.value: "991B1B",
}
HEADER_FILL = "7A8450"
SUPPRESSED_LABEL = "Dados suprimidos"


def risk_label(level: str) -> str:
    try:
        return RISK_LEVEL_LABELS[RiskLevel(level)]
    except ValueError:
        return level


def export_filename(assessment: Assessment, extension: str) -> str:
    ascii_title = unicodedata.normalize("NFKD", assessment.title).encode("ascii", "ignore").decode()
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", ascii_title).strip("-").lower() or "avaliacao"
    return f"relatorio-{slug}-{datetime.now(timezone.utc):%Y%m%d}.{extension}"


@dataclass
class ExportData:
    assessment: Assessment
    organization_name: str
    analytics: AssessmentAnalytics
    departments: list[DepartmentAnalytics] = field(default_factory=list)
    rows: list[ResponseRow] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def detailed_allowed(self) -> bool:
        return anonymity.meets_threshold(self.analytics.total_participants, Threshold.DETAILED_RESPONSES)


async def load_export_data(assessment: Assessment, session: AsyncSession) -> ExportData:
    org = await session.get(Organization, assessment.org_id)
    rows = await load_response_rows(assessment.id, session)
    analytics = compute_assessment_analytics(
        assessment.id, rows, await count_questions(assessment.questionnaire_id, session)
    )
    if analytics.is_suppressed:
        message = analytics.suppression.message if analytics.suppression else anonymity.WAITING_MORE_RESPONSES
        raise HTTPException(status_code=403, detail=f"Exportação indisponível. {message}")

    return ExportData(
        assessment=assessment,
        organization_name=org.name if org else "",
        analytics=analytics,
        departments=await get_department_analytics(assessment, session),
        rows=rows,
    )


def _answer(row: ResponseRow) -> str:
    response, _question = row
    if response.response_text:
        return response.response_text
    return "" if response.value is None else str(response.value)


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

def render_pdf(data: ExportData) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=18 * mm,
        rightMargin=18 * mm,
        topMargin=20 * mm,
        bottomMargin=14 * mm,
        title="Relatorio de Riscos Psicossociais",
    )
    width = doc.pagesize[0] - doc.leftMargin - doc.rightMargin

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ReportTitle", parent=styles["Title"], alignment=1, fontSize=15, spaceAfter=6
    )
    subtitle_style = ParagraphStyle(
        "ReportSubtitle",
        parent=styles["Normal"],
        alignment=1,
        fontSize=10,
        textColor=colors.HexColor("#475569"),
        spaceAfter=10,
    )
    section_style = ParagraphStyle(
        "ReportSection", parent=styles["Heading2"], fontSize=12, spaceBefore=12, spaceAfter=6
    )
    body_style = ParagraphStyle("ReportBody", parent=styles["BodyText"], fontSize=9.5, leading=13)
    small_style = ParagraphStyle(
        "ReportSmall",
        parent=styles["BodyText"],
        fontSize=8,
        leading=11,
        textColor=colors.HexColor("#64748b"),
    )

    def grid(rows, col_widths, extra=()):
        table = Table(rows, colWidths=col_widths, hAlign="LEFT")
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(f"#{HEADER_FILL}")),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, -1), 8.5),
                    ("GRID", (0, 0), (-1, -1), 0.4, colors.HexColor("#e2e8f0")),
                    ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                    *extra,
                ]
            )
        )
        return table

    analytics = data.analytics
    story = [
        Paragraph("Relatório de Riscos Psicossociais (NR-1)", title_style),
        Paragraph(f"{data.organization_name} · {data.assessment.title}", subtitle_style),
        Paragraph(
            f"Período: {data.assessment.start_date:%d/%m/%Y} a {data.assessment.end_date:%d/%m/%Y} · "
            f"Gerado em {data.generated_at:%d/%m/%Y %H:%M} UTC",
            small_style,
        ),
        Spacer(1, 8),
        Paragraph("1. Métricas gerais", section_style),
        grid(
            [
                ["Indicador", "Valor"],
                ["Participantes", str(analytics.total_participants)],
                ["Perguntas", str(analytics.total_questions)],
                ["Respostas", str(analytics.total_responses)],
                ["Taxa de conclusão", f"{analytics.completion_rate:.2f}%"],
            ],
            [width * 0.6, width * 0.4],
        ),
        Paragraph("2. Análise por categoria", section_style),
        Paragraph(
            "Pontuação de 1 a 5, em que valores maiores indicam maior exposição ao risco.",
            body_style,
        ),
        Spacer(1, 4),
    ]

    category_rows = [["Categoria", "Média", "Nível de risco", "Respostas"]]
    category_styles = []
    for index, category in enumerate(analytics.categories, start=1):
        if category.is_suppressed:
            category_rows.append([category.label, "-", SUPPRESSED_LABEL, str(category.response_count)])
            continue
        category_rows.append(
            [
                category.label,
                f"{category.average_score:.2f}",
                risk_label(category.risk_level),
                str(category.response_count),
            ]
        )
        color = colors.HexColor(f"#{RISK_COLORS.get(category.risk_level, '94A3B8')}")
        category_styles.append(("TEXTCOLOR", (2, index), (2, index), color))
        category_styles.append(("FONTNAME", (2, index), (2, index), "Helvetica-Bold"))
    story.append(
        grid(category_rows, [width * 0.5, width * 0.14, width * 0.2, width * 0.16], category_styles)
    )

    visible_departments = [d for d in data.departments if d.participant_count > 0]
    if visible_departments:
        story.append(Paragraph("3. Análise por departamento", section_style))
        dept_rows = [["Departamento", "Participantes", "Média", "Nível de risco"]]
        for dept in visible_departments:
            if dept.is_suppressed:
                dept_rows.append([dept.name, str(dept.participant_count), "-", SUPPRESSED_LABEL])
            else:
                dept_rows.append(
                    [
                        dept.name,
                        str(dept.participant_count),
                        f"{dept.average_score:.2f}",
                        risk_label(dept.risk_level),
                    ]
                )
        story.append(grid(dept_rows, [width * 0.45, width * 0.18, width * 0.15, width * 0.22]))

    story.append(Spacer(1, 12))
    story.append(
        Paragraph(
            "Resultados agregados. Grupos com menos respondentes que o mínimo de anonimato "
            "não são exibidos, em conformidade com a LGPD.",
            small_style,
        )
    )

    doc.build(story)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# XLSX
# ---------------------------------------------------------------------------

def _header(ws, values: list[str]) -> None:
    ws.append(values)
    for cell in ws[ws.max_row]:
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = PatternFill("solid", fgColor=HEADER_FILL)
        cell.alignment = Alignment(horizontal="center")


def _widths(ws, widths: list[int]) -> None:
    for index, width in enumerate(widths):
        ws.column_dimensions[get_column_letter(index + 1)].width = width


def render_xlsx(data: ExportData) -> bytes:
    wb = Workbook()
    analytics = data.analytics

    summary = wb.active
    summary.title = "Resumo Executivo"
    summary.merge_cells("A1:E1")
    summary["A1"] = "PSICOMAPA"
    summary["A1"].font = Font(name="Arial", size=18, bold=True, color="D4644A")
    summary["A1"].alignment = Alignment(horizontal="center", vertical="center")
    summary.merge_cells("A2:E2")
    summary["A2"] = "Relatório de Análise de Riscos Psicossociais"
    summary["A2"].font = Font(name="Arial", size=12, italic=True, color="666666")
    summary["A2"].alignment = Alignment(horizontal="center")
    summary.append([])
    summary.append(["Avaliação:", data.assessment.title])
    summary.append(["Organização:", data.organization_name])
    summary.append(["Gerado em:", data.generated_at.strftime("%d/%m/%Y %H:%M")])
    summary.append([])
    _header(summary, ["MÉTRICAS GERAIS", ""])
    summary.append(["Total de Participantes", analytics.total_participants])
    summary.append(["Total de Perguntas", analytics.total_questions])
    summary.append(["Taxa de Conclusão", f"{analytics.completion_rate}%"])
    last = analytics.last_response_date
    summary.append(["Última Resposta", last.strftime("%d/%m/%Y %H:%M") if last else "-"])
    _widths(summary, [25, 40])

    categories = wb.create_sheet("Análise por Categoria")
    _header(categories, ["Categoria", "Pontuação Média", "Nível de Risco", "Respostas", "Perguntas"])
    thin = Side(style="thin", color="E0E0E0")
    for category in analytics.categories:
        categories.append(
            [
                category.label,
                None if category.is_suppressed else category.average_score,
                SUPPRESSED_LABEL if category.is_suppressed else risk_label(category.risk_level),
                category.response_count,
                category.question_count,
            ]
        )
        if not category.is_suppressed:
            risk_cell = categories.cell(row=categories.max_row, column=3)
            risk_cell.fill = PatternFill("solid", fgColor=RISK_COLORS.get(category.risk_level, "94A3B8"))
            risk_cell.font = Font(bold=True, color="FFFFFF")
            risk_cell.alignment = Alignment(horizontal="center")
    for row in categories.iter_rows():
        for cell in row:
            cell.border = Border(top=thin, left=thin, bottom=thin, right=thin)
    _widths(categories, [40, 18, 18, 12, 12])

    detailed = wb.create_sheet("Respostas Detalhadas")
    if data.detailed_allowed:
        _header(detailed, ["ID", "Participante", "Pergunta", "Categoria", "Tipo", "Resposta", "Data/Hora"])
        for response, question in data.rows:
            detailed.append(
                [
                    str(response.id),
                    response.anonymous_id,
                    question.text,
                    category_label(question.category or ""),
                    question.question_type,
                    _answer((response, question)),
                    response.created_at.strftime("%d/%m/%Y %H:%M") if response.created_at else "",
                ]
            )
        _widths(detailed, [15, 15, 50, 25, 15, 30, 20])
    else:
        detailed.append([anonymity.SUPPRESSION_MESSAGES[Threshold.DETAILED_RESPONSES]])
        _widths(detailed, [80])

    chart = wb.create_sheet("Dados para Gráfico")
    chart.append(["Categoria", "Score"])
    for category in analytics.categories:
        if not category.is_suppressed:
            chart.append([category.label, category.average_score])
    _widths(chart, [40, 15])

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def render_csv(data: ExportData, kind: str = "categories") -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=";", lineterminator="\n")
    if kind == "responses":
        if not data.detailed_allowed:
            raise HTTPException(
                status_code=403,
                detail=anonymity.SUPPRESSION_MESSAGES[Threshold.DETAILED_RESPONSES],
            )
        writer.writerow(["anonymous_id", "question_id", "pergunta", "categoria", "tipo", "resposta", "data"])
        for response, question in data.rows:
            writer.writerow(
                [
                    response.anonymous_id,
                    str(question.id),
                    question.text,
                    question.category or "",
                    question.question_type,
                    _answer((response, question)),
                    response.created_at.isoformat() if response.created_at else "",
                ]
            )
    else:
        writer.writerow(["categoria", "nome", "media", "nivel_risco", "respostas", "perguntas"])
        for category in data.analytics.categories:
            writer.writerow(
                [
                    category.category,
                    category.label,
                    "" if category.is_suppressed else f"{category.average_score:.2f}",
                    SUPPRESSED_LABEL if category.is_suppressed else risk_label(category.risk_level),
                    category.response_count,
                    category.question_count,
                ]
            )
    return "\ufeff" + buf.getvalue()


def build_export(data: ExportData, fmt: str, kind: Optional[str] = None) -> tuple[bytes, str]:
    """(file body, media type) for an export format."""
    if fmt == "pdf":
        body, media_type = render_pdf(data), "application/pdf"
    elif fmt == "xlsx":
        body = render_xlsx(data)
        media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    else:
        body, media_type = render_csv(data, kind or "categories").encode("utf-8"), "text/csv; charset=utf-8"
    log.info(
        "export.generated",
        assessment_id=str(data.assessment.id),
        format=fmt,
        kind=kind,
        size=len(body),
    )
    return body, media_type
