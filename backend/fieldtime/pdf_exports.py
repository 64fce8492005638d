from __future__ import annotations

import logging
import os
from datetime import datetime
from io import BytesIO
from typing import Any, Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import Flowable, LongTable, Paragraph, SimpleDocTemplate, Spacer, TableStyle

logger = logging.getLogger(__name__)

LEFT_MARGIN = 14 * mm
RIGHT_MARGIN = 14 * mm
BOTTOM_MARGIN = 16 * mm
PAGE_WIDTH, PAGE_HEIGHT = A4
CONTENT_WIDTH = PAGE_WIDTH - LEFT_MARGIN - RIGHT_MARGIN

HEADER_TOP_MARGIN = 36.0
HEADER_HEIGHT = 80.0
HEADER_LEFT_PADDING = 42.0
HEADER_RIGHT_PADDING = 42.0
HEADER_LOGO_SIZE = 38.0
HEADER_AFTER_GAP = 12.0
HEADER_TITLE_FONT_SIZE = 20.0
HEADER_SUBTITLE_FONT_SIZE = 11.0

KPI_GAP_X = 10.0
KPI_GAP_Y = 11.0
KPI_GAP_AFTER = 16.0
KPI_CARD_HEIGHT = 58.0
KPI_CARD_RADIUS = 7.0
KPI_CARD_PAD_X = 10.0
KPI_CARD_PAD_Y = 10.0
KPI_VALUE_FONT_SIZE = 12
KPI_LABEL_FONT_SIZE = 8

PDF_LOGO_PATH = os.path.join(os.path.dirname(__file__), "assets", "logo.png")

PALETTE = {
    "navy": colors.HexColor("#1E3A8A"),
    "header": colors.HexColor("#2563EB"),
    "text": colors.HexColor("#0F172A"),
    "muted": colors.HexColor("#64748B"),
    "line": colors.HexColor("#D1D5DB"),
    "card_fill": colors.HexColor("#F8FAFC"),
    "card_stroke": colors.HexColor("#CBD5E1"),
    "stripe_even": colors.HexColor("#F8FAFC"),
    "stripe_odd": colors.HexColor("#F1F5F9"),
    "grid": colors.HexColor("#E2E8F0"),
    "degraded": colors.HexColor("#FEF3C7"),
}

_STYLES = getSampleStyleSheet()
SECTION_HEADING_STYLE = ParagraphStyle(
    "section-heading",
    parent=_STYLES["Heading5"],
    fontName="Helvetica-Bold",
    fontSize=11,
    leading=13,
    textColor=PALETTE["navy"],
    spaceAfter=4,
)
SUMMARY_STYLE = ParagraphStyle(
    "summary-line",
    parent=_STYLES["BodyText"],
    fontName="Helvetica",
    fontSize=9,
    leading=11,
    textColor=PALETTE["muted"],
    spaceAfter=4,
)
TABLE_HEADER_STYLE = ParagraphStyle(
    "table-header",
    parent=_STYLES["BodyText"],
    fontName="Helvetica-Bold",
    fontSize=8.6,
    leading=10,
    textColor=colors.white,
    wordWrap="CJK",
)
TABLE_CELL_STYLE = ParagraphStyle(
    "table-cell",
    parent=_STYLES["BodyText"],
    fontName="Helvetica",
    fontSize=8,
    leading=10,
    textColor=PALETTE["text"],
    wordWrap="CJK",
)


def _safe_text(value: Any, *, fallback: str = "-") -> str:
    if value is None:
        return fallback
    text = str(value).strip()
    return text if text else fallback


def _to_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def minutes_as_decimal_hours(minutes: Any) -> str:
    value = _to_int(minutes)
    if value <= 0:
        return "0.0h"
    return f"{value / 60:.1f}h"


def minutes_to_readable(minutes: Any) -> str:
    value = _to_int(minutes)
    hours = value // 60
    mins = value % 60
    if hours <= 0:
        return f"{mins:02d} Mins"
    return f"{hours} Hrs {mins:02d} Mins"


def _date_label(value: Any) -> str:
    text = _safe_text(value, fallback="")
    try:
        return datetime.strptime(text, "%Y-%m-%d").strftime("%b %d, %Y")
    except ValueError:
        return text or "-"


def _time_label(value: Any) -> str:
    text = _safe_text(value, fallback="")
    if not text:
        return "N/A"
    try:
        return datetime.fromisoformat(text).strftime("%I:%M %p")
    except ValueError:
        return text


def _score_label(value: Any) -> str:
    try:
        return f"{float(value):.1f}"
    except (TypeError, ValueError):
        return "0.0"


def resolve_logo_path() -> str | None:
    project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
    candidates = [
        os.path.join(project_root, "backend", "static", "logo.png"),
        PDF_LOGO_PATH,
    ]
    for candidate in candidates:
        if os.path.exists(candidate):
            return candidate
    return None


def _fit_text(canv: canvas.Canvas, text: str, *, font_name: str, font_size: float, max_width: float) -> str:
    if max_width <= 0:
        return ""

    cleaned = _safe_text(text, fallback="")
    if not cleaned:
        return ""

    if canv.stringWidth(cleaned, font_name, font_size) <= max_width:
        return cleaned

    suffix = "..."
    clipped = cleaned
    while clipped and canv.stringWidth(clipped + suffix, font_name, font_size) > max_width:
        clipped = clipped[:-1]
    return (clipped + suffix) if clipped else suffix


def _cell_paragraph(value: Any, *, style: ParagraphStyle, fallback: str = "-") -> Paragraph:
    return Paragraph(escape(_safe_text(value, fallback=fallback)), style)


def _draw_logo(canv: canvas.Canvas, *, logo_path: str | None, x: float, y: float, size: float) -> None:
    if not logo_path:
        return
    try:
        reader = ImageReader(logo_path)
        image_width, image_height = reader.getSize()
    except OSError:
        logger.warning("Could not read report logo at %s", logo_path)
        return
    if image_width <= 0 or image_height <= 0:
        return
    scale = min(size / float(image_width), size / float(image_height))
    draw_w = float(image_width) * scale
    draw_h = float(image_height) * scale
    canv.drawImage(
        reader,
        x + ((size - draw_w) / 2.0),
        y + ((size - draw_h) / 2.0),
        width=draw_w,
        height=draw_h,
        mask="auto",
    )


def draw_header(
    canv: canvas.Canvas,
    page_width: float,
    page_height: float,
    *,
    title: str,
    subtitle_lines: Sequence[str],
    logo_path: str | None,
) -> None:
    header_top = page_height - HEADER_TOP_MARGIN
    header_bottom = header_top - HEADER_HEIGHT
    mid_y = header_bottom + (HEADER_HEIGHT / 2.0)
    reserved_left = HEADER_LEFT_PADDING + HEADER_LOGO_SIZE + 16.0
    max_width = max((page_width - HEADER_RIGHT_PADDING) - reserved_left, 0.0)

    canv.saveState()
    _draw_logo(
        canv,
        logo_path=logo_path,
        x=HEADER_LEFT_PADDING,
        y=mid_y - (HEADER_LOGO_SIZE / 2.0),
        size=HEADER_LOGO_SIZE,
    )

    title_font = "Helvetica-Bold"
    title_text = _fit_text(
        canv,
        _safe_text(title, fallback="Field Service Report"),
        font_name=title_font,
        font_size=HEADER_TITLE_FONT_SIZE,
        max_width=max_width,
    )
    title_width = canv.stringWidth(title_text, title_font, HEADER_TITLE_FONT_SIZE)
    title_x = max((page_width - title_width) / 2.0, reserved_left)
    title_baseline_y = mid_y + (HEADER_TITLE_FONT_SIZE * 0.35)
    canv.setFillColor(PALETTE["text"])
    canv.setFont(title_font, HEADER_TITLE_FONT_SIZE)
    canv.drawString(title_x, title_baseline_y, title_text)

    subtitle_font = "Helvetica"
    subtitle_y = title_baseline_y - (HEADER_TITLE_FONT_SIZE * 0.95)
    canv.setFillColor(PALETTE["muted"])
    canv.setFont(subtitle_font, HEADER_SUBTITLE_FONT_SIZE)
    for line in list(subtitle_lines)[:2]:
        subtitle_text = _fit_text(
            canv,
            line,
            font_name=subtitle_font,
            font_size=HEADER_SUBTITLE_FONT_SIZE,
            max_width=max_width,
        )
        subtitle_width = canv.stringWidth(subtitle_text, subtitle_font, HEADER_SUBTITLE_FONT_SIZE)
        canv.drawString(max((page_width - subtitle_width) / 2.0, reserved_left), subtitle_y, subtitle_text)
        subtitle_y -= 14.0

    canv.setStrokeColor(PALETTE["line"])
    canv.setLineWidth(0.6)
    canv.line(HEADER_LEFT_PADDING, header_bottom, page_width - HEADER_RIGHT_PADDING, header_bottom)
    canv.restoreState()


class NumberedCanvas(canvas.Canvas):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._saved_page_states: list[dict[str, Any]] = []

    def showPage(self) -> None:
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self) -> None:
        total_pages = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(total_pages)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    def _draw_footer(self, total_pages: int) -> None:
        line_y = 11 * mm
        text_y = 7.6 * mm

        self.saveState()
        self.setStrokeColor(PALETTE["line"])
        self.setLineWidth(0.5)
        self.line(LEFT_MARGIN, line_y, PAGE_WIDTH - RIGHT_MARGIN, line_y)

        self.setFillColor(PALETTE["muted"])
        self.setFont("Helvetica", 8)
        self.drawString(LEFT_MARGIN, text_y, "Generated by Field Service Reports")
        self.drawRightString(PAGE_WIDTH - RIGHT_MARGIN, text_y, f"Page {self._pageNumber} of {total_pages}")
        self.restoreState()


class KpiRow(Flowable):
    def __init__(self, *, cards: Sequence[dict[str, str]], cols: int, gap: float = KPI_GAP_X, card_h: float = KPI_CARD_HEIGHT) -> None:
        super().__init__()
        self.cards = list(cards)
        self.cols = max(1, cols)
        self.gap = gap
        self.card_h = card_h
        self.width = CONTENT_WIDTH
        self.height = card_h

    def wrap(self, avail_width: float, avail_height: float) -> tuple[float, float]:
        return self.width, self.height

    def draw(self) -> None:
        card_w = (self.width - (self.gap * (self.cols - 1))) / self.cols
        max_text_width = max(0.0, card_w - (KPI_CARD_PAD_X * 2))

        canv = self.canv
        canv.saveState()
        for index, card in enumerate(self.cards[: self.cols]):
            x = index * (card_w + self.gap)
            value = _fit_text(
                canv,
                _safe_text(card.get("value"), fallback="N/A"),
                font_name="Helvetica-Bold",
                font_size=KPI_VALUE_FONT_SIZE,
                max_width=max_text_width,
            )
            label = _fit_text(
                canv,
                _safe_text(card.get("label")),
                font_name="Helvetica",
                font_size=KPI_LABEL_FONT_SIZE,
                max_width=max_text_width,
            )

            canv.setFillColor(PALETTE["card_fill"])
            canv.setStrokeColor(PALETTE["card_stroke"])
            canv.setLineWidth(0.8)
            canv.roundRect(x, 0, card_w, self.card_h, KPI_CARD_RADIUS, stroke=1, fill=1)

            canv.setFillColor(PALETTE["text"])
            canv.setFont("Helvetica-Bold", KPI_VALUE_FONT_SIZE)
            canv.drawString(x + KPI_CARD_PAD_X, self.card_h - KPI_CARD_PAD_Y - KPI_VALUE_FONT_SIZE, value)

            canv.setFillColor(PALETTE["muted"])
            canv.setFont("Helvetica", KPI_LABEL_FONT_SIZE)
            canv.drawString(x + KPI_CARD_PAD_X, KPI_CARD_PAD_Y, label)
        canv.restoreState()


def _append_kpi_grid(story: list[Any], *, cards: Sequence[dict[str, str]], max_cols: int = 4) -> None:
    items = list(cards)
    rows = [items[index : index + max_cols] for index in range(0, len(items), max_cols)]
    for row_index, row_cards in enumerate(rows):
        story.append(KpiRow(cards=row_cards, cols=len(row_cards)))
        if row_index < len(rows) - 1:
            story.append(Spacer(1, KPI_GAP_Y))


def _build_section_heading(text: str) -> Paragraph:
    return Paragraph(escape(_safe_text(text, fallback="Section")), SECTION_HEADING_STYLE)


def _build_table(
    *,
    headers: Sequence[str],
    body_rows: Sequence[Sequence[Any]],
    col_widths: Sequence[float],
    highlighted_rows: Sequence[int] = (),
) -> LongTable:
    table_data: list[list[Any]] = [
        [_cell_paragraph(cell, style=TABLE_HEADER_STYLE, fallback="") for cell in headers]
    ]

    if body_rows:
        for row in body_rows:
            cells = [_cell_paragraph(cell, style=TABLE_CELL_STYLE) for cell in row]
            cells.extend(
                _cell_paragraph("", style=TABLE_CELL_STYLE, fallback="")
                for _ in range(len(headers) - len(cells))
            )
            table_data.append(cells[: len(headers)])
    else:
        table_data.append(
            [_cell_paragraph("No data", style=TABLE_CELL_STYLE)]
            + [_cell_paragraph("", style=TABLE_CELL_STYLE, fallback="") for _ in range(len(headers) - 1)]
        )

    table = LongTable(table_data, colWidths=list(col_widths), repeatRows=1, hAlign="LEFT")

    style_commands: list[tuple[Any, ...]] = [
        ("BACKGROUND", (0, 0), (-1, 0), PALETTE["header"]),
        ("GRID", (0, 0), (-1, -1), 0.4, PALETTE["grid"]),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("LEFTPADDING", (0, 0), (-1, -1), 5),
        ("RIGHTPADDING", (0, 0), (-1, -1), 5),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
    for row_index in range(1, len(table_data)):
        background = PALETTE["stripe_even"] if row_index % 2 else PALETTE["stripe_odd"]
        style_commands.append(("BACKGROUND", (0, row_index), (-1, row_index), background))
    for body_index in highlighted_rows:
        row_index = body_index + 1
        style_commands.append(("BACKGROUND", (0, row_index), (-1, row_index), PALETTE["degraded"]))

    table.setStyle(TableStyle(style_commands))
    return table


def _build_document(
    *,
    title: str,
    subtitle_lines: Sequence[str],
    story: Sequence[Any],
) -> bytes:
    buffer = BytesIO()
    logo_path = resolve_logo_path()

    def _draw_page_header(canv: canvas.Canvas, doc: SimpleDocTemplate) -> None:
        draw_header(
            canv,
            page_width=doc.pagesize[0],
            page_height=doc.pagesize[1],
            title=title,
            subtitle_lines=subtitle_lines,
            logo_path=logo_path,
        )

    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=LEFT_MARGIN,
        rightMargin=RIGHT_MARGIN,
        topMargin=HEADER_TOP_MARGIN + HEADER_HEIGHT + HEADER_AFTER_GAP,
        bottomMargin=BOTTOM_MARGIN,
        title=title,
    )
    doc.build(
        list(story),
        onFirstPage=_draw_page_header,
        onLaterPages=_draw_page_header,
        canvasmaker=NumberedCanvas,
    )
    return buffer.getvalue()


def _performance_cards(reports: Sequence[dict[str, Any]]) -> list[dict[str, str]]:
    work = sum(_to_int(row.get("dailyWorkingMinutes")) for row in reports)
    overtime = sum(_to_int(row.get("totalOtMinutes")) for row in reports)
    jobs = sum(_to_int(row.get("jobsCompleted")) for row in reports)
    weight = sum(_to_int(row.get("totalWeightEarned")) for row in reports)
    return [
        {"label": "Employee Days", "value": str(len(reports))},
        {"label": "Total Work Time", "value": minutes_to_readable(work)},
        {"label": "Total Overtime", "value": minutes_to_readable(overtime)},
        {"label": "Jobs Completed", "value": str(jobs)},
        {"label": "Weight Earned", "value": str(weight)},
    ]


def generate_daily_performance_pdf(reports: Sequence[dict[str, Any]], *, period: str) -> bytes:
    """Daily Time Tracking & Performance report, one table row per employee-day."""
    generated_at = datetime.now().strftime("%Y-%m-%d %I:%M %p")

    rows = [
        [
            _safe_text(row.get("employeeName"), fallback=f"#{row.get('employeeId')}"),
            _date_label(row.get("date")),
            minutes_as_decimal_hours(row.get("dailyWorkingMinutes")),
            minutes_as_decimal_hours(row.get("totalOtMinutes")),
            str(_to_int(row.get("jobsCompleted"))),
            str(_to_int(row.get("totalWeightEarned"))),
            _score_label(row.get("averageScore")),
        ]
        for row in reports
    ]

    story: list[Any] = []
    _append_kpi_grid(story, cards=_performance_cards(reports), max_cols=5)
    story.append(Spacer(1, KPI_GAP_AFTER))
    story.append(_build_section_heading("Daily Time Tracking & Performance"))
    story.append(Spacer(1, 2))
    story.append(
        _build_table(
            headers=["Employee", "Date", "Work Time", "Total OT", "Jobs", "Weight", "Avg Score"],
            body_rows=rows,
            col_widths=[
                CONTENT_WIDTH * 0.26,
                CONTENT_WIDTH * 0.16,
                CONTENT_WIDTH * 0.12,
                CONTENT_WIDTH * 0.12,
                CONTENT_WIDTH * 0.10,
                CONTENT_WIDTH * 0.12,
                CONTENT_WIDTH * 0.12,
            ],
        )
    )

    return _build_document(
        title="Daily Time Tracking & Performance Report",
        subtitle_lines=[f"Period: {period}", f"Generated: {generated_at}"],
        story=story,
    )


def generate_achievement_pdf(
    reports: Sequence[dict[str, Any]],
    *,
    employee_name: str,
    period: str,
) -> bytes:
    """Employee Achievement report: a summary line and ticket table per day."""
    generated_at = datetime.now().strftime("%Y-%m-%d %I:%M %p")

    story: list[Any] = []
    if not reports:
        story.append(Paragraph("No ticket activity in the selected period.", SUMMARY_STYLE))

    for day_report in reports:
        summary = day_report.get("dailySummary") or {}
        tickets = day_report.get("ticketAchievements") or []

        story.append(_build_section_heading(f"Date: {_date_label(day_report.get('date'))}"))
        story.append(
            Paragraph(
                escape(
                    f"Tickets: {_to_int(summary.get('totalTickets'))} | "
                    f"Completed: {_to_int(summary.get('completedTickets'))} | "
                    f"Work: {minutes_as_decimal_hours(summary.get('totalWorkMinutes'))} | "
                    f"OT: {minutes_as_decimal_hours(summary.get('totalOtMinutes'))} | "
                    f"Weight: {_to_int(summary.get('totalWeightEarned'))} | "
                    f"Day: {_time_label(day_report.get('dayStartTime'))} - "
                    f"{_time_label(day_report.get('dayEndTime'))}"
                ),
                SUMMARY_STYLE,
            )
        )
        story.append(
            _build_table(
                headers=["Ticket #", "Generator", "Work Time", "Score", "Status"],
                body_rows=[
                    [
                        _safe_text(ticket.get("ticketNumber")),
                        _safe_text(ticket.get("generatorName")),
                        minutes_as_decimal_hours(ticket.get("workMinutes")),
                        _safe_text(ticket.get("weight")) if ticket.get("scored") else "-",
                        _safe_text(ticket.get("currentStatus")),
                    ]
                    for ticket in tickets
                ],
                col_widths=[
                    CONTENT_WIDTH * 0.20,
                    CONTENT_WIDTH * 0.34,
                    CONTENT_WIDTH * 0.16,
                    CONTENT_WIDTH * 0.12,
                    CONTENT_WIDTH * 0.18,
                ],
                highlighted_rows=[index for index, ticket in enumerate(tickets) if ticket.get("degraded")],
            )
        )

        notes = day_report.get("notes") or []
        for note in notes:
            story.append(Paragraph(escape(f"- {_safe_text(note)}"), SUMMARY_STYLE))
        story.append(Spacer(1, 10))

    return _build_document(
        title="Employee Achievement Report",
        subtitle_lines=[
            f"Employee: {_safe_text(employee_name, fallback='Unknown')}",
            f"Period: {period} | Generated: {generated_at}",
        ],
        story=story,
    )
