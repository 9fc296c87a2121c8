"""
report_builder.py — Render a stored report into a paginated A4 document.

Layout, top to bottom:
- Header band      (title, author, date, department, status)
- Executive summary (class reports: four metric cards)
- Student profile  (single-student reports: identity + custom fields)
- Report overview  (free text, wrapped to the content width)
- Data visualisations (selected charts only, two per row)
- Tables           (class roster / subject-marks breakdown)
- Footer pass      ("Page i of N | Generated on ...", stamped last)

Rendering is pure: the same report, envelope and date always produce the
same pages and the same PDF bytes. Charts with no usable data draw a
placeholder and add a RenderDegraded notice; they never abort the render.
"""

import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth

from core.authoring import summarize_students
from core.charts import DRAWERS, draw_card
from core.document import (
    CONTENT_WIDTH,
    FONT_BOLD,
    FONT_REGULAR,
    MARGIN,
    PAGE_HEIGHT,
    PAGE_WIDTH,
    Document,
    Page,
    Section,
    stamp_footers,
)
from core.envelope import ClassReportData, Envelope, SingleStudentData, chart_specs, parse_envelope
from core.errors import RenderDegraded
from core.grading import get_grade, round_half_up, subject_percentage
from core.store import Report

logger = logging.getLogger(__name__)


# ── Palette & geometry ──────────────────────────────────────────────

BRAND_BLUE = "#2563eb"
HEADING = "#333333"
BODY = "#505050"
MUTED = "#646464"
WHITE = "#ffffff"
LIGHT_ROW = "#f8fafc"
FOOTER_ROW = "#e2e8f0"
GRID = "#cbd5e1"

CHART_COLORS = {
    "attendance": "#3b82f6",
    "comparison": "#10b981",
    "performance": "#8b5cf6",
    "marks_bar": "#0ea5e9",
    "progress_line": "#8b5cf6",
    "monthly_attendance": "#3b82f6",
}

HEADER_HEIGHT = 45.0
CHART_GAP = 5.0
CHART_WIDTH = (CONTENT_WIDTH - CHART_GAP) / 2
CHART_HEIGHT = 55.0
PAGE_BREAK_THRESHOLD = 80.0
CONTENT_BOTTOM = PAGE_HEIGHT - 20
CONTINUATION_TOP = 20.0
ROW_HEIGHT = 7.0
LINE_HEIGHT = 5.0

ROSTER_ROW_CAP = 30


# ── Helpers ─────────────────────────────────────────────────────────

def format_date(day: date) -> str:
    """'October 18, 2026'"""
    return f"{day:%B} {day.day}, {day.year}"


def report_filename(title: str, on: date) -> str:
    token = re.sub(r"[^a-z0-9]", "_", title, flags=re.IGNORECASE).lower()
    return f"{token}_{on.isoformat()}.pdf"


def _text_width(text: str, font: str, size: float) -> float:
    """Rendered width in mm."""
    return stringWidth(text, font, size) / mm


def _clip(text: str, width: float, font: str = FONT_REGULAR, size: float = 8) -> str:
    """Shorten ``text`` with '...' until it fits ``width`` mm."""
    if _text_width(text, font, size) <= width:
        return text
    while text and _text_width(text + "...", font, size) > width:
        text = text[:-1]
    return text + "..."


def _wrap(text: str, width: float, font: str = FONT_REGULAR, size: float = 10) -> List[str]:
    """Word-wrap to ``width`` mm, breaking words that are wider than a line."""
    lines = []
    for line in simpleSplit(text, font, size, width * mm):
        while _text_width(line, font, size) > width:
            cut = len(line) - 1
            while cut > 1 and _text_width(line[:cut], font, size) > width:
                cut -= 1
            lines.append(line[:cut])
            line = line[cut:]
        lines.append(line)
    return lines


def _fit_title(title: str, width: float):
    for size in (22, 20, 18, 16, 14):
        if _text_width(title, FONT_BOLD, size) <= width:
            return title, size
    return _clip(title, width, FONT_BOLD, 14), 14


def _fmt_number(value: Any) -> str:
    if value is None:
        return "-"
    num = float(value)
    return str(int(num)) if num.is_integer() else f"{num:.1f}"


class _Layout:
    """Vertical cursor over a growing list of pages."""

    def __init__(self, doc: Document):
        self.doc = doc
        self.page: Optional[Page] = None
        self.y = 0.0
        self.new_page()

    def new_page(self):
        self.page = Page(len(self.doc.pages) + 1)
        self.doc.pages.append(self.page)
        self.y = CONTINUATION_TOP

    def remaining(self) -> float:
        return CONTENT_BOTTOM - self.y

    def ensure(self, height: float):
        if self.y + height > CONTENT_BOTTOM:
            self.new_page()

    def break_if_low(self, threshold: float = PAGE_BREAK_THRESHOLD):
        if self.remaining() < threshold:
            self.new_page()

    def heading(self, text: str):
        self.ensure(12)
        self.page.text(MARGIN, self.y, text, size=14, bold=True, color=HEADING)
        self.y += 8

    def mark(self, kind: str, section_id: str, title: str, empty: bool = False):
        self.doc.sections.append(Section(kind, section_id, title, self.page.number, empty))


# ── Sections ────────────────────────────────────────────────────────

def _draw_header(layout: _Layout, report: Report, author: str, date_text: str,
                 department_name: Optional[str]):
    page = layout.page
    page.rect(0, 0, PAGE_WIDTH, HEADER_HEIGHT, fill=BRAND_BLUE)
    title, size = _fit_title(report.title, CONTENT_WIDTH)
    page.text(MARGIN, 22, title, size=size, bold=True, color=WHITE)
    page.text(MARGIN, 32, f"Generated by: {author}", size=10, color=WHITE)
    page.text(MARGIN, 38, f"Date: {date_text}", size=10, color=WHITE)
    if department_name:
        page.text(PAGE_WIDTH - MARGIN, 32, f"Department: {department_name}", size=10, color=WHITE, align="right")
    page.text(PAGE_WIDTH - MARGIN, 38, f"Status: {report.status.label}", size=10, color=WHITE, align="right")
    layout.mark("header", "header", report.title)
    layout.y = HEADER_HEIGHT + 10


def _draw_summary(layout: _Layout, summary: Dict[str, Any]):
    layout.heading("Executive Summary")
    page = layout.page
    box_width = (CONTENT_WIDTH - 9) / 4
    avg = float(summary.get("avgAttendance") or 0)
    cards = [
        ("Total Students", _fmt_number(summary.get("totalStudents") or 0), "#3b82f6"),
        ("Avg Attendance", f"{avg:.1f}%", "#10b981"),
        ("High Performers", _fmt_number(summary.get("highPerformers") or 0), "#8b5cf6"),
        ("Low Attendance", _fmt_number(summary.get("lowAttendance") or 0), "#ef4444"),
    ]
    for i, (label, value, color) in enumerate(cards):
        box_x = MARGIN + i * (box_width + 3)
        page.round_rect(box_x, layout.y, box_width, 22, 3, fill=LIGHT_ROW)
        page.text(box_x + box_width / 2, layout.y + 10, value, size=16, bold=True, color=color, align="center")
        page.text(box_x + box_width / 2, layout.y + 17, label, size=7, color=MUTED, align="center")
    layout.mark("summary", "summary", "Executive Summary")
    layout.y += 30


def _draw_student_profile(layout: _Layout, envelope: SingleStudentData):
    layout.heading("Student Profile")
    layout.mark("profile", "profile", "Student Profile")
    rows = [("Name", envelope.student_name), ("Student ID", envelope.student_student_id or "N/A")]
    rows += [(f["label"], f["value"]) for f in envelope.custom_fields]
    value_x = MARGIN + 45
    for label, value in rows:
        lines = _wrap(str(value), CONTENT_WIDTH - 45) or [""]
        layout.ensure(LINE_HEIGHT * len(lines))
        layout.page.text(MARGIN, layout.y, _clip(f"{label}:", 43, FONT_BOLD, 10), size=10, bold=True, color=HEADING)
        for line in lines:
            layout.page.text(value_x, layout.y, line, size=10, color=BODY)
            layout.y += LINE_HEIGHT
    layout.y += 5


def _draw_text(layout: _Layout, text: str):
    layout.heading("Report Overview")
    layout.mark("text", "overview", "Report Overview")
    for line in _wrap(text, CONTENT_WIDTH):
        layout.ensure(LINE_HEIGHT)
        layout.page.text(MARGIN, layout.y, line, size=10, color=BODY)
        layout.y += LINE_HEIGHT
    layout.y += 5


def _draw_charts(layout: _Layout, envelope: Envelope, notices: List[RenderDegraded]):
    charts = chart_specs(envelope)
    if not charts:
        return
    layout.break_if_low(PAGE_BREAK_THRESHOLD + 10)
    layout.heading("Data Visualizations")

    for i, chart in enumerate(charts):
        column = i % 2
        if column == 0 and i > 0:
            layout.y += CHART_HEIGHT + CHART_GAP
            layout.break_if_low()
        x = MARGIN + column * (CHART_WIDTH + CHART_GAP)
        draw_card(layout.page, x, layout.y, CHART_WIDTH, CHART_HEIGHT)
        drawer = DRAWERS[chart.kind]
        if chart.kind == "pie":
            drawn = drawer(layout.page, chart.points, x, layout.y, CHART_WIDTH, CHART_HEIGHT, chart.title)
        else:
            drawn = drawer(layout.page, chart.points, x, layout.y, CHART_WIDTH, CHART_HEIGHT, chart.title,
                           color=CHART_COLORS.get(chart.id, "#3b82f6"))
        if not drawn:
            reason = "all values are zero" if chart.points else "no data points"
            notices.append(RenderDegraded(chart.id, reason))
            logger.info("Chart %s rendered as placeholder: %s", chart.id, reason)
        layout.mark("chart", chart.id, chart.title, empty=not drawn)

    layout.y += CHART_HEIGHT + CHART_GAP


def _draw_table_row(page: Page, y: float, cells: Sequence[str], widths: Sequence[float],
                    fill: Optional[str], bold: bool = False, color: str = BODY):
    if fill:
        page.rect(MARGIN, y, sum(widths), ROW_HEIGHT, fill=fill)
    page.line(MARGIN, y + ROW_HEIGHT, MARGIN + sum(widths), y + ROW_HEIGHT, color=GRID, width=0.2)
    x = MARGIN
    font = FONT_BOLD if bold else FONT_REGULAR
    for cell, width in zip(cells, widths):
        page.text(x + 2, y + 4.8, _clip(str(cell), width - 3, font, 8), size=8, bold=bold, color=color)
        x += width


def _draw_table(layout: _Layout, section_id: str, title: str, header: Sequence[str],
                rows: Sequence[Sequence[str]], widths: Sequence[float],
                footer_rows: Sequence[Sequence[str]] = (), note: Optional[str] = None):
    """Row-per-entity table; rows break across pages with the header repeated."""
    layout.break_if_low()
    layout.heading(title)
    layout.mark("table", section_id, title)
    _draw_table_row(layout.page, layout.y, header, widths, BRAND_BLUE, bold=True, color=WHITE)
    layout.y += ROW_HEIGHT

    body = [(r, LIGHT_ROW if i % 2 else None, False) for i, r in enumerate(rows)]
    body += [(r, FOOTER_ROW, True) for r in footer_rows]
    for cells, fill, bold in body:
        if layout.y + ROW_HEIGHT > CONTENT_BOTTOM:
            layout.new_page()
            _draw_table_row(layout.page, layout.y, header, widths, BRAND_BLUE, bold=True, color=WHITE)
            layout.y += ROW_HEIGHT
        _draw_table_row(layout.page, layout.y, cells, widths, fill, bold=bold, color=HEADING if bold else BODY)
        layout.y += ROW_HEIGHT

    if note:
        layout.ensure(LINE_HEIGHT + 2)
        layout.y += 4
        layout.page.text(MARGIN, layout.y, note, size=8, color=MUTED)
    layout.y += 8


def _draw_roster(layout: _Layout, envelope: ClassReportData):
    students = envelope.students
    if not students:
        return
    rows = []
    for s in students[:ROSTER_ROW_CAP]:
        attendance = s.get("attendance")
        rows.append([
            s.get("name") or "N/A",
            s.get("email") or "-",
            f"{round_half_up(attendance)}%" if attendance is not None else "-",
            s.get("guardian_name") or "-",
        ])
    note = None
    if len(students) > ROSTER_ROW_CAP:
        note = f"Showing first {ROSTER_ROW_CAP} of {len(students)} students."
    _draw_table(layout, "students", "Student Records",
                ["Name", "Email", "Attendance %", "Guardian"], rows, [50, 60, 25, 45], note=note)


def subject_breakdown(subject_marks: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Per-subject percentage/grade rows plus total and average summaries."""
    rows = []
    for item in subject_marks:
        pct = subject_percentage(item.get("marks"), item.get("outOf", 100))
        grade = get_grade(pct)
        rows.append({
            "subject": item.get("subject") or "N/A",
            "marks": item.get("marks") or 0,
            "outOf": item.get("outOf", 100),
            "percentage": pct,
            "grade": grade["label"],
            "remark": grade["remark"],
        })
    if not rows:
        return {"rows": [], "total": None, "average": None}

    total_marks = sum(float(r["marks"]) for r in rows)
    total_out_of = sum(float(r["outOf"]) for r in rows)
    total_pct = subject_percentage(total_marks, total_out_of)
    avg_pct = round_half_up(sum(r["percentage"] for r in rows) / len(rows))
    total_grade, avg_grade = get_grade(total_pct), get_grade(avg_pct)
    return {
        "rows": rows,
        "total": {"marks": total_marks, "outOf": total_out_of, "percentage": total_pct,
                  "grade": total_grade["label"], "remark": total_grade["remark"]},
        "average": {"marks": total_marks / len(rows), "percentage": avg_pct,
                    "grade": avg_grade["label"], "remark": avg_grade["remark"]},
    }


def _draw_subject_marks(layout: _Layout, envelope: SingleStudentData):
    breakdown = subject_breakdown(envelope.subject_marks)
    if not breakdown["rows"]:
        return
    rows = [
        [r["subject"], _fmt_number(r["marks"]), _fmt_number(r["outOf"]), f"{r['percentage']}%", r["grade"], r["remark"]]
        for r in breakdown["rows"]
    ]
    total, average = breakdown["total"], breakdown["average"]
    footer = [
        ["Total", _fmt_number(total["marks"]), _fmt_number(total["outOf"]),
         f"{total['percentage']}%", total["grade"], total["remark"]],
        ["Average", _fmt_number(round(average["marks"], 1)), "", f"{average['percentage']}%",
         average["grade"], average["remark"]],
    ]
    _draw_table(layout, "subject_marks", "Subject Marks Breakdown",
                ["Subject", "Marks", "Out Of", "Percentage", "Grade", "Remark"],
                rows, [50, 22, 22, 28, 18, 40], footer_rows=footer)


# ═══════════════════════════════════════════════════════════════════
# RENDER
# ═══════════════════════════════════════════════════════════════════

def render(
    report: Report,
    envelope: Any = None,
    generated_by: Optional[str] = None,
    generated_on: Optional[date] = None,
    department_name: Optional[str] = None,
) -> Document:
    """
    Lay out ``report`` and return the paginated document.

    ``envelope`` defaults to the report's stored chart data; a raw dict is
    parsed strictly. Footers are stamped after layout so they can show the
    final page count.
    """
    env = parse_envelope(envelope if envelope is not None else report.chart_data)
    on = generated_on or date.today()
    date_text = format_date(on)
    author = generated_by or report.reporter_id

    doc = Document(title=report.title, author=author)
    layout = _Layout(doc)
    _draw_header(layout, report, author, date_text, department_name)

    if isinstance(env, ClassReportData):
        summary = env.summary
        if summary is None and env.students:
            summary = summarize_students(env.students)
        if summary is not None:
            _draw_summary(layout, summary)
    else:
        _draw_student_profile(layout, env)

    text = report.content or env.description
    if text:
        _draw_text(layout, text)

    _draw_charts(layout, env, doc.notices)

    if isinstance(env, ClassReportData):
        _draw_roster(layout, env)
    else:
        _draw_subject_marks(layout, env)

    stamp_footers(doc.pages, date_text)
    return doc


def render_pdf(report: Report, **kwargs) -> bytes:
    return render(report, **kwargs).to_pdf()
