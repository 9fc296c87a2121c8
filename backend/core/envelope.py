"""
envelope.py — Chart-data envelopes attached to every report.

An envelope is the point-in-time snapshot a report author produces. Two
shapes exist, told apart by the ``type`` discriminator:

- class_report    (teacher class-report flow)
- single_student  (teacher single-student flow)

Raw JSON is parsed exactly once, when a report is created. Series are
normalised here (labels default to "N/A", numbers to 0, colours to hex) so
the renderer never has to second-guess the payload.
"""

import colorsys
import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from core.errors import ValidationError
from core.grading import subject_percentage

logger = logging.getLogger(__name__)

CLASS_REPORT = "class_report"
SINGLE_STUDENT = "single_student"
ENVELOPE_TYPES = (CLASS_REPORT, SINGLE_STUDENT)

DEFAULT_COLOR = "#6b7280"

# Field kinds used to normalise series items:
#   label          -> non-empty str, "N/A" fallback
#   number         -> int/float, 0 fallback
#   out_of         -> int/float, 100 fallback
#   optional_number-> int/float or None
#   text           -> str or None
#   color          -> "#rrggbb"
CLASS_SERIES = {
    "attendanceData": {"name": "label", "attendance": "number"},
    "subjectComparisonData": {"subject": "label", "avg": "number"},
    "gradeData": {"name": "label", "value": "number", "color": "color"},
    "performanceData": {"month": "label", "score": "number"},
    "students": {
        "name": "label",
        "email": "text",
        "attendance": "optional_number",
        "guardian_name": "text",
        "student_id": "text",
        "year": "optional_number",
    },
}

SINGLE_SERIES = {
    "attendanceData": {"name": "label", "value": "number"},
    "subjectMarks": {"subject": "label", "marks": "number", "outOf": "out_of"},
    "monthlyAttendance": {"month": "label", "attendance": "number"},
    "progressData": {"month": "label", "score": "number"},
    "customFields": {"label": "text", "value": "text"},
}

SUMMARY_KEYS = ("totalStudents", "avgAttendance", "highPerformers", "lowAttendance")

# (chart id, kind, section title, series key, label key, value key)
KNOWN_CHARTS = {
    CLASS_REPORT: [
        ("attendance", "bar", "Attendance Analysis", "attendanceData", "name", "attendance"),
        ("grades", "pie", "Grade Distribution", "gradeData", "name", "value"),
        ("performance", "line", "Performance Trend", "performanceData", "month", "score"),
        ("comparison", "bar", "Subject Comparison", "subjectComparisonData", "subject", "avg"),
    ],
    SINGLE_STUDENT: [
        ("attendance_pie", "pie", "Attendance Overview", "attendanceData", "name", "value"),
        ("marks_bar", "bar", "Subject Marks", "subjectMarks", "subject", "percentage"),
        ("progress_line", "line", "Progress Trend", "progressData", "month", "score"),
        ("monthly_attendance", "bar", "Monthly Attendance", "monthlyAttendance", "month", "attendance"),
    ],
}


# ── Value helpers ───────────────────────────────────────────────────

def _safe_number(val) -> Optional[Union[int, float]]:
    if isinstance(val, bool):
        return int(val)
    try:
        num = float(str(val).replace("%", "").strip()) if isinstance(val, str) else float(val)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return int(num) if num.is_integer() else num


def _hsl_to_hex(h: float, s: float, l: float) -> str:
    r, g, b = colorsys.hls_to_rgb(h / 360.0, l / 100.0, s / 100.0)
    return "#{:02x}{:02x}{:02x}".format(round(r * 255), round(g * 255), round(b * 255))


def normalize_color(value: Any) -> str:
    """Accept '#rgb', '#rrggbb' or 'hsl(h, s%, l%)'; anything else → default grey."""
    text = str(value or "").strip().lower()
    if re.fullmatch(r"#[0-9a-f]{6}", text):
        return text
    if re.fullmatch(r"#[0-9a-f]{3}", text):
        return "#" + "".join(ch * 2 for ch in text[1:])
    match = re.fullmatch(r"hsl\(\s*(\d+(?:\.\d+)?)\s*,\s*(\d+(?:\.\d+)?)%?\s*,\s*(\d+(?:\.\d+)?)%?\s*\)", text)
    if match:
        h, s, l = (float(g) for g in match.groups())
        return _hsl_to_hex(h % 360, min(s, 100.0), min(l, 100.0))
    return DEFAULT_COLOR


def _normalize_item(item: Mapping, schema: Dict[str, str]) -> Dict[str, Any]:
    out = {}
    for key, kind in schema.items():
        raw = item.get(key)
        if kind == "label":
            text = "" if raw is None else str(raw).strip()
            out[key] = text or "N/A"
        elif kind == "number":
            num = _safe_number(raw)
            out[key] = 0 if num is None else num
        elif kind == "out_of":
            num = _safe_number(raw)
            out[key] = 100 if num is None else num
        elif kind == "optional_number":
            out[key] = _safe_number(raw)
        elif kind == "text":
            text = "" if raw is None else str(raw).strip()
            out[key] = text or None
        elif kind == "color":
            out[key] = normalize_color(raw)
    return out


def _normalize_series(raw: Mapping, key: str, schema: Dict[str, str]) -> List[Dict[str, Any]]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError(
            f"Chart data field '{key}' must be a list.",
            {"field": key, "received": type(value).__name__},
        )
    items = []
    for item in value:
        if isinstance(item, Mapping):
            items.append(_normalize_item(item, schema))
        else:
            logger.debug("Dropping non-object item from %s: %r", key, item)
    return items


def _optional_text(raw: Mapping, key: str) -> Optional[str]:
    value = raw.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ── Envelope types ──────────────────────────────────────────────────

@dataclass(frozen=True)
class ChartPoint:
    label: str
    value: float
    color: Optional[str] = None


@dataclass(frozen=True)
class ChartSpec:
    id: str
    kind: str
    title: str
    points: Tuple[ChartPoint, ...]


@dataclass
class ClassReportData:
    selected_charts: List[str]
    selected_year: str = "all"
    attendance_data: List[Dict[str, Any]] = field(default_factory=list)
    subject_comparison_data: List[Dict[str, Any]] = field(default_factory=list)
    grade_data: List[Dict[str, Any]] = field(default_factory=list)
    performance_data: List[Dict[str, Any]] = field(default_factory=list)
    students: List[Dict[str, Any]] = field(default_factory=list)
    summary: Optional[Dict[str, Any]] = None
    description: Optional[str] = None
    generated_at: Optional[str] = None

    type: ClassVar[str] = CLASS_REPORT

    def series(self, key: str) -> List[Dict[str, Any]]:
        return {
            "attendanceData": self.attendance_data,
            "subjectComparisonData": self.subject_comparison_data,
            "gradeData": self.grade_data,
            "performanceData": self.performance_data,
            "students": self.students,
        }.get(key, [])

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type,
            "selectedYear": self.selected_year,
            "selectedCharts": list(self.selected_charts),
            "attendanceData": [dict(i) for i in self.attendance_data],
            "subjectComparisonData": [dict(i) for i in self.subject_comparison_data],
            "gradeData": [dict(i) for i in self.grade_data],
            "performanceData": [dict(i) for i in self.performance_data],
            "students": [dict(i) for i in self.students],
        }
        if self.summary is not None:
            data["summary"] = dict(self.summary)
        if self.description is not None:
            data["description"] = self.description
        if self.generated_at is not None:
            data["generatedAt"] = self.generated_at
        return data


@dataclass
class SingleStudentData:
    selected_charts: List[str]
    student_id: str = ""
    student_name: str = "N/A"
    student_student_id: Optional[str] = None
    attendance_data: List[Dict[str, Any]] = field(default_factory=list)
    subject_marks: List[Dict[str, Any]] = field(default_factory=list)
    monthly_attendance: List[Dict[str, Any]] = field(default_factory=list)
    progress_data: List[Dict[str, Any]] = field(default_factory=list)
    custom_fields: List[Dict[str, Any]] = field(default_factory=list)
    description: Optional[str] = None
    generated_at: Optional[str] = None

    type: ClassVar[str] = SINGLE_STUDENT

    def series(self, key: str) -> List[Dict[str, Any]]:
        if key == "subjectMarks":
            # Bar values are the per-subject percentage, not raw marks.
            return [
                dict(item, percentage=subject_percentage(item["marks"], item["outOf"]))
                for item in self.subject_marks
            ]
        return {
            "attendanceData": self.attendance_data,
            "monthlyAttendance": self.monthly_attendance,
            "progressData": self.progress_data,
            "customFields": self.custom_fields,
        }.get(key, [])

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type,
            "studentId": self.student_id,
            "studentName": self.student_name,
            "studentStudentId": self.student_student_id,
            "selectedCharts": list(self.selected_charts),
            "attendanceData": [dict(i) for i in self.attendance_data],
            "subjectMarks": [dict(i) for i in self.subject_marks],
            "monthlyAttendance": [dict(i) for i in self.monthly_attendance],
            "progressData": [dict(i) for i in self.progress_data],
            "customFields": [dict(i) for i in self.custom_fields],
        }
        if self.description is not None:
            data["description"] = self.description
        if self.generated_at is not None:
            data["generatedAt"] = self.generated_at
        return data


Envelope = Union[ClassReportData, SingleStudentData]


# ── Parsing ─────────────────────────────────────────────────────────

def _parse_selected_charts(raw: Mapping, strict: bool) -> List[str]:
    selected = raw.get("selectedCharts")
    if selected is None and not strict:
        return []
    if not isinstance(selected, (list, tuple)) or not all(isinstance(c, str) for c in selected):
        raise ValidationError(
            "Chart data field 'selectedCharts' must be a list of chart ids.",
            {"field": "selectedCharts"},
        )
    # Keep first occurrence order, drop duplicates.
    return list(dict.fromkeys(selected))


def _parse_summary(raw: Mapping) -> Optional[Dict[str, Any]]:
    summary = raw.get("summary")
    if summary is None:
        return None
    if not isinstance(summary, Mapping):
        raise ValidationError("Chart data field 'summary' must be an object.", {"field": "summary"})
    out = {}
    for key in SUMMARY_KEYS:
        num = _safe_number(summary.get(key))
        out[key] = 0 if num is None else num
    return out


def parse_envelope(raw: Any, strict: bool = True) -> Envelope:
    """
    Validate and normalise a raw chart-data payload.

    With ``strict`` (the default) a missing or unknown ``type`` is rejected.
    With ``strict=False`` a payload lacking ``type`` is read as a
    class_report, which is how legacy payloads were treated.
    """
    if isinstance(raw, (ClassReportData, SingleStudentData)):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError("Chart data must be a JSON object.",
                              {"received": type(raw).__name__})

    kind = raw.get("type")
    if kind is None:
        if strict:
            raise ValidationError(
                "Chart data is missing its 'type' discriminator.",
                {"expected": list(ENVELOPE_TYPES)},
            )
        logger.warning("Chart data without 'type'; reading it as %s", CLASS_REPORT)
        kind = CLASS_REPORT
    if kind not in ENVELOPE_TYPES:
        raise ValidationError(
            f"Unrecognised chart data type '{kind}'.",
            {"expected": list(ENVELOPE_TYPES), "received": str(kind)},
        )

    selected = _parse_selected_charts(raw, strict)

    if kind == CLASS_REPORT:
        series = {key: _normalize_series(raw, key, schema) for key, schema in CLASS_SERIES.items()}
        return ClassReportData(
            selected_charts=selected,
            selected_year=str(raw.get("selectedYear") or "all"),
            attendance_data=series["attendanceData"],
            subject_comparison_data=series["subjectComparisonData"],
            grade_data=series["gradeData"],
            performance_data=series["performanceData"],
            students=series["students"],
            summary=_parse_summary(raw),
            description=_optional_text(raw, "description"),
            generated_at=_optional_text(raw, "generatedAt"),
        )

    series = {key: _normalize_series(raw, key, schema) for key, schema in SINGLE_SERIES.items()}
    return SingleStudentData(
        selected_charts=selected,
        student_id=str(raw.get("studentId") or ""),
        student_name=_optional_text(raw, "studentName") or "N/A",
        student_student_id=_optional_text(raw, "studentStudentId"),
        attendance_data=series["attendanceData"],
        subject_marks=series["subjectMarks"],
        monthly_attendance=series["monthlyAttendance"],
        progress_data=series["progressData"],
        custom_fields=[f for f in series["customFields"] if f["label"] and f["value"]],
        description=_optional_text(raw, "description"),
        generated_at=_optional_text(raw, "generatedAt"),
    )


def known_chart_ids(envelope: Envelope) -> List[str]:
    return [c[0] for c in KNOWN_CHARTS[envelope.type]]


def chart_specs(envelope: Envelope) -> List[ChartSpec]:
    """Selected charts, in canonical draw order, with their data points."""
    selected = set(envelope.selected_charts)
    unknown = selected.difference(known_chart_ids(envelope))
    if unknown:
        logger.debug("Ignoring unknown chart ids for %s: %s", envelope.type, sorted(unknown))

    specs = []
    for chart_id, kind, title, series_key, label_key, value_key in KNOWN_CHARTS[envelope.type]:
        if chart_id not in selected:
            continue
        points = tuple(
            ChartPoint(
                label=str(item.get(label_key, "N/A")),
                value=float(item.get(value_key) or 0),
                color=item.get("color"),
            )
            for item in envelope.series(series_key)
        )
        specs.append(ChartSpec(id=chart_id, kind=kind, title=title, points=points))
    return specs
