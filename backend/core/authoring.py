"""
authoring.py — Build chart-data envelopes from roster records.

Mirrors what a teacher does in the report composer: pick a year (or all),
pick charts, and snapshot the students into a class report; or pick one
student and describe their marks for a single-student report.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from core.envelope import CLASS_REPORT, SINGLE_STUDENT, ClassReportData, SingleStudentData, parse_envelope

# Summary thresholds are fixed, not configurable.
HIGH_PERFORMER_THRESHOLD = 90
LOW_ATTENDANCE_THRESHOLD = 75

ATTENDANCE_CHART_STUDENTS = 8
SHORT_NAME_LENGTH = 6


def _attendance_series(students: Sequence[Dict[str, Any]]) -> pd.Series:
    if not students:
        return pd.Series(dtype=float)
    df = pd.DataFrame(list(students))
    if "attendance" not in df.columns:
        return pd.Series([0.0] * len(df))
    return pd.to_numeric(df["attendance"], errors="coerce").fillna(0)


def summarize_students(students: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Headline counts shown on a class report's summary strip."""
    att = _attendance_series(students)
    return {
        "totalStudents": int(len(att)),
        "avgAttendance": float(att.mean()) if len(att) else 0,
        "highPerformers": int((att >= HIGH_PERFORMER_THRESHOLD).sum()),
        "lowAttendance": int((att < LOW_ATTENDANCE_THRESHOLD).sum()),
    }


def filter_by_year(students: Iterable[Dict[str, Any]], selected_year: Any = "all") -> List[Dict[str, Any]]:
    students = [s for s in students if isinstance(s, dict)]
    if str(selected_year) == "all":
        return students
    try:
        year = int(selected_year)
    except (TypeError, ValueError):
        return []
    return [s for s in students if _year_of(s) == year]


def _year_of(student: Dict[str, Any]) -> Optional[int]:
    try:
        return int(float(str(student.get("year")).strip()))
    except (TypeError, ValueError):
        return None


def _short_name(name: Any) -> str:
    parts = str(name or "").split()
    return parts[0][:SHORT_NAME_LENGTH] if parts else "N/A"


def _iso(generated_at: Optional[datetime]) -> str:
    return (generated_at or datetime.now(timezone.utc)).isoformat()


def build_class_report(
    students: Iterable[Dict[str, Any]],
    selected_charts: Sequence[str],
    selected_year: Any = "all",
    grade_data: Optional[Sequence[Dict[str, Any]]] = None,
    performance_data: Optional[Sequence[Dict[str, Any]]] = None,
    subject_comparison: Optional[Sequence[Dict[str, Any]]] = None,
    description: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> ClassReportData:
    cohort = filter_by_year(students, selected_year)
    att = _attendance_series(cohort)
    attendance_data = [
        {"name": _short_name(s.get("name")), "attendance": float(a)}
        for s, a in zip(cohort[:ATTENDANCE_CHART_STUDENTS], att[:ATTENDANCE_CHART_STUDENTS])
    ]
    snapshot = [
        {
            "name": s.get("name"),
            "email": s.get("email"),
            "attendance": s.get("attendance"),
            "guardian_name": s.get("guardian_name"),
            "student_id": s.get("student_id"),
            "year": s.get("year"),
        }
        for s in cohort
    ]
    raw = {
        "type": CLASS_REPORT,
        "selectedYear": str(selected_year),
        "selectedCharts": list(selected_charts),
        "attendanceData": attendance_data,
        "gradeData": list(grade_data or []),
        "performanceData": list(performance_data or []),
        "subjectComparisonData": list(subject_comparison or []),
        "students": snapshot,
        "summary": summarize_students(cohort),
        "description": description,
        "generatedAt": _iso(generated_at),
    }
    return parse_envelope(raw)


def build_single_student_report(
    student: Dict[str, Any],
    selected_charts: Sequence[str],
    subject_marks: Sequence[Dict[str, Any]] = (),
    progress_data: Sequence[Dict[str, Any]] = (),
    monthly_attendance: Sequence[Dict[str, Any]] = (),
    custom_fields: Sequence[Dict[str, Any]] = (),
    description: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> SingleStudentData:
    attendance = float(_attendance_series([student]).iloc[0])
    raw = {
        "type": SINGLE_STUDENT,
        "studentId": student.get("id") or student.get("student_id") or "",
        "studentName": student.get("name"),
        "studentStudentId": student.get("student_id"),
        "selectedCharts": list(selected_charts),
        "attendanceData": [
            {"name": "Present", "value": attendance},
            {"name": "Absent", "value": 100 - attendance},
        ],
        "subjectMarks": list(subject_marks),
        "progressData": list(progress_data),
        "monthlyAttendance": list(monthly_attendance),
        "customFields": list(custom_fields),
        "description": description,
        "generatedAt": _iso(generated_at),
    }
    return parse_envelope(raw)


def compose_student_content(
    student: Dict[str, Any],
    description: Optional[str] = None,
    custom_fields: Sequence[Dict[str, Any]] = (),
) -> str:
    """Plain-text body stored as the report content of a single-student report."""
    lines = [
        f"Student Report for {student.get('name') or 'N/A'}",
        f"Student ID: {student.get('student_id') or 'N/A'}",
        f"Year: {student.get('year') or 1}",
        f"Email: {student.get('email') or 'N/A'}",
        f"Attendance: {student.get('attendance') or 0}%",
    ]
    if description:
        lines += ["", description.strip()]
    extras = [
        f"{f['label']}: {f['value']}" for f in custom_fields
        if isinstance(f, dict) and f.get("label") and f.get("value")
    ]
    if extras:
        lines += [""] + extras
    return "\n".join(lines)
