"""
Authoring routes — turn roster records into chart-data envelopes ready to
be attached to a new report.
"""

from fastapi import APIRouter, Depends, HTTPException

from core.authoring import build_class_report, build_single_student_report, compose_student_content
from core.workflow import Actor
from routes.identity import get_actor

router = APIRouter()


def _list_field(payload: dict, key: str) -> list:
    value = payload.get(key) or []
    if not isinstance(value, list):
        raise HTTPException(400, f"'{key}' must be a list.")
    return value


@router.post("/class-report")
async def author_class_report(payload: dict, actor: Actor = Depends(get_actor)):
    """Snapshot a (year-filtered) class into a class_report envelope."""
    envelope = build_class_report(
        students=_list_field(payload, "students"),
        selected_charts=_list_field(payload, "selectedCharts"),
        selected_year=payload.get("selectedYear", "all"),
        grade_data=_list_field(payload, "gradeData"),
        performance_data=_list_field(payload, "performanceData"),
        subject_comparison=_list_field(payload, "subjectComparisonData"),
        description=payload.get("description"),
    )
    return {"chart_data": envelope.to_dict()}


@router.post("/single-student")
async def author_single_student(payload: dict, actor: Actor = Depends(get_actor)):
    """Build a single_student envelope plus the matching report content text."""
    student = payload.get("student")
    if not isinstance(student, dict) or not student.get("name"):
        raise HTTPException(400, "Provide a 'student' with at least a 'name'.")
    custom_fields = _list_field(payload, "customFields")
    envelope = build_single_student_report(
        student=student,
        selected_charts=_list_field(payload, "selectedCharts"),
        subject_marks=_list_field(payload, "subjectMarks"),
        progress_data=_list_field(payload, "progressData"),
        monthly_attendance=_list_field(payload, "monthlyAttendance"),
        custom_fields=custom_fields,
        description=payload.get("description"),
    )
    return {
        "chart_data": envelope.to_dict(),
        "content": compose_student_content(student, payload.get("description"), custom_fields),
    }
