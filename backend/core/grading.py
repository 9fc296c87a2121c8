"""
grading.py — Percentage and grade-band helpers for subject marks.

Grade ladder (fixed, monotonic):
  ≥90 A+, ≥80 A, ≥70 B+, ≥60 B, ≥50 C, ≥40 D, else F
each paired with a qualitative remark.
"""

import math
from typing import Any, Dict, List, Optional


# (min_percentage, label, remark), ordered high to low.
GRADE_BANDS = [
    (90, "A+", "Outstanding"),
    (80, "A", "Excellent"),
    (70, "B+", "Very Good"),
    (60, "B", "Good"),
    (50, "C", "Satisfactory"),
    (40, "D", "Needs Improvement"),
    (0, "F", "Unsatisfactory"),
]


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives, matching Math.round."""
    return int(math.floor(value + 0.5))


def subject_percentage(marks: Any, out_of: Any = 100) -> int:
    """round(marks / out_of * 100); 0 when either side is unusable."""
    try:
        m = float(marks)
        o = float(out_of)
    except (TypeError, ValueError):
        return 0
    if o <= 0 or math.isnan(m) or math.isnan(o):
        return 0
    return round_half_up(m / o * 100)


def get_grade(percentage: Optional[float]) -> Dict[str, Any]:
    """Return {label, remark, percentage} for a 0-100 percentage."""
    if percentage is None:
        return {"label": "-", "remark": "No marks", "percentage": None}
    value = float(percentage)
    for min_pct, label, remark in GRADE_BANDS:
        if value >= min_pct:
            return {"label": label, "remark": remark, "percentage": value}
    return {"label": "F", "remark": "Unsatisfactory", "percentage": value}


def get_grade_label(percentage: Optional[float]) -> str:
    return get_grade(percentage)["label"]


def get_all_grade_thresholds() -> List[Dict[str, Any]]:
    """Full grade scale for legends and the config endpoint."""
    thresholds = []
    for idx, (min_pct, label, remark) in enumerate(GRADE_BANDS):
        max_pct = 100 if idx == 0 else GRADE_BANDS[idx - 1][0] - 1
        thresholds.append({"min": min_pct, "max": max_pct, "label": label, "remark": remark})
    return thresholds
