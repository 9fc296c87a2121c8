"""
store.py — Report records and their in-process persistence.

The store owns the status field. Every status write goes through
``update_status``, which re-reads the stored status under the lock and
only advances it by exactly one stage, so a stale caller can never move a
report sideways or backwards.
"""

import copy
import enum
import itertools
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from core.envelope import Envelope, parse_envelope
from core.errors import InvalidTransition, NotFound, ValidationError

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    TEACHER = "teacher"
    HOD = "hod"
    PRINCIPAL = "principal"


class ReportStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED_TO_HOD = "submitted_to_hod"
    SUBMITTED_TO_PRINCIPAL = "submitted_to_principal"
    APPROVED = "approved"

    @property
    def ordinal(self) -> int:
        return STAGE_ORDER.index(self)

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title().replace("Hod", "HOD")


STAGE_ORDER = [
    ReportStatus.DRAFT,
    ReportStatus.SUBMITTED_TO_HOD,
    ReportStatus.SUBMITTED_TO_PRINCIPAL,
    ReportStatus.APPROVED,
]


def next_status(status: ReportStatus) -> Optional[ReportStatus]:
    idx = status.ordinal
    return STAGE_ORDER[idx + 1] if idx + 1 < len(STAGE_ORDER) else None


@dataclass
class Report:
    id: str
    reporter_id: str
    reporter_role: Role
    title: str
    chart_data: Envelope
    status: ReportStatus
    created_at: datetime
    updated_at: datetime
    department_id: Optional[str] = None
    content: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reporter_user_id": self.reporter_id,
            "reporter_role": self.reporter_role.value,
            "department_id": self.department_id,
            "title": self.title,
            "content": self.content,
            "chart_data": self.chart_data.to_dict(),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean_title(title: Optional[str]) -> str:
    if title is not None and not isinstance(title, str):
        raise ValidationError("Report title must be text.", {"field": "title"})
    cleaned = title.strip() if title else ""
    if not cleaned:
        raise ValidationError("Report title must not be empty.", {"field": "title"})
    return cleaned


def _clean_content(content: Optional[str]) -> Optional[str]:
    if content is not None and not isinstance(content, str):
        raise ValidationError("Report content must be text.", {"field": "content"})
    return content or None


def _coerce_status(status: Union[ReportStatus, str]) -> ReportStatus:
    try:
        return ReportStatus(status)
    except ValueError:
        raise InvalidTransition(f"Unknown report status '{status}'.", {"requested": str(status)}) from None


class ReportStore:
    """
    Thread-safe in-memory report table.

    Records handed out are deep copies; callers cannot mutate stored state
    except through the methods below.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow, strict_envelopes: bool = True):
        self._clock = clock
        self._strict = strict_envelopes
        self._lock = threading.Lock()
        self._rows: Dict[str, Report] = {}
        self._seq: Dict[str, int] = {}
        self._counter = itertools.count()

    def create(
        self,
        reporter_id: str,
        reporter_role: Union[Role, str],
        title: str,
        chart_data: Any,
        department_id: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Report:
        clean_title = _clean_title(title)
        clean_content = _clean_content(content)
        envelope = parse_envelope(chart_data, strict=self._strict)
        try:
            role = Role(reporter_role)
        except ValueError:
            raise ValidationError(f"Unknown reporter role '{reporter_role}'.", {"field": "reporter_role"}) from None

        now = self._clock()
        report = Report(
            id=uuid.uuid4().hex,
            reporter_id=str(reporter_id),
            reporter_role=role,
            department_id=department_id,
            title=clean_title,
            content=clean_content,
            chart_data=envelope,
            status=ReportStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._rows[report.id] = report
            self._seq[report.id] = next(self._counter)
        logger.info("Report %s created by %s (%s)", report.id, report.reporter_id, role.value)
        return copy.deepcopy(report)

    def get(self, report_id: str) -> Report:
        with self._lock:
            report = self._rows.get(report_id)
            if report is None:
                raise NotFound(f"Report '{report_id}' not found.", {"report_id": report_id})
            return copy.deepcopy(report)

    def list(
        self,
        reporter_id: Optional[str] = None,
        department_id: Optional[str] = None,
        status: Union[ReportStatus, str, Iterable, None] = None,
    ) -> List[Report]:
        """Filtered records, newest first; insertion order breaks ties."""
        if status is None:
            wanted = None
        elif isinstance(status, (ReportStatus, str)):
            wanted = {ReportStatus(status)}
        else:
            wanted = {ReportStatus(s) for s in status}

        with self._lock:
            rows = [
                r for r in self._rows.values()
                if (reporter_id is None or r.reporter_id == reporter_id)
                and (department_id is None or r.department_id == department_id)
                and (wanted is None or r.status in wanted)
            ]
            rows.sort(key=lambda r: (r.created_at, self._seq[r.id]), reverse=True)
            return [copy.deepcopy(r) for r in rows]

    def update_status(
        self,
        report_id: str,
        new_status: Union[ReportStatus, str],
        expected_from: Union[ReportStatus, str, None] = None,
    ) -> Report:
        with self._lock:
            report = self._rows.get(report_id)
            if report is None:
                raise NotFound(f"Report '{report_id}' not found.", {"report_id": report_id})
            target = _coerce_status(new_status)
            expected = _coerce_status(expected_from) if expected_from is not None else None
            current = report.status
            if expected is not None and current != expected:
                raise InvalidTransition(
                    f"Report is '{current.value}', expected '{expected.value}'.",
                    {"report_id": report_id, "current": current.value, "requested": target.value},
                )
            if next_status(current) != target:
                raise InvalidTransition(
                    f"Cannot move a report from '{current.value}' to '{target.value}'.",
                    {"report_id": report_id, "current": current.value, "requested": target.value},
                )
            report.status = target
            report.updated_at = self._clock()
            logger.info("Report %s moved %s -> %s", report_id, current.value, target.value)
            return copy.deepcopy(report)

    def update_details(self, report_id: str, title: Optional[str] = None,
                       content: Optional[str] = None) -> Report:
        """Edit title/content while the report is still a draft."""
        clean_title = _clean_title(title) if title is not None else None
        clean_content = _clean_content(content)
        with self._lock:
            report = self._rows.get(report_id)
            if report is None:
                raise NotFound(f"Report '{report_id}' not found.", {"report_id": report_id})
            if report.status != ReportStatus.DRAFT:
                raise InvalidTransition(
                    "Only draft reports can be edited.",
                    {"report_id": report_id, "current": report.status.value},
                )
            if clean_title is not None:
                report.title = clean_title
            if content is not None:
                report.content = clean_content
            report.updated_at = self._clock()
            return copy.deepcopy(report)

    def delete(self, report_id: str) -> None:
        with self._lock:
            if self._rows.pop(report_id, None) is None:
                raise NotFound(f"Report '{report_id}' not found.", {"report_id": report_id})
            self._seq.pop(report_id, None)
        logger.info("Report %s deleted", report_id)

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()
            self._seq.clear()
