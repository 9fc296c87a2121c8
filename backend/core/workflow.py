"""
workflow.py — Who may see and act on a report at each stage.

Status machine (forward only, one stage at a time):

    draft ──submit──▶ submitted_to_hod ──forward──▶ submitted_to_principal ──approve──▶ approved

| Action  | From                   | Actor                                   |
|---------|------------------------|-----------------------------------------|
| submit  | draft                  | the reporter, when teacher or hod       |
| forward | submitted_to_hod       | hod of the report's department          |
| approve | submitted_to_principal | principal                               |
| delete  | any                    | reporter, or whoever holds the review   |

Visibility:
- teacher   → reports they authored
- hod       → reports of their department, plus their own
- principal → submitted_to_principal / approved reports, plus their own

Preview and download are read-only and follow visibility. The gate checks
role and status from a fresh read, then asks the store to apply the move
only if the status is still the one it checked.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from core.errors import InvalidTransition, NotFound, PermissionDenied
from core.store import STAGE_ORDER, Report, ReportStatus, ReportStore, Role

logger = logging.getLogger(__name__)

PRINCIPAL_VISIBLE = (ReportStatus.SUBMITTED_TO_PRINCIPAL, ReportStatus.APPROVED)

STAGE_ORDINAL = {status: idx for idx, status in enumerate(STAGE_ORDER)}

# action -> (from status, to status, roles allowed to perform it)
TRANSITIONS = {
    "submit": (ReportStatus.DRAFT, ReportStatus.SUBMITTED_TO_HOD, (Role.TEACHER, Role.HOD)),
    "forward": (ReportStatus.SUBMITTED_TO_HOD, ReportStatus.SUBMITTED_TO_PRINCIPAL, (Role.HOD,)),
    "approve": (ReportStatus.SUBMITTED_TO_PRINCIPAL, ReportStatus.APPROVED, (Role.PRINCIPAL,)),
}


@dataclass(frozen=True)
class Actor:
    """Already-authenticated identity triple supplied by the session layer."""
    actor_id: str
    role: Role
    department_id: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def label(self) -> str:
        """Name printed on rendered documents; falls back to the role."""
        if self.display_name:
            return self.display_name
        return "HOD" if self.role == Role.HOD else self.role.value.title()


def _in_department(actor: Actor, report: Report) -> bool:
    return actor.department_id is not None and report.department_id == actor.department_id


def can_view(actor: Actor, report: Report) -> bool:
    if report.reporter_id == actor.actor_id:
        return True
    if actor.role == Role.HOD:
        return _in_department(actor, report)
    if actor.role == Role.PRINCIPAL:
        return report.status in PRINCIPAL_VISIBLE
    return False


def review_holder(actor: Actor, report: Report) -> bool:
    """True when ``actor`` currently holds review responsibility for ``report``."""
    if report.status == ReportStatus.SUBMITTED_TO_HOD:
        return actor.role == Role.HOD and _in_department(actor, report)
    if report.status in PRINCIPAL_VISIBLE:
        return actor.role == Role.PRINCIPAL
    return False


def _may_transition(actor: Actor, report: Report, action: str) -> bool:
    from_status, _, roles = TRANSITIONS[action]
    if report.status != from_status or actor.role not in roles:
        return False
    if action == "submit":
        return report.reporter_id == actor.actor_id
    if action == "forward":
        return _in_department(actor, report)
    return True


def get_visible(store: ReportStore, actor: Actor, report_id: str) -> Report:
    """Fetch a report, hiding the ones the actor may not see."""
    report = store.get(report_id)
    if not can_view(actor, report):
        raise NotFound(f"Report '{report_id}' not found.", {"report_id": report_id})
    return report


def visible_reports(store: ReportStore, actor: Actor, status=None) -> List[Report]:
    """Reports the actor may see, newest first."""
    if actor.role == Role.TEACHER:
        candidates = store.list(reporter_id=actor.actor_id, status=status)
    else:
        candidates = store.list(status=status)
    return [r for r in candidates if can_view(actor, r)]


def transition(store: ReportStore, actor: Actor, report_id: str, action: str) -> Report:
    if action not in TRANSITIONS:
        raise InvalidTransition(f"Unknown workflow action '{action}'.", {"action": action})
    # Legality is checked before visibility: a disallowed move is always 409.
    report = store.get(report_id)
    from_status, to_status, _ = TRANSITIONS[action]
    if not _may_transition(actor, report, action):
        logger.warning(
            "Rejected %s on report %s by %s (%s) at status %s",
            action, report_id, actor.actor_id, actor.role.value, report.status.value,
        )
        raise InvalidTransition(
            f"A {actor.role.value} cannot {action} a report that is '{report.status.value}'.",
            {"report_id": report_id, "action": action, "current": report.status.value,
             "role": actor.role.value},
        )
    return store.update_status(report_id, to_status, expected_from=from_status)


def submit(store: ReportStore, actor: Actor, report_id: str) -> Report:
    return transition(store, actor, report_id, "submit")


def forward(store: ReportStore, actor: Actor, report_id: str) -> Report:
    return transition(store, actor, report_id, "forward")


def approve(store: ReportStore, actor: Actor, report_id: str) -> Report:
    return transition(store, actor, report_id, "approve")


def can_delete(actor: Actor, report: Report) -> bool:
    return report.reporter_id == actor.actor_id or review_holder(actor, report)


def delete_report(store: ReportStore, actor: Actor, report_id: str) -> None:
    report = get_visible(store, actor, report_id)
    if not can_delete(actor, report):
        raise PermissionDenied(
            "Only the reporter or the current reviewer can delete this report.",
            {"report_id": report_id, "current": report.status.value},
        )
    store.delete(report_id)


def update_draft(store: ReportStore, actor: Actor, report_id: str,
                 title: Optional[str] = None, content: Optional[str] = None) -> Report:
    report = get_visible(store, actor, report_id)
    if report.reporter_id != actor.actor_id:
        raise PermissionDenied("Only the reporter can edit a report.", {"report_id": report_id})
    return store.update_details(report_id, title=title, content=content)


def allowed_actions(actor: Actor, report: Report) -> List[str]:
    if not can_view(actor, report):
        return []
    actions = ["preview", "download"]
    actions += [name for name in TRANSITIONS if _may_transition(actor, report, name)]
    if report.status == ReportStatus.DRAFT and report.reporter_id == actor.actor_id:
        actions.append("edit")
    if can_delete(actor, report):
        actions.append("delete")
    return actions


def status_summary(reports: List[Report]) -> Dict[str, Any]:
    """Dashboard counts over a list of (already visible) reports."""
    counts = {status.value: 0 for status in STAGE_ORDER}
    for report in reports:
        counts[report.status.value] += 1
    return {
        "total": len(reports),
        "by_status": counts,
        "pending_hod_review": counts[ReportStatus.SUBMITTED_TO_HOD.value],
        "pending_principal_review": counts[ReportStatus.SUBMITTED_TO_PRINCIPAL.value],
        "approved": counts[ReportStatus.APPROVED.value],
    }
