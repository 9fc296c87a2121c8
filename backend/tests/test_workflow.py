"""
Tests for core/workflow.py — visibility, transitions, deletion and dashboards.
"""

import itertools
import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core import workflow
from core.errors import InvalidTransition, NotFound, PermissionDenied
from core.store import STAGE_ORDER, ReportStatus, ReportStore, Role
from core.workflow import STAGE_ORDINAL, TRANSITIONS, Actor

CHART_DATA = {
    "type": "class_report",
    "selectedCharts": ["attendance"],
    "attendanceData": [{"name": "W1", "attendance": 90}],
}

TEACHER = Actor("t1", Role.TEACHER, "cs")
OTHER_TEACHER = Actor("t2", Role.TEACHER, "cs")
HOD = Actor("h1", Role.HOD, "cs")
OTHER_HOD = Actor("h2", Role.HOD, "math")
PRINCIPAL = Actor("p1", Role.PRINCIPAL)

ACTOR_BY_ROLE = {Role.TEACHER: TEACHER, Role.HOD: HOD, Role.PRINCIPAL: PRINCIPAL}

# (status, role, action) triples that are allowed for the reporter's own
# teacher, the department's HOD and the principal.
LEGAL = {
    (ReportStatus.DRAFT, Role.TEACHER, "submit"),
    (ReportStatus.SUBMITTED_TO_HOD, Role.HOD, "forward"),
    (ReportStatus.SUBMITTED_TO_PRINCIPAL, Role.PRINCIPAL, "approve"),
}


@pytest.fixture
def store():
    return ReportStore()


def _report_at(store, status, actor=TEACHER):
    report = store.create(actor.actor_id, actor.role, "Q1 Report", CHART_DATA, department_id=actor.department_id)
    for stage in STAGE_ORDER[1:STAGE_ORDER.index(status) + 1]:
        store.update_status(report.id, stage)
    return store.get(report.id)


class TestTransitions:
    """Tests for the state machine gate."""

    @pytest.mark.parametrize(
        "status,role,action",
        [
            combo for combo in itertools.product(STAGE_ORDER, list(Role), list(TRANSITIONS))
            if combo not in LEGAL
        ],
    )
    def test_illegal_pairs_rejected_and_status_unchanged(self, store, status, role, action):
        report = _report_at(store, status)
        with pytest.raises(InvalidTransition):
            workflow.transition(store, ACTOR_BY_ROLE[role], report.id, action)
        assert store.get(report.id).status == status

    @pytest.mark.parametrize("status,role,action", sorted(LEGAL, key=lambda c: c[0].ordinal))
    def test_legal_pairs_advance_one_stage(self, store, status, role, action):
        report = _report_at(store, status)
        moved = workflow.transition(store, ACTOR_BY_ROLE[role], report.id, action)
        assert moved.status.ordinal == status.ordinal + 1

    def test_hod_can_submit_own_draft(self, store):
        report = _report_at(store, ReportStatus.DRAFT, actor=HOD)
        assert workflow.submit(store, HOD, report.id).status == ReportStatus.SUBMITTED_TO_HOD

    def test_only_reporter_can_submit(self, store):
        report = _report_at(store, ReportStatus.DRAFT)
        with pytest.raises(InvalidTransition):
            workflow.submit(store, OTHER_TEACHER, report.id)

    def test_hod_of_other_department_cannot_forward(self, store):
        report = _report_at(store, ReportStatus.SUBMITTED_TO_HOD)
        with pytest.raises(InvalidTransition):
            workflow.forward(store, OTHER_HOD, report.id)
        assert store.get(report.id).status == ReportStatus.SUBMITTED_TO_HOD

    def test_unknown_action(self, store):
        report = _report_at(store, ReportStatus.DRAFT)
        with pytest.raises(InvalidTransition):
            workflow.transition(store, TEACHER, report.id, "reject")

    def test_missing_report(self, store):
        with pytest.raises(NotFound):
            workflow.submit(store, TEACHER, "missing")

    def test_stage_ordinal_never_decreases(self, store):
        report = _report_at(store, ReportStatus.DRAFT)
        seen = [STAGE_ORDINAL[report.status]]
        for actor, action in [(TEACHER, "submit"), (HOD, "forward"), (PRINCIPAL, "approve")]:
            for other in ACTOR_BY_ROLE.values():
                for attempt in TRANSITIONS:
                    if (store.get(report.id).status, other.role, attempt) in LEGAL:
                        continue
                    with pytest.raises(InvalidTransition):
                        workflow.transition(store, other, report.id, attempt)
                    seen.append(STAGE_ORDINAL[store.get(report.id).status])
            report = workflow.transition(store, actor, report.id, action)
            seen.append(STAGE_ORDINAL[report.status])
        assert seen == sorted(seen)
        assert seen[-1] == STAGE_ORDINAL[ReportStatus.APPROVED]


class TestVisibility:
    """Tests for who sees what."""

    def test_teacher_sees_only_own(self, store):
        mine = _report_at(store, ReportStatus.DRAFT)
        _report_at(store, ReportStatus.DRAFT, actor=OTHER_TEACHER)
        assert [r.id for r in workflow.visible_reports(store, TEACHER)] == [mine.id]

    def test_hod_sees_department_and_own(self, store):
        in_dept = _report_at(store, ReportStatus.DRAFT, actor=OTHER_TEACHER)
        own = _report_at(store, ReportStatus.DRAFT, actor=OTHER_HOD)
        visible = {r.id for r in workflow.visible_reports(store, OTHER_HOD)}
        assert visible == {own.id}
        assert in_dept.id in {r.id for r in workflow.visible_reports(store, HOD)}

    def test_principal_sees_late_stages_and_own(self, store):
        draft = _report_at(store, ReportStatus.DRAFT)
        at_hod = _report_at(store, ReportStatus.SUBMITTED_TO_HOD)
        at_principal = _report_at(store, ReportStatus.SUBMITTED_TO_PRINCIPAL)
        approved = _report_at(store, ReportStatus.APPROVED)
        own = _report_at(store, ReportStatus.DRAFT, actor=PRINCIPAL)
        visible = {r.id for r in workflow.visible_reports(store, PRINCIPAL)}
        assert visible == {at_principal.id, approved.id, own.id}
        assert draft.id not in visible and at_hod.id not in visible

    def test_hidden_report_is_not_found(self, store):
        report = _report_at(store, ReportStatus.DRAFT)
        with pytest.raises(NotFound):
            workflow.get_visible(store, PRINCIPAL, report.id)

    def test_status_filter(self, store):
        _report_at(store, ReportStatus.DRAFT)
        submitted = _report_at(store, ReportStatus.SUBMITTED_TO_HOD)
        found = workflow.visible_reports(store, HOD, status=ReportStatus.SUBMITTED_TO_HOD)
        assert [r.id for r in found] == [submitted.id]


class TestDeleteAndEdit:
    """Tests for delete/edit authorisation."""

    def test_delete_at_submitted_to_principal(self, store):
        report = _report_at(store, ReportStatus.SUBMITTED_TO_PRINCIPAL)
        workflow.delete_report(store, PRINCIPAL, report.id)
        with pytest.raises(NotFound):
            store.get(report.id)

    @pytest.mark.parametrize("status", STAGE_ORDER)
    def test_reporter_can_delete_at_any_stage(self, store, status):
        report = _report_at(store, status)
        workflow.delete_report(store, TEACHER, report.id)
        assert store.list() == []

    def test_hod_deletes_only_while_holding_review(self, store):
        draft = _report_at(store, ReportStatus.DRAFT)
        with pytest.raises(PermissionDenied):
            workflow.delete_report(store, HOD, draft.id)
        at_hod = _report_at(store, ReportStatus.SUBMITTED_TO_HOD)
        workflow.delete_report(store, HOD, at_hod.id)
        assert [r.id for r in store.list()] == [draft.id]

    def test_other_teacher_cannot_see_to_delete(self, store):
        report = _report_at(store, ReportStatus.DRAFT)
        with pytest.raises(NotFound):
            workflow.delete_report(store, OTHER_TEACHER, report.id)

    def test_only_reporter_edits_drafts(self, store):
        report = _report_at(store, ReportStatus.DRAFT)
        with pytest.raises(PermissionDenied):
            workflow.update_draft(store, HOD, report.id, title="Hijacked")
        assert workflow.update_draft(store, TEACHER, report.id, title="Q1 v2").title == "Q1 v2"


class TestAllowedActions:
    def test_teacher_on_own_draft(self, store):
        report = _report_at(store, ReportStatus.DRAFT)
        assert workflow.allowed_actions(TEACHER, report) == ["preview", "download", "submit", "edit", "delete"]

    def test_hod_on_submitted_report(self, store):
        report = _report_at(store, ReportStatus.SUBMITTED_TO_HOD)
        assert workflow.allowed_actions(HOD, report) == ["preview", "download", "forward", "delete"]

    def test_principal_on_pending_report(self, store):
        report = _report_at(store, ReportStatus.SUBMITTED_TO_PRINCIPAL)
        assert workflow.allowed_actions(PRINCIPAL, report) == ["preview", "download", "approve", "delete"]

    def test_invisible_report_has_no_actions(self, store):
        report = _report_at(store, ReportStatus.DRAFT)
        assert workflow.allowed_actions(PRINCIPAL, report) == []


class TestStatusSummary:
    def test_counts(self, store):
        for status in [ReportStatus.DRAFT, ReportStatus.SUBMITTED_TO_HOD, ReportStatus.SUBMITTED_TO_HOD,
                       ReportStatus.APPROVED]:
            _report_at(store, status)
        summary = workflow.status_summary(workflow.visible_reports(store, HOD))
        assert summary["total"] == 4
        assert summary["pending_hod_review"] == 2
        assert summary["pending_principal_review"] == 0
        assert summary["approved"] == 1
        assert summary["by_status"]["draft"] == 1
