"""
Tests for core/store.py — report records, ordering and guarded status writes.
"""

import os
import sys
import threading
from datetime import datetime, timedelta, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.envelope import ClassReportData
from core.errors import InvalidTransition, NotFound, ValidationError
from core.store import STAGE_ORDER, ReportStatus, ReportStore, Role, next_status

CHART_DATA = {
    "type": "class_report",
    "selectedCharts": ["attendance"],
    "attendanceData": [{"name": "W1", "attendance": 90}],
}


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def tick(self, minutes=1):
        self.now += timedelta(minutes=minutes)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ReportStore(clock=clock)


class TestCreate:
    """Tests for ReportStore.create."""

    def test_new_report_is_draft(self, store):
        report = store.create("t1", "teacher", "Q1 Report", CHART_DATA, department_id="cs")
        assert report.status == ReportStatus.DRAFT
        assert report.reporter_role == Role.TEACHER
        assert isinstance(report.chart_data, ClassReportData)
        assert report.created_at == report.updated_at

    def test_title_trimmed(self, store):
        assert store.create("t1", "teacher", "  Term 2  ", CHART_DATA).title == "Term 2"

    @pytest.mark.parametrize("title", ["", "   ", None])
    def test_empty_title_rejected(self, store, title):
        with pytest.raises(ValidationError):
            store.create("t1", "teacher", title, CHART_DATA)
        assert store.list() == []

    def test_bad_envelope_rejected(self, store):
        with pytest.raises(ValidationError):
            store.create("t1", "teacher", "Q1", {"selectedCharts": []})
        assert store.list() == []

    def test_lenient_store_accepts_untyped_envelope(self, clock):
        lenient = ReportStore(clock=clock, strict_envelopes=False)
        report = lenient.create("t1", "teacher", "Q1", {"attendanceData": []})
        assert isinstance(report.chart_data, ClassReportData)

    def test_unknown_role_rejected(self, store):
        with pytest.raises(ValidationError):
            store.create("t1", "janitor", "Q1", CHART_DATA)

    @pytest.mark.parametrize("title", [123, ["Q1"], {"text": "Q1"}])
    def test_non_text_title_rejected(self, store, title):
        with pytest.raises(ValidationError) as exc:
            store.create("t1", "teacher", title, CHART_DATA)
        assert exc.value.details["field"] == "title"
        assert store.list() == []

    def test_non_text_content_rejected(self, store):
        with pytest.raises(ValidationError) as exc:
            store.create("t1", "teacher", "Q1", CHART_DATA, content=5)
        assert exc.value.details["field"] == "content"
        assert store.list() == []

    def test_to_dict_uses_wire_names(self, store):
        data = store.create("t1", "teacher", "Q1", CHART_DATA, content="Notes").to_dict()
        assert data["reporter_user_id"] == "t1"
        assert data["status"] == "draft"
        assert data["chart_data"]["type"] == "class_report"
        assert data["content"] == "Notes"


class TestReadAndList:
    """Tests for get and list."""

    def test_get_missing(self, store):
        with pytest.raises(NotFound):
            store.get("nope")

    def test_returned_records_are_copies(self, store):
        report = store.create("t1", "teacher", "Q1", CHART_DATA)
        report.status = ReportStatus.APPROVED
        report.chart_data.selected_charts.append("grades")
        fresh = store.get(report.id)
        assert fresh.status == ReportStatus.DRAFT
        assert fresh.chart_data.selected_charts == ["attendance"]

    def test_newest_first(self, store, clock):
        first = store.create("t1", "teacher", "First", CHART_DATA)
        clock.tick()
        second = store.create("t1", "teacher", "Second", CHART_DATA)
        assert [r.id for r in store.list()] == [second.id, first.id]

    def test_same_timestamp_keeps_insertion_order_reversed(self, store):
        a = store.create("t1", "teacher", "A", CHART_DATA)
        b = store.create("t1", "teacher", "B", CHART_DATA)
        assert [r.id for r in store.list()] == [b.id, a.id]

    def test_filters(self, store):
        mine = store.create("t1", "teacher", "Mine", CHART_DATA, department_id="cs")
        store.create("t2", "teacher", "Theirs", CHART_DATA, department_id="math")
        store.update_status(mine.id, ReportStatus.SUBMITTED_TO_HOD)
        assert [r.id for r in store.list(reporter_id="t1")] == [mine.id]
        assert [r.id for r in store.list(department_id="cs")] == [mine.id]
        assert [r.id for r in store.list(status="submitted_to_hod")] == [mine.id]
        assert len(store.list(status=[ReportStatus.DRAFT, ReportStatus.SUBMITTED_TO_HOD])) == 2


class TestUpdateStatus:
    """Tests for the guarded status write."""

    def test_advances_one_stage(self, store, clock):
        report = store.create("t1", "teacher", "Q1", CHART_DATA)
        clock.tick()
        moved = store.update_status(report.id, "submitted_to_hod")
        assert moved.status == ReportStatus.SUBMITTED_TO_HOD
        assert moved.updated_at > moved.created_at

    @pytest.mark.parametrize("target", [ReportStatus.DRAFT, ReportStatus.SUBMITTED_TO_PRINCIPAL, ReportStatus.APPROVED])
    def test_rejects_skips_and_repeats(self, store, target):
        report = store.create("t1", "teacher", "Q1", CHART_DATA)
        with pytest.raises(InvalidTransition):
            store.update_status(report.id, target)
        assert store.get(report.id).status == ReportStatus.DRAFT

    def test_stale_expected_status_rejected(self, store):
        report = store.create("t1", "teacher", "Q1", CHART_DATA)
        store.update_status(report.id, ReportStatus.SUBMITTED_TO_HOD)
        with pytest.raises(InvalidTransition):
            store.update_status(report.id, ReportStatus.SUBMITTED_TO_HOD, expected_from=ReportStatus.DRAFT)
        assert store.get(report.id).status == ReportStatus.SUBMITTED_TO_HOD

    def test_unknown_status_is_invalid_transition(self, store):
        report = store.create("t1", "teacher", "Q1", CHART_DATA)
        with pytest.raises(InvalidTransition) as exc:
            store.update_status(report.id, "archived")
        assert exc.value.details["requested"] == "archived"
        with pytest.raises(InvalidTransition):
            store.update_status(report.id, ReportStatus.SUBMITTED_TO_HOD, expected_from="pending")
        assert store.get(report.id).status == ReportStatus.DRAFT

    def test_unknown_id_reported_before_bad_status(self, store):
        with pytest.raises(NotFound):
            store.update_status("nope", "archived")

    def test_approved_is_terminal(self, store):
        report = store.create("t1", "teacher", "Q1", CHART_DATA)
        for status in STAGE_ORDER[1:]:
            store.update_status(report.id, status)
        assert next_status(ReportStatus.APPROVED) is None
        for status in STAGE_ORDER:
            with pytest.raises(InvalidTransition):
                store.update_status(report.id, status)

    def test_concurrent_submits_only_one_wins(self, store):
        report = store.create("t1", "teacher", "Q1", CHART_DATA)
        outcomes = []

        def attempt():
            try:
                store.update_status(report.id, ReportStatus.SUBMITTED_TO_HOD, expected_from=ReportStatus.DRAFT)
                outcomes.append("ok")
            except InvalidTransition:
                outcomes.append("rejected")

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert outcomes.count("ok") == 1
        assert store.get(report.id).status == ReportStatus.SUBMITTED_TO_HOD


class TestEditAndDelete:
    def test_edit_draft(self, store):
        report = store.create("t1", "teacher", "Q1", CHART_DATA)
        edited = store.update_details(report.id, title="Q1 Final", content="Body")
        assert (edited.title, edited.content) == ("Q1 Final", "Body")

    def test_edit_after_submit_rejected(self, store):
        report = store.create("t1", "teacher", "Q1", CHART_DATA)
        store.update_status(report.id, ReportStatus.SUBMITTED_TO_HOD)
        with pytest.raises(InvalidTransition):
            store.update_details(report.id, title="Changed")
        assert store.get(report.id).title == "Q1"

    def test_edit_rejects_non_text_content(self, store):
        report = store.create("t1", "teacher", "Q1", CHART_DATA, content="Body")
        with pytest.raises(ValidationError):
            store.update_details(report.id, content=5)
        with pytest.raises(ValidationError):
            store.update_details(report.id, title=7)
        assert store.get(report.id).content == "Body"

    def test_delete(self, store):
        report = store.create("t1", "teacher", "Q1", CHART_DATA)
        store.delete(report.id)
        with pytest.raises(NotFound):
            store.get(report.id)
        with pytest.raises(NotFound):
            store.delete(report.id)
