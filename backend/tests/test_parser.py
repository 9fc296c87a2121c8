"""
Tests for core/parser.py — roster import from CSV/Excel and the import template.
"""

import os
import sys
import pytest
import pandas as pd
from openpyxl import load_workbook

# Ensure backend/ is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.parser import (
    COLUMN_MAPPINGS,
    generate_roster_template,
    normalize_header,
    parse_roster,
    parse_value,
)

SAMPLE_CSV = os.path.join(os.path.dirname(__file__), "..", "sample_data", "sample_roster.csv")


@pytest.fixture
def parsed():
    return parse_roster(SAMPLE_CSV)


def _by_name(result, name):
    return next(r for r in result["data"] if r["name"] == name)


class TestParseRoster:
    """Tests for the parse_roster function on the bundled sample."""

    def test_result_shape(self, parsed):
        assert set(parsed.keys()) == {"success", "data", "errors", "total_rows", "valid_rows"}

    def test_counts(self, parsed):
        assert parsed["success"] is True
        assert parsed["total_rows"] == 10
        assert parsed["valid_rows"] == 9
        assert len(parsed["data"]) == 9

    def test_missing_name_reported_with_sheet_row_number(self, parsed):
        assert parsed["errors"] == ["Row 9: Missing student name"]

    def test_percent_sign_stripped_from_attendance(self, parsed):
        assert _by_name(parsed, "Jane Doe")["attendance"] == 88

    def test_attendance_clamped_and_year_defaulted(self, parsed):
        lucy = _by_name(parsed, "Lucy Wanjiru")
        assert lucy["attendance"] == 100
        assert lucy["year"] == 1

    def test_blank_attendance_defaults_to_zero(self, parsed):
        assert _by_name(parsed, "Brian Kim")["attendance"] == 0

    def test_invalid_email_dropped(self, parsed):
        assert _by_name(parsed, "Peter Otieno")["email"] is None

    def test_contact_keeps_digits_only(self, parsed):
        assert _by_name(parsed, "Mike Johnson")["contact"] == "9876543214"

    def test_student_fields_mapped(self, parsed):
        john = _by_name(parsed, "John Smith")
        assert john["student_id"] == "STU001"
        assert john["guardian_name"] == "Robert Smith"
        assert john["guardian_phone"] == "9876543211"
        assert john["year"] == 1

    def test_xlsx_roster(self, tmp_path):
        path = tmp_path / "roster.xlsx"
        pd.DataFrame({
            "Full Name": ["Alice Mwangi", "Brian Kim"],
            "Attendance %": ["91%", "70"],
            "Roll No": ["R1", "R2"],
        }).to_excel(path, index=False)
        result = parse_roster(str(path))
        assert result["valid_rows"] == 2
        assert result["data"][0]["student_id"] == "R1"
        assert result["data"][0]["attendance"] == 91

    def test_missing_name_column(self, tmp_path):
        path = tmp_path / "no_names.csv"
        pd.DataFrame({"Email": ["a@b.c"], "Attendance": ["90"]}).to_csv(path, index=False)
        result = parse_roster(str(path))
        assert result["success"] is False
        assert result["errors"][0] == 'Could not find a "Name" column in the CSV file.'
        assert result["errors"][1].startswith("Expected columns: Name, Student ID")
        assert result["total_rows"] == 1

    def test_missing_name_column_in_workbook(self, tmp_path):
        path = tmp_path / "no_names.xlsx"
        pd.DataFrame({"Email": ["a@b.c"]}).to_excel(path, index=False)
        result = parse_roster(str(path))
        assert result["errors"][0] == 'Could not find a "Name" column in the Excel file.'

    def test_header_only_file_is_empty(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("Name,Email\n")
        result = parse_roster(str(path))
        assert result["success"] is False
        assert result["errors"] == ["The CSV file is empty or has no data rows."]

    def test_unsupported_extension_fails_cleanly(self, tmp_path):
        path = tmp_path / "roster.txt"
        path.write_text("Name\nAlice\n")
        result = parse_roster(str(path))
        assert result["success"] is False
        assert result["errors"][0] == "Failed to parse spreadsheet file."


class TestValueRules:
    """Tests for header normalisation and per-field coercion."""

    def test_headers_case_insensitive(self):
        assert normalize_header("  Student Name ") == "name"
        assert normalize_header("PARENT PHONE") == "guardian_phone"
        assert normalize_header("Favourite Colour") is None

    def test_every_mapping_targets_a_roster_field(self):
        fields = {"name", "email", "contact", "attendance", "guardian_name",
                  "guardian_phone", "notes", "year", "student_id"}
        assert set(COLUMN_MAPPINGS.values()) == fields

    @pytest.mark.parametrize("raw,expected", [("2", 2), ("4", 4), ("0", 1), ("5", 1), ("abc", 1), ("2.0", 2)])
    def test_year_rules(self, raw, expected):
        assert parse_value(raw, "year") == expected

    @pytest.mark.parametrize("raw,expected", [("-5", 0), ("150", 100), ("n/a", 0), ("82.5%", 82.5)])
    def test_attendance_rules(self, raw, expected):
        assert parse_value(raw, "attendance") == expected

    def test_blank_cell_is_not_provided(self):
        assert parse_value("   ", "notes") is None


class TestRosterTemplate:
    """Tests for the downloadable import template."""

    def test_template_round_trips_through_parser(self, tmp_path):
        path = str(tmp_path / "template.xlsx")
        generate_roster_template(path)
        result = parse_roster(path)
        assert result["success"] is True
        assert [r["student_id"] for r in result["data"]] == ["STU001", "STU002", "STU003", "STU004"]

    def test_template_header_styling(self, tmp_path):
        path = str(tmp_path / "template.xlsx")
        generate_roster_template(path)
        ws = load_workbook(path).active
        assert ws.title == "Students"
        assert ws["A1"].value == "Student ID"
        assert ws["A1"].font.bold
        assert ws.freeze_panes == "A2"
