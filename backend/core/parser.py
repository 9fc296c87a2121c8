"""
parser.py — Student roster ingestion (CSV / Excel) and the import template.

Headers are matched case-insensitively against COLUMN_MAPPINGS; unknown
columns are ignored. Only the first sheet of a workbook is read.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".csv", ".xlsx")

# header (lower-cased, trimmed) -> roster field
COLUMN_MAPPINGS = {
    "name": "name",
    "student name": "name",
    "full name": "name",
    "email": "email",
    "email address": "email",
    "student email": "email",
    "contact": "contact",
    "phone": "contact",
    "phone number": "contact",
    "contact number": "contact",
    "mobile": "contact",
    "attendance": "attendance",
    "attendance %": "attendance",
    "attendance percentage": "attendance",
    "guardian": "guardian_name",
    "guardian name": "guardian_name",
    "parent name": "guardian_name",
    "parent": "guardian_name",
    "guardian phone": "guardian_phone",
    "guardian contact": "guardian_phone",
    "parent phone": "guardian_phone",
    "parent contact": "guardian_phone",
    "notes": "notes",
    "remarks": "notes",
    "comments": "notes",
    "year": "year",
    "student year": "year",
    "class year": "year",
    "academic year": "year",
    "student id": "student_id",
    "studentid": "student_id",
    "roll number": "student_id",
    "roll no": "student_id",
    "enrollment": "student_id",
    "enrollment number": "student_id",
    "id": "student_id",
}

TEMPLATE_COLUMNS = [
    ("Student ID", 12), ("Name", 20), ("Year", 8), ("Email", 25), ("Contact", 15),
    ("Attendance", 12), ("Guardian Name", 20), ("Guardian Phone", 15), ("Notes", 30),
]

TEMPLATE_ROWS = [
    ["STU001", "John Smith", "1", "john.smith@student.edu", "9876543210", "92",
     "Robert Smith", "9876543211", "Excellent student"],
    ["STU002", "Jane Doe", "2", "jane.doe@student.edu", "9876543212", "88",
     "Mary Doe", "9876543213", ""],
    ["STU003", "Mike Johnson", "3", "mike.j@student.edu", "9876543214", "75",
     "David Johnson", "9876543215", "Needs improvement in attendance"],
    ["STU004", "Sarah Williams", "4", "sarah.w@student.edu", "9876543216", "95",
     "Emily Williams", "9876543217", "Final year student"],
]

EXPECTED_COLUMNS_MESSAGE = (
    "Expected columns: Name, Student ID, Year, Email, Contact, Attendance, "
    "Guardian Name, Guardian Phone, Notes"
)


def normalize_header(header: Any) -> Optional[str]:
    return COLUMN_MAPPINGS.get(str(header).lower().strip())


def _to_float(text: str) -> Optional[float]:
    try:
        return float(text)
    except ValueError:
        return None


def parse_value(value: Any, field: str) -> Any:
    """Coerce one cell; None means 'not provided'."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    if field == "email":
        return text if "@" in text else None
    if field == "contact":
        digits = re.sub(r"\D", "", text)
        return digits or None
    if field == "attendance":
        att = _to_float(text.replace("%", ""))
        return 0 if att is None else min(100.0, max(0.0, att))
    if field == "year":
        year = _to_float(text)
        if year is None or not year.is_integer() or not 1 <= year <= 4:
            return 1
        return int(year)
    return text


def _read_first_sheet(file_path: str) -> pd.DataFrame:
    ext = Path(file_path).suffix.lower()
    if ext == ".csv":
        return pd.read_csv(file_path, dtype=str, keep_default_na=False)
    if ext == ".xlsx":
        return pd.read_excel(file_path, sheet_name=0, dtype=str, keep_default_na=False, engine="openpyxl")
    raise ValueError(f"Unsupported file type: {ext}")


def _result(success, data, errors, total_rows) -> Dict[str, Any]:
    return {
        "success": success,
        "data": data,
        "errors": errors,
        "total_rows": total_rows,
        "valid_rows": len(data),
    }


def parse_roster(file_path: str) -> Dict[str, Any]:
    """
    Parse a roster file into student records.

    Never raises for bad content: problems come back in ``errors`` and
    ``success`` is False when no usable row was found.
    """
    kind = {".csv": "CSV", ".xlsx": "Excel"}.get(Path(file_path).suffix.lower(), "spreadsheet")
    try:
        df = _read_first_sheet(file_path)
    except Exception as e:
        logger.warning("Could not read roster %s: %s", file_path, e)
        return _result(False, [], [f"Failed to parse {kind} file.", str(e)], 0)

    if df.empty:
        return _result(False, [], [f"The {kind} file is empty or has no data rows."], 0)

    header_map = {col: normalize_header(col) for col in df.columns}
    if "name" not in header_map.values():
        return _result(
            False, [],
            [f'Could not find a "Name" column in the {kind} file.', EXPECTED_COLUMNS_MESSAGE],
            len(df),
        )

    records: List[Dict[str, Any]] = []
    errors: List[str] = []
    for index, row in enumerate(df.to_dict(orient="records")):
        record: Dict[str, Any] = {}
        for column, field in header_map.items():
            if field is None:
                continue
            value = parse_value(row.get(column), field)
            if value is not None:
                record[field] = value

        if not record.get("name"):
            # +2: header row plus 1-based numbering
            errors.append(f"Row {index + 2}: Missing student name")
            continue

        records.append({
            "name": record["name"],
            "email": record.get("email"),
            "contact": record.get("contact"),
            "attendance": record.get("attendance", 0),
            "guardian_name": record.get("guardian_name"),
            "guardian_phone": record.get("guardian_phone"),
            "notes": record.get("notes"),
            "year": record.get("year", 1),
            "student_id": record.get("student_id"),
        })

    logger.info("Parsed roster %s: %d of %d rows usable", Path(file_path).name, len(records), len(df))
    return _result(len(records) > 0, records, errors, len(df))


def generate_roster_template(output_path: str) -> str:
    """Write the styled import template workbook and return its path."""
    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="2563eb", end_color="2563eb", fill_type="solid")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    wb = Workbook()
    ws = wb.active
    ws.title = "Students"
    ws.append([name for name, _ in TEMPLATE_COLUMNS])
    for row in TEMPLATE_ROWS:
        ws.append(row)

    for cell in ws[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center")
    for row in ws.iter_rows(min_row=1, max_row=ws.max_row):
        for cell in row:
            cell.border = thin_border

    for idx, (_, width) in enumerate(TEMPLATE_COLUMNS):
        ws.column_dimensions[ws.cell(row=1, column=idx + 1).column_letter].width = width
    ws.freeze_panes = "A2"

    wb.save(output_path)
    return output_path
