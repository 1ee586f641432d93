"""CSV / Excel import and export of roster and attendance data."""
import io
import logging
import math

import pandas as pd
from pydantic import ValidationError

from attendance_hub.errors import SpreadsheetError
from attendance_hub.models.attendance import AttendanceRecord
from attendance_hub.models.student import Student, StudentCreate

logger = logging.getLogger(__name__)

REQUIRED_HEADERS = ("name", "rollnumber", "year", "division")

STUDENT_TEMPLATE_CSV = (
    "name,rollnumber,year,division,email,phone\n"
    "John Doe,2024001,FirstYear,A,john@example.com,1234567890\n"
    "Jane Smith,2024002,FirstYear,A,jane@example.com,0987654321\n"
)

STUDENT_EXPORT_COLUMNS = ["Roll Number", "Name", "Year", "Division", "Email", "Phone"]
MATRIX_LEAD_COLUMNS = ["Roll Number", "Name", "Year", "Division"]


def _cell(value) -> str:
    if value is None or pd.isna(value):
        return ""
    return str(value).strip()


def parse_students_csv(text: str) -> list[StudentCreate]:
    """Turn an uploaded roster CSV into validated student rows.

    Headers are matched case-insensitively. Rows with a missing required value
    or an unknown year/division are skipped.
    """
    try:
        frame = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False, skip_blank_lines=True)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise SpreadsheetError("Failed to process CSV file. Please check the format and try again.") from e

    frame.columns = [str(c).strip().lower() for c in frame.columns]
    missing = [h for h in REQUIRED_HEADERS if h not in frame.columns]
    if missing:
        raise SpreadsheetError(f"Missing required columns: {', '.join(missing)}. Please check your CSV format.")

    students = []
    for line, row in enumerate(frame.to_dict("records"), start=2):
        data = {
            "name": _cell(row.get("name")),
            "roll_number": _cell(row.get("rollnumber")),
            "year": _cell(row.get("year")),
            "division": _cell(row.get("division")),
            "email": _cell(row.get("email")) or None,
            "phone": _cell(row.get("phone")) or None,
        }
        if not all(data[k] for k in ("name", "roll_number", "year", "division")):
            continue
        try:
            students.append(StudentCreate(**data))
        except ValidationError as e:
            logger.warning(f"Skipping CSV line {line}: {e.error_count()} invalid field(s)")

    if not students:
        raise SpreadsheetError("No valid student data found in the CSV file.")
    return students


def students_frame(students: list[Student]) -> pd.DataFrame:
    rows = [
        [s.roll_number, s.name, s.year, s.division, s.email or "", s.phone or ""]
        for s in students
    ]
    return pd.DataFrame(rows, columns=STUDENT_EXPORT_COLUMNS)


def attendance_matrix(
    students: list[Student],
    records: list[AttendanceRecord],
    start_date: str,
    end_date: str,
) -> pd.DataFrame:
    """One row per student, one P/A/- column per date, then summary rows."""
    in_range = [r for r in records if start_date <= r.date <= end_date]
    dates = sorted({r.date for r in in_range})
    if not dates:
        raise SpreadsheetError("No attendance records found for the selected date range.")

    marks: dict[tuple[str, str], str] = {}
    for r in in_range:
        marks.setdefault((r.student_id, r.date), "P" if r.status == "present" else "A")

    columns = MATRIX_LEAD_COLUMNS + dates
    rows = [
        [s.roll_number, s.name, s.year, s.division] + [marks.get((s.id, d), "-") for d in dates]
        for s in students
    ]

    present_row = ["", "Total Present", "", ""]
    absent_row = ["", "Total Absent", "", ""]
    rate_row = ["", "Attendance Rate (%)", "", ""]
    for d in dates:
        day = [r for r in in_range if r.date == d]
        present = sum(1 for r in day if r.status == "present")
        present_row.append(present)
        absent_row.append(sum(1 for r in day if r.status == "absent"))
        rate_row.append(f"{int(math.floor(present * 100 / len(day) + 0.5))}%")

    blank = [""] * len(columns)
    summary = ["SUMMARY"] + [""] * (len(columns) - 1)
    rows.extend([blank, summary, present_row, absent_row, rate_row])
    return pd.DataFrame(rows, columns=columns)


def to_csv_text(frame: pd.DataFrame) -> str:
    stream = io.StringIO()
    frame.to_csv(stream, index=False)
    return stream.getvalue()


def to_excel_bytes(frame: pd.DataFrame, sheet_name: str) -> bytes:
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        frame.to_excel(writer, index=False, sheet_name=sheet_name)
    return output.getvalue()
