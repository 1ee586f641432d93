"""Canonical filtering and ordering applied to every read, whichever store served it.

Comparisons are plain string comparisons at every level, so roll number "10"
sorts before "2".
"""
from typing import Optional

from attendance_hub.models.attendance import AttendanceFilters


def sort_students(records: list[dict]) -> list[dict]:
    return sorted(
        records,
        key=lambda r: (str(r.get("year", "")), str(r.get("division", "")), str(r.get("roll_number", ""))),
    )


def sort_by_roll_number(records: list[dict]) -> list[dict]:
    return sorted(records, key=lambda r: str(r.get("roll_number", "")))


def sort_attendance(records: list[dict]) -> list[dict]:
    """Newest date first; ISO dates order chronologically as strings."""
    return sorted(records, key=lambda r: str(r.get("date", "")), reverse=True)


def filter_attendance(records: list[dict], filters: Optional[AttendanceFilters]) -> list[dict]:
    if filters is None:
        return list(records)
    out = records
    if filters.year:
        out = [r for r in out if r.get("year") == filters.year]
    if filters.division:
        out = [r for r in out if r.get("division") == filters.division]
    if filters.start_date:
        out = [r for r in out if str(r.get("date", "")) >= filters.start_date]
    if filters.end_date:
        out = [r for r in out if str(r.get("date", "")) <= filters.end_date]
    return list(out)


def filter_class(records: list[dict], year: str, division: str) -> list[dict]:
    return [r for r in records if r.get("year") == year and r.get("division") == division]
