"""Attendance statistics for the analytics dashboard."""
import math
from datetime import date, timedelta
from typing import Optional

import pandas as pd

from attendance_hub.models.attendance import AttendanceRecord
from attendance_hub.models.student import Student

DATE_RANGES = ("last7days", "last30days", "last3months", "all")

_COLUMNS = ["student_id", "year", "division", "date", "status"]


def _percent(present: int, total: int) -> int:
    """Whole percent, halves rounded up."""
    if total <= 0:
        return 0
    return int(math.floor(present * 100 / total + 0.5))


def range_start(date_range: str, today: date) -> Optional[date]:
    if date_range == "last7days":
        return today - timedelta(days=7)
    if date_range == "last30days":
        return today - timedelta(days=30)
    if date_range == "last3months":
        return (pd.Timestamp(today) - pd.DateOffset(months=3)).date()
    return None


def _counts(frame: pd.DataFrame, keys: list[str]) -> list[dict]:
    if frame.empty:
        return []
    grouped = (
        frame.groupby(keys, sort=True)
        .agg(present=("is_present", "sum"), total=("is_present", "size"))
        .reset_index()
    )
    rows = []
    for row in grouped.to_dict("records"):
        present = int(row["present"])
        total = int(row["total"])
        rows.append({
            **{k: row[k] for k in keys},
            "present": present,
            "absent": total - present,
            "total": total,
            "attendanceRate": _percent(present, total),
        })
    return rows


def summarize_attendance(
    students: list[Student],
    records: list[AttendanceRecord],
    date_range: str = "last7days",
    today: Optional[date] = None,
) -> dict:
    """Totals plus daily, per-student and per-class breakdowns within `date_range`."""
    today = today or date.today()
    start = range_start(date_range, today)

    frame = pd.DataFrame([r.model_dump() for r in records], columns=_COLUMNS)
    if not frame.empty:
        days = pd.to_datetime(frame["date"]).dt.date
        mask = days <= today
        if start is not None:
            mask &= days >= start
        frame = frame[mask].copy()
    frame["is_present"] = (frame["status"] == "present").astype(int)

    total = len(frame)
    present = int(frame["is_present"].sum())
    rate = round(present / total * 100, 2) if total else 0

    daily = [
        {"date": row["date"], **{k: row[k] for k in ("present", "absent", "total", "attendanceRate")}}
        for row in _counts(frame, ["date"])
    ]

    per_student = {row["student_id"]: row for row in _counts(frame, ["student_id"])}
    student_rows = []
    for s in students:
        counts = per_student.get(s.id, {"present": 0, "absent": 0, "total": 0, "attendanceRate": 0})
        student_rows.append({
            "id": s.id,
            "name": s.name,
            "rollNumber": s.roll_number,
            "year": s.year,
            "division": s.division,
            "present": counts["present"],
            "absent": counts["absent"],
            "total": counts["total"],
            "attendanceRate": counts["attendanceRate"],
        })
    student_rows.sort(key=lambda r: r["attendanceRate"], reverse=True)

    divisions = [
        {
            "class": f"{row['year']} {row['division']}",
            "present": row["present"],
            "absent": row["absent"],
            "total": row["total"],
            "attendanceRate": row["attendanceRate"],
        }
        for row in _counts(frame, ["year", "division"])
    ]
    divisions.sort(key=lambda r: r["attendanceRate"], reverse=True)

    return {
        "dateRange": date_range,
        "totalRecords": total,
        "presentRecords": present,
        "absentRecords": total - present,
        "attendanceRate": rate,
        "totalStudents": len(students),
        "activeDays": int(frame["date"].nunique()) if total else 0,
        "daily": daily,
        "students": student_rows,
        "divisions": divisions,
    }
