"""Attendance marking (single and bulk), lookups and the date-range report."""
import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from attendance_hub.api.deps import CurrentUserId, Sync
from attendance_hub.api.exports import ExportFormat, download
from attendance_hub.models.attendance import AttendanceCreate, AttendanceFilters, AttendanceRecord, AttendanceUpdate
from attendance_hub.models.student import Division, Year
from attendance_hub.services.spreadsheet import attendance_matrix

router = APIRouter()


def build_filters(
    year: Optional[Year] = None,
    division: Optional[Division] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> AttendanceFilters:
    try:
        return AttendanceFilters(year=year, division=division, start_date=start_date, end_date=end_date)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid date format (YYYY-MM-DD)")


@router.get("/", response_model=list[AttendanceRecord])
async def list_attendance(
    user_id: CurrentUserId,
    sync: Sync,
    year: Optional[Year] = None,
    division: Optional[Division] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
):
    filters = build_filters(year, division, start_date, end_date)
    return await sync.get_attendance(user_id, filters)


@router.post("/", status_code=201, response_model=AttendanceRecord)
async def mark_attendance(data: AttendanceCreate, user_id: CurrentUserId, sync: Sync):
    return await sync.add_attendance(user_id, data)


@router.post("/mark-bulk", status_code=201, response_model=list[AttendanceRecord])
async def mark_attendance_bulk(data: list[AttendanceCreate], user_id: CurrentUserId, sync: Sync):
    """Mark attendance for a whole class in one request. Repeated marks for a date add new records."""
    return await sync.add_attendance_batch(user_id, data)


@router.get("/class/{year}/{division}/{date_str}", response_model=list[AttendanceRecord])
async def get_class_attendance(year: Year, division: Division, date_str: str, user_id: CurrentUserId, sync: Sync):
    try:
        datetime.date.fromisoformat(date_str)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format (YYYY-MM-DD)")
    return await sync.get_attendance_by_date_and_class(user_id, date_str, year.value, division.value)


@router.get("/report")
async def download_attendance_report(
    user_id: CurrentUserId,
    sync: Sync,
    start_date: str,
    end_date: str,
    year: Optional[Year] = None,
    division: Optional[Division] = None,
    format: ExportFormat = "csv",
):
    """Student x date matrix of P/A marks with daily totals."""
    filters = build_filters(year, division, start_date, end_date)
    records = await sync.get_attendance(user_id, filters)
    students = await sync.get_students(user_id)
    if year:
        students = [s for s in students if s.year == year.value]
    if division:
        students = [s for s in students if s.division == division.value]
    frame = attendance_matrix(students, records, start_date, end_date)
    return download(frame, f"attendance_export_{start_date}_to_{end_date}", format, "Attendance")


@router.patch("/{record_id}", response_model=AttendanceRecord)
async def update_attendance(record_id: str, data: AttendanceUpdate, user_id: CurrentUserId, sync: Sync):
    return await sync.update_attendance(user_id, record_id, data)


@router.delete("/{record_id}", status_code=204)
async def delete_attendance(record_id: str, user_id: CurrentUserId, sync: Sync):
    await sync.delete_attendance(user_id, record_id)
