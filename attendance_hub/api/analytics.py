from typing import Literal, Optional

from fastapi import APIRouter

from attendance_hub.api.attendance import build_filters
from attendance_hub.api.deps import CurrentUserId, Sync
from attendance_hub.models.student import Division, Year
from attendance_hub.services.analytics import summarize_attendance

router = APIRouter()


@router.get("/summary")
async def attendance_summary(
    user_id: CurrentUserId,
    sync: Sync,
    date_range: Literal["last7days", "last30days", "last3months", "all"] = "last7days",
    year: Optional[Year] = None,
    division: Optional[Division] = None,
):
    """Attendance rate overall, per day, per student and per class."""
    records = await sync.get_attendance(user_id, build_filters(year, division))
    students = await sync.get_students(user_id)
    if year:
        students = [s for s in students if s.year == year.value]
    if division:
        students = [s for s in students if s.division == division.value]
    return summarize_attendance(students, records, date_range)
