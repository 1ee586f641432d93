"""Daily attendance marks, denormalized with the student's class at write time."""
import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import field_validator

from attendance_hub.models.base import RecordModel
from attendance_hub.models.student import Division, Year


def _validate_iso_date(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        datetime.date.fromisoformat(value)
    except ValueError:
        raise ValueError("Invalid date format (YYYY-MM-DD)")
    return value


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"


class AttendanceCreate(RecordModel):
    student_id: str  # not enforced as a reference; dangling ids simply fail to join
    student_name: str
    roll_number: str
    year: Year
    division: Division
    date: str
    status: AttendanceStatus

    @field_validator("date")
    @classmethod
    def check_date(cls, value):
        return _validate_iso_date(value)


class AttendanceUpdate(RecordModel):
    status: Optional[AttendanceStatus] = None
    date: Optional[str] = None
    student_name: Optional[str] = None
    roll_number: Optional[str] = None

    @field_validator("date")
    @classmethod
    def check_date(cls, value):
        return _validate_iso_date(value)


class AttendanceRecord(AttendanceCreate):
    id: str
    created_at: str
    updated_at: Optional[str] = None


class AttendanceFilters(RecordModel):
    year: Optional[Year] = None
    division: Optional[Division] = None
    start_date: Optional[str] = None  # inclusive
    end_date: Optional[str] = None  # inclusive

    @field_validator("start_date", "end_date")
    @classmethod
    def check_dates(cls, value):
        return _validate_iso_date(value)


class AttendanceDocument(Document):
    """Remote copy of an attendance mark, partitioned by the owning user."""

    user_id: Indexed(str)
    student_id: Indexed(str)
    student_name: str
    roll_number: str
    year: str
    division: str
    date: Indexed(str)
    status: str
    created_at: str
    updated_at: Optional[str] = None

    class Settings:
        name = "attendance"
