"""Record schemas and Beanie document models."""
from attendance_hub.models.student import Student, StudentCreate, StudentUpdate, StudentDocument, Year, Division
from attendance_hub.models.attendance import (
    AttendanceRecord,
    AttendanceCreate,
    AttendanceUpdate,
    AttendanceFilters,
    AttendanceStatus,
    AttendanceDocument,
)
from attendance_hub.models.connection import ConnectionStatus

__all__ = [
    "Student",
    "StudentCreate",
    "StudentUpdate",
    "StudentDocument",
    "Year",
    "Division",
    "AttendanceRecord",
    "AttendanceCreate",
    "AttendanceUpdate",
    "AttendanceFilters",
    "AttendanceStatus",
    "AttendanceDocument",
    "ConnectionStatus",
]
