"""Student roster records."""
from enum import Enum
from typing import Optional

from beanie import Document, Indexed

from attendance_hub.models.base import RecordModel


class Year(str, Enum):
    FIRST_YEAR = "FirstYear"
    SECOND_YEAR = "SecondYear"
    THIRD_YEAR = "ThirdYear"
    FOURTH_YEAR = "FourthYear"


class Division(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"


class StudentCreate(RecordModel):
    name: str
    roll_number: str  # unique per year+division, checked by callers only
    year: Year
    division: Division
    email: Optional[str] = None
    phone: Optional[str] = None


class StudentUpdate(RecordModel):
    """All fields optional for PATCH."""
    name: Optional[str] = None
    roll_number: Optional[str] = None
    year: Optional[Year] = None
    division: Optional[Division] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class Student(StudentCreate):
    id: str
    created_at: str
    updated_at: str


class StudentDocument(Document):
    """Remote copy of a student, partitioned by the owning user."""

    user_id: Indexed(str)
    name: str
    roll_number: str
    year: str
    division: str
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: str
    updated_at: str

    class Settings:
        name = "students"
