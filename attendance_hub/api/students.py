"""Student roster CRUD, CSV import and roster export."""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, UploadFile
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from attendance_hub.api.deps import CurrentUserId, Sync
from attendance_hub.api.exports import ExportFormat, download
from attendance_hub.models.student import Division, Student, StudentCreate, StudentUpdate, Year
from attendance_hub.services.spreadsheet import STUDENT_TEMPLATE_CSV, parse_students_csv, students_frame
from attendance_hub.sync import SyncFacade

logger = logging.getLogger(__name__)

router = APIRouter()

DUPLICATE_ROLL_NUMBER = "A student with this roll number already exists."


class StudentIdsRequest(BaseModel):
    ids: list[str]


def _class_filter(year: Optional[Year], division: Optional[Division]) -> bool:
    if bool(year) != bool(division):
        raise HTTPException(status_code=400, detail="Pass both year and division, or neither")
    return bool(year)


async def _drop_existing_roll_numbers(sync: SyncFacade, user_id: str, rows: list[StudentCreate]) -> list[StudentCreate]:
    """Keep rows whose roll number is new to their class, first occurrence wins."""
    taken: dict[tuple[str, str], set[str]] = {}
    kept = []
    for row in rows:
        key = (row.year, row.division)
        if key not in taken:
            roster = await sync.get_students_by_class(user_id, *key)
            taken[key] = {s.roll_number for s in roster}
        if row.roll_number in taken[key]:
            logger.info(f"Skipping duplicate roll number {row.roll_number} in {key[0]} {key[1]}")
            continue
        taken[key].add(row.roll_number)
        kept.append(row)
    return kept


@router.get("/", response_model=list[Student])
async def list_students(
    user_id: CurrentUserId,
    sync: Sync,
    year: Optional[Year] = None,
    division: Optional[Division] = None,
):
    if _class_filter(year, division):
        return await sync.get_students_by_class(user_id, year.value, division.value)
    return await sync.get_students(user_id)


@router.post("/", status_code=201, response_model=Student)
async def create_student(data: StudentCreate, user_id: CurrentUserId, sync: Sync):
    roster = await sync.get_students_by_class(user_id, data.year, data.division)
    if any(s.roll_number == data.roll_number for s in roster):
        raise HTTPException(status_code=409, detail=DUPLICATE_ROLL_NUMBER)
    return await sync.add_student(user_id, data)


@router.post("/batch", status_code=201, response_model=list[Student])
async def create_students(data: list[StudentCreate], user_id: CurrentUserId, sync: Sync):
    """Add many students; rows repeating a roll number already used in their class are skipped."""
    rows = await _drop_existing_roll_numbers(sync, user_id, data)
    if not rows:
        return []
    return await sync.add_students(user_id, rows)


@router.post("/import", status_code=201)
async def import_students(file: UploadFile, user_id: CurrentUserId, sync: Sync):
    """Import a roster CSV (name, rollnumber, year, division, optional email, phone)."""
    raw = await file.read()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV file must be UTF-8 encoded")
    rows = await _drop_existing_roll_numbers(sync, user_id, parse_students_csv(text))
    if not rows:
        raise HTTPException(status_code=409, detail="All students in the file already exist.")
    created = await sync.add_students(user_id, rows)
    return {
        "status": "success",
        "message": f"Successfully imported {len(created)} students!",
        "count": len(created),
    }


@router.get("/import/template")
async def student_import_template():
    return PlainTextResponse(
        STUDENT_TEMPLATE_CSV,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=student_import_template.csv"},
    )


@router.get("/export")
async def export_students(
    user_id: CurrentUserId,
    sync: Sync,
    year: Optional[Year] = None,
    division: Optional[Division] = None,
    format: ExportFormat = "csv",
):
    if _class_filter(year, division):
        students = await sync.get_students_by_class(user_id, year.value, division.value)
        suffix = f"_{year.value}_{division.value}"
    else:
        students = await sync.get_students(user_id)
        suffix = ""
    if not students:
        raise HTTPException(status_code=404, detail="No students found to export")
    return download(students_frame(students), f"student_list{suffix}", format, "Students")


@router.post("/delete-batch", status_code=204)
async def delete_students(data: StudentIdsRequest, user_id: CurrentUserId, sync: Sync):
    await sync.delete_students(user_id, data.ids)


@router.patch("/{student_id}", response_model=Student)
async def update_student(student_id: str, data: StudentUpdate, user_id: CurrentUserId, sync: Sync):
    return await sync.update_student(user_id, student_id, data)


@router.delete("/{student_id}", status_code=204)
async def delete_student(student_id: str, user_id: CurrentUserId, sync: Sync):
    await sync.delete_student(user_id, student_id)
