"""Attendance Hub - FastAPI entrypoint."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from attendance_hub.api import analytics, attendance, connection, live, students
from attendance_hub.config import settings
from attendance_hub.db import db_shutdown, db_startup
from attendance_hub.errors import (
    AttendanceHubError,
    DuplicateKeyError,
    NotFoundError,
    PersistenceUnavailableError,
    SpreadsheetError,
)
from attendance_hub.logging_config import setup_logging

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = {
    PersistenceUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    DuplicateKeyError: status.HTTP_409_CONFLICT,
    SpreadsheetError: status.HTTP_400_BAD_REQUEST,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level)
    app.state.sync = await db_startup()
    yield
    await db_shutdown()


app = FastAPI(
    title=settings.app_name,
    description="Classroom roster and attendance with MongoDB persistence and a local SQLite fallback",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # ctx may hold exception objects that are not JSON serializable
    errors = [{k: v for k, v in e.items() if k in ("loc", "msg", "type")} for e in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )


@app.exception_handler(AttendanceHubError)
async def attendance_hub_exception_handler(request: Request, exc: AttendanceHubError):
    code = next(
        (c for cls, c in _STATUS_BY_ERROR.items() if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=code, content={"detail": exc.message})


app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(students.router, prefix="/api/students", tags=["Students"])
app.include_router(attendance.router, prefix="/api/attendance", tags=["Attendance"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])
app.include_router(connection.router, prefix="/api/connection", tags=["Connection"])
app.include_router(live.router, tags=["Live updates"])


@app.get("/health")
def health():
    return {"status": "ok", "app": settings.app_name}
