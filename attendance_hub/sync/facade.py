"""Single entry point for roster and attendance persistence.

Every operation tries the remote store first and falls back to the per-user
local store. Successful remote reads and writes refresh the local copy of the
affected collection so a later outage serves the latest known state.

Batches are atomic on the remote path only. On the local path each record is
applied on its own, in order; a failure is logged and the remaining records
are still attempted, and records already written stay written.
"""
import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel, ValidationError

from attendance_hub.errors import (
    AttendanceHubError,
    DuplicateKeyError,
    PersistenceUnavailableError,
    RemoteUnavailable,
    StorageError,
)
from attendance_hub.models.attendance import (
    AttendanceCreate,
    AttendanceFilters,
    AttendanceRecord,
    AttendanceUpdate,
)
from attendance_hub.models.connection import ConnectionStatus
from attendance_hub.models.student import Student, StudentCreate, StudentUpdate
from attendance_hub.sync.connection import ConnectionMonitor
from attendance_hub.sync.local_store import ATTENDANCE, STUDENTS, LocalStore
from attendance_hub.sync.remote_store import RemoteStore
from attendance_hub.sync.result import Err, Result, attempt, or_else
from attendance_hub.sync.subscription import SnapshotCallback, Subscription
from attendance_hub.sync.views import (
    filter_attendance,
    filter_class,
    sort_attendance,
    sort_by_roll_number,
    sort_students,
)

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_local_id() -> str:
    """Locally unique id: prefix, millisecond timestamp, random suffix."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"local_{int(time.time() * 1000)}_{suffix}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _coerce(model: type[BaseModel], data: Union[BaseModel, dict]) -> BaseModel:
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    return model.model_validate(data)


def _as_models(model: type[BaseModel], records: list[dict]) -> list:
    out = []
    for record in records:
        try:
            out.append(model.model_validate(record))
        except ValidationError as e:
            logger.warning(f"Skipping malformed {model.__name__} record {record.get('id')!r}: {e}")
    return out


class SyncFacade:
    def __init__(self, remote: Optional[RemoteStore], local: LocalStore, monitor: ConnectionMonitor):
        self._remote = remote
        self._local = local
        self._monitor = monitor

    # ---- policy -----------------------------------------------------------

    async def _try_remote(self, label: str, operation: Callable[[], Awaitable[Any]]) -> Result:
        if not await self._monitor.remote_available():
            return Err(RemoteUnavailable(f"Remote store unavailable for {label}"))
        result = await attempt(operation)
        if not result.ok:
            if not isinstance(result.error, AttendanceHubError):
                self._monitor.record_remote_result(False)
            logger.warning(f"Remote {label} failed, using local storage: {result.error}")
        return result

    async def _write(
        self,
        user_id: str,
        label: str,
        remote_op: Callable[[], Awaitable[Any]],
        local_op: Callable[[LocalStore], Awaitable[Any]],
        failure_message: str,
    ) -> Any:
        local = self._local.for_user(user_id)
        remote_result = await self._try_remote(label, remote_op)

        async def fallback():
            if not local.is_supported():
                # remote answered with a domain error such as NotFoundError
                if isinstance(remote_result.error, AttendanceHubError) and not isinstance(
                    remote_result.error, RemoteUnavailable
                ):
                    raise remote_result.error
                raise PersistenceUnavailableError(failure_message)
            try:
                return await local_op(local)
            except StorageError as e:
                raise PersistenceUnavailableError(failure_message) from e

        outcome = await or_else(remote_result, fallback)
        if not outcome.ok and isinstance(outcome.error, PersistenceUnavailableError):
            logger.error(f"{label} failed on both remote and local storage")
        return outcome.unwrap()

    async def _read(
        self,
        user_id: str,
        label: str,
        remote_op: Callable[[], Awaitable[list[dict]]],
        local_op: Callable[[LocalStore], Awaitable[list[dict]]],
    ) -> list[dict]:
        local = self._local.for_user(user_id)

        async def fallback():
            if not local.is_supported():
                logger.error(f"Local DB not supported and remote unavailable for {label}")
                return []
            return await local_op(local)

        outcome = await or_else(await self._try_remote(label, remote_op), fallback)
        if outcome.ok:
            return outcome.value
        logger.error(f"{label} failed on both remote and local storage: {outcome.error}")
        return []

    async def _mirror(self, user_id: str, collection: str, records: Optional[list[dict]] = None) -> None:
        """Replace the local copy of `collection` with the remote snapshot. Never raises."""
        local = self._local.for_user(user_id)
        if not local.is_supported():
            return
        try:
            if records is None:
                records = await self._remote.fetch_all(user_id, collection)
            await local.replace_all(collection, records)
        except Exception as e:
            logger.warning(f"Failed to update local {collection} from remote snapshot: {e}")

    async def _add_each(self, store: LocalStore, collection: str, records: list[dict]) -> list[dict]:
        saved = []
        for record in records:
            item = {**record, "id": generate_local_id()}
            try:
                saved.append(await store.add(collection, item))
            except (DuplicateKeyError, StorageError) as e:
                logger.warning(f"Local batch add skipped a {collection} record: {e}")
        if records and not saved:
            raise StorageError(f"No {collection} record could be saved locally")
        return saved

    async def _delete_each(self, store: LocalStore, collection: str, keys: list[str]) -> None:
        failed = 0
        for key in keys:
            try:
                await store.delete(collection, key)
            except StorageError as e:
                failed += 1
                logger.warning(f"Local batch delete skipped {collection} record {key!r}: {e}")
        if keys and failed == len(keys):
            raise StorageError(f"No {collection} record could be deleted locally")

    # ---- students ---------------------------------------------------------

    async def add_student(self, user_id: str, data: Union[StudentCreate, dict]) -> Student:
        now = _now()
        record = {**_coerce(StudentCreate, data).model_dump(), "created_at": now, "updated_at": now}

        async def remote():
            created = await self._remote.add(user_id, STUDENTS, record)
            await self._mirror(user_id, STUDENTS)
            return created

        async def local(store: LocalStore):
            return await store.add(STUDENTS, {**record, "id": generate_local_id()})

        created = await self._write(
            user_id, "add student", remote, local,
            "Failed to add student. Please check your connection and try again.",
        )
        return Student.model_validate(created)

    async def add_students(self, user_id: str, items: list[Union[StudentCreate, dict]]) -> list[Student]:
        now = _now()
        records = [
            {**_coerce(StudentCreate, item).model_dump(), "created_at": now, "updated_at": now}
            for item in items
        ]

        async def remote():
            created = await self._remote.add_many(user_id, STUDENTS, records)
            await self._mirror(user_id, STUDENTS)
            return created

        async def local(store: LocalStore):
            return await self._add_each(store, STUDENTS, records)

        created = await self._write(
            user_id, "batch add students", remote, local,
            "Failed to add students. Please check your connection and try again.",
        )
        return _as_models(Student, created)

    async def get_students(self, user_id: str) -> list[Student]:
        async def remote():
            records = await self._remote.fetch_all(user_id, STUDENTS)
            await self._mirror(user_id, STUDENTS, records)
            return records

        async def local(store: LocalStore):
            return await store.get_all(STUDENTS)

        records = await self._read(user_id, "get students", remote, local)
        return _as_models(Student, sort_students(records))

    async def get_students_by_class(self, user_id: str, year: str, division: str) -> list[Student]:
        """Roster of one class ordered by roll number. Filtered results are not mirrored."""
        async def remote():
            return await self._remote.fetch_where(user_id, STUDENTS, year=year, division=division)

        async def local(store: LocalStore):
            return filter_class(await store.query_by_index(STUDENTS, "year", year), year, division)

        records = await self._read(user_id, "get students by class", remote, local)
        return _as_models(Student, sort_by_roll_number(records))

    def subscribe_students(self, user_id: str, callback: SnapshotCallback) -> Subscription:
        return self._subscribe(
            user_id, STUDENTS, callback,
            view=lambda records: _as_models(Student, sort_students(records)),
        )

    async def update_student(self, user_id: str, student_id: str, patch: Union[StudentUpdate, dict]) -> Student:
        changes = {**_coerce(StudentUpdate, patch).model_dump(exclude_unset=True), "updated_at": _now()}

        async def remote():
            updated = await self._remote.update(user_id, STUDENTS, student_id, changes)
            await self._mirror(user_id, STUDENTS)
            return updated

        async def local(store: LocalStore):
            return await store.update(STUDENTS, student_id, changes)

        updated = await self._write(
            user_id, "update student", remote, local,
            "Failed to update student. Please check your connection and try again.",
        )
        return Student.model_validate(updated)

    async def delete_student(self, user_id: str, student_id: str) -> None:
        async def remote():
            await self._remote.delete(user_id, STUDENTS, student_id)
            await self._mirror(user_id, STUDENTS)

        async def local(store: LocalStore):
            await store.delete(STUDENTS, student_id)

        await self._write(
            user_id, "delete student", remote, local,
            "Unable to delete student: no storage available. Please check your connection and try again.",
        )

    async def delete_students(self, user_id: str, student_ids: list[str]) -> None:
        async def remote():
            await self._remote.delete_many(user_id, STUDENTS, student_ids)
            await self._mirror(user_id, STUDENTS)

        async def local(store: LocalStore):
            await self._delete_each(store, STUDENTS, student_ids)

        await self._write(
            user_id, "batch delete students", remote, local,
            "Unable to delete students: no storage available. Please check your connection and try again.",
        )

    # ---- attendance -------------------------------------------------------

    async def add_attendance(self, user_id: str, data: Union[AttendanceCreate, dict]) -> AttendanceRecord:
        record = {**_coerce(AttendanceCreate, data).model_dump(), "created_at": _now()}

        async def remote():
            created = await self._remote.add(user_id, ATTENDANCE, record)
            await self._mirror(user_id, ATTENDANCE)
            return created

        async def local(store: LocalStore):
            return await store.add(ATTENDANCE, {**record, "id": generate_local_id()})

        created = await self._write(
            user_id, "add attendance", remote, local,
            "Failed to save attendance. Please check your connection and try again.",
        )
        return AttendanceRecord.model_validate(created)

    async def add_attendance_batch(
        self, user_id: str, items: list[Union[AttendanceCreate, dict]]
    ) -> list[AttendanceRecord]:
        now = _now()
        records = [{**_coerce(AttendanceCreate, item).model_dump(), "created_at": now} for item in items]

        async def remote():
            created = await self._remote.add_many(user_id, ATTENDANCE, records)
            await self._mirror(user_id, ATTENDANCE)
            return created

        async def local(store: LocalStore):
            return await self._add_each(store, ATTENDANCE, records)

        created = await self._write(
            user_id, "batch add attendance", remote, local,
            "Failed to save attendance records. Please check your connection and try again.",
        )
        return _as_models(AttendanceRecord, created)

    async def get_attendance(self, user_id: str, filters: Optional[AttendanceFilters] = None) -> list[AttendanceRecord]:
        async def remote():
            records = await self._remote.fetch_all(user_id, ATTENDANCE)
            await self._mirror(user_id, ATTENDANCE, records)
            return records

        async def local(store: LocalStore):
            return await store.get_all(ATTENDANCE)

        records = await self._read(user_id, "get attendance", remote, local)
        return _as_models(AttendanceRecord, sort_attendance(filter_attendance(records, filters)))

    async def get_attendance_by_date_and_class(
        self, user_id: str, date: str, year: str, division: str
    ) -> list[AttendanceRecord]:
        async def remote():
            return await self._remote.fetch_where(user_id, ATTENDANCE, date=date, year=year, division=division)

        async def local(store: LocalStore):
            return filter_class(await store.query_by_index(ATTENDANCE, "date", date), year, division)

        records = await self._read(user_id, "get attendance by date and class", remote, local)
        return _as_models(AttendanceRecord, sort_attendance(records))

    def subscribe_attendance(
        self, user_id: str, callback: SnapshotCallback, filters: Optional[AttendanceFilters] = None
    ) -> Subscription:
        return self._subscribe(
            user_id, ATTENDANCE, callback,
            view=lambda records: _as_models(AttendanceRecord, sort_attendance(filter_attendance(records, filters))),
        )

    async def update_attendance(
        self, user_id: str, record_id: str, patch: Union[AttendanceUpdate, dict]
    ) -> AttendanceRecord:
        changes = {**_coerce(AttendanceUpdate, patch).model_dump(exclude_unset=True), "updated_at": _now()}

        async def remote():
            updated = await self._remote.update(user_id, ATTENDANCE, record_id, changes)
            await self._mirror(user_id, ATTENDANCE)
            return updated

        async def local(store: LocalStore):
            return await store.update(ATTENDANCE, record_id, changes)

        updated = await self._write(
            user_id, "update attendance", remote, local,
            "Failed to update attendance record. Please check your connection and try again.",
        )
        return AttendanceRecord.model_validate(updated)

    async def delete_attendance(self, user_id: str, record_id: str) -> None:
        async def remote():
            await self._remote.delete(user_id, ATTENDANCE, record_id)
            await self._mirror(user_id, ATTENDANCE)

        async def local(store: LocalStore):
            await store.delete(ATTENDANCE, record_id)

        await self._write(
            user_id, "delete attendance", remote, local,
            "Failed to delete attendance record. Please check your connection and try again.",
        )

    # ---- subscriptions ----------------------------------------------------

    def _subscribe(
        self,
        user_id: str,
        collection: str,
        callback: SnapshotCallback,
        view: Callable[[list[dict]], list],
    ) -> Subscription:
        local = self._local.for_user(user_id)
        open_remote = None
        # no probe here: the channel itself reports failure
        if self._remote is not None and self._monitor.online and self._monitor.remote_connected:
            def open_remote():
                return self._remote.watch(user_id, collection)

        async def read_local():
            if not local.is_supported():
                return []
            return await local.get_all(collection)

        async def mirror(records: list[dict]):
            await self._mirror(user_id, collection, records)

        subscription = Subscription(
            f"{collection}:{user_id}",
            callback,
            open_remote=open_remote,
            read_local=read_local,
            view=view,
            mirror=mirror,
            on_remote_error=lambda: self._monitor.record_remote_result(False),
        )
        return subscription.start()

    # ---- connection and local diagnostics -----------------------------------

    def get_connection_status(self) -> ConnectionStatus:
        return self._monitor.get_status()

    async def force_reconnect(self) -> bool:
        return await self._monitor.force_reconnect()

    async def local_info(self, user_id: str) -> dict:
        return await self._local.for_user(user_id).info()

    async def clear_local(self, user_id: str) -> None:
        await self._local.for_user(user_id).clear()

    def set_network_state(self, online: bool) -> ConnectionStatus:
        """Feed a network up/down event into the connection monitor."""
        if online:
            self._monitor.mark_online()
        else:
            self._monitor.mark_offline()
        return self._monitor.get_status()
