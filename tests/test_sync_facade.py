# =============================================================================
# tests/test_sync_facade.py
# Unit Tests for SyncFacade: remote-first operations with local fallback
# =============================================================================

import asyncio
import re
from datetime import datetime

import pytest

from attendance_hub.errors import NotFoundError, PersistenceUnavailableError, StorageError
from attendance_hub.models.attendance import AttendanceFilters
from attendance_hub.sync import ATTENDANCE, STUDENTS, ConnectionMonitor, LocalStore, SyncFacade, generate_local_id
from support import OTHER_USER, USER, make_mark, make_student


def _local(sync_local, collection, user=USER):
    return asyncio.run(sync_local.for_user(user).get_all(collection))


class TestLocalIds:

    def test_format(self):
        assert re.fullmatch(r"local_\d{13}_[a-z0-9]{9}", generate_local_id())

    def test_unique(self):
        assert len({generate_local_id() for _ in range(200)}) == 200


class TestRemotePath:
    """Remote reachable: writes land remotely and are mirrored locally"""

    def test_add_student_goes_remote_and_mirrors(self, sync, remote, local_store, student_data):
        student = asyncio.run(sync.add_student(USER, student_data))

        assert student.id.startswith("remote-")
        assert list(remote.data[(USER, STUDENTS)]) == [student.id]
        assert [r["id"] for r in _local(local_store, STUDENTS)] == [student.id]

    def test_round_trip_keeps_fields(self, sync, student_data):
        created = asyncio.run(sync.add_student(USER, student_data))
        [read] = asyncio.run(sync.get_students(USER))

        assert read.model_dump(by_alias=True, exclude={"id", "created_at", "updated_at"}) == student_data
        assert read.id == created.id
        datetime.fromisoformat(read.created_at)
        datetime.fromisoformat(read.updated_at)

    def test_repeated_reads_mirror_exact_snapshot(self, sync, remote, local_store):
        remote.seed(USER, STUDENTS, [
            {"name": "A", "roll_number": "1", "year": "FirstYear", "division": "A",
             "created_at": "2024-01-01T00:00:00+00:00", "updated_at": "2024-01-01T00:00:00+00:00"},
            {"name": "B", "roll_number": "2", "year": "FirstYear", "division": "A",
             "created_at": "2024-01-01T00:00:00+00:00", "updated_at": "2024-01-01T00:00:00+00:00"},
        ])
        asyncio.run(local_store.for_user(USER).add(STUDENTS, {"id": "stale", "name": "gone"}))

        for _ in range(3):
            asyncio.run(sync.get_students(USER))

        mirrored = sorted(_local(local_store, STUDENTS), key=lambda r: r["id"])
        assert mirrored == sorted(remote.data[(USER, STUDENTS)].values(), key=lambda r: r["id"])

    def test_update_student_remote(self, sync, student_data):
        created = asyncio.run(sync.add_student(USER, student_data))
        updated = asyncio.run(sync.update_student(USER, created.id, {"name": "Asha R."}))

        assert updated.name == "Asha R."
        assert updated.roll_number == "7"
        assert updated.updated_at >= created.updated_at

    def test_delete_students_batch_remote(self, sync, remote, local_store):
        created = asyncio.run(sync.add_students(USER, [make_student("A", "1"), make_student("B", "2"), make_student("C", "3")]))

        asyncio.run(sync.delete_students(USER, [created[0].id, created[2].id]))

        assert [s.name for s in asyncio.run(sync.get_students(USER))] == ["B"]
        assert "delete_many" in remote.calls
        assert [r["name"] for r in _local(local_store, STUDENTS)] == ["B"]

    def test_mirror_failure_after_write_is_swallowed(self, sync, remote, monitor, local_store, student_data):
        remote.failing.add("fetch_all")

        student = asyncio.run(sync.add_student(USER, student_data))

        assert student.id == "remote-1"
        assert list(remote.data[(USER, STUDENTS)]) == ["remote-1"]
        assert _local(local_store, STUDENTS) == []
        assert monitor.get_status().remote_connected is True

    def test_mirror_failure_after_batch_write_is_swallowed(self, sync, remote, local_store):
        remote.failing.add("fetch_all")

        created = asyncio.run(sync.add_students(USER, [make_student("A", "1"), make_student("B", "2")]))

        assert [s.id for s in created] == ["remote-1", "remote-2"]
        assert _local(local_store, STUDENTS) == []

    def test_read_returns_remote_data_when_mirror_fails(self, sync, remote, local_store, monkeypatch):
        asyncio.run(sync.add_student(USER, make_student("A", "1")))

        async def broken_replace_all(self, collection, records):
            raise StorageError("disk full")

        monkeypatch.setattr(LocalStore, "replace_all", broken_replace_all)
        remote.seed(USER, STUDENTS, [{
            "name": "B", "roll_number": "2", "year": "FirstYear", "division": "A",
            "created_at": "2024-01-01T00:00:00+00:00", "updated_at": "2024-01-01T00:00:00+00:00",
        }])

        assert [s.name for s in asyncio.run(sync.get_students(USER))] == ["A", "B"]
        assert [r["name"] for r in _local(local_store, STUDENTS)] == ["A"]

    def test_users_are_partitioned(self, sync, student_data):
        asyncio.run(sync.add_student(USER, student_data))
        assert asyncio.run(sync.get_students(OTHER_USER)) == []


class TestFallback:
    """Remote rejects: the local store serves every operation"""

    @pytest.mark.parametrize("failure", ["unreachable", "offline", "write_rejected"])
    def test_add_student_falls_back(self, sync, remote, monitor, local_store, student_data, failure):
        existing = asyncio.run(sync.add_student(USER, make_student("Existing", "1")))
        if failure == "unreachable":
            remote.reachable = False
        elif failure == "offline":
            monitor.mark_offline()
        else:
            remote.failing.add("add")

        student = asyncio.run(sync.add_student(USER, student_data))

        assert student.id.startswith("local_")
        assert student.id != existing.id
        stored = {r["id"]: r for r in _local(local_store, STUDENTS)}
        assert stored[student.id]["name"] == "Asha Rao"
        assert (USER, STUDENTS) not in remote.data or student.id not in remote.data[(USER, STUDENTS)]

    def test_rejected_write_marks_remote_disconnected(self, sync, remote, monitor, student_data):
        remote.failing.add("add")
        asyncio.run(sync.add_student(USER, student_data))
        assert monitor.get_status().remote_connected is False

    def test_every_write_has_a_local_path(self, sync, remote, local_store):
        remote.reachable = False
        store = local_store.for_user(USER)

        students = asyncio.run(sync.add_students(USER, [make_student("A", "1"), make_student("B", "2")]))
        mark = asyncio.run(sync.add_attendance(USER, make_mark(students[0].id, "2024-05-01")))
        marks = asyncio.run(sync.add_attendance_batch(USER, [
            make_mark(students[1].id, "2024-05-01", status="absent"),
            make_mark(students[0].id, "2024-05-02"),
        ]))
        assert len(asyncio.run(store.get_all(ATTENDANCE))) == 3

        asyncio.run(sync.update_attendance(USER, mark.id, {"status": "absent"}))
        asyncio.run(sync.delete_attendance(USER, marks[1].id))
        updated = asyncio.run(sync.update_student(USER, students[1].id, {"phone": "123"}))
        asyncio.run(sync.delete_student(USER, students[0].id))

        assert updated.phone == "123"
        assert [r["id"] for r in asyncio.run(store.get_all(STUDENTS))] == [students[1].id]
        statuses = {r["id"]: r["status"] for r in asyncio.run(store.get_all(ATTENDANCE))}
        assert statuses == {mark.id: "absent", marks[0].id: "absent"}

    def test_update_missing_local_record_surfaces_not_found(self, sync, remote):
        remote.reachable = False
        with pytest.raises(NotFoundError):
            asyncio.run(sync.update_student(USER, "missing", {"name": "x"}))

    def test_both_backends_down_raises_actionable_error(self, remote, broken_local_store, student_data):
        remote.reachable = False
        sync = SyncFacade(remote, broken_local_store, ConnectionMonitor(remote, broken_local_store))

        with pytest.raises(PersistenceUnavailableError) as exc:
            asyncio.run(sync.add_student(USER, student_data))
        assert "check your connection and try again" in exc.value.message

    def test_remote_not_found_surfaces_when_local_unusable(self, remote, broken_local_store):
        monitor = ConnectionMonitor(remote, broken_local_store)
        sync = SyncFacade(remote, broken_local_store, monitor)

        with pytest.raises(NotFoundError):
            asyncio.run(sync.update_student(USER, "missing", {"name": "x"}))
        assert monitor.get_status().remote_connected is True

    def test_outage_with_local_unusable_is_persistence_error(self, remote, broken_local_store):
        remote.reachable = False
        sync = SyncFacade(remote, broken_local_store, ConnectionMonitor(remote, broken_local_store))

        with pytest.raises(PersistenceUnavailableError):
            asyncio.run(sync.update_student(USER, "missing", {"name": "x"}))

    def test_no_remote_configured(self, local_store, student_data):
        sync = SyncFacade(None, local_store, ConnectionMonitor(None, local_store))
        student = asyncio.run(sync.add_student(USER, student_data))
        assert student.id.startswith("local_")
        assert [s.id for s in asyncio.run(sync.get_students(USER))] == [student.id]

    def test_reads_serve_last_mirrored_snapshot(self, sync, remote, student_data):
        created = asyncio.run(sync.add_student(USER, student_data))
        remote.reachable = False
        assert [s.id for s in asyncio.run(sync.get_students(USER))] == [created.id]


class TestBatchFallback:

    def test_local_batch_continues_after_failed_record(self, sync, remote, local_store, monkeypatch):
        remote.reachable = False
        real_add = LocalStore.add
        calls = []

        async def flaky_add(self, collection, record):
            calls.append(record["name"])
            if len(calls) == 2:
                raise StorageError("disk full")
            return await real_add(self, collection, record)

        monkeypatch.setattr(LocalStore, "add", flaky_add)

        saved = asyncio.run(sync.add_students(USER, [make_student("A", "1"), make_student("B", "2"), make_student("C", "3")]))

        assert calls == ["A", "B", "C"]
        assert [s.name for s in saved] == ["A", "C"]
        assert sorted(r["name"] for r in _local(local_store, STUDENTS)) == ["A", "C"]

    def test_local_batch_with_nothing_saved_fails(self, sync, remote, monkeypatch):
        remote.reachable = False

        async def broken_add(self, collection, record):
            raise StorageError("disk full")

        monkeypatch.setattr(LocalStore, "add", broken_add)

        with pytest.raises(PersistenceUnavailableError):
            asyncio.run(sync.add_students(USER, [make_student("A", "1")]))

    def test_remote_batch_is_all_or_nothing(self, sync, remote, local_store):
        remote.failing.add("add_many")
        asyncio.run(sync.add_students(USER, [make_student("A", "1"), make_student("B", "2")]))

        assert remote.data.get((USER, STUDENTS), {}) == {}
        assert len(_local(local_store, STUDENTS)) == 2


class TestReads:

    def test_students_sorted_lexicographically(self, sync, remote):
        asyncio.run(sync.add_students(USER, [
            make_student("S", "5", year="SecondYear", division="B"),
            make_student("T", "2"),
            make_student("U", "10"),
        ]))
        for reachable in (True, False):
            remote.reachable = reachable
            keys = [f"{s.year}/{s.division}/{s.roll_number}" for s in asyncio.run(sync.get_students(USER))]
            assert keys == ["FirstYear/A/10", "FirstYear/A/2", "SecondYear/B/5"]

    def test_reads_never_raise(self, sync, remote):
        remote.reachable = False
        assert asyncio.run(sync.get_students(USER)) == []
        assert asyncio.run(sync.get_attendance(USER)) == []

    def test_reads_with_both_backends_down_return_empty(self, remote, broken_local_store):
        remote.reachable = False
        sync = SyncFacade(remote, broken_local_store, ConnectionMonitor(remote, broken_local_store))
        assert asyncio.run(sync.get_students(USER)) == []
        assert asyncio.run(sync.get_attendance(USER, AttendanceFilters(year="FirstYear"))) == []

    def test_attendance_filters_and_order(self, sync, remote):
        asyncio.run(sync.add_attendance_batch(USER, [
            make_mark("s1", "2024-05-01"),
            make_mark("s1", "2024-05-03"),
            make_mark("s2", "2024-05-02", year="SecondYear"),
            make_mark("s3", "2024-05-04", division="B"),
        ]))
        filters = AttendanceFilters(year="FirstYear", division="A", start_date="2024-05-01", end_date="2024-05-03")

        for reachable in (True, False):
            remote.reachable = reachable
            dates = [r.date for r in asyncio.run(sync.get_attendance(USER, filters))]
            assert dates == ["2024-05-03", "2024-05-01"]

    def test_students_by_class_ordered_by_roll(self, sync, remote):
        asyncio.run(sync.add_students(USER, [
            make_student("A", "3"), make_student("B", "1"), make_student("C", "2", division="B"),
        ]))
        asyncio.run(sync.get_students(USER))

        for reachable in (True, False):
            remote.reachable = reachable
            names = [s.name for s in asyncio.run(sync.get_students_by_class(USER, "FirstYear", "A"))]
            assert names == ["B", "A"]

    def test_attendance_by_date_and_class(self, sync, remote):
        asyncio.run(sync.add_attendance_batch(USER, [
            make_mark("s1", "2024-05-01"),
            make_mark("s2", "2024-05-01", division="B"),
            make_mark("s3", "2024-05-02"),
        ]))
        for reachable in (True, False):
            remote.reachable = reachable
            found = asyncio.run(sync.get_attendance_by_date_and_class(USER, "2024-05-01", "FirstYear", "A"))
            assert [r.student_id for r in found] == ["s1"]

    def test_duplicate_marks_are_kept(self, sync):
        asyncio.run(sync.add_attendance(USER, make_mark("s1", "2024-05-01")))
        asyncio.run(sync.add_attendance(USER, make_mark("s1", "2024-05-01", status="absent")))
        assert len(asyncio.run(sync.get_attendance(USER))) == 2


class TestDiagnostics:

    def test_connection_status_and_network_events(self, sync, remote):
        assert sync.get_connection_status().online is True
        status = sync.set_network_state(False)
        assert status.online is False
        assert "ping" not in remote.calls

    def test_force_reconnect(self, sync, remote):
        remote.reachable = False
        assert asyncio.run(sync.force_reconnect()) is False
        remote.reachable = True
        assert asyncio.run(sync.force_reconnect()) is True

    def test_local_info_and_clear(self, sync, student_data):
        asyncio.run(sync.add_student(USER, student_data))
        assert asyncio.run(sync.local_info(USER))["studentsCount"] == 1

        asyncio.run(sync.clear_local(USER))
        assert asyncio.run(sync.local_info(USER))["studentsCount"] == 0
