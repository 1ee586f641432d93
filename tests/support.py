"""Test doubles and helpers: in-memory remote store with failure injection and a push channel."""
import asyncio
import time

from attendance_hub.errors import NotFoundError
from attendance_hub.sync import RemoteStore


class FakeRemoteStore(RemoteStore):
    def __init__(self):
        self.data: dict[tuple[str, str], dict[str, dict]] = {}
        self.reachable = True
        self.failing: set[str] = set()  # operation names that raise even when reachable
        self.calls: list[str] = []
        self._counter = 0
        self._watchers: list[tuple[str, str, asyncio.AbstractEventLoop, asyncio.Queue]] = []

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if not self.reachable or op in self.failing:
            raise ConnectionError(f"remote {op} rejected")

    def _bucket(self, user_id: str, collection: str) -> dict[str, dict]:
        return self.data.setdefault((user_id, collection), {})

    def _snapshot(self, user_id: str, collection: str) -> list[dict]:
        return [dict(r) for r in self._bucket(user_id, collection).values()]

    def _new_id(self) -> str:
        self._counter += 1
        return f"remote-{self._counter}"

    def notify(self, user_id: str, collection: str) -> None:
        # watchers may live on another thread's loop (TestClient runs one per session)
        for u, c, loop, queue in list(self._watchers):
            if u == user_id and c == collection:
                loop.call_soon_threadsafe(queue.put_nowait, "change")

    def break_channels(self, error: Exception = None) -> None:
        for _u, _c, loop, queue in list(self._watchers):
            loop.call_soon_threadsafe(queue.put_nowait, error or ConnectionError("push channel lost"))

    def seed(self, user_id: str, collection: str, records: list[dict]) -> list[dict]:
        bucket = self._bucket(user_id, collection)
        out = []
        for data in records:
            record = {**data, "id": data.get("id") or self._new_id()}
            bucket[record["id"]] = record
            out.append(dict(record))
        return out

    async def ping(self) -> None:
        self._check("ping")

    async def fetch_all(self, user_id, collection):
        self._check("fetch_all")
        return self._snapshot(user_id, collection)

    async def fetch_where(self, user_id, collection, **equals):
        self._check("fetch_where")
        return [
            r for r in self._snapshot(user_id, collection)
            if all(r.get(k) == v for k, v in equals.items() if v is not None)
        ]

    async def add(self, user_id, collection, data):
        self._check("add")
        record = self.seed(user_id, collection, [data])[0]
        self.notify(user_id, collection)
        return record

    async def add_many(self, user_id, collection, items):
        self._check("add_many")
        records = self.seed(user_id, collection, items)
        self.notify(user_id, collection)
        return records

    async def update(self, user_id, collection, key, patch):
        self._check("update")
        bucket = self._bucket(user_id, collection)
        if key not in bucket:
            raise NotFoundError(f"Remote {collection} record {key!r} not found")
        bucket[key].update(patch)
        self.notify(user_id, collection)
        return dict(bucket[key])

    async def delete(self, user_id, collection, key):
        self._check("delete")
        self._bucket(user_id, collection).pop(key, None)
        self.notify(user_id, collection)

    async def delete_many(self, user_id, collection, keys):
        self._check("delete_many")
        bucket = self._bucket(user_id, collection)
        for key in keys:
            bucket.pop(key, None)
        self.notify(user_id, collection)

    async def watch(self, user_id, collection):
        self._check("watch")
        queue: asyncio.Queue = asyncio.Queue()
        entry = (user_id, collection, asyncio.get_running_loop(), queue)
        self._watchers.append(entry)
        try:
            yield self._snapshot(user_id, collection)
            while True:
                event = await queue.get()
                if isinstance(event, Exception):
                    raise event
                yield self._snapshot(user_id, collection)
        finally:
            self._watchers.remove(entry)


USER = "teacher-1"
OTHER_USER = "teacher-2"


async def wait_until(predicate, timeout: float = 3.0) -> None:
    """Poll `predicate` while letting background tasks and worker threads run."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def make_student(name, roll, year="FirstYear", division="A"):
    return {"name": name, "rollNumber": roll, "year": year, "division": division}


def make_mark(student_id, date, status="present", year="FirstYear", division="A", name="Asha Rao", roll="7"):
    return {
        "studentId": student_id,
        "studentName": name,
        "rollNumber": roll,
        "year": year,
        "division": division,
        "date": date,
        "status": status,
    }
