"""Remote document database of record.

`RemoteStore` is the contract the sync layer consumes; `MongoRemoteStore`
implements it on MongoDB through Beanie. Records cross this boundary as plain
snake_case dicts carrying a string `id`.
"""
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator

from beanie import Document, PydanticObjectId, init_beanie
from beanie.operators import In
from motor.motor_asyncio import AsyncIOMotorClient

from attendance_hub.errors import NotFoundError
from attendance_hub.models.attendance import AttendanceDocument
from attendance_hub.models.student import StudentDocument
from attendance_hub.sync.local_store import ATTENDANCE, STUDENTS

logger = logging.getLogger(__name__)


class RemoteStore(ABC):
    """Collection-scoped operations, every one partitioned by `user_id`."""

    @abstractmethod
    async def ping(self) -> None:
        """Minimal round-trip; raises when the service cannot be reached."""

    @abstractmethod
    async def fetch_all(self, user_id: str, collection: str) -> list[dict]:
        ...

    @abstractmethod
    async def fetch_where(self, user_id: str, collection: str, **equals) -> list[dict]:
        ...

    @abstractmethod
    async def add(self, user_id: str, collection: str, data: dict) -> dict:
        """Insert one record and return it with its server-assigned id."""

    @abstractmethod
    async def add_many(self, user_id: str, collection: str, items: list[dict]) -> list[dict]:
        """Atomic: either every record is stored or none is."""

    @abstractmethod
    async def update(self, user_id: str, collection: str, key: str, patch: dict) -> dict:
        """Merge `patch` into the record and return the full updated record."""

    @abstractmethod
    async def delete(self, user_id: str, collection: str, key: str) -> None:
        ...

    @abstractmethod
    async def delete_many(self, user_id: str, collection: str, keys: list[str]) -> None:
        """Atomic batch delete."""

    @abstractmethod
    def watch(self, user_id: str, collection: str) -> AsyncIterator[list[dict]]:
        """Push channel: yields the full collection snapshot now and after every change.

        An error raised while iterating is the channel's terminal error event.
        """


_DOCUMENTS: dict[str, type[Document]] = {
    STUDENTS: StudentDocument,
    ATTENDANCE: AttendanceDocument,
}


def _to_record(doc: Document) -> dict:
    data = doc.model_dump(exclude={"id", "revision_id", "user_id"})
    return {"id": str(doc.id), **data}


def _object_id(key: str) -> PydanticObjectId:
    try:
        return PydanticObjectId(key)
    except Exception:
        raise NotFoundError(f"{key!r} is not a remote record id")


class MongoRemoteStore(RemoteStore):
    """MongoDB via Beanie. Batches use a session transaction (replica set required)."""

    def __init__(self, url: str, db_name: str, timeout_ms: int = 3000):
        self._client = AsyncIOMotorClient(url, serverSelectionTimeoutMS=timeout_ms)
        self._db_name = db_name
        self._initialized = False

    async def _ready(self) -> None:
        if not self._initialized:
            await init_beanie(
                database=self._client[self._db_name],
                document_models=list(_DOCUMENTS.values()),
            )
            self._initialized = True
            logger.info(f"Remote store ready (database {self._db_name})")

    async def _model(self, collection: str) -> type[Document]:
        await self._ready()
        try:
            return _DOCUMENTS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}")

    async def ping(self) -> None:
        await self._client.admin.command("ping")
        await self._ready()

    async def fetch_all(self, user_id: str, collection: str) -> list[dict]:
        model = await self._model(collection)
        docs = await model.find({"user_id": user_id}).to_list()
        return [_to_record(d) for d in docs]

    async def fetch_where(self, user_id: str, collection: str, **equals) -> list[dict]:
        model = await self._model(collection)
        query = {"user_id": user_id}
        query.update({k: v for k, v in equals.items() if v is not None})
        docs = await model.find(query).to_list()
        return [_to_record(d) for d in docs]

    async def add(self, user_id: str, collection: str, data: dict) -> dict:
        model = await self._model(collection)
        doc = model(user_id=user_id, **data)
        await doc.insert()
        return _to_record(doc)

    async def add_many(self, user_id: str, collection: str, items: list[dict]) -> list[dict]:
        model = await self._model(collection)
        docs = [model(user_id=user_id, **data) for data in items]
        if not docs:
            return []
        async with await self._client.start_session() as session:
            async with session.start_transaction():
                result = await model.insert_many(docs, session=session)
        for doc, inserted_id in zip(docs, result.inserted_ids):
            doc.id = PydanticObjectId(inserted_id)
        return [_to_record(d) for d in docs]

    async def update(self, user_id: str, collection: str, key: str, patch: dict) -> dict:
        model = await self._model(collection)
        doc = await model.find_one({"_id": _object_id(key), "user_id": user_id})
        if not doc:
            raise NotFoundError(f"Remote {collection} record {key!r} not found")
        if patch:
            await doc.set(patch)
        return _to_record(doc)

    async def delete(self, user_id: str, collection: str, key: str) -> None:
        model = await self._model(collection)
        await model.find_one({"_id": _object_id(key), "user_id": user_id}).delete()

    async def delete_many(self, user_id: str, collection: str, keys: list[str]) -> None:
        model = await self._model(collection)
        ids = [_object_id(k) for k in keys]
        if not ids:
            return
        async with await self._client.start_session() as session:
            async with session.start_transaction():
                await model.find(In(model.id, ids), {"user_id": user_id}, session=session).delete(session=session)

    async def watch(self, user_id: str, collection: str) -> AsyncIterator[list[dict]]:
        model = await self._model(collection)
        async with model.get_motor_collection().watch() as stream:
            yield await self.fetch_all(user_id, collection)
            async for _change in stream:
                # change events are not filtered by owner; re-read the owner's snapshot
                yield await self.fetch_all(user_id, collection)

    def close(self) -> None:
        self._client.close()

