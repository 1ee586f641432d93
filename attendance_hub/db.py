"""Persistence wiring: MongoDB remote store, SQLite local store and the sync facade."""
import logging
from typing import Optional

from attendance_hub.config import settings
from attendance_hub.sync import ConnectionMonitor, LocalStore, MongoRemoteStore, SyncFacade

logger = logging.getLogger(__name__)

_remote: Optional[MongoRemoteStore] = None
_local: Optional[LocalStore] = None


async def db_startup() -> SyncFacade:
    """Open both stores. An unreachable MongoDB is not fatal: reads and writes fall back locally."""
    global _remote, _local
    _remote = MongoRemoteStore(settings.mongodb_url, settings.mongodb_db_name, settings.mongodb_timeout_ms)
    _local = LocalStore(settings.local_db_path)
    if not _local.is_supported():
        logger.error(f"Local database {settings.local_db_path} unavailable; remote store is the only backend")
    monitor = ConnectionMonitor(_remote, _local, online=settings.assume_online)
    if not await monitor.probe():
        logger.warning("MongoDB is not reachable. Serving from the local database until it is.")
    return SyncFacade(_remote, _local, monitor)


async def db_shutdown():
    """Close both stores."""
    global _remote, _local
    if _remote:
        _remote.close()
        _remote = None
    if _local:
        _local.close()
        _local = None
