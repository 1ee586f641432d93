"""Reachability view shared by the sync facade and the subscription bridge."""
import logging
from typing import Optional

from attendance_hub.models.connection import ConnectionStatus
from attendance_hub.sync.local_store import LocalStore
from attendance_hub.sync.remote_store import RemoteStore

logger = logging.getLogger(__name__)


class ConnectionMonitor:
    """Tracks network reachability and the last known health of the remote store.

    Constructed once per process and passed to the facade. `online` changes
    only through network events; `remote_connected` follows the outcome of
    the latest probe or remote operation.
    """

    def __init__(self, remote: Optional[RemoteStore], local: LocalStore, online: bool = True):
        self._remote = remote
        self._local = local
        self.online = online
        self.remote_connected = remote is not None

    def mark_online(self) -> None:
        if not self.online:
            logger.info("Network connection restored")
        self.online = True

    def mark_offline(self) -> None:
        if self.online:
            logger.info("Network connection lost")
        self.online = False

    def record_remote_result(self, succeeded: bool) -> None:
        self.remote_connected = succeeded

    def get_status(self) -> ConnectionStatus:
        return ConnectionStatus(
            online=self.online,
            remote_connected=self.remote_connected,
            local_db_supported=self._local.is_supported(),
        )

    async def probe(self) -> bool:
        """Ping the remote store and record the outcome. Never raises."""
        if self._remote is None:
            self.remote_connected = False
            return False
        try:
            await self._remote.ping()
        except Exception as e:
            logger.warning(f"Remote connection check failed: {e}")
            self.remote_connected = False
            return False
        self.remote_connected = True
        return True

    async def remote_available(self) -> bool:
        """Precondition of every remote read/write: online and a successful probe."""
        return self.online and await self.probe()

    async def force_reconnect(self) -> bool:
        return await self.probe()
