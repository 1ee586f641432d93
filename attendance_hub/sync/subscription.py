"""Long-lived collection subscriptions with local fallback.

A subscription moves through ATTEMPTING_REMOTE -> REMOTE_LIVE while the remote
push channel delivers snapshots. If the channel cannot be opened or errors
later, it switches to LOCAL_FALLBACK, delivers one local snapshot and stops:
there is no polling afterwards, callers re-subscribe to pick up later changes.
CANCELLED is terminal and suppresses every later callback.
"""
import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list], Any]


class SubscriptionState(str, Enum):
    ATTEMPTING_REMOTE = "attempting_remote"
    REMOTE_LIVE = "remote_live"
    LOCAL_FALLBACK = "local_fallback"
    CANCELLED = "cancelled"


class Subscription:
    """Cancellable handle. Calling it (or `cancel()`) any number of times is safe."""

    def __init__(
        self,
        name: str,
        callback: SnapshotCallback,
        *,
        open_remote: Optional[Callable[[], AsyncIterator[list[dict]]]],
        read_local: Callable[[], Awaitable[list[dict]]],
        view: Callable[[list[dict]], list],
        mirror: Callable[[list[dict]], Awaitable[None]],
        on_remote_error: Callable[[], None],
    ):
        self.name = name
        self._callback = callback
        self._open_remote = open_remote
        self._read_local = read_local
        self._view = view
        self._mirror = mirror
        self._on_remote_error = on_remote_error
        self._state = SubscriptionState.ATTEMPTING_REMOTE
        self._task: Optional[asyncio.Task] = None
        self.deliveries = 0

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._state is SubscriptionState.CANCELLED

    def start(self) -> "Subscription":
        """Schedule the subscription on the running event loop."""
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"subscription:{self.name}")
        return self

    def cancel(self) -> None:
        if self.cancelled:
            return
        self._state = SubscriptionState.CANCELLED
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.debug(f"Subscription {self.name} cancelled")

    __call__ = cancel

    async def wait(self) -> None:
        """Wait until the subscription stops producing (fallback delivered, or cancelled)."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self.cancelled:
                raise

    async def _run(self) -> None:
        if self._open_remote is None:
            await self._fall_back()
            return
        try:
            async for snapshot in self._open_remote():
                if self.cancelled:
                    return
                self._state = SubscriptionState.REMOTE_LIVE
                try:
                    await self._mirror(snapshot)
                except Exception as e:
                    logger.warning(f"Failed to save {self.name} snapshot to local DB: {e}")
                await self._deliver(self._view(snapshot))
        except Exception as e:
            if self.cancelled:
                return
            logger.warning(f"Remote {self.name} subscription error, falling back to local DB: {e}")
            self._on_remote_error()
            await self._fall_back()
            return
        if not self.cancelled:
            logger.warning(f"Remote {self.name} channel closed, falling back to local DB")
            await self._fall_back()

    async def _fall_back(self) -> None:
        if self.cancelled:
            return
        self._state = SubscriptionState.LOCAL_FALLBACK
        try:
            records = await self._read_local()
        except Exception as e:
            logger.error(f"Local DB fallback for {self.name} failed: {e}")
            records = []
        await self._deliver(self._view(records))

    async def _deliver(self, items: list) -> None:
        if self.cancelled:
            return
        self.deliveries += 1
        try:
            result = self._callback(items)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Subscriber callback for {self.name} raised")
