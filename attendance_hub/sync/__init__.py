"""Dual persistence: remote document store with a local SQLite fallback."""
from attendance_hub.sync.connection import ConnectionMonitor
from attendance_hub.sync.facade import SyncFacade, generate_local_id
from attendance_hub.sync.local_store import ATTENDANCE, STUDENTS, LocalStore
from attendance_hub.sync.remote_store import MongoRemoteStore, RemoteStore
from attendance_hub.sync.subscription import Subscription, SubscriptionState

__all__ = [
    "ConnectionMonitor",
    "SyncFacade",
    "generate_local_id",
    "ATTENDANCE",
    "STUDENTS",
    "LocalStore",
    "MongoRemoteStore",
    "RemoteStore",
    "Subscription",
    "SubscriptionState",
]
