"""Backend reachability, reconnect probe and local database diagnostics."""
from fastapi import APIRouter
from pydantic import BaseModel

from attendance_hub.api.deps import CurrentUserId, Sync
from attendance_hub.models.connection import ConnectionStatus

router = APIRouter()


class NetworkEvent(BaseModel):
    online: bool


@router.get("/status", response_model=ConnectionStatus)
async def connection_status(user_id: CurrentUserId, sync: Sync):
    return sync.get_connection_status()


@router.post("/reconnect")
async def reconnect(user_id: CurrentUserId, sync: Sync):
    connected = await sync.force_reconnect()
    return {"remoteConnected": connected}


@router.post("/network", response_model=ConnectionStatus)
async def network_event(event: NetworkEvent, user_id: CurrentUserId, sync: Sync):
    """Report a network up/down transition observed by the host."""
    return sync.set_network_state(event.online)


@router.get("/local")
async def local_database_info(user_id: CurrentUserId, sync: Sync):
    return await sync.local_info(user_id)


@router.delete("/local", status_code=204)
async def clear_local_database(user_id: CurrentUserId, sync: Sync):
    await sync.clear_local(user_id)
