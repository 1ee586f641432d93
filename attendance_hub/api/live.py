"""WebSocket streams backed by collection subscriptions.

Each message is the full, sorted collection view as a JSON list. Once the
stream has fallen back to the local database it sends a single snapshot;
reconnect to receive later changes.
"""
import logging
from typing import Callable, Optional

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

from attendance_hub.api.attendance import build_filters
from attendance_hub.api.deps import decode_user_id
from attendance_hub.models.student import Division, Year
from attendance_hub.sync import Subscription

logger = logging.getLogger(__name__)

router = APIRouter()


async def _stream(websocket: WebSocket, token: str, subscribe: Callable[[str, Callable], Subscription]) -> None:
    try:
        user_id = decode_user_id(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    async def push(items: list) -> None:
        await websocket.send_json(jsonable_encoder(items))

    subscription = subscribe(user_id, push)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug(f"Client left {subscription.name}")
    finally:
        subscription.cancel()


@router.websocket("/ws/students")
async def students_stream(websocket: WebSocket, token: str):
    sync = websocket.app.state.sync
    await _stream(websocket, token, sync.subscribe_students)


@router.websocket("/ws/attendance")
async def attendance_stream(
    websocket: WebSocket,
    token: str,
    year: Optional[Year] = None,
    division: Optional[Division] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
):
    sync = websocket.app.state.sync
    try:
        filters = build_filters(year, division, start_date, end_date)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await _stream(websocket, token, lambda user_id, push: sync.subscribe_attendance(user_id, push, filters))
