import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.websockets import WebSocketState

from skillswap.core.dependencies import get_current_user_id, get_relay, get_websocket_user_id

from .models import NotificationType
from .service import NotificationRelay
from .schemas import (
    MarkAllReadResponseModel,
    MarkReadResponseModel,
    NotificationsResponseModel,
    UnreadCountResponseModel,
)


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=NotificationsResponseModel, status_code=200)
async def list_notifications(
    type: Optional[NotificationType] = None,
    unread_only: bool = False,
    user_id: str = Depends(get_current_user_id),
    relay: NotificationRelay = Depends(get_relay),
):
    """
    Notifications addressed to the authenticated user, newest first.

    **Query Parameters**
    - `type`: Only notifications of this type.
    - `unread_only`: Skip notifications already marked as read.
    """
    notifications = await relay.get_user_notifications(
        user_id, type=type, unread_only=unread_only
    )
    return {"notifications": [n.model_dump() for n in notifications]}


@router.get("/unread-count", response_model=UnreadCountResponseModel, status_code=200)
async def unread_count(
    user_id: str = Depends(get_current_user_id),
    relay: NotificationRelay = Depends(get_relay),
):
    return {"unread": await relay.get_unread_count(user_id)}


@router.post(
    "/{notification_id}/read", response_model=MarkReadResponseModel, status_code=200
)
async def mark_notification_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    relay: NotificationRelay = Depends(get_relay),
):
    """
    Mark one notification as read.

    **Errors**
    - `403`: The notification belongs to another user.
    - `404`: No notification with this id.
    """
    notification = await relay.mark_as_read(notification_id, user_id)
    return {"notification": notification.model_dump()}


@router.post("/read-all", response_model=MarkAllReadResponseModel, status_code=200)
async def mark_all_notifications_read(
    user_id: str = Depends(get_current_user_id),
    relay: NotificationRelay = Depends(get_relay),
):
    return {"marked_read": await relay.mark_all_as_read(user_id)}


@router.websocket("/ws")
async def notifications_stream(
    websocket: WebSocket,
    unread_only: bool = False,
    user_id: Optional[str] = Depends(get_websocket_user_id),
):
    """
    Push the user's notifications over a WebSocket.

    A full snapshot (newest first) is sent on connect and again after every
    change, as `{"type": "notifications", "notifications": [...]}`.
    """
    if not user_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    relay: NotificationRelay = websocket.app.state.relay
    await websocket.accept()

    snapshots: asyncio.Queue = asyncio.Queue()
    unsubscribe = await relay.subscribe_to_notifications(
        user_id, snapshots.put_nowait, unread_only=unread_only
    )

    async def pump():
        while True:
            notifications = await snapshots.get()
            await websocket.send_json(
                {
                    "type": "notifications",
                    "notifications": [n.model_dump(mode="json") for n in notifications],
                }
            )

    async def drain():
        # Incoming frames are ignored; receiving only detects the disconnect.
        while True:
            await websocket.receive_text()

    sender = asyncio.create_task(pump())
    receiver = asyncio.create_task(drain())
    try:
        # Whichever side stops first (client gone, or a send failed) ends the stream.
        await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        sender.cancel()
        receiver.cancel()
        send_result, receive_result = await asyncio.gather(
            sender, receiver, return_exceptions=True
        )
        await unsubscribe()

    if isinstance(send_result, Exception):
        logger.error(f"notification_stream_failed user={user_id} error={send_result!r}")
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    elif isinstance(receive_result, WebSocketDisconnect):
        logger.info(f"notification_stream_closed user={user_id}")
