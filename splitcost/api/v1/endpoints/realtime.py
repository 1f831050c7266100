import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from splitcost.core.auth import decode_subject
from splitcost.core.config import settings
from splitcost.realtime.hub import HubRegistry
from splitcost.realtime.protocol import group_channel, user_channel

logger = logging.getLogger(__name__)

router = APIRouter()

POLICY_VIOLATION = 1008


async def _serve(websocket: WebSocket, channel_id: str, subject_id: str) -> None:
    """Pump inbound frames into the channel hub until the socket goes away."""
    hubs: HubRegistry = websocket.app.state.hubs
    await websocket.accept()
    hub, session = await hubs.join(channel_id, subject_id, websocket)

    try:
        while session.is_active:
            try:
                raw = await asyncio.wait_for(
                    websocket.receive_text(), settings.WS_HEARTBEAT_TIMEOUT
                )
            except asyncio.TimeoutError:
                logger.info(
                    "No heartbeat, closing socket",
                    extra={"channel": channel_id, "subject": subject_id},
                )
                break
            hub.receive(session, raw)
    except WebSocketDisconnect:
        pass
    except RuntimeError as e:
        # Socket was closed by the hub (replacement or send failure)
        logger.debug("Receive on closed socket", extra={"error": str(e)})
    finally:
        hub.leave(session)


@router.websocket("/ws/user/{user_id}")
async def user_socket(websocket: WebSocket, user_id: str, token: Optional[str] = Query(None)):
    """Personal notification stream; only the owner may subscribe."""
    subject_id = decode_subject(token) if token else None
    if subject_id is None or subject_id != user_id:
        await websocket.close(code=POLICY_VIOLATION)
        return
    await _serve(websocket, user_channel(user_id), subject_id)


@router.websocket("/ws/{group_id}")
async def group_socket(websocket: WebSocket, group_id: str, token: Optional[str] = Query(None)):
    """Group channel; group membership is checked by the facade issuing the token."""
    subject_id = decode_subject(token) if token else None
    if subject_id is None:
        await websocket.close(code=POLICY_VIOLATION)
        return
    await _serve(websocket, group_channel(group_id), subject_id)
