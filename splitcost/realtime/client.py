"""
RealtimeClient - Python client for the SplitCost realtime channels.

Keeps one WebSocket open to a channel:
- sends ``ping`` every heartbeat interval
- reconnects after a drop, waiting base * 2^(attempt-1) seconds, and gives
  up after the configured number of failed attempts in a row
- sends ``request_sync`` after every reconnect to recover missed events
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import quote

import websockets
from websockets.exceptions import WebSocketException

from splitcost.core.config import settings
from splitcost.realtime.protocol import ClientMessageType, channel_subject

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Dict[str, Any]], Awaitable[None]]


def reconnect_delay(attempt: int, base_delay: Optional[float] = None) -> float:
    """Seconds to wait before reconnect attempt number ``attempt`` (1-based)."""
    base = base_delay if base_delay is not None else settings.WS_RECONNECT_BASE_DELAY
    return base * (2 ** (attempt - 1))


def channel_url(base_url: str, channel_id: str, token: str) -> str:
    """Socket URL for a group id or a ``user:<id>`` channel key."""
    base_url = base_url.rstrip("/")
    subject = channel_subject(channel_id)
    path = f"ws/user/{quote(subject)}" if subject is not None else f"ws/{quote(channel_id)}"
    return f"{base_url}/{path}?token={quote(token)}"


class RealtimeClient:
    """
    Args:
        url: full socket URL, see ``channel_url``
        on_message: called with every decoded server frame
        heartbeat_interval: seconds between pings
        base_delay: first reconnect delay in seconds
        max_attempts: failed reconnects in a row before giving up
    """

    def __init__(
        self,
        url: str,
        on_message: MessageCallback,
        heartbeat_interval: Optional[float] = None,
        base_delay: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        self.url = url
        self.on_message = on_message
        self.heartbeat_interval = heartbeat_interval or settings.WS_HEARTBEAT_INTERVAL
        self.base_delay = base_delay if base_delay is not None else settings.WS_RECONNECT_BASE_DELAY
        self.max_attempts = max_attempts or settings.WS_RECONNECT_MAX_ATTEMPTS

        self._ws = None
        self._stopped = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def run(self) -> None:
        """Connect and keep reconnecting until ``stop()`` or the attempts run out."""
        attempt = 0
        has_connected = False

        while not self._stopped:
            try:
                async with websockets.connect(self.url, ping_interval=None) as ws:
                    self._ws = ws
                    attempt = 0
                    logger.info("Realtime connected", extra={"url": self.url})
                    if has_connected:
                        await self.send(ClientMessageType.REQUEST_SYNC)
                    has_connected = True

                    pinger = asyncio.create_task(self._ping_loop())
                    try:
                        async for raw in ws:
                            await self._dispatch(raw)
                    finally:
                        pinger.cancel()
                        self._ws = None
            except (WebSocketException, OSError) as e:
                logger.warning("Realtime connection lost", extra={"error": str(e)})

            if self._stopped:
                break
            attempt += 1
            if attempt > self.max_attempts:
                logger.error(
                    "Giving up on realtime connection",
                    extra={"attempts": self.max_attempts},
                )
                return
            delay = reconnect_delay(attempt, self.base_delay)
            logger.info("Reconnecting", extra={"attempt": attempt, "delay": delay})
            await asyncio.sleep(delay)

    async def send(self, type: ClientMessageType, data: Optional[Dict[str, Any]] = None) -> bool:
        if self._ws is None:
            return False
        await self._ws.send(json.dumps({"type": type.value, "data": data or {}}))
        return True

    async def stop(self) -> None:
        self._stopped = True
        ws = self._ws
        if ws is None:
            return
        try:
            await self.send(ClientMessageType.DISCONNECT)
        except WebSocketException as e:
            logger.debug("Disconnect frame not sent", extra={"error": str(e)})
        await ws.close()

    async def _ping_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.send(ClientMessageType.PING)
            except WebSocketException:
                # The receive loop notices the drop and reconnects
                return

    async def _dispatch(self, raw: Any) -> None:
        try:
            payload = json.loads(raw)
        except ValueError as e:
            logger.warning("Unparseable server frame", extra={"error": str(e)})
            return
        try:
            await self.on_message(payload)
        except Exception:
            logger.exception("Realtime message handler failed", extra={"type": payload.get("type")})
