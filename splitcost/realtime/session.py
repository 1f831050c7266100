"""
RealtimeSession - one connected client on one channel.

Outbound frames go through a bounded queue drained by a writer task, so a
slow socket only ever delays itself. When the queue overflows or a send
fails or times out, the session closes and reports back to its hub.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

from splitcost.realtime.protocol import RealtimeMessage

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
REPLACED_CLOSURE = 4000
FAILED_CLOSURE = 1011


class Connection(Protocol):
    """What a session needs from the transport (Starlette's WebSocket fits)."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = NORMAL_CLOSURE) -> None: ...


class SessionState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    DRAINING = "draining"
    CLOSED = "closed"


ClosedCallback = Callable[["RealtimeSession"], Awaitable[None]]


class RealtimeSession:
    """
    Owned by exactly one ChannelHub; only that hub changes its state.

    Args:
        subject_id: user behind the connection
        channel_id: group id or ``user:<id>``
        connection: transport handle
        queue_size: outbound frames buffered before the session is dropped
        send_timeout: seconds one send may take
        on_closed: called once when the session dies on its own (send failure)
    """

    def __init__(
        self,
        subject_id: str,
        channel_id: str,
        connection: Connection,
        queue_size: int = 100,
        send_timeout: float = 5.0,
        on_closed: Optional[ClosedCallback] = None,
    ):
        self.subject_id = subject_id
        self.channel_id = channel_id
        self.connection = connection
        self.send_timeout = send_timeout
        self.on_closed = on_closed

        self.state = SessionState.CONNECTING
        self.last_ping: datetime = datetime.now(timezone.utc)

        self._outbox: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task[None]] = None
        self._closed_notice: Optional[asyncio.Task[None]] = None
        self._closing: Optional[asyncio.Task[None]] = None

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    def activate(self) -> None:
        self.state = SessionState.ACTIVE
        self._writer = asyncio.create_task(self._write_loop())

    def touch(self) -> None:
        self.last_ping = datetime.now(timezone.utc)

    def enqueue(self, message: RealtimeMessage) -> bool:
        """Queue a frame without waiting; False if the session cannot take it."""
        if not self.is_active:
            return False
        try:
            self._outbox.put_nowait(message.to_frame())
        except asyncio.QueueFull:
            logger.warning(
                "Session outbox full, dropping session",
                extra={"channel": self.channel_id, "subject": self.subject_id},
            )
            self._fail()
            return False
        return True

    async def flush(self) -> None:
        """Wait until every queued frame was sent or discarded."""
        await self._outbox.join()

    async def close(self, code: int = NORMAL_CLOSURE) -> None:
        """Stop accepting frames, send what is queued, then close the transport."""
        if self.state == SessionState.CLOSED:
            return
        if self.state == SessionState.ACTIVE and self._writer is not None:
            self.state = SessionState.DRAINING
            try:
                await asyncio.wait_for(self.flush(), self.send_timeout)
            except asyncio.TimeoutError:
                logger.info("Session did not drain in time", extra={"subject": self.subject_id})
        self.state = SessionState.CLOSED
        self._stop_writer()
        await self._close_transport(code)

    async def _close_transport(self, code: int) -> None:
        try:
            await self.connection.close(code=code)
        except Exception as e:
            # Transport already gone
            logger.debug("Close on dead connection", extra={"error": str(e)})

    async def _write_loop(self) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await asyncio.wait_for(self.connection.send_text(frame), self.send_timeout)
            except asyncio.CancelledError:
                self._outbox.task_done()
                raise
            except Exception as e:
                logger.warning(
                    "Send failed, closing session",
                    extra={"channel": self.channel_id, "subject": self.subject_id, "error": str(e)},
                )
                self._outbox.task_done()
                self._fail()
                return
            self._outbox.task_done()

    def _fail(self) -> None:
        """Mark closed, drop queued frames, close the transport and tell the hub."""
        if self.state == SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        self._discard_pending()
        current = asyncio.current_task()
        if self._writer is not None and self._writer is not current:
            self._writer.cancel()
        self._closing = asyncio.create_task(self._close_transport(FAILED_CLOSURE))
        if self.on_closed is not None:
            self._closed_notice = asyncio.create_task(self.on_closed(self))

    def _stop_writer(self) -> None:
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()
        self._discard_pending()

    def _discard_pending(self) -> None:
        while True:
            try:
                self._outbox.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._outbox.task_done()
