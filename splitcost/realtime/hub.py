"""
Realtime hubs.

One ChannelHub per channel key owns that channel's roster. Everything that
touches the roster (joins, leaves, inbound frames, broadcasts, targeted
sends) is queued into the hub's inbox and handled one at a time by a single
coordinator task, so sessions on the same channel never race each other.
Different channels run fully in parallel.

HubRegistry maps channel keys to hubs, creates a hub on first join and drops
it once its roster is empty and nothing is left in its inbox.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from splitcost.core.config import settings
from splitcost.core.errors import LedgerError, MalformedMessage, SessionNotFound
from splitcost.realtime.protocol import (
    ClientMessageType,
    MessageType,
    RELAYED_TYPES,
    RealtimeMessage,
    parse_frame,
)
from splitcost.realtime.session import (
    Connection,
    REPLACED_CLOSURE,
    RealtimeSession,
)

logger = logging.getLogger(__name__)

# async def provider(channel_id, subject_id) -> dict
SyncProvider = Callable[[str, str], Awaitable[Dict[str, Any]]]


@dataclass
class _Join:
    session: RealtimeSession
    done: "asyncio.Future[None]"


@dataclass
class _Leave:
    session: RealtimeSession


@dataclass
class _Inbound:
    session: RealtimeSession
    raw: str


@dataclass
class _Broadcast:
    message: RealtimeMessage
    exclude_subject_id: Optional[str] = None


@dataclass
class _Direct:
    subject_id: str
    message: RealtimeMessage


class ChannelHub:
    """Single owner of one channel's sessions."""

    def __init__(
        self,
        channel_id: str,
        sync_provider: Optional[SyncProvider] = None,
        heartbeat_interval: int = 30,
        queue_size: int = 100,
        send_timeout: float = 5.0,
        on_idle: Optional[Callable[["ChannelHub"], None]] = None,
    ):
        self.channel_id = channel_id
        self.sync_provider = sync_provider
        self.heartbeat_interval = heartbeat_interval
        self.queue_size = queue_size
        self.send_timeout = send_timeout
        self.on_idle = on_idle

        self.sessions: Dict[str, RealtimeSession] = {}
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()
        self._task: Optional[asyncio.Task[None]] = None
        self._background: Set[asyncio.Task[Any]] = set()

    @property
    def roster(self) -> List[str]:
        return [subject for subject, s in self.sessions.items() if s.is_active]

    def start(self) -> None:
        self._task = asyncio.create_task(self._run())

    # ===== PUBLIC API (enqueue only, never touches the roster directly) =====

    async def join(self, subject_id: str, connection: Connection) -> RealtimeSession:
        """Register a freshly upgraded connection; returns once it is active."""
        session = RealtimeSession(
            subject_id,
            self.channel_id,
            connection,
            queue_size=self.queue_size,
            send_timeout=self.send_timeout,
            on_closed=self._session_died,
        )
        done = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(_Join(session, done))
        await done
        return session

    def leave(self, session: RealtimeSession) -> None:
        self._inbox.put_nowait(_Leave(session))

    def receive(self, session: RealtimeSession, raw: str) -> None:
        self._inbox.put_nowait(_Inbound(session, raw))

    def broadcast(self, message: RealtimeMessage, exclude_subject_id: Optional[str] = None) -> None:
        self._inbox.put_nowait(_Broadcast(message, exclude_subject_id))

    def send_to_subject(self, subject_id: str, message: RealtimeMessage) -> None:
        self._inbox.put_nowait(_Direct(subject_id, message))

    async def wait_idle(self) -> None:
        """Wait until the inbox is processed and every session flushed."""
        await self._inbox.join()
        for session in list(self.sessions.values()):
            await session.flush()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        for session in list(self.sessions.values()):
            await session.close()
        self.sessions.clear()

    # ===== COORDINATOR =====

    async def _run(self) -> None:
        while True:
            command = await self._inbox.get()
            try:
                await self._dispatch(command)
            except Exception as e:
                logger.exception("Hub command failed", extra={"channel": self.channel_id})
                if isinstance(command, _Join) and not command.done.done():
                    command.done.set_exception(e)
            finally:
                self._inbox.task_done()

            if not self.sessions and self._inbox.empty() and self.on_idle is not None:
                self.on_idle(self)
                return

    async def _dispatch(self, command: Any) -> None:
        if isinstance(command, _Join):
            self._handle_join(command)
        elif isinstance(command, _Leave):
            self._handle_leave(command.session)
        elif isinstance(command, _Inbound):
            await self._handle_inbound(command.session, command.raw)
        elif isinstance(command, _Broadcast):
            self._broadcast(command.message, command.exclude_subject_id)
        elif isinstance(command, _Direct):
            self._send_direct(command.subject_id, command.message)

    def _handle_join(self, command: _Join) -> None:
        session = command.session
        subject_id = session.subject_id
        previous = self.sessions.get(subject_id)

        session.activate()
        self.sessions[subject_id] = session

        if previous is not None:
            # Reconnect: the subject never left the roster
            previous.on_closed = None
            self._spawn(previous.close(code=REPLACED_CLOSURE))
            logger.info(
                "Session replaced",
                extra={"channel": self.channel_id, "subject": subject_id},
            )

        session.enqueue(RealtimeMessage.of(
            MessageType.CONNECTED,
            {
                "message": "Connected to SplitCost real-time",
                "channel": self.channel_id,
                "connectedUsers": self.roster,
                "heartbeatInterval": self.heartbeat_interval,
            },
        ))
        if previous is None:
            self._broadcast(
                RealtimeMessage.of(MessageType.USER_CONNECTED, {"userId": subject_id}),
                exclude_subject_id=subject_id,
            )
            logger.info(
                "Session joined",
                extra={"channel": self.channel_id, "subject": subject_id},
            )
        command.done.set_result(None)

    def _handle_leave(self, session: RealtimeSession) -> None:
        if self.sessions.get(session.subject_id) is not session:
            # Stale: already replaced or removed
            self._spawn(session.close())
            return

        del self.sessions[session.subject_id]
        self._spawn(session.close())
        self._broadcast(
            RealtimeMessage.of(MessageType.USER_DISCONNECTED, {"userId": session.subject_id})
        )
        logger.info(
            "Session left",
            extra={"channel": self.channel_id, "subject": session.subject_id},
        )

    async def _handle_inbound(self, session: RealtimeSession, raw: str) -> None:
        if self.sessions.get(session.subject_id) is not session:
            return

        try:
            frame = parse_frame(raw)
        except MalformedMessage as e:
            logger.warning(
                "Dropping malformed frame",
                extra={"channel": self.channel_id, "subject": session.subject_id, "error": str(e)},
            )
            return

        session.touch()
        subject_id = session.subject_id

        if frame.type == ClientMessageType.PING.value:
            session.enqueue(RealtimeMessage.of(MessageType.PONG))
        elif frame.type == ClientMessageType.TYPING.value:
            self._broadcast(
                RealtimeMessage.of(
                    MessageType.USER_TYPING,
                    {"userId": subject_id, **frame.data},
                    sender=subject_id,
                ),
                exclude_subject_id=subject_id,
            )
        elif frame.type == ClientMessageType.REQUEST_SYNC.value:
            await self._sync(session)
        elif frame.type == ClientMessageType.DISCONNECT.value:
            self._handle_leave(session)
        elif frame.type in RELAYED_TYPES:
            self._broadcast(RealtimeMessage(type=frame.type, data=frame.data, sender=subject_id))
        else:
            logger.debug("Unknown message type", extra={"type": frame.type})

    async def _sync(self, session: RealtimeSession) -> None:
        data: Dict[str, Any] = {}
        if self.sync_provider is not None:
            try:
                data = await self.sync_provider(self.channel_id, session.subject_id)
            except LedgerError as e:
                logger.warning(
                    "Sync failed",
                    extra={"channel": self.channel_id, "error": str(e)},
                )
                data = {"error": str(e)}
        session.enqueue(RealtimeMessage.of(MessageType.SYNC_RESPONSE, data))

    def _broadcast(self, message: RealtimeMessage, exclude_subject_id: Optional[str] = None) -> None:
        for subject_id, session in list(self.sessions.items()):
            if subject_id == exclude_subject_id or not session.is_active:
                continue
            # A failing session schedules its own leave; the fan-out goes on
            session.enqueue(message)

    def _send_direct(self, subject_id: str, message: RealtimeMessage) -> None:
        try:
            session = self._active_session(subject_id)
        except SessionNotFound:
            logger.debug(
                "Subject offline, dropping direct message",
                extra={"channel": self.channel_id, "subject": subject_id},
            )
            return
        session.enqueue(message)

    def _active_session(self, subject_id: str) -> RealtimeSession:
        session = self.sessions.get(subject_id)
        if session is None or not session.is_active:
            raise SessionNotFound(subject_id)
        return session

    async def _session_died(self, session: RealtimeSession) -> None:
        self.leave(session)

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)


class HubRegistry:
    """In-process registry: one hub per channel key."""

    def __init__(
        self,
        sync_provider: Optional[SyncProvider] = None,
        heartbeat_interval: Optional[int] = None,
        queue_size: Optional[int] = None,
        send_timeout: Optional[float] = None,
    ):
        self.sync_provider = sync_provider
        self.heartbeat_interval = heartbeat_interval or settings.WS_HEARTBEAT_INTERVAL
        self.queue_size = queue_size or settings.WS_SEND_QUEUE_SIZE
        self.send_timeout = send_timeout or settings.WS_SEND_TIMEOUT
        self._hubs: Dict[str, ChannelHub] = {}

    def get(self, channel_id: str) -> Optional[ChannelHub]:
        return self._hubs.get(channel_id)

    async def join(
        self,
        channel_id: str,
        subject_id: str,
        connection: Connection
    ) -> Tuple[ChannelHub, RealtimeSession]:
        hub = self._hubs.get(channel_id)
        if hub is None:
            hub = ChannelHub(
                channel_id,
                sync_provider=self.sync_provider,
                heartbeat_interval=self.heartbeat_interval,
                queue_size=self.queue_size,
                send_timeout=self.send_timeout,
                on_idle=self._release,
            )
            self._hubs[channel_id] = hub
            hub.start()
        session = await hub.join(subject_id, connection)
        return hub, session

    def broadcast(
        self,
        channel_id: str,
        message: RealtimeMessage,
        exclude_subject_id: Optional[str] = None
    ) -> None:
        """Deliver to every active session on the channel; no hub means nobody listening."""
        hub = self._hubs.get(channel_id)
        if hub is not None:
            hub.broadcast(message, exclude_subject_id)

    def send_to_subject(self, channel_id: str, subject_id: str, message: RealtimeMessage) -> None:
        hub = self._hubs.get(channel_id)
        if hub is not None:
            hub.send_to_subject(subject_id, message)

    def roster(self, channel_id: str) -> List[str]:
        hub = self._hubs.get(channel_id)
        return hub.roster if hub else []

    async def wait_idle(self) -> None:
        for hub in list(self._hubs.values()):
            await hub.wait_idle()

    async def close(self) -> None:
        hubs = list(self._hubs.values())
        self._hubs.clear()
        for hub in hubs:
            await hub.stop()

    def _release(self, hub: ChannelHub) -> None:
        if self._hubs.get(hub.channel_id) is hub:
            del self._hubs[hub.channel_id]
            logger.info("Hub released", extra={"channel": hub.channel_id})
