import enum
import itertools
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

import anyio
import httpx
from anyio.abc import TaskGroup
from anyio.streams.memory import MemoryObjectSendStream

from sse_stage.buffer import split_blocks
from sse_stage.event import Event
from sse_stage.target import Endpoint, Target
from sse_stage.transport import (
    Data,
    Done,
    Error,
    Headers,
    HTTPTransport,
    Status,
    TransportHandle,
)

logger = logging.getLogger(__name__)

REDIRECT_CODES = frozenset({301, 302, 303, 307, 308})


@dataclass(frozen=True)
class Demand:
    count: int = 1


@dataclass(frozen=True)
class Refresh:
    pass


@dataclass(frozen=True)
class Reconnect:
    pass


@dataclass(frozen=True)
class IdleTimeout:
    request_id: int
    generation: int


TransportSignal = Union[Status, Headers, Data, Done, Error]
Signal = Union[Demand, Refresh, Reconnect, IdleTimeout, TransportSignal]


class Phase(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    REDIRECTING = "redirecting"


@dataclass
class ConnectionState:
    target: Target
    headers: List[Tuple[str, str]] = field(default_factory=list)
    idle_timeout: Optional[float] = None
    phase: Phase = Phase.DISCONNECTED
    transport_handle: Optional[TransportHandle] = None
    request_id: Optional[int] = None
    url: Optional[str] = None
    connected_url: Optional[str] = None
    buffer: bytes = b""
    idle_deadline_handle: Optional[anyio.CancelScope] = None
    # bumped on every re-arm, a timeout of an older generation is void
    idle_generation: int = 0

    @property
    def redirecting(self) -> bool:
        return self.phase is Phase.REDIRECTING


class Connection:
    """
    State machine owning the single transport connection of a producer.

    All transitions go through :meth:`handle`, which is only ever called from
    one task. Failures never end the stream: every one of them tears the
    connection down and schedules a fresh connect attempt.
    """

    def __init__(
        self,
        state: ConnectionState,
        transport: HTTPTransport,
        task_group: TaskGroup,
        inbox: MemoryObjectSendStream,
        reconnect_delay: float = 0.0,
    ) -> None:
        self.state = state
        self._transport = transport
        self._task_group = task_group
        self._inbox = inbox
        self._reconnect_delay = reconnect_delay
        self._request_ids = itertools.count(1)

    async def handle(self, signal: Signal) -> List[Event]:
        """Apply one signal to the state and return the events it completed."""
        state = self.state

        if isinstance(signal, Demand):
            if state.phase is Phase.DISCONNECTED:
                await self.connect()
            return []

        if isinstance(signal, Refresh):
            logger.info("Refresh requested, reconnecting to %s", state.url)
            await self.connect()
            return []

        if isinstance(signal, Reconnect):
            # a refresh or demand may have reconnected in the meantime
            if state.phase is Phase.DISCONNECTED:
                await self.connect()
            return []

        if not isinstance(signal, (IdleTimeout, Status, Headers, Data, Done, Error)):
            logger.debug("Ignoring unexpected signal %r", signal)
            return []

        if signal.request_id != state.request_id:
            # leftover of a connection that was already replaced
            return []

        if isinstance(signal, IdleTimeout):
            if signal.generation != state.idle_generation:
                # fired before activity queued ahead of it re-armed the timer
                return []
            logger.warning(
                "No activity from %s for %ss, reconnecting", state.url, state.idle_timeout
            )
            await self._reconnect()
            return []

        if isinstance(signal, Done):
            logger.info("Disconnected from %s, reconnecting...", state.url)
            await self._reconnect()
            return []

        if isinstance(signal, Error):
            logger.error("HTTP error from %s: %r", state.url, signal.reason)
            await self._reconnect()
            return []

        await self._rearm_idle_timer()

        if isinstance(signal, Status):
            return await self._handle_status(signal)
        if isinstance(signal, Headers):
            return await self._handle_headers(signal)
        return self._handle_data(signal)

    async def _handle_status(self, signal: Status) -> List[Event]:
        state = self.state
        if signal.code == 200:
            logger.debug("Connected to %s", state.url)
            state.phase = Phase.CONNECTED
            state.connected_url = state.url
        elif signal.code in REDIRECT_CODES:
            state.phase = Phase.REDIRECTING
        else:
            logger.warning("Unexpected status %d from %s, reconnecting", signal.code, state.url)
            await self._reconnect()
        return []

    async def _handle_headers(self, signal: Headers) -> List[Event]:
        state = self.state
        if not state.redirecting:
            return []

        location = signal.get("location")
        if location is None:
            logger.warning("Redirect from %s without a location header, reconnecting", state.url)
            await self._reconnect()
            return []

        try:
            location = str(httpx.URL(state.url).join(location))
        except httpx.InvalidURL:
            logger.warning("Invalid redirect location %r from %s, reconnecting", location, state.url)
            await self._reconnect()
            return []

        logger.debug("Redirected from %s to %s", state.url, location)
        await self.connect(location)
        return []

    def _handle_data(self, signal: Data) -> List[Event]:
        state = self.state
        if state.phase is not Phase.CONNECTED:
            # e.g. the body of a redirect response
            return []

        blocks, state.buffer = split_blocks(state.buffer, signal.chunk)
        events = [Event.parse(block.decode("utf-8", errors="replace")) for block in blocks]

        if events:
            logger.info("Sending %d events", len(events))
            for event in events:
                logger.debug("event: %r", event)
        return events

    async def connect(self, url: Optional[str] = None) -> None:
        """
        Open a new connection, closing the current one first.

        Without ``url`` the target is resolved afresh; a redirect passes the
        location explicitly.
        """
        await self.disconnect()

        state = self.state
        headers = [("Accept", "text/event-stream"), *state.headers]
        try:
            if url is None:
                url = await state.target.resolve()
            request = self._transport.build_request(Endpoint.from_url(url), headers)
        except Exception:
            logger.exception("Could not resolve target %r (%s), reconnecting", state.target, url)
            self._schedule_reconnect()
            return

        request_id = next(self._request_ids)
        logger.debug("Requesting %s (request %d)", url, request_id)

        state.transport_handle = await self._transport.open(
            request_id, request, self._inbox, self._task_group
        )
        state.request_id = request_id
        state.url = url
        state.phase = Phase.CONNECTING
        await self._rearm_idle_timer()

    async def disconnect(self) -> None:
        """Reset the state and release the transport connection, if any."""
        state = self.state
        handle = state.transport_handle

        state.transport_handle = None
        state.request_id = None
        state.buffer = b""
        state.phase = Phase.DISCONNECTED
        self._cancel_idle_timer()

        if handle is not None:
            await handle.aclose()

    async def _reconnect(self) -> None:
        await self.disconnect()
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._task_group.start_soon(self._post_reconnect)

    async def _post_reconnect(self) -> None:
        if self._reconnect_delay:
            await anyio.sleep(self._reconnect_delay)
        await self._inbox.send(Reconnect())

    def _cancel_idle_timer(self) -> None:
        self.state.idle_generation += 1
        if self.state.idle_deadline_handle is not None:
            self.state.idle_deadline_handle.cancel()
            self.state.idle_deadline_handle = None

    async def _rearm_idle_timer(self) -> None:
        self._cancel_idle_timer()
        if self.state.idle_timeout is not None and self.state.request_id is not None:
            self.state.idle_deadline_handle = await self._task_group.start(
                self._idle_timer,
                IdleTimeout(self.state.request_id, self.state.idle_generation),
                self.state.idle_timeout,
            )

    async def _idle_timer(
        self, timeout_signal: IdleTimeout, timeout: float, *, task_status=anyio.TASK_STATUS_IGNORED
    ) -> None:
        with anyio.CancelScope() as scope:
            task_status.started(scope)
            await anyio.sleep(timeout)
            await self._inbox.send(timeout_signal)
