import logging
from contextlib import AsyncExitStack
from typing import Iterable, List, Optional, Tuple

import anyio
import httpx

from sse_stage.connection import (
    Connection,
    ConnectionState,
    Demand,
    Refresh,
    Signal,
)
from sse_stage.event import Event
from sse_stage.target import TargetLike, as_target
from sse_stage.transport import HTTPTransport

logger = logging.getLogger(__name__)


class ServerSentEventProducer:
    """
    Demand driven producer of :class:`~sse_stage.event.Event` objects read from
    a Server-Sent Events endpoint.

    Nothing is requested until a consumer asks for events. From then on the
    connection is kept open indefinitely: when the server closes the stream,
    errors out, answers with an unexpected status or stays silent for longer
    than ``idle_timeout``, a fresh connection is made.

    ``url`` is either a literal URL or a deferred resolver (a callable, or a
    ``(func, *args)`` tuple) evaluated before every connection attempt.

    Usage::

        async with ServerSentEventProducer("https://example.com/stream") as producer:
            async for event in producer:
                ...
    """

    DEFAULT_MAX_BUFFER_SIZE = 100
    DEFAULT_INBOX_SIZE = 16

    def __init__(
        self,
        url: TargetLike,
        *,
        headers: Optional[Iterable[Tuple[str, str]]] = None,
        idle_timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
        reconnect_delay: float = 0.0,
        connect_timeout: float = HTTPTransport.DEFAULT_CONNECT_TIMEOUT,
        read_timeout: Optional[float] = HTTPTransport.DEFAULT_READ_TIMEOUT,
    ) -> None:
        target = as_target(url)
        if isinstance(headers, dict):
            headers = headers.items()
        if idle_timeout is not None and idle_timeout <= 0:
            raise ValueError("idle_timeout must be greater than 0")
        if reconnect_delay < 0:
            raise ValueError("reconnect_delay must not be negative")

        self.state = ConnectionState(
            target=target,
            headers=[(str(name), str(value)) for name, value in headers or ()],
            idle_timeout=idle_timeout,
        )
        self.reconnect_delay = reconnect_delay
        self._transport = HTTPTransport(client, connect_timeout, read_timeout)

        self._inbox_send, self._inbox_receive = anyio.create_memory_object_stream(
            self.DEFAULT_INBOX_SIZE
        )
        self._events_send, self._events_receive = anyio.create_memory_object_stream(
            max_buffer_size
        )
        self._demanded: Optional[anyio.Event] = None
        self._exit_stack: Optional[AsyncExitStack] = None
        self._task_group = None
        self._refresh_requested = False
        self._receive_scope: Optional[anyio.CancelScope] = None

    async def start(self) -> None:
        """
        Start the background tasks. No connection is made before demand.

        Must be paired with :meth:`aclose` in the same task; prefer ``async with``.
        """
        if self._exit_stack is not None:
            raise RuntimeError("producer already started")

        logger.debug("Starting producer for %r", self.state.target)
        self._demanded = anyio.Event()
        async with AsyncExitStack() as stack:
            stack.push_async_callback(self._transport.aclose)
            task_group = await stack.enter_async_context(anyio.create_task_group())
            connection = Connection(
                self.state,
                self._transport,
                task_group,
                self._inbox_send,
                reconnect_delay=self.reconnect_delay,
            )
            task_group.start_soon(self._run, connection)
            self._task_group = task_group
            self._exit_stack = stack.pop_all()

    async def aclose(self) -> None:
        """Stop all tasks, release the connection and end the event iteration."""
        await self._stop(None, None, None)

    async def _stop(self, *exc_info) -> Optional[bool]:
        if self._exit_stack is None:
            return None

        logger.debug("Stopping producer for %r", self.state.target)
        stack, self._exit_stack = self._exit_stack, None
        self._task_group.cancel_scope.cancel()
        try:
            return await stack.__aexit__(*exc_info)
        finally:
            self._events_send.close()

    async def __aenter__(self) -> "ServerSentEventProducer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> Optional[bool]:
        return await self._stop(*exc_info)

    def ask(self, demand: int = 1) -> None:
        """Signal that the consumer is ready for ``demand`` more events."""
        if not isinstance(demand, int) or demand < 1:
            raise ValueError(f"demand must be a positive int, got: {demand!r}")
        if self._demanded is None:
            raise RuntimeError("producer not started")
        self._demanded.set()

    def refresh(self) -> None:
        """
        Drop the current connection and connect again right away.

        Never blocks: the request is picked up by the run loop as soon as it is
        done with the signal at hand, even when the inbox is full.
        """
        self._refresh_requested = True
        if self._receive_scope is not None:
            self._receive_scope.cancel()

    async def receive(self) -> Event:
        self.ask()
        return await self._events_receive.receive()

    def __aiter__(self) -> "ServerSentEventProducer":
        return self

    async def __anext__(self) -> Event:
        try:
            return await self.receive()
        except anyio.EndOfStream:
            raise StopAsyncIteration

    async def _run(self, connection: Connection) -> None:
        async with self._events_send:
            # demand only gates the first connection, reconnects happen on their own
            await self._demanded.wait()
            await self._dispatch(connection, Demand())

            async with self._inbox_receive:
                while True:
                    if self._refresh_requested:
                        self._refresh_requested = False
                        await self._dispatch(connection, Refresh())
                        continue

                    signal = None
                    with anyio.CancelScope() as self._receive_scope:
                        signal = await self._inbox_receive.receive()
                    self._receive_scope = None
                    if signal is not None:
                        await self._dispatch(connection, signal)

    async def _dispatch(self, connection: Connection, signal: Signal) -> None:
        events: List[Event] = await connection.handle(signal)
        for event in events:
            await self._events_send.send(event)
