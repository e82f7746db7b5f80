"""
HTTP side of a connection.

Every request gets its own pump task which turns the streaming ``httpx``
response into a sequence of signals (``Status``, ``Headers``, ``Data`` and
finally ``Done`` or ``Error``) posted to the connection's inbox. Signals are
tagged with the request id so the state machine can discard leftovers of a
connection it already replaced.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import anyio
import httpx
from anyio.abc import TaskGroup
from anyio.streams.memory import MemoryObjectSendStream

from sse_stage.target import Endpoint

logger = logging.getLogger(__name__)

# everything a request can fail with once it is on its way
TRANSPORT_ERRORS = (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError, UnicodeError)


@dataclass(frozen=True)
class Status:
    request_id: int
    code: int


@dataclass(frozen=True)
class Headers:
    request_id: int
    headers: List[Tuple[str, str]]

    def get(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None


@dataclass(frozen=True)
class Data:
    request_id: int
    chunk: bytes


@dataclass(frozen=True)
class Done:
    request_id: int


@dataclass(frozen=True)
class Error:
    request_id: int
    reason: BaseException


@dataclass
class TransportHandle:
    """Owns the pump task of one request. Closing it releases the HTTP response."""

    request_id: int
    cancel_scope: anyio.CancelScope = field(default_factory=anyio.CancelScope)
    closed: anyio.Event = field(default_factory=anyio.Event)

    def is_open_for_read(self) -> bool:
        return not self.closed.is_set()

    async def aclose(self) -> None:
        self.cancel_scope.cancel()
        await self.closed.wait()


class HTTPTransport:
    """Streams SSE requests through an ``httpx.AsyncClient``."""

    DEFAULT_CONNECT_TIMEOUT = 10.0
    DEFAULT_READ_TIMEOUT = 60.0

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: Optional[float] = DEFAULT_READ_TIMEOUT,
    ) -> None:
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(connect_timeout, read=read_timeout),
                follow_redirects=False,
            )
        self.client = client

    def build_request(
        self, endpoint: Endpoint, headers: Sequence[Tuple[str, str]]
    ) -> httpx.Request:
        """
        Build the GET request for ``endpoint``.

        Raises ``httpx.InvalidURL`` or ``UnicodeError`` (IDNA) for URLs httpx
        refuses even though they split cleanly.
        """
        return self.client.build_request("GET", endpoint.url, headers=list(headers))

    async def open(
        self,
        request_id: int,
        request: httpx.Request,
        inbox: MemoryObjectSendStream,
        task_group: TaskGroup,
    ) -> TransportHandle:
        """Start the pump task for ``request`` and return its handle."""
        return await task_group.start(self._run, request_id, request, inbox)

    async def _run(
        self,
        request_id: int,
        request: httpx.Request,
        inbox: MemoryObjectSendStream,
        *,
        task_status=anyio.TASK_STATUS_IGNORED,
    ) -> None:
        handle = TransportHandle(request_id)
        try:
            with handle.cancel_scope:
                task_status.started(handle)
                await self._pump(request_id, request, inbox)
        finally:
            handle.closed.set()
            logger.debug("request %d closed", request_id)

    async def _pump(
        self, request_id: int, request: httpx.Request, inbox: MemoryObjectSendStream
    ) -> None:
        try:
            response = await self.client.send(request, stream=True, follow_redirects=False)
        except TRANSPORT_ERRORS as e:
            await inbox.send(Error(request_id, e))
            return

        try:
            await inbox.send(Status(request_id, response.status_code))
            await inbox.send(Headers(request_id, response.headers.multi_items()))
            async for chunk in response.aiter_bytes():
                await inbox.send(Data(request_id, chunk))
        except TRANSPORT_ERRORS as e:
            await inbox.send(Error(request_id, e))
        else:
            await inbox.send(Done(request_id))
        finally:
            with anyio.CancelScope(shield=True):
                await response.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
