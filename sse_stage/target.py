import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, NamedTuple, Tuple, Union
from urllib.parse import urlsplit

import httpx

DEFAULT_PORTS = {"http": 80, "https": 443}


class Endpoint(NamedTuple):
    """Where a connection goes: the origin to connect to and the path to request."""

    scheme: str
    host: str
    port: int
    path: str
    # "user:password" credentials, sent as basic auth by httpx
    userinfo: str = ""

    @classmethod
    def from_url(cls, url: str) -> "Endpoint":
        parts = urlsplit(url)
        scheme = parts.scheme.lower()
        if scheme not in DEFAULT_PORTS:
            raise ValueError(f"unsupported URL scheme {parts.scheme!r} in {url!r}")
        if not parts.hostname:
            raise ValueError(f"missing host in {url!r}")

        # .port raises ValueError for out of range ports
        port = parts.port or DEFAULT_PORTS[scheme]
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        userinfo = parts.netloc.rpartition("@")[0]
        return cls(scheme, parts.hostname, port, path, userinfo)

    @property
    def origin(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.scheme}://{host}:{self.port}"

    @property
    def url(self) -> str:
        if not self.userinfo:
            return f"{self.origin}{self.path}"
        scheme, _, host = self.origin.partition("://")
        return f"{scheme}://{self.userinfo}@{host}{self.path}"


class Target(ABC):
    """Something that yields the URL to connect to, evaluated on every attempt."""

    @abstractmethod
    async def resolve(self) -> str:
        pass


@dataclass(frozen=True)
class URLTarget(Target):
    url: str

    async def resolve(self) -> str:
        return self.url


@dataclass(frozen=True)
class ResolverTarget(Target):
    """
    A deferred URL: ``func(*args, **kwargs)`` is called on every connect
    attempt, so the destination may change between reconnects (service
    discovery and the like). ``func`` may be a plain function or a coroutine
    function.
    """

    func: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)

    async def resolve(self) -> str:
        url = self.func(*self.args, **self.kwargs)
        if inspect.isawaitable(url):
            url = await url
        if isinstance(url, httpx.URL):
            url = str(url)
        if not isinstance(url, str):
            raise TypeError(f"resolver {self.func!r} returned {url!r}, expected a URL string")
        return url


TargetLike = Union[Target, str, httpx.URL, Callable[[], Any], Tuple[Any, ...]]


def as_target(url: TargetLike) -> Target:
    """
    Coerce the ``url`` argument of a producer into a :class:`Target`.

    Accepts a literal URL (``str`` or ``httpx.URL``), a zero-argument callable
    such as a ``functools.partial``, or a ``(func, *args)`` tuple.
    """
    if isinstance(url, Target):
        return url
    if isinstance(url, httpx.URL):
        url = str(url)
    if isinstance(url, str):
        if not url:
            raise ValueError("url is required")
        return URLTarget(url)
    if isinstance(url, tuple):
        if not url or not callable(url[0]):
            raise TypeError(f"resolver tuple must start with a callable, got: {url!r}")
        return ResolverTarget(url[0], tuple(url[1:]))
    if callable(url):
        return ResolverTarget(url)
    if url is None:
        raise ValueError("url is required")
    raise TypeError(f"url must be a string, a callable or a (func, *args) tuple, got: {url!r}")
