from sse_stage.connection import Connection, ConnectionState, Phase
from sse_stage.event import Event
from sse_stage.producer import ServerSentEventProducer
from sse_stage.target import Endpoint, ResolverTarget, URLTarget, as_target

__all__ = [
    "Connection",
    "ConnectionState",
    "Endpoint",
    "Event",
    "Phase",
    "ResolverTarget",
    "ServerSentEventProducer",
    "URLTarget",
    "as_target",
]
__version__ = "0.1.0"
