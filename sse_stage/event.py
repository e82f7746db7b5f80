import io
import re
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class Event:
    """
    A single Server-Sent Event received from a server.

    Parsing follows the W3C event stream format:
    https://html.spec.whatwg.org/multipage/server-sent-events.html#parsing-an-event-stream

    >>> Event.parse("event: put\\rdata:123\\r\\ndata: 456\\n")
    Event(event='put', data='123\\n456\\n')
    >>> Event.parse(":comment\\ndata:  short\\nignored: field")
    Event(event='message', data=' short\\n')
    """

    event: str = "message"
    data: str = ""

    _LINE_SEP_EXPR = re.compile(r"\r\n|\r|\n")
    DEFAULT_EVENT = "message"
    DEFAULT_SEPARATOR = "\n"

    TAG_COMMENT = ":"
    TAG_EVENT = "event:"
    TAG_DATA = "data:"

    @classmethod
    def parse(cls, block: str) -> "Event":
        """Parse one complete SSE block (without its blank-line terminator)."""
        event = cls.DEFAULT_EVENT
        data = []
        for line in cls._LINE_SEP_EXPR.split(block):
            if not line or line.startswith(cls.TAG_COMMENT):
                continue
            if line.startswith(cls.TAG_EVENT):
                # only one name is meaningful, the last one wins
                event = _trim_one_space(line[len(cls.TAG_EVENT) :])
            elif line.startswith(cls.TAG_DATA):
                data.append(_trim_one_space(line[len(cls.TAG_DATA) :]) + "\n")
        return cls(event=event, data="".join(data))

    def _encode_impl(self, write_fn: Callable, sep: str) -> None:
        if self.event != self.DEFAULT_EVENT:
            # Clean newlines in the event name
            clean_event = self._LINE_SEP_EXPR.sub("", self.event)
            write_fn(f"event: {clean_event}{sep}")

        if self.data:
            lines = self.data[:-1] if self.data.endswith("\n") else self.data
            for chunk in self._LINE_SEP_EXPR.split(lines):
                write_fn(f"data: {chunk}{sep}")

        write_fn(sep)

    def encode(self, sep: str = DEFAULT_SEPARATOR) -> bytes:
        """Render the event back to wire format, terminated by a blank line."""
        if sep not in ("\r\n", "\r", "\n"):
            raise ValueError(f"sep must be one of: \\r\\n, \\r, \\n, got: {sep!r}")
        buffer = io.StringIO()
        self._encode_impl(buffer.write, sep)
        return buffer.getvalue().encode("utf-8")


def _trim_one_space(value: str) -> str:
    return value[1:] if value.startswith(" ") else value
