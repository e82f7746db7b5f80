import dataclasses

import pytest

from sse_stage import Event


@pytest.mark.parametrize(
    "block,expected",
    [
        ("event: put\ndata:123\ndata: 456\n", Event(event="put", data="123\n456\n")),
        ("event: put\rdata:123\r\ndata: 456\n", Event(event="put", data="123\n456\n")),
        (":comment\ndata:  short\nignored: field", Event(event="message", data=" short\n")),
        (":keep-alive", Event()),
        ("", Event()),
        ("data", Event()),
        ("event: first\nevent:second\ndata: x", Event(event="second", data="x\n")),
        ("id: 7\nretry: 1000\ndata: payload", Event(data="payload\n")),
        ("data:\ndata:", Event(data="\n\n")),
        ("data: {\"a\": 1}\r\n", Event(data='{"a": 1}\n')),
    ],
)
def test_parse(block, expected):
    assert Event.parse(block) == expected


def test_parse_is_pure():
    block = "event: update\ndata: one\ndata: two"
    assert Event.parse(block) == Event.parse(block)
    assert Event.parse(block) is not Event.parse(block)


def test_event_is_immutable():
    event = Event.parse("data: x")
    with pytest.raises(dataclasses.FrozenInstanceError):
        event.data = "y"


@pytest.mark.parametrize(
    "event,expected",
    [
        (Event(), b"\n"),
        (Event(data="1\n"), b"data: 1\n\n"),
        (Event(event="put", data="1\n2\n"), b"event: put\ndata: 1\ndata: 2\n\n"),
        (Event(event="multi\nline"), b"event: multiline\n\n"),
    ],
)
def test_encode(event, expected):
    assert event.encode() == expected


def test_encode_with_crlf():
    assert Event(event="put", data="1\n").encode(sep="\r\n") == b"event: put\r\ndata: 1\r\n\r\n"


def test_encode_rejects_invalid_separator():
    with pytest.raises(ValueError):
        Event(data="1\n").encode(sep="\n\n")


@pytest.mark.parametrize(
    "block",
    [
        "event: put\ndata:123\ndata: 456\n",
        ":comment\ndata:  short\nignored: field",
        "data:\ndata:",
        "data: \n",
        ":only a comment",
    ],
)
@pytest.mark.parametrize("sep", ["\n", "\r\n", "\r"])
def test_parse_encoded_event_again(block, sep):
    event = Event.parse(block)
    # strip the terminating blank line, the buffer never hands it to the parser
    text = event.encode(sep=sep).decode()[: -len(sep)]
    assert Event.parse(text) == event
