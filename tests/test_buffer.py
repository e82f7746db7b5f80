from sse_stage import Event
from sse_stage.buffer import split_blocks


def test_partial_chunk_is_retained():
    blocks, remainder = split_blocks(b"", b"data:")
    assert blocks == []
    assert remainder == b"data:"


def test_block_completed_by_second_chunk():
    _, remainder = split_blocks(b"", b"data:")
    blocks, remainder = split_blocks(remainder, b"data\n\n")

    assert [Event.parse(block.decode()) for block in blocks] == [Event(data="data\n")]
    assert remainder == b""


def test_several_blocks_in_one_chunk_keep_their_order():
    blocks, remainder = split_blocks(b"", b"data: 1\n\ndata: 2\n\ndata: 3")
    assert blocks == [b"data: 1", b"data: 2"]
    assert remainder == b"data: 3"


def test_crlf_and_cr_separators():
    blocks, remainder = split_blocks(b"", b"data: 1\r\n\r\ndata: 2\r\rdata: 3\n\n")
    assert blocks == [b"data: 1", b"data: 2", b"data: 3"]
    assert remainder == b""


def test_empty_block_is_valid():
    blocks, remainder = split_blocks(b"data: 1\n\n", b"\n\n")
    assert blocks == [b"data: 1", b""]
    assert Event.parse(blocks[1].decode()) == Event()
    assert remainder == b""


def test_separator_split_across_chunks():
    blocks, remainder = split_blocks(b"", b"data: 1\n")
    assert blocks == []
    blocks, remainder = split_blocks(remainder, b"\ndata: 2")
    assert blocks == [b"data: 1"]
    assert remainder == b"data: 2"


def test_trailing_cr_is_held_back():
    blocks, remainder = split_blocks(b"", b"data: 1\r\n\r")
    assert blocks == []
    assert remainder == b"data: 1\r\n\r"

    blocks, remainder = split_blocks(remainder, b"\ndata: 2\r\n\r\n")
    assert blocks == [b"data: 1", b"data: 2"]
    assert remainder == b""


def test_multibyte_character_split_across_chunks():
    payload = "data: héllo\n\n".encode("utf-8")
    cut = payload.index(b"\xc3") + 1

    blocks, remainder = split_blocks(b"", payload[:cut])
    assert blocks == []
    blocks, remainder = split_blocks(remainder, payload[cut:])
    assert Event.parse(blocks[0].decode("utf-8")) == Event(data="héllo\n")


def test_mixed_line_endings():
    blocks, remainder = split_blocks(b"", b"data: 1\r\n\ndata: 2\n\r\ndata: 3\r\r\ndata: 4")
    assert blocks == [b"data: 1", b"data: 2", b"data: 3"]
    assert remainder == b"data: 4"


def test_cr_line_ending_completed_by_crlf_in_next_chunk():
    blocks, remainder = split_blocks(b"", b"data: 1\r\r")
    assert blocks == []

    blocks, remainder = split_blocks(remainder, b"\ndata: 2\n\n")
    assert blocks == [b"data: 1", b"data: 2"]
    assert remainder == b""
