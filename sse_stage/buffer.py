import re
from typing import List, Tuple

# a line terminator followed by an empty line
_BLOCK_SEP_EXPR = re.compile(rb"(?:\r\n|\n|\r(?!\n))(?:\r\n|\n|\r)")


def split_blocks(buffer: bytes, chunk: bytes) -> Tuple[List[bytes], bytes]:
    """
    Append a freshly received chunk to the retained buffer and cut out every
    complete SSE block.

    Returns the complete blocks in stream order together with the incomplete
    remainder, which has to be passed back in with the next chunk.
    Blocks do not include their blank-line terminator; an empty block is valid.
    """
    data = buffer + chunk
    # a trailing CR may be the first half of a CRLF still in flight
    end = len(data) - 1 if data.endswith(b"\r") else len(data)

    blocks = []
    start = 0
    for match in _BLOCK_SEP_EXPR.finditer(data, 0, end):
        blocks.append(data[start : match.start()])
        start = match.end()
    return blocks, data[start:]
