"""Wire codec for the clamd ``PING`` and ``INSTREAM`` commands.

Everything here is pure: no sockets, no clocks. The client module drives the
I/O and calls into these helpers to build frames and interpret replies.

Frame format (from clamd(8))::

    <length><data>

where ``<length>`` is the size of ``<data>`` as a 4 byte unsigned integer in
network byte order. A zero-length frame terminates the stream.
"""

from __future__ import annotations

import io
import struct
from typing import BinaryIO, Iterator, Union

from clamd_client.exceptions import ClamdSizeLimitError
from clamd_client.models import ScanStatus

# Keep below StreamMaxLength in clamd.conf, otherwise clamd replies with
# "INSTREAM size limit exceeded" and closes the connection.
CHUNK_SIZE = 2048
READ_BUFFER_SIZE = 2000

PING_COMMAND = b"zPING\0"
PONG_REPLY = b"PONG"
INSTREAM_COMMAND = b"zINSTREAM\0"
TERMINATOR = struct.pack(">I", 0)

SIZE_LIMIT_PREFIX = "INSTREAM size limit exceeded."

_LENGTH = struct.Struct(">I")

Source = Union[bytes, bytearray, memoryview, BinaryIO]


def encode_frame(chunk: bytes) -> bytes:
    """Prefix *chunk* with its big-endian unsigned 32-bit length."""
    return _LENGTH.pack(len(chunk)) + bytes(chunk)


def as_stream(source: Source) -> BinaryIO:
    """Wrap in-memory data in a stream; pass readable streams through."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return io.BytesIO(source)
    return source


def iter_chunks(stream: BinaryIO, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield successive reads of at most *chunk_size* bytes until EOF.

    The stream is left open and positioned at EOF.
    """
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            return
        yield chunk


def as_text(reply: bytes) -> str:
    # clamd replies are ASCII; never depend on the locale
    return reply.decode("ascii", errors="replace")


def assert_size_limit(reply: bytes) -> bytes:
    """Return *reply* unchanged unless it is the size-limit sentinel.

    Raises:
        ClamdSizeLimitError: If the reply starts with
            ``INSTREAM size limit exceeded.``
    """
    text = as_text(reply)
    if text.startswith(SIZE_LIMIT_PREFIX):
        raise ClamdSizeLimitError(
            f"Clamd size limit exceeded. Full reply from server: {text}",
            reply=reply,
            text=text,
        )
    return reply


def is_clean_reply(reply: bytes) -> bool:
    """Interpret a scan reply and tell whether the data was clean.

    A reply is clean when it contains ``OK`` and does not contain ``FOUND``.

    Args:
        reply: The raw reply returned by :meth:`ClamdClient.scan`.

    Returns:
        ``True`` if no virus was found according to the reply.
    """
    text = as_text(reply)
    return "OK" in text and "FOUND" not in text


def classify_reply(reply: bytes) -> ScanStatus:
    """Map a scan reply onto :class:`ScanStatus`."""
    if is_clean_reply(reply):
        return ScanStatus.OK
    if "FOUND" in as_text(reply):
        return ScanStatus.FOUND
    return ScanStatus.ERROR


def reply_message(reply: bytes) -> str:
    """Decoded reply without the NUL terminator and surrounding whitespace."""
    return as_text(reply).strip("\0\r\n ")
