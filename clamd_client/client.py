"""Synchronous TCP client for the clamd daemon."""

from __future__ import annotations

import logging
import selectors
import socket
import time
from pathlib import Path
from typing import NoReturn, Union

from clamd_client.exceptions import (
    ClamdConnectionError,
    ClamdError,
    ClamdScanAbortedError,
    ClamdSizeLimitError,
    ClamdTimeoutError,
)
from clamd_client.models import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_READ_TIMEOUT,
    ClientConfig,
    ScanResult,
)
from clamd_client.protocol import (
    INSTREAM_COMMAND,
    PING_COMMAND,
    PONG_REPLY,
    READ_BUFFER_SIZE,
    TERMINATOR,
    Source,
    as_stream,
    as_text,
    assert_size_limit,
    classify_reply,
    encode_frame,
    is_clean_reply,
    iter_chunks,
    reply_message,
)

logger = logging.getLogger(__name__)


class ClamdClient:
    """Client for clamd's ``PING`` and ``INSTREAM`` commands over TCP.

    Every call opens its own connection and closes it before returning, so a
    single client can be shared between threads.

    Args:
        host: Hostname of the server running clamd.
        port: Port clamd listens on. clamd does not listen on TCP unless
            ``TCPSocket`` is set in ``clamd.conf``.
        read_timeout: Seconds to wait on each read. ``0`` waits forever;
            accepted, but rarely a good idea.
        connect_timeout: Seconds to wait for the connection. ``0`` waits
            forever.

    Raises:
        ClamdConfigError: If a timeout is negative or the port is out of range.

    Example::

        client = ClamdClient("localhost", 3310)
        reply = client.scan(b"some bytes")
        print(ClamdClient.is_clean_reply(reply))
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self._config = ClientConfig(
            host=host,
            port=port,
            read_timeout=read_timeout,
            connect_timeout=connect_timeout,
        )

    @classmethod
    def from_config(cls, config: ClientConfig) -> ClamdClient:
        """Build a client from an existing :class:`ClientConfig`."""
        return cls(config.host, config.port, config.read_timeout, config.connect_timeout)

    @property
    def config(self) -> ClientConfig:
        """The validated connection settings."""
        return self._config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Send ``PING`` to check that clamd is responding.

        Returns:
            ``True`` if the server replied with exactly ``PONG``.

        Raises:
            ClamdConnectionError: If the server is unreachable or resets.
            ClamdTimeoutError: If connecting or reading times out.
        """
        with self._open_socket() as sock:
            _send(sock, PING_COMMAND)
            reply = _read_exactly(sock, len(PONG_REPLY))
        logger.debug("PING %s:%s replied %r", self._config.host, self._config.port, reply)
        return reply == PONG_REPLY

    def scan(self, source: Source) -> bytes:
        """Stream *source* to clamd with ``INSTREAM`` and return the raw reply.

        Data is sent in chunks, so a file on disk is never held in memory.
        A stream passed in is read to EOF and NOT closed.

        Args:
            source: A readable binary stream or in-memory bytes.

        Returns:
            The server reply, e.g. ``b"stream: OK\\0"``.

        Raises:
            ClamdSizeLimitError: If the payload exceeds clamd's
                ``StreamMaxLength``.
            ClamdScanAbortedError: If clamd replied before the stream ended.
            ClamdConnectionError: If the server is unreachable or resets.
            ClamdTimeoutError: If connecting or reading times out.
        """
        stream = as_stream(source)
        with self._open_socket() as sock:
            _send(sock, INSTREAM_COMMAND)
            frames = 0
            for chunk in iter_chunks(stream):
                _send_frame(sock, encode_frame(chunk), frames)
                frames += 1
                if _data_available(sock):
                    # reply from server before the stream was terminated
                    _abort(_read_all(sock), frames)
            _send_frame(sock, TERMINATOR, frames)
            reply = _read_all(sock)
        logger.debug("INSTREAM sent %d frames, reply %d bytes", frames, len(reply))
        return _check_size_limit(reply)

    def scan_stream(self, source: Source) -> ScanResult:
        """Scan a stream or bytes and classify the reply.

        Args:
            source: A readable binary stream or in-memory bytes.

        Returns:
            A :class:`ScanResult` with the scan outcome.
        """
        start = time.monotonic()
        reply = self.scan(source)
        return ScanResult(
            status=classify_reply(reply),
            reply=reply,
            message=reply_message(reply),
            scan_time=time.monotonic() - start,
        )

    def scan_bytes(self, data: bytes) -> ScanResult:
        """Scan in-memory bytes.

        Args:
            data: Raw content.

        Returns:
            A :class:`ScanResult` with the scan outcome.
        """
        return self.scan_stream(data)

    def scan_file(self, file_path: Union[str, Path]) -> ScanResult:
        """Stream a file on disk to clamd.

        Args:
            file_path: Path to the file to scan.

        Returns:
            A :class:`ScanResult` with the scan outcome.

        Raises:
            FileNotFoundError: If *file_path* does not exist.
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        with open(path, "rb") as fh:
            return self.scan_stream(fh)

    @staticmethod
    def is_clean_reply(reply: bytes) -> bool:
        """``True`` if *reply* says no virus was found. See :func:`is_clean_reply`."""
        return is_clean_reply(reply)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _open_socket(self) -> socket.socket:
        address = (self._config.host, self._config.port)
        try:
            sock = socket.create_connection(address, timeout=self._config.socket_connect_timeout)
        except OSError as exc:
            logger.debug("Connecting to %s:%s failed: %s", *address, exc)
            _handle_os_error(exc)
        try:
            sock.settimeout(self._config.socket_read_timeout)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError as exc:
            sock.close()
            _handle_os_error(exc)
        return sock


# ------------------------------------------------------------------
# Module-level helpers
# ------------------------------------------------------------------


def _send(sock: socket.socket, data: bytes) -> None:
    try:
        sock.sendall(data)
    except OSError as exc:
        _handle_os_error(exc)


def _send_frame(sock: socket.socket, frame: bytes, frames: int) -> None:
    """Send one INSTREAM frame.

    clamd answers some errors (size limit exceeded) and then closes the
    connection, so a write can fail while the reply is already waiting to be
    read. That reply takes precedence over the write error.
    """
    try:
        sock.sendall(frame)
    except OSError as exc:
        reply = _pending_reply(sock)
        if reply:
            _abort(reply, frames)
        _handle_os_error(exc)


def _recv(sock: socket.socket, size: int) -> bytes:
    try:
        return sock.recv(size)
    except OSError as exc:
        _handle_os_error(exc)


def _data_available(sock: socket.socket) -> bool:
    """Whether a read would return without blocking (data or EOF)."""
    try:
        with selectors.DefaultSelector() as selector:
            selector.register(sock, selectors.EVENT_READ)
            return bool(selector.select(timeout=0))
    except OSError as exc:
        _handle_os_error(exc)


def _read_exactly(sock: socket.socket, size: int) -> bytes:
    """Read until *size* bytes arrive or the peer stops sending."""
    buf = bytearray()
    while len(buf) < size:
        data = _recv(sock, size - len(buf))
        if not data:
            break
        buf += data
    return bytes(buf)


def _read_all(sock: socket.socket) -> bytes:
    """Read what the server has sent so far.

    The first read blocks for at most the socket read timeout; reading stops
    at EOF or as soon as nothing more is waiting. A connection reset after
    some bytes arrived ends the reply instead of discarding it.
    """
    buf = bytearray()
    while True:
        try:
            data = sock.recv(READ_BUFFER_SIZE)
        except OSError as exc:
            if not buf:
                _handle_os_error(exc)
            logger.debug("Reply ended by %s after %d bytes", exc, len(buf))
            break
        if not data:
            break
        buf += data
        if not _data_available(sock):
            break
    return bytes(buf)


def _pending_reply(sock: socket.socket) -> bytes:
    """Reply bytes already received on a broken connection, else ``b""``."""
    try:
        if not _data_available(sock):
            return b""
        return _read_all(sock)
    except ClamdError:
        # the caller raises the original write error instead
        return b""


def _abort(reply: bytes, frames: int) -> NoReturn:
    reply = _check_size_limit(reply)
    text = as_text(reply)
    logger.warning("INSTREAM aborted after %d frames: %r", frames, text)
    raise ClamdScanAbortedError(
        f"Scan aborted. Reply from server: {text}",
        reply=reply,
        text=text,
    )


def _check_size_limit(reply: bytes) -> bytes:
    try:
        return assert_size_limit(reply)
    except ClamdSizeLimitError as exc:
        logger.warning("INSTREAM size limit exceeded: %r", exc.text)
        raise


def _handle_os_error(exc: OSError) -> NoReturn:
    # socket.timeout is an alias of TimeoutError since 3.10
    if isinstance(exc, TimeoutError):
        raise ClamdTimeoutError(str(exc) or "timed out") from exc
    raise ClamdConnectionError(str(exc)) from exc
