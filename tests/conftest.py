"""Shared test fixtures, including an in-process fake clamd."""

from __future__ import annotations

import socket
import socketserver
import struct
import threading
from dataclasses import dataclass, field

import pytest

EICAR = b"X5O!P%@AP[4\\PZX54(P^)7CC)7}$EICAR-STANDARD-ANTIVIRUS-TEST-FILE!$H+H*"


@pytest.fixture()
def sample_bytes() -> bytes:
    return b"alsdklaksdla"


@pytest.fixture()
def eicar_bytes() -> bytes:
    """EICAR anti-malware test string (safe; every AV recognises it)."""
    return EICAR


# ------------------------------------------------------------------ #
# Fake clamd
# ------------------------------------------------------------------ #


@dataclass
class Session:
    """Everything one client connection sent to the fake daemon."""

    command: bytes = b""
    raw: bytearray = field(default_factory=bytearray)
    done: threading.Event = field(default_factory=threading.Event)


def _recv_exactly(sock: socket.socket, size: int) -> bytes:
    buf = bytearray()
    while len(buf) < size:
        data = sock.recv(size - len(buf))
        if not data:
            break
        buf += data
    return bytes(buf)


def _read_command(sock: socket.socket) -> bytes:
    buf = bytearray()
    while not buf.endswith(b"\0") and len(buf) < 64:
        data = sock.recv(1)
        if not data:
            break
        buf += data
    return bytes(buf)


class _FakeClamdHandler(socketserver.BaseRequestHandler):
    server: FakeClamd

    def handle(self) -> None:
        session = Session()
        self.server.sessions.append(session)
        try:
            session.command = _read_command(self.request)
            if self.server.silent:
                self._drain(session)
            elif session.command == b"zPING\0":
                self.request.sendall(self.server.ping_reply)
            elif session.command == b"zINSTREAM\0":
                self._instream(session)
        except OSError:
            pass
        finally:
            session.done.set()

    def _instream(self, session: Session) -> None:
        sock = self.request
        server = self.server
        data = bytearray()
        frames = 0
        while True:
            header = _recv_exactly(sock, 4)
            session.raw += header
            if len(header) < 4:
                return
            (length,) = struct.unpack(">I", header)
            if length == 0:
                break
            payload = _recv_exactly(sock, length)
            session.raw += payload
            data += payload
            frames += 1
            if server.hangup_after is not None and frames >= server.hangup_after:
                sock.shutdown(socket.SHUT_WR)
                server.replied.set()
                self._drain(session)
                return
            if server.early_reply is not None and frames >= server.early_reply_after:
                self._reply_and_stop(session, server.early_reply)
                return
            if server.max_stream_length is not None and len(data) > server.max_stream_length:
                self._reply_and_stop(session, b"INSTREAM size limit exceeded. ERROR\0")
                return
        sock.sendall(server.reply_for(bytes(data)))

    def _reply_and_stop(self, session: Session, reply: bytes) -> None:
        self.request.sendall(reply)
        self.server.replied.set()
        if self.server.close_after_reply:
            # like clamd: hang up with the rest of the stream unread
            return
        self._drain(session)

    def _drain(self, session: Session) -> None:
        while True:
            data = self.request.recv(65536)
            if not data:
                return
            session.raw += data


class FakeClamd(socketserver.ThreadingTCPServer):
    """In-process fake that speaks enough of the clamd protocol for tests."""

    allow_reuse_address = True
    daemon_threads = True

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), _FakeClamdHandler)
        self.ping_reply = b"PONG\0"
        self.silent = False
        self.early_reply: bytes | None = None
        self.early_reply_after = 1
        self.max_stream_length: int | None = None
        self.close_after_reply = False
        self.hangup_after: int | None = None
        self.replied = threading.Event()
        self.sessions: list[Session] = []

    @property
    def port(self) -> int:
        return self.server_address[1]

    @staticmethod
    def reply_for(data: bytes) -> bytes:
        if b"EICAR-STANDARD-ANTIVIRUS-TEST-FILE" in data:
            return b"stream: Eicar-Test-Signature FOUND\0"
        return b"stream: OK\0"

    def last_session(self) -> Session:
        session = self.sessions[-1]
        assert session.done.wait(2), "fake clamd session did not finish"
        return session


@pytest.fixture()
def fake_clamd():
    server = FakeClamd()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture()
def closed_port() -> int:
    """A local port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
