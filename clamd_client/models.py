"""Data models for clamd client configuration and scan results."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from clamd_client.exceptions import ClamdConfigError

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 3310
DEFAULT_READ_TIMEOUT = 0.5
DEFAULT_CONNECT_TIMEOUT = 0.5


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Connection settings shared by every call of a client.

    Attributes:
        host: Hostname or IP address of the clamd TCP listener.
        port: TCP port clamd listens on (``TCPSocket`` in ``clamd.conf``).
        read_timeout: Seconds to wait on any single read. ``0`` waits forever.
        connect_timeout: Seconds to wait for the TCP handshake. ``0`` waits
            forever.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT

    def __post_init__(self) -> None:
        if self.read_timeout < 0 or self.connect_timeout < 0:
            raise ClamdConfigError("Negative timeout value does not make sense.")
        if not 1 <= self.port <= 65535:
            raise ClamdConfigError(f"Port out of range: {self.port}")

    @property
    def socket_read_timeout(self) -> float | None:
        # socket.settimeout(0) means non-blocking, not infinite
        return self.read_timeout or None

    @property
    def socket_connect_timeout(self) -> float | None:
        return self.connect_timeout or None


class ScanStatus(str, Enum):
    """Classification of a completed scan reply."""

    OK = "OK"
    FOUND = "FOUND"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Result of a completed INSTREAM scan.

    Attributes:
        status: ``OK`` for a clean reply, ``FOUND`` when a signature matched,
            ``ERROR`` for anything else the daemon said.
        reply: Raw reply bytes.
        message: Reply text without the trailing NUL and whitespace, e.g.
            ``"stream: Eicar-Test-Signature FOUND"``.
        scan_time: Wall-clock duration of the exchange in seconds.
    """

    status: ScanStatus
    reply: bytes
    message: str
    scan_time: float = 0.0

    @property
    def is_clean(self) -> bool:
        return self.status is ScanStatus.OK
