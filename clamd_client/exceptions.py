"""Exception hierarchy for the clamd client."""

from __future__ import annotations


class ClamdError(Exception):
    """Base exception for all clamd client errors."""


class ClamdConfigError(ClamdError, ValueError):
    """Raised when a client is configured with an invalid value.

    Negative timeouts and out-of-range ports are rejected before any I/O.
    """


class ClamdConnectionError(ClamdError):
    """Raised when the daemon cannot be reached or drops the connection."""


class ClamdTimeoutError(ClamdError):
    """Raised when connecting to or reading from the daemon times out."""


class ClamdProtocolError(ClamdError):
    """Raised when the daemon's reply ends a scan abnormally.

    Attributes:
        reply: Raw reply bytes as received from the daemon.
        text: The reply decoded as ASCII.
    """

    def __init__(self, message: str, reply: bytes = b"", text: str = "") -> None:
        super().__init__(message)
        self.reply = reply
        self.text = text


class ClamdScanAbortedError(ClamdProtocolError):
    """Raised when the daemon replies before the stream was terminated."""


class ClamdSizeLimitError(ClamdProtocolError):
    """Raised when the daemon reports ``INSTREAM size limit exceeded.``

    The payload was larger than ``StreamMaxLength`` in ``clamd.conf``, so the
    scan never completed. This is not a verdict.
    """
