"""clamd client — streaming INSTREAM scans and PING over TCP."""

import logging

from clamd_client.client import ClamdClient
from clamd_client.exceptions import (
    ClamdConfigError,
    ClamdConnectionError,
    ClamdError,
    ClamdProtocolError,
    ClamdScanAbortedError,
    ClamdSizeLimitError,
    ClamdTimeoutError,
)
from clamd_client.models import ClientConfig, ScanResult, ScanStatus
from clamd_client.protocol import CHUNK_SIZE, classify_reply, is_clean_reply

__version__ = "1.0.0"

__all__ = [
    "ClamdClient",
    "ClientConfig",
    "ScanResult",
    "ScanStatus",
    "CHUNK_SIZE",
    "is_clean_reply",
    "classify_reply",
    "ClamdError",
    "ClamdConfigError",
    "ClamdConnectionError",
    "ClamdTimeoutError",
    "ClamdProtocolError",
    "ClamdScanAbortedError",
    "ClamdSizeLimitError",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())
