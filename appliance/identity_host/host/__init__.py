"""
Host module - the seams to the embedding control-system runtime.

This module provides:
- The network-parameter query used to find the listener address
- The host error log sink for startup failures
"""

from .errorlog import MIGRATION_ERROR, PROGRAM_LOAD_EXCEPTION, ErrorLog, LoggingErrorLog
from .network import (
    EthernetParameter,
    HostPlatform,
    NetworkAddressResolver,
    PsutilHostPlatform,
    StaticHostPlatform,
)

__all__ = [
    "ErrorLog",
    "LoggingErrorLog",
    "PROGRAM_LOAD_EXCEPTION",
    "MIGRATION_ERROR",
    "EthernetParameter",
    "HostPlatform",
    "NetworkAddressResolver",
    "PsutilHostPlatform",
    "StaticHostPlatform",
]
