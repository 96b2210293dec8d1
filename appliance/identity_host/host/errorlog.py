"""
Host error log sink.

The control-system runtime owns an error log that operators read on the
device. Startup failures must be written there, not only to the application
log, because the application may never get far enough to serve anything.

Invariants:
    - Fatal startup failures use the prefix "Program Load Exception"
    - Migration failures use the prefix "Error during database auto-migration"
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

PROGRAM_LOAD_EXCEPTION = "Program Load Exception"
MIGRATION_ERROR = "Error during database auto-migration"


@runtime_checkable
class ErrorLog(Protocol):
    """Host-provided error reporting facility."""

    def error(self, message: str) -> None: ...

    def warn(self, message: str) -> None: ...

    def notice(self, message: str) -> None: ...


class LoggingErrorLog:
    """ErrorLog writing to a dedicated logger.

    Used when the host runtime does not provide its own sink.
    """

    def __init__(self, name: str = "identity_host.errorlog") -> None:
        self._logger = logging.getLogger(name)

    def error(self, message: str) -> None:
        self._logger.error(message)

    def warn(self, message: str) -> None:
        self._logger.warning(message)

    def notice(self, message: str) -> None:
        self._logger.info(message)
