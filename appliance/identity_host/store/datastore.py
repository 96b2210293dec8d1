"""
Persisted identity store handle.

A DataStore names the single SQLite file backing the identity subsystem and
opens connections to it through the bound native provider. The migrator owns
it during startup; afterwards request handlers share it, each operation using
its own short-lived connection.

Invariants:
    - The store path is fixed for the process lifetime
    - Connections are only opened through the frozen provider binding
    - Connections run in autocommit mode; callers issue explicit transactions
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

from ..errors import ProviderNotBoundError
from .provider import NativeProvider, ProviderBinding, get_binding

logger = logging.getLogger(__name__)


class DataStore:
    """Handle to the persisted identity store.

    Example:
        >>> store = DataStore("/user/app.db")
        >>> with store.connect() as conn:
        ...     conn.execute("SELECT 1").fetchone()
    """

    def __init__(
        self,
        path: str | Path,
        binding: Optional[ProviderBinding] = None,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms
        self._binding = binding

    @property
    def connection_string(self) -> str:
        return f"Data Source={self.path}"

    @property
    def provider(self) -> NativeProvider:
        """The provider this store connects through.

        Raises:
            ProviderNotBoundError: If no provider has been bound and frozen
        """
        binding = self._binding if self._binding is not None else get_binding()
        if not binding.frozen:
            raise ProviderNotBoundError(
                f"Cannot open store {self.path}: native data provider has not been bound"
            )
        return binding.provider

    def exists(self) -> bool:
        return self.path.exists()

    def ensure_created(self) -> bool:
        """Create the directory and an empty database file if missing.

        Returns:
            True if the file was created by this call
        """
        if self.path.exists():
            return False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect():
            pass
        logger.info(f"Created store file {self.path}")
        return True

    @contextmanager
    def connect(self) -> Iterator[Any]:
        """Open a connection to the store.

        Yields:
            DB-API connection in autocommit mode with row access by name
        """
        provider = self.provider
        conn = provider.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
            check_same_thread=False,
        )
        conn.row_factory = provider.module.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Open a connection with an explicit transaction around the block."""
        with self.connect() as conn:
            conn.execute("BEGIN")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
