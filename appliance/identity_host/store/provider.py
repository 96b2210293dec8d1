"""
Native data provider binding.

Every store connection in the process goes through a single DB-API 2.0
SQLite module. The binder selects that module once at startup and freezes the
choice so nothing later in the process can swap the engine underneath open
stores.

Invariants:
    - A binding is set exactly once and frozen in the same step
    - bind() with the already-bound provider is a no-op
    - Installing a different provider after the freeze raises ProviderFrozenError
    - No connection can be opened before the binding exists

How to change safely:
    - Bind before constructing anything that touches the store
    - Only use reset_binding() from tests

Example:
    >>> binder = NativeProviderBinder("sqlite3")
    >>> provider = binder.bind()
    >>> provider.name
    'sqlite3'
"""

from __future__ import annotations

import importlib
import logging
import threading
from dataclasses import dataclass
from types import ModuleType
from typing import Any, Optional

from ..errors import ProviderFrozenError, ProviderNotBoundError

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "sqlite3"

# Global binding instance
_global_binding: Optional[ProviderBinding] = None
_binding_lock = threading.Lock()


@dataclass(frozen=True)
class NativeProvider:
    """A DB-API module pinned as the store engine.

    Attributes:
        name: Import path of the module (e.g. 'sqlite3')
        module: The imported DB-API module
    """

    name: str
    module: ModuleType

    @property
    def engine_version(self) -> str:
        """Version of the native SQLite library behind the module."""
        return getattr(self.module, "sqlite_version", "unknown")

    def connect(self, database: str, **kwargs: Any) -> Any:
        return self.module.connect(database, **kwargs)

    @property
    def error(self) -> type:
        """Base DB-API error class of the module."""
        return self.module.Error


def load_provider(name: str) -> NativeProvider:
    """Import a DB-API module by name and check it looks like one.

    Raises:
        ImportError: If the module cannot be imported
        TypeError: If the module lacks connect() or Error
    """
    module = importlib.import_module(name)
    if not callable(getattr(module, "connect", None)) or not hasattr(module, "Error"):
        raise TypeError(f"Module '{name}' is not a DB-API 2.0 provider")
    return NativeProvider(name=name, module=module)


class ProviderBinding:
    """One-shot latch holding the process-wide native provider.

    Thread-safety:
        - set() and freeze are atomic under an internal lock
        - Reads after the freeze are lock-free
    """

    def __init__(self) -> None:
        self._provider: Optional[NativeProvider] = None
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def provider(self) -> NativeProvider:
        """The bound provider.

        Raises:
            ProviderNotBoundError: If nothing has been bound yet
        """
        if self._provider is None:
            raise ProviderNotBoundError()
        return self._provider

    def set_and_freeze(self, provider: NativeProvider) -> NativeProvider:
        """Install a provider and freeze the binding.

        Returns the active provider. A repeat call with the same provider name
        returns the existing binding untouched.

        Raises:
            ProviderFrozenError: If a different provider is already bound
        """
        with self._lock:
            if self._frozen:
                bound = self.provider
                if bound.name != provider.name:
                    raise ProviderFrozenError(
                        f"Cannot bind provider '{provider.name}': "
                        f"'{bound.name}' is already bound and frozen",
                        bound=bound.name,
                        requested=provider.name,
                    )
                return bound

            self._provider = provider
            self._frozen = True
            logger.info(
                f"Native provider bound and frozen: {provider.name} "
                f"(engine {provider.engine_version})"
            )
            return provider


class NativeProviderBinder:
    """Selects the native provider and installs it into a binding.

    Args:
        provider_name: Import path of the DB-API module to pin
        binding: Binding to install into (the process-wide one by default)
    """

    def __init__(
        self,
        provider_name: str = DEFAULT_PROVIDER,
        binding: Optional[ProviderBinding] = None,
    ) -> None:
        self.provider_name = provider_name
        self._binding = binding

    @property
    def binding(self) -> ProviderBinding:
        return self._binding if self._binding is not None else get_binding()

    def bind(self) -> NativeProvider:
        """Bind the configured provider and freeze the selection.

        Raises:
            ProviderFrozenError: If another provider was bound earlier
            ImportError, TypeError: If the provider module is unusable
        """
        binding = self.binding
        if binding.frozen and binding.provider.name == self.provider_name:
            logger.debug(f"Provider {self.provider_name} already bound")
            return binding.provider
        return binding.set_and_freeze(load_provider(self.provider_name))


def get_binding() -> ProviderBinding:
    """Get the process-wide provider binding, creating it if needed."""
    global _global_binding
    with _binding_lock:
        if _global_binding is None:
            _global_binding = ProviderBinding()
        return _global_binding


def reset_binding() -> None:
    """Reset the process-wide binding (for testing only).

    Warning: This is intended for test cleanup only.
    Never use in production code.
    """
    global _global_binding
    with _binding_lock:
        _global_binding = None
