"""
Startup orchestration.

Runs the whole startup sequence as one supervised unit of work:

    NOT_STARTED → PROVIDER_BOUND → ADDRESS_RESOLVED → ASSEMBLING
                → MIGRATING → RUNNING (→ STOPPED)
    any step ──failure──▶ FAILED (terminal)

Invariants:
    - Steps run strictly in order; each depends on the previous one
    - The provider is bound before anything touches the store
    - Migration runs once, before the server loop starts
    - Migration failure is logged and startup continues (degraded start)
    - Every other failure ends in FAILED with exactly one host error log entry
    - run() never raises; the outcome is returned as an OrchestrationResult
    - An orchestrator runs at most once

How to change safely:
    - New steps go between existing ones without reordering them
    - Anything that may fail must stay inside run()'s failure boundary
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ..errors import (
    AddressUnavailable,
    AssemblyFailure,
    IdentityHostError,
    UnhandledOrchestrationFailure,
)
from ..host.errorlog import PROGRAM_LOAD_EXCEPTION, ErrorLog, LoggingErrorLog
from ..host.network import NetworkAddressResolver
from ..service.assembler import ServiceAssembler, ServiceInstance
from ..store.datastore import DataStore
from ..store.migrator import MigrationResult, SchemaMigrator
from ..store.provider import NativeProviderBinder

logger = logging.getLogger(__name__)


class OrchestratorState(Enum):
    """Startup sequence states."""

    NOT_STARTED = "not_started"
    PROVIDER_BOUND = "provider_bound"
    ADDRESS_RESOLVED = "address_resolved"
    ASSEMBLING = "assembling"
    MIGRATING = "migrating"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class OrchestrationResult:
    """Terminal outcome of an orchestration run.

    Attributes:
        state: Final state (FAILED, or STOPPED once the server loop returned)
        address: Resolved host address, if resolution succeeded
        migration: Migration outcome, if migration ran
        error: Tagged failure when state is FAILED
    """

    state: OrchestratorState
    address: Optional[str] = None
    migration: Optional[MigrationResult] = None
    error: Optional[IdentityHostError] = None

    @property
    def failed(self) -> bool:
        return self.state == OrchestratorState.FAILED

    @property
    def degraded(self) -> bool:
        return self.migration is not None and self.migration.degraded


class StartupOrchestrator:
    """Sequences provider binding, address resolution, assembly, migration and run.

    Example:
        >>> orchestrator = StartupOrchestrator(binder, resolver, assembler, migrator, store)
        >>> result = orchestrator.run()   # blocks while the service runs
        >>> result.state
        <OrchestratorState.STOPPED: 'stopped'>
    """

    def __init__(
        self,
        binder: NativeProviderBinder,
        resolver: NetworkAddressResolver,
        assembler: ServiceAssembler,
        migrator: SchemaMigrator,
        store: DataStore,
        error_log: Optional[ErrorLog] = None,
        ensure_created: bool = False,
    ) -> None:
        self.binder = binder
        self.resolver = resolver
        self.assembler = assembler
        self.migrator = migrator
        self.store = store
        self.error_log = error_log or LoggingErrorLog()
        self.ensure_created = ensure_created

        self._state = OrchestratorState.NOT_STARTED
        self._transitions: List[OrchestratorState] = [self._state]
        self._lock = threading.Lock()
        self._started = False
        self._running_event = threading.Event()
        self.instance: Optional[ServiceInstance] = None
        self.address: Optional[str] = None
        self.migration: Optional[MigrationResult] = None

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def transitions(self) -> List[OrchestratorState]:
        """Every state entered so far, in order."""
        return list(self._transitions)

    def wait_until_running(self, timeout: Optional[float] = None) -> bool:
        """Block until the RUNNING state is reached (or timeout)."""
        return self._running_event.wait(timeout)

    def _enter(self, state: OrchestratorState) -> None:
        logger.debug(f"Startup state {self._state.value} -> {state.value}")
        self._state = state
        self._transitions.append(state)
        if state == OrchestratorState.RUNNING:
            self._running_event.set()

    def run(self) -> OrchestrationResult:
        """Run the startup sequence; blocks while the service runs.

        Returns:
            OrchestrationResult; never raises

        Raises:
            RuntimeError: If this orchestrator has already been run
        """
        with self._lock:
            if self._started:
                raise RuntimeError("Startup orchestration is not restartable")
            self._started = True

        try:
            self._run_sequence()
        except IdentityHostError as e:
            return self._fail(e)
        except Exception as e:
            return self._fail(UnhandledOrchestrationFailure(str(e), cause=e))

        self._enter(OrchestratorState.STOPPED)
        logger.info("Service loop exited")
        return self._result()

    def _run_sequence(self) -> None:
        provider = self.binder.bind()
        self._enter(OrchestratorState.PROVIDER_BOUND)
        logger.info(f"Native provider {provider.name} pinned")

        self.address = self.resolver.resolve_current_address()
        self._enter(OrchestratorState.ADDRESS_RESOLVED)

        self._enter(OrchestratorState.ASSEMBLING)
        self.instance = self.assembler.assemble(self.address, self.store)

        self._enter(OrchestratorState.MIGRATING)
        self.migration = self._migrate()
        self.instance.record_migration(self.migration)

        self._enter(OrchestratorState.RUNNING)
        self.instance.run()

    def _migrate(self) -> MigrationResult:
        if self.ensure_created:
            try:
                self.migrator.ensure_created(self.store)
            except Exception as e:
                logger.warning(f"Could not create store {self.store.path}: {e}")
        result = self.migrator.migrate(self.store)
        if result.degraded:
            logger.warning(
                f"Starting in degraded mode: store left at schema version {result.to_version}"
            )
        return result

    def _fail(self, error: IdentityHostError) -> OrchestrationResult:
        self._enter(OrchestratorState.FAILED)
        self.error_log.error(f"{PROGRAM_LOAD_EXCEPTION} | {error.message}")
        if isinstance(error, (AddressUnavailable, AssemblyFailure)):
            logger.error(f"Startup failed: {error.message}")
        else:
            logger.error(f"Startup failed: {error.message}", exc_info=error)
        self._release_listener()
        return self._result(error)

    def _release_listener(self) -> None:
        listener = self.instance.listener if self.instance is not None else None
        close = getattr(listener, "close", None)
        if callable(close):
            try:
                close()
            except OSError as e:
                logger.warning(f"Could not close listener: {e}")

    def _result(self, error: Optional[IdentityHostError] = None) -> OrchestrationResult:
        return OrchestrationResult(
            state=self._state,
            address=self.address,
            migration=self.migration,
            error=error,
        )
