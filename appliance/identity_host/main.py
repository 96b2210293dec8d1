"""
Identity Host - Main entry point.

The control-system runtime constructs ControlSystem and calls
initialize_system(), which starts the orchestration unit on a background
thread and returns immediately. Run standalone for development:

Usage:
    python -m appliance.identity_host.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - initialize_system() returns promptly; startup runs in the background
    - Nothing raised by the startup sequence escapes the background thread
    - A failed start is not retried; it needs an external restart

How to change safely:
    - Keep all fallible work inside ControlSystem._run_orchestration
    - Test the no-address and port-in-use paths after changes
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
from typing import Optional

import json_log_formatter
from pydantic import ValidationError

from .config import HostSettings
from .errors import UnhandledOrchestrationFailure
from .host.errorlog import PROGRAM_LOAD_EXCEPTION, ErrorLog, LoggingErrorLog
from .host.network import HostPlatform, NetworkAddressResolver, PsutilHostPlatform, StaticHostPlatform
from .service.assembler import ServiceAssembler
from .startup.orchestrator import OrchestrationResult, OrchestratorState, StartupOrchestrator
from .store.datastore import DataStore
from .store.migrator import SchemaMigrator
from .store.provider import NativeProviderBinder

logger = logging.getLogger(__name__)


def setup_logging(settings: HostSettings) -> None:
    """Configure logging based on configuration.

    Args:
        settings: Host settings
    """
    level = getattr(logging, settings.observability.log_level.upper(), logging.INFO)

    if settings.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)


def build_orchestrator(
    settings: HostSettings,
    platform: Optional[HostPlatform] = None,
    error_log: Optional[ErrorLog] = None,
) -> StartupOrchestrator:
    """Wire the startup components from settings."""
    error_log = error_log or LoggingErrorLog()
    if platform is None:
        if settings.listener.address is not None:
            platform = StaticHostPlatform(settings.listener.address)
        else:
            platform = PsutilHostPlatform()

    migrator = SchemaMigrator(error_log=error_log)
    return StartupOrchestrator(
        binder=NativeProviderBinder(settings.store.provider),
        resolver=NetworkAddressResolver(platform, adapter_index=settings.listener.adapter_index),
        assembler=ServiceAssembler(
            settings.environment,
            migrator,
            identity_settings=settings.identity,
            port=settings.listener.port,
        ),
        migrator=migrator,
        store=DataStore(settings.store.path, busy_timeout_ms=settings.store.busy_timeout_ms),
        error_log=error_log,
        ensure_created=settings.store.ensure_created,
    )


class ControlSystem:
    """Host-side entry point of the application.

    Attributes:
        settings: Host settings (loaded from env if not provided)
        orchestrator: The orchestrator, once the background unit built it
        result: Outcome of the background unit, once it finished
    """

    def __init__(
        self,
        settings: Optional[HostSettings] = None,
        platform: Optional[HostPlatform] = None,
        error_log: Optional[ErrorLog] = None,
    ) -> None:
        self._settings = settings
        self._platform = platform
        self.error_log = error_log or LoggingErrorLog()
        self.orchestrator: Optional[StartupOrchestrator] = None
        self.result: Optional[OrchestrationResult] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def thread(self) -> Optional[threading.Thread]:
        return self._thread

    def initialize_system(self) -> threading.Thread:
        """Start the orchestration unit and return immediately."""
        if self._thread is not None:
            logger.warning("Control system already initialized")
            return self._thread

        self._thread = threading.Thread(
            target=self._run_orchestration,
            name="identity-host-startup",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def _run_orchestration(self) -> None:
        try:
            settings = self._settings or HostSettings()
            settings.log_config()
            self.orchestrator = build_orchestrator(settings, self._platform, self.error_log)
            self.result = self.orchestrator.run()
        except Exception as e:
            failure = UnhandledOrchestrationFailure(str(e), cause=e)
            self.error_log.error(f"{PROGRAM_LOAD_EXCEPTION} | {failure.message}")
            logger.error(f"Orchestration unit crashed: {e}", exc_info=True)
            self.result = OrchestrationResult(state=OrchestratorState.FAILED, error=failure)

    def shutdown(self) -> None:
        """Ask the running service to stop."""
        if self.orchestrator is not None and self.orchestrator.instance is not None:
            self.orchestrator.instance.stop()


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        settings = HostSettings()
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(settings)

    control_system = ControlSystem(settings)

    def handle_signal(sig: int, frame: object) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        control_system.shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, handle_signal)

    thread = control_system.initialize_system()
    while thread.is_alive():
        thread.join(timeout=0.5)

    if control_system.result is not None and control_system.result.failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
