"""
Service assembly.

Builds the web application over the identity store and binds its listener:
- Authentication schemes and identity services bound to the store
- Identity account endpoints and application endpoints
- Static assets from the wwwroot directory beside this package
- The environment-specific pipeline (migrations endpoint or HSTS + error handler)
- A TCP socket bound to the host address on the fixed appliance port

The socket is bound here but only starts listening when run() enters the
server loop, so nothing is accepted before migration has finished.

Invariants:
    - The listener binds to exactly the resolved address and port
    - Plain HTTP only; there is no HTTPS redirection
    - A ServiceInstance is run at most once

How to change safely:
    - Register routes before mounting static files at "/"
    - Keep assembly free of store writes; migration happens afterwards
"""

from __future__ import annotations

import ipaddress
import logging
import socket
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .._version import __version__
from ..config import LISTEN_PORT, Environment, IdentitySettings
from ..errors import AssemblyFailure
from ..identity.endpoints import router as account_router
from ..identity.redirect import IdentityRedirect, identity_redirect_handler
from ..identity.schemes import AuthenticationOptions, IdentityConstants
from ..identity.services import build_identity_services
from ..store.datastore import DataStore
from ..store.migrator import MigrationResult, SchemaMigrator
from .pipeline import configure_pipeline
from .routes import router as app_router

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent.parent / "wwwroot"

ListenerFactory = Callable[[str, int], Any]


def bind_listener(address: str, port: int) -> socket.socket:
    """Bind (but do not listen on) a TCP socket.

    Raises:
        AssemblyFailure: If the address cannot be bound
    """
    family = socket.AF_INET6 if ipaddress.ip_address(address).version == 6 else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        if sys.platform != "win32":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((address, port))
    except OSError as e:
        sock.close()
        raise AssemblyFailure(
            f"Cannot bind listener to {address}:{port}: {e}",
            address=address,
            port=port,
        ) from e
    sock.set_inheritable(True)
    logger.info(f"Listener bound to {address}:{port}")
    return sock


class ServiceInstance:
    """The wired application plus its bound listener.

    Attributes:
        app: FastAPI application
        address: Address the listener is bound to
        port: Port the listener is bound to
        environment: Environment the pipeline was built for
    """

    def __init__(
        self,
        app: FastAPI,
        listener: Any,
        address: str,
        port: int,
        environment: Environment,
    ) -> None:
        self.app = app
        self.listener = listener
        self.address = address
        self.port = port
        self.environment = environment
        self._server: Optional[uvicorn.Server] = None
        self._ran = False

    @property
    def bound_address(self) -> tuple[str, int]:
        """Actual (host, port) of the listener socket."""
        name = self.listener.getsockname()
        return name[0], name[1]

    @property
    def started(self) -> bool:
        return self._server is not None and self._server.started

    def record_migration(self, result: MigrationResult) -> None:
        self.app.state.migration_result = result

    def run(self) -> None:
        """Serve requests until shutdown. Blocks the calling thread."""
        if self._ran:
            raise RuntimeError("ServiceInstance has already been run")
        self._ran = True

        config = uvicorn.Config(
            self.app,
            host=self.address,
            port=self.port,
            log_config=None,
            lifespan="on",
            proxy_headers=False,
        )
        self._server = uvicorn.Server(config)
        logger.info(f"Serving on http://{self.address}:{self.port} ({self.environment.value})")
        self._server.run(sockets=[self.listener])

    def stop(self) -> None:
        """Ask the server loop to exit."""
        if self._server is not None:
            self._server.should_exit = True


class ServiceAssembler:
    """Builds ServiceInstances.

    Args:
        environment: Environment switch, resolved before assembly
        migrator: Migrator used by the development migrations endpoint
        identity_settings: Cookie and confirmation settings
        port: Listener port
        static_dir: Directory served at "/" if it exists
        listener_factory: Binds the listener; bind_listener by default

    Example:
        >>> assembler = ServiceAssembler(Environment.PRODUCTION, SchemaMigrator())
        >>> instance = assembler.assemble("192.168.1.50", DataStore("/user/app.db"))
        >>> instance.run()
    """

    def __init__(
        self,
        environment: Environment,
        migrator: SchemaMigrator,
        identity_settings: Optional[IdentitySettings] = None,
        port: int = LISTEN_PORT,
        static_dir: Optional[Path] = None,
        listener_factory: ListenerFactory = bind_listener,
    ) -> None:
        self.environment = environment
        self.migrator = migrator
        self.identity_settings = identity_settings or IdentitySettings()
        self.port = port
        self.static_dir = static_dir if static_dir is not None else STATIC_DIR
        self.listener_factory = listener_factory

    def build_app(self, store: DataStore) -> FastAPI:
        """Construct the application graph without binding anything."""
        app = FastAPI(
            title="Identity Host",
            description="Identity-enabled web application for the control system.",
            version=__version__,
            debug=self.environment.is_development,
        )

        options = AuthenticationOptions(
            default_scheme=IdentityConstants.APPLICATION_SCHEME,
            default_sign_in_scheme=IdentityConstants.EXTERNAL_SCHEME,
        )
        app.state.identity = build_identity_services(store, self.identity_settings, options)
        app.state.store = store
        app.state.environment = self.environment
        app.state.migration_result = None
        app.state.migrations_endpoint = None
        app.state.hsts_enabled = False

        app.add_exception_handler(IdentityRedirect, identity_redirect_handler)
        configure_pipeline(app, self.environment, store, self.migrator)

        app.include_router(app_router)
        app.include_router(account_router)

        if self.static_dir.is_dir():
            app.mount("/", StaticFiles(directory=str(self.static_dir), html=True), name="static")
            logger.info(f"Serving static assets from {self.static_dir}")
        else:
            logger.info(f"No static asset directory at {self.static_dir}")

        return app

    def assemble(self, address: str, store: DataStore) -> ServiceInstance:
        """Build the application and bind its listener.

        Raises:
            AssemblyFailure: If the graph cannot be built or the port is taken
        """
        try:
            app = self.build_app(store)
        except AssemblyFailure:
            raise
        except Exception as e:
            raise AssemblyFailure(f"Cannot build service graph: {e}", address=address) from e

        listener = self.listener_factory(address, self.port)
        return ServiceInstance(app, listener, address, self.port, self.environment)
