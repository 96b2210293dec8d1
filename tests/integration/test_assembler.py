"""
Integration tests for service assembly and the request pipeline.

Tests cover:
- Production pipeline (HSTS, generic error handler, no migrations endpoint)
- Development pipeline (migrations endpoint, no HSTS)
- Static assets
- Listener binding on a real socket
"""

import socket
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from appliance.identity_host.config import Environment
from appliance.identity_host.errors import AssemblyFailure
from appliance.identity_host.service.assembler import STATIC_DIR, ServiceAssembler, bind_listener
from appliance.identity_host.service.pipeline import HSTS_HEADER_VALUE, MIGRATIONS_ENDPOINT_PATH
from appliance.identity_host.store.migrations import latest_version
from appliance.identity_host.store.migrator import SchemaMigrator


def build(environment, store, error_log, static_dir):
    assembler = ServiceAssembler(environment, SchemaMigrator(error_log=error_log), static_dir=static_dir)
    return assembler.build_app(store)


class TestProductionPipeline:
    """Tests for non-development environments."""

    @pytest.fixture
    def app(self, store, error_log, missing_static_dir, production):
        return build(production, store, error_log, missing_static_dir)

    def test_hsts_header(self, app):
        with TestClient(app) as client:
            response = client.get("/")

        assert response.status_code == 200
        assert response.headers["Strict-Transport-Security"] == HSTS_HEADER_VALUE
        assert app.state.hsts_enabled is True

    def test_no_migrations_endpoint(self, app):
        with TestClient(app) as client:
            response = client.post(MIGRATIONS_ENDPOINT_PATH)

        assert response.status_code in (404, 405)
        assert app.state.migrations_endpoint is None

    def test_generic_error_response(self, app):
        """Unhandled errors are answered without details."""

        @app.get("/explode")
        def explode():
            raise RuntimeError("secret internals")

        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/explode")

        assert response.status_code == 500
        body = response.json()
        assert "secret internals" not in response.text
        assert body["error_page"] == "/Error"
        assert body["request_id"]
        assert response.headers["Strict-Transport-Security"] == HSTS_HEADER_VALUE

    def test_error_page(self, app):
        with TestClient(app) as client:
            response = client.get("/Error")

        assert response.status_code == 200
        assert "error" in response.json()

    @pytest.mark.parametrize("environment", [Environment.STAGING, Environment.PRODUCTION])
    def test_staging_behaves_like_production(self, environment, store, error_log, missing_static_dir):
        app = build(environment, store, error_log, missing_static_dir)

        assert app.state.hsts_enabled is True
        assert app.state.migrations_endpoint is None


class TestDevelopmentPipeline:
    """Tests for the development environment."""

    @pytest.fixture
    def app(self, store, error_log, missing_static_dir):
        return build(Environment.DEVELOPMENT, store, error_log, missing_static_dir)

    def test_no_hsts(self, app):
        with TestClient(app) as client:
            response = client.get("/")

        assert "Strict-Transport-Security" not in response.headers
        assert app.state.hsts_enabled is False

    def test_migrations_endpoint_applies_pending(self, app, store):
        with TestClient(app) as client:
            first = client.post(MIGRATIONS_ENDPOINT_PATH)
            second = client.post(MIGRATIONS_ENDPOINT_PATH)

        assert app.state.migrations_endpoint == MIGRATIONS_ENDPOINT_PATH
        assert first.status_code == 200
        assert first.json()["to_version"] == latest_version()
        assert first.json()["applied"] == [1, 2, 3]
        assert second.json()["applied"] == []

    def test_migrations_endpoint_reports_failure(self, app, store):
        store.path.write_bytes(b"not a database file at all, just bytes" * 20)

        with TestClient(app) as client:
            response = client.post(MIGRATIONS_ENDPOINT_PATH)

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert response.json()["error"]


class TestHealth:
    """Tests for the health endpoint."""

    def test_reports_migration_outcome(self, store, error_log, missing_static_dir, production):
        app = build(production, store, error_log, missing_static_dir)
        app.state.migration_result = SchemaMigrator(error_log=error_log).migrate(store)

        with TestClient(app) as client:
            body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["environment"] == "Production"
        assert body["schema_version"] == latest_version()

    def test_degraded(self, store, error_log, missing_static_dir, production):
        store.path.write_bytes(b"garbage" * 200)
        app = build(production, store, error_log, missing_static_dir)
        app.state.migration_result = SchemaMigrator(error_log=error_log).migrate(store)

        with TestClient(app) as client:
            body = client.get("/health").json()

        assert body["status"] == "degraded"


class TestStaticAssets:
    """Tests for static file serving."""

    def test_serves_files_from_static_dir(self, store, error_log, data_dir, production):
        static_dir = Path(data_dir) / "wwwroot"
        (static_dir / "css").mkdir(parents=True)
        (static_dir / "css" / "app.css").write_text("body { color: black; }")
        app = build(production, store, error_log, static_dir)

        with TestClient(app) as client:
            asset = client.get("/css/app.css")
            home = client.get("/")

        assert asset.status_code == 200
        assert "color: black" in asset.text
        assert home.json()["service"] == "identity-host"

    def test_bundled_assets(self, store, error_log, production):
        app = build(production, store, error_log, STATIC_DIR)

        with TestClient(app) as client:
            response = client.get("/css/site.css")

        assert response.status_code == 200


class TestListenerBinding:
    """Tests for binding the listener socket."""

    def test_assemble_binds_resolved_address(self, store, error_log, missing_static_dir):
        assembler = ServiceAssembler(
            Environment.PRODUCTION,
            SchemaMigrator(error_log=error_log),
            port=0,
            static_dir=missing_static_dir,
        )

        instance = assembler.assemble("127.0.0.1", store)
        try:
            host, port = instance.bound_address
            assert host == "127.0.0.1"
            assert port > 0
            assert instance.started is False
        finally:
            instance.listener.close()

    def test_port_in_use(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        port = blocker.getsockname()[1]
        try:
            with pytest.raises(AssemblyFailure) as exc_info:
                bind_listener("127.0.0.1", port)
        finally:
            blocker.close()

        assert exc_info.value.port == port
        assert exc_info.value.address == "127.0.0.1"

    def test_unassigned_address(self):
        """Binding an address the host does not own fails assembly."""
        with pytest.raises(AssemblyFailure):
            bind_listener("192.0.2.123", 0)

    def test_build_failure_wrapped(self, store, error_log, missing_static_dir, listener_recorder):
        class BrokenAssembler(ServiceAssembler):
            def build_app(self, store):
                raise KeyError("missing service")

        assembler = BrokenAssembler(
            Environment.PRODUCTION,
            SchemaMigrator(error_log=error_log),
            static_dir=missing_static_dir,
            listener_factory=listener_recorder,
        )

        with pytest.raises(AssemblyFailure):
            assembler.assemble("192.168.1.50", store)

        assert listener_recorder.calls == []
