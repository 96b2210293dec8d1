"""
Shared fixtures for identity host tests.
"""

import tempfile
from pathlib import Path

import pytest

from appliance.identity_host.config import Environment
from appliance.identity_host.service.assembler import ServiceAssembler
from appliance.identity_host.store.datastore import DataStore
from appliance.identity_host.store.provider import (
    NativeProviderBinder,
    ProviderBinding,
    reset_binding,
)


class RecordingErrorLog:
    """ErrorLog keeping every message in memory."""

    def __init__(self):
        self.errors = []
        self.warnings = []
        self.notices = []

    def error(self, message):
        self.errors.append(message)

    def warn(self, message):
        self.warnings.append(message)

    def notice(self, message):
        self.notices.append(message)


class FakeListener:
    """Stands in for a bound socket."""

    def __init__(self, address, port):
        self.address = address
        self.port = port
        self.closed = False

    def getsockname(self):
        return (self.address, self.port)

    def close(self):
        self.closed = True


class ListenerRecorder:
    """Listener factory recording every bind request."""

    def __init__(self):
        self.calls = []
        self.listeners = []

    def __call__(self, address, port):
        self.calls.append((address, port))
        listener = FakeListener(address, port)
        self.listeners.append(listener)
        return listener


class NonBlockingAssembler(ServiceAssembler):
    """Assembler whose instances return from run() immediately."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.instances = []
        self.runs = []

    def assemble(self, address, store):
        instance = super().assemble(address, store)
        instance.run = lambda: self.runs.append(instance)
        self.instances.append(instance)
        return instance


@pytest.fixture(autouse=True)
def _reset_provider_binding():
    """Every test starts with an unbound process-wide provider."""
    reset_binding()
    yield
    reset_binding()


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def binding():
    """A private binding with sqlite3 bound and frozen."""
    binding = ProviderBinding()
    NativeProviderBinder("sqlite3", binding=binding).bind()
    return binding


@pytest.fixture
def store(data_dir, binding):
    """Store file inside the temporary directory."""
    return DataStore(Path(data_dir) / "app.db", binding=binding)


@pytest.fixture
def error_log():
    return RecordingErrorLog()


@pytest.fixture
def listener_recorder():
    return ListenerRecorder()


@pytest.fixture
def missing_static_dir(data_dir):
    return Path(data_dir) / "no-wwwroot"


@pytest.fixture
def production():
    return Environment.PRODUCTION
