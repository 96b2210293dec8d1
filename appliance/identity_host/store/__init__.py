"""
Store module for the identity host - native provider, store handle, migrations.

This module handles:
- Pinning the native SQLite provider for the process
- The fixed-path identity store and its connections
- Ordered, transactional schema migrations

Invariants:
    - The provider is bound and frozen before any connection is opened
    - Each migration step is atomic; versions only move forward
"""

from .datastore import DataStore
from .migrations import MIGRATIONS, Migration, latest_version
from .migrator import MigrationResult, SchemaMigrator
from .provider import (
    NativeProvider,
    NativeProviderBinder,
    ProviderBinding,
    get_binding,
    reset_binding,
)

__all__ = [
    "DataStore",
    "Migration",
    "MIGRATIONS",
    "latest_version",
    "MigrationResult",
    "SchemaMigrator",
    "NativeProvider",
    "NativeProviderBinder",
    "ProviderBinding",
    "get_binding",
    "reset_binding",
]
