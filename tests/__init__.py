"""
Identity Host Test Suite.

This package contains:
- unit/: Unit tests (temporary SQLite files, faked host platform)
- integration/: Integration tests (assembled app, startup sequence, loopback server)
"""
