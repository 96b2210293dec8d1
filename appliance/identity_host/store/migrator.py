"""
Schema migrator for the identity store.

Advances the store to the latest schema version known to this build. Runs
once at startup, before the service accepts traffic.

Invariants:
    - Steps apply in strictly ascending version order
    - Each step (its statements plus the version record) is one transaction
    - The first failing step stops the run; the store stays at the last
      successfully applied version
    - A store already at the latest version sees no writes
    - The recorded version is never lowered
    - migrate() never raises; failures come back as a degraded result

How to change safely:
    - Append new migrations; never edit or renumber released ones
    - Keep statements SQLite-transactional (no VACUUM, no ATTACH)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from ..errors import MigrationFailure
from ..host.errorlog import MIGRATION_ERROR, ErrorLog, LoggingErrorLog
from .datastore import DataStore
from .migrations import MIGRATIONS, Migration, latest_version

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    """Outcome of a migration run.

    Attributes:
        success: True if the store ended at (or beyond) the latest version
        from_version: Version recorded before the run (None if unreadable)
        to_version: Version recorded after the run (None if unreadable)
        applied: Versions applied by this run, in order
        error: The failure, when success is False
    """

    success: bool
    from_version: Optional[int] = None
    to_version: Optional[int] = None
    applied: List[int] = field(default_factory=list)
    error: Optional[MigrationFailure] = None

    @property
    def degraded(self) -> bool:
        return not self.success


class SchemaMigrator:
    """Brings a DataStore up to the latest schema version.

    Example:
        >>> migrator = SchemaMigrator()
        >>> result = migrator.migrate(DataStore("/user/app.db"))
        >>> result.success
        True
    """

    VERSION_TABLE = "schema_version"

    def __init__(
        self,
        migrations: Sequence[Migration] = MIGRATIONS,
        error_log: Optional[ErrorLog] = None,
    ) -> None:
        versions = [m.version for m in migrations]
        if len(set(versions)) != len(versions):
            raise ValueError(f"Duplicate migration versions: {versions}")
        self.migrations = sorted(migrations, key=lambda m: m.version)
        self.error_log = error_log or LoggingErrorLog()

    @property
    def latest_version(self) -> int:
        return latest_version(self.migrations)

    def current_version(self, conn: Any) -> int:
        """Read the recorded schema version (0 for an unversioned store)."""
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (self.VERSION_TABLE,),
        ).fetchone()
        if row is None:
            return 0
        row = conn.execute(f"SELECT MAX(version) FROM {self.VERSION_TABLE}").fetchone()
        return row[0] or 0

    def pending(self, store: DataStore) -> List[Migration]:
        """Migrations not yet applied to the store."""
        with store.connect() as conn:
            current = self.current_version(conn)
        return [m for m in self.migrations if m.version > current]

    def ensure_created(self, store: DataStore) -> bool:
        """Optional pre-step: create the store file if it does not exist."""
        return store.ensure_created()

    def migrate(self, store: DataStore) -> MigrationResult:
        """Apply all pending migrations to the store.

        Returns:
            MigrationResult; on failure the error is also written to the
            host error log and the result is marked degraded.
        """
        result = MigrationResult(success=False)
        try:
            with store.connect() as conn:
                current = self.current_version(conn)
                result.from_version = current
                result.to_version = current

                if current > self.latest_version:
                    logger.warning(
                        f"Store {store.path} is at schema version {current}, newer than "
                        f"this build's latest version {self.latest_version}; leaving it untouched"
                    )
                    result.success = True
                    return result

                for migration in self.migrations:
                    if migration.version <= current:
                        continue
                    self._apply(conn, migration, current)
                    current = migration.version
                    result.to_version = current
                    result.applied.append(current)

            result.success = True
        except MigrationFailure as e:
            result.error = e
        except Exception as e:
            result.error = MigrationFailure(
                str(e),
                current_version=result.to_version,
            )

        if result.error is not None:
            self.error_log.error(f"{MIGRATION_ERROR}: {result.error.message}")
            logger.error(
                f"Schema migration failed at version {result.to_version}: {result.error.message}"
            )
            return result

        if result.applied:
            logger.info(
                f"Migrated {store.path} from version {result.from_version} "
                f"to {result.to_version}"
            )
        else:
            logger.info(f"Store {store.path} already at schema version {result.to_version}")
        logger.info("Database auto-migration completed successfully.")
        return result

    def _ensure_version_table(self, conn: Any) -> None:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.VERSION_TABLE} (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at INTEGER NOT NULL
            )
            """
        )

    def _apply(self, conn: Any, migration: Migration, current: int) -> None:
        """Apply one migration inside its own transaction.

        Raises:
            MigrationFailure: If any statement fails; the step is rolled back
        """
        logger.info(f"Applying migration {migration.version} ({migration.name})")
        try:
            conn.execute("BEGIN IMMEDIATE")
        except Exception as e:
            raise MigrationFailure(
                f"migration {migration.version} ({migration.name}) could not start: {e}",
                version=migration.version,
                current_version=current,
            ) from e
        try:
            self._ensure_version_table(conn)
            for statement in migration.statements:
                conn.execute(statement)
            conn.execute(
                f"INSERT INTO {self.VERSION_TABLE} (version, name, applied_at) VALUES (?, ?, ?)",
                (migration.version, migration.name, int(time.time() * 1000)),
            )
            conn.execute("COMMIT")
        except Exception as e:
            # SQLite ends the transaction itself on some errors (full disk, I/O)
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise MigrationFailure(
                f"migration {migration.version} ({migration.name}) failed: {e}",
                version=migration.version,
                current_version=current,
            ) from e
