"""
Identity store schema migrations.

Each migration is a numbered list of SQL statements. Versions are strictly
increasing and a released migration is never edited; schema changes go into a
new migration appended at the end of MIGRATIONS.

Table schema (latest version):
    users:
        - id TEXT PRIMARY KEY
        - user_name / normalized_user_name TEXT (normalized is UNIQUE)
        - email / normalized_email TEXT
        - email_confirmed INTEGER
        - password_hash TEXT
        - security_stamp / concurrency_stamp TEXT
        - phone_number TEXT, phone_number_confirmed INTEGER
        - two_factor_enabled INTEGER
        - lockout_end INTEGER (Unix ms), lockout_enabled INTEGER
        - access_failed_count INTEGER

    roles, user_roles, user_claims, role_claims, user_logins, user_tokens
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple


@dataclass(frozen=True)
class Migration:
    """A single schema step.

    Attributes:
        version: Schema version reached after applying this step
        name: Short human readable name
        statements: SQL statements applied in order, inside one transaction
    """

    version: int
    name: str
    statements: Tuple[str, ...]


MIGRATIONS: Tuple[Migration, ...] = (
    Migration(
        version=1,
        name="create_identity_schema",
        statements=(
            """
            CREATE TABLE users (
                id TEXT NOT NULL PRIMARY KEY,
                user_name TEXT,
                normalized_user_name TEXT,
                email TEXT,
                normalized_email TEXT,
                email_confirmed INTEGER NOT NULL DEFAULT 0,
                password_hash TEXT,
                security_stamp TEXT,
                concurrency_stamp TEXT,
                phone_number TEXT,
                phone_number_confirmed INTEGER NOT NULL DEFAULT 0,
                two_factor_enabled INTEGER NOT NULL DEFAULT 0,
                lockout_end INTEGER,
                lockout_enabled INTEGER NOT NULL DEFAULT 1,
                access_failed_count INTEGER NOT NULL DEFAULT 0
            )
            """,
            "CREATE UNIQUE INDEX ux_users_normalized_user_name ON users(normalized_user_name)",
            "CREATE INDEX ix_users_normalized_email ON users(normalized_email)",
            """
            CREATE TABLE roles (
                id TEXT NOT NULL PRIMARY KEY,
                name TEXT,
                normalized_name TEXT,
                concurrency_stamp TEXT
            )
            """,
            "CREATE UNIQUE INDEX ux_roles_normalized_name ON roles(normalized_name)",
        ),
    ),
    Migration(
        version=2,
        name="create_role_and_claim_tables",
        statements=(
            """
            CREATE TABLE user_roles (
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                role_id TEXT NOT NULL REFERENCES roles(id) ON DELETE CASCADE,
                PRIMARY KEY (user_id, role_id)
            )
            """,
            "CREATE INDEX ix_user_roles_role_id ON user_roles(role_id)",
            """
            CREATE TABLE user_claims (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                claim_type TEXT,
                claim_value TEXT
            )
            """,
            "CREATE INDEX ix_user_claims_user_id ON user_claims(user_id)",
            """
            CREATE TABLE role_claims (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                role_id TEXT NOT NULL REFERENCES roles(id) ON DELETE CASCADE,
                claim_type TEXT,
                claim_value TEXT
            )
            """,
            "CREATE INDEX ix_role_claims_role_id ON role_claims(role_id)",
        ),
    ),
    Migration(
        version=3,
        name="create_login_and_token_tables",
        statements=(
            """
            CREATE TABLE user_logins (
                login_provider TEXT NOT NULL,
                provider_key TEXT NOT NULL,
                provider_display_name TEXT,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                PRIMARY KEY (login_provider, provider_key)
            )
            """,
            "CREATE INDEX ix_user_logins_user_id ON user_logins(user_id)",
            """
            CREATE TABLE user_tokens (
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                login_provider TEXT NOT NULL,
                name TEXT NOT NULL,
                value TEXT,
                PRIMARY KEY (user_id, login_provider, name)
            )
            """,
        ),
    ),
)


def latest_version(migrations: Sequence[Migration] = MIGRATIONS) -> int:
    """Highest schema version known to this build (0 if none)."""
    return max((m.version for m in migrations), default=0)
