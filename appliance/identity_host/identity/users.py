"""
User store for the identity subsystem.

CRUD over the users table of the migrated identity store, plus password
hashing and lockout bookkeeping.

Invariants:
    - normalized_user_name is unique
    - password_hash never leaves this module in plain responses
    - security_stamp changes whenever the password changes
    - concurrency_stamp changes on every update

Thread safety:
    Each operation opens its own connection through the DataStore.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import replace
from typing import Optional

import argon2
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from ..store.datastore import DataStore
from .models import ApplicationUser

logger = logging.getLogger(__name__)


class DuplicateUserError(Exception):
    """A user with the same normalized name already exists."""

    pass


class UserNotFoundError(Exception):
    """No user with the given id."""

    pass


class ConcurrencyError(Exception):
    """The user row changed since it was read."""

    pass


def normalize(value: Optional[str]) -> Optional[str]:
    return value.strip().upper() if value else value


class PasswordHasher:
    """Argon2id password hashing.

    Hashes are PHC-encoded strings (``$argon2id$v=19$m=...,t=...,p=...$salt$hash``)
    so the cost parameters travel with each stored hash.
    """

    def __init__(self, time_cost: int = 3, memory_cost: int = 65536, parallelism: int = 4) -> None:
        self._hasher = argon2.PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            type=argon2.Type.ID,
        )

    def hash_password(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify_password(self, encoded: Optional[str], password: str) -> bool:
        """Check a password; unreadable or foreign hashes never match."""
        if not encoded:
            return False
        try:
            return self._hasher.verify(encoded, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    def needs_rehash(self, encoded: str) -> bool:
        """Whether a stored hash was made with different cost parameters."""
        try:
            return self._hasher.check_needs_rehash(encoded)
        except InvalidHashError:
            return True


class UserStore:
    """Users table access.

    Example:
        >>> users = UserStore(DataStore("/user/app.db"))
        >>> user = users.create("alice", "alice@example.com", "s3cret!")
        >>> users.find_by_name("ALICE").id == user.id
        True
    """

    def __init__(self, store: DataStore, hasher: Optional[PasswordHasher] = None) -> None:
        self.store = store
        self.hasher = hasher or PasswordHasher()

    def create(self, user_name: str, email: Optional[str], password: Optional[str]) -> ApplicationUser:
        """Create a user.

        Raises:
            DuplicateUserError: If the user name is taken
        """
        user = ApplicationUser(
            id=str(uuid.uuid4()),
            user_name=user_name,
            normalized_user_name=normalize(user_name),
            email=email,
            normalized_email=normalize(email),
            password_hash=self.hasher.hash_password(password) if password else None,
            security_stamp=uuid.uuid4().hex,
            concurrency_stamp=str(uuid.uuid4()),
        )

        with self.store.transaction() as conn:
            existing = conn.execute(
                "SELECT id FROM users WHERE normalized_user_name = ?",
                (user.normalized_user_name,),
            ).fetchone()
            if existing is not None:
                raise DuplicateUserError(f"User name '{user_name}' is already taken")

            conn.execute(
                """
                INSERT INTO users (
                    id, user_name, normalized_user_name, email, normalized_email,
                    email_confirmed, password_hash, security_stamp, concurrency_stamp,
                    lockout_end, lockout_enabled, access_failed_count
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user.id,
                    user.user_name,
                    user.normalized_user_name,
                    user.email,
                    user.normalized_email,
                    int(user.email_confirmed),
                    user.password_hash,
                    user.security_stamp,
                    user.concurrency_stamp,
                    user.lockout_end,
                    int(user.lockout_enabled),
                    user.access_failed_count,
                ),
            )

        logger.info(f"Created user {user.id} ({user_name})")
        return user

    def find_by_id(self, user_id: str) -> Optional[ApplicationUser]:
        with self.store.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return ApplicationUser.from_row(row) if row else None

    def find_by_name(self, user_name: str) -> Optional[ApplicationUser]:
        with self.store.connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE normalized_user_name = ?",
                (normalize(user_name),),
            ).fetchone()
        return ApplicationUser.from_row(row) if row else None

    def find_by_email(self, email: str) -> Optional[ApplicationUser]:
        with self.store.connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE normalized_email = ? LIMIT 1",
                (normalize(email),),
            ).fetchone()
        return ApplicationUser.from_row(row) if row else None

    def update(self, user: ApplicationUser) -> ApplicationUser:
        """Persist changes, guarded by the concurrency stamp.

        Raises:
            ConcurrencyError: If the row was modified or deleted meanwhile
        """
        updated = replace(
            user,
            normalized_user_name=normalize(user.user_name),
            normalized_email=normalize(user.email),
            concurrency_stamp=str(uuid.uuid4()),
        )
        with self.store.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE users SET
                    user_name = ?, normalized_user_name = ?, email = ?, normalized_email = ?,
                    email_confirmed = ?, password_hash = ?, security_stamp = ?,
                    concurrency_stamp = ?, lockout_end = ?, lockout_enabled = ?,
                    access_failed_count = ?
                WHERE id = ? AND concurrency_stamp = ?
                """,
                (
                    updated.user_name,
                    updated.normalized_user_name,
                    updated.email,
                    updated.normalized_email,
                    int(updated.email_confirmed),
                    updated.password_hash,
                    updated.security_stamp,
                    updated.concurrency_stamp,
                    updated.lockout_end,
                    int(updated.lockout_enabled),
                    updated.access_failed_count,
                    user.id,
                    user.concurrency_stamp,
                ),
            )
            if cursor.rowcount == 0:
                raise ConcurrencyError(f"User {user.id} was modified or deleted")
        return updated

    def delete(self, user_id: str) -> bool:
        with self.store.transaction() as conn:
            deleted = conn.execute("DELETE FROM users WHERE id = ?", (user_id,)).rowcount > 0
        if deleted:
            logger.info(f"Deleted user {user_id}")
        return deleted

    def set_password(self, user: ApplicationUser, password: str) -> ApplicationUser:
        return self.update(
            replace(
                user,
                password_hash=self.hasher.hash_password(password),
                security_stamp=uuid.uuid4().hex,
            )
        )

    def check_password(self, user: ApplicationUser, password: str) -> bool:
        return self.hasher.verify_password(user.password_hash, password)

    def confirm_email(self, user: ApplicationUser) -> ApplicationUser:
        return self.update(replace(user, email_confirmed=True))

    def is_locked_out(self, user: ApplicationUser) -> bool:
        return (
            user.lockout_enabled
            and user.lockout_end is not None
            and user.lockout_end > int(time.time() * 1000)
        )

    def record_failed_access(
        self,
        user: ApplicationUser,
        max_attempts: int = 5,
        lockout_seconds: int = 300,
    ) -> ApplicationUser:
        """Count a failed login, locking the account after max_attempts."""
        failures = user.access_failed_count + 1
        lockout_end = user.lockout_end
        if user.lockout_enabled and failures >= max_attempts:
            lockout_end = int(time.time() * 1000) + lockout_seconds * 1000
            failures = 0
            logger.warning(f"User {user.id} locked out after {max_attempts} failed attempts")
        return self.update(replace(user, access_failed_count=failures, lockout_end=lockout_end))

    def reset_access_failed(self, user: ApplicationUser) -> ApplicationUser:
        if user.access_failed_count == 0 and user.lockout_end is None:
            return user
        return self.update(replace(user, access_failed_count=0, lockout_end=None))
