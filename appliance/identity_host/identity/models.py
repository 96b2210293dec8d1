"""
Identity data model.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class ApplicationUser:
    """A user row of the identity store.

    Attributes:
        id: Unique user identifier (UUID string)
        user_name: Display login name
        normalized_user_name: Upper-cased user name used for lookups
        email: Email address
        normalized_email: Upper-cased email used for lookups
        email_confirmed: Whether the email has been confirmed
        password_hash: Encoded PBKDF2 hash, None for password-less users
        security_stamp: Changes whenever credentials change
        concurrency_stamp: Changes on every update
        lockout_end: Lockout expiry (Unix ms), None if not locked out
        lockout_enabled: Whether failed logins can lock the account
        access_failed_count: Consecutive failed login attempts
    """

    id: str
    user_name: str
    normalized_user_name: str
    email: Optional[str]
    normalized_email: Optional[str]
    email_confirmed: bool = False
    password_hash: Optional[str] = None
    security_stamp: str = ""
    concurrency_stamp: str = ""
    lockout_end: Optional[int] = None
    lockout_enabled: bool = True
    access_failed_count: int = 0

    @classmethod
    def from_row(cls, row: Any) -> ApplicationUser:
        return cls(
            id=row["id"],
            user_name=row["user_name"],
            normalized_user_name=row["normalized_user_name"],
            email=row["email"],
            normalized_email=row["normalized_email"],
            email_confirmed=bool(row["email_confirmed"]),
            password_hash=row["password_hash"],
            security_stamp=row["security_stamp"] or "",
            concurrency_stamp=row["concurrency_stamp"] or "",
            lockout_end=row["lockout_end"],
            lockout_enabled=bool(row["lockout_enabled"]),
            access_failed_count=row["access_failed_count"],
        )

    def to_public_dict(self) -> dict:
        """Fields safe to return from an endpoint."""
        return {
            "id": self.id,
            "user_name": self.user_name,
            "email": self.email,
            "email_confirmed": self.email_confirmed,
        }
