"""
Email sender used by the account endpoints.

The appliance has no mail relay; messages are logged and dropped.
"""

from __future__ import annotations

import logging
from typing import List, Protocol

from .models import ApplicationUser

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    def send_confirmation_link(self, user: ApplicationUser, email: str, link: str) -> None: ...

    def send_password_reset_link(self, user: ApplicationUser, email: str, link: str) -> None: ...

    def send_password_reset_code(self, user: ApplicationUser, email: str, code: str) -> None: ...


class NoOpEmailSender:
    """Drops every message after logging it.

    Attributes:
        sent: (kind, email) pairs of dropped messages, newest last
    """

    def __init__(self) -> None:
        self.sent: List[tuple[str, str]] = []

    def _drop(self, kind: str, user: ApplicationUser, email: str) -> None:
        self.sent.append((kind, email))
        logger.info(f"Dropped {kind} email for user {user.id}")

    def send_confirmation_link(self, user: ApplicationUser, email: str, link: str) -> None:
        self._drop("confirmation", user, email)

    def send_password_reset_link(self, user: ApplicationUser, email: str, link: str) -> None:
        self._drop("password_reset_link", user, email)

    def send_password_reset_code(self, user: ApplicationUser, email: str, code: str) -> None:
        self._drop("password_reset_code", user, email)
