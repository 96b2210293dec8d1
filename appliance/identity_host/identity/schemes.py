"""
Authentication schemes and cookie sign-in.

The application signs users in with a signed cookie per scheme. The default
scheme authenticates requests; the default sign-in scheme carries the
intermediate identity of external logins.

Invariants:
    - Cookie values are HMAC-SHA256 signed with the configured secret
    - A cookie is only valid while the user's security stamp is unchanged
    - Unconfirmed accounts cannot sign in when confirmation is required
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Request, Response

from .models import ApplicationUser
from .users import UserStore

logger = logging.getLogger(__name__)


class IdentityConstants:
    """Well-known authentication scheme names."""

    APPLICATION_SCHEME = "Identity.Application"
    EXTERNAL_SCHEME = "Identity.External"
    TWO_FACTOR_USER_ID_SCHEME = "Identity.TwoFactorUserId"


@dataclass(frozen=True)
class AuthenticationOptions:
    """Scheme selection for the application.

    Attributes:
        default_scheme: Scheme used to authenticate requests
        default_sign_in_scheme: Scheme used when signing in external identities
    """

    default_scheme: str = IdentityConstants.APPLICATION_SCHEME
    default_sign_in_scheme: str = IdentityConstants.EXTERNAL_SCHEME


class SignInResult(Enum):
    """Outcome of a password sign-in."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NOT_ALLOWED = "not_allowed"
    LOCKED_OUT = "locked_out"


class CookieSigner:
    """Signs and verifies cookie payloads."""

    def __init__(self, secret: str) -> None:
        self._key = secret.encode("utf-8")

    def sign(self, value: str) -> str:
        payload = base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii")
        return f"{payload}.{self._mac(payload)}"

    def unsign(self, token: Optional[str]) -> Optional[str]:
        if not token or "." not in token:
            return None
        payload, mac = token.rsplit(".", 1)
        if not hmac.compare_digest(mac, self._mac(payload)):
            return None
        try:
            return base64.urlsafe_b64decode(payload.encode("ascii")).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            return None

    def _mac(self, payload: str) -> str:
        return hmac.new(self._key, payload.encode("ascii"), hashlib.sha256).hexdigest()


class SignInManager:
    """Password sign-in and cookie session handling.

    Args:
        users: User store
        signer: Cookie signer
        options: Scheme selection
        require_confirmed_account: Reject sign-in until the email is confirmed
        max_age_seconds: Lifetime of the application cookie
    """

    def __init__(
        self,
        users: UserStore,
        signer: CookieSigner,
        options: Optional[AuthenticationOptions] = None,
        require_confirmed_account: bool = True,
        max_age_seconds: int = 14 * 24 * 3600,
    ) -> None:
        self.users = users
        self.signer = signer
        self.options = options or AuthenticationOptions()
        self.require_confirmed_account = require_confirmed_account
        self.max_age_seconds = max_age_seconds

    def can_sign_in(self, user: ApplicationUser) -> bool:
        if self.require_confirmed_account and not user.email_confirmed:
            logger.debug(f"User {user.id} cannot sign in without a confirmed account")
            return False
        return True

    def password_sign_in(self, user_name: str, password: str) -> tuple[SignInResult, Optional[ApplicationUser]]:
        user = self.users.find_by_name(user_name)
        if user is None:
            return SignInResult.FAILED, None
        if not self.can_sign_in(user):
            return SignInResult.NOT_ALLOWED, user
        if self.users.is_locked_out(user):
            return SignInResult.LOCKED_OUT, user

        if not self.users.check_password(user, password):
            user = self.users.record_failed_access(user)
            if self.users.is_locked_out(user):
                return SignInResult.LOCKED_OUT, user
            return SignInResult.FAILED, user

        user = self.users.reset_access_failed(user)
        return SignInResult.SUCCEEDED, user

    def sign_in(self, response: Response, user: ApplicationUser) -> None:
        """Issue the application cookie for a user."""
        issued = int(time.time())
        token = self.signer.sign(f"{user.id}|{user.security_stamp}|{issued}")
        response.set_cookie(
            self.options.default_scheme,
            token,
            max_age=self.max_age_seconds,
            httponly=True,
            samesite="lax",
        )
        logger.info(f"User {user.id} signed in")

    def sign_out(self, response: Response) -> None:
        response.delete_cookie(self.options.default_scheme)
        response.delete_cookie(self.options.default_sign_in_scheme)

    def get_user_id(self, request: Request) -> Optional[str]:
        """User id claimed by the request's application cookie, if signed."""
        value = self.signer.unsign(request.cookies.get(self.options.default_scheme))
        if value is None:
            return None
        parts = value.split("|")
        if len(parts) != 3:
            return None
        user_id, _, issued = parts
        if int(time.time()) - int(issued) > self.max_age_seconds:
            return None
        return user_id

    def get_user(self, request: Request) -> Optional[ApplicationUser]:
        """Load the signed-in user, rejecting stale security stamps."""
        value = self.signer.unsign(request.cookies.get(self.options.default_scheme))
        user_id = self.get_user_id(request)
        if value is None or user_id is None:
            return None
        user = self.users.find_by_id(user_id)
        if user is None or value.split("|")[1] != user.security_stamp:
            return None
        return user
