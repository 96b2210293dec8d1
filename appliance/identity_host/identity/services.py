"""
Identity service graph.

Wires the user store, sign-in manager, redirect manager, user accessor and
email sender over one DataStore.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Optional

from ..config import IdentitySettings
from ..store.datastore import DataStore
from .accessor import UserAccessor
from .email import EmailSender, NoOpEmailSender
from .models import ApplicationUser
from .redirect import RedirectManager
from .schemes import AuthenticationOptions, CookieSigner, SignInManager
from .users import UserStore


@dataclass
class IdentityServices:
    """The identity collaborators shared by all request handlers."""

    options: AuthenticationOptions
    users: UserStore
    signer: CookieSigner
    sign_in: SignInManager
    redirect_manager: RedirectManager
    accessor: UserAccessor
    email_sender: EmailSender

    def confirmation_code(self, user: ApplicationUser) -> str:
        return self.signer.sign(f"confirm|{user.id}|{user.security_stamp}")

    def verify_confirmation_code(self, user: ApplicationUser, code: str) -> bool:
        expected = f"confirm|{user.id}|{user.security_stamp}"
        value = self.signer.unsign(code)
        return value is not None and hmac.compare_digest(value, expected)


def build_identity_services(
    store: DataStore,
    settings: Optional[IdentitySettings] = None,
    options: Optional[AuthenticationOptions] = None,
    email_sender: Optional[EmailSender] = None,
) -> IdentityServices:
    """Construct the identity services bound to a store."""
    settings = settings or IdentitySettings()
    options = options or AuthenticationOptions()
    users = UserStore(store)
    signer = CookieSigner(settings.cookie_secret)
    sign_in = SignInManager(
        users,
        signer,
        options=options,
        require_confirmed_account=settings.require_confirmed_account,
        max_age_seconds=settings.cookie_max_age_seconds,
    )
    redirect_manager = RedirectManager()
    return IdentityServices(
        options=options,
        users=users,
        signer=signer,
        sign_in=sign_in,
        redirect_manager=redirect_manager,
        accessor=UserAccessor(sign_in, redirect_manager),
        email_sender=email_sender or NoOpEmailSender(),
    )
