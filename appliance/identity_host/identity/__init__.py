"""
Identity module - users, cookie sign-in and the /Account endpoints.

These are the collaborators the service assembler wires over the migrated
store. They rely on the schema created by store.migrations.
"""

from .accessor import UserAccessor
from .email import NoOpEmailSender
from .models import ApplicationUser
from .redirect import IdentityRedirect, RedirectManager
from .schemes import AuthenticationOptions, IdentityConstants, SignInManager, SignInResult
from .services import IdentityServices, build_identity_services
from .users import DuplicateUserError, PasswordHasher, UserStore

__all__ = [
    "ApplicationUser",
    "UserStore",
    "PasswordHasher",
    "DuplicateUserError",
    "AuthenticationOptions",
    "IdentityConstants",
    "SignInManager",
    "SignInResult",
    "IdentityRedirect",
    "RedirectManager",
    "UserAccessor",
    "NoOpEmailSender",
    "IdentityServices",
    "build_identity_services",
]
