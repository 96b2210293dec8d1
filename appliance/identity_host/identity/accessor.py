"""
Access to the signed-in user for request handlers.
"""

from __future__ import annotations

from fastapi import Request

from .models import ApplicationUser
from .redirect import RedirectManager
from .schemes import SignInManager

INVALID_USER_PATH = "/Account/InvalidUser"


class UserAccessor:
    """Loads the current user or redirects to the invalid-user page."""

    def __init__(self, sign_in: SignInManager, redirect_manager: RedirectManager) -> None:
        self.sign_in = sign_in
        self.redirect_manager = redirect_manager

    def get_required_user(self, request: Request) -> ApplicationUser:
        """Return the signed-in user.

        Raises:
            IdentityRedirect: If the request carries no valid user
        """
        user = self.sign_in.get_user(request)
        if user is None:
            self.redirect_manager.redirect_to_with_status(
                INVALID_USER_PATH,
                f"Error: Unable to load user with ID '{self.sign_in.get_user_id(request)}'.",
                request,
            )
        return user
