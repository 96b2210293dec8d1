"""
Redirects with a one-shot status message.

Account endpoints abort the current request by raising IdentityRedirect; the
exception handler installed by the service assembler turns it into a 302
response and, if a message is attached, a short-lived status cookie that the
target page reads once.

Invariants:
    - Redirect targets are always local (scheme and host are stripped)
    - The status cookie expires after a few seconds and is cleared when read
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from fastapi import Request, Response
from fastapi.responses import RedirectResponse

logger = logging.getLogger(__name__)

STATUS_COOKIE_NAME = "Identity.StatusMessage"
STATUS_COOKIE_MAX_AGE = 5


class IdentityRedirect(Exception):
    """Control-flow exception carrying a redirect target."""

    def __init__(self, uri: str, status_message: Optional[str] = None) -> None:
        super().__init__(f"Redirect to {uri}")
        self.uri = uri
        self.status_message = status_message


def to_local_path(uri: str) -> str:
    """Strip scheme and host so a redirect can never leave the site."""
    parts = urlsplit(uri)
    path = parts.path or "/"
    if not path.startswith("/"):
        path = "/" + path
    # "//host" would still be treated as a network-path reference
    while path.startswith("//"):
        path = path[1:]
    return urlunsplit(("", "", path, parts.query, ""))


class RedirectManager:
    """Issues identity redirects."""

    def redirect_to(self, uri: Optional[str]) -> None:
        raise IdentityRedirect(to_local_path(uri or "/"))

    def redirect_to_with_status(self, uri: str, message: str, request: Request) -> None:
        logger.debug(f"Redirecting {request.url.path} to {uri}: {message}")
        raise IdentityRedirect(to_local_path(uri), status_message=message)

    @staticmethod
    def consume_status_message(request: Request, response: Response) -> Optional[str]:
        """Read the status message and clear it so it is shown only once."""
        message = request.cookies.get(STATUS_COOKIE_NAME)
        if message is not None:
            response.delete_cookie(STATUS_COOKIE_NAME, httponly=True, samesite="strict")
        return message


async def identity_redirect_handler(request: Request, exc: IdentityRedirect) -> RedirectResponse:
    """Exception handler turning IdentityRedirect into a response."""
    response = RedirectResponse(exc.uri, status_code=302)
    if exc.status_message is not None:
        response.set_cookie(
            STATUS_COOKIE_NAME,
            exc.status_message,
            max_age=STATUS_COOKIE_MAX_AGE,
            httponly=True,
            samesite="strict",
        )
    return response
