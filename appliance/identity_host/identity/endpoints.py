"""
Identity account endpoints.

Routes under /Account used by the account pages: registration, email
confirmation, password sign-in, sign-out and the current user's profile.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from .redirect import RedirectManager, to_local_path
from .schemes import SignInResult
from .services import IdentityServices
from .users import DuplicateUserError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/Account", tags=["Account"])


# --- Request/Response Models ---


class RegisterRequest(BaseModel):
    """Request to register a new account."""

    user_name: str = Field(..., min_length=1, max_length=256)
    email: str = Field(..., min_length=3, max_length=256)
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    """Password sign-in request."""

    user_name: str = Field(..., min_length=1)
    password: str = Field(...)


class UserResponse(BaseModel):
    """Public view of a user."""

    id: str
    user_name: str
    email: Optional[str] = None
    email_confirmed: bool


# --- Dependencies ---


def get_identity(request: Request) -> IdentityServices:
    """Get identity services from app state."""
    return request.app.state.identity


# --- Routes ---


@router.post("/Register", status_code=201)
def register(
    body: RegisterRequest,
    identity: IdentityServices = Depends(get_identity),
) -> dict[str, Any]:
    """Create an account and send the confirmation link."""
    try:
        user = identity.users.create(body.user_name, body.email, body.password)
    except DuplicateUserError as e:
        raise HTTPException(status_code=409, detail=str(e))

    code = identity.confirmation_code(user)
    link = f"/Account/ConfirmEmail?userId={quote(user.id)}&code={quote(code)}"
    identity.email_sender.send_confirmation_link(user, body.email, link)

    return {
        "user": UserResponse(**user.to_public_dict()).model_dump(),
        "requires_confirmation": identity.sign_in.require_confirmed_account,
    }


@router.get("/ConfirmEmail")
def confirm_email(
    request: Request,
    user_id: str = Query(..., alias="userId"),
    code: str = Query(...),
    identity: IdentityServices = Depends(get_identity),
) -> None:
    """Confirm an account email from the emailed link."""
    user = identity.users.find_by_id(user_id)
    if user is None:
        identity.redirect_manager.redirect_to_with_status(
            "/Account/InvalidUser", f"Error: Unable to load user with ID '{user_id}'.", request
        )
    if not identity.verify_confirmation_code(user, code):
        raise HTTPException(status_code=400, detail="Error confirming your email.")

    identity.users.confirm_email(user)
    identity.redirect_manager.redirect_to_with_status(
        "/Account/Login", "Thank you for confirming your email.", request
    )


@router.post("/Login")
def login(
    body: LoginRequest,
    response: Response,
    identity: IdentityServices = Depends(get_identity),
) -> dict[str, Any]:
    """Sign in with user name and password."""
    result, user = identity.sign_in.password_sign_in(body.user_name, body.password)

    if result == SignInResult.NOT_ALLOWED:
        raise HTTPException(status_code=403, detail="Account must be confirmed before signing in.")
    if result == SignInResult.LOCKED_OUT:
        raise HTTPException(status_code=423, detail="Account is locked out.")
    if result != SignInResult.SUCCEEDED or user is None:
        raise HTTPException(status_code=401, detail="Invalid login attempt.")

    identity.sign_in.sign_in(response, user)
    return {"user": UserResponse(**user.to_public_dict()).model_dump()}


@router.post("/Logout")
def logout(
    return_url: Optional[str] = Query(None, alias="returnUrl"),
    identity: IdentityServices = Depends(get_identity),
) -> RedirectResponse:
    """Sign out and go back to a local page."""
    response = RedirectResponse(to_local_path(return_url or "/"), status_code=302)
    identity.sign_in.sign_out(response)
    return response


@router.get("/Manage", response_model=UserResponse)
def manage(
    request: Request,
    identity: IdentityServices = Depends(get_identity),
) -> UserResponse:
    """Profile of the signed-in user."""
    user = identity.accessor.get_required_user(request)
    return UserResponse(**user.to_public_dict())


@router.get("/InvalidUser")
def invalid_user(request: Request, response: Response) -> dict[str, Optional[str]]:
    return {"status_message": RedirectManager.consume_status_message(request, response)}
