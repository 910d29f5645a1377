from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from supabase import Client

from core.errors import Unauthorized, supabase_error
from core.rate_limiter import (
    LOGIN_MAX_REQUESTS,
    LOGIN_WINDOW_SECONDS,
    get_rate_limit_identifier,
    require_rate_limit,
)
from core.logging_config import logger
from dependencies.auth import get_current_user, CurrentUser
from dependencies.services import get_store_client
from models.user import ProfileUpdate


router = APIRouter(
    prefix="/auth",
    tags=["Auth"],
)


# ============================================================
# MODELS
# ============================================================
class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


# ============================================================
# LOGIN (SUPABASE AUTH)
# ============================================================
@router.post("/login", response_model=TokenResponse, summary="Authenticate user")
def login(payload: LoginRequest, request: Request, client: Client = Depends(get_store_client)):

    email = payload.email.strip().lower()

    identifier = get_rate_limit_identifier(request, user_id=email)
    require_rate_limit(
        request,
        identifier=identifier,
        max_requests=LOGIN_MAX_REQUESTS,
        window_seconds=LOGIN_WINDOW_SECONDS,
    )

    try:
        response = client.auth.sign_in_with_password(
            {"email": email, "password": payload.password}
        )
    except Exception as e:
        logger.warning(f"Login attempt failed for {email}: {type(e).__name__}")
        raise Unauthorized("Invalid email or password")

    if not response.session or not response.session.access_token:
        raise Unauthorized("Invalid email or password")

    return TokenResponse(access_token=response.session.access_token)


# ============================================================
# CURRENT USER
# ============================================================
@router.get("/me", response_model=CurrentUser, summary="Current authenticated user")
def read_me(current_user: CurrentUser = Depends(get_current_user)):
    return current_user


@router.patch("/me", response_model=CurrentUser, summary="Update current user profile")
def update_profile(
    payload: ProfileUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    client: Client = Depends(get_store_client),
):
    """
    Update the current user's profile (self-service).

    Users can update their own name and phone.
    Role, sites and status are changed by admins only.
    """
    updates = {}

    if payload.name is not None:
        updates["name"] = payload.name.strip() or None

    if payload.phone is not None:
        updates["phone"] = payload.phone.strip() or None

    if not updates:
        return current_user

    try:
        client.table("users").update(updates).eq("id", current_user.id).execute()
    except Exception as e:
        supabase_error(e, "Failed to update profile")

    logger.info(f"User {current_user.id} updated their profile")
    return current_user.model_copy(update=updates)
