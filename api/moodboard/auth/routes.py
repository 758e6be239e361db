"""Authentication routes proxying Supabase Auth.

Sign-up, sign-in and session refresh go straight to Supabase; the API only
reshapes the response. Profiles are created lazily on first authenticated
use (``/auth/me`` or any route that needs plan data).
"""

from typing import Any, Callable, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, EmailStr, Field
from supabase import Client
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.auth.supabase import get_supabase
from moodboard.auth.middleware import get_current_user, AuthUser
from moodboard.auth.profiles import ensure_profile
from moodboard.config import settings
from moodboard.db import get_db
from moodboard.logging_config import logger

router = APIRouter()


class Credentials(BaseModel):
    email: EmailStr
    password: str


class SignUpRequest(Credentials):
    password: str = Field(..., min_length=8, description="Password (min 8 characters)")
    full_name: Optional[str] = Field(None, max_length=255)


class EmailRequest(BaseModel):
    """Password reset and magic link requests."""

    email: EmailStr


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class AuthResponse(BaseModel):
    """Session tokens, or only the user while email confirmation is pending."""

    access_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    email_confirmation_required: bool = False
    user: dict


class MessageResponse(BaseModel):
    message: str


def _callback_url() -> str:
    return f"{settings.api_base_url.rstrip('/')}/auth/callback"


def _supabase_call(action: str, fn: Callable[..., Any], *args, failure: HTTPException, **log) -> Any:
    """Run a Supabase Auth call, mapping any client error to ``failure``."""
    try:
        return fn(*args)
    except Exception as e:
        logger.warning("Supabase auth call failed", action=action, error=str(e), **log)
        raise failure from e


def _auth_response(response) -> AuthResponse:
    user = response.user
    user_payload = {
        "id": user.id,
        "email": user.email,
        "email_verified": user.email_confirmed_at is not None,
    } if user else {}

    session = response.session
    if session is None:
        return AuthResponse(email_confirmation_required=True, user=user_payload)
    return AuthResponse(
        access_token=session.access_token,
        expires_in=session.expires_in or 3600,
        refresh_token=session.refresh_token,
        user=user_payload,
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(request: SignUpRequest, supabase: Client = Depends(get_supabase)):
    """Create a Supabase user; no session is returned while email confirmation is pending."""
    response = _supabase_call(
        "sign_up",
        supabase.auth.sign_up,
        {
            "email": request.email,
            "password": request.password,
            "options": {
                "data": {"full_name": request.full_name},
                "email_redirect_to": _callback_url(),
            },
        },
        failure=HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Registration failed"),
        email=request.email,
    )
    if not response.user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Registration failed")

    logger.info("User registered", user_id=response.user.id, pending_confirmation=response.session is None)
    return _auth_response(response)


@router.post("/login", response_model=AuthResponse)
async def login(request: Credentials, supabase: Client = Depends(get_supabase)):
    invalid = HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    response = _supabase_call(
        "sign_in_with_password",
        supabase.auth.sign_in_with_password,
        {"email": request.email, "password": request.password},
        failure=invalid,
        email=request.email,
    )
    if not response.user or not response.session:
        raise invalid

    logger.info("User logged in", user_id=response.user.id)
    return _auth_response(response)


@router.post("/refresh", response_model=AuthResponse)
async def refresh_token(request: RefreshTokenRequest, supabase: Client = Depends(get_supabase)):
    invalid = HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    response = _supabase_call("refresh_session", supabase.auth.refresh_session, request.refresh_token, failure=invalid)
    if not response.session:
        raise invalid
    return _auth_response(response)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    current_user: AuthUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
):
    _supabase_call(
        "sign_out",
        supabase.auth.sign_out,
        failure=HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Logout failed"),
        user_id=str(current_user.user_id),
    )
    logger.info("User logged out", user_id=str(current_user.user_id))
    return MessageResponse(message="Logged out successfully")


@router.post("/password-reset", response_model=MessageResponse)
async def request_password_reset(request: EmailRequest, supabase: Client = Depends(get_supabase)):
    """Always answers the same way so account existence is not revealed."""
    try:
        supabase.auth.reset_password_email(request.email, {"redirect_to": f"{settings.site_url}/reset-password"})
    except Exception as e:
        logger.warning("Password reset email failed", error=str(e))
    return MessageResponse(message="Password reset email sent if account exists")


@router.post("/magic-link", response_model=MessageResponse)
async def send_magic_link(request: EmailRequest, supabase: Client = Depends(get_supabase)):
    try:
        supabase.auth.sign_in_with_otp({"email": request.email, "options": {"email_redirect_to": _callback_url()}})
    except Exception as e:
        logger.warning("Magic link email failed", error=str(e))
    return MessageResponse(message="Magic link sent to your email")


@router.get("/callback")
async def auth_callback(code: Optional[str] = None):
    """Exchange the email/OAuth code for a session, then return to the site either way."""
    if code:
        try:
            get_supabase().auth.exchange_code_for_session({"auth_code": code})
        except HTTPException as e:
            logger.warning("Supabase not configured for auth callback", detail=e.detail)
        except Exception as e:
            logger.warning("Auth code exchange failed", error=str(e))

    return RedirectResponse(url=settings.site_url, status_code=status.HTTP_302_FOUND)


@router.get("/me")
async def get_me(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The authenticated user with their plan."""
    profile = await ensure_profile(db, current_user)
    return {
        "id": str(current_user.user_id),
        "email": current_user.email,
        "email_verified": current_user.email_verified,
        "full_name": profile.full_name or current_user.full_name,
        "role": profile.role.value,
        "subscription_tier": profile.subscription_tier.value,
    }
