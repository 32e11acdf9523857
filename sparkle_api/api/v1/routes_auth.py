# File: sparkle_api/api/v1/routes_auth.py

"""
Auth API routes.

Successful register / login calls return the user, a bearer token pair, the
session id and a CSRF token. State-changing calls on an existing session
(logout) expect that CSRF token back in ``X-CSRF-Token``.
"""

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from sparkle_api.api.deps import AuthContext, get_auth_context, get_current_user, require_csrf
from sparkle_api.core.exceptions import AuthError
from sparkle_api.core.network import client_key, get_client_ip
from sparkle_api.db.session import get_db
from sparkle_api.models.user import User
from sparkle_api.schemas.auth import (
    AuthResult,
    EmailTokenRequest,
    LoginRequest,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshRequest,
    TokenPair,
    TwoFactorEnableRequest,
    TwoFactorSetup,
)
from sparkle_api.schemas.user import UserCreate, UserRead
from sparkle_api.services import auth_service
from sparkle_api.services.rate_limit import registration_limiter

router = APIRouter()


@router.post(
    "/register",
    response_model=AuthResult,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
)
def register(payload: UserCreate, request: Request, db: Session = Depends(get_db)):
    """
    Register a new account and sign it in.

    Limited to 5 attempts per client address every 15 minutes.
    """
    ip = get_client_ip(request)
    limit = registration_limiter.hit(client_key(request))
    if not limit.allowed:
        raise AuthError(
            f"Too many registration attempts, retry in {limit.reset_in}s",
            "RATE_LIMITED",
            status.HTTP_429_TOO_MANY_REQUESTS,
        )

    return auth_service.register_user(
        db,
        payload,
        ip=ip,
        user_agent=request.headers.get("user-agent"),
    )


@router.post("/login", response_model=AuthResult, summary="Sign in")
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    return auth_service.authenticate_user(
        db,
        email=payload.email,
        password=payload.password,
        totp_code=payload.totp_code,
        ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@router.post("/refresh", response_model=TokenPair, summary="Rotate the token pair")
def refresh(payload: RefreshRequest, db: Session = Depends(get_db)):
    return auth_service.refresh_tokens(db, payload.refresh_token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="End this session")
def logout(context: AuthContext = Depends(require_csrf)):
    auth_service.logout(context.token, context.payload)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/logout-all", status_code=status.HTTP_204_NO_CONTENT, summary="End every session")
def logout_all(context: AuthContext = Depends(require_csrf)):
    auth_service.logout_everywhere(context.token, context.payload)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=UserRead, summary="Current user")
def me(user: User = Depends(get_current_user)):
    return auth_service.sanitize_user(user)


@router.post("/verify-email", response_model=UserRead, summary="Confirm an email address")
def verify_email(payload: EmailTokenRequest, db: Session = Depends(get_db)):
    return auth_service.sanitize_user(auth_service.verify_email(db, payload.token))


@router.post(
    "/password-reset/request",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a password reset",
)
def request_password_reset(payload: PasswordResetRequest, db: Session = Depends(get_db)):
    """
    Always answers 202 so the response does not reveal whether the account exists.
    """
    auth_service.request_password_reset(db, payload.email)
    return MessageResponse(message="If an account exists for that email, a reset link has been sent.")


@router.post("/password-reset/confirm", response_model=MessageResponse, summary="Set a new password")
def confirm_password_reset(payload: PasswordResetConfirm, db: Session = Depends(get_db)):
    auth_service.reset_password(db, payload.token, payload.new_password)
    return MessageResponse(message="Password updated. Please sign in again.")


@router.post("/2fa/setup", response_model=TwoFactorSetup, summary="Generate a TOTP secret")
def setup_two_factor(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return auth_service.setup_two_factor(db, context.user)


@router.post("/2fa/enable", response_model=UserRead, summary="Turn on two-factor login")
def enable_two_factor(
    payload: TwoFactorEnableRequest,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return auth_service.sanitize_user(auth_service.enable_two_factor(db, context.user, payload.code))
