# File: sparkle_api/services/auth_service.py

"""
Account flows: registration, login, token refresh, logout, email
verification, password reset and two-factor enrolment.

Failures are raised as ``AuthError`` with a stable ``code``; the HTTP layer
turns them into JSON responses.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sparkle_api.core.exceptions import AuthError
from sparkle_api.core.logging_config import get_logger
from sparkle_api.core.network import anonymize_ip
from sparkle_api.core.redis import get_redis
from sparkle_api.core.security import (
    discard_csrf_token,
    generate_csrf_token,
    generate_tokens,
    hash_password,
    revoke_token,
    store_csrf_token,
    verify_password,
    verify_refresh_token,
)
from sparkle_api.core.validation import normalize_email, validate_password
from sparkle_api.models.user import User
from sparkle_api.schemas.auth import AuthResult, TokenPair, TokenPayload, TwoFactorSetup
from sparkle_api.schemas.user import UserCreate, UserRead
from sparkle_api.services import rate_limit, session_service, token_store, two_factor_service

logger = get_logger(__name__)

RESERVED_USERNAMES = frozenset({
    "admin", "administrator", "root", "system", "sparkle", "support",
    "help", "info", "api", "app", "www", "mail", "blog", "shop",
    "store", "team", "staff", "moderator", "mod", "official",
})

INVALID_CREDENTIALS = ("Invalid email or password", "INVALID_CREDENTIALS", 401)


def sanitize_user(user: User) -> UserRead:
    """Public view of ``user``: no password hash, no 2FA secret or backup codes."""
    return UserRead.model_validate(user)


# ---------- LOOKUPS ----------

def get_active_user(db: Session, user_id: str) -> Optional[User]:
    user = db.get(User, user_id)
    if user is None or user.deleted_at is not None:
        return None
    return user


def get_active_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalar(select(User).where(User.email == email, User.deleted_at.is_(None)))


def get_user_for_token(db: Session, payload: TokenPayload) -> User:
    user = get_active_user(db, payload.sub)
    if user is None:
        raise AuthError("User not found", "USER_NOT_FOUND", 401)
    return user


# ---------- SESSION ISSUANCE ----------

def _start_session(
    user: User,
    ip: Optional[str],
    user_agent: Optional[str],
    verification_token: Optional[str] = None,
) -> AuthResult:
    session_id = session_service.create_session(
        user.id,
        ip_address=anonymize_ip(ip) or None,
        user_agent=user_agent,
    )
    tokens = generate_tokens(user, session_id)
    csrf_token = generate_csrf_token()
    store_csrf_token(session_id, csrf_token)

    return AuthResult(
        user=sanitize_user(user),
        tokens=tokens,
        session_id=session_id,
        csrf_token=csrf_token,
        verification_token=verification_token,
    )


# ---------- REGISTRATION ----------

def register_user(
    db: Session,
    payload: UserCreate,
    *,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuthResult:
    """
    Create the account and sign it in.

    The email verification token is returned on ``AuthResult.verification_token``
    for the caller to deliver; it is left out of the serialised response.
    """
    if payload.username.lower() in RESERVED_USERNAMES:
        raise AuthError("This username is reserved", "USERNAME_RESERVED", 400)

    if db.scalar(select(User.id).where(User.email == payload.email)) is not None:
        raise AuthError("An account with this email already exists", "EMAIL_TAKEN", 409)
    if db.scalar(select(User.id).where(func.lower(User.username) == payload.username.lower())) is not None:
        raise AuthError("This username is already taken", "USERNAME_TAKEN", 409)

    user = User(
        email=payload.email,
        username=payload.username,
        hashed_password=hash_password(payload.password),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        # lost a race with a concurrent registration
        db.rollback()
        raise AuthError("An account with this email or username already exists", "ACCOUNT_EXISTS", 409) from exc
    db.refresh(user)

    verification_token = token_store.generate_verification_token()
    token_store.store_verification_token(user.id, verification_token)

    logger.info(
        "User registered",
        extra={"event": "user.registered", "user_id": user.id, "ip": anonymize_ip(ip)},
    )
    return _start_session(user, ip, user_agent, verification_token=verification_token)


# ---------- LOGIN ----------

def authenticate_user(
    db: Session,
    *,
    email: str,
    password: str,
    totp_code: Optional[str] = None,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuthResult:
    try:
        identifier = normalize_email(email)
    except ValueError as exc:
        raise AuthError(*INVALID_CREDENTIALS) from exc

    attempts = rate_limit.check_login_attempts(identifier)
    if not attempts.allowed:
        logger.warning("Login locked out", extra={"event": "auth.locked_out", "ip": anonymize_ip(ip)})
        raise AuthError("Too many login attempts, try again later", "TOO_MANY_ATTEMPTS", 429)

    user = get_active_user_by_email(db, identifier)
    if user is None or not verify_password(password, user.hashed_password):
        raise AuthError(*INVALID_CREDENTIALS)

    if user.two_factor_enabled:
        if not totp_code:
            raise AuthError("Two-factor code required", "TWO_FACTOR_REQUIRED", 401)
        if not two_factor_service.verify_two_factor_token(totp_code, user.two_factor_secret or ""):
            remaining = two_factor_service.consume_backup_code(totp_code, user.two_factor_backup_codes or [])
            if remaining is None:
                raise AuthError("Invalid two-factor code", "INVALID_TWO_FACTOR_CODE", 401)
            user.two_factor_backup_codes = remaining
            logger.info("Backup code used, %d left", len(remaining), extra={"user_id": user.id})

    rate_limit.reset_login_attempts(identifier)
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(user)

    logger.info("User logged in", extra={"event": "auth.login", "user_id": user.id, "ip": anonymize_ip(ip)})
    return _start_session(user, ip, user_agent)


# ---------- TOKENS & LOGOUT ----------

def refresh_tokens(db: Session, refresh_token: str) -> TokenPair:
    """Swap a refresh token for a new pair on the same session; the old one is revoked."""
    payload = verify_refresh_token(refresh_token, check_revoked=True)

    if get_redis() is not None and session_service.get_session(payload.session_id) is None:
        raise AuthError("Session not found", "SESSION_NOT_FOUND", 401)

    user = get_active_user(db, payload.sub)
    if user is None:
        raise AuthError("User not found", "USER_NOT_FOUND", 401)

    revoke_token(refresh_token)
    session_service.update_session_activity(payload.session_id)
    return generate_tokens(user, payload.session_id)


def logout(access_token: str, payload: TokenPayload) -> None:
    revoke_token(access_token)
    session_service.destroy_session(payload.session_id)
    discard_csrf_token(payload.session_id)
    logger.info("User logged out", extra={"event": "auth.logout", "user_id": payload.sub})


def logout_everywhere(access_token: str, payload: TokenPayload) -> int:
    revoke_token(access_token)
    return session_service.destroy_all_user_sessions(payload.sub)


# ---------- EMAIL VERIFICATION ----------

def verify_email(db: Session, token: str) -> User:
    user_id = token_store.verify_email_token(token)
    user = get_active_user(db, user_id) if user_id else None
    if user is None:
        raise AuthError("Invalid or expired verification token", "INVALID_VERIFICATION_TOKEN", 400)

    user.email_verified = True
    db.commit()
    db.refresh(user)
    return user


# ---------- PASSWORD RESET ----------

def request_password_reset(db: Session, email: str) -> Optional[str]:
    """
    Issue a reset token for the account behind ``email``.

    Returns the raw token for delivery, or None when there is no such
    account. Callers must not reveal which of the two happened.
    """
    try:
        identifier = normalize_email(email)
    except ValueError:
        return None

    user = get_active_user_by_email(db, identifier)
    if user is None:
        return None

    token = token_store.generate_reset_token()
    token_store.store_reset_token(user.id, token)
    logger.info("Password reset requested", extra={"event": "auth.reset_requested", "user_id": user.id})
    return token


def reset_password(db: Session, token: str, new_password: str) -> None:
    try:
        validate_password(new_password)
    except ValueError as exc:
        raise AuthError(str(exc), "INVALID_PASSWORD", 400) from exc

    user_id = token_store.verify_reset_token(token)
    user = get_active_user(db, user_id) if user_id else None
    if user is None:
        raise AuthError("Invalid or expired reset token", "INVALID_RESET_TOKEN", 400)

    user.hashed_password = hash_password(new_password)
    db.commit()
    session_service.destroy_all_user_sessions(user.id)
    logger.info("Password reset", extra={"event": "auth.password_reset", "user_id": user.id})


# ---------- TWO-FACTOR ----------

def setup_two_factor(db: Session, user: User) -> TwoFactorSetup:
    if user.two_factor_enabled:
        raise AuthError("Two-factor authentication is already enabled", "TWO_FACTOR_ALREADY_ENABLED", 400)

    setup = two_factor_service.generate_two_factor_secret(user)
    user.two_factor_secret = setup.secret
    user.two_factor_backup_codes = setup.backup_codes
    db.commit()
    return setup


def enable_two_factor(db: Session, user: User, code: str) -> User:
    if not user.two_factor_secret:
        raise AuthError("Two-factor authentication has not been set up", "TWO_FACTOR_NOT_SETUP", 400)
    if not two_factor_service.verify_two_factor_token(code, user.two_factor_secret):
        raise AuthError("Invalid two-factor code", "INVALID_TWO_FACTOR_CODE", 400)

    user.two_factor_enabled = True
    db.commit()
    db.refresh(user)
    return user
