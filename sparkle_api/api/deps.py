# File: sparkle_api/api/deps.py

from dataclasses import dataclass

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from sparkle_api.core.exceptions import AuthError
from sparkle_api.core.network import client_key
from sparkle_api.core.security import verify_access_token, verify_csrf_token
from sparkle_api.db.session import get_db
from sparkle_api.models.user import User
from sparkle_api.schemas.auth import TokenPayload
from sparkle_api.services.auth_service import get_user_for_token
from sparkle_api.services.rate_limit import api_limiter

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    token: str
    payload: TokenPayload
    user: User


def get_auth_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> AuthContext:
    """
    Resolve the bearer token into the calling user.

    The token must be unrevoked and its session still alive.
    """
    if credentials is None:
        raise AuthError("Not authenticated", "NOT_AUTHENTICATED", 401)

    payload = verify_access_token(credentials.credentials, check_revoked=True, check_session=True)
    user = get_user_for_token(db, payload)
    return AuthContext(token=credentials.credentials, payload=payload, user=user)


def get_current_user(context: AuthContext = Depends(get_auth_context)) -> User:
    return context.user


def require_csrf(
    context: AuthContext = Depends(get_auth_context),
    x_csrf_token: str | None = Header(default=None),
) -> AuthContext:
    if not verify_csrf_token(context.payload.session_id, x_csrf_token):
        raise AuthError("Invalid CSRF token", "INVALID_CSRF_TOKEN", 403)
    return context


def enforce_rate_limit(request: Request) -> None:
    status = api_limiter.hit(client_key(request))
    if not status.allowed:
        raise AuthError(
            f"Too many requests, retry in {status.reset_in}s",
            "RATE_LIMITED",
            429,
        )
