# File: sparkle_api/schemas/auth.py

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from sparkle_api.schemas.user import UserRead


# -----------------------------
# JWT payloads
# -----------------------------

class TokenPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sub: str
    email: str
    username: str
    role: str
    session_id: str = Field(alias="sessionId")
    iat: Optional[int] = None
    jti: Optional[str] = None
    exp: Optional[int] = None
    iss: Optional[str] = None
    aud: Optional[Union[str, List[str]]] = None


class RefreshPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sub: str
    session_id: str = Field(alias="sessionId")
    jti: Optional[str] = None
    exp: Optional[int] = None


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: Literal["Bearer"] = "Bearer"


# -----------------------------
# Request bodies
# -----------------------------

class LoginRequest(BaseModel):
    email: str
    password: str
    totp_code: Optional[str] = None


class RefreshRequest(BaseModel):
    refresh_token: str


class EmailTokenRequest(BaseModel):
    token: str


class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str


class TwoFactorEnableRequest(BaseModel):
    code: str


# -----------------------------
# Responses
# -----------------------------

class AuthResult(BaseModel):
    user: UserRead
    tokens: TokenPair
    session_id: str
    csrf_token: str
    # set on registration for the caller to deliver; never serialised
    verification_token: Optional[str] = Field(default=None, exclude=True)


class TwoFactorSetup(BaseModel):
    secret: str
    otpauth_url: str
    qr_code: str
    backup_codes: List[str]


class MessageResponse(BaseModel):
    message: str
