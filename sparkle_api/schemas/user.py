# File: sparkle_api/schemas/user.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

from sparkle_api.core.validation import validate_password, validate_username


class UserBase(BaseModel):
    email: EmailStr
    username: str


class UserCreate(UserBase):
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def normalise_email(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("username")
    @classmethod
    def check_username(cls, v: str) -> str:
        return validate_username(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password(v)


class UserRead(UserBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    role: str
    email_verified: bool
    two_factor_enabled: bool
    created_at: datetime
    last_login_at: Optional[datetime] = None
