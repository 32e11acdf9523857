# File: sparkle_api/core/validation.py

"""
Input rules for passwords, usernames and emails.

Each validator returns the (normalised) value or raises ``ValueError`` with
a message fit to show the user, so they can be used directly as pydantic
field validators.
"""

import re

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30

_USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_password(password: str) -> str:
    """Return ``password`` unchanged, or raise naming the first rule it breaks."""
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(password) > PASSWORD_MAX_LENGTH:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_LENGTH} characters")
    if not re.search(r"[A-Z]", password):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        raise ValueError("Password must contain at least one number")
    if not any(ch in SPECIAL_CHARACTERS for ch in password):
        raise ValueError("Password must contain at least one special character")
    return password


def is_strong_password(password: str) -> bool:
    try:
        validate_password(password)
    except ValueError:
        return False
    return True


def normalize_email(email: str) -> str:
    email = email.strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValueError("Invalid email address")
    return email


def validate_username(username: str) -> str:
    username = username.strip()
    if len(username) < USERNAME_MIN_LENGTH:
        raise ValueError(f"Username must be at least {USERNAME_MIN_LENGTH} characters")
    if len(username) > USERNAME_MAX_LENGTH:
        raise ValueError(f"Username must be at most {USERNAME_MAX_LENGTH} characters")
    if not _USERNAME_RE.match(username):
        raise ValueError("Username can only contain letters, numbers, underscores, and hyphens")
    return username
