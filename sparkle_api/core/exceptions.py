# File: sparkle_api/core/exceptions.py

"""
Exception types shared across the API.

``AuthError`` carries a machine-readable ``code`` next to the human message
so clients can branch on it; the HTTP layer turns it into a JSON response
(see ``sparkle_api.core.exception_handlers``).
"""


class ConfigurationError(RuntimeError):
    """Raised when the environment does not describe a usable configuration."""


class AuthError(Exception):
    def __init__(self, message: str, code: str, status_code: int = 401) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"AuthError(code={self.code!r}, status_code={self.status_code}, message={self.message!r})"
