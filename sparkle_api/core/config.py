# File: sparkle_api/core/config.py

"""
Environment configuration for the Sparkle Universe API.

Settings are read from the process environment and from the ``.env`` file
cascade below. Later files win, missing files are skipped, and ``${VAR}``
references inside them are expanded by python-dotenv:

    .env
    .env.{APP_ENV}
    .env.local
    .env.{APP_ENV}.local
"""

import logging
import os
import re
from datetime import timedelta
from functools import lru_cache
from typing import List, Literal, Optional
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, EmailStr, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sparkle_api.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

APP_ENV = os.getenv("APP_ENV", "development")

ENV_FILES = (
    ".env",
    f".env.{APP_ENV}",
    ".env.local",
    f".env.{APP_ENV}.local",
)


# ---------- DURATIONS ----------

_DURATION_RE = re.compile(r"^\s*(\d+)\s*(ms|s|m|h|d|w)?\s*$")
_DURATION_SECONDS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 60 * 60 * 24,
    "w": 60 * 60 * 24 * 7,
}


def parse_duration(value: str) -> timedelta:
    """
    Parse a compact duration such as ``"15m"``, ``"7d"`` or ``"3600"``.

    A bare number is taken as seconds.
    """
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid duration {value!r}, expected e.g. '30s', '15m', '7d'")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _DURATION_SECONDS[unit or "s"])


# ---------- GROUPED VIEWS ----------


class DatabaseConfig(BaseModel):
    url: str
    direct_url: Optional[str] = None
    read_replica_urls: List[str] = []
    pool_size: int = 10
    log_level: str = "error"
    slow_query_ms: int = 5000


class RedisConfig(BaseModel):
    url: Optional[str] = None
    max_retries: int = 3
    retry_delay_ms: int = 1000


class JWTConfig(BaseModel):
    access_secret: str
    refresh_secret: str
    access_expiry: timedelta
    refresh_expiry: timedelta
    issuer: str
    audience: str


class OAuthClient(BaseModel):
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)


class AuthConfig(BaseModel):
    jwt: JWTConfig
    bcrypt_salt_rounds: int
    session_secret: str
    session_timeout: timedelta
    max_devices_per_user: int
    max_login_attempts: int
    lockout_duration: timedelta
    oauth: dict[str, OAuthClient]


class SMTPAuth(BaseModel):
    user: str
    password: str


class SMTPConfig(BaseModel):
    host: Optional[str] = None
    port: int = 587
    secure: bool = False
    auth: Optional[SMTPAuth] = None


class EmailConfig(BaseModel):
    smtp: SMTPConfig
    sender: Optional[str] = None
    reply_to: Optional[str] = None


class S3Config(BaseModel):
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: str = "us-east-1"
    bucket: Optional[str] = None
    endpoint: Optional[str] = None
    force_path_style: bool = False


class StorageConfig(BaseModel):
    s3: S3Config


# ---------- SETTINGS ----------


class Settings(BaseSettings):
    """
    Application settings.

    Field aliases are the environment variable names, so
    ``Settings(DATABASE_URL=...)`` and ``DATABASE_URL=... uvicorn`` behave
    the same. Durations that the environment expresses in milliseconds
    (``LOCKOUT_DURATION``, ``SESSION_TIMEOUT``, ``RATE_LIMIT_WINDOW``) keep
    that unit here and are exposed as ``timedelta`` through the grouped views.
    """

    model_config = SettingsConfigDict(
        env_file=ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # Application
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development", alias="APP_ENV"
    )
    port: int = Field(default=3000, alias="PORT")
    app_url: str = Field(default="http://localhost:3000", alias="APP_URL")
    app_name: str = Field(default="Sparkle Universe", alias="APP_NAME")
    app_version: Optional[str] = Field(default=None, alias="APP_VERSION")
    backend_cors_origins: str = Field(default="", alias="BACKEND_CORS_ORIGINS")

    # Database
    database_url: str = Field(alias="DATABASE_URL")
    direct_url: Optional[str] = Field(default=None, alias="DIRECT_URL")
    read_replica_urls: Optional[str] = Field(default=None, alias="READ_REPLICA_URLS")
    database_pool_size: int = Field(default=10, ge=1, alias="DATABASE_POOL_SIZE")
    database_log_level: Optional[Literal["query", "info", "warn", "error"]] = Field(
        default=None, alias="DATABASE_LOG_LEVEL"
    )
    database_slow_query_ms: int = Field(default=5000, ge=0, alias="DATABASE_SLOW_QUERY_MS")

    # Redis
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    redis_max_retries: int = Field(default=3, ge=0, alias="REDIS_MAX_RETRIES")
    redis_retry_delay: int = Field(default=1000, ge=0, alias="REDIS_RETRY_DELAY")

    # Authentication
    jwt_access_secret: str = Field(alias="JWT_ACCESS_SECRET", min_length=32)
    jwt_refresh_secret: str = Field(alias="JWT_REFRESH_SECRET", min_length=32)
    jwt_access_expiry: str = Field(default="15m", alias="JWT_ACCESS_EXPIRY")
    jwt_refresh_expiry: str = Field(default="7d", alias="JWT_REFRESH_EXPIRY")
    jwt_issuer: str = Field(default="sparkle-universe", alias="JWT_ISSUER")
    jwt_audience: str = Field(default="sparkle-universe-app", alias="JWT_AUDIENCE")

    # Security
    bcrypt_salt_rounds: int = Field(default=12, ge=4, le=31, alias="BCRYPT_SALT_ROUNDS")
    session_secret: str = Field(alias="SESSION_SECRET", min_length=32)
    csrf_secret: Optional[str] = Field(default=None, alias="CSRF_SECRET")
    encryption_key: Optional[str] = Field(default=None, alias="ENCRYPTION_KEY")
    max_login_attempts: int = Field(default=5, ge=1, alias="MAX_LOGIN_ATTEMPTS")
    lockout_duration: int = Field(default=900000, ge=1000, alias="LOCKOUT_DURATION")
    max_devices_per_user: int = Field(default=5, ge=1, alias="MAX_DEVICES_PER_USER")
    session_timeout: int = Field(default=86400000, ge=1000, alias="SESSION_TIMEOUT")

    # OAuth providers
    google_client_id: Optional[str] = Field(default=None, alias="GOOGLE_CLIENT_ID")
    google_client_secret: Optional[str] = Field(default=None, alias="GOOGLE_CLIENT_SECRET")
    discord_client_id: Optional[str] = Field(default=None, alias="DISCORD_CLIENT_ID")
    discord_client_secret: Optional[str] = Field(default=None, alias="DISCORD_CLIENT_SECRET")
    twitter_client_id: Optional[str] = Field(default=None, alias="TWITTER_CLIENT_ID")
    twitter_client_secret: Optional[str] = Field(default=None, alias="TWITTER_CLIENT_SECRET")
    github_client_id: Optional[str] = Field(default=None, alias="GITHUB_CLIENT_ID")
    github_client_secret: Optional[str] = Field(default=None, alias="GITHUB_CLIENT_SECRET")

    # Email
    smtp_host: Optional[str] = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_secure: bool = Field(default=False, alias="SMTP_SECURE")
    smtp_user: Optional[str] = Field(default=None, alias="SMTP_USER")
    smtp_pass: Optional[str] = Field(default=None, alias="SMTP_PASS")
    email_from: Optional[EmailStr] = Field(default=None, alias="EMAIL_FROM")
    email_reply_to: Optional[EmailStr] = Field(default=None, alias="EMAIL_REPLY_TO")

    # Object storage
    aws_access_key_id: Optional[str] = Field(default=None, alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: Optional[str] = Field(default=None, alias="AWS_SECRET_ACCESS_KEY")
    aws_region: str = Field(default="us-east-1", alias="AWS_REGION")
    s3_bucket: Optional[str] = Field(default=None, alias="S3_BUCKET")
    s3_endpoint: Optional[str] = Field(default=None, alias="S3_ENDPOINT")
    s3_force_path_style: bool = Field(default=False, alias="S3_FORCE_PATH_STYLE")

    # Feature flags
    enable_ai_features: bool = Field(default=True, alias="ENABLE_AI_FEATURES")
    enable_blockchain: bool = Field(default=False, alias="ENABLE_BLOCKCHAIN")
    enable_virtual_spaces: bool = Field(default=True, alias="ENABLE_VIRTUAL_SPACES")
    enable_analytics: bool = Field(default=True, alias="ENABLE_ANALYTICS")
    enable_premium_features: bool = Field(default=False, alias="ENABLE_PREMIUM_FEATURES")
    maintenance_mode: bool = Field(default=False, alias="MAINTENANCE_MODE")

    # Rate limiting
    rate_limit_window: int = Field(default=900000, ge=1000, alias="RATE_LIMIT_WINDOW")
    rate_limit_max_requests: int = Field(default=100, ge=1, alias="RATE_LIMIT_MAX_REQUESTS")

    # Logging
    log_level: Literal["trace", "debug", "info", "warn", "error", "fatal"] = Field(
        default="info", alias="LOG_LEVEL"
    )
    log_format: Literal["json", "pretty"] = Field(default="json", alias="LOG_FORMAT")
    log_timestamp: bool = Field(default=True, alias="LOG_TIMESTAMP")

    # Deployment
    vercel_url: Optional[str] = Field(default=None, alias="VERCEL_URL")
    public_api_url: Optional[str] = Field(default=None, alias="PUBLIC_API_URL")
    public_ws_url: Optional[str] = Field(default=None, alias="PUBLIC_WS_URL")

    # ---------- VALIDATORS ----------

    @field_validator("database_url")
    @classmethod
    def normalise_database_url(cls, v: str) -> str:
        scheme, sep, rest = v.partition("://")
        if not sep:
            raise ValueError("DATABASE_URL must be a valid connection string")
        if scheme in ("postgres", "postgresql"):
            # SQLAlchemy has no "postgres" dialect; psycopg 3 is the driver we ship.
            return f"postgresql+psycopg://{rest}"
        if scheme.startswith("postgresql+") or scheme.startswith("sqlite"):
            return v
        raise ValueError("DATABASE_URL must be a valid PostgreSQL connection string")

    @field_validator("redis_url")
    @classmethod
    def check_redis_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must be a valid Redis connection string")
        return v

    @field_validator("jwt_access_expiry", "jwt_refresh_expiry")
    @classmethod
    def check_duration(cls, v: str) -> str:
        parse_duration(v)
        return v

    @field_validator("csrf_secret", "encryption_key")
    @classmethod
    def check_optional_secret(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) < 32:
            raise ValueError("must be at least 32 characters")
        return v

    @field_validator("app_url", "s3_endpoint", "public_api_url", "public_ws_url")
    @classmethod
    def check_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        parts = urlsplit(v)
        if not parts.scheme or not parts.netloc:
            raise ValueError("must be an absolute URL")
        return v.rstrip("/")

    # ---------- DERIVED VALUES ----------

    @property
    def cors_origins(self) -> List[str]:
        origins = [o.strip() for o in self.backend_cors_origins.split(",") if o.strip()]
        return origins or [self.app_url]

    @property
    def session_timeout_seconds(self) -> int:
        return self.session_timeout // 1000

    @property
    def lockout_duration_seconds(self) -> int:
        return self.lockout_duration // 1000

    @property
    def rate_limit_window_seconds(self) -> int:
        return self.rate_limit_window // 1000

    @property
    def database_config(self) -> DatabaseConfig:
        replicas = [u.strip() for u in (self.read_replica_urls or "").split(",") if u.strip()]
        return DatabaseConfig(
            url=self.database_url,
            direct_url=self.direct_url,
            read_replica_urls=replicas,
            pool_size=self.database_pool_size,
            # every query is logged in development unless a level is set
            log_level=self.database_log_level or ("query" if self.environment == "development" else "error"),
            slow_query_ms=self.database_slow_query_ms,
        )

    @property
    def redis_config(self) -> RedisConfig:
        return RedisConfig(
            url=self.redis_url,
            max_retries=self.redis_max_retries,
            retry_delay_ms=self.redis_retry_delay,
        )

    @property
    def auth_config(self) -> AuthConfig:
        return AuthConfig(
            jwt=JWTConfig(
                access_secret=self.jwt_access_secret,
                refresh_secret=self.jwt_refresh_secret,
                access_expiry=parse_duration(self.jwt_access_expiry),
                refresh_expiry=parse_duration(self.jwt_refresh_expiry),
                issuer=self.jwt_issuer,
                audience=self.jwt_audience,
            ),
            bcrypt_salt_rounds=self.bcrypt_salt_rounds,
            session_secret=self.session_secret,
            session_timeout=timedelta(milliseconds=self.session_timeout),
            max_devices_per_user=self.max_devices_per_user,
            max_login_attempts=self.max_login_attempts,
            lockout_duration=timedelta(milliseconds=self.lockout_duration),
            oauth={
                "google": OAuthClient(client_id=self.google_client_id, client_secret=self.google_client_secret),
                "discord": OAuthClient(client_id=self.discord_client_id, client_secret=self.discord_client_secret),
                "twitter": OAuthClient(client_id=self.twitter_client_id, client_secret=self.twitter_client_secret),
                "github": OAuthClient(client_id=self.github_client_id, client_secret=self.github_client_secret),
            },
        )

    @property
    def email_config(self) -> EmailConfig:
        auth = None
        if self.smtp_user and self.smtp_pass:
            auth = SMTPAuth(user=self.smtp_user, password=self.smtp_pass)
        return EmailConfig(
            smtp=SMTPConfig(host=self.smtp_host, port=self.smtp_port, secure=self.smtp_secure, auth=auth),
            sender=self.email_from,
            reply_to=self.email_reply_to,
        )

    @property
    def storage_config(self) -> StorageConfig:
        return StorageConfig(
            s3=S3Config(
                access_key_id=self.aws_access_key_id,
                secret_access_key=self.aws_secret_access_key,
                region=self.aws_region,
                bucket=self.s3_bucket,
                endpoint=self.s3_endpoint,
                force_path_style=self.s3_force_path_style,
            )
        )


def format_validation_error(exc: ValidationError) -> str:
    lines = []
    for err in exc.errors():
        name = ".".join(str(part) for part in err["loc"]) or "environment"
        lines.append(f"  - {name}: {err['msg']}")
    return "\n".join(lines)


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as exc:
        message = format_validation_error(exc)
        logger.error(
            "Environment validation error. The following variables are invalid:\n%s\n"
            "Check your .env files and make sure every required variable is set.",
            message,
        )
        raise ConfigurationError(message) from exc


# ---------- ENVIRONMENT HELPERS ----------


def is_development(config: Optional[Settings] = None) -> bool:
    return (config or get_settings()).environment == "development"


def is_test(config: Optional[Settings] = None) -> bool:
    return (config or get_settings()).environment == "test"


def is_staging(config: Optional[Settings] = None) -> bool:
    return (config or get_settings()).environment == "staging"


def is_production(config: Optional[Settings] = None) -> bool:
    return (config or get_settings()).environment == "production"


def get_public_url(config: Optional[Settings] = None) -> str:
    config = config or get_settings()
    if config.vercel_url:
        return f"https://{config.vercel_url}"
    return config.app_url


def get_api_url(config: Optional[Settings] = None) -> str:
    config = config or get_settings()
    if config.public_api_url:
        return config.public_api_url
    return f"{get_public_url(config)}/api"


def get_websocket_url(config: Optional[Settings] = None) -> str:
    config = config or get_settings()
    if config.public_ws_url:
        return config.public_ws_url
    parts = urlsplit(get_public_url(config))
    scheme = "wss" if parts.scheme == "https" else "ws"
    return urlunsplit((scheme, parts.netloc, parts.path, parts.query, parts.fragment))


class Features:
    """Feature flags, read from the active settings on every call."""

    def __init__(self, config: Optional[Settings] = None) -> None:
        self._config = config

    @property
    def _settings(self) -> Settings:
        return self._config or get_settings()

    def ai(self) -> bool:
        return self._settings.enable_ai_features

    def blockchain(self) -> bool:
        return self._settings.enable_blockchain

    def virtual_spaces(self) -> bool:
        return self._settings.enable_virtual_spaces

    def analytics(self) -> bool:
        return self._settings.enable_analytics

    def premium(self) -> bool:
        return self._settings.enable_premium_features

    def maintenance(self) -> bool:
        return self._settings.maintenance_mode


features = Features()

settings = get_settings()
