"""
Application Configuration - Authentication settings.

Settings are loaded once at startup from environment variables (and a
``.env`` file when present) and are immutable for the process lifetime.
"""

import logging
import os
import re
import secrets
from dataclasses import dataclass, field
from enum import Enum

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()

_DURATION_PATTERN = re.compile(r"^(\d+)(s|m|h|d)$")
_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


class ConfigurationError(Exception):
    """Raised when settings are missing or inconsistent."""


class Environment(Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


def parse_duration(value: str, default: int = 900) -> int:
    """
    Parse a duration string such as ``15m`` or ``7d`` into seconds.

    Unrecognised values fall back to ``default``.
    """
    match = _DURATION_PATTERN.match(value.strip())
    if not match:
        return default
    return int(match.group(1)) * _DURATION_UNITS[match.group(2)]


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() in ("1", "true", "yes", "on")


def _current_environment() -> Environment:
    raw = os.getenv("ENVIRONMENT", "development").lower()
    try:
        return Environment(raw)
    except ValueError:
        logger.warning(f"Unknown ENVIRONMENT '{raw}', assuming development")
        return Environment.DEVELOPMENT


@dataclass(frozen=True)
class JWTSettings:
    """Signing secrets and lifetimes for access and refresh tokens."""

    access_secret: str
    refresh_secret: str
    issuer: str = "feralis-platform"
    algorithm: str = "HS256"
    access_token_ttl: int = 900
    refresh_token_ttl: int = 7 * 86400

    def __post_init__(self) -> None:
        if not self.access_secret or not self.refresh_secret:
            raise ConfigurationError("JWT access and refresh secrets are required")
        if self.access_secret == self.refresh_secret:
            raise ConfigurationError("JWT refresh secret must differ from the access secret")

    @classmethod
    def from_env(cls, environment: Environment | None = None) -> "JWTSettings":
        """Create JWT settings from environment variables."""
        environment = environment or _current_environment()
        access_secret = os.getenv("JWT_ACCESS_SECRET", "")
        refresh_secret = os.getenv("JWT_REFRESH_SECRET", "")

        if not access_secret or not refresh_secret:
            if environment == Environment.PRODUCTION:
                raise ConfigurationError(
                    "JWT_ACCESS_SECRET and JWT_REFRESH_SECRET are required in production"
                )
            logger.warning(
                "JWT secrets not configured - generating ephemeral secrets for DEVELOPMENT ONLY. "
                "All tokens will be invalidated on restart!"
            )
            access_secret = access_secret or secrets.token_urlsafe(48)
            refresh_secret = refresh_secret or secrets.token_urlsafe(48)

        return cls(
            access_secret=access_secret,
            refresh_secret=refresh_secret,
            issuer=os.getenv("JWT_ISSUER", "feralis-platform"),
            access_token_ttl=parse_duration(os.getenv("JWT_ACCESS_EXPIRATION", "15m"), 900),
            refresh_token_ttl=parse_duration(
                os.getenv("JWT_REFRESH_EXPIRATION", "7d"), 7 * 86400
            ),
        )


@dataclass(frozen=True)
class PasswordPolicy:
    """Password hashing cost, strength rules and breach-check policy."""

    min_length: int = 12
    max_length: int = 128
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_number: bool = True
    require_special: bool = True
    min_score: int = 2

    # Argon2id cost parameters
    memory_cost: int = 65536  # KiB
    time_cost: int = 3
    parallelism: int = 4

    breach_check_enabled: bool = True
    breach_fail_open: bool = True
    breach_timeout: float = 3.0
    breach_api_url: str = "https://api.pwnedpasswords.com"

    def __post_init__(self) -> None:
        if self.min_length < 1:
            raise ConfigurationError("Password minimum length must be positive")
        if not 0 <= self.min_score <= 4:
            raise ConfigurationError("Password minimum score must be between 0 and 4")

    @classmethod
    def from_env(cls) -> "PasswordPolicy":
        """Create password policy from environment variables."""
        return cls(
            min_length=int(os.getenv("PASSWORD_MIN_LENGTH", "12")),
            max_length=int(os.getenv("PASSWORD_MAX_LENGTH", "128")),
            require_uppercase=_env_bool("PASSWORD_REQUIRE_UPPERCASE", True),
            require_lowercase=_env_bool("PASSWORD_REQUIRE_LOWERCASE", True),
            require_number=_env_bool("PASSWORD_REQUIRE_NUMBER", True),
            require_special=_env_bool("PASSWORD_REQUIRE_SPECIAL", True),
            min_score=int(os.getenv("PASSWORD_MIN_SCORE", "2")),
            memory_cost=int(os.getenv("PASSWORD_HASH_MEMORY_COST", "65536")),
            time_cost=int(os.getenv("PASSWORD_HASH_TIME_COST", "3")),
            parallelism=int(os.getenv("PASSWORD_HASH_PARALLELISM", "4")),
            breach_check_enabled=_env_bool("PASSWORD_BREACH_CHECK_ENABLED", True),
            breach_fail_open=_env_bool("PASSWORD_BREACH_FAIL_OPEN", True),
            breach_timeout=float(os.getenv("PASSWORD_BREACH_TIMEOUT", "3.0")),
            breach_api_url=os.getenv("PASSWORD_BREACH_API_URL", "https://api.pwnedpasswords.com"),
        )


@dataclass(frozen=True)
class SessionSettings:
    """Lifetimes of sessions, MFA challenges and reset tokens."""

    session_ttl: int = 12 * 3600
    mfa_challenge_ttl: int = 300
    password_reset_ttl: int = 3600
    refresh_retention_days: int = 7
    token_cleanup_interval: int = 3600
    refresh_cookie_enabled: bool = False
    cookie_secure: bool = True
    cookie_name: str = "refresh_token"

    @classmethod
    def from_env(cls) -> "SessionSettings":
        """Create session settings from environment variables."""
        return cls(
            session_ttl=int(os.getenv("SESSION_ABSOLUTE_TIMEOUT_HOURS", "12")) * 3600,
            mfa_challenge_ttl=int(os.getenv("MFA_CHALLENGE_TTL_SECONDS", "300")),
            password_reset_ttl=int(os.getenv("PASSWORD_RESET_TTL_SECONDS", "3600")),
            refresh_retention_days=int(os.getenv("REFRESH_TOKEN_RETENTION_DAYS", "7")),
            token_cleanup_interval=int(
                os.getenv("REFRESH_TOKEN_CLEANUP_INTERVAL_SECONDS", "3600")
            ),
            refresh_cookie_enabled=_env_bool("AUTH_REFRESH_COOKIE", False),
            cookie_secure=_env_bool("AUTH_COOKIE_SECURE", True),
        )


@dataclass(frozen=True)
class CacheSettings:
    """Redis connection settings."""

    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = ""
    socket_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> "CacheSettings":
        """Create cache settings from environment variables."""
        return cls(
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            key_prefix=os.getenv("REDIS_KEY_PREFIX", ""),
            socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", "5.0")),
        )


@dataclass(frozen=True)
class DatabaseSettings:
    """Persistent store settings."""

    url: str = "postgresql+psycopg://localhost:5432/feralis"
    pool_size: int = 10
    max_overflow: int = 20
    echo: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseSettings":
        """Create database settings from environment variables."""
        return cls(
            url=os.getenv("DATABASE_URL", "postgresql+psycopg://localhost:5432/feralis"),
            pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
            max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "20")),
            echo=_env_bool("DB_ECHO", False),
        )


@dataclass(frozen=True)
class AuthSettings:
    """Aggregate settings for the authentication core."""

    jwt: JWTSettings
    password: PasswordPolicy = field(default_factory=PasswordPolicy)
    session: SessionSettings = field(default_factory=SessionSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "INFO"
    log_format: str = "json"
    cors_origins: tuple[str, ...] = ("http://localhost:3000",)

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @classmethod
    def from_env(cls) -> "AuthSettings":
        """Load every settings group from the environment."""
        environment = _current_environment()
        return cls(
            jwt=JWTSettings.from_env(environment),
            password=PasswordPolicy.from_env(),
            session=SessionSettings.from_env(),
            cache=CacheSettings.from_env(),
            database=DatabaseSettings.from_env(),
            environment=environment,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
            cors_origins=tuple(
                origin.strip()
                for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
                if origin.strip()
            ),
        )
