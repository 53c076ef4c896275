"""Application settings with environment-based simple classes."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Final

from dotenv import load_dotenv

# Public selector env var (keep neutral name to avoid collisions)
ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'

#: Scopes a client may request, in the order they are reported back.
DEFAULT_OAUTH_SCOPES: Final[tuple[str, ...]] = (
    "write:profile",
    "write:posts",
    "vote:posts",
    "delete:posts",
    "write:replies",
    "vote:replies",
    "delete:replies",
)

#: Scopes withheld from users whose email address is not verified yet.
DEFAULT_RESTRICTED_SCOPES: Final[tuple[str, ...]] = tuple(
    s for s in DEFAULT_OAUTH_SCOPES if s != "write:profile"
)


# Load .env during development (no-op when missing)
load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset. Defaults to ``False``.

    Returns
    -------
    bool
        ``True`` if the value resembles ``{"1", "true", "yes", "y", "on"}``
        ignoring case; otherwise ``False`` or ``default`` when missing.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_int(name: str, default: int) -> int:
    """Parse an integer from an environment variable, falling back to ``default``."""
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return int(val)


def env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """Parse a comma-separated list, preserving order and dropping blanks."""
    val = os.getenv(name)
    if val is None:
        return default
    return tuple(item.strip() for item in val.split(",") if item.strip())


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    API_BASE_PREFIX: str
        Root path for registering API blueprints.
    SECRET_KEY: str
        Flask secret used for session signing.
    JWT_SECRET_KEY: str
        Key used by ``flask-jwt-extended`` for signing access tokens.
    JWT_ALGORITHM: str
        Signing algorithm for access tokens.
    TOKEN_ENCRYPTION_KEY: str | None
        Key material for the Fernet cipher that seals refresh tokens and
        email-verification tokens. Falls back to ``JWT_SECRET_KEY``.
    ACCESS_TOKEN_TTL_SECONDS: int
        Lifetime of an access token and of its store record.
    OAUTH_SCOPES: tuple[str, ...]
        Scope catalog, in reporting order.
    OAUTH_RESTRICTED_SCOPES: tuple[str, ...]
        Catalog subset withheld from unverified users.
    OAUTH_DEFAULT_SCOPE: str
        Scope requested when a password grant omits ``scope``.
    TOKEN_STORE_BACKEND: str
        ``"sqlalchemy"`` (default) or ``"redis"``.
    TOKEN_PURGE_GRACE_SECONDS: int
        Age past expiry after which ``flask tokens purge-expired`` deletes records.
    EMAIL_VERIFICATION_TTL_SECONDS: int
        Maximum age of an email-verification token.
    SQLALCHEMY_DATABASE_URI: str
        Database connection string consumed by SQLAlchemy.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).
    CORS_ORIGINS: str
        Comma-separated list of allowed origins for CORS.
    USE_PROXYFIX: bool
        Wrap the WSGI app in ``ProxyFix`` (``PROXYFIX_HOPS`` trusted hops).

    Notes
    -----
    Values are primarily sourced from environment variables, enabling
    configuration without code changes.
    """

    API_BASE_PREFIX = "/api"

    # Secrets / security
    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "CHANGE_ME_JWT")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_TOKEN_LOCATION = ["headers"]
    TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")

    # Token lifecycle
    ACCESS_TOKEN_TTL_SECONDS = env_int("ACCESS_TOKEN_TTL_SECONDS", 600)
    OAUTH_SCOPES = env_list("OAUTH_SCOPES", DEFAULT_OAUTH_SCOPES)
    OAUTH_RESTRICTED_SCOPES = env_list("OAUTH_RESTRICTED_SCOPES", DEFAULT_RESTRICTED_SCOPES)
    OAUTH_DEFAULT_SCOPE = os.getenv("OAUTH_DEFAULT_SCOPE", "*")
    TOKEN_STORE_BACKEND = os.getenv("TOKEN_STORE_BACKEND", "sqlalchemy")
    TOKEN_PURGE_GRACE_SECONDS = env_int("TOKEN_PURGE_GRACE_SECONDS", 86400)
    EMAIL_VERIFICATION_TTL_SECONDS = env_int("EMAIL_VERIFICATION_TTL_SECONDS", 86400)

    # DB / cache
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)
    REDIS_URL = os.getenv("REDIS_URL")

    # Flask & JSON
    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False

    # Logging & CORS
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173")

    # Reverse proxy (client address and origin come from X-Forwarded-*)
    USE_PROXYFIX = env_bool("USE_PROXYFIX", True)
    PROXYFIX_HOPS = env_int("PROXYFIX_HOPS", 1)

    # Flask built-ins
    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development.

    Notes
    -----
    Enables debug mode by default and honors ``SQLALCHEMY_ECHO`` for verbose
    SQL logging when requested.
    """

    DEBUG = env_bool("FLASK_DEBUG", True)
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)
    CORS_MAX_AGE = 600  # 10 minutes


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Forces ``TESTING`` mode and disables debug logs.
    - Uses an in-memory SQLite database unless ``TEST_DATABASE_URL`` is set.
    - Always uses the SQL token store so tests never need Redis.
    """

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)
    TOKEN_STORE_BACKEND = "sqlalchemy"
    REDIS_URL = None
    PROPAGATE_EXCEPTIONS = True


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments.

    Notes
    -----
    Keeps debug and SQL echoing disabled while relying on WSGI-level log
    configuration for noise control.
    """

    DEBUG = False
    SQLALCHEMY_ECHO = False
    PROPAGATE_EXCEPTIONS = False


# Map names -> classes (simple, explicit)
CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the configuration class inferred from ``APP_ENV``.

    Returns
    -------
    type[BaseConfig]
        Class to pass to :meth:`flask.Config.from_object`.

    Notes
    -----
    Falls back to :class:`DevelopmentConfig` when ``APP_ENV`` is unset or
    unknown.
    """
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)
