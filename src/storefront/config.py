"""Environment-driven settings for the storefront client.

Every setting has a sensible default and most can be overridden through a
``STOREFRONT_*`` environment variable, e.g.::

    export STOREFRONT_ENV=staging
    export STOREFRONT_API_URL=http://10.0.2.2:5000/v1
"""

import os
from dataclasses import dataclass
from pathlib import Path

from storefront.core.exceptions import ConfigurationError

_ENV_ENVIRONMENT = "STOREFRONT_ENV"
_ENV_API_URL = "STOREFRONT_API_URL"
_ENV_REQUEST_TIMEOUT = "STOREFRONT_REQUEST_TIMEOUT"
_ENV_REFRESH_TIMEOUT = "STOREFRONT_REFRESH_TIMEOUT"
_ENV_REFRESH_ATTEMPTS = "STOREFRONT_REFRESH_ATTEMPTS"
_ENV_CONFIG_DIR = "STOREFRONT_CONFIG_DIR"

_DEFAULT_BASE_URLS = {
    "development": "http://127.0.0.1:5000/v1",
    "staging": "https://staging-api.storefront.example/v1",
    "production": "https://api.storefront.example/v1",
}

_DEFAULT_CONFIG_DIR = Path.home() / ".config" / "storefront"


@dataclass(frozen=True)
class Settings:
    """Resolved client settings."""

    api_base_url: str
    environment: str = "development"

    request_timeout: float = 30.0
    """Timeout in seconds for ordinary requests."""

    refresh_timeout: float = 10.0
    """Timeout in seconds for one refresh exchange attempt.  Kept shorter
    than ``request_timeout`` because every expired request waits on it."""

    refresh_max_attempts: int = 3
    """Total refresh attempts on network/server errors (first try + retries)."""

    refresh_backoff: float = 0.5
    """Base delay before the first refresh retry; doubled on each retry."""

    expiry_buffer_seconds: int = 60
    credentials_dir: Path = _DEFAULT_CONFIG_DIR
    login_path: str = "/customer/login"
    refresh_path: str = "/customer/refresh"
    customer_path: str = "/customer"
    user_agent: str = "storefront-client/0.1"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def _number(environ, name: str, default, cast):
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}.")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}.")
    return value


def load_settings(environ=None) -> Settings:
    """Build :class:`Settings` from environment variables.

    Args:
        environ: Mapping to read instead of :data:`os.environ`.  Handy in
            tests.

    Returns:
        A frozen :class:`Settings` instance.

    Raises:
        ConfigurationError: If a numeric variable cannot be parsed or the
            environment name is unknown.
    """
    environ = os.environ if environ is None else environ

    environment = environ.get(_ENV_ENVIRONMENT, "development").lower()
    if environment not in _DEFAULT_BASE_URLS:
        raise ConfigurationError(
            f"{_ENV_ENVIRONMENT} must be one of "
            f"{', '.join(_DEFAULT_BASE_URLS)}; got {environment!r}."
        )

    base_url = environ.get(_ENV_API_URL) or _DEFAULT_BASE_URLS[environment]
    config_dir = environ.get(_ENV_CONFIG_DIR)

    return Settings(
        api_base_url=base_url.rstrip("/"),
        environment=environment,
        request_timeout=_number(environ, _ENV_REQUEST_TIMEOUT, 30.0, float),
        refresh_timeout=_number(environ, _ENV_REFRESH_TIMEOUT, 10.0, float),
        refresh_max_attempts=_number(environ, _ENV_REFRESH_ATTEMPTS, 3, int),
        credentials_dir=(
            Path(config_dir).expanduser() if config_dir else _DEFAULT_CONFIG_DIR
        ),
    )
