"""
Unified configuration management.

This module provides a centralized way to load, validate, and access
configuration for the Deribit HTTP client. It supports:
- YAML file loading
- Environment variable overrides
- Type validation via dataclasses
- Default values from constants

Configuration Hierarchy (highest to lowest priority):
1. Environment variables (DERIBIT_*)
2. User-provided config file
3. Default values from constants.py

Example usage:
    # Load config with environment overrides
    config = load_config("config/deribit.yaml")

    # Access typed config sections
    print(config.http.base_url)
    print(config.rate_limits.trading_capacity)
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

import yaml

from src.lib.constants import (
    PRODUCTION_BASE_URL,
    TESTNET_BASE_URL,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    TRADING_CAPACITY,
    TRADING_REFILL_RATE,
    MARKET_DATA_CAPACITY,
    MARKET_DATA_REFILL_RATE,
    ACCOUNT_CAPACITY,
    ACCOUNT_REFILL_RATE,
    AUTH_CAPACITY,
    AUTH_REFILL_RATE,
    GENERAL_CAPACITY,
    GENERAL_REFILL_RATE,
    DEFAULT_TOKEN_SAFETY_MARGIN,
    DEFAULT_REFRESH_RETRIES,
)


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def _env_float(name: str, value: str) -> float:
    from src.deribit.errors import ConfigError

    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# =============================================================================
# Configuration Dataclasses
# =============================================================================

@dataclass
class ApiCredentials:
    """OAuth2 client credentials.

    Attributes:
        client_id: Client ID from the Deribit API key page
        client_secret: Client secret paired with the client ID
    """
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        """Both halves of the credential pair are present."""
        return bool(self.client_id) and bool(self.client_secret)

    @classmethod
    def from_env(cls) -> Optional["ApiCredentials"]:
        """Read DERIBIT_CLIENT_ID / DERIBIT_CLIENT_SECRET, None if neither is set."""
        client_id = os.getenv("DERIBIT_CLIENT_ID")
        client_secret = os.getenv("DERIBIT_CLIENT_SECRET")
        if not client_id and not client_secret:
            return None
        return cls(client_id=client_id, client_secret=client_secret)

    def __repr__(self) -> str:
        secret = "***" if self.client_secret else None
        return f"ApiCredentials(client_id={self.client_id!r}, client_secret={secret!r})"


@dataclass
class HttpConfig:
    """Configuration for the HTTP transport.

    Attributes:
        base_url: API base URL (testnet or production)
        testnet: Whether base_url points at the testnet
        timeout: Request timeout in seconds
        user_agent: User-Agent header sent with every request
        credentials: Optional pre-supplied OAuth2 client credentials
    """
    base_url: str = TESTNET_BASE_URL
    testnet: bool = True
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    user_agent: str = DEFAULT_USER_AGENT
    credentials: Optional[ApiCredentials] = None

    @classmethod
    def testnet_config(cls) -> "HttpConfig":
        """Testnet configuration with credentials from the environment."""
        return cls(
            base_url=TESTNET_BASE_URL,
            testnet=True,
            credentials=ApiCredentials.from_env(),
        )

    @classmethod
    def production_config(cls) -> "HttpConfig":
        """Production configuration with credentials from the environment."""
        return cls(
            base_url=PRODUCTION_BASE_URL,
            testnet=False,
            credentials=ApiCredentials.from_env(),
        )

    @classmethod
    def from_env(cls) -> "HttpConfig":
        """Create config from environment variables.

        Environment variables:
            DERIBIT_TESTNET: "true" (default) or "false"
            DERIBIT_BASE_URL: Optional custom base URL
            DERIBIT_HTTP_TIMEOUT: Request timeout in seconds
            DERIBIT_HTTP_USER_AGENT: Custom user agent
            DERIBIT_CLIENT_ID / DERIBIT_CLIENT_SECRET: OAuth2 credentials
        """
        testnet = _env_flag(os.getenv("DERIBIT_TESTNET", "true"))
        config = cls.testnet_config() if testnet else cls.production_config()

        if env_val := os.getenv("DERIBIT_BASE_URL"):
            config.base_url = env_val
        if env_val := os.getenv("DERIBIT_HTTP_TIMEOUT"):
            config.timeout = _env_float("DERIBIT_HTTP_TIMEOUT", env_val)
        if env_val := os.getenv("DERIBIT_HTTP_USER_AGENT"):
            config.user_agent = env_val

        return config

    @property
    def has_credentials(self) -> bool:
        """Check if usable client credentials are configured."""
        return self.credentials is not None and self.credentials.is_valid


@dataclass
class RateLimitConfig:
    """Token bucket budgets per endpoint category.

    Capacity bounds the burst size, refill rate (tokens per second) bounds
    sustained throughput.
    """
    trading_capacity: int = TRADING_CAPACITY
    trading_refill_rate: float = TRADING_REFILL_RATE
    market_data_capacity: int = MARKET_DATA_CAPACITY
    market_data_refill_rate: float = MARKET_DATA_REFILL_RATE
    account_capacity: int = ACCOUNT_CAPACITY
    account_refill_rate: float = ACCOUNT_REFILL_RATE
    auth_capacity: int = AUTH_CAPACITY
    auth_refill_rate: float = AUTH_REFILL_RATE
    general_capacity: int = GENERAL_CAPACITY
    general_refill_rate: float = GENERAL_REFILL_RATE

    def budgets(self) -> dict[str, tuple[int, float]]:
        """Return {category name: (capacity, refill_rate)}."""
        return {
            "trading": (self.trading_capacity, self.trading_refill_rate),
            "market_data": (self.market_data_capacity, self.market_data_refill_rate),
            "account": (self.account_capacity, self.account_refill_rate),
            "auth": (self.auth_capacity, self.auth_refill_rate),
            "general": (self.general_capacity, self.general_refill_rate),
        }


@dataclass
class AuthConfig:
    """Configuration for OAuth2 session management."""
    # Seconds before server expiry at which a token counts as expired
    token_safety_margin: float = DEFAULT_TOKEN_SAFETY_MARGIN
    # Extra refresh attempts after a network failure
    refresh_retries: int = DEFAULT_REFRESH_RETRIES
    # Default scope requested on authenticate (None = server default)
    scope: Optional[str] = None


@dataclass
class ClientConfig:
    """Main configuration container."""
    http: HttpConfig = field(default_factory=HttpConfig)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(
    config_path: Optional[str] = None,
    override_env: bool = True
) -> ClientConfig:
    """
    Load configuration from YAML file with optional environment overrides.

    Args:
        config_path: Path to YAML config file (optional)
        override_env: If True, apply environment variable overrides

    Returns:
        ClientConfig instance

    Example:
        config = load_config("config/deribit.yaml")
        print(config.http.timeout)  # 30.0
    """
    config = ClientConfig()

    if config_path:
        config = _load_from_yaml(config_path, config)

    if override_env:
        config = _apply_env_overrides(config)

    return config


def _load_from_yaml(config_path: str, base_config: ClientConfig) -> ClientConfig:
    """Load configuration from YAML file."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        yaml_data = yaml.safe_load(f)

    if yaml_data is None:
        return base_config

    if "http" in yaml_data:
        http_data = dict(yaml_data["http"] or {})
        # Credentials are only ever taken from the environment
        http_data.pop("credentials", None)
        base_config.http = _update_dataclass(base_config.http, http_data)

    if "rate_limits" in yaml_data:
        base_config.rate_limits = _update_dataclass(base_config.rate_limits, yaml_data["rate_limits"])

    if "auth" in yaml_data:
        base_config.auth = _update_dataclass(base_config.auth, yaml_data["auth"])

    # Top-level shortcut: `testnet: false` switches the default base URL
    if "testnet" in yaml_data:
        base_config.http.testnet = bool(yaml_data["testnet"])
        if "base_url" not in (yaml_data.get("http") or {}):
            base_config.http.base_url = (
                TESTNET_BASE_URL if base_config.http.testnet else PRODUCTION_BASE_URL
            )

    return base_config


def _update_dataclass(instance: Any, data: dict) -> Any:
    """Update dataclass fields from dictionary."""
    if not data:
        return instance

    field_names = {f.name for f in instance.__dataclass_fields__.values()}

    for key, value in data.items():
        normalized_key = key.replace(".", "_").replace("-", "_")

        if normalized_key in field_names:
            setattr(instance, normalized_key, value)
        elif key in field_names:
            setattr(instance, key, value)

    return instance


def _apply_env_overrides(config: ClientConfig) -> ClientConfig:
    """Apply environment variable overrides to config."""

    if env_val := os.getenv("DERIBIT_TESTNET"):
        config.http.testnet = _env_flag(env_val)
        config.http.base_url = TESTNET_BASE_URL if config.http.testnet else PRODUCTION_BASE_URL

    if env_val := os.getenv("DERIBIT_BASE_URL"):
        config.http.base_url = env_val

    if env_val := os.getenv("DERIBIT_HTTP_TIMEOUT"):
        config.http.timeout = _env_float("DERIBIT_HTTP_TIMEOUT", env_val)

    if env_val := os.getenv("DERIBIT_HTTP_USER_AGENT"):
        config.http.user_agent = env_val

    # API credentials (always from env for security)
    credentials = ApiCredentials.from_env()
    if credentials is not None:
        config.http.credentials = credentials

    return config


# =============================================================================
# Configuration Validation
# =============================================================================

def validate_config(config: ClientConfig) -> list[str]:
    """
    Validate configuration values.

    Args:
        config: ClientConfig to validate

    Returns:
        List of validation warnings (empty if valid)

    Raises:
        ConfigError: If critical validation fails
    """
    from src.deribit.errors import ConfigError

    warnings = []
    errors = []

    # HTTP validation
    parsed = urlparse(config.http.base_url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        errors.append(f"base_url ({config.http.base_url!r}) must be an absolute http(s) URL")
    elif parsed.scheme == "http":
        warnings.append(f"base_url ({config.http.base_url}) is not using TLS")

    if not _is_number(config.http.timeout):
        errors.append(f"timeout ({config.http.timeout!r}) must be a number")
    elif config.http.timeout <= 0:
        errors.append(f"timeout ({config.http.timeout}) must be positive")

    if not config.http.user_agent:
        errors.append("user_agent must not be empty")

    credentials = config.http.credentials
    if credentials is not None and not credentials.is_valid:
        errors.append(
            "client_id and client_secret must both be set - "
            "set DERIBIT_CLIENT_ID and DERIBIT_CLIENT_SECRET"
        )

    if not config.http.testnet and config.http.base_url == TESTNET_BASE_URL:
        warnings.append("testnet is False but base_url points at the testnet")

    # Rate limit validation
    for name, (capacity, refill_rate) in config.rate_limits.budgets().items():
        if not _is_number(capacity):
            errors.append(f"{name}_capacity ({capacity!r}) must be a number")
        elif capacity <= 0:
            errors.append(f"{name}_capacity ({capacity}) must be positive")
        if not _is_number(refill_rate):
            errors.append(f"{name}_refill_rate ({refill_rate!r}) must be a number")
        elif refill_rate <= 0:
            errors.append(f"{name}_refill_rate ({refill_rate}) must be positive")

    # Auth validation
    if not _is_number(config.auth.token_safety_margin):
        errors.append(f"token_safety_margin ({config.auth.token_safety_margin!r}) must be a number")
    elif config.auth.token_safety_margin < 0:
        errors.append("token_safety_margin cannot be negative")
    elif config.auth.token_safety_margin < 5:
        warnings.append(
            f"token_safety_margin ({config.auth.token_safety_margin}s) below 5s leaves "
            f"little room for clock skew and request latency"
        )

    if not isinstance(config.auth.refresh_retries, int) or isinstance(config.auth.refresh_retries, bool):
        errors.append(f"refresh_retries ({config.auth.refresh_retries!r}) must be an integer")
    elif config.auth.refresh_retries < 0:
        errors.append("refresh_retries cannot be negative")

    if errors:
        raise ConfigError("Configuration validation failed:\n" +
                          "\n".join(f"  - {e}" for e in errors))

    return warnings


# =============================================================================
# Configuration Export
# =============================================================================

def config_to_dict(config: ClientConfig) -> dict:
    """
    Convert ClientConfig to dictionary for serialization.

    Args:
        config: Configuration to convert

    Returns:
        Dictionary representation (YAML-safe, secrets masked)
    """
    result = asdict(config)

    credentials = result["http"].get("credentials")
    if credentials:
        credentials["client_secret"] = "***" if credentials.get("client_secret") else None

    return result
