"""
Shared utilities library for the Deribit client.

This module provides common utilities used across the codebase:
- constants: Base URLs, endpoint paths, rate budgets, session defaults
- config: Unified configuration loading from YAML and environment variables
- logging: Structured logging with rotation and formatting
"""

from src.lib.constants import (
    PRODUCTION_BASE_URL,
    TESTNET_BASE_URL,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    DEFAULT_TOKEN_SAFETY_MARGIN,
    DEFAULT_REFRESH_RETRIES,
)

from src.lib.config import (
    ApiCredentials,
    HttpConfig,
    RateLimitConfig,
    AuthConfig,
    ClientConfig,
    load_config,
    validate_config,
    config_to_dict,
)

from src.lib.logging_utils import (
    setup_logging,
    ApiLogger,
    ApiFormatter,
    log_latency,
)


__all__ = [
    # Constants
    "PRODUCTION_BASE_URL",
    "TESTNET_BASE_URL",
    "DEFAULT_TIMEOUT_SECONDS",
    "DEFAULT_USER_AGENT",
    "DEFAULT_TOKEN_SAFETY_MARGIN",
    "DEFAULT_REFRESH_RETRIES",
    # Config
    "ApiCredentials",
    "HttpConfig",
    "RateLimitConfig",
    "AuthConfig",
    "ClientConfig",
    "load_config",
    "validate_config",
    "config_to_dict",
    # Logging
    "setup_logging",
    "ApiLogger",
    "ApiFormatter",
    "log_latency",
]
