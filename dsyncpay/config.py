"""
Configuration module for dsyncpay.

Handles environment-based configuration for payment providers, cache lifetimes
and request timeouts.
"""

import logging
import os
from typing import List

logger = logging.getLogger(__name__)

# Default configuration values
DEFAULT_ENABLED_PROVIDERS = "paypal,coinbase"
DEFAULT_METADATA_TTL_SECONDS = 60 * 60
DEFAULT_TOKEN_VALIDITY_SECONDS = 60 * 60
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30
DEFAULT_RATE_LIMIT_CALLS = 100
DEFAULT_RATE_LIMIT_PERIOD_SECONDS = 60

VALID_PAYMENT_PROVIDERS = {"paypal", "coinbase"}
VALID_ENVIRONMENTS = {"sandbox", "production"}

# Currencies accepted by create_order/create_plan/create_charge
SUPPORTED_CURRENCIES = {
    "AUD",
    "BRL",
    "CAD",
    "CHF",
    "CZK",
    "DKK",
    "EUR",
    "GBP",
    "HKD",
    "HUF",
    "ILS",
    "JPY",
    "MXN",
    "NOK",
    "NZD",
    "PHP",
    "PLN",
    "SEK",
    "SGD",
    "THB",
    "USD",
}

# Configuration limits
MAX_CONFIG_STRING_LENGTH = 1000
MAX_CONFIG_VALUES = 20


def _validate_config_string(config_string: str, config_name: str) -> str:
    """Validate configuration string for type, length, and content."""
    if not isinstance(config_string, str):
        raise TypeError(f"{config_name} must be a string, got {type(config_string).__name__}")

    if len(config_string) > MAX_CONFIG_STRING_LENGTH:
        raise ValueError(f"{config_name} string too long ({len(config_string)} chars). Max: {MAX_CONFIG_STRING_LENGTH}")

    if any(char in config_string for char in ["\0", "\r", "\n", "\t"]):
        raise ValueError(f"{config_name} contains invalid characters")

    return config_string


def _normalize_config_list(config_string: str, valid_values: set[str], config_name: str) -> List[str]:
    """Normalize and validate a comma-separated configuration string."""
    if not config_string:
        return []

    config_string = _validate_config_string(config_string, config_name)

    values = [s.strip().lower() for s in config_string.split(",") if s.strip()]

    if len(values) > MAX_CONFIG_VALUES:
        raise ValueError(f"Too many {config_name} values ({len(values)}). Max: {MAX_CONFIG_VALUES}")

    invalid_values = [v for v in values if v not in valid_values]

    if invalid_values:
        raise ValueError(
            f"Invalid {config_name} values: {invalid_values}. " f"Valid values are: {', '.join(sorted(valid_values))}"
        )

    return values


def _get_positive_int(env_name: str, default: int) -> int:
    """Read a positive integer from the environment, falling back to default."""
    raw = os.getenv(env_name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(_validate_config_string(raw, env_name).strip())
    except (TypeError, ValueError) as e:
        logger.error("Failed to parse %s=%r: %s. Using default %d.", env_name, raw, e, default)
        return default
    if value <= 0:
        logger.error("%s must be positive, got %d. Using default %d.", env_name, value, default)
        return default
    return value


def _get_enabled_providers() -> List[str]:
    """Get enabled payment providers from environment variables."""
    try:
        config_string = os.getenv("DSyncPay_EnabledProviders", DEFAULT_ENABLED_PROVIDERS)
        return _normalize_config_list(config_string, VALID_PAYMENT_PROVIDERS, "payment providers")
    except Exception as e:
        logger.error("Failed to parse provider configuration: %s. Using safe default.", e)
        return sorted(VALID_PAYMENT_PROVIDERS)


def _get_environment() -> str:
    """Get the provider environment (sandbox or production)."""
    environment = os.getenv("DSyncPay_Environment", "sandbox").strip().lower()
    if environment not in VALID_ENVIRONMENTS:
        logger.error("Invalid DSyncPay_Environment %r. Using sandbox.", environment)
        return "sandbox"
    return environment


ENABLED_PROVIDERS = _get_enabled_providers()
if not ENABLED_PROVIDERS:
    logger.warning("No payment providers enabled. Enabling all providers as fallback.")
    ENABLED_PROVIDERS = sorted(VALID_PAYMENT_PROVIDERS)

ENVIRONMENT = _get_environment()
METADATA_TTL_SECONDS = _get_positive_int("DSyncPay_MetadataTTL", DEFAULT_METADATA_TTL_SECONDS)
TOKEN_VALIDITY_SECONDS = _get_positive_int("DSyncPay_TokenValidity", DEFAULT_TOKEN_VALIDITY_SECONDS)
REQUEST_TIMEOUT_SECONDS = _get_positive_int("DSyncPay_RequestTimeout", DEFAULT_REQUEST_TIMEOUT_SECONDS)
RATE_LIMIT_CALLS = _get_positive_int("DSyncPay_RateLimitCalls", DEFAULT_RATE_LIMIT_CALLS)
RATE_LIMIT_PERIOD_SECONDS = _get_positive_int("DSyncPay_RateLimitPeriod", DEFAULT_RATE_LIMIT_PERIOD_SECONDS)


def is_provider_enabled(provider_name: str) -> bool:
    """Check if a specific payment provider is enabled."""
    if not isinstance(provider_name, str):
        return False
    return provider_name.lower() in ENABLED_PROVIDERS


def is_sandbox() -> bool:
    """Return True unless DSyncPay_Environment selects production."""
    return ENVIRONMENT != "production"


def get_config_summary() -> dict:
    """Get a summary of the current configuration."""
    return {
        "enabled_providers": ENABLED_PROVIDERS,
        "valid_payment_providers": sorted(VALID_PAYMENT_PROVIDERS),
        "environment": ENVIRONMENT,
        "metadata_ttl_seconds": METADATA_TTL_SECONDS,
        "token_validity_seconds": TOKEN_VALIDITY_SECONDS,
        "request_timeout_seconds": REQUEST_TIMEOUT_SECONDS,
        "rate_limit_calls": RATE_LIMIT_CALLS,
        "rate_limit_period_seconds": RATE_LIMIT_PERIOD_SECONDS,
    }
