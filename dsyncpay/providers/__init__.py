"""
Payment providers for dsyncpay.

This module provides the PayPal (orders and subscriptions) and Coinbase
Commerce (crypto charges) providers, plus a factory that builds them from
keyword configuration.
"""

import logging
from typing import Dict, Optional, Type

from ..config import ENABLED_PROVIDERS
from .base import PaymentProvider, ProviderCapabilities, ProviderStatus
from .coinbase import CoinbaseProvider
from .paypal import PayPalProvider

logger = logging.getLogger(__name__)

# Provider registry
PROVIDERS: Dict[str, Type[PaymentProvider]] = {
    "paypal": PayPalProvider,
    "coinbase": CoinbaseProvider,
}


def _validate_paypal_config(client_id: Optional[str], client_secret: Optional[str], sandbox: Optional[bool]) -> None:
    """
    Validate PayPalProvider configuration parameters.

    Raises:
        ValueError: If any parameter is present but malformed
    """
    if client_id is not None and (not isinstance(client_id, str) or not client_id.strip()):
        raise ValueError("client_id must be a non-empty string")

    if client_secret is not None and (not isinstance(client_secret, str) or not client_secret.strip()):
        raise ValueError("client_secret must be a non-empty string")

    if sandbox is not None and not isinstance(sandbox, bool):
        raise ValueError("sandbox parameter must be a boolean value")


def _validate_coinbase_config(api_key: Optional[str], webhook_secret: Optional[str]) -> None:
    """
    Validate CoinbaseProvider configuration parameters.

    Raises:
        ValueError: If any parameter is present but malformed
    """
    if api_key is not None and (not isinstance(api_key, str) or not api_key.strip()):
        raise ValueError("api_key must be a non-empty string")

    if webhook_secret is not None and not isinstance(webhook_secret, str):
        raise ValueError("webhook_secret must be a string")


def create_payment_provider(provider_type: str, **kwargs) -> PaymentProvider:
    """
    Factory function to create payment providers.

    Credentials missing from kwargs are read from the environment by the
    provider itself.

    Args:
        provider_type: Type of payment provider (paypal, coinbase)
        **kwargs: Provider constructor arguments

    Returns:
        PaymentProvider: The created payment provider

    Raises:
        ValueError: If the provider type is unknown, disabled or misconfigured
    """
    if not isinstance(provider_type, str):
        raise ValueError(f"Unsupported provider type: {provider_type!r}")
    provider_type = provider_type.lower()

    if provider_type not in PROVIDERS:
        raise ValueError(f"Unsupported provider type: {provider_type}")

    if provider_type not in ENABLED_PROVIDERS:
        logger.error("Provider '%s' is disabled in configuration.", provider_type)
        raise ValueError(f"Provider '{provider_type}' is disabled in configuration.")

    if provider_type == "paypal":
        _validate_paypal_config(kwargs.get("client_id"), kwargs.get("client_secret"), kwargs.get("sandbox"))
        logger.info("Creating PayPalProvider")
    else:
        _validate_coinbase_config(kwargs.get("api_key"), kwargs.get("webhook_secret"))
        logger.info("Creating CoinbaseProvider")

    try:
        return PROVIDERS[provider_type](**kwargs)
    except TypeError as e:
        raise ValueError(f"Invalid configuration for {provider_type}: {e}") from e


__all__ = [
    "CoinbaseProvider",
    "PayPalProvider",
    "PaymentProvider",
    "ProviderCapabilities",
    "ProviderStatus",
    "PROVIDERS",
    "create_payment_provider",
]
