"""
Core gateway for dsyncpay.

PaymentGateway owns one metadata store and one event dispatcher and wires
the configured providers to them.
"""

import logging
import os
from typing import Any, Dict, Optional, Union

from .config import is_provider_enabled
from .events import EventDispatcher, EventHandler
from .exceptions import ConfigurationError
from .models import EventType
from .providers import CoinbaseProvider, PaymentProvider, PayPalProvider, ProviderStatus, create_payment_provider
from .storage import MemoryMetadataStore, MetadataStore

logger = logging.getLogger(__name__)

ProviderConfig = Union[Dict[str, Any], PaymentProvider, None]


class PaymentGateway:
    """
    Entry point combining PayPal and Coinbase Commerce behind one event model.

    Args:
        paypal: PayPalProvider keyword arguments, a ready PayPalProvider, or None to disable PayPal
        coinbase: CoinbaseProvider keyword arguments, a ready CoinbaseProvider, or None to disable Coinbase
        metadata_store: Store for transaction metadata (default: a new MemoryMetadataStore)
        metadata_ttl: Default TTL for the store created when metadata_store is omitted
        **callbacks: on_payment_created, on_payment_completed, on_payment_failed,
            on_payment_cancelled, on_subscription_created, on_subscription_activated,
            on_subscription_cancelled, on_error

    Example:
        gateway = PaymentGateway(
            paypal={"client_id": "...", "client_secret": "..."},
            on_payment_completed=lambda record: fulfil(record.transaction_id),
        )
    """

    def __init__(
        self,
        paypal: ProviderConfig = None,
        coinbase: ProviderConfig = None,
        metadata_store: Optional[MetadataStore] = None,
        metadata_ttl: Optional[float] = None,
        **callbacks: Optional[EventHandler],
    ):
        self.dispatcher = EventDispatcher(**callbacks)
        self._owns_store = metadata_store is None
        self.store = metadata_store if metadata_store is not None else MemoryMetadataStore(default_ttl=metadata_ttl)

        self.paypal: Optional[PayPalProvider] = self._build_provider("paypal", paypal, store=self.store)
        self.coinbase: Optional[CoinbaseProvider] = self._build_provider("coinbase", coinbase)

        if self.paypal is None and self.coinbase is None:
            logger.warning("PaymentGateway created with no providers configured")
        logger.info(
            "PaymentGateway initialized with providers: %s, store: %s",
            ", ".join(self.providers) or "none",
            type(self.store).__name__,
        )

    def _build_provider(self, provider_type: str, config: ProviderConfig, **wiring: Any) -> Any:
        if config is None:
            return None
        if isinstance(config, PaymentProvider):
            if config.name != provider_type:
                raise ConfigurationError(
                    f"Expected a {provider_type} provider, got {config.name}",
                    config_key=provider_type,
                    expected_value=provider_type,
                    actual_value=config.name,
                )
            config.dispatcher = self.dispatcher
            if "store" in wiring and config.store is not wiring["store"]:
                if getattr(config, "_owns_store", False):
                    config.store.close()
                    config._owns_store = False
                config.store = wiring["store"]
            return config
        if not isinstance(config, dict):
            raise ConfigurationError(
                f"{provider_type} configuration must be a dict or a provider instance",
                config_key=provider_type,
                actual_value=type(config).__name__,
            )
        try:
            return create_payment_provider(provider_type, dispatcher=self.dispatcher, **wiring, **config)
        except ValueError as e:
            raise ConfigurationError(str(e), config_key=provider_type) from e

    @classmethod
    def from_env(cls, metadata_store: Optional[MetadataStore] = None, **callbacks: Optional[EventHandler]) -> "PaymentGateway":
        """
        Build a gateway from environment variables.

        PayPal is configured when PAYPAL_CLIENT_ID and PAYPAL_CLIENT_SECRET are
        both set, Coinbase when COINBASE_COMMERCE_API_KEY is set. Providers
        disabled through DSyncPay_EnabledProviders are skipped.
        """
        paypal = None
        if is_provider_enabled("paypal") and os.getenv("PAYPAL_CLIENT_ID") and os.getenv("PAYPAL_CLIENT_SECRET"):
            paypal = {
                "client_id": os.getenv("PAYPAL_CLIENT_ID"),
                "client_secret": os.getenv("PAYPAL_CLIENT_SECRET"),
            }

        coinbase = None
        if is_provider_enabled("coinbase") and os.getenv("COINBASE_COMMERCE_API_KEY"):
            coinbase = {
                "api_key": os.getenv("COINBASE_COMMERCE_API_KEY"),
                "webhook_secret": os.getenv("COINBASE_COMMERCE_WEBHOOK_SECRET") or None,
            }

        return cls(paypal=paypal, coinbase=coinbase, metadata_store=metadata_store, **callbacks)

    @property
    def providers(self) -> Dict[str, PaymentProvider]:
        """Configured providers keyed by name."""
        return {p.name: p for p in (self.paypal, self.coinbase) if p is not None}

    def on(self, event: Union[EventType, str], handler: EventHandler) -> None:
        """Register an additional event handler."""
        self.dispatcher.register(event, handler)

    def require_paypal(self) -> PayPalProvider:
        if self.paypal is None:
            raise ConfigurationError("PayPal is not configured", config_key="paypal")
        return self.paypal

    def require_coinbase(self) -> CoinbaseProvider:
        if self.coinbase is None:
            raise ConfigurationError("Coinbase Commerce is not configured", config_key="coinbase")
        return self.coinbase

    def check_health(self) -> Dict[str, ProviderStatus]:
        """Run every provider's health check."""
        return {name: provider.check_health() for name, provider in self.providers.items()}

    def close(self) -> None:
        """Close provider sessions and, when owned, the metadata store."""
        for provider in self.providers.values():
            provider.session.close()
        if self._owns_store:
            self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
