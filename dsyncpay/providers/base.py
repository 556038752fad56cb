"""
Abstract base class for payment providers.

Holds what the PayPal and Coinbase adapters share: the rate-limited HTTP
session, response checking, input validation, event emission and health
reporting.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests
from ratelimit import limits, sleep_and_retry

from ..config import RATE_LIMIT_CALLS, RATE_LIMIT_PERIOD_SECONDS, REQUEST_TIMEOUT_SECONDS, SUPPORTED_CURRENCIES
from ..events import EventDispatcher
from ..exceptions import ConfigurationError, ProviderError, ValidationError
from ..models import EventRecord, EventType
from ..storage import MetadataStore

logger = logging.getLogger(__name__)


@dataclass
class ProviderCapabilities:
    """Represents the capabilities of a payment provider."""

    supports_orders: bool = False
    supports_subscriptions: bool = False
    supports_charges: bool = False
    supports_webhooks: bool = False
    supported_currencies: List[str] = field(default_factory=lambda: sorted(SUPPORTED_CURRENCIES))

    def to_dict(self) -> Dict[str, Any]:
        """Convert capabilities to dictionary."""
        return {
            "supports_orders": self.supports_orders,
            "supports_subscriptions": self.supports_subscriptions,
            "supports_charges": self.supports_charges,
            "supports_webhooks": self.supports_webhooks,
            "supported_currencies": self.supported_currencies,
        }


@dataclass
class ProviderStatus:
    """Represents the current status of a payment provider."""

    is_healthy: bool = True
    last_check: Optional[datetime] = None
    error_message: Optional[str] = None
    response_time_ms: Optional[float] = None

    def __post_init__(self):
        if self.last_check is None:
            self.last_check = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert status to dictionary."""
        return {
            "is_healthy": self.is_healthy,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "error_message": self.error_message,
            "response_time_ms": self.response_time_ms,
        }


class PaymentProvider(ABC):
    """
    Abstract base class for payment providers.

    Args:
        name: Provider name, used as EventRecord.provider
        dispatcher: Event dispatcher shared with the rest of the gateway
        store: Metadata store, for providers that cache caller metadata
        timeout: Per-request timeout in seconds
        session: requests.Session to send calls through
    """

    # Shared by every provider instance in the process
    RATE_LIMIT_CALLS = RATE_LIMIT_CALLS
    RATE_LIMIT_PERIOD = RATE_LIMIT_PERIOD_SECONDS

    def __init__(
        self,
        name: str,
        dispatcher: Optional[EventDispatcher] = None,
        store: Optional[MetadataStore] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the payment provider."""
        timeout = REQUEST_TIMEOUT_SECONDS if timeout is None else timeout
        if not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0:
            raise ConfigurationError("Timeout must be a positive number.", config_key="timeout", actual_value=str(timeout))

        self.name = name
        self.dispatcher = dispatcher or EventDispatcher()
        self.store = store
        self.timeout = timeout
        self.session = session or requests.Session()
        self.capabilities = self._get_capabilities()
        self.status = ProviderStatus()
        self._validate_configuration()
        logger.info("Initialized payment provider: %s", self.name)

    @abstractmethod
    def _get_capabilities(self) -> ProviderCapabilities:
        """Get the capabilities of this provider."""
        pass

    @abstractmethod
    def _validate_configuration(self) -> None:
        """
        Validate the provider configuration.

        Raises:
            ConfigurationError: If credentials are missing or malformed
        """
        pass

    @abstractmethod
    def _perform_health_check(self) -> None:
        """
        Perform a health check on the provider.

        Returns None on success and raises on failure.
        """
        pass

    def check_health(self) -> ProviderStatus:
        """Check the health status of the provider."""
        start_time = time.time()
        try:
            self._perform_health_check()
            response_time = (time.time() - start_time) * 1000
            self.status = ProviderStatus(is_healthy=True, response_time_ms=response_time)
            logger.debug("Health check passed for provider %s (%.2fms)", self.name, response_time)
        except Exception as e:
            response_time = (time.time() - start_time) * 1000
            logger.warning(
                "Health check failed for provider %s (%.2fms): %s (%s)", self.name, response_time, e, type(e).__name__
            )
            self.status = ProviderStatus(
                is_healthy=False,
                error_message=f"Health check failed: {e}",
                response_time_ms=response_time,
            )
        return self.status

    def get_provider_info(self) -> Dict[str, Any]:
        """Get comprehensive provider information."""
        return {
            "name": self.name,
            "capabilities": self.capabilities.to_dict(),
            "status": self.status.to_dict(),
        }

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()

    # HTTP

    @sleep_and_retry
    @limits(calls=RATE_LIMIT_CALLS, period=RATE_LIMIT_PERIOD)
    def _rate_limited_request(self, method: str, url: str, **kwargs):
        """Make a rate-limited HTTP request."""
        if method.upper() == "GET":
            return self.session.get(url, **kwargs)
        elif method.upper() == "POST":
            return self.session.post(url, **kwargs)
        else:
            raise ValueError(f"Unsupported HTTP method: {method}")

    def _request(self, method: str, url: str, operation: str, **kwargs) -> Dict[str, Any]:
        """
        Send a request and return the decoded JSON body.

        An empty body (for example a 204) decodes to {}.

        Raises:
            ProviderError: On transport failure, non-2xx status or undecodable body
        """
        kwargs.setdefault("timeout", self.timeout)
        try:
            resp = self._rate_limited_request(method, url, **kwargs)
        except requests.exceptions.Timeout as e:
            raise ProviderError(
                f"{self.name} API request timed out during {operation}", provider=self.name, operation=operation
            ) from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(
                f"{self.name} API request failed during {operation}: {e}", provider=self.name, operation=operation
            ) from e

        status_code = resp.status_code
        if not 200 <= status_code < 300:
            raise ProviderError(
                f"{self.name} API returned HTTP {status_code} during {operation}",
                provider=self.name,
                operation=operation,
                status_code=status_code,
                response_body=self._response_body(resp),
            )

        if status_code == 204 or not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.name} API returned an invalid JSON body during {operation}",
                provider=self.name,
                operation=operation,
                status_code=status_code,
                response_body=getattr(resp, "text", None),
            ) from e

    @staticmethod
    def _response_body(resp) -> Any:
        try:
            return resp.json()
        except ValueError:
            return getattr(resp, "text", None)

    # Events

    def _emit(self, event: EventType, record: EventRecord) -> None:
        handled = self.dispatcher.dispatch(event, record)
        logger.debug("Dispatched %s for %s (%d handler(s))", event.value, record.transaction_id, handled)

    def _report_error(
        self, error_type: str, error: Exception, metadata: Optional[Dict[str, Any]] = None, **context: Any
    ) -> None:
        """
        Emit an error event tagged with the failed operation.

        ``metadata`` is the caller metadata of the affected transaction; any
        other keyword arguments describe the operation and land in ``context``.
        """
        body = getattr(error, "response_body", None)
        record = EventRecord(
            provider=self.name,
            type=error_type,
            transaction_id=context.pop("transaction_id", None),
            provider_id=context.pop("provider_id", None),
            metadata=dict(metadata or {}),
            context=context,
            error=body if body is not None else str(error),
        )
        logger.error("%s %s failed: %s", self.name, error_type, error)
        self._emit(EventType.ERROR, record)

    # Validation

    @staticmethod
    def _require(value: Any, field_name: str) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{field_name} is required", field=field_name, value=value)
        return value

    @staticmethod
    def _validate_price(price: Any, field_name: str = "price") -> Decimal:
        if price is None or isinstance(price, bool) or not isinstance(price, (int, float, str, Decimal)):
            raise ValidationError(f"{field_name} must be a number", field=field_name, value=price)
        try:
            amount = Decimal(str(price))
        except ArithmeticError as e:
            raise ValidationError(f"{field_name} must be a number", field=field_name, value=price) from e
        if not amount.is_finite() or amount <= 0:
            raise ValidationError(
                f"{field_name} must be positive", field=field_name, value=price, constraints={"min_exclusive": 0}
            )
        return amount

    @staticmethod
    def _validate_positive_int(value: Any, field_name: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(
                f"{field_name} must be a positive integer", field=field_name, value=value, constraints={"min": 1}
            )
        return value

    def _validate_currency(self, currency: Any) -> str:
        if not currency or not isinstance(currency, str):
            raise ValidationError("currency is required", field="currency", value=currency)
        code = currency.strip().upper()
        if code not in self.capabilities.supported_currencies:
            raise ValidationError(
                f"Currency {currency} is not supported by {self.name}",
                field="currency",
                value=currency,
                constraints={"supported": self.capabilities.supported_currencies},
            )
        return code

    @staticmethod
    def _validate_url(url: Any, field_name: str) -> str:
        if not url or not isinstance(url, str):
            raise ValidationError(f"{field_name} is required", field=field_name, value=url)
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(f"{field_name} must be an http(s) URL", field=field_name, value=url)
        return url

    @staticmethod
    def _validate_metadata(metadata: Any) -> Dict[str, Any]:
        if metadata is None:
            return {}
        if not isinstance(metadata, dict):
            raise ValidationError(
                f"metadata must be a dictionary or None, got {type(metadata).__name__}",
                field="metadata",
                value=metadata,
            )
        return dict(metadata)
