"""
PayPal payment provider for dsyncpay.

Covers the redirect checkout flow (orders) and recurring billing (products,
plans and subscriptions) on the PayPal REST API.
"""

import logging
import os
import time
from typing import Any, Callable, Dict, Optional

import requests

from ..config import TOKEN_VALIDITY_SECONDS, is_sandbox
from ..credentials import CredentialCache
from ..events import EventDispatcher
from ..exceptions import AuthError, ConfigurationError, ProviderError, ValidationError
from ..models import (
    BillingPlan,
    CanonicalStatus,
    CheckoutOrder,
    CheckoutSubscription,
    EventRecord,
    EventType,
    OrderVerification,
    Provider,
    SubscriptionCancellation,
    SubscriptionVerification,
    TransactionKind,
)
from ..status import ORDER_STATUSES, SUBSCRIPTION_STATUSES
from ..storage import MemoryMetadataStore, MetadataStore
from ..utils import compute_total, deep_get, format_amount, generate_transaction_id, parse_amount
from .base import PaymentProvider, ProviderCapabilities

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "customer request"
BILLING_INTERVALS = ("DAY", "WEEK", "MONTH", "YEAR")


class PayPalProvider(PaymentProvider):
    """
    PayPal payment provider.

    Caller metadata is parked in the metadata store from creation until
    verification. Two keys are written per transaction: the transaction id
    holding the metadata, and an alias from the PayPal order or subscription
    id to the transaction id, so verification can clean up even when PayPal
    cannot be reached.
    """

    SANDBOX_API_BASE = "https://api-m.sandbox.paypal.com"
    LIVE_API_BASE = "https://api-m.paypal.com"

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        sandbox: bool | None = None,
        dispatcher: EventDispatcher | None = None,
        store: MetadataStore | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
        token_validity: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client_id = client_id or os.getenv("PAYPAL_CLIENT_ID")
        self.client_secret = client_secret or os.getenv("PAYPAL_CLIENT_SECRET")
        self.sandbox = is_sandbox() if sandbox is None else sandbox
        self.environment = "sandbox" if self.sandbox else "live"
        self._owns_store = store is None
        super().__init__(
            Provider.PAYPAL.value,
            dispatcher=dispatcher,
            store=store if store is not None else MemoryMetadataStore(),
            timeout=timeout,
            session=session,
        )
        self.credentials = CredentialCache(
            self._exchange_credentials,
            validity=token_validity or TOKEN_VALIDITY_SECONDS,
            clock=clock,
        )
        logger.info("PayPalProvider initialized for %s environment", self.environment)

    def _get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_orders=True,
            supports_subscriptions=True,
            supports_webhooks=False,
        )

    def _validate_configuration(self) -> None:
        if not self.client_id or not isinstance(self.client_id, str):
            raise ConfigurationError(
                "PayPal client_id must be set via argument or PAYPAL_CLIENT_ID env var.", config_key="PAYPAL_CLIENT_ID"
            )
        if not self.client_secret or not isinstance(self.client_secret, str):
            raise ConfigurationError(
                "PayPal client_secret must be set via argument or PAYPAL_CLIENT_SECRET env var.",
                config_key="PAYPAL_CLIENT_SECRET",
            )
        if not isinstance(self.sandbox, bool):
            raise ConfigurationError("sandbox must be a boolean", config_key="sandbox", actual_value=str(self.sandbox))

    def _perform_health_check(self) -> None:
        self.get_access_token()

    @property
    def api_base(self) -> str:
        """Return the base URL for the PayPal API (sandbox or live)."""
        return self.SANDBOX_API_BASE if self.sandbox else self.LIVE_API_BASE

    def close(self) -> None:
        super().close()
        if self._owns_store:
            self.store.close()

    # Credentials

    def _exchange_credentials(self) -> str:
        """Exchange client credentials for a bearer token."""
        try:
            payload = self._request(
                "POST",
                f"{self.api_base}/v1/oauth2/token",
                "auth",
                headers={"Accept": "application/json", "Accept-Language": "en_US"},
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
            )
        except ProviderError as e:
            raise AuthError(
                f"Failed to obtain PayPal access token: {e.message}", provider=self.name, status_code=e.status_code
            ) from e

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise AuthError("PayPal token response did not contain an access_token", provider=self.name)
        return token

    def get_access_token(self) -> str:
        """Return a cached bearer token, exchanging credentials when needed."""
        try:
            return self.credentials.get_access_token()
        except AuthError as e:
            self._report_error("auth", e)
            raise

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.get_access_token()}",
        }

    # Metadata

    def _alias_key(self, provider_id: str) -> str:
        return f"{self.name}:{provider_id}"

    def _remember(self, transaction_id: str, provider_id: str, metadata: Dict[str, Any]) -> None:
        self.store.put(transaction_id, metadata)
        self.store.put(self._alias_key(provider_id), transaction_id)

    def _transaction_id(self, custom_id: Any) -> str:
        """Return the caller transaction id, or a generated one when omitted."""
        if not custom_id:
            return generate_transaction_id()
        transaction_id = str(custom_id)
        if transaction_id.startswith(self._alias_key("")):
            raise ValidationError(
                f"custom_id must not start with the reserved prefix '{self._alias_key('')}'",
                field="custom_id",
                value=custom_id,
            )
        return transaction_id

    def _stored_metadata(self, transaction_id: Optional[str]) -> Dict[str, Any]:
        return (self.store.get(transaction_id) if transaction_id else None) or {}

    def _forget(self, provider_id: Any, *transaction_ids: Optional[str]) -> None:
        if provider_id:
            self.store.delete(self._alias_key(str(provider_id)))
        for transaction_id in {t for t in transaction_ids if t}:
            self.store.delete(transaction_id)

    @staticmethod
    def _approval_url(response: Dict[str, Any], operation: str) -> str:
        for link in response.get("links") or []:
            if isinstance(link, dict) and link.get("rel") == "approve" and link.get("href"):
                return link["href"]
        raise ProviderError(
            "PayPal response did not include an approval link",
            provider=Provider.PAYPAL.value,
            operation=operation,
            response_body=response,
        )

    @staticmethod
    def _require_id(response: Dict[str, Any], operation: str) -> str:
        resource_id = response.get("id") if isinstance(response, dict) else None
        if not resource_id:
            raise ProviderError(
                "PayPal response did not include an id",
                provider=Provider.PAYPAL.value,
                operation=operation,
                response_body=response,
            )
        return resource_id

    # Orders

    def create_order(
        self,
        title: str,
        price: float,
        quantity: int = 1,
        currency: str = "EUR",
        return_url: str | None = None,
        cancel_url: str | None = None,
        custom_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        description: str | None = None,
    ) -> CheckoutOrder:
        """
        Create a PayPal order and return the approval link for the buyer.

        The order total is price × quantity rounded half-up to cents. Caller
        metadata is kept until verify_order() runs or the store TTL elapses.

        Args:
            title: Item name shown to the buyer
            price: Unit price
            quantity: Number of units (default: 1)
            currency: ISO currency code (default: EUR)
            return_url: Where PayPal sends the buyer after approval
            cancel_url: Where PayPal sends the buyer after cancelling
            custom_id: Caller transaction id. A 17-digit id is generated when omitted.
            metadata: Arbitrary data handed back on verification
            description: Item description (defaults to the title)

        Returns:
            CheckoutOrder with the approval URL

        Raises:
            ValidationError: If a required field is missing or malformed
            ProviderError: If PayPal rejects the order
        """
        transaction_id = custom_id or None
        try:
            self._require(title, "title")
            unit_price = self._validate_price(price)
            self._validate_positive_int(quantity, "quantity")
            currency = self._validate_currency(currency)
            self._validate_url(return_url, "return_url")
            self._validate_url(cancel_url, "cancel_url")
            metadata = self._validate_metadata(metadata)

            transaction_id = self._transaction_id(custom_id)
            amount = compute_total(unit_price, quantity)
            total = format_amount(amount)

            order_payload = {
                "intent": "CAPTURE",
                "purchase_units": [
                    {
                        "amount": {
                            "currency_code": currency,
                            "value": total,
                            "breakdown": {"item_total": {"currency_code": currency, "value": total}},
                        },
                        "items": [
                            {
                                "name": title,
                                "description": description or title,
                                "unit_amount": {"currency_code": currency, "value": format_amount(unit_price)},
                                "quantity": str(quantity),
                            }
                        ],
                        "custom_id": transaction_id,
                    }
                ],
                "application_context": {"return_url": return_url, "cancel_url": cancel_url},
            }

            headers = self._auth_headers()
            headers["PayPal-Request-Id"] = f"order-{transaction_id}"
            response = self._request(
                "POST", f"{self.api_base}/v2/checkout/orders", "create_order", headers=headers, json=order_payload
            )
            order_id = self._require_id(response, "create_order")
            approval_url = self._approval_url(response, "create_order")
        except AuthError:
            raise
        except Exception as e:
            self._report_error(
                "order_creation",
                e,
                metadata=metadata if isinstance(metadata, dict) else None,
                transaction_id=transaction_id,
            )
            raise

        self._remember(transaction_id, order_id, metadata)
        logger.info("PayPal order created: %s (transaction %s, %s %s)", order_id, transaction_id, total, currency)

        self._emit(
            EventType.PAYMENT_CREATED,
            EventRecord(
                provider=self.name,
                type=TransactionKind.ORDER.value,
                status=CanonicalStatus.CREATED,
                transaction_id=transaction_id,
                amount=amount,
                currency=currency,
                metadata=metadata,
                raw_response=response,
                provider_id=order_id,
            ),
        )
        return CheckoutOrder(
            approval_url=approval_url,
            transaction_id=transaction_id,
            provider_order_id=order_id,
            amount=amount,
            currency=currency,
            metadata=metadata,
            raw_response=response,
        )

    def verify_order(self, provider_order_id: str) -> OrderVerification:
        """
        Verify an order after the buyer returns from PayPal.

        An APPROVED order is captured first and classified by the capture
        result. Exactly one lifecycle event is dispatched. The stored
        metadata is deleted whatever the outcome.

        Raises:
            ProviderError: If PayPal cannot be reached or rejects the request
        """
        stored_id = None
        transaction_id = None
        try:
            self._require(provider_order_id, "provider_order_id")
            stored_id = self.store.get(self._alias_key(provider_order_id))

            headers = self._auth_headers()
            order_url = f"{self.api_base}/v2/checkout/orders/{provider_order_id}"
            order = self._request("GET", order_url, "get_order", headers=headers)
            provider_status = order.get("status")
            raw_response: Any = order

            if provider_status == "APPROVED":
                capture_headers = {**headers, "PayPal-Request-Id": f"capture-{provider_order_id}"}
                capture = self._request(
                    "POST", f"{order_url}/capture", "capture_order", headers=capture_headers, json={}
                )
                provider_status = capture.get("status") or provider_status
                raw_response = capture
                logger.info("Captured PayPal order %s: %s", provider_order_id, provider_status)

            transaction_id = deep_get(order, "purchase_units.0.custom_id") or stored_id
            metadata = self._stored_metadata(transaction_id)
            amount = parse_amount(deep_get(order, "purchase_units.0.amount.value"))
            currency = deep_get(order, "purchase_units.0.amount.currency_code")

            status, event = ORDER_STATUSES.classify(provider_status)
            self._emit(
                event,
                EventRecord(
                    provider=self.name,
                    type=TransactionKind.ORDER.value,
                    status=status,
                    transaction_id=transaction_id,
                    amount=amount,
                    currency=currency,
                    metadata=metadata,
                    raw_response=raw_response,
                    provider_id=provider_order_id,
                ),
            )
            return OrderVerification(
                status=status,
                provider_status=provider_status,
                transaction_id=transaction_id,
                provider_order_id=provider_order_id,
                amount=amount,
                currency=currency,
                metadata=metadata,
                raw_response=raw_response,
            )
        except AuthError:
            raise
        except Exception as e:
            self._report_error(
                "order_verification",
                e,
                metadata=self._stored_metadata(transaction_id or stored_id),
                transaction_id=transaction_id or stored_id,
                provider_id=provider_order_id,
            )
            raise
        finally:
            self._forget(provider_order_id, stored_id, transaction_id)

    # Plans

    def create_product(self, name: str, description: str | None = None) -> str:
        """Register a catalog product and return its id. Plans hang off a product."""
        self._require(name, "name")
        response = self._request(
            "POST",
            f"{self.api_base}/v1/catalogs/products",
            "create_product",
            headers=self._auth_headers(),
            json={
                "name": name,
                "description": description or name,
                "type": "SERVICE",
                "category": "SOFTWARE",
            },
        )
        product_id = self._require_id(response, "create_product")
        logger.info("PayPal product created: %s", product_id)
        return product_id

    def create_plan(
        self,
        name: str,
        price: float,
        interval: str = "MONTH",
        frequency: int = 1,
        currency: str = "EUR",
        description: str | None = None,
    ) -> BillingPlan:
        """
        Create a product and a fixed-price billing plan under it.

        The plan bills every `frequency` `interval`s with no end date. Nothing
        is cached and no lifecycle event is dispatched.
        """
        try:
            self._require(name, "name")
            unit_price = self._validate_price(price)
            if not isinstance(interval, str) or interval.upper() not in BILLING_INTERVALS:
                raise ValidationError(
                    "interval must be one of DAY, WEEK, MONTH, YEAR",
                    field="interval",
                    value=interval,
                    constraints={"allowed": list(BILLING_INTERVALS)},
                )
            interval = interval.upper()
            self._validate_positive_int(frequency, "frequency")
            currency = self._validate_currency(currency)

            product_id = self.create_product(name, description)
            plan_payload = {
                "product_id": product_id,
                "name": name,
                "description": description or name,
                "status": "ACTIVE",
                "billing_cycles": [
                    {
                        "frequency": {"interval_unit": interval, "interval_count": frequency},
                        "tenure_type": "REGULAR",
                        "sequence": 1,
                        "total_cycles": 0,
                        "pricing_scheme": {
                            "fixed_price": {"value": format_amount(unit_price), "currency_code": currency}
                        },
                    }
                ],
                "payment_preferences": {
                    "auto_bill_outstanding": True,
                    "payment_failure_threshold": 3,
                },
            }
            response = self._request(
                "POST", f"{self.api_base}/v1/billing/plans", "create_plan", headers=self._auth_headers(), json=plan_payload
            )
            plan_id = self._require_id(response, "create_plan")
        except AuthError:
            raise
        except Exception as e:
            self._report_error("plan_creation", e)
            raise

        logger.info("PayPal plan created: %s (product %s, %s/%d %s)", plan_id, product_id, price, frequency, interval)
        return BillingPlan(
            plan_id=plan_id,
            product_id=product_id,
            name=name,
            price=float(unit_price),
            currency=currency,
            interval=interval,
            frequency=frequency,
            raw_response=response,
        )

    # Subscriptions

    def create_subscription(
        self,
        plan_id: str,
        return_url: str | None = None,
        cancel_url: str | None = None,
        custom_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CheckoutSubscription:
        """Create a subscription on a plan and return the approval link for the buyer."""
        transaction_id = custom_id or None
        try:
            self._require(plan_id, "plan_id")
            self._validate_url(return_url, "return_url")
            self._validate_url(cancel_url, "cancel_url")
            metadata = self._validate_metadata(metadata)
            transaction_id = self._transaction_id(custom_id)

            response = self._request(
                "POST",
                f"{self.api_base}/v1/billing/subscriptions",
                "create_subscription",
                headers={**self._auth_headers(), "PayPal-Request-Id": f"subscription-{transaction_id}"},
                json={
                    "plan_id": plan_id,
                    "custom_id": transaction_id,
                    "application_context": {"return_url": return_url, "cancel_url": cancel_url},
                },
            )
            subscription_id = self._require_id(response, "create_subscription")
            approval_url = self._approval_url(response, "create_subscription")
        except AuthError:
            raise
        except Exception as e:
            self._report_error(
                "subscription_creation",
                e,
                metadata=metadata if isinstance(metadata, dict) else None,
                transaction_id=transaction_id,
                plan_id=plan_id,
            )
            raise

        self._remember(transaction_id, subscription_id, metadata)
        logger.info("PayPal subscription created: %s (transaction %s, plan %s)", subscription_id, transaction_id, plan_id)

        self._emit(
            EventType.SUBSCRIPTION_CREATED,
            EventRecord(
                provider=self.name,
                type=TransactionKind.SUBSCRIPTION.value,
                status=CanonicalStatus.CREATED,
                transaction_id=transaction_id,
                metadata=metadata,
                raw_response=response,
                provider_id=subscription_id,
            ),
        )
        return CheckoutSubscription(
            approval_url=approval_url,
            transaction_id=transaction_id,
            subscription_id=subscription_id,
            plan_id=plan_id,
            metadata=metadata,
            raw_response=response,
        )

    def verify_subscription(self, subscription_id: str) -> SubscriptionVerification:
        """
        Read a subscription, classify it and dispatch its lifecycle event.

        The stored metadata is deleted whatever the outcome.
        """
        stored_id = None
        transaction_id = None
        try:
            self._require(subscription_id, "subscription_id")
            stored_id = self.store.get(self._alias_key(subscription_id))

            response = self._request(
                "GET",
                f"{self.api_base}/v1/billing/subscriptions/{subscription_id}",
                "get_subscription",
                headers=self._auth_headers(),
            )
            provider_status = response.get("status")
            transaction_id = response.get("custom_id") or stored_id
            metadata = self._stored_metadata(transaction_id)

            status, event = SUBSCRIPTION_STATUSES.classify(provider_status)
            self._emit(
                event,
                EventRecord(
                    provider=self.name,
                    type=TransactionKind.SUBSCRIPTION.value,
                    status=status,
                    transaction_id=transaction_id,
                    amount=parse_amount(deep_get(response, "billing_info.last_payment.amount.value")),
                    currency=deep_get(response, "billing_info.last_payment.amount.currency_code"),
                    metadata=metadata,
                    raw_response=response,
                    provider_id=subscription_id,
                ),
            )
            return SubscriptionVerification(
                status=status,
                provider_status=provider_status,
                transaction_id=transaction_id,
                subscription_id=subscription_id,
                plan_id=response.get("plan_id"),
                metadata=metadata,
                raw_response=response,
            )
        except AuthError:
            raise
        except Exception as e:
            self._report_error(
                "subscription_verification",
                e,
                metadata=self._stored_metadata(transaction_id or stored_id),
                transaction_id=transaction_id or stored_id,
                provider_id=subscription_id,
            )
            raise
        finally:
            self._forget(subscription_id, stored_id, transaction_id)

    def cancel_subscription(self, subscription_id: str, reason: str | None = DEFAULT_CANCEL_REASON) -> SubscriptionCancellation:
        """
        Cancel a subscription.

        Metadata is only dropped once PayPal confirms the cancellation; a
        failed cancel leaves the subscription live and its metadata in place.
        """
        reason = reason or DEFAULT_CANCEL_REASON
        try:
            self._require(subscription_id, "subscription_id")
            self._request(
                "POST",
                f"{self.api_base}/v1/billing/subscriptions/{subscription_id}/cancel",
                "cancel_subscription",
                headers=self._auth_headers(),
                json={"reason": reason},
            )
        except AuthError:
            raise
        except Exception as e:
            stored_id = self.store.get(self._alias_key(subscription_id)) if subscription_id else None
            self._report_error(
                "subscription_cancellation",
                e,
                metadata=self._stored_metadata(stored_id),
                transaction_id=stored_id,
                provider_id=subscription_id,
            )
            raise

        transaction_id = self.store.get(self._alias_key(subscription_id))
        metadata = self._stored_metadata(transaction_id)
        logger.info("PayPal subscription cancelled: %s (%s)", subscription_id, reason)

        self._emit(
            EventType.SUBSCRIPTION_CANCELLED,
            EventRecord(
                provider=self.name,
                type=TransactionKind.SUBSCRIPTION.value,
                status=CanonicalStatus.CANCELLED,
                transaction_id=transaction_id,
                metadata=metadata,
                provider_id=subscription_id,
            ),
        )
        self._forget(subscription_id, transaction_id)
        return SubscriptionCancellation(subscription_id=subscription_id, reason=reason, transaction_id=transaction_id)
