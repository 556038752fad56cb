"""
Coinbase Commerce payment provider for dsyncpay.

Hosted crypto charges: create a charge, send the buyer to its hosted page,
then classify the charge from its status timeline, either on return or
when a signed webhook arrives.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from ..events import EventDispatcher
from ..exceptions import ConfigurationError, ProviderError, SignatureError, ValidationError
from ..models import CanonicalStatus, Charge, ChargeVerification, EventRecord, EventType, Provider, TransactionKind
from ..status import CHARGE_STATUSES
from ..utils import compute_total, deep_get, format_amount, parse_amount, parse_datetime
from ..webhooks import verify_signature
from .base import PaymentProvider, ProviderCapabilities

logger = logging.getLogger(__name__)

TIMELINE_POLICIES = ("last", "timestamp")

# Webhook events that trigger a charge verification
VERIFIED_WEBHOOK_EVENTS = frozenset(
    {
        "charge:confirmed",
        "charge:failed",
        "charge:delayed",
        "charge:pending",
        "charge:resolved",
    }
)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def latest_timeline_entry(timeline: Any, policy: str = "last") -> Optional[Dict[str, Any]]:
    """
    Pick the timeline entry that decides a charge's status.

    "last" takes the final element as delivered. "timestamp" takes the entry
    with the greatest `time`; entries without a parseable time sort first and
    ties go to the later element.
    """
    if not isinstance(timeline, list):
        return None
    entries = [entry for entry in timeline if isinstance(entry, dict)]
    if not entries:
        return None
    if policy == "timestamp":
        _, entry = max(enumerate(entries), key=lambda pair: (parse_datetime(pair[1].get("time")) or _OLDEST, pair[0]))
        return entry
    return entries[-1]


class CoinbaseProvider(PaymentProvider):
    """
    Coinbase Commerce payment provider.

    Caller metadata travels with the charge itself and is echoed back by
    Coinbase, so nothing is stored locally.
    """

    API_BASE = "https://api.commerce.coinbase.com"
    API_VERSION = "2018-03-22"

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        dispatcher: Optional[EventDispatcher] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        timeline_policy: str = "last",
    ):
        self.api_key = api_key or os.getenv("COINBASE_COMMERCE_API_KEY")
        self.webhook_secret = webhook_secret or os.getenv("COINBASE_COMMERCE_WEBHOOK_SECRET")
        self.timeline_policy = timeline_policy
        super().__init__(Provider.COINBASE.value, dispatcher=dispatcher, timeout=timeout, session=session)
        logger.info("CoinbaseProvider initialized (webhooks %s)", "enabled" if self.webhook_secret else "disabled")

    def _get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(supports_charges=True, supports_webhooks=True)

    def _validate_configuration(self) -> None:
        if not self.api_key or not isinstance(self.api_key, str):
            raise ConfigurationError(
                "Coinbase Commerce api_key must be set via argument or COINBASE_COMMERCE_API_KEY env var.",
                config_key="COINBASE_COMMERCE_API_KEY",
            )
        if self.webhook_secret is not None and not isinstance(self.webhook_secret, str):
            raise ConfigurationError("webhook_secret must be a string", config_key="COINBASE_COMMERCE_WEBHOOK_SECRET")
        if self.timeline_policy not in TIMELINE_POLICIES:
            raise ConfigurationError(
                f"timeline_policy must be one of {', '.join(TIMELINE_POLICIES)}",
                config_key="timeline_policy",
                expected_value="|".join(TIMELINE_POLICIES),
                actual_value=str(self.timeline_policy),
            )

    def _perform_health_check(self) -> None:
        self._request("GET", f"{self.API_BASE}/charges", "health_check", headers=self._headers(), params={"limit": 1})

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-CC-Api-Key": self.api_key,
            "X-CC-Version": self.API_VERSION,
        }

    @staticmethod
    def _charge_data(response: Dict[str, Any], operation: str) -> Dict[str, Any]:
        data = response.get("data") if isinstance(response, dict) else None
        if not isinstance(data, dict):
            raise ProviderError(
                "Coinbase response did not include a data object",
                provider=Provider.COINBASE.value,
                operation=operation,
                response_body=response,
            )
        return data

    def create_charge(
        self,
        title: str,
        price: float,
        quantity: int = 1,
        currency: str = "EUR",
        redirect_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> Charge:
        """
        Create a fixed-price charge and return its hosted payment page.

        Raises:
            ValidationError: If a required field is missing or malformed
            ProviderError: If Coinbase rejects the charge
        """
        try:
            self._require(title, "title")
            unit_price = self._validate_price(price)
            self._validate_positive_int(quantity, "quantity")
            currency = self._validate_currency(currency)
            self._validate_url(redirect_url, "redirect_url")
            self._validate_url(cancel_url, "cancel_url")
            metadata = self._validate_metadata(metadata)

            amount = compute_total(unit_price, quantity)
            response = self._request(
                "POST",
                f"{self.API_BASE}/charges",
                "create_charge",
                headers=self._headers(),
                json={
                    "name": title,
                    "description": description or title,
                    "pricing_type": "fixed_price",
                    "metadata": metadata,
                    "local_price": {"amount": format_amount(amount), "currency": currency},
                    "redirect_url": redirect_url,
                    "cancel_url": cancel_url,
                },
            )
            data = self._charge_data(response, "create_charge")
            charge_id, charge_code, hosted_url = data.get("id"), data.get("code"), data.get("hosted_url")
            if not (charge_id and charge_code and hosted_url):
                raise ProviderError(
                    "Coinbase charge response is missing id, code or hosted_url",
                    provider=self.name,
                    operation="create_charge",
                    response_body=response,
                )
        except Exception as e:
            self._report_error("charge_creation", e, metadata=metadata if isinstance(metadata, dict) else None)
            raise

        logger.info("Coinbase charge created: %s (%s %s)", charge_code, format_amount(amount), currency)
        self._emit(
            EventType.PAYMENT_CREATED,
            EventRecord(
                provider=self.name,
                type=TransactionKind.CHARGE.value,
                status=CanonicalStatus.CREATED,
                transaction_id=charge_code,
                amount=amount,
                currency=currency,
                metadata=metadata,
                raw_response=response,
                provider_id=charge_id,
            ),
        )
        return Charge(
            hosted_url=hosted_url,
            charge_id=charge_id,
            charge_code=charge_code,
            amount=amount,
            currency=currency,
            metadata=metadata,
            raw_response=response,
        )

    def verify_charge(self, charge_code: str, timeline_policy: Optional[str] = None) -> ChargeVerification:
        """
        Fetch a charge and classify it from its timeline.

        Args:
            charge_code: Charge code or id
            timeline_policy: "last" or "timestamp"; defaults to the provider setting
        """
        policy = timeline_policy or self.timeline_policy
        try:
            self._require(charge_code, "charge_code")
            if policy not in TIMELINE_POLICIES:
                raise ValidationError(
                    f"timeline_policy must be one of {', '.join(TIMELINE_POLICIES)}",
                    field="timeline_policy",
                    value=policy,
                )

            response = self._request("GET", f"{self.API_BASE}/charges/{charge_code}", "get_charge", headers=self._headers())
            data = self._charge_data(response, "get_charge")
            latest = latest_timeline_entry(data.get("timeline"), policy)
            provider_status = latest.get("status") if latest else None

            status, event = CHARGE_STATUSES.classify(provider_status)
            amount = parse_amount(deep_get(data, "pricing.local.amount"))
            currency = deep_get(data, "pricing.local.currency")
            metadata = data.get("metadata") or {}

            self._emit(
                event,
                EventRecord(
                    provider=self.name,
                    type=TransactionKind.CHARGE.value,
                    status=status,
                    transaction_id=data.get("code") or charge_code,
                    amount=amount,
                    currency=currency,
                    metadata=metadata,
                    raw_response=response,
                    provider_id=data.get("id"),
                ),
            )
            return ChargeVerification(
                status=status,
                provider_status=provider_status,
                charge_id=data.get("id"),
                charge_code=data.get("code") or charge_code,
                amount=amount,
                currency=currency,
                metadata=metadata,
                raw_response=response,
            )
        except Exception as e:
            self._report_error("charge_verification", e, transaction_id=charge_code)
            raise

    def verify_webhook(self, raw_payload: Any, signature_header: Optional[str], secret: Optional[str] = None) -> bool:
        """Check a webhook body against its X-CC-Webhook-Signature header."""
        return verify_signature(raw_payload, signature_header, secret or self.webhook_secret)

    def handle_webhook(self, raw_payload: Any, signature_header: Optional[str]) -> Optional[ChargeVerification]:
        """
        Authenticate a webhook delivery and verify the charge it refers to.

        Returns None for event types that do not need a verification.

        Raises:
            SignatureError: If the signature does not match. No provider call is made.
            ValidationError: If the body is not a webhook envelope
        """
        if not self.verify_webhook(raw_payload, signature_header):
            error = SignatureError("Invalid webhook signature", provider=self.name)
            self._report_error("webhook_authentication", error)
            raise error

        try:
            envelope = json.loads(raw_payload)
        except (TypeError, ValueError) as e:
            raise ValidationError("Webhook payload is not valid JSON", field="payload") from e

        event = envelope.get("event") if isinstance(envelope, dict) else None
        if not isinstance(event, dict):
            raise ValidationError("Webhook payload has no event object", field="event")

        event_type = event.get("type")
        if event_type not in VERIFIED_WEBHOOK_EVENTS:
            logger.info("Ignoring Coinbase webhook event %s", event_type)
            return None

        data = event.get("data") if isinstance(event.get("data"), dict) else {}
        charge_ref = data.get("code") or data.get("id")
        if not charge_ref:
            raise ValidationError("Webhook event does not reference a charge", field="event.data")

        logger.info("Coinbase webhook %s for charge %s", event_type, charge_ref)
        return self.verify_charge(charge_ref)
