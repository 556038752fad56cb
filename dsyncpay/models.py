"""
Data models for dsyncpay.

Defines the canonical lifecycle vocabulary, the event record handed to host
callbacks, and the result values returned by the provider adapters.
"""

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class Provider(str, Enum):
    """Payment providers the gateway can talk to."""

    PAYPAL = "paypal"
    COINBASE = "coinbase"


class TransactionKind(str, Enum):
    """Kinds of payment intent tracked by the gateway."""

    ORDER = "order"
    SUBSCRIPTION = "subscription"
    CHARGE = "charge"
    SUBSCRIPTION_PLAN = "subscription_plan"


class CanonicalStatus(str, Enum):
    """Provider-agnostic lifecycle classification."""

    CREATED = "created"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    ACTIVE = "active"


class EventType(str, Enum):
    """Lifecycle events a host application can subscribe to."""

    PAYMENT_CREATED = "payment_created"
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_CANCELLED = "payment_cancelled"
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    ERROR = "error"

    @property
    def callback_name(self) -> str:
        return f"on_{self.value}"


def _serialize(data: dict[str, Any]) -> dict[str, Any]:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in data.items()}


@dataclass(frozen=True)
class EventRecord:
    """Normalized record passed to every host callback."""

    provider: str
    type: str
    transaction_id: Optional[str] = None
    status: Optional[CanonicalStatus] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    raw_response: Any = None
    provider_id: Optional[str] = None
    error: Any = None
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class CheckoutOrder:
    """A freshly created order awaiting buyer approval."""

    approval_url: str
    transaction_id: str
    provider_order_id: str
    amount: float
    currency: str
    metadata: dict[str, Any] = field(default_factory=dict)
    raw_response: Any = None
    provider: str = Provider.PAYPAL.value
    type: str = TransactionKind.ORDER.value

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class OrderVerification:
    """Outcome of verifying an order."""

    status: CanonicalStatus
    provider_status: Optional[str]
    transaction_id: Optional[str]
    provider_order_id: str
    amount: Optional[float]
    currency: Optional[str]
    metadata: dict[str, Any] = field(default_factory=dict)
    raw_response: Any = None
    provider: str = Provider.PAYPAL.value
    type: str = TransactionKind.ORDER.value

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class BillingPlan:
    """A billing plan registered under a catalog product."""

    plan_id: str
    product_id: str
    name: str
    price: float
    currency: str
    interval: str
    frequency: int
    raw_response: Any = None
    provider: str = Provider.PAYPAL.value
    type: str = TransactionKind.SUBSCRIPTION_PLAN.value

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class CheckoutSubscription:
    """A freshly created subscription awaiting buyer approval."""

    approval_url: str
    transaction_id: str
    subscription_id: str
    plan_id: str
    metadata: dict[str, Any] = field(default_factory=dict)
    raw_response: Any = None
    provider: str = Provider.PAYPAL.value
    type: str = TransactionKind.SUBSCRIPTION.value

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class SubscriptionVerification:
    """Outcome of verifying a subscription."""

    status: CanonicalStatus
    provider_status: Optional[str]
    transaction_id: Optional[str]
    subscription_id: str
    plan_id: Optional[str]
    metadata: dict[str, Any] = field(default_factory=dict)
    raw_response: Any = None
    provider: str = Provider.PAYPAL.value
    type: str = TransactionKind.SUBSCRIPTION.value

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class SubscriptionCancellation:
    """Acknowledgement of a subscription cancellation."""

    subscription_id: str
    reason: str
    transaction_id: Optional[str] = None
    status: CanonicalStatus = CanonicalStatus.CANCELLED
    provider: str = Provider.PAYPAL.value
    type: str = TransactionKind.SUBSCRIPTION.value

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class Charge:
    """A hosted crypto charge."""

    hosted_url: str
    charge_id: str
    charge_code: str
    amount: float
    currency: str
    metadata: dict[str, Any] = field(default_factory=dict)
    raw_response: Any = None
    provider: str = Provider.COINBASE.value
    type: str = TransactionKind.CHARGE.value

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class ChargeVerification:
    """Outcome of verifying a charge from its timeline."""

    status: CanonicalStatus
    provider_status: Optional[str]
    charge_id: Optional[str]
    charge_code: Optional[str]
    amount: Optional[float]
    currency: Optional[str]
    metadata: dict[str, Any] = field(default_factory=dict)
    raw_response: Any = None
    provider: str = Provider.COINBASE.value
    type: str = TransactionKind.CHARGE.value

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))
