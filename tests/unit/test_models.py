import dataclasses

import pytest

from dsyncpay.models import (
    CanonicalStatus,
    Charge,
    CheckoutOrder,
    EventRecord,
    EventType,
    OrderVerification,
    Provider,
    SubscriptionCancellation,
    TransactionKind,
)


def test_enum_values():
    assert Provider.PAYPAL == "paypal"
    assert TransactionKind.SUBSCRIPTION_PLAN.value == "subscription_plan"
    assert CanonicalStatus("completed") is CanonicalStatus.COMPLETED
    assert EventType.SUBSCRIPTION_ACTIVATED.callback_name == "on_subscription_activated"


def test_event_record_to_dict_serializes_status():
    record = EventRecord(
        provider="coinbase",
        type="charge",
        transaction_id="66BEOV2A",
        status=CanonicalStatus.FAILED,
        amount=39.98,
        currency="EUR",
    )
    data = record.to_dict()
    assert data["status"] == "failed"
    assert data["metadata"] == {}
    assert data["error"] is None
    assert data["context"] == {}


def test_event_record_is_frozen():
    record = EventRecord(provider="paypal", type="order")
    with pytest.raises(dataclasses.FrozenInstanceError):
        record.amount = 1.0


def test_checkout_order_defaults():
    order = CheckoutOrder(
        approval_url="https://www.sandbox.paypal.com/checkoutnow?token=X",
        transaction_id="12345678901234567",
        provider_order_id="X",
        amount=39.98,
        currency="EUR",
    )
    assert order.provider == "paypal"
    assert order.type == "order"
    assert order.to_dict()["amount"] == 39.98


def test_order_verification_to_dict():
    result = OrderVerification(
        status=CanonicalStatus.COMPLETED,
        provider_status="COMPLETED",
        transaction_id="1",
        provider_order_id="X",
        amount=10.0,
        currency="USD",
        metadata={"user_id": 42},
    )
    assert result.to_dict()["status"] == "completed"
    assert result.to_dict()["metadata"] == {"user_id": 42}


def test_subscription_cancellation_defaults():
    result = SubscriptionCancellation(subscription_id="I-1", reason="customer request")
    assert result.status is CanonicalStatus.CANCELLED
    assert result.to_dict()["status"] == "cancelled"


def test_charge_defaults():
    charge = Charge(
        hosted_url="https://commerce.coinbase.com/charges/66BEOV2A",
        charge_id="id",
        charge_code="66BEOV2A",
        amount=39.98,
        currency="EUR",
    )
    assert charge.provider == "coinbase"
    assert charge.type == "charge"
