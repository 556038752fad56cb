"""
conftest.py: Shared pytest fixtures for the dsyncpay test suite.

- HTTP is never sent: tests patch session.get/session.post on a provider.
- Time is a FakeClock so TTL and token expiry are deterministic.

Usage:
    def test_something(paypal, make_response):
        with mock.patch.object(paypal.session, "get", return_value=make_response({"status": "COMPLETED"})):
            ...
"""

import os

# Lift the client-side throttle before dsyncpay reads its configuration
os.environ.setdefault("DSyncPay_RateLimitCalls", "100000")

from unittest import mock

import pytest

from dsyncpay.events import EventDispatcher
from dsyncpay.models import EventType
from dsyncpay.providers import CoinbaseProvider, PayPalProvider
from dsyncpay.storage import MemoryMetadataStore

WEBHOOK_SECRET = "whsec-test-secret"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class EventRecorder:
    """Collects every (event, record) pair dispatched."""

    def __init__(self, dispatcher: EventDispatcher):
        self.calls = []
        for event in EventType:
            dispatcher.register(event, self._handler_for(event))

    def _handler_for(self, event):
        def handler(record):
            self.calls.append((event, record))

        handler.__name__ = f"record_{event.value}"
        return handler

    @property
    def events(self):
        return [event for event, _ in self.calls]

    def records(self, event):
        return [record for e, record in self.calls if e == event]

    def clear(self):
        self.calls.clear()


def _make_response(json_data=None, status_code=200, content=None, text=None):
    resp = mock.Mock()
    resp.status_code = status_code
    if isinstance(json_data, Exception):
        resp.json.side_effect = json_data
        resp.content = content if content is not None else b"not json"
    else:
        resp.json.return_value = json_data
        resp.content = content if content is not None else (b"{}" if json_data is not None else b"")
    resp.text = text if text is not None else str(json_data)
    return resp


@pytest.fixture
def make_response():
    """Factory for fake requests.Response objects."""
    return _make_response


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    """A metadata store driven by the fake clock, without the expiry thread."""
    s = MemoryMetadataStore(default_ttl=60, clock=clock, start_worker=False)
    yield s
    s.close()


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def recorder(dispatcher):
    return EventRecorder(dispatcher)


@pytest.fixture
def paypal(dispatcher, store, clock):
    """A sandbox PayPalProvider holding a cached access token."""
    p = PayPalProvider(
        client_id="client-id",
        client_secret="client-secret",
        sandbox=True,
        dispatcher=dispatcher,
        store=store,
        clock=clock,
    )
    with mock.patch.object(p.session, "post", return_value=_make_response({"access_token": "test-token"})):
        p.get_access_token()
    yield p
    p.close()


@pytest.fixture
def coinbase(dispatcher):
    p = CoinbaseProvider(api_key="cc-api-key", webhook_secret=WEBHOOK_SECRET, dispatcher=dispatcher)
    yield p
    p.close()


@pytest.fixture
def order_response():
    """PayPal create-order response."""
    return {
        "id": "5O190127TN364715T",
        "status": "CREATED",
        "links": [
            {"href": "https://api-m.sandbox.paypal.com/v2/checkout/orders/5O190127TN364715T", "rel": "self"},
            {"href": "https://www.sandbox.paypal.com/checkoutnow?token=5O190127TN364715T", "rel": "approve"},
        ],
    }


def paypal_order(status, custom_id="12345678901234567", value="39.98", currency="EUR", order_id="5O190127TN364715T"):
    """PayPal get-order response."""
    return {
        "id": order_id,
        "status": status,
        "purchase_units": [
            {
                "custom_id": custom_id,
                "amount": {"currency_code": currency, "value": value},
            }
        ],
    }


def coinbase_charge(statuses, code="66BEOV2A", charge_id="f765421f-2d1b-4d8a-bb2b-5b5c3a9b1c2d", metadata=None):
    """Coinbase get-charge response with a timeline built from statuses."""
    return {
        "data": {
            "id": charge_id,
            "code": code,
            "hosted_url": f"https://commerce.coinbase.com/charges/{code}",
            "metadata": metadata if metadata is not None else {"user_id": "42"},
            "pricing": {"local": {"amount": "39.98", "currency": "EUR"}},
            "timeline": [
                {"status": status, "time": f"2024-07-01T12:0{i}:00Z"} for i, status in enumerate(statuses)
            ],
        }
    }


@pytest.fixture
def paypal_order_factory():
    return paypal_order


@pytest.fixture
def coinbase_charge_factory():
    return coinbase_charge
