import json
from unittest import mock

import pytest

from dsyncpay.exceptions import ConfigurationError, ProviderError, SignatureError, ValidationError
from dsyncpay.models import CanonicalStatus, EventType
from dsyncpay.providers import CoinbaseProvider
from dsyncpay.providers.coinbase import latest_timeline_entry
from dsyncpay.webhooks import compute_signature

REDIRECT_URL = "https://shop.example.com/payments/coinbase/success"
CANCEL_URL = "https://shop.example.com/payments/coinbase/cancel"
WEBHOOK_SECRET = "whsec-test-secret"


def _webhook(event_type="charge:confirmed", code="66BEOV2A"):
    body = json.dumps({"id": "evt-1", "event": {"id": "evt-1", "type": event_type, "data": {"code": code}}})
    return body.encode(), compute_signature(body.encode(), WEBHOOK_SECRET)


def test_init_requires_api_key(monkeypatch):
    monkeypatch.delenv("COINBASE_COMMERCE_API_KEY", raising=False)
    with pytest.raises(ConfigurationError):
        CoinbaseProvider()


def test_init_rejects_unknown_timeline_policy():
    with pytest.raises(ConfigurationError):
        CoinbaseProvider(api_key="key", timeline_policy="first")


def test_capabilities(coinbase):
    caps = coinbase.get_provider_info()["capabilities"]
    assert caps["supports_charges"] is True
    assert caps["supports_webhooks"] is True
    assert caps["supports_orders"] is False


def test_create_charge(coinbase, recorder, make_response, coinbase_charge_factory):
    with mock.patch.object(coinbase.session, "post", return_value=make_response(coinbase_charge_factory(["NEW"]), 201)) as post:
        charge = coinbase.create_charge(
            "Premium Plan",
            19.99,
            quantity=2,
            currency="EUR",
            redirect_url=REDIRECT_URL,
            cancel_url=CANCEL_URL,
            metadata={"user_id": "42"},
        )

    assert charge.charge_code == "66BEOV2A"
    assert charge.hosted_url == "https://commerce.coinbase.com/charges/66BEOV2A"
    assert charge.amount == 39.98

    args, kwargs = post.call_args
    assert args[0] == "https://api.commerce.coinbase.com/charges"
    assert kwargs["headers"]["X-CC-Api-Key"] == "cc-api-key"
    assert kwargs["headers"]["X-CC-Version"] == "2018-03-22"
    assert kwargs["json"]["pricing_type"] == "fixed_price"
    assert kwargs["json"]["local_price"] == {"amount": "39.98", "currency": "EUR"}
    assert kwargs["json"]["metadata"] == {"user_id": "42"}
    assert kwargs["json"]["redirect_url"] == REDIRECT_URL

    assert recorder.events == [EventType.PAYMENT_CREATED]
    record = recorder.records(EventType.PAYMENT_CREATED)[0]
    assert record.transaction_id == "66BEOV2A"
    assert record.provider == "coinbase"
    assert record.type == "charge"


@pytest.mark.parametrize(
    "overrides",
    [{"title": " "}, {"price": 0}, {"quantity": -1}, {"currency": "BTCX"}, {"redirect_url": "ftp://x"}, {"metadata": []}],
)
def test_create_charge_validation(coinbase, recorder, overrides):
    kwargs = {"title": "Item", "price": 10, "redirect_url": REDIRECT_URL, "cancel_url": CANCEL_URL}
    kwargs.update(overrides)
    with mock.patch.object(coinbase.session, "post") as post:
        with pytest.raises(ValidationError):
            coinbase.create_charge(**kwargs)
    post.assert_not_called()
    assert recorder.records(EventType.ERROR)[0].type == "charge_creation"


def test_create_charge_incomplete_response(coinbase, recorder, make_response):
    with mock.patch.object(coinbase.session, "post", return_value=make_response({"data": {"id": "x"}}, 201)):
        with pytest.raises(ProviderError):
            coinbase.create_charge("Item", 10, redirect_url=REDIRECT_URL, cancel_url=CANCEL_URL)
    assert recorder.events == [EventType.ERROR]


@pytest.mark.parametrize(
    "timeline, canonical, event",
    [
        (["NEW", "PENDING", "COMPLETED"], CanonicalStatus.COMPLETED, EventType.PAYMENT_COMPLETED),
        (["NEW", "PENDING", "EXPIRED"], CanonicalStatus.FAILED, EventType.PAYMENT_FAILED),
        (["CREATED", "PENDING", "EXPIRED"], CanonicalStatus.FAILED, EventType.PAYMENT_FAILED),
        (["NEW", "UNRESOLVED", "RESOLVED"], CanonicalStatus.COMPLETED, EventType.PAYMENT_COMPLETED),
        (["NEW", "CANCELED"], CanonicalStatus.CANCELLED, EventType.PAYMENT_CANCELLED),
        (["NEW"], CanonicalStatus.CREATED, EventType.PAYMENT_CREATED),
    ],
)
def test_verify_charge(coinbase, recorder, make_response, coinbase_charge_factory, timeline, canonical, event):
    with mock.patch.object(coinbase.session, "get", return_value=make_response(coinbase_charge_factory(timeline))) as get:
        result = coinbase.verify_charge("66BEOV2A")

    assert get.call_args[0][0] == "https://api.commerce.coinbase.com/charges/66BEOV2A"
    assert result.status is canonical
    assert result.provider_status == timeline[-1]
    assert result.amount == 39.98
    assert result.currency == "EUR"
    assert result.metadata == {"user_id": "42"}
    assert recorder.events == [event]


def test_verify_charge_empty_timeline_is_failed(coinbase, recorder, make_response, coinbase_charge_factory):
    with mock.patch.object(coinbase.session, "get", return_value=make_response(coinbase_charge_factory([]))):
        result = coinbase.verify_charge("66BEOV2A")
    assert result.status is CanonicalStatus.FAILED
    assert result.provider_status is None
    assert recorder.events == [EventType.PAYMENT_FAILED]


def test_verify_charge_timestamp_policy(coinbase, make_response, coinbase_charge_factory):
    body = coinbase_charge_factory(["NEW", "COMPLETED", "PENDING"])
    # Delivered out of order: COMPLETED carries the latest time
    body["data"]["timeline"][1]["time"] = "2024-07-01T13:00:00Z"
    with mock.patch.object(coinbase.session, "get", return_value=make_response(body)):
        assert coinbase.verify_charge("66BEOV2A").status is CanonicalStatus.CREATED
        assert coinbase.verify_charge("66BEOV2A", timeline_policy="timestamp").status is CanonicalStatus.COMPLETED


def test_verify_charge_not_found(coinbase, recorder, make_response):
    with mock.patch.object(coinbase.session, "get", return_value=make_response({"error": {"type": "not_found"}}, 404)):
        with pytest.raises(ProviderError) as exc:
            coinbase.verify_charge("NOPE")
    assert exc.value.status_code == 404
    error = recorder.records(EventType.ERROR)[0]
    assert error.type == "charge_verification"
    assert error.transaction_id == "NOPE"


def test_verify_charge_bad_policy(coinbase):
    with pytest.raises(ValidationError):
        coinbase.verify_charge("66BEOV2A", timeline_policy="middle")


def test_latest_timeline_entry():
    timeline = [
        {"status": "NEW", "time": "2024-07-01T12:00:00Z"},
        {"status": "COMPLETED", "time": "2024-07-01T12:05:00Z"},
        {"status": "PENDING", "time": "bogus"},
    ]
    assert latest_timeline_entry(timeline)["status"] == "PENDING"
    assert latest_timeline_entry(timeline, "timestamp")["status"] == "COMPLETED"
    assert latest_timeline_entry([], "last") is None
    assert latest_timeline_entry(None) is None


def test_verify_webhook(coinbase):
    body, signature = _webhook()
    assert coinbase.verify_webhook(body, signature) is True
    assert coinbase.verify_webhook(body, signature, secret="other") is False
    assert coinbase.verify_webhook(body + b" ", signature) is False


def test_handle_webhook_verifies_charge(coinbase, recorder, make_response, coinbase_charge_factory):
    body, signature = _webhook("charge:confirmed")
    charge = coinbase_charge_factory(["NEW", "PENDING", "COMPLETED"])
    with mock.patch.object(coinbase.session, "get", return_value=make_response(charge)) as get:
        result = coinbase.handle_webhook(body, signature)

    get.assert_called_once()
    assert result.status is CanonicalStatus.COMPLETED
    assert recorder.events == [EventType.PAYMENT_COMPLETED]


def test_handle_webhook_bad_signature_makes_no_call(coinbase, recorder):
    body, _ = _webhook()
    with mock.patch.object(coinbase.session, "get") as get:
        with pytest.raises(SignatureError):
            coinbase.handle_webhook(body, "0" * 64)
    get.assert_not_called()
    assert recorder.events == [EventType.ERROR]
    assert recorder.calls[0][1].type == "webhook_authentication"


def test_handle_webhook_ignored_event(coinbase, recorder):
    body, signature = _webhook("charge:created")
    with mock.patch.object(coinbase.session, "get") as get:
        assert coinbase.handle_webhook(body, signature) is None
    get.assert_not_called()
    assert recorder.events == []


def test_handle_webhook_malformed_json(coinbase):
    body = b"not json"
    with pytest.raises(ValidationError):
        coinbase.handle_webhook(body, compute_signature(body, WEBHOOK_SECRET))


def test_handle_webhook_without_charge_reference(coinbase):
    body = json.dumps({"event": {"type": "charge:failed", "data": {}}}).encode()
    with pytest.raises(ValidationError):
        coinbase.handle_webhook(body, compute_signature(body, WEBHOOK_SECRET))


def test_handle_webhook_without_secret_rejects(dispatcher, monkeypatch):
    monkeypatch.delenv("COINBASE_COMMERCE_WEBHOOK_SECRET", raising=False)
    p = CoinbaseProvider(api_key="key", dispatcher=dispatcher)
    body, signature = _webhook()
    with pytest.raises(SignatureError):
        p.handle_webhook(body, signature)
    p.close()


def test_health_check(coinbase, make_response):
    with mock.patch.object(coinbase.session, "get", return_value=make_response({"data": []})) as get:
        assert coinbase.check_health().is_healthy is True
    assert get.call_args[1]["params"] == {"limit": 1}
