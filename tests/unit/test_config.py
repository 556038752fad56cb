import pytest

import dsyncpay.config as config
import dsyncpay.providers as providers
from dsyncpay.config import (
    VALID_PAYMENT_PROVIDERS,
    _get_enabled_providers,
    _get_environment,
    _get_positive_int,
    _normalize_config_list,
    _validate_config_string,
    get_config_summary,
)
from dsyncpay.providers import CoinbaseProvider, PayPalProvider, create_payment_provider


def test_normalize_config_list_valid():
    assert _normalize_config_list(" PayPal , coinbase ,", VALID_PAYMENT_PROVIDERS, "payment providers") == [
        "paypal",
        "coinbase",
    ]


def test_normalize_config_list_invalid():
    with pytest.raises(ValueError):
        _normalize_config_list("paypal,stripe", VALID_PAYMENT_PROVIDERS, "payment providers")


def test_normalize_config_list_empty():
    assert _normalize_config_list("", VALID_PAYMENT_PROVIDERS, "payment providers") == []


@pytest.mark.parametrize("value", ["a\nb", "x" * 2000])
def test_validate_config_string_rejects_bad_values(value):
    with pytest.raises(ValueError):
        _validate_config_string(value, "test")


def test_get_enabled_providers(monkeypatch):
    monkeypatch.setenv("DSyncPay_EnabledProviders", "coinbase")
    assert _get_enabled_providers() == ["coinbase"]


def test_get_enabled_providers_falls_back_on_invalid(monkeypatch):
    monkeypatch.setenv("DSyncPay_EnabledProviders", "paypal,bogus")
    assert _get_enabled_providers() == sorted(VALID_PAYMENT_PROVIDERS)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, 3600),
        ("", 3600),
        ("120", 120),
        (" 45 ", 45),
        ("0", 3600),
        ("-10", 3600),
        ("ten", 3600),
    ],
)
def test_get_positive_int(monkeypatch, raw, expected):
    if raw is None:
        monkeypatch.delenv("DSyncPay_TestValue", raising=False)
    else:
        monkeypatch.setenv("DSyncPay_TestValue", raw)
    assert _get_positive_int("DSyncPay_TestValue", 3600) == expected


@pytest.mark.parametrize("raw, expected", [("production", "production"), ("SANDBOX", "sandbox"), ("staging", "sandbox")])
def test_get_environment(monkeypatch, raw, expected):
    monkeypatch.setenv("DSyncPay_Environment", raw)
    assert _get_environment() == expected


def test_is_provider_enabled(monkeypatch):
    monkeypatch.setattr(config, "ENABLED_PROVIDERS", ["paypal"])
    assert config.is_provider_enabled("PayPal")
    assert not config.is_provider_enabled("coinbase")
    assert not config.is_provider_enabled(None)


def test_is_sandbox(monkeypatch):
    monkeypatch.setattr(config, "ENVIRONMENT", "production")
    assert config.is_sandbox() is False
    monkeypatch.setattr(config, "ENVIRONMENT", "sandbox")
    assert config.is_sandbox() is True


def test_get_config_summary():
    summary = get_config_summary()
    assert set(summary["enabled_providers"]) <= VALID_PAYMENT_PROVIDERS
    assert summary["metadata_ttl_seconds"] > 0
    assert summary["token_validity_seconds"] > 0
    assert summary["request_timeout_seconds"] > 0
    assert "rate_limit_calls" in summary


def test_factory_builds_enabled_providers(monkeypatch):
    monkeypatch.setattr(providers, "ENABLED_PROVIDERS", ["paypal", "coinbase"])
    paypal = create_payment_provider("PAYPAL", client_id="id", client_secret="secret", sandbox=True)
    coinbase = create_payment_provider("coinbase", api_key="key")
    assert isinstance(paypal, PayPalProvider)
    assert isinstance(coinbase, CoinbaseProvider)
    paypal.close()
    coinbase.close()


def test_factory_rejects_disabled_provider(monkeypatch):
    monkeypatch.setattr(providers, "ENABLED_PROVIDERS", ["coinbase"])
    with pytest.raises(ValueError, match="disabled"):
        create_payment_provider("paypal", client_id="id", client_secret="secret")


def test_factory_rejects_unknown_provider():
    with pytest.raises(ValueError, match="Unsupported"):
        create_payment_provider("stripe")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"client_id": "", "client_secret": "secret"},
        {"client_id": "id", "client_secret": 123},
        {"client_id": "id", "client_secret": "secret", "sandbox": "yes"},
        {"client_id": "id", "client_secret": "secret", "unknown_option": 1},
    ],
)
def test_factory_rejects_bad_paypal_config(monkeypatch, kwargs):
    monkeypatch.setattr(providers, "ENABLED_PROVIDERS", ["paypal", "coinbase"])
    with pytest.raises(ValueError):
        create_payment_provider("paypal", **kwargs)
