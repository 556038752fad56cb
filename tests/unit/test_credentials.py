import threading
import time
from unittest import mock

import pytest

from dsyncpay.credentials import AccessToken, CredentialCache
from dsyncpay.exceptions import AuthError


def test_token_reused_within_validity(clock):
    exchange = mock.Mock(return_value="token-1")
    cache = CredentialCache(exchange, validity=3600, clock=clock)

    assert cache.get_access_token() == "token-1"
    clock.advance(3599)
    assert cache.get_access_token() == "token-1"
    assert exchange.call_count == 1


def test_token_refreshed_after_validity(clock):
    exchange = mock.Mock(side_effect=["token-1", "token-2"])
    cache = CredentialCache(exchange, validity=3600, clock=clock)

    cache.get_access_token()
    clock.advance(3600)
    assert cache.get_access_token() == "token-2"
    assert exchange.call_count == 2
    assert cache.token == AccessToken(value="token-2", expires_at=clock.now + 3600)


def test_exchange_failure_propagates_and_is_not_cached(clock):
    exchange = mock.Mock(side_effect=[AuthError("denied", provider="paypal", status_code=401), "token-1"])
    cache = CredentialCache(exchange, clock=clock)

    with pytest.raises(AuthError):
        cache.get_access_token()
    assert cache.token is None
    assert cache.get_access_token() == "token-1"


def test_invalidate_forces_exchange(clock):
    exchange = mock.Mock(side_effect=["token-1", "token-2"])
    cache = CredentialCache(exchange, clock=clock)

    cache.get_access_token()
    cache.invalidate()
    assert cache.get_access_token() == "token-2"


def test_concurrent_callers_share_one_exchange():
    calls = []

    def slow_exchange():
        calls.append(1)
        time.sleep(0.05)
        return "shared-token"

    cache = CredentialCache(slow_exchange, validity=3600)
    results = []
    threads = [threading.Thread(target=lambda: results.append(cache.get_access_token())) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results == ["shared-token"] * 8
    assert len(calls) == 1


@pytest.mark.parametrize("validity", [0, -5, "60"])
def test_invalid_validity_rejected(validity):
    with pytest.raises(ValueError):
        CredentialCache(lambda: "t", validity=validity)


def test_exchange_must_be_callable():
    with pytest.raises(TypeError):
        CredentialCache("not callable")
