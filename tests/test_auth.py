import pytest
import sys
import os

from eth_account import Account

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from rps_escrow.auth import AuthError, NonceStore, sign_request, verify_request
from rps_escrow.dispatcher import Dispatcher


@pytest.fixture
def account():
    return Account.create()


def test_signed_request_round_trip(account):
    nonces = NonceStore()
    payload = sign_request(account.key, "reveal", nonces.issue(account.address))
    assert payload["signature"].startswith("0x")
    assert verify_request(payload, "reveal", nonces) == account.address
    # the nonce is single use
    with pytest.raises(AuthError):
        verify_request(payload, "reveal", nonces)


def test_signature_is_bound_to_action(account):
    nonces = NonceStore()
    payload = sign_request(account.key, "reveal", nonces.issue(account.address))
    with pytest.raises(AuthError):
        verify_request(payload, "withdraw", nonces)
    # a rejected signature does not burn the nonce
    assert verify_request(payload, "reveal", nonces) == account.address


def test_signature_from_another_key_is_rejected(account):
    nonces = NonceStore()
    other = Account.create()
    payload = sign_request(other.key, "claim", nonces.issue(account.address))
    payload["address"] = account.address
    with pytest.raises(AuthError):
        verify_request(payload, "claim", nonces)


def test_expired_signature(account):
    nonces = NonceStore()
    payload = sign_request(account.key, "join", nonces.issue(account.address), ts=1_000)
    with pytest.raises(AuthError):
        verify_request(payload, "join", nonces, max_age=300, now=1_301)
    assert verify_request(payload, "join", nonces, max_age=300, now=1_300) == account.address


def test_missing_fields(account):
    nonces = NonceStore()
    with pytest.raises(AuthError):
        verify_request({}, "start", nonces)
    with pytest.raises(AuthError):
        verify_request({"address": account.address}, "start", nonces)
    assert verify_request({"address": account.address.lower()}, "start", nonces,
                          require_signature=False) == account.address


def test_dispatcher_runs_calls_in_order():
    dispatcher = Dispatcher()
    seen = []

    async def append(value):
        seen.append(value)
        return value

    try:
        assert dispatcher.run(append(1)) == 1
        assert dispatcher.call(seen.append, 2) is None
        assert dispatcher.call(lambda: list(seen)) == [1, 2]

        async def fail():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            dispatcher.run(fail())
    finally:
        dispatcher.close()
    dispatcher.close()
    assert dispatcher.closed
