import pytest
import sys
import os
from urllib.parse import urlsplit

from eth_account import Account

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from rps_escrow.chain import Chain
from rps_escrow.commitment import compute_move_hash
from rps_escrow.config import Settings
from server import create_app
from tools import rps_interact

PRICE = 10**16
FUNDS = 10**18


class FakeResponse:
    def __init__(self, status_code, body, text):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


@pytest.fixture
def client(monkeypatch):
    """Route the CLI's HTTP calls into an in-process relayer."""
    app = create_app(Settings(game_price=PRICE, game_timeout_blocks=3, dev_mode=True), Chain())
    client = app.test_client()

    def fake_request(method, url, json=None, params=None, timeout=None):
        resp = client.open(urlsplit(url).path, method=method, json=json, query_string=params)
        return FakeResponse(resp.status_code, resp.get_json(silent=True), resp.get_data(as_text=True))

    monkeypatch.setattr(rps_interact.requests, "request", fake_request)
    yield client
    app.extensions["rps"]["dispatcher"].close()


@pytest.fixture
def players(client):
    alice, bob = Account.create(), Account.create()
    for acct in (alice, bob):
        client.post("/dev/fund", json={"address": acct.address, "amount": FUNDS})
    return alice, bob


def test_play_a_game_through_the_client(client, players):
    alice, bob = players
    gid = rps_interact.start_game(alice.key, bob.address, "paper", "s1", PRICE)["game_id"]

    # join looks up the stake when none is given
    rps_interact.join_game(bob.key, gid, "scissors", "s2")
    assert client.get(f"/games/{gid}").get_json()["status"] == "committed"

    assert rps_interact.reveal(alice.key, gid, "paper", "s1")["outcome"] is None
    assert rps_interact.reveal(bob.key, gid, "scissors", "s2")["outcome"] == 2
    assert rps_interact.withdraw(bob.key)["amount"] == 2 * PRICE


def test_claim_through_the_client(client, players):
    alice, bob = players
    gid = rps_interact.start_game(alice.key, bob.address, "rock", "s1", PRICE)["game_id"]
    client.post("/dev/mine", json={"blocks": 3})
    assert rps_interact.claim(alice.key, gid)["outcome"] == 0


def test_api_raises_on_error_status(client):
    with pytest.raises(RuntimeError) as exc:
        rps_interact.api("GET", "/games/0x" + "ab" * 32)
    assert "404" in str(exc.value)


def test_main_hash_and_get(client, players, capsys):
    alice, bob = players
    res = rps_interact.main(["hash", "--address", alice.address, "--move", "rock", "--secret", "x"])
    assert res["move_hash"] == compute_move_hash(alice.address, "rock", "x")

    gid = rps_interact.start_game(alice.key, bob.address, "rock", "s1", PRICE)["game_id"]
    assert rps_interact.main(["get", "--game", gid])["player1"] == alice.address
    assert rps_interact.main(["balance", "--address", alice.address])["account"] == FUNDS - PRICE
    assert gid in capsys.readouterr().out


def test_main_uses_private_key_from_environment(client, players, monkeypatch):
    alice, _ = players
    monkeypatch.setattr(rps_interact, "RPS_PRIVATE_KEY", None)
    with pytest.raises(SystemExit):
        rps_interact.main(["withdraw"])

    monkeypatch.setattr(rps_interact, "RPS_PRIVATE_KEY", "0x" + bytes(alice.key).hex())
    assert rps_interact.main(["balance"])["address"] == alice.address
