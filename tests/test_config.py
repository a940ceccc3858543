import pytest
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from rps_escrow.config import (
    DEFAULT_GAME_PRICE,
    DEFAULT_GAME_TIMEOUT_BLOCKS,
    ResolutionTrigger,
    Settings,
    validate_game_terms,
)
from rps_escrow.errors import InvalidConfiguration

OWNER = "0x00000000000000000000000000000000000000aa"


def test_defaults_from_empty_environment():
    s = Settings.from_env({})
    assert s.game_price == DEFAULT_GAME_PRICE == 9 * 10**15
    assert s.game_timeout_blocks == DEFAULT_GAME_TIMEOUT_BLOCKS
    assert s.owner is None
    assert s.resolution_trigger is ResolutionTrigger.ANY_CALLER
    assert s.require_signature is True
    assert s.dev_mode is False
    assert s.port == 5000


def test_reads_environment():
    s = Settings.from_env({
        "RPS_GAME_PRICE": "1000",
        "RPS_GAME_TIMEOUT_BLOCKS": "3",
        "RPS_OWNER": OWNER,
        "RPS_RESOLUTION_TRIGGER": "Designated_Owner",
        "RPS_REQUIRE_SIGNATURE": "0",
        "RPS_DEV_MODE": "1",
        "RPS_LOG_LEVEL": "debug",
        "PORT": "8080",
    })
    assert (s.game_price, s.game_timeout_blocks) == (1000, 3)
    assert s.owner.lower() == OWNER
    assert s.resolution_trigger is ResolutionTrigger.DESIGNATED_OWNER
    assert s.require_signature is False
    assert s.dev_mode is True
    assert s.log_level == "DEBUG"
    assert s.port == 8080


@pytest.mark.parametrize("env", [
    {"RPS_GAME_PRICE": "0"},
    {"RPS_GAME_PRICE": "abc"},
    {"RPS_GAME_TIMEOUT_BLOCKS": "-2"},
    {"RPS_OWNER": "not-an-address"},
    {"RPS_RESOLUTION_TRIGGER": "whoever"},
    {"RPS_RESOLUTION_TRIGGER": "designated_owner"},
])
def test_rejects_invalid_environment(env):
    with pytest.raises(InvalidConfiguration):
        Settings.from_env(env)


def test_validate_game_terms():
    validate_game_terms(1, 1)
    for price, timeout in [(0, 1), (1, 0), (-5, 1), ("1", 1), (1, 1.5)]:
        with pytest.raises(InvalidConfiguration):
            validate_game_terms(price, timeout)
