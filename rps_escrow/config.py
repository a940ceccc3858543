import dataclasses
import enum
import os
from typing import Mapping, Optional

from rps_escrow.commitment import normalize_address
from rps_escrow.errors import InvalidAddress, InvalidConfiguration

DEFAULT_GAME_PRICE = 9 * 10**15  # 0.009 ether
DEFAULT_GAME_TIMEOUT_BLOCKS = 20


class ResolutionTrigger(enum.Enum):
    """Who may settle a game once it is eligible for resolution."""

    ANY_PARTICIPANT = "any_participant"
    ANY_CALLER = "any_caller"
    DESIGNATED_OWNER = "designated_owner"

    @classmethod
    def parse(cls, value) -> "ResolutionTrigger":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidConfiguration(f"Unknown resolution trigger: {value!r}") from None


def validate_game_terms(game_price: int, game_timeout_blocks: int) -> None:
    if not isinstance(game_price, int) or game_price <= 0:
        raise InvalidConfiguration("Game price must be a positive integer")
    if not isinstance(game_timeout_blocks, int) or game_timeout_blocks <= 0:
        raise InvalidConfiguration("Game timeout in blocks must be a positive integer")


@dataclasses.dataclass
class Settings:
    game_price: int = DEFAULT_GAME_PRICE
    game_timeout_blocks: int = DEFAULT_GAME_TIMEOUT_BLOCKS
    owner: Optional[str] = None
    resolution_trigger: ResolutionTrigger = ResolutionTrigger.ANY_CALLER
    require_signature: bool = True
    signature_max_age: int = 300
    dev_mode: bool = False
    log_level: str = "INFO"
    port: int = 5000

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        owner = env.get("RPS_OWNER", "").strip() or None
        if owner:
            try:
                owner = normalize_address(owner)
            except InvalidAddress:
                raise InvalidConfiguration(f"RPS_OWNER is not an address: {owner!r}") from None
        settings = cls(
            game_price=_int(env, "RPS_GAME_PRICE", DEFAULT_GAME_PRICE),
            game_timeout_blocks=_int(env, "RPS_GAME_TIMEOUT_BLOCKS", DEFAULT_GAME_TIMEOUT_BLOCKS),
            owner=owner,
            resolution_trigger=ResolutionTrigger.parse(
                env.get("RPS_RESOLUTION_TRIGGER", ResolutionTrigger.ANY_CALLER.value)
            ),
            require_signature=env.get("RPS_REQUIRE_SIGNATURE", "1") == "1",
            signature_max_age=_int(env, "RPS_SIGNATURE_MAX_AGE", 300),
            dev_mode=env.get("RPS_DEV_MODE", "0") == "1",
            log_level=env.get("RPS_LOG_LEVEL", "INFO").upper(),
            port=_int(env, "PORT", 5000),
        )
        validate_game_terms(settings.game_price, settings.game_timeout_blocks)
        if settings.resolution_trigger is ResolutionTrigger.DESIGNATED_OWNER and not settings.owner:
            raise InvalidConfiguration("RPS_OWNER is required for the designated_owner trigger")
        return settings


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidConfiguration(f"{key} must be an integer, got {raw!r}") from None
