"""Notifications emitted by the contracts, one per successful write."""
import dataclasses
import logging
from typing import Optional

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Event:
    @property
    def name(self) -> str:
        return type(self).__name__

    def args(self) -> dict:
        return {
            field.name: _plain(getattr(self, field.name))
            for field in dataclasses.fields(self)
        }

    def as_dict(self) -> dict:
        return {"event": self.name, "args": self.args()}


def _plain(value):
    # IntEnum members serialize as their number
    return int(value) if isinstance(value, int) else value


@dataclasses.dataclass(frozen=True)
class LogCreation(Event):
    owner: Optional[str]
    game_price: int
    game_timeout_blocks: int


@dataclasses.dataclass(frozen=True)
class LogEnrol(Event):
    caller: str
    bet_id: int


@dataclasses.dataclass(frozen=True)
class LogPlay(Event):
    caller: str
    bet_id: int
    move_hash: str


@dataclasses.dataclass(frozen=True)
class LogReveal(Event):
    caller: str
    bet_id: int
    move: int
    game_id: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class LogChooseWinner(Event):
    caller: str
    winner_id: int


@dataclasses.dataclass(frozen=True)
class LogWithdraw(Event):
    caller: str
    amount: int


@dataclasses.dataclass(frozen=True)
class LogGameStarted(Event):
    game_id: str
    player1: str
    player2: str
    game_price: int
    game_timeout_blocks: int
    move_hash: str


@dataclasses.dataclass(frozen=True)
class LogGameJoined(Event):
    game_id: str
    player2: str
    move_hash: str


@dataclasses.dataclass(frozen=True)
class LogGameResolved(Event):
    game_id: str
    caller: str
    winner_id: int
    move1: int
    move2: int


class EventLog(list):
    def emit(self, event: Event) -> Event:
        self.append(event)
        logger.info("%s %s", event.name, event.args())
        return event
