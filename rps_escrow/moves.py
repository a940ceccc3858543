import enum
from typing import Union

from rps_escrow.errors import InvalidMove


class Move(enum.IntEnum):
    VOID = 0
    ROCK = 1
    PAPER = 2
    SCISSORS = 3

    @classmethod
    def parse(cls, value: Union[int, str, "Move"]) -> "Move":
        """Return a playable move or raise ``InvalidMove``.

        Accepts the numeric value or the lowercase name ("rock", ...).
        VOID is never playable.
        """
        if isinstance(value, str):
            text = value.strip()
            if text.lstrip("-").isdigit():
                number = int(text)
            elif text.upper() in cls.__members__:
                number = cls[text.upper()].value
            else:
                raise InvalidMove(f"Unknown move: {value!r}")
        elif isinstance(value, int) and not isinstance(value, bool):
            number = int(value)
        else:
            raise InvalidMove(f"Move must be an integer or a name: {value!r}")
        try:
            move = cls(number)
        except ValueError:
            raise InvalidMove(f"Move out of range: {value!r}") from None
        if move is cls.VOID:
            raise InvalidMove("Void move is not playable")
        return move


class Outcome(enum.IntEnum):
    DRAW = 0
    PLAYER1 = 1
    PLAYER2 = 2


def is_valid_move(value) -> bool:
    try:
        Move.parse(value)
    except InvalidMove:
        return False
    return True


def resolve(move1, move2) -> Outcome:
    m1 = Move.parse(move1)
    m2 = Move.parse(move2)
    if m1 == m2:
        return Outcome.DRAW
    # PAPER-ROCK, SCISSORS-PAPER and ROCK-SCISSORS all land on 1
    return Outcome.PLAYER1 if (m1 - m2) % 3 == 1 else Outcome.PLAYER2
