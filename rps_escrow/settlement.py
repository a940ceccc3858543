"""Payout rules shared by the single-slot contract and the hub."""
from typing import List, Optional, Sequence, Tuple

from rps_escrow.config import ResolutionTrigger
from rps_escrow.errors import Unauthorized
from rps_escrow.moves import Move, Outcome, resolve

Payout = Tuple[str, int]


def settle(players: Sequence[Optional[str]], moves: Sequence[Move],
           game_price: int) -> Tuple[Outcome, List[Payout]]:
    """Decide the outcome of a finished or timed-out game.

    ``players`` and ``moves`` are indexed by slot; an empty slot is None and an
    unrevealed move is VOID. The caller has already checked that the game is
    eligible for resolution. Payouts always add up to the stakes held.
    """
    p1, p2 = players
    m1, m2 = moves
    enrolled = [p for p in (p1, p2) if p is not None]
    pot = game_price * len(enrolled)

    if m1 is not Move.VOID and m2 is not Move.VOID:
        outcome = resolve(m1, m2)
    elif m1 is not Move.VOID:
        outcome = Outcome.PLAYER1
    elif m2 is not Move.VOID:
        outcome = Outcome.PLAYER2
    else:
        # nobody revealed: everyone gets their own stake back
        return Outcome.DRAW, [(p, game_price) for p in enrolled]

    if outcome is Outcome.DRAW:
        return outcome, [(p, game_price) for p in enrolled]
    winner = p1 if outcome is Outcome.PLAYER1 else p2
    return outcome, [(winner, pot)]


def authorize_resolution(trigger: ResolutionTrigger, caller: str, owner: Optional[str],
                         participants: Sequence[Optional[str]]) -> None:
    if trigger is ResolutionTrigger.ANY_CALLER:
        return
    if trigger is ResolutionTrigger.DESIGNATED_OWNER:
        if caller != owner:
            raise Unauthorized("Only the owner can resolve the game")
        return
    if caller not in [p for p in participants if p is not None]:
        raise Unauthorized("Only a participant can resolve the game")
