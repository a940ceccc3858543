import asyncio
import dataclasses
import logging
from typing import List, Optional

from rps_escrow.chain import Chain
from rps_escrow.commitment import compute_move_hash, normalize_address, normalize_move_hash
from rps_escrow.config import ResolutionTrigger, validate_game_terms
from rps_escrow.errors import (
    CommitmentMismatch,
    IneligibleCaller,
    InsufficientPayment,
    InvalidConfiguration,
    InvalidMoveHash,
    PrematureOperation,
)
from rps_escrow.events import (
    EventLog,
    LogChooseWinner,
    LogCreation,
    LogEnrol,
    LogPlay,
    LogReveal,
    LogWithdraw,
)
from rps_escrow.ledger import EscrowLedger
from rps_escrow.moves import Move, Outcome
from rps_escrow.settlement import authorize_resolution, settle

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class Bet:
    player: Optional[str] = None
    move_hash: Optional[str] = None
    move: Move = Move.VOID


class RockPaperScissors:
    """One game of rock-paper-scissors between two enrolled players.

    Players enrol with a stake of ``game_price``, commit a move hash with
    ``play``, reveal the move and secret with ``reveal``, and then the game is
    settled by ``choose_winner``. Winnings go to an escrow ledger and are paid
    out with ``withdraw``. After settlement both slots are empty again and a
    new game can start on the same instance.

    Write methods are coroutines serialized by one lock; every check runs
    before any state changes, so a raised error leaves the game untouched.
    """

    def __init__(self, chain: Chain, *, owner: Optional[str], game_price: int,
                 game_timeout_blocks: int,
                 resolution_trigger=ResolutionTrigger.DESIGNATED_OWNER):
        validate_game_terms(game_price, game_timeout_blocks)
        trigger = ResolutionTrigger.parse(resolution_trigger)
        owner = normalize_address(owner) if owner else None
        if trigger is ResolutionTrigger.DESIGNATED_OWNER and owner is None:
            raise InvalidConfiguration("An owner is required to resolve games")

        self.chain = chain
        self.owner = owner
        self.game_price = game_price
        self.game_timeout_blocks = game_timeout_blocks
        self.resolution_trigger = trigger
        self.address = chain.new_contract_address(owner)
        self.ledger = EscrowLedger()
        self.events = EventLog()
        self.winner_id = Outcome.DRAW
        self.first_reveal_block = 0
        self.game_start_block = 0
        self._bets: List[Bet] = [Bet(), Bet()]
        self._lock = asyncio.Lock()
        self.events.emit(LogCreation(owner, game_price, game_timeout_blocks))

    # ---- helpers ----
    def _slot_of(self, player: str) -> Optional[int]:
        for idx, bet in enumerate(self._bets, start=1):
            if bet.player == player:
                return idx
        return None

    def _free_slot(self) -> Optional[int]:
        for idx, bet in enumerate(self._bets, start=1):
            if bet.player is None:
                return idx
        return None

    def _deadline(self) -> Optional[int]:
        if self._bets[0].player is None:
            return None
        revealed = any(bet.move is not Move.VOID for bet in self._bets)
        anchor = self.first_reveal_block if revealed else self.game_start_block
        return anchor + self.game_timeout_blocks

    def _pay(self, to: str, amount: int) -> None:
        self.chain.transfer(self.address, to, amount)

    # ---- writes ----
    async def enrol(self, *, sender: str, value: int = 0) -> int:
        async with self._lock:
            caller = normalize_address(sender)
            if self._slot_of(caller) is not None:
                raise IneligibleCaller("Player is already enrolled")
            slot = self._free_slot()
            if slot is None:
                raise IneligibleCaller("Two players are already enrolled")
            if value < self.game_price:
                raise InsufficientPayment(f"Enrolment requires at least {self.game_price}")

            self.chain.transfer(caller, self.address, value)
            self._bets[slot - 1].player = caller
            if slot == 1:
                self.game_start_block = self.chain.block_number
            if value > self.game_price:
                self.ledger.credit(caller, value - self.game_price)
            self.events.emit(LogEnrol(caller, slot))
            return slot

    async def play(self, *, sender: str, move_hash) -> None:
        async with self._lock:
            caller = normalize_address(sender)
            if not self.can_play(caller):
                raise IneligibleCaller("Sender cannot play")
            committed = normalize_move_hash(move_hash)
            slot = self._slot_of(caller)
            other = self._bets[2 - slot]
            if committed == other.move_hash:
                raise InvalidMoveHash("Move hash already committed by the opponent")

            self._bets[slot - 1].move_hash = committed
            self.events.emit(LogPlay(caller, slot, committed))

    async def reveal(self, *, sender: str, move, secret) -> None:
        async with self._lock:
            caller = normalize_address(sender)
            if not self.can_reveal(caller):
                raise IneligibleCaller("Sender cannot reveal")
            played = Move.parse(move)
            slot = self._slot_of(caller)
            bet = self._bets[slot - 1]
            if compute_move_hash(caller, played, secret) != bet.move_hash:
                raise CommitmentMismatch("Move and secret do not match the committed hash")

            bet.move = played
            if self._bets[2 - slot].move is Move.VOID:
                self.first_reveal_block = self.chain.block_number
            self.events.emit(LogReveal(caller, slot, played))

    async def choose_winner(self, *, sender: str) -> Outcome:
        async with self._lock:
            caller = normalize_address(sender)
            authorize_resolution(self.resolution_trigger, caller, self.owner,
                                 [bet.player for bet in self._bets])
            if self._bets[0].player is None:
                raise PrematureOperation("No game in progress")
            if not self.is_game_over():
                raise PrematureOperation("Moves not revealed and timeout not reached")

            outcome, payouts = settle(
                [bet.player for bet in self._bets],
                [bet.move for bet in self._bets],
                self.game_price,
            )
            for player, amount in payouts:
                self.ledger.credit(player, amount)
            self.winner_id = outcome
            self._bets = [Bet(), Bet()]
            self.first_reveal_block = 0
            self.game_start_block = 0
            self.events.emit(LogChooseWinner(caller, outcome))
            return outcome

    async def withdraw(self, *, sender: str) -> int:
        async with self._lock:
            caller = normalize_address(sender)
            amount = self.ledger.withdraw(caller, self._pay)
            self.events.emit(LogWithdraw(caller, amount))
            return amount

    # ---- views ----
    def hash(self, identity: str, move, secret) -> str:
        return compute_move_hash(identity, move, secret)

    @property
    def bet1(self) -> Bet:
        return dataclasses.replace(self._bets[0])

    @property
    def bet2(self) -> Bet:
        return dataclasses.replace(self._bets[1])

    def can_enrol(self) -> bool:
        return self._free_slot() is not None

    def can_play(self, player: str) -> bool:
        slot = self._slot_of(normalize_address(player))
        return slot is not None and self._bets[slot - 1].move_hash is None

    def can_reveal(self, player: str) -> bool:
        slot = self._slot_of(normalize_address(player))
        if slot is None or any(bet.move_hash is None for bet in self._bets):
            return False
        return self._bets[slot - 1].move is Move.VOID

    def is_game_over(self) -> bool:
        deadline = self._deadline()
        if deadline is None:
            return False
        if all(bet.move is not Move.VOID for bet in self._bets):
            return True
        return self.chain.block_number >= deadline

    def balance_of(self, player: str) -> int:
        return self.ledger.balance_of(player)

    def pot(self) -> int:
        return self.game_price * sum(1 for bet in self._bets if bet.player is not None)


# Simple demo helper for synchronous scripts
async def demo_flow():
    chain = Chain()
    owner = "0x00000000000000000000000000000000000000aa"
    alice = "0x00000000000000000000000000000000000000a1"
    bob = "0x00000000000000000000000000000000000000b0"
    for addr in (alice, bob):
        chain.fund(addr, 10**18)
    c = RockPaperScissors(chain, owner=owner, game_price=10**16, game_timeout_blocks=2)
    await c.enrol(sender=alice, value=c.game_price)
    await c.enrol(sender=bob, value=c.game_price)
    await c.play(sender=alice, move_hash=c.hash(alice, Move.ROCK, "secret1"))
    await c.play(sender=bob, move_hash=c.hash(bob, Move.SCISSORS, "secret2"))
    await c.reveal(sender=alice, move=Move.ROCK, secret="secret1")
    await c.reveal(sender=bob, move=Move.SCISSORS, secret="secret2")
    outcome = await c.choose_winner(sender=owner)
    paid = await c.withdraw(sender=alice)
    return outcome, paid, [e.as_dict() for e in c.events]


if __name__ == "__main__":
    res = asyncio.run(demo_flow())
    print(res)
