"""Many concurrent games between pairs of players, sharing one escrow ledger.

A game is keyed by ``game_id_for(player1, player2)``, so a pair has at most one
unresolved game at a time. Once a game is settled its record is kept with the
commitments cleared and status RESOLVED; the same pair may then start a new
game under the same identifier.

Each game has its own lock and the ledger has another (always taken after the
game lock), so different games can progress independently while calls on one
game are strictly ordered.
"""
import asyncio
import collections
import dataclasses
import enum
import logging
from typing import Dict, List, Optional

from rps_escrow.chain import Chain
from rps_escrow.commitment import (
    compute_move_hash,
    game_id_for,
    normalize_address,
    normalize_move_hash,
)
from rps_escrow.config import ResolutionTrigger, validate_game_terms
from rps_escrow.errors import (
    AlreadyResolved,
    CommitmentMismatch,
    GameNotFound,
    IneligibleCaller,
    InsufficientPayment,
    InvalidConfiguration,
    InvalidMoveHash,
    PrematureOperation,
)
from rps_escrow.events import (
    EventLog,
    LogGameJoined,
    LogGameResolved,
    LogGameStarted,
    LogReveal,
    LogWithdraw,
)
from rps_escrow.ledger import EscrowLedger
from rps_escrow.moves import Move, Outcome
from rps_escrow.settlement import authorize_resolution, settle

logger = logging.getLogger(__name__)


class GameStatus(enum.Enum):
    WAITING_FOR_OPPONENT = "waiting_for_opponent"
    COMMITTED = "committed"
    REVEALING = "revealing"
    RESOLVED = "resolved"


@dataclasses.dataclass
class Game:
    game_id: str
    player1: str
    player2: str
    game_price: int
    game_timeout_blocks: int
    game_start_block: int
    move_hash1: Optional[str] = None
    move_hash2: Optional[str] = None
    move1: Move = Move.VOID
    move2: Move = Move.VOID
    first_reveal_block: int = 0
    status: GameStatus = GameStatus.WAITING_FOR_OPPONENT
    rounds_played: int = 0

    @property
    def players(self) -> List[Optional[str]]:
        joined = self.status is not GameStatus.WAITING_FOR_OPPONENT
        return [self.player1, self.player2 if joined else None]

    def held(self) -> int:
        if self.status is GameStatus.RESOLVED:
            return 0
        return self.game_price * sum(1 for p in self.players if p is not None)

    def as_dict(self) -> dict:
        return {
            "game_id": self.game_id,
            "player1": self.player1,
            "player2": self.player2,
            "game_price": self.game_price,
            "game_timeout_blocks": self.game_timeout_blocks,
            "game_start_block": self.game_start_block,
            "move_hash1": self.move_hash1,
            "move_hash2": self.move_hash2,
            "move1": int(self.move1),
            "move2": int(self.move2),
            "first_reveal_block": self.first_reveal_block,
            "status": self.status.value,
            "rounds_played": self.rounds_played,
        }


class RockPaperScissorsHub:
    """Rock-paper-scissors games keyed by player pair.

    ``start_game`` stakes the creator's wager together with their move hash,
    ``join_game`` does the same for the named opponent. The second ``reveal``
    settles the game and returns the outcome; ``claim`` settles a game whose
    peer stopped responding once its timeout has passed.
    """

    def __init__(self, chain: Chain, *, owner: Optional[str] = None,
                 resolution_trigger=ResolutionTrigger.ANY_CALLER):
        trigger = ResolutionTrigger.parse(resolution_trigger)
        owner = normalize_address(owner) if owner else None
        if trigger is ResolutionTrigger.DESIGNATED_OWNER and owner is None:
            raise InvalidConfiguration("An owner is required to resolve games")

        self.chain = chain
        self.owner = owner
        self.resolution_trigger = trigger
        self.address = chain.new_contract_address(owner)
        self.games: Dict[str, Game] = {}
        self.game_index: List[str] = []
        self.ledger = EscrowLedger()
        self.events = EventLog()
        self.total_games_started = 0
        self.total_games_resolved = 0
        self.total_volume = 0
        self._game_locks: Dict[str, asyncio.Lock] = collections.defaultdict(asyncio.Lock)
        self._ledger_lock = asyncio.Lock()

    # ---- helpers ----
    def _get_game(self, game_id: str) -> Game:
        key = str(game_id).lower()
        if key not in self.games:
            raise GameNotFound("Game not found")
        return self.games[key]

    def _timed_out(self, game: Game) -> bool:
        if game.status is GameStatus.REVEALING:
            anchor = game.first_reveal_block
        else:
            anchor = game.game_start_block
        return self.chain.block_number >= anchor + game.game_timeout_blocks

    def _stake(self, caller: str, value: int, game_price: int) -> None:
        # caller holds the ledger lock
        self.chain.transfer(caller, self.address, value)
        if value > game_price:
            self.ledger.credit(caller, value - game_price)
        self.total_volume += game_price

    def _settle(self, game: Game) -> Outcome:
        # caller holds both the game and the ledger lock
        outcome, payouts = settle(game.players, [game.move1, game.move2], game.game_price)
        for player, amount in payouts:
            self.ledger.credit(player, amount)
        game.move_hash1 = None
        game.move_hash2 = None
        game.move1 = Move.VOID
        game.move2 = Move.VOID
        game.first_reveal_block = 0
        game.status = GameStatus.RESOLVED
        game.rounds_played += 1
        self.total_games_resolved += 1
        return outcome

    def _pay(self, to: str, amount: int) -> None:
        self.chain.transfer(self.address, to, amount)

    # ---- writes ----
    async def start_game(self, *, sender: str, opponent: str, game_price: int,
                         game_timeout_blocks: int, move_hash, value: int = 0) -> str:
        validate_game_terms(game_price, game_timeout_blocks)
        caller = normalize_address(sender)
        rival = normalize_address(opponent)
        if caller == rival:
            raise IneligibleCaller("Cannot start a game against yourself")
        game_id = game_id_for(caller, rival)

        async with self._game_locks[game_id]:
            previous = self.games.get(game_id)
            if previous is not None and previous.status is not GameStatus.RESOLVED:
                raise IneligibleCaller("These players already have a game in progress")
            committed = normalize_move_hash(move_hash)
            if value < game_price:
                raise InsufficientPayment(f"Starting this game requires at least {game_price}")

            async with self._ledger_lock:
                self._stake(caller, value, game_price)
            self.games[game_id] = Game(
                game_id=game_id,
                player1=caller,
                player2=rival,
                game_price=game_price,
                game_timeout_blocks=game_timeout_blocks,
                game_start_block=self.chain.block_number,
                move_hash1=committed,
                rounds_played=previous.rounds_played if previous else 0,
            )
            if previous is None:
                self.game_index.append(game_id)
            self.total_games_started += 1
            self.events.emit(LogGameStarted(game_id, caller, rival, game_price,
                                            game_timeout_blocks, committed))
            return game_id

    async def join_game(self, *, sender: str, game_id: str, move_hash, value: int = 0) -> None:
        caller = normalize_address(sender)
        key = self._get_game(game_id).game_id
        async with self._game_locks[key]:
            game = self.games[key]
            if not self.can_join(game.game_id, caller):
                raise IneligibleCaller("Sender cannot join this game")
            committed = normalize_move_hash(move_hash)
            if committed == game.move_hash1:
                raise InvalidMoveHash("Move hash already committed by the opponent")
            if value < game.game_price:
                raise InsufficientPayment(f"Joining this game requires at least {game.game_price}")

            async with self._ledger_lock:
                self._stake(caller, value, game.game_price)
            game.move_hash2 = committed
            game.status = GameStatus.COMMITTED
            self.events.emit(LogGameJoined(game.game_id, caller, committed))

    async def reveal(self, *, sender: str, game_id: str, move, secret) -> Optional[Outcome]:
        caller = normalize_address(sender)
        key = self._get_game(game_id).game_id
        async with self._game_locks[key]:
            game = self.games[key]
            if not self.can_reveal(game.game_id, caller):
                raise IneligibleCaller("Sender cannot reveal")
            played = Move.parse(move)
            slot = 1 if caller == game.player1 else 2
            expected = game.move_hash1 if slot == 1 else game.move_hash2
            if compute_move_hash(caller, played, secret) != expected:
                raise CommitmentMismatch("Move and secret do not match the committed hash")

            if slot == 1:
                game.move1 = played
            else:
                game.move2 = played
            if game.status is GameStatus.COMMITTED:
                game.status = GameStatus.REVEALING
                game.first_reveal_block = self.chain.block_number
                self.events.emit(LogReveal(caller, slot, played, game.game_id))
                return None

            moves = (game.move1, game.move2)
            async with self._ledger_lock:
                outcome = self._settle(game)
            self.events.emit(LogGameResolved(game.game_id, caller, outcome, *moves))
            return outcome

    async def claim(self, *, sender: str, game_id: str) -> Outcome:
        caller = normalize_address(sender)
        key = self._get_game(game_id).game_id
        async with self._game_locks[key]:
            game = self.games[key]
            if game.status is GameStatus.RESOLVED:
                raise AlreadyResolved("Game already resolved")
            authorize_resolution(self.resolution_trigger, caller, self.owner, game.players)
            if not self._timed_out(game):
                raise PrematureOperation("Timeout has not been reached yet")

            moves = (game.move1, game.move2)
            async with self._ledger_lock:
                outcome = self._settle(game)
            self.events.emit(LogGameResolved(game.game_id, caller, outcome, *moves))
            return outcome

    async def withdraw(self, *, sender: str) -> int:
        caller = normalize_address(sender)
        async with self._ledger_lock:
            amount = self.ledger.withdraw(caller, self._pay)
            self.events.emit(LogWithdraw(caller, amount))
            return amount

    # ---- views ----
    def hash(self, identity: str, move, secret) -> str:
        return compute_move_hash(identity, move, secret)

    def game_id_for(self, player_a: str, player_b: str) -> str:
        return game_id_for(player_a, player_b)

    def game(self, game_id: str) -> Game:
        return dataclasses.replace(self._get_game(game_id))

    def game_exists(self, game_id: str) -> bool:
        return str(game_id).lower() in self.games

    def can_join(self, game_id: str, player: str) -> bool:
        if not self.game_exists(game_id):
            return False
        game = self._get_game(game_id)
        return (game.status is GameStatus.WAITING_FOR_OPPONENT
                and game.player2 == normalize_address(player))

    def can_reveal(self, game_id: str, player: str) -> bool:
        if not self.game_exists(game_id):
            return False
        game = self._get_game(game_id)
        if game.status not in (GameStatus.COMMITTED, GameStatus.REVEALING):
            return False
        caller = normalize_address(player)
        if caller == game.player1:
            return game.move1 is Move.VOID
        if caller == game.player2:
            return game.move2 is Move.VOID
        return False

    def is_game_over(self, game_id: str) -> bool:
        game = self._get_game(game_id)
        return game.status is not GameStatus.RESOLVED and self._timed_out(game)

    def balance_of(self, player: str) -> int:
        return self.ledger.balance_of(player)

    def held_in_games(self) -> int:
        return sum(game.held() for game in self.games.values())

    def list_games(self, offset: int, limit: int) -> List[str]:
        if offset < 0 or limit < 0:
            raise ValueError("Invalid pagination")
        return self.game_index[offset:offset + limit]

    def stats(self) -> dict:
        return {
            "total_games_started": self.total_games_started,
            "total_games_resolved": self.total_games_resolved,
            "total_volume": self.total_volume,
        }
