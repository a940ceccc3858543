import pytest
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from rps_escrow.chain import Chain
from rps_escrow.commitment import normalize_address
from rps_escrow.config import ResolutionTrigger
from rps_escrow.errors import EmptyWithdrawal, TransferFailed, Unauthorized
from rps_escrow.ledger import EscrowLedger
from rps_escrow.moves import Move, Outcome
from rps_escrow.settlement import authorize_resolution, settle

ALICE = normalize_address("0x00000000000000000000000000000000000000a1")
BOB = normalize_address("0x00000000000000000000000000000000000000b0")
CAROL = normalize_address("0x00000000000000000000000000000000000000c0")


def test_credits_accumulate():
    ledger = EscrowLedger()
    ledger.credit(ALICE, 5)
    ledger.credit(ALICE.lower(), 7)
    ledger.credit(BOB, 1)
    assert ledger.balance_of(ALICE) == 12
    assert ledger.total() == 13
    with pytest.raises(ValueError):
        ledger.credit(ALICE, 0)


def test_withdraw_zeroes_before_transfer():
    ledger = EscrowLedger()
    ledger.credit(ALICE, 10)
    seen = []

    def transfer(to, amount):
        seen.append((to, amount, ledger.balance_of(to)))

    assert ledger.withdraw(ALICE, transfer) == 10
    assert seen == [(ALICE, 10, 0)]
    assert ledger.balance_of(ALICE) == 0
    with pytest.raises(EmptyWithdrawal):
        ledger.withdraw(ALICE, transfer)


def test_withdraw_restores_balance_when_transfer_fails():
    ledger = EscrowLedger()
    ledger.credit(ALICE, 10)

    def transfer(to, amount):
        raise TransferFailed("rejected")

    with pytest.raises(TransferFailed):
        ledger.withdraw(ALICE, transfer)
    assert ledger.balance_of(ALICE) == 10


def test_chain_transfer_is_all_or_nothing():
    chain = Chain()
    chain.fund(ALICE, 5)
    with pytest.raises(TransferFailed):
        chain.transfer(ALICE, BOB, 6)
    with pytest.raises(TransferFailed):
        chain.transfer(ALICE, BOB, -1)
    assert chain.balance(ALICE) == 5 and chain.balance(BOB) == 0
    chain.transfer(ALICE, BOB, 5)
    assert chain.balance(ALICE) == 0 and chain.balance(BOB) == 5


def test_chain_blocks_and_addresses():
    chain = Chain()
    assert chain.mine() == 2
    assert chain.mine(3) == 5
    assert chain.mine_until(4) == 5
    with pytest.raises(ValueError):
        chain.mine(-1)
    assert chain.new_contract_address(ALICE) != chain.new_contract_address(ALICE)


@pytest.mark.parametrize("moves,outcome,payouts", [
    ((Move.ROCK, Move.SCISSORS), Outcome.PLAYER1, [(ALICE, 20)]),
    ((Move.ROCK, Move.PAPER), Outcome.PLAYER2, [(BOB, 20)]),
    ((Move.ROCK, Move.ROCK), Outcome.DRAW, [(ALICE, 10), (BOB, 10)]),
    ((Move.ROCK, Move.VOID), Outcome.PLAYER1, [(ALICE, 20)]),
    ((Move.VOID, Move.PAPER), Outcome.PLAYER2, [(BOB, 20)]),
    ((Move.VOID, Move.VOID), Outcome.DRAW, [(ALICE, 10), (BOB, 10)]),
])
def test_settle_pays_out_the_whole_pot(moves, outcome, payouts):
    assert settle([ALICE, BOB], list(moves), 10) == (outcome, payouts)


def test_settle_refunds_lone_player():
    assert settle([ALICE, None], [Move.VOID, Move.VOID], 10) == (Outcome.DRAW, [(ALICE, 10)])


def test_authorize_resolution():
    participants = [ALICE, None]
    authorize_resolution(ResolutionTrigger.ANY_CALLER, CAROL, None, participants)
    authorize_resolution(ResolutionTrigger.ANY_PARTICIPANT, ALICE, None, participants)
    authorize_resolution(ResolutionTrigger.DESIGNATED_OWNER, CAROL, CAROL, participants)
    with pytest.raises(Unauthorized):
        authorize_resolution(ResolutionTrigger.ANY_PARTICIPANT, BOB, None, participants)
    with pytest.raises(Unauthorized):
        authorize_resolution(ResolutionTrigger.DESIGNATED_OWNER, ALICE, CAROL, participants)
