import logging
from typing import Callable, Dict

from rps_escrow.commitment import normalize_address
from rps_escrow.errors import EmptyWithdrawal

logger = logging.getLogger(__name__)


class EscrowLedger:
    """Withdrawable balances owed by a contract, keyed by address."""

    def __init__(self):
        self._balances: Dict[str, int] = {}

    def credit(self, player: str, amount: int) -> int:
        if amount <= 0:
            raise ValueError("Credit amount must be positive")
        addr = normalize_address(player)
        self._balances[addr] = self._balances.get(addr, 0) + amount
        return self._balances[addr]

    def balance_of(self, player: str) -> int:
        return self._balances.get(normalize_address(player), 0)

    def total(self) -> int:
        return sum(self._balances.values())

    def withdraw(self, player: str, transfer: Callable[[str, int], None]) -> int:
        """Drain the balance of ``player`` through ``transfer``.

        The entry is zeroed before the transfer runs and restored if the
        transfer raises.
        """
        addr = normalize_address(player)
        amount = self._balances.get(addr, 0)
        if amount == 0:
            raise EmptyWithdrawal("Nothing to withdraw")
        self._balances[addr] = 0
        try:
            transfer(addr, amount)
        except Exception:
            self._balances[addr] = amount
            raise
        del self._balances[addr]
        logger.debug("withdrew %d for %s", amount, addr)
        return amount
