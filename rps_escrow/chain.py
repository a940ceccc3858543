"""Local execution context: accounts, a block counter and value transfers.

The contracts only ever talk to the chain through ``block_number``,
``transfer`` and ``new_contract_address``; anything richer (gas, receipts,
reorgs) is out of scope.
"""
import logging
from typing import Dict, Optional

from eth_abi.packed import encode_packed
from eth_utils import keccak, to_checksum_address

from rps_escrow.commitment import normalize_address
from rps_escrow.errors import TransferFailed

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class Chain:
    def __init__(self, start_block: int = 1):
        self.block_number = start_block
        self.accounts: Dict[str, int] = {}
        self._deploy_nonce = 0

    def mine(self, blocks: int = 1) -> int:
        if blocks < 0:
            raise ValueError("Cannot mine a negative number of blocks")
        self.block_number += blocks
        return self.block_number

    def mine_until(self, block_number: int) -> int:
        if block_number > self.block_number:
            self.block_number = block_number
        return self.block_number

    def balance(self, address: str) -> int:
        return self.accounts.get(normalize_address(address), 0)

    def fund(self, address: str, amount: int) -> int:
        if amount <= 0:
            raise ValueError("Funding amount must be positive")
        addr = normalize_address(address)
        self.accounts[addr] = self.accounts.get(addr, 0) + amount
        return self.accounts[addr]

    def transfer(self, sender: str, to: str, amount: int) -> None:
        """Move ``amount`` between accounts or raise ``TransferFailed``.

        Either both sides change or neither does.
        """
        src = normalize_address(sender)
        dst = normalize_address(to)
        if amount < 0:
            raise TransferFailed("Negative transfer")
        if amount == 0:
            return
        available = self.accounts.get(src, 0)
        if available < amount:
            raise TransferFailed(f"Insufficient funds in {src}: {available} < {amount}")
        self.accounts[src] = available - amount
        self.accounts[dst] = self.accounts.get(dst, 0) + amount
        logger.debug("transfer %s -> %s: %d at block %d", src, dst, amount, self.block_number)

    def new_contract_address(self, deployer: Optional[str]) -> str:
        origin = normalize_address(deployer) if deployer else ZERO_ADDRESS
        self._deploy_nonce += 1
        digest = keccak(encode_packed(["address", "uint256"], [origin, self._deploy_nonce]))
        return to_checksum_address(digest[-20:])
