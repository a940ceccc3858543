"""Move commitments and game identifiers.

A commitment is ``keccak256(abi.encodePacked(address, uint8 move, bytes32
secret))``, the same layout a Solidity contract would produce, so a client can
compute it with any Ethereum tooling before committing.
"""
from typing import Union

from eth_abi.packed import encode_packed
from eth_utils import (
    encode_hex,
    is_address,
    is_hex,
    keccak,
    to_checksum_address,
)

from rps_escrow.errors import InvalidAddress, InvalidMoveHash, InvalidSecret
from rps_escrow.moves import Move

SECRET_SIZE = 32
ZERO_HASH = "0x" + "00" * 32


def normalize_address(value) -> str:
    if not isinstance(value, (str, bytes)) or not is_address(value):
        raise InvalidAddress(f"Not an address: {value!r}")
    return to_checksum_address(value)


def secret_to_bytes32(secret: Union[str, bytes]) -> bytes:
    if isinstance(secret, str):
        raw = secret.encode("utf-8")
    elif isinstance(secret, (bytes, bytearray)):
        raw = bytes(secret)
    else:
        raise InvalidSecret(f"Secret must be text or bytes, got {type(secret).__name__}")
    if len(raw) > SECRET_SIZE:
        raise InvalidSecret(f"Secret is longer than {SECRET_SIZE} bytes")
    return raw.ljust(SECRET_SIZE, b"\x00")


def compute_move_hash(identity: str, move, secret: Union[str, bytes]) -> str:
    address = normalize_address(identity)
    played = Move.parse(move)
    payload = encode_packed(
        ["address", "uint8", "bytes32"],
        [address, int(played), secret_to_bytes32(secret)],
    )
    return encode_hex(keccak(payload))


def normalize_move_hash(value) -> str:
    if isinstance(value, (bytes, bytearray)):
        value = encode_hex(bytes(value))
    if not isinstance(value, str):
        raise InvalidMoveHash(f"Move hash is not hex: {value!r}")
    body = value[2:] if value[:2].lower() == "0x" else value
    if len(body) != 64 or not is_hex(body):
        raise InvalidMoveHash("Move hash must be 32 bytes of hex")
    normalized = "0x" + body.lower()
    if normalized == ZERO_HASH:
        raise InvalidMoveHash("Move hash is empty")
    return normalized


def game_id_for(player_a: str, player_b: str) -> str:
    """Identifier shared by every game between the same two players.

    The pair is sorted first, so the id does not depend on who started.
    """
    a = normalize_address(player_a)
    b = normalize_address(player_b)
    if a == b:
        raise InvalidAddress("A game needs two distinct players")
    first, second = sorted((a, b), key=str.lower)
    return encode_hex(keccak(encode_packed(["address", "address"], [first, second])))
