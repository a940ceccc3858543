"""Signed-request authentication for the HTTP relayer.

A client asks for a nonce, signs ``build_message(...)`` with its key
(EIP-191 personal sign) and sends ``address``, ``nonce``, ``timestamp`` and
``signature`` with the request. The recovered signer is the caller identity
handed to the contracts.
"""
import os
import threading
import time
from typing import Dict, Optional

from eth_account import Account
from eth_account.messages import encode_defunct

from rps_escrow.commitment import normalize_address
from rps_escrow.errors import InvalidAddress


class AuthError(Exception):
    status_code = 401


def build_message(action: str, address: str, nonce: str, ts: int) -> str:
    return f"RPS Escrow Relayer\nAction: {action}\nAddress: {address}\nNonce: {nonce}\nTimestamp: {ts}"


def sign_request(private_key: str, action: str, nonce: str, ts: Optional[int] = None) -> dict:
    account = Account.from_key(private_key)
    ts = int(time.time()) if ts is None else ts
    msg = build_message(action, account.address, nonce, ts)
    signed = Account.sign_message(encode_defunct(text=msg), private_key=private_key)
    return {
        "address": account.address,
        "nonce": nonce,
        "timestamp": ts,
        "signature": "0x" + signed.signature.hex().removeprefix("0x"),
    }


class NonceStore:
    """One outstanding nonce per address; verifying consumes it."""

    def __init__(self):
        self._nonces: Dict[str, str] = {}
        self._lock = threading.Lock()

    def issue(self, address: str) -> str:
        addr = normalize_address(address)
        nonce = os.urandom(8).hex()
        with self._lock:
            self._nonces[addr] = nonce
        return nonce

    def consume(self, address: str, nonce: str) -> bool:
        with self._lock:
            if not nonce or self._nonces.get(address) != nonce:
                return False
            self._nonces.pop(address, None)
            return True


def verify_request(data: dict, action: str, nonces: NonceStore, *, require_signature: bool = True,
                   max_age: int = 300, now: Optional[int] = None) -> str:
    """Return the checksummed caller address for a request body.

    Without ``require_signature`` the ``address`` field is trusted as-is.
    """
    try:
        address = normalize_address(data.get("address", ""))
    except InvalidAddress:
        raise AuthError("Missing or invalid address") from None
    if not require_signature:
        return address

    signature = data.get("signature", "")
    nonce = data.get("nonce", "")
    try:
        ts = int(data.get("timestamp", 0))
    except (TypeError, ValueError):
        ts = 0
    if not signature or not nonce or not ts:
        raise AuthError("Missing signature fields")

    now = int(time.time()) if now is None else now
    if abs(now - ts) > max_age:
        raise AuthError("Signature expired")

    msg = build_message(action, address, nonce, ts)
    try:
        recovered = Account.recover_message(encode_defunct(text=msg), signature=signature)
    except Exception as e:
        raise AuthError(f"Invalid signature: {e}") from None
    if recovered.lower() != address.lower():
        raise AuthError("Invalid signature")

    # consume only after the signature checks out
    if not nonces.consume(address, nonce):
        raise AuthError("Invalid nonce")
    return address
