import argparse
import json
import os
import sys
from typing import Any, Dict, List, Optional

import requests
from eth_account import Account

# ensure local package imports work when run from workspace root
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from rps_escrow.auth import sign_request
from rps_escrow.commitment import compute_move_hash


RPS_SERVER_URL = os.getenv("RPS_SERVER_URL", "http://localhost:5000")
RPS_PRIVATE_KEY = os.getenv("RPS_PRIVATE_KEY")


def api(method: str, path: str, payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None, server_url: Optional[str] = None) -> Dict[str, Any]:
    url = (server_url or RPS_SERVER_URL).rstrip("/") + path
    r = requests.request(method, url, json=payload, params=params, timeout=20)
    try:
        body = r.json()
    except ValueError:
        body = {"error": r.text}
    if r.status_code >= 400:
        raise RuntimeError(f"{method} {path} failed ({r.status_code}): {body.get('error', body)}")
    return body


def signed_payload(action: str, private_key: str, server_url: Optional[str] = None,
                   **fields: Any) -> Dict[str, Any]:
    address = Account.from_key(private_key).address
    nonce = api("POST", "/relay/nonce", {"address": address}, server_url=server_url)["nonce"]
    payload = sign_request(private_key, action, nonce)
    payload.update(fields)
    return payload


def start_game(private_key: str, opponent: str, move: str, secret: str, value: int,
               game_price: Optional[int] = None, game_timeout_blocks: Optional[int] = None,
               server_url: Optional[str] = None) -> Dict[str, Any]:
    address = Account.from_key(private_key).address
    fields: Dict[str, Any] = {
        "opponent": opponent,
        "move_hash": compute_move_hash(address, move, secret),
        "value": value,
    }
    if game_price is not None:
        fields["game_price"] = game_price
    if game_timeout_blocks is not None:
        fields["game_timeout_blocks"] = game_timeout_blocks
    payload = signed_payload("start", private_key, server_url=server_url, **fields)
    return api("POST", "/games", payload, server_url=server_url)


def join_game(private_key: str, game_id: str, move: str, secret: str,
              value: Optional[int] = None, server_url: Optional[str] = None) -> Dict[str, Any]:
    address = Account.from_key(private_key).address
    if value is None:
        value = api("GET", f"/games/{game_id}", server_url=server_url)["game_price"]
    payload = signed_payload("join", private_key, server_url=server_url,
                             move_hash=compute_move_hash(address, move, secret), value=value)
    return api("POST", f"/games/{game_id}/join", payload, server_url=server_url)


def reveal(private_key: str, game_id: str, move: str, secret: str,
           server_url: Optional[str] = None) -> Dict[str, Any]:
    payload = signed_payload("reveal", private_key, server_url=server_url, move=move, secret=secret)
    return api("POST", f"/games/{game_id}/reveal", payload, server_url=server_url)


def claim(private_key: str, game_id: str, server_url: Optional[str] = None) -> Dict[str, Any]:
    payload = signed_payload("claim", private_key, server_url=server_url)
    return api("POST", f"/games/{game_id}/claim", payload, server_url=server_url)


def withdraw(private_key: str, server_url: Optional[str] = None) -> Dict[str, Any]:
    payload = signed_payload("withdraw", private_key, server_url=server_url)
    return api("POST", "/withdraw", payload, server_url=server_url)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Play rock-paper-scissors against the escrow relayer")
    parser.add_argument("--server", default=None, help="relayer URL (default: $RPS_SERVER_URL)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("hash", help="compute a move hash locally")
    p.add_argument("--address")
    p.add_argument("--move", required=True)
    p.add_argument("--secret", required=True)

    p = sub.add_parser("start")
    p.add_argument("--opponent", required=True)
    p.add_argument("--move", required=True)
    p.add_argument("--secret", required=True)
    p.add_argument("--value", type=int, required=True)
    p.add_argument("--price", type=int)
    p.add_argument("--timeout", type=int)

    p = sub.add_parser("join")
    p.add_argument("--game", required=True)
    p.add_argument("--move", required=True)
    p.add_argument("--secret", required=True)
    p.add_argument("--value", type=int)

    p = sub.add_parser("reveal")
    p.add_argument("--game", required=True)
    p.add_argument("--move", required=True)
    p.add_argument("--secret", required=True)

    p = sub.add_parser("claim")
    p.add_argument("--game", required=True)

    sub.add_parser("withdraw")

    p = sub.add_parser("get")
    p.add_argument("--game", required=True)

    p = sub.add_parser("balance")
    p.add_argument("--address")
    return parser


def main(argv: List[str]) -> Dict[str, Any]:
    args = build_parser().parse_args(argv)
    server = args.server

    def key() -> str:
        if not RPS_PRIVATE_KEY:
            raise SystemExit("RPS_PRIVATE_KEY not set")
        return RPS_PRIVATE_KEY

    def own_address() -> str:
        return Account.from_key(key()).address

    if args.cmd == "hash":
        address = args.address or own_address()
        res = {"address": address, "move_hash": compute_move_hash(address, args.move, args.secret)}
    elif args.cmd == "start":
        res = start_game(key(), args.opponent, args.move, args.secret, args.value,
                         game_price=args.price, game_timeout_blocks=args.timeout, server_url=server)
    elif args.cmd == "join":
        res = join_game(key(), args.game, args.move, args.secret, value=args.value, server_url=server)
    elif args.cmd == "reveal":
        res = reveal(key(), args.game, args.move, args.secret, server_url=server)
    elif args.cmd == "claim":
        res = claim(key(), args.game, server_url=server)
    elif args.cmd == "withdraw":
        res = withdraw(key(), server_url=server)
    elif args.cmd == "get":
        res = api("GET", f"/games/{args.game}", server_url=server)
    else:
        address = args.address or own_address()
        res = api("GET", f"/balances/{address}", server_url=server)

    print(json.dumps(res, indent=2))
    return res


if __name__ == "__main__":
    main(sys.argv[1:])
