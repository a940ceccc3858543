from flask import Flask, request, jsonify, abort
from werkzeug.exceptions import HTTPException
from flask_cors import CORS
import atexit
import logging
import time
from typing import Optional

from rps_escrow.auth import AuthError, NonceStore, verify_request
from rps_escrow.chain import Chain
from rps_escrow.config import Settings
from rps_escrow.dispatcher import Dispatcher
from rps_escrow.errors import GameError
from rps_escrow.hub import RockPaperScissorsHub

logger = logging.getLogger(__name__)


def _require(data: dict, key: str):
    if key not in data or data[key] in (None, ""):
        abort(400, description=f"{key} required")
    return data[key]


def _as_int(value, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        abort(400, description=f"{key} must be an integer")


def create_app(settings: Optional[Settings] = None, chain: Optional[Chain] = None) -> Flask:
    settings = settings or Settings.from_env()
    chain = chain or Chain()
    hub = RockPaperScissorsHub(chain, owner=settings.owner,
                               resolution_trigger=settings.resolution_trigger)
    dispatcher = Dispatcher()
    atexit.register(dispatcher.close)
    nonces = NonceStore()

    app = Flask(__name__)
    # Allow browser calls to the game and relayer endpoints.
    CORS(app, resources={r"/games*": {"origins": "*"}, r"/relay/*": {"origins": "*"},
                         r"/health": {"origins": "*"}, r"/hash": {"origins": "*"},
                         r"/balances/*": {"origins": "*"}})
    app.extensions["rps"] = {
        "settings": settings,
        "chain": chain,
        "hub": hub,
        "dispatcher": dispatcher,
        "nonces": nonces,
    }

    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description}), e.code
        if isinstance(e, (GameError, AuthError)):
            logger.debug("rejected %s %s: %s", request.method, request.path, e)
            return jsonify({"error": str(e), "type": type(e).__name__}), e.status_code
        if isinstance(e, ValueError):
            return jsonify({"error": str(e)}), 400
        logger.exception("unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": str(e)}), 500

    def _caller(data: dict, action: str) -> str:
        return verify_request(data, action, nonces,
                              require_signature=settings.require_signature,
                              max_age=settings.signature_max_age)

    def _write(coro):
        # automine: every accepted transaction lands in its own block
        result = dispatcher.run(coro)
        block = dispatcher.call(chain.mine)
        return result, block

    @app.route('/health', methods=['GET', 'HEAD'])
    def health():
        return jsonify({"ok": True, "block": chain.block_number}), 200

    @app.route('/relay/nonce', methods=['POST'])
    def relay_nonce():
        data = request.get_json(silent=True) or {}
        address = data.get("address", "")
        if not address:
            return jsonify({"error": "address required"}), 400
        nonce = nonces.issue(address)
        return jsonify({"nonce": nonce, "timestamp": int(time.time())})

    @app.route('/hash', methods=['POST'])
    def move_hash():
        data = request.get_json(silent=True) or {}
        digest = hub.hash(_require(data, "address"), _require(data, "move"), _require(data, "secret"))
        return jsonify({"move_hash": digest})

    @app.route('/games', methods=['POST'])
    def start_game():
        data = request.get_json(silent=True) or {}
        caller = _caller(data, "start")
        game_id, block = _write(hub.start_game(
            sender=caller,
            opponent=_require(data, "opponent"),
            game_price=_as_int(data.get("game_price", settings.game_price), "game_price"),
            game_timeout_blocks=_as_int(data.get("game_timeout_blocks", settings.game_timeout_blocks),
                                        "game_timeout_blocks"),
            move_hash=_require(data, "move_hash"),
            value=_as_int(data.get("value", 0), "value"),
        ))
        return jsonify({"game_id": game_id, "block": block}), 201

    @app.route('/games', methods=['GET'])
    def list_games():
        offset = _as_int(request.args.get("offset", 0), "offset")
        limit = _as_int(request.args.get("limit", 50), "limit")
        return jsonify({"games": dispatcher.call(hub.list_games, offset, limit)})

    @app.route('/games/<game_id>', methods=['GET'])
    def get_game(game_id):
        def _view():
            game = hub.game(game_id)
            res = game.as_dict()
            res["is_game_over"] = hub.is_game_over(game_id)
            return res
        return jsonify(dispatcher.call(_view))

    @app.route('/games/<game_id>/join', methods=['POST'])
    def join_game(game_id):
        data = request.get_json(silent=True) or {}
        caller = _caller(data, "join")
        _, block = _write(hub.join_game(
            sender=caller,
            game_id=game_id,
            move_hash=_require(data, "move_hash"),
            value=_as_int(data.get("value", 0), "value"),
        ))
        return jsonify({"game_id": game_id, "block": block})

    @app.route('/games/<game_id>/reveal', methods=['POST'])
    def reveal(game_id):
        data = request.get_json(silent=True) or {}
        caller = _caller(data, "reveal")
        outcome, block = _write(hub.reveal(
            sender=caller,
            game_id=game_id,
            move=_require(data, "move"),
            secret=_require(data, "secret"),
        ))
        return jsonify({"game_id": game_id, "outcome": None if outcome is None else int(outcome),
                        "block": block})

    @app.route('/games/<game_id>/claim', methods=['POST'])
    def claim(game_id):
        data = request.get_json(silent=True) or {}
        caller = _caller(data, "claim")
        outcome, block = _write(hub.claim(sender=caller, game_id=game_id))
        return jsonify({"game_id": game_id, "outcome": int(outcome), "block": block})

    @app.route('/withdraw', methods=['POST'])
    def withdraw():
        data = request.get_json(silent=True) or {}
        caller = _caller(data, "withdraw")
        amount, block = _write(hub.withdraw(sender=caller))
        return jsonify({"address": caller, "amount": amount, "block": block})

    @app.route('/balances/<address>', methods=['GET'])
    def balances(address):
        ledger, account = dispatcher.call(lambda: (hub.balance_of(address), chain.balance(address)))
        return jsonify({"address": address, "ledger": ledger, "account": account})

    @app.route('/events', methods=['GET'])
    def events():
        offset = _as_int(request.args.get("offset", 0), "offset")
        limit = _as_int(request.args.get("limit", 100), "limit")
        if offset < 0 or limit < 0:
            abort(400, description="Invalid pagination")
        return jsonify({"events": dispatcher.call(
            lambda: [e.as_dict() for e in hub.events[offset:offset + limit]])})

    @app.route('/stats', methods=['GET'])
    def stats():
        def _snapshot():
            res = hub.stats()
            res["held_in_games"] = hub.held_in_games()
            res["block"] = chain.block_number
            return res
        return jsonify(dispatcher.call(_snapshot))

    @app.route('/dev/fund', methods=['POST'])
    def dev_fund():
        if not settings.dev_mode:
            abort(404)
        data = request.get_json(silent=True) or {}
        address = _require(data, "address")
        amount = _as_int(_require(data, "amount"), "amount")
        balance = dispatcher.call(chain.fund, address, amount)
        return jsonify({"address": address, "account": balance})

    @app.route('/dev/mine', methods=['POST'])
    def dev_mine():
        if not settings.dev_mode:
            abort(404)
        data = request.get_json(silent=True) or {}
        blocks = _as_int(data.get("blocks", 1), "blocks")
        return jsonify({"block": dispatcher.call(chain.mine, blocks)})

    return app


if __name__ == '__main__':
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = create_app(settings)
    app.run(host="0.0.0.0", port=settings.port, debug=settings.dev_mode)
