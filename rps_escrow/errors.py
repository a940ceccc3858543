"""Exceptions raised by the game contracts.

Every precondition is checked before state is touched, so a raised
``GameError`` always means the call had no effect.
"""


class GameError(Exception):
    status_code = 400


class InvalidConfiguration(GameError):
    pass


class InvalidMove(GameError):
    pass


class InvalidMoveHash(GameError):
    pass


class InvalidAddress(GameError):
    pass


class IneligibleCaller(GameError):
    status_code = 409


class Unauthorized(GameError):
    status_code = 403


class InsufficientPayment(GameError):
    status_code = 402


class PrematureOperation(GameError):
    status_code = 409


class CommitmentMismatch(GameError):
    pass


class EmptyWithdrawal(GameError):
    status_code = 409


class AlreadyResolved(GameError):
    status_code = 409


class GameNotFound(GameError):
    status_code = 404


class TransferFailed(GameError):
    status_code = 402


class InvalidSecret(GameError):
    pass
