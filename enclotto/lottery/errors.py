"""Exception hierarchy for the lottery round engine.

Every error here is a caller-correctable precondition violation. They are
raised before any state is touched, so catching one never requires a
rollback of the ledger.
"""

from __future__ import annotations


class LotteryError(ValueError):
    """Base class for validation failures reported by the engine."""


class InactiveRound(LotteryError):
    """An entry was submitted to a round that no longer accepts entries."""


class InsufficientPayment(LotteryError):
    """The attached payment does not cover a single ticket."""


class InvalidIndex(LotteryError):
    """The selected index does not point at an entry of the round."""


class EmptyRound(LotteryError):
    """A draw or finalize was attempted on a round without entries."""


class RevealMismatch(LotteryError):
    """The revealed choices do not reproduce the stored commitment."""


class RoundInactive(LotteryError):
    """The round has already been finalized."""


class RoundStillActive(LotteryError):
    """A new round was requested while the current one is still open."""


class Unauthorized(LotteryError):
    """An owner-only operation was invoked by another identity."""


__all__ = [
    "LotteryError",
    "InactiveRound",
    "InsufficientPayment",
    "InvalidIndex",
    "EmptyRound",
    "RevealMismatch",
    "RoundInactive",
    "RoundStillActive",
    "Unauthorized",
]
