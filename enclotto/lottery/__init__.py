"""Lottery round engine: commitments, draws and the round ledger."""

from .commitment import commit, normalize_choices, normalize_participant, verify
from .draw import derive_round_secret, select_index
from .errors import (
    EmptyRound,
    InactiveRound,
    InsufficientPayment,
    InvalidIndex,
    LotteryError,
    RevealMismatch,
    RoundInactive,
    RoundStillActive,
    Unauthorized,
)
from .ledger import LedgerListener, RoundLedger

__all__ = [
    "EmptyRound",
    "InactiveRound",
    "InsufficientPayment",
    "InvalidIndex",
    "LedgerListener",
    "LotteryError",
    "RevealMismatch",
    "RoundInactive",
    "RoundLedger",
    "RoundStillActive",
    "Unauthorized",
    "commit",
    "derive_round_secret",
    "normalize_choices",
    "normalize_participant",
    "select_index",
    "verify",
]
