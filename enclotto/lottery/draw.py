"""Deterministic winner selection and round secret derivation."""

from __future__ import annotations

import hashlib
from typing import Optional

from .commitment import normalize_participant
from .errors import EmptyRound

_WORD = 32


def _word(value: int, *, name: str) -> bytes:
    """Encode a non-negative integer as a 32-byte big-endian word."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    if value >= 1 << (_WORD * 8):
        raise ValueError(f"{name} does not fit in {_WORD} bytes")
    return value.to_bytes(_WORD, "big")


def _secret_bytes(secret: str) -> bytes:
    try:
        raw = bytes.fromhex(secret)
    except (TypeError, ValueError) as exc:
        raise ValueError("round secret must be a hex string") from exc
    if len(raw) != _WORD:
        raise ValueError(f"round secret must encode {_WORD} bytes")
    return raw


def select_index(
    block_time: int,
    entropy: int,
    entry_count: int,
    round_secret: str,
) -> int:
    """Pick an entry index from public draw inputs.

    The four inputs are hashed together with SHA-256 and the digest, read
    as a big-endian integer, is reduced modulo ``entry_count``. Anyone who
    knows the inputs can recompute the same index, so the outcome is only
    as unpredictable as ``block_time`` and ``entropy`` were when entries
    were submitted.

    Parameters
    ----------
    block_time : int
        Timestamp of the block (or clock tick) at which the draw runs.
    entropy : int
        Hard-to-predict environment value such as block difficulty or
        ``prevRandao``.
    entry_count : int
        Number of entries in the round.
    round_secret : str
        Hex seed established when the round started.

    Returns
    -------
    int
        Index in ``[0, entry_count)``.

    Raises
    ------
    EmptyRound
        If ``entry_count`` is zero.
    """

    if isinstance(entry_count, bool) or not isinstance(entry_count, int):
        raise TypeError("entry_count must be an integer")
    if entry_count < 0:
        raise ValueError("entry_count must be non-negative")
    if entry_count == 0:
        raise EmptyRound("cannot draw from a round without entries")

    payload = (
        _word(block_time, name="block_time")
        + _word(entropy, name="entropy")
        + _word(entry_count, name="entry_count")
        + _secret_bytes(round_secret)
    )
    seed_int = int.from_bytes(hashlib.sha256(payload).digest(), "big")
    return seed_int % entry_count


def derive_round_secret(
    previous_secret: Optional[str],
    now: int,
    initiator: str,
) -> str:
    """Derive the hidden seed for a new round.

    The seed hashes the start time, the initiating identity and, when there
    is one, the previous round's secret. It is unknown before the round
    starts but can be rebuilt by anyone once those inputs are public.
    """

    payload = _word(now, name="now") + normalize_participant(initiator).encode("utf-8")
    if previous_secret is not None:
        payload = _secret_bytes(previous_secret) + payload
    return hashlib.sha256(payload).hexdigest()


__all__ = ["derive_round_secret", "select_index"]
