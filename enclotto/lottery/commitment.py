"""Commit-and-reveal helpers for a player's private choices.

A commitment is an HMAC-SHA256 digest over the three boolean choices and
the participant identifier. It binds a player to their choices without
storing them, and it can only be checked against a later reveal; no
computation over committed values is possible.

Warning
-------
This is *not* encryption and provides no real confidentiality. The input
domain is eight possible triples per participant, so anyone who knows the
key and a participant's address can recover the choices by trying all of
them. The scheme is kept as-is for the "encrypted entry" demo.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional, Sequence, Tuple

DEFAULT_COMMITMENT_KEY = b"enclotto/commitment/v1"

Choices = Tuple[bool, bool, bool]


def normalize_participant(participant: str) -> str:
    """Normalize a participant identifier by trimming and lower-casing.

    Addresses are case-insensitive, so ``0xABC`` and ``0xabc`` refer to the
    same participant.

    Parameters
    ----------
    participant : str
        Raw identifier supplied by the caller.
    """

    if participant is None:
        raise ValueError("participant must not be None")
    if not isinstance(participant, str):
        raise TypeError("participant must be a string")
    normalized = participant.strip().lower()
    if not normalized:
        raise ValueError("participant must not be empty")
    return normalized


def normalize_choices(choices: Sequence[bool]) -> Choices:
    """Return ``choices`` as a ``(bool, bool, bool)`` tuple.

    Raises
    ------
    TypeError
        If any element is not a ``bool`` (integers such as ``1`` are rejected).
    ValueError
        If ``choices`` does not hold exactly three values.
    """

    values = tuple(choices)
    if len(values) != 3:
        raise ValueError(f"expected exactly three choices, got {len(values)}")
    for value in values:
        if not isinstance(value, bool):
            raise TypeError("choices must be booleans")
    return values  # type: ignore[return-value]


def _payload(choices: Choices, participant: str) -> bytes:
    flags = bytes(1 if flag else 0 for flag in choices)
    return flags + participant.encode("utf-8")


def commit(
    choices: Sequence[bool],
    participant: str,
    *,
    key: Optional[bytes] = None,
) -> str:
    """Compute the commitment for ``choices`` submitted by ``participant``.

    Parameters
    ----------
    choices : Sequence[bool]
        The player's three private flags, in order.
    participant : str
        Identity of the submitter. Mixing it into the digest makes identical
        choices from different participants yield different commitments.
    key : Optional[bytes], default: None
        HMAC key. When omitted :data:`DEFAULT_COMMITMENT_KEY` is used.

    Returns
    -------
    str
        64-character lowercase hex digest.
    """

    normalized_choices = normalize_choices(choices)
    normalized_participant = normalize_participant(participant)
    digest = hmac.new(
        key if key is not None else DEFAULT_COMMITMENT_KEY,
        _payload(normalized_choices, normalized_participant),
        hashlib.sha256,
    )
    return digest.hexdigest()


def verify(
    choices: Sequence[bool],
    participant: str,
    commitment: str,
    *,
    key: Optional[bytes] = None,
) -> bool:
    """Return ``True`` when ``choices`` reproduce ``commitment`` for ``participant``."""

    expected = commit(choices, participant, key=key)
    return hmac.compare_digest(expected, commitment.strip().lower())


__all__ = [
    "Choices",
    "DEFAULT_COMMITMENT_KEY",
    "commit",
    "normalize_choices",
    "normalize_participant",
    "verify",
]
