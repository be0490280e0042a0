"""Round ledger: the single source of truth for lottery round state."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Sequence, Type

from sqlalchemy import select
from sqlalchemy.orm import Session

from .commitment import normalize_choices, normalize_participant, verify
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
from ..models import (
    LedgerEvent,
    Lottery,
    LotteryEntry,
    LotteryRound,
    TicketTally,
    WinnerRecord,
)
from ..models.event import ENTRY_RECORDED, ROUND_STARTED, WINNER_DRAWN

logger = logging.getLogger(__name__)

LedgerListener = Callable[[LedgerEvent], None]

# Times are stored in signed 64-bit BIGINT columns.
MAX_TIMESTAMP = (1 << 63) - 1


def _require_int(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return value


def _require_timestamp(value: int, name: str) -> int:
    _require_int(value, name)
    if value > MAX_TIMESTAMP:
        raise ValueError(f"{name} does not fit in a 64-bit timestamp")
    return value


def _normalize_commitment(commitment: str) -> str:
    if not isinstance(commitment, str):
        raise TypeError("commitment must be a hex string")
    normalized = commitment.strip().lower()
    if len(normalized) != 64:
        raise ValueError("commitment must be a 64-character hex digest")
    try:
        bytes.fromhex(normalized)
    except ValueError as exc:
        raise ValueError("commitment must be a 64-character hex digest") from exc
    return normalized


class RoundLedger:
    """Owns the rounds of one :class:`Lottery` and every mutation applied to them.

    The ledger is bound to a SQLAlchemy session in the same way the rest of
    the codebase binds engines to sessions. Mutating operations are
    serialized by a per-ledger lock; reads take no lock. Validation always
    happens before any attribute is touched, so a raised
    :class:`~enclotto.lottery.errors.LotteryError` leaves the round as it
    was.

    Owner-gated operations (:meth:`draw`, :meth:`finalize`,
    :meth:`start_new_round`) take a keyword-only ``caller`` and raise
    :class:`~enclotto.lottery.errors.Unauthorized` unless it matches
    ``lottery.owner``.

    Only one ledger per lottery should mutate state at a time. Concurrent
    ledgers in separate sessions are caught by the database uniqueness
    constraints on round numbers and entry positions, not by the lock.
    """

    def __init__(
        self,
        session: Session,
        lottery: Lottery,
        *,
        commitment_key: Optional[bytes] = None,
        listeners: Optional[Iterable[LedgerListener]] = None,
    ) -> None:
        """Create a ledger for ``lottery``.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session used for lookups and persistence.
        lottery : Lottery
            Persisted lottery whose rounds the ledger manages.
        commitment_key : Optional[bytes], default: None
            HMAC key used to verify reveals. Must match the key used when the
            entries were committed.
        listeners : Optional[Iterable[LedgerListener]], default: None
            Callables invoked with every :class:`LedgerEvent` the ledger emits,
            after the mutation has been flushed. An exception raised by a
            listener is logged and does not reach the caller of the command.
        """

        if lottery.id is None:
            raise ValueError("Lottery must be persisted before opening a ledger")
        self._session = session
        self._lottery = lottery
        self._commitment_key = commitment_key
        self._listeners: list[LedgerListener] = list(listeners or [])
        self._lock = threading.RLock()
        self._round: Optional[LotteryRound] = lottery.latest_round(session)
        self._last_draw: Optional[tuple[int, int, int]] = None

    # -------- read-only accessors --------
    @property
    def lottery(self) -> Lottery:
        return self._lottery

    @property
    def current_round(self) -> Optional[LotteryRound]:
        return self._round

    @property
    def round_number(self) -> int:
        """Number of the current round, ``0`` before the first round starts."""
        return self._round.round_number if self._round is not None else 0

    @property
    def prize_pool(self) -> int:
        return self._round.prize_pool if self._round is not None else 0

    @property
    def entry_count(self) -> int:
        return len(self._round.entries) if self._round is not None else 0

    @property
    def commitment_key(self) -> Optional[bytes]:
        return self._commitment_key

    @property
    def fee_per_ticket(self) -> int:
        return self._lottery.fee_per_ticket

    @property
    def is_active(self) -> bool:
        return self._round is not None and self._round.active

    def tickets_of(self, participant: str) -> int:
        """Return the tickets ``participant`` holds in the current round."""
        if self._round is None:
            return 0
        normalized = normalize_participant(participant)
        for tally in self._round.tallies:
            if tally.participant == normalized:
                return tally.tickets
        return 0

    def winner_history(self) -> list[WinnerRecord]:
        """Return the winner records of all finalized rounds, oldest first."""
        stmt = (
            select(WinnerRecord)
            .join(LotteryRound, WinnerRecord.round_id == LotteryRound.id)
            .where(LotteryRound.lottery_id == self._lottery.id)
            .order_by(LotteryRound.round_number.asc())
        )
        return list(self._session.scalars(stmt).all())

    def add_listener(self, listener: LedgerListener) -> None:
        self._listeners.append(listener)

    # -------- commands --------
    def record_entry(
        self,
        commitment: str,
        payment: int,
        participant: str,
        now: int,
    ) -> LotteryEntry:
        """Append a committed entry to the current round.

        Parameters
        ----------
        commitment : str
            Hex commitment produced by :func:`~enclotto.lottery.commitment.commit`.
        payment : int
            Amount attached to the submission, in the smallest currency unit.
        participant : str
            Identity of the submitter.
        now : int
            Logical submission time. Must not precede the previous entry.

        Returns
        -------
        LotteryEntry
            The persisted entry.

        Raises
        ------
        InactiveRound
            If no round is open.
        InsufficientPayment
            If ``payment`` does not buy at least one ticket.
        """

        with self._lock:
            round_ = self._require_round(InactiveRound)
            if not round_.active:
                raise InactiveRound(
                    f"Round {round_.round_number} is closed for entries"
                )
            if isinstance(payment, bool) or not isinstance(payment, int):
                raise TypeError("payment must be an integer")
            _require_timestamp(now, "now")
            fee = self._lottery.fee_per_ticket
            if payment < fee:
                raise InsufficientPayment(
                    f"Payment of {payment} is below the ticket fee of {fee}"
                )
            ticket_count = payment // fee
            if ticket_count < 1:
                raise InsufficientPayment("Payment does not cover a single ticket")
            normalized_participant = normalize_participant(participant)
            normalized_commitment = _normalize_commitment(commitment)

            entries = round_.entries
            if entries and now < entries[-1].submitted_at:
                raise ValueError(
                    "Submission time must not precede the previous entry of the round"
                )

            entry = LotteryEntry(
                position=len(entries),
                participant=normalized_participant,
                commitment=normalized_commitment,
                ticket_count=ticket_count,
                payment=payment,
                submitted_at=now,
            )
            entries.append(entry)
            round_.prize_pool = round_.prize_pool + payment
            self._tally_for(round_, normalized_participant).tickets += ticket_count
            self._session.flush()

            logger.info(
                "Round %d: entry #%d recorded for %s (%d tickets)",
                round_.round_number,
                entry.position,
                normalized_participant,
                ticket_count,
            )
            self._emit(
                ENTRY_RECORDED,
                round_,
                participant=normalized_participant,
                payload={"ticket_count": ticket_count, "position": entry.position},
            )
            return entry

    def draw(self, block_time: int, entropy: int, *, caller: str) -> int:
        """Select the winning index of the current round.

        The index is computed by :func:`~enclotto.lottery.draw.select_index`
        from ``block_time``, ``entropy``, the entry count and the round
        secret. Drawing does not close the round; call :meth:`finalize`
        with the returned index and the winner's reveal.

        Raises
        ------
        Unauthorized
            If ``caller`` is not the lottery owner.
        RoundInactive
            If the round has already been finalized.
        EmptyRound
            If the round has no entries.
        ValueError
            If ``block_time`` does not fit in a 64-bit timestamp.
        """

        with self._lock:
            self._authorize(caller)
            round_ = self._require_round(RoundInactive)
            if not round_.active:
                raise RoundInactive(
                    f"Round {round_.round_number} has already been finalized"
                )
            _require_timestamp(block_time, "block_time")
            index = select_index(block_time, entropy, len(round_.entries), round_.secret)
            self._last_draw = (index, block_time, entropy)
            logger.info(
                "Round %d: drew index %d of %d entries",
                round_.round_number,
                index,
                len(round_.entries),
            )
            return index

    def finalize(
        self,
        selected_index: int,
        revealed_choices: Sequence[bool],
        *,
        caller: str,
    ) -> WinnerRecord:
        """Close the round, verify the winner's reveal and compute the payout.

        Parameters
        ----------
        selected_index : int
            Index of the winning entry, normally the result of :meth:`draw`.
        revealed_choices : Sequence[bool]
            The winner's original three choices.
        caller : str
            Identity invoking the operation; must be the lottery owner.

        Returns
        -------
        WinnerRecord
            Record retained as round history.

        Raises
        ------
        RoundInactive
            If the round has already been finalized.
        EmptyRound
            If the round has no entries.
        InvalidIndex
            If ``selected_index`` is outside ``[0, entry_count)``.
        RevealMismatch
            If the reveal does not reproduce the stored commitment.
        """

        with self._lock:
            self._authorize(caller)
            round_ = self._require_round(RoundInactive)
            if not round_.active:
                raise RoundInactive(
                    f"Round {round_.round_number} has already been finalized"
                )
            entries = round_.entries
            if not entries:
                raise EmptyRound(f"Round {round_.round_number} has no entries")
            if (
                isinstance(selected_index, bool)
                or not isinstance(selected_index, int)
                or not 0 <= selected_index < len(entries)
            ):
                raise InvalidIndex(
                    f"Index {selected_index!r} is outside [0, {len(entries)})"
                )
            choices = normalize_choices(revealed_choices)
            entry = entries[selected_index]
            if not verify(
                choices, entry.participant, entry.commitment, key=self._commitment_key
            ):
                raise RevealMismatch(
                    f"Revealed choices do not match the commitment of entry #{selected_index}"
                )

            block_time: Optional[int] = None
            entropy: Optional[int] = None
            if self._last_draw is not None and self._last_draw[0] == selected_index:
                _, block_time, entropy = self._last_draw

            pool = round_.prize_pool
            payout = (
                pool
                * self._lottery.winner_share_numerator
                // self._lottery.share_denominator
            )
            record = WinnerRecord(
                entry=entry,
                participant=entry.participant,
                choice_1=choices[0],
                choice_2=choices[1],
                choice_3=choices[2],
                selected_index=selected_index,
                payout=payout,
                house_share=pool - payout,
                block_time=block_time,
                entropy=entropy,
            )
            try:
                with self._session.no_autoflush:
                    round_.active = False
                    round_.finalized_at = datetime.now(timezone.utc)
                    round_.winner = record
                self._session.flush()
            except Exception:
                with self._session.no_autoflush:
                    round_.winner = None
                    round_.finalized_at = None
                    round_.active = True
                if record in self._session:
                    self._session.expunge(record)
                raise
            self._last_draw = None

            logger.info(
                "Round %d: winner %s receives %d of %d",
                round_.round_number,
                entry.participant,
                payout,
                pool,
            )
            self._emit(
                WINNER_DRAWN,
                round_,
                participant=entry.participant,
                payload={
                    "payout": str(payout),
                    "house_share": str(pool - payout),
                    "selected_index": selected_index,
                },
            )
            return record

    def start_new_round(self, now: int, *, caller: str) -> LotteryRound:
        """Open the next round, or round 1 when the lottery has none yet.

        Raises
        ------
        Unauthorized
            If ``caller`` is not the lottery owner.
        RoundStillActive
            If the current round has not been finalized.
        """

        with self._lock:
            self._authorize(caller)
            _require_timestamp(now, "now")
            previous = self._round
            if previous is not None and previous.active:
                raise RoundStillActive(
                    f"Round {previous.round_number} must be finalized first"
                )
            initiator = normalize_participant(caller)
            secret = derive_round_secret(
                previous.secret if previous is not None else None, now, initiator
            )
            round_ = LotteryRound(
                round_number=previous.round_number + 1 if previous is not None else 1,
                secret=secret,
                active=True,
                prize_pool=0,
                started_at=now,
                started_by=initiator,
            )
            self._lottery.rounds.append(round_)
            self._session.flush()
            self._round = round_
            self._last_draw = None

            logger.info("Round %d started", round_.round_number)
            self._emit(ROUND_STARTED, round_, participant=initiator, payload=None)
            return round_

    # -------- internals --------
    def _authorize(self, caller: str) -> None:
        if normalize_participant(caller) != normalize_participant(self._lottery.owner):
            raise Unauthorized("Only the lottery owner may perform this operation")

    def _require_round(self, error_cls: Type[LotteryError]) -> LotteryRound:
        if self._round is None:
            raise error_cls("No round has been started")
        return self._round

    def _tally_for(self, round_: LotteryRound, participant: str) -> TicketTally:
        for tally in round_.tallies:
            if tally.participant == participant:
                return tally
        tally = TicketTally(participant=participant, tickets=0)
        round_.tallies.append(tally)
        return tally

    def _emit(
        self,
        kind: str,
        round_: LotteryRound,
        *,
        participant: Optional[str],
        payload: Optional[dict],
    ) -> LedgerEvent:
        event = LedgerEvent(
            lottery_id=self._lottery.id,
            round_number=round_.round_number,
            kind=kind,
            participant=participant,
            payload=payload,
        )
        self._session.add(event)
        self._session.flush()
        # The command has already been applied; a listener cannot undo it.
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Listener %r failed on %s event for round %d",
                    listener,
                    kind,
                    round_.round_number,
                )
        return event


__all__ = ["LedgerListener", "RoundLedger"]
