"""Entries and per-participant ticket tallies."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, object_session, relationship

from .base import Base
from .id_type import ID_TYPE, UInt256

if TYPE_CHECKING:
    from .lottery import LotteryRound


class LotteryEntry(Base):
    """A participant's ticketed, committed submission within a round.

    Entries are append-only: once flushed, any attempt to modify one
    raises :class:`RuntimeError`.
    """

    __tablename__ = "lottery_entries"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    round_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("lottery_rounds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    """Foreign key referencing :class:`LotteryRound`."""

    position: Mapped[int] = mapped_column(Integer, nullable=False)
    """0-based insertion index within the round."""

    participant: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    """Normalized identity of the submitter."""

    commitment: Mapped[str] = mapped_column(String(64), nullable=False)
    """Hex commitment of the participant's private choices."""

    ticket_count: Mapped[int] = mapped_column(Integer, nullable=False)
    """Tickets bought with ``payment``."""

    payment: Mapped[int] = mapped_column(UInt256, nullable=False)
    """Amount attached to the submission."""

    submitted_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    """Logical submission time supplied by the environment."""

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    round: Mapped["LotteryRound"] = relationship(back_populates="entries")

    __table_args__ = (
        UniqueConstraint("round_id", "position", name="uq_lottery_entry_position"),
        CheckConstraint("ticket_count >= 1", name="ticket_count_positive"),
        CheckConstraint("position >= 0", name="position_non_negative"),
    )

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<LotteryEntry(id={id}, round_id={rid}, position={pos}, participant={p}, tickets={t})>".format(
            id=self.id,
            rid=self.round_id,
            pos=self.position,
            p=self.participant,
            t=self.ticket_count,
        )


class TicketTally(Base):
    """Running count of tickets bought by one participant in one round."""

    __tablename__ = "ticket_tallies"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("lottery_rounds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    participant: Mapped[str] = mapped_column(String(255), nullable=False)
    tickets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    round: Mapped["LotteryRound"] = relationship(back_populates="tallies")

    __table_args__ = (
        UniqueConstraint("round_id", "participant", name="uq_ticket_tally_participant"),
    )


@event.listens_for(LotteryEntry, "before_update")
def _reject_entry_updates(mapper, connection, target: LotteryEntry) -> None:
    session = object_session(target)
    if session is not None and not session.is_modified(
        target, include_collections=False
    ):
        return
    raise RuntimeError("Lottery entries are append-only and cannot be modified")


__all__ = ["LotteryEntry", "TicketTally"]
