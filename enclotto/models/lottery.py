"""Database models for lotteries and their rounds."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    event,
    inspect,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, object_session, relationship

from .base import Base
from .id_type import ID_TYPE, UInt256

if TYPE_CHECKING:
    from .entry import LotteryEntry, TicketTally
    from .event import LedgerEvent
    from .winner import WinnerRecord


class Lottery(Base):
    """A named lottery and the economic rules shared by all its rounds."""

    __tablename__ = "lotteries"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    """Machine friendly identifier used by application code."""

    owner: Mapped[str] = mapped_column(String(255), nullable=False)
    """Identity allowed to draw winners and start rounds."""

    fee_per_ticket: Mapped[int] = mapped_column(UInt256, nullable=False)
    """Price of a single ticket in the smallest currency unit (wei)."""

    winner_share_numerator: Mapped[int] = mapped_column(
        Integer, nullable=False, default=80
    )
    """Numerator of the share of the prize pool paid to the winner."""

    share_denominator: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    """Denominator of the payout split."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    """Timestamp when the lottery was created."""

    rounds: Mapped[list["LotteryRound"]] = relationship(
        back_populates="lottery",
        cascade="all, delete-orphan",
        order_by="LotteryRound.round_number",
    )
    """All rounds of this lottery, oldest first."""

    events: Mapped[list["LedgerEvent"]] = relationship(
        back_populates="lottery",
        cascade="all, delete-orphan",
        order_by="LedgerEvent.id",
    )
    """Notifications emitted by the ledger for this lottery."""

    __table_args__ = (
        UniqueConstraint("name", name="lotteries_name_key"),
        CheckConstraint(
            "share_denominator > 0 AND winner_share_numerator >= 0 "
            "AND winner_share_numerator <= share_denominator",
            name="payout_split",
        ),
    )

    def latest_round(self, session: Session) -> Optional["LotteryRound"]:
        """Return the round with the highest number, if any."""

        stmt = (
            select(LotteryRound)
            .where(LotteryRound.lottery_id == self.id)
            .order_by(LotteryRound.round_number.desc())
        )
        return session.scalars(stmt).first()

    @classmethod
    def get_by_name(cls, session: Session, name: str) -> Optional["Lottery"]:
        """Return the lottery matching ``name`` if it exists."""

        return session.scalar(select(cls).where(cls.name == name))

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Lottery(id={id}, name={name}, owner={owner})>".format(
            id=self.id, name=self.name, owner=self.owner
        )


class LotteryRound(Base):
    """One lottery cycle, from opening for entries to winner finalization."""

    __tablename__ = "lottery_rounds"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    lottery_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("lotteries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    """Foreign key referencing :class:`Lottery`."""

    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    """Strictly increasing counter, starting at 1."""

    secret: Mapped[str] = mapped_column(String(64), nullable=False)
    """Hex seed mixed into the draw; derived when the round starts."""

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    """Entries are accepted only while this is ``True``."""

    prize_pool: Mapped[int] = mapped_column(UInt256, nullable=False, default=0)
    """Sum of all payments received during the round."""

    started_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    """Logical time at which the round opened."""

    started_by: Mapped[str] = mapped_column(String(255), nullable=False)
    """Identity that started the round (an input to the secret)."""

    finalized_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """Wall-clock time of finalization, ``None`` while open."""

    lottery: Mapped["Lottery"] = relationship(back_populates="rounds")

    entries: Mapped[list["LotteryEntry"]] = relationship(
        back_populates="round",
        cascade="all, delete-orphan",
        order_by="LotteryEntry.position",
    )
    """Entries in insertion order; the order defines selection indices."""

    tallies: Mapped[list["TicketTally"]] = relationship(
        back_populates="round",
        cascade="all, delete-orphan",
    )

    winner: Mapped[Optional["WinnerRecord"]] = relationship(
        back_populates="round",
        cascade="all, delete-orphan",
        uselist=False,
    )
    """Winner record, set when the round is finalized."""

    __table_args__ = (
        UniqueConstraint("lottery_id", "round_number", name="uq_lottery_round_number"),
        CheckConstraint("round_number >= 1", name="round_number_positive"),
    )

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<LotteryRound(id={id}, lottery_id={lid}, round_number={num}, active={active}, prize_pool={pool})>".format(
            id=self.id,
            lid=self.lottery_id,
            num=self.round_number,
            active=self.active,
            pool=self.prize_pool,
        )


@event.listens_for(LotteryRound, "before_update")
def _reject_finalized_round_updates(mapper, connection, target: LotteryRound) -> None:
    """Finalized rounds are historical records and may not change."""

    session = object_session(target)
    if session is not None and not session.is_modified(
        target, include_collections=False
    ):
        return
    history = inspect(target).attrs.active.history
    was_active = history.deleted[0] if history.deleted else target.active
    if not was_active:
        raise RuntimeError(
            f"Round {target.round_number} is finalized and cannot be modified"
        )


__all__ = ["Lottery", "LotteryRound"]
