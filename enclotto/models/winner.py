"""Winner records retained as round history."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .id_type import ID_TYPE, UInt256

if TYPE_CHECKING:
    from .entry import LotteryEntry
    from .lottery import LotteryRound


class WinnerRecord(Base):
    """Immutable outcome of finalizing a round.

    Only the winning entry's choices are revealed; the other entries of the
    round keep nothing but their commitments.
    """

    __tablename__ = "winner_records"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    round_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("lottery_rounds.id", ondelete="CASCADE"),
        nullable=False,
    )
    """Round this record finalizes."""

    entry_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("lottery_entries.id", ondelete="CASCADE"),
        nullable=False,
    )
    """Winning entry."""

    participant: Mapped[str] = mapped_column(String(255), nullable=False)
    """Identity receiving the payout."""

    choice_1: Mapped[bool] = mapped_column(Boolean, nullable=False)
    choice_2: Mapped[bool] = mapped_column(Boolean, nullable=False)
    choice_3: Mapped[bool] = mapped_column(Boolean, nullable=False)

    selected_index: Mapped[int] = mapped_column(Integer, nullable=False)
    """Index of the winning entry within the round."""

    payout: Mapped[int] = mapped_column(UInt256, nullable=False)
    """Amount owed to the winner."""

    house_share: Mapped[int] = mapped_column(UInt256, nullable=False)
    """Remainder of the prize pool retained by the owner."""

    block_time: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    """Draw input: block time, when the index came from :meth:`RoundLedger.draw`."""

    entropy: Mapped[Optional[int]] = mapped_column(UInt256, nullable=True)
    """Draw input: environment entropy, when the index came from a draw."""

    drawn_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    round: Mapped["LotteryRound"] = relationship(back_populates="winner")
    entry: Mapped["LotteryEntry"] = relationship()

    __table_args__ = (UniqueConstraint("round_id", name="uq_winner_record_round"),)

    @property
    def revealed_choices(self) -> tuple[bool, bool, bool]:
        return (self.choice_1, self.choice_2, self.choice_3)

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<WinnerRecord(id={id}, round_id={rid}, participant={p}, payout={payout})>".format(
            id=self.id, rid=self.round_id, p=self.participant, payout=self.payout
        )


__all__ = ["WinnerRecord"]
