from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .lottery import Lottery


ENTRY_RECORDED = "entry_recorded"
WINNER_DRAWN = "winner_drawn"
ROUND_STARTED = "round_started"


class LedgerEvent(Base):
    """Notification emitted by the round ledger for external observers."""

    __tablename__ = "ledger_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lottery_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("lotteries.id", ondelete="CASCADE"), nullable=False
    )
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    participant: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    lottery: Mapped["Lottery"] = relationship(back_populates="events")

    __table_args__ = (
        CheckConstraint(
            "kind IN ('entry_recorded','winner_drawn','round_started')",
            name="kind_enum",
        ),
        Index("ix_ledger_events_lottery_kind", "lottery_id", "kind"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEvent(id={self.id}, lottery_id={self.lottery_id}, "
            f"round_number={self.round_number}, kind='{self.kind}')>"
        )


__all__ = ["LedgerEvent", "ENTRY_RECORDED", "WINNER_DRAWN", "ROUND_STARTED"]
