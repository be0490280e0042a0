from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .lottery import Lottery, LotteryRound  # noqa: F401
from .entry import LotteryEntry, TicketTally  # noqa: F401
from .winner import WinnerRecord  # noqa: F401
from .event import LedgerEvent  # noqa: F401

__all__ = [
    "Base",
    "Lottery",
    "LotteryRound",
    "LotteryEntry",
    "TicketTally",
    "WinnerRecord",
    "LedgerEvent",
]
