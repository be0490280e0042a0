from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .lottery.commitment import DEFAULT_COMMITMENT_KEY

# 0.00001 ETH expressed in wei.
DEFAULT_FEE_PER_TICKET = 10**13
DEFAULT_WINNER_SHARE_NUMERATOR = 80
DEFAULT_SHARE_DENOMINATOR = 100


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable '{name}' must be an integer") from exc


@dataclass(frozen=True)
class LotterySettings:
    fee_per_ticket: int = DEFAULT_FEE_PER_TICKET
    winner_share_numerator: int = DEFAULT_WINNER_SHARE_NUMERATOR
    share_denominator: int = DEFAULT_SHARE_DENOMINATOR
    commitment_key: bytes = DEFAULT_COMMITMENT_KEY
    rpc_url: Optional[str] = None

    def __post_init__(self) -> None:
        if self.fee_per_ticket <= 0:
            raise ValueError("fee_per_ticket must be positive")
        if self.share_denominator <= 0:
            raise ValueError("share_denominator must be positive")
        if not 0 <= self.winner_share_numerator <= self.share_denominator:
            raise ValueError(
                "winner_share_numerator must be between 0 and share_denominator"
            )
        if not self.commitment_key:
            raise ValueError("commitment_key must not be empty")

    @staticmethod
    def from_env() -> "LotterySettings":
        load_dotenv()

        key = os.getenv("COMMITMENT_KEY", "").strip()
        rpc_url = os.getenv("ETH_RPC_URL", "").strip()
        return LotterySettings(
            fee_per_ticket=_int_from_env("ENTRY_FEE_PER_TICKET", DEFAULT_FEE_PER_TICKET),
            winner_share_numerator=_int_from_env(
                "WINNER_SHARE_NUMERATOR", DEFAULT_WINNER_SHARE_NUMERATOR
            ),
            share_denominator=_int_from_env(
                "SHARE_DENOMINATOR", DEFAULT_SHARE_DENOMINATOR
            ),
            commitment_key=key.encode("utf-8") if key else DEFAULT_COMMITMENT_KEY,
            rpc_url=rpc_url or None,
        )
