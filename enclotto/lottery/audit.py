from __future__ import annotations

import json
from typing import Any, Dict, Optional

from .commitment import verify
from .draw import select_index
from ..db.utils import dt_iso
from ..models import LotteryRound


def build_round_audit(round_: LotteryRound) -> Dict[str, Any]:
    """Return a JSON-serialisable record of a finalized round.

    The record holds every public input of the draw plus the entries in
    insertion order, so anyone can re-run the selection. Only the winner's
    choices appear; other entries are listed by commitment.
    """

    if round_.active or round_.winner is None:
        raise ValueError("Only finalized rounds can be audited")
    winner = round_.winner
    return {
        "metadata": {
            "lottery": round_.lottery.name,
            "round_number": round_.round_number,
            "round_secret": round_.secret,
            "started_at": round_.started_at,
            "started_by": round_.started_by,
            "finalized_at": dt_iso(round_.finalized_at),
            "fee_per_ticket": str(round_.lottery.fee_per_ticket),
            "prize_pool": str(round_.prize_pool),
            "entry_count": len(round_.entries),
            "block_time": winner.block_time,
            # big int; store as string for safety
            "entropy": str(winner.entropy) if winner.entropy is not None else None,
        },
        "winner": {
            "participant": winner.participant,
            "selected_index": winner.selected_index,
            "revealed_choices": list(winner.revealed_choices),
            "payout": str(winner.payout),
            "house_share": str(winner.house_share),
        },
        "entries": [
            {
                "position": e.position,
                "participant": e.participant,
                "commitment": e.commitment,
                "ticket_count": e.ticket_count,
                "payment": str(e.payment),
                "submitted_at": e.submitted_at,
            }
            for e in round_.entries
        ],
    }


def verify_round_audit(
    audit: Dict[str, Any], *, commitment_key: Optional[bytes] = None
) -> Dict[str, Any]:
    """Recompute the draw and reveal recorded in ``audit``.

    Raises
    ------
    RuntimeError
        If the recomputed pool, index or commitment disagrees with the audit.
    """

    meta = audit["metadata"]
    winner = audit["winner"]
    entries = audit["entries"]

    pool = sum(int(e["payment"]) for e in entries)
    if pool != int(meta["prize_pool"]):
        raise RuntimeError(
            f"Prize pool mismatch: audit={meta['prize_pool']} recomputed={pool}"
        )

    index = int(winner["selected_index"])
    if meta.get("block_time") is not None and meta.get("entropy") is not None:
        recomputed = select_index(
            int(meta["block_time"]),
            int(meta["entropy"]),
            len(entries),
            meta["round_secret"],
        )
        if recomputed != index:
            raise RuntimeError(
                f"Winning index mismatch: audit={index} recomputed={recomputed}"
            )

    if not 0 <= index < len(entries):
        raise RuntimeError(f"Winning index {index} is outside the entry list")
    entry = entries[index]
    if entry["participant"] != winner["participant"]:
        raise RuntimeError(
            f"Winner mismatch: audit={winner['participant']} recomputed={entry['participant']}"
        )
    if not verify(
        winner["revealed_choices"],
        entry["participant"],
        entry["commitment"],
        key=commitment_key,
    ):
        raise RuntimeError("Revealed choices do not match the winning commitment")

    return {
        "ok": True,
        "winner": entry["participant"],
        "selected_index": index,
        "prize_pool": pool,
    }


def dump_round_audit(round_: LotteryRound, path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(build_round_audit(round_), f, indent=2)


def load_and_verify_round_audit(
    path: str, *, commitment_key: Optional[bytes] = None
) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        audit = json.load(f)
    return verify_round_audit(audit, commitment_key=commitment_key)


__all__ = [
    "build_round_audit",
    "dump_round_audit",
    "load_and_verify_round_audit",
    "verify_round_audit",
]
