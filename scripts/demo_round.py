"""Play one lottery round against a fresh database.

Alice and Bob each submit committed choices, the owner draws a winner with
fixed inputs, the winner's reveal is checked and round 2 is opened.
"""

from __future__ import annotations

import argparse
import json
import logging

from enclotto.config import LotterySettings
from enclotto.db.engine import get_sessionmaker, make_engine
from enclotto.lottery.audit import build_round_audit, verify_round_audit
from enclotto.models import Base
from enclotto.workflows import create_lottery, run_draw, submit_entry

log = logging.getLogger("demo")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--database-url", default="sqlite+pysqlite:///:memory:")
    parser.add_argument("--block-time", type=int, default=1_700_000_000)
    parser.add_argument("--entropy", type=int, default=0xC0FFEE)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    engine = make_engine(args.database_url)
    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)
    settings = LotterySettings.from_env()

    choices = {
        "alice": (True, False, True),
        "bob": (False, False, False),
    }

    with Session.begin() as session:
        ledger = create_lottery(
            session, "demo", owner="owner", now=99, settings=settings
        )
        fee = ledger.fee_per_ticket
        submit_entry(ledger, choices["alice"], fee, "alice", now=100)
        submit_entry(ledger, choices["bob"], 2 * fee, "bob", now=101)
        log.info("Pool: %d across %d entries", ledger.prize_pool, ledger.entry_count)

        finished_round = ledger.current_round
        record = run_draw(
            ledger,
            caller="owner",
            block_time=args.block_time,
            entropy=args.entropy,
            reveal=choices,
            next_round_at=args.block_time,
        )
        log.info("Winner: %s, payout %d", record.participant, record.payout)
        log.info("Now in round %d", ledger.round_number)

        audit = build_round_audit(finished_round)
        print(json.dumps(audit, indent=2))
        log.info(
            "Audit verified: %s",
            verify_round_audit(audit, commitment_key=settings.commitment_key)["ok"],
        )

    engine.dispose()


if __name__ == "__main__":
    main()
