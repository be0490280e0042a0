from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect, select

from enclotto.db.engine import get_sessionmaker, make_engine
from enclotto.models import Lottery

log = logging.getLogger("init_db")


def upgrade_db(target_revision: str = "head", database_url: Optional[str] = None) -> None:
    """Apply Alembic migrations up to the requested revision."""
    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    if database_url:
        alembic_cfg.attributes["database_url"] = database_url
    command.upgrade(alembic_cfg, target_revision)


def report(database_url: Optional[str] = None) -> None:
    """Log the lottery tables and the current round of each lottery."""
    engine = make_engine(database_url)
    insp = inspect(engine)
    log.info("Tables: %s", ", ".join(sorted(insp.get_table_names())))

    Session = get_sessionmaker(engine)
    with Session() as session:
        for lottery in session.scalars(select(Lottery).order_by(Lottery.id)):
            current = lottery.latest_round(session)
            if current is None:
                log.info("Lottery %s: no rounds", lottery.name)
                continue
            log.info(
                "Lottery %s: round %d (%s), pool %d, %d entries",
                lottery.name,
                current.round_number,
                "open" if current.active else "finalized",
                current.prize_pool,
                len(current.entries),
            )
    engine.dispose()


def main() -> None:
    """Apply migrations (default to head) and report the resulting schema."""
    parser = argparse.ArgumentParser(description="Create or upgrade the lottery database.")
    parser.add_argument("--revision", default="head")
    parser.add_argument("--database-url", default=None)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    upgrade_db(args.revision, args.database_url)
    report(args.database_url)


if __name__ == "__main__":
    main()
