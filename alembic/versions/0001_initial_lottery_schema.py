"""initial lottery schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "lotteries",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("owner", sa.String(length=255), nullable=False),
        sa.Column("fee_per_ticket", sa.String(length=78), nullable=False),
        sa.Column("winner_share_numerator", sa.Integer(), nullable=False),
        sa.Column("share_denominator", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "share_denominator > 0 AND winner_share_numerator >= 0 "
            "AND winner_share_numerator <= share_denominator",
            name=op.f("ck_lotteries_payout_split"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_lotteries")),
        sa.UniqueConstraint("name", name="lotteries_name_key"),
    )
    op.create_table(
        "lottery_rounds",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("lottery_id", ID, nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("secret", sa.String(length=64), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("prize_pool", sa.String(length=78), nullable=False),
        sa.Column("started_at", sa.BigInteger(), nullable=False),
        sa.Column("started_by", sa.String(length=255), nullable=False),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "round_number >= 1", name=op.f("ck_lottery_rounds_round_number_positive")
        ),
        sa.ForeignKeyConstraint(
            ["lottery_id"],
            ["lotteries.id"],
            name=op.f("fk_lottery_rounds_lottery_id_lotteries"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_lottery_rounds")),
        sa.UniqueConstraint(
            "lottery_id", "round_number", name="uq_lottery_round_number"
        ),
    )
    op.create_index(
        op.f("ix_lottery_rounds_lottery_id"),
        "lottery_rounds",
        ["lottery_id"],
        unique=False,
    )
    op.create_table(
        "lottery_entries",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("round_id", ID, nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("participant", sa.String(length=255), nullable=False),
        sa.Column("commitment", sa.String(length=64), nullable=False),
        sa.Column("ticket_count", sa.Integer(), nullable=False),
        sa.Column("payment", sa.String(length=78), nullable=False),
        sa.Column("submitted_at", sa.BigInteger(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "ticket_count >= 1", name=op.f("ck_lottery_entries_ticket_count_positive")
        ),
        sa.CheckConstraint(
            "position >= 0", name=op.f("ck_lottery_entries_position_non_negative")
        ),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["lottery_rounds.id"],
            name=op.f("fk_lottery_entries_round_id_lottery_rounds"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_lottery_entries")),
        sa.UniqueConstraint("round_id", "position", name="uq_lottery_entry_position"),
    )
    op.create_index(
        op.f("ix_lottery_entries_round_id"),
        "lottery_entries",
        ["round_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_lottery_entries_participant"),
        "lottery_entries",
        ["participant"],
        unique=False,
    )
    op.create_table(
        "ticket_tallies",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("round_id", ID, nullable=False),
        sa.Column("participant", sa.String(length=255), nullable=False),
        sa.Column("tickets", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["lottery_rounds.id"],
            name=op.f("fk_ticket_tallies_round_id_lottery_rounds"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ticket_tallies")),
        sa.UniqueConstraint(
            "round_id", "participant", name="uq_ticket_tally_participant"
        ),
    )
    op.create_index(
        op.f("ix_ticket_tallies_round_id"),
        "ticket_tallies",
        ["round_id"],
        unique=False,
    )
    op.create_table(
        "winner_records",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("round_id", ID, nullable=False),
        sa.Column("entry_id", ID, nullable=False),
        sa.Column("participant", sa.String(length=255), nullable=False),
        sa.Column("choice_1", sa.Boolean(), nullable=False),
        sa.Column("choice_2", sa.Boolean(), nullable=False),
        sa.Column("choice_3", sa.Boolean(), nullable=False),
        sa.Column("selected_index", sa.Integer(), nullable=False),
        sa.Column("payout", sa.String(length=78), nullable=False),
        sa.Column("house_share", sa.String(length=78), nullable=False),
        sa.Column("block_time", sa.BigInteger(), nullable=True),
        sa.Column("entropy", sa.String(length=78), nullable=True),
        sa.Column("drawn_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["entry_id"],
            ["lottery_entries.id"],
            name=op.f("fk_winner_records_entry_id_lottery_entries"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["lottery_rounds.id"],
            name=op.f("fk_winner_records_round_id_lottery_rounds"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_winner_records")),
        sa.UniqueConstraint("round_id", name="uq_winner_record_round"),
    )
    op.create_table(
        "ledger_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("lottery_id", ID, nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("participant", sa.String(length=255), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "kind IN ('entry_recorded','winner_drawn','round_started')",
            name=op.f("ck_ledger_events_kind_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["lottery_id"],
            ["lotteries.id"],
            name=op.f("fk_ledger_events_lottery_id_lotteries"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ledger_events")),
    )
    op.create_index(
        "ix_ledger_events_lottery_kind",
        "ledger_events",
        ["lottery_id", "kind"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_ledger_events_lottery_kind", table_name="ledger_events")
    op.drop_table("ledger_events")
    op.drop_table("winner_records")
    op.drop_index(op.f("ix_ticket_tallies_round_id"), table_name="ticket_tallies")
    op.drop_table("ticket_tallies")
    op.drop_index(op.f("ix_lottery_entries_participant"), table_name="lottery_entries")
    op.drop_index(op.f("ix_lottery_entries_round_id"), table_name="lottery_entries")
    op.drop_table("lottery_entries")
    op.drop_index(op.f("ix_lottery_rounds_lottery_id"), table_name="lottery_rounds")
    op.drop_table("lottery_rounds")
    op.drop_table("lotteries")
