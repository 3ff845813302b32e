"""ledger baseline

Revision ID: 0001_ledger_baseline
Revises:
Create Date: 2026-10-18 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_ledger_baseline"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
AMOUNT = sa.String(39)


def upgrade() -> None:
    op.create_table(
        "lottery_rounds",
        sa.Column("id", ID_TYPE, autoincrement=False, nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("ticket_price", AMOUNT, nullable=False),
        sa.Column("next_ticket_number", ID_TYPE, nullable=False),
        sa.Column("total_tickets_sold", ID_TYPE, nullable=False),
        sa.Column("prize_pool", AMOUNT, nullable=False),
        sa.Column("current_winner_pool", sa.String(20), nullable=False),
        sa.Column("pool1_count", ID_TYPE, nullable=False),
        sa.Column("pool2_count", ID_TYPE, nullable=False),
        sa.Column("pool3_count", ID_TYPE, nullable=False),
        sa.Column("pool4_count", ID_TYPE, nullable=False),
        sa.Column("pool1_winners_drawn", ID_TYPE, nullable=False),
        sa.Column("pool2_winners_drawn", ID_TYPE, nullable=False),
        sa.Column("pool3_winners_drawn", ID_TYPE, nullable=False),
        sa.Column("pool4_winners_drawn", ID_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('active','closed','complete')",
            name=op.f("ck_lottery_rounds_status_enum"),
        ),
        sa.CheckConstraint(
            "current_winner_pool IN ('pool1','pool2','pool3','pool4','complete')",
            name=op.f("ck_lottery_rounds_winner_pool_enum"),
        ),
        sa.CheckConstraint(
            "next_ticket_number = total_tickets_sold + 1",
            name=op.f("ck_lottery_rounds_gapless_numbering"),
        ),
        *(
            sa.CheckConstraint(
                f"pool{n}_winners_drawn <= pool{n}_count",
                name=op.f(f"ck_lottery_rounds_pool{n}_drawn_le_count"),
            )
            for n in range(1, 5)
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_lottery_rounds")),
    )

    op.create_table(
        "ledger_registers",
        sa.Column("id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("round_counter", ID_TYPE, nullable=False),
        sa.Column("active_round_id", ID_TYPE, nullable=True),
        sa.Column("controller_id", sa.String(64), nullable=True),
        sa.CheckConstraint("id = 1", name=op.f("ck_ledger_registers_single_row")),
        sa.ForeignKeyConstraint(
            ["active_round_id"],
            ["lottery_rounds.id"],
            name=op.f("fk_ledger_registers_active_round_id_lottery_rounds"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ledger_registers")),
    )

    op.create_table(
        "ticket_purchases",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("round_id", ID_TYPE, nullable=False),
        sa.Column("owner", sa.String(255), nullable=False),
        sa.Column("first_ticket", ID_TYPE, nullable=False),
        sa.Column("last_ticket", ID_TYPE, nullable=False),
        sa.Column("total_tickets", ID_TYPE, nullable=False),
        sa.Column("amount_paid", AMOUNT, nullable=False),
        sa.Column("source_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "first_ticket >= 1", name=op.f("ck_ticket_purchases_first_ticket_positive")
        ),
        sa.CheckConstraint(
            "total_tickets = last_ticket - first_ticket + 1",
            name=op.f("ck_ticket_purchases_range_matches_count"),
        ),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["lottery_rounds.id"],
            name=op.f("fk_ticket_purchases_round_id_lottery_rounds"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ticket_purchases")),
        sa.UniqueConstraint(
            "round_id", "first_ticket", name="uq_ticket_purchase_first_ticket"
        ),
    )
    op.create_index(
        "ix_ticket_purchases_round_owner",
        "ticket_purchases",
        ["round_id", "owner"],
        unique=False,
    )

    op.create_table(
        "ticket_owners",
        sa.Column("round_id", ID_TYPE, autoincrement=False, nullable=False),
        sa.Column("ticket_number", ID_TYPE, autoincrement=False, nullable=False),
        sa.Column("owner", sa.String(255), nullable=False),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["lottery_rounds.id"],
            name=op.f("fk_ticket_owners_round_id_lottery_rounds"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("round_id", "ticket_number", name=op.f("pk_ticket_owners")),
    )

    op.create_table(
        "winning_tickets",
        sa.Column("round_id", ID_TYPE, autoincrement=False, nullable=False),
        sa.Column("ticket_number", ID_TYPE, autoincrement=False, nullable=False),
        sa.Column("owner", sa.String(255), nullable=False),
        sa.Column("prize_amount", AMOUNT, nullable=False),
        sa.Column("claimed", sa.Boolean(), nullable=False),
        sa.Column("winner_pool", sa.String(20), nullable=False),
        sa.Column("draw_sequence", ID_TYPE, nullable=False),
        sa.Column("drawn_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "winner_pool IN ('pool1','pool2','pool3','pool4')",
            name=op.f("ck_winning_tickets_winner_pool_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["lottery_rounds.id"],
            name=op.f("fk_winning_tickets_round_id_lottery_rounds"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["round_id", "ticket_number"],
            ["ticket_owners.round_id", "ticket_owners.ticket_number"],
            name=op.f("fk_winning_tickets_round_id_ticket_owners"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint(
            "round_id", "ticket_number", name=op.f("pk_winning_tickets")
        ),
        sa.UniqueConstraint(
            "round_id", "draw_sequence", name="uq_winning_ticket_draw_sequence"
        ),
    )
    op.create_index(
        "ix_winning_tickets_owner", "winning_tickets", ["owner"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_winning_tickets_owner", table_name="winning_tickets")
    op.drop_table("winning_tickets")
    op.drop_table("ticket_owners")
    op.drop_index("ix_ticket_purchases_round_owner", table_name="ticket_purchases")
    op.drop_table("ticket_purchases")
    op.drop_table("ledger_registers")
    op.drop_table("lottery_rounds")
