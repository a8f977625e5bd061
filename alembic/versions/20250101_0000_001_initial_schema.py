"""Initial schema: instruments, snapshots, users and positions.

Revision ID: 001_initial
Revises:
Create Date: 2025-01-01

Each snapshot table holds at most one row per instrument. The unique
index on instrument_id is the conflict target for refresh upserts.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


SNAPSHOT_TABLES = (
    "stock_analyst_ratings",
    "stock_statistics",
    "stock_financials",
    "stock_fundamentals",
    "stock_intraday_prices",
    "stock_realtime_prices",
)


def _snapshot_table(name: str, *columns: sa.Column) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "instrument_id",
            sa.Integer(),
            sa.ForeignKey("stocks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        *columns,
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("instrument_id", name=f"uq_{name}_instrument_id"),
    )


def upgrade() -> None:
    # ==========================================================================
    # INSTRUMENTS
    # ==========================================================================

    op.create_table(
        "stocks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("symbol", sa.String(20), nullable=False),
        sa.Column("exchange", sa.String(10), nullable=False, server_default="NSE"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sector", sa.String(100)),
        sa.Column("industry", sa.String(150)),
        sa.Column("currency", sa.String(10), server_default="INR"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("last_refreshed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("symbol", "exchange", name="uq_stocks_symbol_exchange"),
    )
    op.create_index(
        "idx_stocks_active", "stocks", ["is_active"], postgresql_where=sa.text("is_active = TRUE")
    )
    op.create_index("idx_stocks_last_refreshed", "stocks", ["last_refreshed_at"])

    # ==========================================================================
    # SNAPSHOTS
    # ==========================================================================

    _snapshot_table(
        "stock_realtime_prices",
        sa.Column("price", sa.Numeric(18, 4)),
        sa.Column("volume", sa.BigInteger()),
        sa.Column("signal", sa.String(10)),
    )
    _snapshot_table(
        "stock_intraday_prices",
        sa.Column("previous_close", sa.Numeric(18, 4)),
        sa.Column("open", sa.Numeric(18, 4)),
        sa.Column("day_high", sa.Numeric(18, 4)),
        sa.Column("day_low", sa.Numeric(18, 4)),
        sa.Column("fifty_two_week_high", sa.Numeric(18, 4)),
        sa.Column("fifty_two_week_low", sa.Numeric(18, 4)),
        sa.Column("fifty_day_average", sa.Numeric(18, 4)),
        sa.Column("two_hundred_day_average", sa.Numeric(18, 4)),
        sa.Column("avg_volume_3m", sa.BigInteger()),
        sa.Column("avg_volume_10d", sa.BigInteger()),
        sa.Column("market_cap", sa.BigInteger()),
    )
    op.create_index("idx_intraday_updated", "stock_intraday_prices", ["updated_at"])

    _snapshot_table(
        "stock_fundamentals",
        sa.Column("eps_ttm", sa.Numeric(18, 4)),
        sa.Column("eps_forward", sa.Numeric(18, 4)),
        sa.Column("book_value", sa.Numeric(18, 4)),
        sa.Column("trailing_pe", sa.Numeric(18, 4)),
        sa.Column("forward_pe", sa.Numeric(18, 4)),
        sa.Column("price_to_book", sa.Numeric(18, 4)),
    )
    _snapshot_table(
        "stock_financials",
        sa.Column("total_revenue", sa.BigInteger()),
        sa.Column("total_cash", sa.BigInteger()),
        sa.Column("total_debt", sa.BigInteger()),
        sa.Column("debt_to_equity", sa.Numeric(18, 6)),
        sa.Column("current_ratio", sa.Numeric(18, 6)),
        sa.Column("quick_ratio", sa.Numeric(18, 6)),
        sa.Column("profit_margins", sa.Numeric(18, 6)),
        sa.Column("gross_margins", sa.Numeric(18, 6)),
        sa.Column("operating_margins", sa.Numeric(18, 6)),
        sa.Column("ebitda_margins", sa.Numeric(18, 6)),
        sa.Column("return_on_assets", sa.Numeric(18, 6)),
        sa.Column("return_on_equity", sa.Numeric(18, 6)),
        sa.Column("revenue_growth", sa.Numeric(18, 6)),
        sa.Column("earnings_growth", sa.Numeric(18, 6)),
    )
    _snapshot_table(
        "stock_statistics",
        sa.Column("held_percent_institutions", sa.Numeric(18, 6)),
        sa.Column("held_percent_insiders", sa.Numeric(18, 6)),
        sa.Column("last_split_factor", sa.String(20)),
        sa.Column("last_split_date", sa.Date()),
        sa.Column("last_dividend_value", sa.Numeric(18, 4)),
        sa.Column("last_dividend_date", sa.Date()),
        sa.Column("earnings_date", sa.Date()),
        sa.Column("earnings_call_date", sa.Date()),
    )
    _snapshot_table(
        "stock_analyst_ratings",
        sa.Column("recommendation", sa.String(20)),
        sa.Column("number_of_analysts", sa.Integer()),
        sa.Column("target_high_price", sa.Numeric(18, 4)),
        sa.Column("target_low_price", sa.Numeric(18, 4)),
    )

    # ==========================================================================
    # USERS & PORTFOLIO
    # ==========================================================================

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("username", sa.String(100)),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("last_login", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("external_id", name="uq_users_external_id"),
    )

    op.create_table(
        "user_positions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "instrument_id", sa.Integer(), sa.ForeignKey("stocks.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("buy_price", sa.Numeric(18, 4), nullable=False),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "instrument_id", name="uq_user_positions_user_instrument"),
        sa.CheckConstraint("quantity > 0", name="ck_user_positions_quantity_positive"),
        sa.CheckConstraint("buy_price > 0", name="ck_user_positions_buy_price_positive"),
    )
    op.create_index("idx_user_positions_user", "user_positions", ["user_id"])


def downgrade() -> None:
    op.drop_index("idx_user_positions_user", table_name="user_positions")
    op.drop_table("user_positions")
    op.drop_table("users")

    op.drop_index("idx_intraday_updated", table_name="stock_intraday_prices")
    for name in SNAPSHOT_TABLES:
        op.drop_table(name)

    op.drop_index("idx_stocks_last_refreshed", table_name="stocks")
    op.drop_index("idx_stocks_active", table_name="stocks")
    op.drop_table("stocks")
