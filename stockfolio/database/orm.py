"""SQLAlchemy ORM models for Stockfolio.

Instruments and their snapshot children are written only by the refresh
subsystem. Every snapshot table holds at most one row per instrument
(``UNIQUE(instrument_id)``), overwritten in place on each refresh.

Usage:
    from stockfolio.database.orm import Instrument
    from stockfolio.database.connection import get_session

    async with get_session() as session:
        stock = await session.get(Instrument, 1)
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


# =============================================================================
# INSTRUMENTS
# =============================================================================


class Instrument(Base):
    """Listed equity on NSE or BSE."""
    __tablename__ = "stocks"

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    exchange: Mapped[str] = mapped_column(String(10), nullable=False, default="NSE")
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sector: Mapped[str | None] = mapped_column(String(100))
    industry: Mapped[str | None] = mapped_column(String(150))
    currency: Mapped[str] = mapped_column(String(10), default="INR")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_refreshed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    realtime: Mapped[RealTimeSnapshot | None] = relationship(back_populates="instrument")
    intraday: Mapped[IntradaySnapshot | None] = relationship(back_populates="instrument")

    __table_args__ = (
        UniqueConstraint("symbol", "exchange", name="uq_stocks_symbol_exchange"),
        Index("idx_stocks_active", "is_active", postgresql_where=text("is_active = TRUE")),
        Index("idx_stocks_last_refreshed", "last_refreshed_at"),
    )


# =============================================================================
# SNAPSHOTS (one row per instrument)
# =============================================================================


class RealTimeSnapshot(Base):
    """Latest traded price."""
    __tablename__ = "stock_realtime_prices"

    id: Mapped[int] = mapped_column(primary_key=True)
    instrument_id: Mapped[int] = mapped_column(
        ForeignKey("stocks.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    price: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    volume: Mapped[int | None] = mapped_column(BigInteger)
    signal: Mapped[str | None] = mapped_column(String(10))  # up, down, flat
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    instrument: Mapped[Instrument] = relationship(back_populates="realtime")


class IntradaySnapshot(Base):
    """Day range, 52-week range, moving and volume averages."""
    __tablename__ = "stock_intraday_prices"

    id: Mapped[int] = mapped_column(primary_key=True)
    instrument_id: Mapped[int] = mapped_column(
        ForeignKey("stocks.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    previous_close: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    open: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    day_high: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    day_low: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    fifty_two_week_high: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    fifty_two_week_low: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    fifty_day_average: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    two_hundred_day_average: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    avg_volume_3m: Mapped[int | None] = mapped_column(BigInteger)
    avg_volume_10d: Mapped[int | None] = mapped_column(BigInteger)
    market_cap: Mapped[int | None] = mapped_column(BigInteger)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    instrument: Mapped[Instrument] = relationship(back_populates="intraday")

    __table_args__ = (
        Index("idx_intraday_updated", "updated_at"),
    )


class FundamentalSnapshot(Base):
    """Per-share valuation figures."""
    __tablename__ = "stock_fundamentals"

    id: Mapped[int] = mapped_column(primary_key=True)
    instrument_id: Mapped[int] = mapped_column(
        ForeignKey("stocks.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    eps_ttm: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    eps_forward: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    book_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    trailing_pe: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    forward_pe: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    price_to_book: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class FinancialSnapshot(Base):
    """Balance sheet health, margins, returns and growth."""
    __tablename__ = "stock_financials"

    id: Mapped[int] = mapped_column(primary_key=True)
    instrument_id: Mapped[int] = mapped_column(
        ForeignKey("stocks.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    total_revenue: Mapped[int | None] = mapped_column(BigInteger)
    total_cash: Mapped[int | None] = mapped_column(BigInteger)
    total_debt: Mapped[int | None] = mapped_column(BigInteger)
    debt_to_equity: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    current_ratio: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    quick_ratio: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    profit_margins: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    gross_margins: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    operating_margins: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    ebitda_margins: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    return_on_assets: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    return_on_equity: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    revenue_growth: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    earnings_growth: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class StatisticsSnapshot(Base):
    """Holdings, corporate actions and earnings calendar."""
    __tablename__ = "stock_statistics"

    id: Mapped[int] = mapped_column(primary_key=True)
    instrument_id: Mapped[int] = mapped_column(
        ForeignKey("stocks.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    held_percent_institutions: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    held_percent_insiders: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    last_split_factor: Mapped[str | None] = mapped_column(String(20))
    last_split_date: Mapped[date | None] = mapped_column(Date)
    last_dividend_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    last_dividend_date: Mapped[date | None] = mapped_column(Date)
    earnings_date: Mapped[date | None] = mapped_column(Date)
    earnings_call_date: Mapped[date | None] = mapped_column(Date)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class AnalystRatingSnapshot(Base):
    """Consensus recommendation and target range."""
    __tablename__ = "stock_analyst_ratings"

    id: Mapped[int] = mapped_column(primary_key=True)
    instrument_id: Mapped[int] = mapped_column(
        ForeignKey("stocks.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    recommendation: Mapped[str | None] = mapped_column(String(20))
    number_of_analysts: Mapped[int | None] = mapped_column(Integer)
    target_high_price: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    target_low_price: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# =============================================================================
# USERS & PORTFOLIO
# =============================================================================


class AppUser(Base):
    """User known to the identity provider; created on first request."""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    username: Mapped[str | None] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    positions: Mapped[list[PortfolioPosition]] = relationship(back_populates="user")


class PortfolioPosition(Base):
    """Holding of one instrument by one user, at weighted-average cost."""
    __tablename__ = "user_positions"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    instrument_id: Mapped[int] = mapped_column(ForeignKey("stocks.id", ondelete="CASCADE"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    buy_price: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user: Mapped[AppUser] = relationship(back_populates="positions")
    instrument: Mapped[Instrument] = relationship()

    __table_args__ = (
        UniqueConstraint("user_id", "instrument_id", name="uq_user_positions_user_instrument"),
        CheckConstraint("quantity > 0", name="quantity_positive"),
        CheckConstraint("buy_price > 0", name="buy_price_positive"),
        Index("idx_user_positions_user", "user_id"),
    )
