# backend/position_tracker/models.py
import enum
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Date, DateTime, ForeignKey, Enum, Numeric, UniqueConstraint, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class InvestmentType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"
    # amount holds the cash received, not a share count
    DIVIDEND = "DIVIDEND"


class Quote(Base):
    """
    Global table of tradable instruments shared by all users.

    A quote is identified by the provider that serves its prices plus the
    provider's symbol, e.g. ("yahoo", "VWCE.DE").
    """
    __tablename__ = "quotes"
    __table_args__ = (
        UniqueConstraint('provider_id', 'symbol', name='uq_provider_symbol'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    provider_id: Mapped[str] = mapped_column(String(50), default="yahoo")
    symbol: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str | None] = mapped_column(String)
    exchange_disposition: Mapped[str | None] = mapped_column(String)  # e.g. "XETRA"
    type_disposition: Mapped[str | None] = mapped_column(String)  # e.g. "ETF"
    currency: Mapped[str] = mapped_column(String, default="EUR")

    # NULL until the first successful price fetch
    last_updated_prices: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)

    prices: Mapped[list["QuotePrice"]] = relationship(back_populates="quote")
    investments: Mapped[list["Investment"]] = relationship(back_populates="quote")


class QuotePrice(Base):
    """
    Daily price cache for a quote.

    One row per quote per trading day. Only ``close`` is used for valuation;
    the other columns are stored as delivered by the provider.
    """
    __tablename__ = "quote_prices"
    __table_args__ = (
        UniqueConstraint('quote_id', 'date', name='uq_quote_date'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    quote_id: Mapped[int] = mapped_column(ForeignKey("quotes.id"), index=True)
    date: Mapped[date] = mapped_column(Date, index=True)

    open: Mapped[Decimal | None] = mapped_column(Numeric(18, 8), nullable=True)
    high: Mapped[Decimal | None] = mapped_column(Numeric(18, 8), nullable=True)
    low: Mapped[Decimal | None] = mapped_column(Numeric(18, 8), nullable=True)
    close: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    adjusted_close: Mapped[Decimal | None] = mapped_column(Numeric(18, 8), nullable=True)

    quote: Mapped["Quote"] = relationship(back_populates="prices")


class Investment(Base):
    __tablename__ = "investments"
    __table_args__ = (
        # "All investments of user X up to date Y", the positions query
        Index('ix_investment_user_date', 'user_id', 'date'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    quote_id: Mapped[int] = mapped_column(ForeignKey("quotes.id"), index=True)
    type: Mapped[InvestmentType] = mapped_column(Enum(InvestmentType))
    date: Mapped[datetime] = mapped_column(DateTime, index=True)  # UTC
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Numeric(18, 8) supports fractional shares and crypto quantities
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal(0))
    total_fees: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal(0))

    quote: Mapped["Quote"] = relationship(back_populates="investments")
