# backend/position_tracker/schemas/positions.py
"""
Pydantic schemas for the positions API.

- PositionSnapshotSchema: one holding on one day, derived values included
- QuoteSchema: instrument metadata
- PositionsResponse: snapshots plus the instruments they reference
"""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class PositionSnapshotSchema(BaseModel):
    """End-of-day state of one holding."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(..., description="Owner of the position")
    quote_id: int = Field(..., description="Instrument ID")
    date: dt.date = Field(..., description="Snapshot day (UTC)")
    currency: str = Field(..., description="Instrument currency, no conversion applied")
    amount: Decimal = Field(..., description="Units held at the end of the day")
    invested: Decimal = Field(
        ...,
        description="FIFO cost basis of the units held, fees included"
    )
    total_fees: Decimal = Field(..., description="Cumulative fees of buys and sells")
    market_price_per_unit: Decimal = Field(
        ...,
        description="Close of the day, or the last known close before it"
    )
    realized_gain: Decimal = Field(
        ...,
        description="Cumulative realized gain from sells and dividends"
    )
    total_invested_cash: Decimal = Field(
        ...,
        description="Cumulative gross cash paid for buys, fees included"
    )
    current_value: Decimal = Field(..., description="market_price_per_unit × amount")
    unrealized_gain: Decimal = Field(..., description="current_value - invested")
    total_profit: Decimal = Field(..., description="unrealized_gain + realized_gain")


class QuoteSchema(BaseModel):
    """Instrument metadata."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    provider_id: str = Field(..., description="Market data provider (e.g., 'yahoo')")
    symbol: str = Field(..., description="Provider symbol (e.g., 'VWCE.DE')")
    name: str | None = None
    exchange_disposition: str | None = Field(default=None, description="Exchange (e.g., 'XETRA')")
    type_disposition: str | None = Field(default=None, description="Instrument type (e.g., 'ETF')")
    currency: str
    last_updated_prices: dt.datetime | None = Field(
        default=None,
        description="When prices were last fetched from the provider"
    )


class PositionsResponse(BaseModel):
    """Response of GET /positions."""

    snapshots: list[PositionSnapshotSchema] = Field(
        default_factory=list,
        description="Snapshots ordered by instrument, then date"
    )
    quotes: list[QuoteSchema] = Field(
        default_factory=list,
        description="Every instrument referenced by the user's investments"
    )
    warnings: list[str] = Field(
        default_factory=list,
        description="Data quality notes (failed price refreshes, oversells, ...)"
    )
