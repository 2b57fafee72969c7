"""Initial schema

This migration creates the database schema for the Position Tracker.

Tables:
    - quotes: Global instrument registry (provider + symbol)
    - quote_prices: Daily price cache per quote
    - investments: Per-user ledger of BUY / SELL / DIVIDEND entries

Revision ID: 001
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ==========================================================================
    # QUOTES
    # ==========================================================================
    op.create_table(
        'quotes',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('provider_id', sa.String(50), nullable=False, server_default='yahoo'),
        sa.Column('symbol', sa.String(), nullable=False, index=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('exchange_disposition', sa.String(), nullable=True),
        sa.Column('type_disposition', sa.String(), nullable=True),
        sa.Column('currency', sa.String(), nullable=False, server_default='EUR'),
        sa.Column('last_updated_prices', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('provider_id', 'symbol', name='uq_provider_symbol'),
    )

    # ==========================================================================
    # QUOTE PRICES
    # ==========================================================================
    op.create_table(
        'quote_prices',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('quote_id', sa.Integer(), sa.ForeignKey('quotes.id'), nullable=False, index=True),
        sa.Column('date', sa.Date(), nullable=False, index=True),
        sa.Column('open', sa.Numeric(18, 8), nullable=True),
        sa.Column('high', sa.Numeric(18, 8), nullable=True),
        sa.Column('low', sa.Numeric(18, 8), nullable=True),
        sa.Column('close', sa.Numeric(18, 8), nullable=False),
        sa.Column('adjusted_close', sa.Numeric(18, 8), nullable=True),
        sa.UniqueConstraint('quote_id', 'date', name='uq_quote_date'),
    )

    # ==========================================================================
    # INVESTMENTS
    # ==========================================================================
    op.create_table(
        'investments',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('quote_id', sa.Integer(), sa.ForeignKey('quotes.id'), nullable=False, index=True),
        sa.Column('type', sa.Enum('BUY', 'SELL', 'DIVIDEND', name='investmenttype'), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('amount', sa.Numeric(18, 8), nullable=False),
        sa.Column('price_per_unit', sa.Numeric(18, 8), nullable=False),
        sa.Column('total_fees', sa.Numeric(18, 8), nullable=False),
    )
    op.create_index('ix_investment_user_date', 'investments', ['user_id', 'date'])


def downgrade() -> None:
    op.drop_index('ix_investment_user_date', table_name='investments')
    op.drop_table('investments')
    op.drop_table('quote_prices')
    op.drop_table('quotes')

    # Drop enums
    op.execute('DROP TYPE IF EXISTS investmenttype')
