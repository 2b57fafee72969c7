# backend/tests/routers/test_positions_api.py
"""
API layer tests for the positions endpoint.

These tests verify the HTTP layer using FastAPI's TestClient:
- Correct status codes (200, 400, 401, 422, 504)
- Response JSON structure matches Pydantic schemas
- Date query parameter parsing
- Error responses in the ErrorDetail format

Test Methodology:
    1. Override database and service dependencies
    2. Seed test data
    3. Make HTTP requests via TestClient
    4. Assert status codes and response structure
"""

import os
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

# Set required environment variables BEFORE importing app modules
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from position_tracker.database import get_db
from position_tracker.dependencies import get_position_service
from position_tracker.main import app
from position_tracker.models import Base, InvestmentType
from position_tracker.services.exceptions import BackfillTimeoutError
from position_tracker.services.market_data.base import ProviderRegistry
from position_tracker.services.market_data.price_service import QuotePriceService
from position_tracker.services.positions.assembler import SnapshotAssembler
from position_tracker.services.positions.calculators import TransactionApplier
from position_tracker.services.positions.service import PositionService
from position_tracker.services.positions.simulator import DailySimulator
from position_tracker.services.positions.types import OversellPolicy
from tests.conftest import (
    MockMarketDataProvider,
    create_investment,
    create_price,
    create_quote,
)


HEADERS = {"X-User-Id": "user-1"}


# =============================================================================
# TEST DATABASE SETUP
# =============================================================================

@pytest.fixture(scope="function")
def test_engine():
    """Create an in-memory SQLite database engine for API tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def test_db(test_engine) -> Session:
    """Create a database session for API tests."""
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_engine
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def stored_prices_service(policy: OversellPolicy = OversellPolicy.ALLOW) -> PositionService:
    """PositionService that reads stored prices only (no provider calls)."""
    price_service = QuotePriceService(ProviderRegistry([MockMarketDataProvider()]))
    assembler = SnapshotAssembler(DailySimulator(TransactionApplier(policy)))
    return PositionService(price_service, backfill=None, assembler=assembler)


@pytest.fixture(scope="function")
def client(test_db: Session) -> TestClient:
    """
    Create TestClient with database and service overrides.

    This ensures all API calls use our test database and never reach Yahoo.
    """

    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_position_service] = lambda: stored_prices_service()

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def seeded(test_db: Session):
    """One quote, one buy on Feb 5 and four closes in February 2024."""
    quote = create_quote(test_db)
    create_investment(test_db, quote, date(2024, 2, 5), amount="100", price_per_unit="50", total_fees="10")
    for day, close in [(5, "50"), (10, "52"), (15, "53"), (20, "54")]:
        create_price(test_db, quote, date(2024, 2, day), close)
    return quote


# =============================================================================
# SUCCESS CASES
# =============================================================================

class TestGetPositions:
    """Tests for GET /positions."""

    def test_snapshots_in_range(self, client, seeded):
        response = client.get(
            "/positions",
            params={"from": "2024-02-10", "to": "2024-02-15"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["snapshots"]) == 6
        assert data["snapshots"][0]["date"] == "2024-02-10"
        assert data["snapshots"][-1]["date"] == "2024-02-15"
        assert data["warnings"] == []

        first = data["snapshots"][0]
        assert first["user_id"] == "user-1"
        assert first["quote_id"] == seeded.id
        assert first["currency"] == "EUR"
        assert Decimal(first["amount"]) == Decimal("100")
        assert Decimal(first["invested"]) == Decimal("5010")
        assert Decimal(first["market_price_per_unit"]) == Decimal("52")
        assert Decimal(first["current_value"]) == Decimal("5200")
        assert Decimal(first["unrealized_gain"]) == Decimal("190")
        assert Decimal(first["total_profit"]) == Decimal("190")

    def test_quotes_listed(self, client, seeded):
        response = client.get(
            "/positions",
            params={"from": "2024-02-10", "to": "2024-02-15"},
            headers=HEADERS,
        )

        quotes = response.json()["quotes"]
        assert len(quotes) == 1
        assert quotes[0]["id"] == seeded.id
        assert quotes[0]["symbol"] == "VWCE.DE"
        assert quotes[0]["provider_id"] == "mock"

    def test_unix_timestamps(self, client, seeded):
        # 2024-02-10T00:00:00Z and 2024-02-11T12:00:00Z
        response = client.get(
            "/positions",
            params={"from": "1707523200", "to": "1707652800"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert [s["date"] for s in response.json()["snapshots"]] == ["2024-02-10", "2024-02-11"]

    def test_offset_datetime_reduced_to_utc_day(self, client, seeded):
        # 23:30 at UTC-5 is already Feb 11 in UTC
        response = client.get(
            "/positions",
            params={"from": "2024-02-10T23:30:00-05:00", "to": "2024-02-11"},
            headers=HEADERS,
        )

        assert [s["date"] for s in response.json()["snapshots"]] == ["2024-02-11"]

    def test_empty_ledger(self, client):
        response = client.get("/positions", params={"to": "2024-02-15"}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"snapshots": [], "quotes": [], "warnings": []}

    def test_to_last_representable_day(self, client, test_db):
        quote = create_quote(test_db)
        create_investment(test_db, quote, date(9999, 12, 30), amount="2", price_per_unit="10")
        create_price(test_db, quote, date(9999, 12, 30), "11")

        response = client.get(
            "/positions",
            params={"from": "9999-12-30", "to": "9999-12-31"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        snapshots = response.json()["snapshots"]
        assert [s["date"] for s in snapshots] == ["9999-12-30", "9999-12-31"]
        assert Decimal(snapshots[-1]["current_value"]) == Decimal("22")

    def test_to_out_of_range_after_utc_conversion(self, client):
        response = client.get(
            "/positions",
            params={"to": "9999-12-31T23:00:00-05:00"},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"field": "to"}

    def test_other_users_investments_hidden(self, client, seeded):
        response = client.get(
            "/positions",
            params={"from": "2024-02-10", "to": "2024-02-10"},
            headers={"X-User-Id": "someone-else"},
        )

        assert response.json()["snapshots"] == []

    def test_correlation_id_echoed(self, client, seeded):
        response = client.get(
            "/positions",
            params={"to": "2024-02-10"},
            headers={**HEADERS, "X-Correlation-ID": "trace-42"},
        )

        assert response.headers["X-Correlation-ID"] == "trace-42"


# =============================================================================
# ERROR CASES
# =============================================================================

class TestGetPositionsErrors:
    """Tests for error responses of GET /positions."""

    def test_missing_user_header(self, client):
        response = client.get("/positions")

        assert response.status_code == 401
        assert response.json()["error"] == "HTTPException"

    def test_blank_user_header(self, client):
        response = client.get("/positions", headers={"X-User-Id": "   "})

        assert response.status_code == 401

    def test_invalid_date(self, client):
        response = client.get("/positions", params={"from": "10/02/2024"}, headers=HEADERS)

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "ValidationError"
        assert data["details"] == {"field": "from"}

    def test_from_after_to(self, client):
        response = client.get(
            "/positions",
            params={"from": "2024-02-15", "to": "2024-02-10"},
            headers=HEADERS,
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "InvalidDateRangeError"
        assert data["details"] == {"from": "2024-02-15", "to": "2024-02-10"}

    def test_rejected_oversell(self, client, test_db, seeded):
        app.dependency_overrides[get_position_service] = (
            lambda: stored_prices_service(OversellPolicy.REJECT)
        )
        create_investment(
            test_db, seeded, date(2024, 2, 12), type=InvestmentType.SELL, amount="150", price_per_unit="52",
        )

        response = client.get("/positions", params={"to": "2024-02-15"}, headers=HEADERS)

        assert response.status_code == 422
        data = response.json()
        assert data["error"] == "OversellError"
        assert data["details"]["date"] == "2024-02-12"
        assert Decimal(data["details"]["held"]) == Decimal("100")

    def test_backfill_timeout(self, client):
        service = MagicMock(spec=PositionService)
        service.get_positions.side_effect = BackfillTimeoutError(timeout=120.0, pending=2)
        app.dependency_overrides[get_position_service] = lambda: service

        response = client.get("/positions", headers=HEADERS)

        assert response.status_code == 504
        assert response.json()["details"] == {"timeout": 120.0, "pending": 2}


# =============================================================================
# HEALTH
# =============================================================================

class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
