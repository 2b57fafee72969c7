# backend/position_tracker/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
The application layer (main.py) maps them to HTTP responses.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   └── InvalidDateRangeError
    ├── NotFoundError
    │   └── QuoteNotFoundError
    ├── MarketDataError
    │   ├── ProviderUnavailableError
    │   ├── TickerNotFoundError
    │   └── RateLimitError
    ├── BackfillError
    │   ├── BackfillCancelledError
    │   └── BackfillTimeoutError
    └── PositionError
        └── OversellError
"""

from datetime import date
from decimal import Decimal


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when input validation fails.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidDateRangeError(ValidationError):
    """Raised when the start of a requested range lies after its end."""

    def __init__(self, from_date: date, to_date: date) -> None:
        self.from_date = from_date
        self.to_date = to_date
        super().__init__(
            f"Invalid date range: from ({from_date}) is after to ({to_date})",
            field="from",
        )


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "Quote")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class QuoteNotFoundError(NotFoundError):
    """Raised when a quote id does not exist."""

    def __init__(self, quote_id: int) -> None:
        self.quote_id = quote_id
        super().__init__(
            f"Quote {quote_id} not found",
            resource_type="Quote",
            resource_id=quote_id,
        )


# =============================================================================
# MARKET DATA PROVIDER ERRORS
# =============================================================================


class MarketDataError(ServiceError):
    """
    A price fetch failed.

    The backfill treats every MarketDataError as recoverable: the quote is
    reported in warnings and valued with the prices already stored.

    Attributes:
        provider: Id of the provider that failed, if known
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderUnavailableError(MarketDataError):
    """Provider unreachable or not registered. Retried."""

    def __init__(self, provider: str, reason: str) -> None:
        message = f"Provider '{provider}' is unavailable: {reason}"
        super().__init__(message, provider=provider)
        self.reason = reason


class TickerNotFoundError(MarketDataError):
    """The provider does not know the quote's symbol. Never retried."""

    def __init__(self, symbol: str, provider: str) -> None:
        message = f"Symbol '{symbol}' not found by {provider}"
        super().__init__(message, provider=provider)
        self.symbol = symbol


class RateLimitError(MarketDataError):
    """
    The provider throttled the request. Retried with backoff.

    Attributes:
        retry_after: Seconds the provider asked to wait, if it said
    """

    def __init__(self, provider: str, retry_after: int | None = None) -> None:
        message = f"Rate limit exceeded for provider '{provider}'"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(message, provider=provider)
        self.retry_after = retry_after


# =============================================================================
# BACKFILL ERRORS
# =============================================================================


class BackfillError(ServiceError):
    """Base exception for price-history backfill failures."""
    pass


class BackfillCancelledError(BackfillError):
    """Raised when the caller cancels a backfill before it completes."""

    def __init__(self, pending: int = 0) -> None:
        self.pending = pending
        super().__init__(f"Price backfill cancelled ({pending} fetches not completed)")


class BackfillTimeoutError(BackfillError):
    """
    Raised when a backfill does not finish within its deadline.

    Attributes:
        timeout: The deadline in seconds
        pending: Number of fetches still outstanding
    """

    def __init__(self, timeout: float, pending: int) -> None:
        self.timeout = timeout
        self.pending = pending
        super().__init__(
            f"Price backfill timed out after {timeout}s ({pending} fetches not completed)"
        )


# =============================================================================
# POSITION ERRORS
# =============================================================================


class PositionError(ServiceError):
    """Base exception for position calculation errors."""
    pass


class OversellError(PositionError):
    """
    Raised when a sell exceeds the amount held and oversells are rejected.

    Attributes:
        quote_id: The instrument being sold
        requested: Amount the sell asked for
        held: Amount held before the sell
    """

    def __init__(self, quote_id: int, requested: Decimal, held: Decimal, on: date) -> None:
        self.quote_id = quote_id
        self.requested = requested
        self.held = held
        self.date = on
        super().__init__(
            f"Sell of {requested} units of quote {quote_id} on {on} exceeds held amount {held}"
        )


__all__ = [
    # Base
    "ServiceError",
    # Validation
    "ValidationError",
    "InvalidDateRangeError",
    # Not Found
    "NotFoundError",
    "QuoteNotFoundError",
    # Market Data
    "MarketDataError",
    "ProviderUnavailableError",
    "TickerNotFoundError",
    "RateLimitError",
    # Backfill
    "BackfillError",
    "BackfillCancelledError",
    "BackfillTimeoutError",
    # Positions
    "PositionError",
    "OversellError",
]
