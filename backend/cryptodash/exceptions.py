"""
Domain exceptions.

Services raise these rather than fastapi.HTTPException; main.py maps them to
HTTP responses through the status_code each one carries.

Engine-facing errors:
- PriceUnavailableError: recoverable, the order is skipped for one sweep
- RateLimitError: Binance kept answering 429 through every retry
"""


class AppError(Exception):
    """Base application error with an HTTP-equivalent status code."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ValidationError(AppError):
    """Rejected order input (400)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class InsufficientBalanceError(AppError):
    """Sell requested for more than the user holds (400)."""

    def __init__(self, message: str = "Insufficient balance for sell transaction"):
        super().__init__(message, status_code=400)


class NotFoundError(AppError):
    """Order missing, owned by someone else, or no longer open (404)."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class ExchangeUnavailableError(AppError):
    """Market data source unreachable (503)."""

    def __init__(self, message: str = "Exchange service unavailable"):
        super().__init__(message, status_code=503)


class PriceUnavailableError(ExchangeUnavailableError):
    """A price lookup failed after the adapter's retries were exhausted."""

    def __init__(self, symbol: str, reason: str = ""):
        self.symbol = symbol
        message = f"Failed to fetch price for {symbol}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class RateLimitError(AppError):
    """Upstream rate limit still in force after backing off (429)."""

    def __init__(self, message: str, retry_after: int = None):
        self.retry_after = retry_after
        super().__init__(message, status_code=429)
