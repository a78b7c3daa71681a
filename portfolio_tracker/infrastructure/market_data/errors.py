"""
Market data errors.
"""


class MarketDataError(RuntimeError):
    """Base error for market data providers."""


class UpstreamUnavailableError(MarketDataError):
    """The market data provider call failed (timeout, non-2xx, network error)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PartialQuotesError(UpstreamUnavailableError):
    """
    The quote batch failed but the cache could still serve some symbols.

    `quotes` maps every requested symbol (unavailable ones to None) and
    `unavailable` lists the symbols that had no cached fallback.
    """

    def __init__(self, message: str, quotes: dict, unavailable: list):
        super().__init__(message)
        self.quotes = quotes
        self.unavailable = unavailable
