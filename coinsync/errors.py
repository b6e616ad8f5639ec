from __future__ import annotations


class QuoteProviderError(Exception):
    """Provider call failed; caught at the quote client boundary."""


class RateLimitedError(QuoteProviderError):
    def __init__(self, retry_after_sec: float | None = None) -> None:
        super().__init__("PROVIDER_RATE_LIMITED")
        self.retry_after_sec = retry_after_sec


class MalformedResponseError(QuoteProviderError):
    pass
