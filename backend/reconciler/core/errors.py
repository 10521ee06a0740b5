"""
Exceptions raised while reconciling platform reports into metrics.
"""

from __future__ import annotations


class ReconcilerError(Exception):
    """Base class for every error the engine raises on purpose."""


class RateNotFound(ReconcilerError):
    """Raised when no exchange rate path exists between two currencies.

    Never swallowed by the conversion layer: assuming 1:1 silently corrupts
    persisted revenue figures.
    """

    def __init__(self, from_currency: str, to_currency: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        super().__init__(
            f"Exchange rate not found for {from_currency} -> {to_currency}; "
            "record rates for this pair before syncing"
        )


class ReportUnavailable(ReconcilerError):
    """Raised when an upstream report for a date cannot be downloaded."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        detail: str | None = None,
    ):
        self.status_code = status_code
        self.code = code
        self.detail = detail
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.code == "NOT_FOUND" or self.status_code == 404

    @property
    def is_no_sales(self) -> bool:
        text = f"{self.detail or ''} {self.args[0] if self.args else ''}".lower()
        return self.is_not_found and "no sales" in text


class ParseFailure(ReconcilerError):
    """Raised when a report's structure cannot be recognized."""

    def __init__(self, message: str, *, report_kind: str | None = None):
        self.report_kind = report_kind
        super().__init__(message)


class SyncCancelled(ReconcilerError):
    """Raised when the owning sync session was cancelled mid-run."""


class AuthenticationFailure(ReconcilerError):
    """Raised when a platform rejects or cannot accept the stored credentials."""

    def __init__(self, platform: str, message: str):
        self.platform = platform
        super().__init__(f"{platform}: {message}")


class InvalidCredentials(AuthenticationFailure):
    """Raised when required credential fields are missing before connecting."""
