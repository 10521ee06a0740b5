"""
Business-event classification for free-text store event labels.

Rules are evaluated top to bottom and the first match wins:

1. cancellation / refund vocabulary (revenue counts negative),
2. renewal vocabulary, including the "rate after one year" tier label,
3. new-subscription / introductory vocabulary,
4. grace period and billing retry markers (no revenue),
5. any other label, empty or not, with a positive price is a renewal.

Apple's detailed subscriber report leaves the reason blank for a plain
renewal, so rule 5 is what keeps renewal revenue from being under-counted.
The order is part of historical-number parity and must not be reshuffled.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

FIRST_PAYMENT = "first_payment"
RENEWAL = "renewal"
CANCELLATION = "cancellation"
REFUND = "refund"
GRACE = "grace"

_CANCEL_TERMS = ("cancel",)
_REFUND_TERMS = ("refund",)
_RENEWAL_EXACT = ("renew",)
_RENEWAL_TERMS = ("renewal", "auto-renew", "auto renew", "did renew", "rate after one year")
_NEW_TERMS = (
    "start introductory price",
    "paid subscription from introductory price",
    "start promotional offer",
    "initial",
    "first purchase",
    "new",
    "subscribe",
)
_GRACE_TERMS = ("grace", "billing retry")


@dataclass(frozen=True)
class Classification:
    event_type: str | None
    revenue_sign: int

    @property
    def is_revenue(self) -> bool:
        return self.revenue_sign != 0


UNCLASSIFIED = Classification(None, 0)


def _contains_any(label: str, terms: tuple[str, ...]) -> bool:
    return any(term in label for term in terms)


def classify_event(label: str | None, price: Decimal | float | int | None = None) -> Classification:
    text = (label or "").strip().lower()
    if text:
        if _contains_any(text, _REFUND_TERMS):
            return Classification(REFUND, -1)
        if _contains_any(text, _CANCEL_TERMS):
            return Classification(CANCELLATION, -1)
        if text in _RENEWAL_EXACT or _contains_any(text, _RENEWAL_TERMS):
            return Classification(RENEWAL, 1)
        if _contains_any(text, _NEW_TERMS):
            return Classification(FIRST_PAYMENT, 1)
        if _contains_any(text, _GRACE_TERMS):
            return Classification(GRACE, 0)
    if price is not None and Decimal(str(price)) > 0:
        return Classification(RENEWAL, 1)
    return UNCLASSIFIED
