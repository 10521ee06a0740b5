"""
Header-driven column discovery for tabular store exports.

Store exports change their column set and order between schema versions, so
columns are located by matching header text against ordered regex lists. A
new report version is handled by adding a pattern to one of the tables below.
The first pattern that matches any header wins; within a pattern, the
left-most matching header wins.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Mapping, Sequence

ColumnPatterns = Mapping[str, Sequence[str]]

APP_STORE_SUMMARY_COLUMNS: ColumnPatterns = {
    "active": (r"active.*subscri|subscri.*active",),
    "trial": (r"active.*free.*trial|active.*trial|trial.*intro",),
    "paid": (r"active.*standard.*price|active.*paid",),
    "grace_period": (r"grace\s*period",),
    "billing_retry": (r"billing\s*retry",),
    "subscribers": (r"^subscribers$",),
    "event": (r"event\s*type|subscription\s*event",),
    "units": (r"^units$",),
    "proceeds": (r"developer\s*proceeds|proceeds",),
    "customer_price": (r"customer\s*price",),
    "product_id": (r"product.*id|sku|product.*identifier|subscription.*name",),
    "duration": (r"subscription.*duration|duration",),
}

APP_STORE_SUBSCRIBER_COLUMNS: ColumnPatterns = {
    # Older report versions carry the label in "Proceeds Reason".
    "event": (r"^event$", r"proceeds\s*reason"),
    "event_date": (r"event.*date",),
    "quantity": (r"^quantity$",),
    "customer_price": (r"customer\s*price",),
    "proceeds": (r"developer\s*proceeds", r"^proceeds$"),
    "customer_currency": (r"customer\s*currency",),
    "proceeds_currency": (r"proceeds\s*currency",),
    "country": (r"^country$", r"country\s*code"),
    "product_id": (r"product.*id|sku|subscription.*name",),
    "duration": (r"subscription.*duration|duration",),
}

APP_STORE_EVENT_COLUMNS: ColumnPatterns = {
    "event": (r"^event$", r"event\s*type"),
    "quantity": (r"^quantity$", r"^units$"),
    "event_date": (r"event.*date",),
}

GOOGLE_PLAY_FINANCIAL_COLUMNS: ColumnPatterns = {
    "date": (r"^transaction\s*date$", r"^order\s*charged\s*date$", r"^date$", r"date"),
    "transaction_type": (r"^transaction\s*type$", r"financial\s*status"),
    "charged_amount": (r"charged\s*amount", r"^amount\s*\(buyer\s*currency\)$"),
    "item_price": (r"item\s*price",),
    "taxes": (r"^taxes", r"tax"),
    "proceeds": (r"amount\s*\(merchant\s*currency\)", r"proceeds"),
    "currency": (r"merchant\s*currency$", r"currency\s*of\s*sale", r"currency"),
}

GOOGLE_PLAY_SUBSCRIPTION_COLUMNS: ColumnPatterns = {
    "date": (r"^date$", r"date"),
    "active": (r"^active\s*subscriptions$", r"active\s*subscri"),
    "trial": (r"trial",),
    "paid": (r"paid\s*subscri",),
    "new": (r"^new\s*subscriptions$", r"new\s*subscri"),
    "canceled": (r"cancel",),
    "renewals": (r"renew",),
    "product_id": (r"product\s*id", r"sku", r"base\s*plan"),
}

GOOGLE_PLAY_STATISTICS_COLUMNS: ColumnPatterns = {
    "date": (r"^date$", r"date"),
    "active": (r"active\s*subscri",),
    "trial": (r"trial",),
    "new": (r"new\s*subscri",),
    "canceled": (r"cancel",),
    "renewals": (r"renew",),
}

MONTHLY_PRODUCT = re.compile(r"month|monthly|1m|30day|_m_|_mo_", re.IGNORECASE)
YEARLY_PRODUCT = re.compile(r"year|yearly|annual|12m|365day|_y_|_yr_", re.IGNORECASE)

_NUMBER_NOISE = re.compile(r"[\",\s]")
_MONTH_NAME_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%b %d %Y", "%B %d %Y")


def normalize_headers(row: Iterable[str]) -> list[str]:
    return [(cell or "").strip().lower() for cell in row]


def find_column(headers: Sequence[str], patterns: Sequence[str]) -> int | None:
    for pattern in patterns:
        regex = re.compile(pattern, re.IGNORECASE)
        for index, header in enumerate(headers):
            if regex.search(header):
                return index
    return None


def locate_columns(headers: Sequence[str], table: ColumnPatterns) -> dict[str, int | None]:
    return {name: find_column(headers, patterns) for name, patterns in table.items()}


def cell(row: Sequence[str], index: int | None) -> str:
    if index is None or index >= len(row):
        return ""
    return (row[index] or "").strip()


def parse_decimal(value: str | None) -> Decimal:
    """Parse a formatted figure such as ``"1,234.50"``; blanks and junk are 0."""
    if not value:
        return Decimal("0")
    cleaned = _NUMBER_NOISE.sub("", value)
    if not cleaned:
        return Decimal("0")
    try:
        number = Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0")
    if not number.is_finite():
        return Decimal("0")
    return number


def parse_count(value: str | None, default: int = 0) -> int:
    if not value or not value.strip():
        return default
    return int(parse_decimal(value))


def parse_report_date(value: str | None) -> date | None:
    """Accepts ``YYYY-MM-DD``, ``MM/DD/YYYY`` and ``Month DD, YYYY``."""
    text = (value or "").strip()
    if not text:
        return None
    if "-" in text:
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    if "/" in text:
        parts = text.split("/")
        if len(parts) != 3:
            return None
        try:
            month, day, year = (int(part) for part in parts)
            return date(year, month, day)
        except ValueError:
            return None
    if "," in text or text[:1].isalpha():
        for fmt in _MONTH_NAME_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
    return None


def plan_interval_for(product_id: str, duration: str = "") -> str | None:
    """Guess month or year from a product identifier, then from a duration cell."""
    if product_id:
        if MONTHLY_PRODUCT.search(product_id):
            return "month"
        if YEARLY_PRODUCT.search(product_id):
            return "year"
        return None
    lowered = (duration or "").lower()
    if "month" in lowered:
        return "month"
    if "year" in lowered:
        return "year"
    return None
