"""
Currency conversion backed by the recorded exchange-rate table.

Resolution order for ``from -> to``:

1. identity when both codes match,
2. the recorded (from, to) rate, preferring one tagged with the requested
   ``YYYY-MM`` month and otherwise the most recent,
3. the inverse of the (to, from) rate,
4. a two-hop conversion through USD,
5. ``RateNotFound``.

Results are rounded half-up to two decimals using ``Decimal`` arithmetic.
The static ``FALLBACK_RATES_TO_USD`` table is for display estimates only and
is never consulted on the persisted path.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import desc
from sqlalchemy.orm import Session

from reconciler.core.errors import RateNotFound
from reconciler.models.exchange_rates import ExchangeRate

BASE_CURRENCY = "USD"
CENT = Decimal("0.01")
ZERO = Decimal("0")

_MISSING = object()

FALLBACK_RATES_TO_USD: dict[str, Decimal] = {
    "USD": Decimal("1"),
    # Nordic
    "NOK": Decimal("0.088"),
    "SEK": Decimal("0.091"),
    "DKK": Decimal("0.14"),
    "ISK": Decimal("0.0071"),
    # Europe
    "EUR": Decimal("1.05"),
    "GBP": Decimal("1.26"),
    "CHF": Decimal("1.12"),
    "PLN": Decimal("0.24"),
    "CZK": Decimal("0.042"),
    "HUF": Decimal("0.0026"),
    "RON": Decimal("0.21"),
    "BGN": Decimal("0.54"),
    "HRK": Decimal("0.14"),
    "TRY": Decimal("0.029"),
    "RUB": Decimal("0.010"),
    "UAH": Decimal("0.024"),
    # Americas
    "CAD": Decimal("0.71"),
    "MXN": Decimal("0.049"),
    "BRL": Decimal("0.16"),
    "ARS": Decimal("0.001"),
    "CLP": Decimal("0.001"),
    "COP": Decimal("0.00023"),
    "PEN": Decimal("0.26"),
    # Asia
    "JPY": Decimal("0.0066"),
    "CNY": Decimal("0.14"),
    "HKD": Decimal("0.13"),
    "TWD": Decimal("0.031"),
    "KRW": Decimal("0.00071"),
    "INR": Decimal("0.012"),
    "IDR": Decimal("0.000063"),
    "MYR": Decimal("0.22"),
    "SGD": Decimal("0.74"),
    "THB": Decimal("0.029"),
    "PHP": Decimal("0.017"),
    "VND": Decimal("0.000040"),
    "PKR": Decimal("0.0036"),
    "BDT": Decimal("0.0083"),
    # Oceania
    "AUD": Decimal("0.64"),
    "NZD": Decimal("0.58"),
    # Middle East and Africa
    "AED": Decimal("0.27"),
    "SAR": Decimal("0.27"),
    "ILS": Decimal("0.27"),
    "ZAR": Decimal("0.055"),
    "EGP": Decimal("0.020"),
    "NGN": Decimal("0.00062"),
    "KES": Decimal("0.0077"),
}
UNKNOWN_FALLBACK_RATE = Decimal("0.1")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_currency(code: str | None, default: str = BASE_CURRENCY) -> str:
    value = (code or "").strip().upper()
    return value or default


class CurrencyConverter:
    """Converts amounts using rates recorded in the store.

    Rate lookups are cached per instance, so one converter should be reused
    for a whole report or day to avoid repeating the same queries.
    """

    def __init__(self, db: Session):
        self.db = db
        self._cache: dict[tuple[str, str, str | None], Decimal | None] = {}

    def _lookup(self, from_currency: str, to_currency: str, as_of_month: str | None) -> Decimal | None:
        key = (from_currency, to_currency, as_of_month)
        cached = self._cache.get(key, _MISSING)
        if cached is not _MISSING:
            return cached
        query = self.db.query(ExchangeRate).filter(
            ExchangeRate.from_currency == from_currency,
            ExchangeRate.to_currency == to_currency,
        )
        row = None
        if as_of_month:
            row = (
                query.filter(ExchangeRate.year_month == as_of_month)
                .order_by(desc(ExchangeRate.recorded_at), desc(ExchangeRate.id))
                .first()
            )
        if row is None:
            row = query.order_by(desc(ExchangeRate.recorded_at), desc(ExchangeRate.id)).first()
        rate = Decimal(str(row.rate)) if row is not None and row.rate else None
        self._cache[key] = rate
        return rate

    def pair_rate(self, from_currency: str, to_currency: str, as_of_month: str | None) -> Decimal | None:
        direct = self._lookup(from_currency, to_currency, as_of_month)
        if direct is not None:
            return direct
        inverse = self._lookup(to_currency, from_currency, as_of_month)
        if inverse is not None:
            return Decimal("1") / inverse
        return None

    def rate(self, from_currency: str, to_currency: str, as_of_month: str | None = None) -> Decimal:
        source = normalize_currency(from_currency)
        target = normalize_currency(to_currency)
        if source == target:
            return Decimal("1")
        pair = self.pair_rate(source, target, as_of_month)
        if pair is not None:
            return pair
        if BASE_CURRENCY not in (source, target):
            to_base = self.pair_rate(source, BASE_CURRENCY, as_of_month)
            from_base = self.pair_rate(BASE_CURRENCY, target, as_of_month)
            if to_base is not None and from_base is not None:
                return to_base * from_base
        raise RateNotFound(source, target)

    def convert_exact(self, amount, from_currency: str, to_currency: str, as_of_month: str | None = None) -> Decimal:
        return to_decimal(amount) * self.rate(from_currency, to_currency, as_of_month)

    def convert(self, amount, from_currency: str, to_currency: str, as_of_month: str | None = None) -> Decimal:
        return round_money(self.convert_exact(amount, from_currency, to_currency, as_of_month))


def has_rate_for(db: Session, currency: str) -> bool:
    target = normalize_currency(currency)
    if target == BASE_CURRENCY:
        return True
    converter = CurrencyConverter(db)
    return converter.pair_rate(BASE_CURRENCY, target, None) is not None


def estimate_usd(amount, currency: str | None) -> Decimal:
    """Rough USD figure for display; unknown currencies use a 0.1 rate."""
    code = normalize_currency(currency)
    rate = FALLBACK_RATES_TO_USD.get(code, UNKNOWN_FALLBACK_RATE)
    return round_money(to_decimal(amount) * rate)
