# Standard VAT rates by ISO 3166-1 alpha-2 country. Stores charge the
# standard rate for digital goods, so reduced rates are ignored here.

from __future__ import annotations

from decimal import Decimal

VAT_RATES: dict[str, Decimal] = {
    # EU
    "AT": Decimal("0.20"),
    "BE": Decimal("0.21"),
    "BG": Decimal("0.20"),
    "HR": Decimal("0.25"),
    "CY": Decimal("0.19"),
    "CZ": Decimal("0.21"),
    "DK": Decimal("0.25"),
    "EE": Decimal("0.22"),
    "FI": Decimal("0.24"),
    "FR": Decimal("0.20"),
    "DE": Decimal("0.19"),
    "GR": Decimal("0.24"),
    "HU": Decimal("0.27"),
    "IE": Decimal("0.23"),
    "IT": Decimal("0.22"),
    "LV": Decimal("0.21"),
    "LT": Decimal("0.21"),
    "LU": Decimal("0.17"),
    "MT": Decimal("0.18"),
    "NL": Decimal("0.21"),
    "PL": Decimal("0.23"),
    "PT": Decimal("0.23"),
    "RO": Decimal("0.19"),
    "SK": Decimal("0.20"),
    "SI": Decimal("0.22"),
    "ES": Decimal("0.21"),
    "SE": Decimal("0.25"),
    # EEA and rest of Europe
    "NO": Decimal("0.25"),
    "IS": Decimal("0.24"),
    "LI": Decimal("0.077"),
    "CH": Decimal("0.081"),
    "GB": Decimal("0.20"),
    # Americas, APAC, Middle East, Africa
    "AU": Decimal("0.10"),
    "NZ": Decimal("0.15"),
    "JP": Decimal("0.10"),
    "KR": Decimal("0.10"),
    "SG": Decimal("0.09"),
    "IN": Decimal("0.18"),
    "ZA": Decimal("0.15"),
    "CA": Decimal("0.05"),  # federal GST only
    "MX": Decimal("0.16"),
    "BR": Decimal("0"),
    "AR": Decimal("0.21"),
    "CL": Decimal("0.19"),
    "CO": Decimal("0.19"),
    "AE": Decimal("0.05"),
    "SA": Decimal("0.15"),
    "IL": Decimal("0.17"),
    "TW": Decimal("0.05"),
    "TH": Decimal("0.07"),
    "MY": Decimal("0.06"),
    "ID": Decimal("0.11"),
    "PH": Decimal("0.12"),
    "VN": Decimal("0.10"),
    "HK": Decimal("0"),
    "CN": Decimal("0.13"),
    "US": Decimal("0"),
}


def get_vat_rate(country_code: str | None) -> Decimal:
    if not country_code:
        return Decimal("0")
    return VAT_RATES.get(country_code.strip().upper(), Decimal("0"))


def revenue_excluding_vat(amount, country_code: str | None) -> Decimal:
    """Strip VAT from a charged amount: ``amount / (1 + rate)``.

    Unknown countries are treated as zero-rated, so the amount comes back
    unchanged.
    """
    value = Decimal(str(amount))
    rate = get_vat_rate(country_code)
    if rate == 0:
        return value
    return value / (Decimal("1") + rate)


def vat_portion(amount, country_code: str | None) -> Decimal:
    value = Decimal(str(amount))
    return value - revenue_excluding_vat(value, country_code)
