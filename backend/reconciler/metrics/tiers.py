"""Per-field source priority for snapshot metrics.

Every field is resolved on its own: the first source that produced a
non-zero value wins, and a zero or missing value falls through to the next.
"""

from decimal import Decimal
from typing import Any


def has_signal(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, Decimal):
        return value != 0
    return bool(value)


def pick(*candidates: Any, default: Any = 0) -> Any:
    for value in candidates:
        if has_signal(value):
            return value
    return default


def apply_paid_delta(
    values: dict[str, Any],
    previous_paid: int | None,
) -> dict[str, Any]:
    """Infer flows from the day-over-day paid subscriber change.

    A drop fills cancellations and a gain fills first payments, each only when
    the field is still zero after the report-based sources.
    """
    if previous_paid is None:
        return values
    delta = int(values.get("paid_subscribers") or 0) - int(previous_paid)
    if delta < 0 and not values.get("cancellations"):
        values["cancellations"] = -delta
    elif delta > 0 and not values.get("first_payments"):
        values["first_payments"] = delta
    return values
