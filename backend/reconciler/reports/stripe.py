"""
Maps Stripe API objects (subscriptions, invoices, refunds) to normalized
records. Objects are plain dicts as returned by the Stripe SDK, with
``items.data.price``, ``charge.balance_transaction`` and ``charge.invoice``
expanded by the fetch client where available.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Iterable, Mapping

from reconciler.core.platforms import STRIPE
from reconciler.core.time import seconds_to_ms
from reconciler.reports.types import (
    EVENT_FIRST_PAYMENT,
    EVENT_REFUND,
    EVENT_RENEWAL,
    STATUS_ACTIVE,
    STATUS_CANCELED,
    STATUS_INCOMPLETE,
    STATUS_PAST_DUE,
    STATUS_PAUSED,
    STATUS_TRIALING,
    NormalizedBatch,
    ReportMetadata,
    RevenueEventRecord,
    SubscriptionRecord,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("100")

_STATUS_MAP = {
    "active": STATUS_ACTIVE,
    "trialing": STATUS_TRIALING,
    "canceled": STATUS_CANCELED,
    "incomplete_expired": STATUS_CANCELED,
    "past_due": STATUS_PAST_DUE,
    "unpaid": STATUS_PAST_DUE,
    "paused": STATUS_PAUSED,
    "incomplete": STATUS_INCOMPLETE,
}
_ENDED_STATUSES = {"canceled", "incomplete_expired"}


def _get(obj: Any, *path: str) -> Any:
    current = obj
    for key in path:
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(key)
        else:
            current = getattr(current, key, None)
    return current


def _id_of(value: Any) -> str | None:
    if isinstance(value, str):
        return value or None
    return _get(value, "id")


def _cents(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(int(value)) / CENTS


def _raw(obj: Any) -> str:
    return json.dumps(obj, default=str, sort_keys=True)


def normalize_status(status: str | None) -> str:
    return _STATUS_MAP.get((status or "").lower(), STATUS_ACTIVE)


def parse_subscription(obj: Mapping[str, Any]) -> SubscriptionRecord:
    status = (obj.get("status") or "").lower()
    items = _get(obj, "items", "data") or []
    price = _get(items[0], "price") if items else None
    recurring = _get(price, "recurring")

    end_date = None
    if status in _ENDED_STATUSES:
        end_date = seconds_to_ms(obj.get("canceled_at") or obj.get("ended_at"))

    return SubscriptionRecord(
        external_id=obj["id"],
        customer_id=_id_of(obj.get("customer")),
        status=normalize_status(status),
        product_id=_id_of(_get(price, "product")),
        start_date=seconds_to_ms(obj.get("created") or 0),
        end_date=end_date,
        is_trial=status == "trialing",
        will_cancel=bool(obj.get("cancel_at_period_end")),
        trial_end=seconds_to_ms(obj.get("trial_end")),
        price_amount=_get(price, "unit_amount"),
        price_interval=_get(recurring, "interval"),
        price_interval_count=int(_get(recurring, "interval_count") or 1),
        price_currency=(_get(price, "currency") or "").upper() or None,
        raw_data=_raw(obj),
    )


def invoice_subscription_id(invoice: Mapping[str, Any]) -> str | None:
    parent = _get(invoice, "parent", "subscription_details", "subscription")
    if parent:
        return _id_of(parent)
    return _id_of(invoice.get("subscription"))


def _balance_net(charge: Any) -> Decimal | None:
    net = _get(charge, "balance_transaction", "net")
    return _cents(net)


def invoice_proceeds(invoice: Mapping[str, Any]) -> Decimal | None:
    charge = invoice.get("charge")
    if isinstance(charge, Mapping):
        return _balance_net(charge)
    latest = _get(invoice, "payment_intent", "latest_charge")
    if isinstance(latest, Mapping):
        return _balance_net(latest)
    return None


def parse_invoice(invoice: Mapping[str, Any]) -> RevenueEventRecord | None:
    """Paid subscription invoices become first payments, renewals or refunds."""
    subscription_id = invoice_subscription_id(invoice)
    if not subscription_id or invoice.get("status") != "paid":
        return None

    paid_at = _get(invoice, "status_transitions", "paid_at")
    timestamp = seconds_to_ms(paid_at or invoice.get("created") or 0)
    amount = _cents(invoice.get("amount_paid") or 0)
    excluding_tax = _cents(invoice.get("total_excluding_tax"))
    proceeds = invoice_proceeds(invoice)

    if amount < 0:
        event_type = EVENT_REFUND
        amount = abs(amount)
        excluding_tax = abs(excluding_tax) if excluding_tax is not None else None
        proceeds = abs(proceeds) if proceeds is not None else None
    elif invoice.get("billing_reason") == "subscription_create":
        event_type = EVENT_FIRST_PAYMENT
    else:
        event_type = EVENT_RENEWAL

    return RevenueEventRecord(
        subscription_external_id=subscription_id,
        event_type=event_type,
        amount=amount,
        amount_excluding_tax=excluding_tax,
        amount_proceeds=proceeds,
        currency=(invoice.get("currency") or "usd").upper(),
        country=_get(invoice, "customer_address", "country"),
        timestamp=timestamp,
        external_id=invoice.get("id"),
    )


def parse_refund(refund: Mapping[str, Any]) -> RevenueEventRecord | None:
    invoice = _get(refund, "charge", "invoice")
    if not isinstance(invoice, Mapping):
        return None
    subscription_id = invoice_subscription_id(invoice)
    if not subscription_id:
        return None
    amount = _cents(refund.get("amount") or 0)
    net = _get(refund, "balance_transaction", "net")
    return RevenueEventRecord(
        subscription_external_id=subscription_id,
        event_type=EVENT_REFUND,
        amount=amount,
        amount_excluding_tax=amount,
        amount_proceeds=abs(_cents(net)) if net is not None else None,
        currency=(refund.get("currency") or "usd").upper(),
        country=_get(invoice, "customer_address", "country"),
        timestamp=seconds_to_ms(refund.get("created") or 0),
        external_id=refund.get("id"),
    )


def parse(
    payload: Mapping[str, Iterable[Mapping[str, Any]]],
    metadata: ReportMetadata | None = None,
) -> NormalizedBatch:
    """Normalize a fetch result of ``subscriptions``, ``invoices`` and ``refunds``."""
    batch = NormalizedBatch()
    for obj in payload.get("subscriptions") or []:
        try:
            batch.subscriptions.append(parse_subscription(obj))
        except (KeyError, TypeError, ValueError) as exc:
            batch.diagnostics.append(f"subscription {_get(obj, 'id')}: {exc}")

    skipped = 0
    for invoice in payload.get("invoices") or []:
        event = parse_invoice(invoice)
        if event is None:
            skipped += 1
            continue
        batch.revenue_events.append(event)

    for refund in payload.get("refunds") or []:
        event = parse_refund(refund)
        if event is not None:
            batch.revenue_events.append(event)

    logger.info(
        "Stripe objects normalized",
        extra={
            "platform": STRIPE,
            "subscriptions": len(batch.subscriptions),
            "revenue_events": len(batch.revenue_events),
            "invoices_skipped": skipped,
        },
    )
    for message in batch.diagnostics:
        logger.warning(message, extra={"platform": STRIPE, "report_kind": "subscriptions"})
    return batch
