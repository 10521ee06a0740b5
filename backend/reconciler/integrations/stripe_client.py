from __future__ import annotations

import logging
from typing import Any, Iterable

import stripe

from reconciler.core.errors import AuthenticationFailure
from reconciler.core.platforms import STRIPE

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
SUBSCRIPTION_EXPAND = ["data.items.data.price"]
INVOICE_EXPAND = ["data.charge.balance_transaction", "data.payment_intent.latest_charge.balance_transaction"]
REFUND_EXPAND = ["data.charge.invoice", "data.balance_transaction"]


class StripeClient:
    """Lists the card processor objects the normalizer consumes.

    Every call passes the connection's key explicitly so several apps can
    sync in one process.
    """

    def __init__(self, api_key: str):
        if not api_key:
            raise AuthenticationFailure(STRIPE, "missing api key")
        self.api_key = api_key

    def _list(self, resource, **params: Any) -> Iterable[dict[str, Any]]:
        try:
            page = resource.list(api_key=self.api_key, limit=PAGE_SIZE, **params)
            yield from page.auto_paging_iter()
        except (stripe.AuthenticationError, stripe.PermissionError) as exc:
            raise AuthenticationFailure(STRIPE, str(exc)) from exc

    def list_subscriptions(self) -> list[dict[str, Any]]:
        return list(self._list(stripe.Subscription, status="all", expand=SUBSCRIPTION_EXPAND))

    def list_invoices(self, *, created_gte: int | None = None) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"status": "paid", "expand": INVOICE_EXPAND}
        if created_gte is not None:
            params["created"] = {"gte": created_gte}
        return list(self._list(stripe.Invoice, **params))

    def list_refunds(self, *, created_gte: int | None = None) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"expand": REFUND_EXPAND}
        if created_gte is not None:
            params["created"] = {"gte": created_gte}
        return list(self._list(stripe.Refund, **params))

    def fetch_all(self, *, created_gte: int | None = None) -> dict[str, list[dict[str, Any]]]:
        payload = {
            "subscriptions": self.list_subscriptions(),
            "invoices": self.list_invoices(created_gte=created_gte),
            "refunds": self.list_refunds(created_gte=created_gte),
        }
        logger.info(
            "stripe objects fetched",
            extra={"platform": STRIPE, **{name: len(items) for name, items in payload.items()}},
        )
        return payload
