from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

ZERO = Decimal("0")

# Shared subscription status vocabulary across platforms.
STATUS_ACTIVE = "active"
STATUS_TRIALING = "trialing"
STATUS_CANCELED = "canceled"
STATUS_PAST_DUE = "past_due"
STATUS_PAUSED = "paused"
STATUS_INCOMPLETE = "incomplete"
SUBSCRIPTION_STATUSES = (
    STATUS_ACTIVE,
    STATUS_TRIALING,
    STATUS_CANCELED,
    STATUS_PAST_DUE,
    STATUS_PAUSED,
    STATUS_INCOMPLETE,
)

EVENT_FIRST_PAYMENT = "first_payment"
EVENT_RENEWAL = "renewal"
EVENT_REFUND = "refund"
REVENUE_EVENT_TYPES = (EVENT_FIRST_PAYMENT, EVENT_RENEWAL, EVENT_REFUND)

INTERVAL_MONTH = "month"
INTERVAL_YEAR = "year"


@dataclass
class ReportMetadata:
    """What the fetch layer knows about a blob of report bytes."""

    file_name: str = ""
    report_date: date | None = None
    report_kind: str | None = None
    currency: str | None = None


@dataclass
class SubscriptionRecord:
    external_id: str
    status: str
    start_date: int
    product_id: str | None = None
    customer_id: str | None = None
    end_date: int | None = None
    is_trial: bool = False
    will_cancel: bool = False
    is_in_grace: bool = False
    trial_end: int | None = None
    price_amount: int | None = None
    price_interval: str | None = None
    price_interval_count: int = 1
    price_currency: str | None = None
    raw_data: str | None = None


@dataclass
class RevenueEventRecord:
    subscription_external_id: str
    event_type: str
    amount: Decimal
    currency: str
    timestamp: int
    amount_excluding_tax: Decimal | None = None
    amount_proceeds: Decimal | None = None
    country: str | None = None
    external_id: str | None = None
    raw_data: str | None = None


@dataclass
class NormalizedBatch:
    subscriptions: list[SubscriptionRecord] = field(default_factory=list)
    revenue_events: list[RevenueEventRecord] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)


@dataclass
class PlanSplit:
    """Revenue figures for one plan interval."""

    charged: Decimal = ZERO
    revenue: Decimal = ZERO
    proceeds: Decimal = ZERO

    def add(self, charged: Decimal, revenue: Decimal, proceeds: Decimal, sign: int = 1) -> None:
        self.charged += charged * sign
        self.revenue += revenue * sign
        self.proceeds += proceeds * sign


@dataclass
class SummaryReport:
    """Stock counts and optional event counts from an app store summary file."""

    has_data: bool = False
    active: int = 0
    trial: int = 0
    paid: int = 0
    monthly: int = 0
    yearly: int = 0
    grace_events: int = 0
    first_payments: int = 0
    renewals: int = 0
    refunds: int = 0
    cancellations: int = 0
    product_ids: set[str] = field(default_factory=set)
    unmatched_product_ids: set[str] = field(default_factory=set)
    event_types: Counter = field(default_factory=Counter)
    diagnostics: list[str] = field(default_factory=list)


@dataclass
class EventData:
    """Flows and revenue from a transaction-level report for a single day.

    Money values are already in the target currency.
    """

    has_event_column: bool = False
    revenue_extracted: bool = False
    first_payments: int = 0
    renewals: int = 0
    cancellations: int = 0
    refunds: int = 0
    grace_events: int = 0
    charged_revenue: Decimal = ZERO
    revenue: Decimal = ZERO
    proceeds: Decimal = ZERO
    monthly: PlanSplit = field(default_factory=PlanSplit)
    yearly: PlanSplit = field(default_factory=PlanSplit)
    rows_processed: int = 0
    rows_skipped_wrong_date: int = 0
    event_types: Counter = field(default_factory=Counter)
    currencies: Counter = field(default_factory=Counter)
    diagnostics: list[str] = field(default_factory=list)


@dataclass
class EventCounts:
    """Event totals from a subscription-event summary file."""

    has_data: bool = False
    first_payments: int = 0
    renewals: int = 0
    cancellations: int = 0
    refunds: int = 0
    grace_events: int = 0
    event_types: Counter = field(default_factory=Counter)
    diagnostics: list[str] = field(default_factory=list)


@dataclass
class RevenueData:
    gross: Decimal = ZERO  # what the customer paid, VAT included
    net: Decimal = ZERO  # item price, VAT excluded, fees included
    proceeds: Decimal = ZERO  # paid out after VAT and fees
    transactions: int = 0

    def merge(self, other: "RevenueData") -> None:
        self.gross += other.gross
        self.net += other.net
        self.proceeds += other.proceeds
        self.transactions += other.transactions


@dataclass
class SubscriptionMetrics:
    active: int = 0
    trial: int = 0
    paid: int = 0
    monthly: int = 0
    yearly: int = 0
    new_subscriptions: int = 0
    canceled_subscriptions: int = 0
    renewals: int = 0

    def merge(self, other: "SubscriptionMetrics") -> None:
        # Flows add up across files; stocks keep the largest observation.
        self.new_subscriptions += other.new_subscriptions
        self.canceled_subscriptions += other.canceled_subscriptions
        self.renewals += other.renewals
        self.active = max(self.active, other.active)
        self.trial = max(self.trial, other.trial)
        self.paid = max(self.paid, other.paid)
        self.monthly = max(self.monthly, other.monthly)
        self.yearly = max(self.yearly, other.yearly)


@dataclass
class ParsedReport:
    kind: str
    file_name: str
    source: str | None = None  # "earnings" or "sales" for financial files
    revenue_by_date: dict[str, RevenueData] = field(default_factory=dict)
    subscription_metrics_by_date: dict[str, SubscriptionMetrics] = field(default_factory=dict)
    diagnostics: list[str] = field(default_factory=list)

    @property
    def dates(self) -> set[str]:
        return set(self.revenue_by_date) | set(self.subscription_metrics_by_date)


@dataclass
class MarketplaceBatch:
    """Merged per-date tables from every marketplace file in one scan."""

    revenue_by_date: dict[str, RevenueData] = field(default_factory=dict)
    subscription_metrics_by_date: dict[str, SubscriptionMetrics] = field(default_factory=dict)
    report_kinds: set[str] = field(default_factory=set)
    diagnostics: list[str] = field(default_factory=list)

    @property
    def dates(self) -> list[str]:
        return sorted(set(self.revenue_by_date) | set(self.subscription_metrics_by_date))

    def to_dict(self) -> dict[str, Any]:
        return {
            "dates": len(self.dates),
            "report_kinds": sorted(self.report_kinds),
            "diagnostics": list(self.diagnostics),
        }
