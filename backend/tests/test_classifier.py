import os
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("INTEGRATION_ENCRYPTION_KEY", "reconciler-test-key-0123456789ab")

from reconciler.core.vat import get_vat_rate, revenue_excluding_vat, vat_portion  # noqa: E402
from reconciler.reports.classifier import (  # noqa: E402
    CANCELLATION,
    FIRST_PAYMENT,
    GRACE,
    REFUND,
    RENEWAL,
    classify_event,
)


def test_empty_label_with_price_counts_as_renewal():
    result = classify_event("", Decimal("4.99"))
    assert result.event_type == RENEWAL
    assert result.revenue_sign == 1


def test_empty_label_without_price_is_unclassified():
    result = classify_event("", Decimal("0"))
    assert result.event_type is None
    assert not result.is_revenue


def test_cancellation_and_refund_subtract():
    assert classify_event("Cancel", 4.99).event_type == CANCELLATION
    assert classify_event("Refund", 4.99).event_type == REFUND
    assert classify_event("Cancel", 4.99).revenue_sign == -1


def test_renewal_vocabulary():
    assert classify_event("Renew").event_type == RENEWAL
    assert classify_event("Rate After One Year").event_type == RENEWAL
    assert classify_event("Auto-Renew Enabled").event_type == RENEWAL


def test_new_subscription_vocabulary():
    assert classify_event("Start Introductory Price").event_type == FIRST_PAYMENT
    assert classify_event("Paid Subscription from Introductory Price").event_type == FIRST_PAYMENT
    assert classify_event("Subscribe").event_type == FIRST_PAYMENT


def test_grace_markers_carry_no_revenue():
    result = classify_event("Billing Retry from Paid Subscription")
    assert result.event_type == GRACE
    assert result.revenue_sign == 0


def test_unknown_label_with_price_falls_back_to_renewal():
    assert classify_event("Crossgrade", "9.99").event_type == RENEWAL


def test_vat_removal():
    assert get_vat_rate("no") == Decimal("0.25")
    assert get_vat_rate(None) == Decimal("0")
    assert revenue_excluding_vat(Decimal("125"), "NO") == Decimal("100")
    assert revenue_excluding_vat(Decimal("10"), "ZZ") == Decimal("10")
    assert vat_portion(Decimal("125"), "NO") == Decimal("25")


def test_vat_removal_is_monotonic_and_bounded():
    previous = Decimal("-1")
    for cents in range(0, 5000, 137):
        amount = Decimal(cents) / 100
        excluded = revenue_excluding_vat(amount, "DE")
        assert excluded <= amount
        assert excluded >= previous
        previous = excluded
