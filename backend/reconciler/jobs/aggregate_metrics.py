from __future__ import annotations

import argparse
import logging
from datetime import date, timedelta

from sqlalchemy.orm import Session

from reconciler.core.currency import CurrencyConverter
from reconciler.core.db import SessionLocal
from reconciler.core.metrics import record_job_run
from reconciler.core.platforms import STRIPE
from reconciler.core.time import utctoday
from reconciler.crud.apps import get_app_currency
from reconciler.crud.snapshots import rollup_unified
from reconciler.metrics.aggregator import aggregate_day

logger = logging.getLogger(__name__)


def run_aggregate_metrics(
    db: Session,
    app_id: int,
    *,
    end_date: date | None = None,
    lookback_days: int = 1,
    platforms: tuple[str, ...] = (STRIPE,),
) -> int:
    """Recompute record-based snapshots and the unified roll-up for a window.

    Only platforms that store individual records can be recomputed this way;
    report-based platforms need their source files again.
    """
    end_date = end_date or utctoday()
    currency = get_app_currency(db, app_id)
    converter = CurrencyConverter(db)
    written = 0
    try:
        for offset in range(lookback_days - 1, -1, -1):
            day = end_date - timedelta(days=offset)
            for platform in platforms:
                aggregate_day(db, app_id, platform, day, currency=currency, converter=converter)
                written += 1
            rollup_unified(db, app_id, day)
    except Exception:
        record_job_run(job_name="aggregate_metrics", success=False)
        raise
    record_job_run(job_name="aggregate_metrics", success=True)
    logger.info(
        "metrics aggregated",
        extra={"app_id": app_id, "end_date": end_date.isoformat(), "lookback_days": lookback_days, "written": written},
    )
    return written


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Recompute daily metrics snapshots.")
    parser.add_argument("--app-id", type=int, required=True)
    parser.add_argument("--date", type=str, default=None, help="Last day to recompute (YYYY-MM-DD).")
    parser.add_argument("--lookback-days", type=int, default=1, help="Days to recompute.")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    end_date = date.fromisoformat(args.date) if args.date else None
    with SessionLocal() as db:
        run_aggregate_metrics(db, args.app_id, end_date=end_date, lookback_days=args.lookback_days)


if __name__ == "__main__":
    main()
