from .apps import create_app, get_app, get_app_by_slug, list_apps, get_app_currency, update_app_currency
from .platform_connections import (
    create_connection,
    get_connection,
    list_active_connections,
    get_credentials,
    update_credentials,
    mark_synced,
    reset_last_sync,
)
from .subscriptions import (
    get_subscription,
    upsert_subscriptions,
    subscription_id_map,
    list_subscriptions,
    list_subscriptions_alive_between,
)
from .revenue_events import (
    IngestResult,
    store_revenue_events,
    fill_proceeds_if_absent,
    list_events_between,
    count_events,
)
from .snapshots import (
    upsert_snapshot,
    get_snapshot,
    get_previous_snapshot,
    list_snapshots,
    trailing_snapshots,
    carry_forward_snapshot,
    rollup_unified,
    snapshot_values,
    delete_snapshots,
    platform_snapshot_dates,
)
from .exchange_rates import record_rate, latest_rate, list_rates
from .sync_logs import append_log, list_logs, clear_logs
from .sync_sessions import (
    start_session,
    get_session,
    get_active_session,
    is_cancelled,
    complete_session,
    cancel_session,
    cancel_active_sessions,
)
from .sync_progress import (
    create_progress,
    get_progress,
    get_progress_for_app,
    get_progress_credentials,
    mark_running,
    record_chunk,
    delete_progress,
    progress_percentage,
    chunk_count,
)
from .app_store_reports import save_report, list_reports
