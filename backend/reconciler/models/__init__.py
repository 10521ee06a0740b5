from .apps import App
from .platform_connections import PlatformConnection
from .subscriptions import Subscription
from .revenue_events import RevenueEvent
from .metrics_snapshots import MetricsSnapshot
from .exchange_rates import ExchangeRate
from .sync_sessions import SyncSession
from .sync_progress import SyncProgress
from .sync_logs import SyncLog
from .app_store_reports import AppStoreReport
from .job_queue import JobQueue
from .job_dead_letters import JobDeadLetter
