"""API routers."""
from .backup_monitoring import router as backup_monitoring_router
from .backup_alerts import router as backup_alerts_router
from .cron import router as cron_router
from .servers import router as servers_router
from .hosts import router as hosts_router
from .status import router as status_router
from .status_page import router as status_page_router
from .incidents import router as incidents_router
from .events import router as events_router

__all__ = [
    "backup_monitoring_router",
    "backup_alerts_router",
    "cron_router",
    "servers_router",
    "hosts_router",
    "status_router",
    "status_page_router",
    "incidents_router",
    "events_router",
]
