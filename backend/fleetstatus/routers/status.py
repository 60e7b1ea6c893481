"""Status overview API for dashboard."""
from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user
from ..database import get_db
from ..exceptions import BackupCheckError
from ..models import BackupMonitoringResult, Server
from ..schemas.status import LastCheckRun, StatusOverview
from ..services.backup_store import get_backup_config

router = APIRouter(prefix="/api/status", tags=["status"])


@router.get("/overview", response_model=StatusOverview)
async def get_status_overview(
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """Get dashboard overview data."""
    result = await db.execute(
        select(Server.current_status, func.count()).group_by(Server.current_status)
    )
    counts = {"up": 0, "down": 0, "degraded": 0, "maintenance": 0}
    total = 0
    for status, count in result.all():
        total += count
        if status in counts:
            counts[status] += count

    excluded = (await db.execute(
        select(func.count()).select_from(Server).where(Server.backup_monitoring_excluded.is_(True))
    )).scalar() or 0

    try:
        config = await get_backup_config(db)
        enabled, last_check_at = bool(config.is_enabled), config.last_check_at
    except BackupCheckError:
        enabled, last_check_at = False, None

    latest = (await db.execute(
        select(BackupMonitoringResult)
        .order_by(BackupMonitoringResult.check_run_at.desc(), BackupMonitoringResult.id.desc())
        .limit(1)
    )).scalar_one_or_none()

    return StatusOverview(
        total_servers=total,
        servers_up=counts["up"],
        servers_down=counts["down"],
        servers_degraded=counts["degraded"],
        servers_maintenance=counts["maintenance"],
        servers_excluded_from_backup_monitoring=excluded,
        backup_monitoring_enabled=enabled,
        backup_monitoring_last_check_at=last_check_at,
        last_check_run=LastCheckRun(
            check_run_at=latest.check_run_at,
            servers_checked=latest.servers_checked,
            servers_overdue=latest.servers_overdue,
            notification_sent=bool(latest.notification_sent),
        ) if latest else None,
    )
