"""Backup monitoring admin API - configuration, manual check, results, health."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user, require_admin
from ..config import settings
from ..database import get_db
from ..exceptions import BackupCheckError, ConfigurationMissing
from ..models import BackupMonitoringResult
from ..schemas.backup_monitoring import (
    AlertedServerResponse,
    BackupMonitoringConfigResponse,
    BackupMonitoringConfigUpdate,
    CheckOutcomeResponse,
    CheckRunResponse,
    CheckSummaryResponse,
    ReviewServerResponse,
)
from ..services.backup_check import CheckOutcome, backup_check_service
from ..services.backup_store import get_backup_config
from ..utils.clock import utcnow
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/backup-monitoring", tags=["backup-monitoring"])

RECENT_RESULTS_LIMIT = 10


def build_outcome_response(outcome: CheckOutcome) -> CheckOutcomeResponse:
    """Flatten a check outcome into its JSON shape."""
    data = None
    if outcome.data is not None:
        summary = outcome.data
        data = CheckSummaryResponse(
            servers_checked=summary.servers_checked,
            servers_overdue=summary.servers_overdue,
            servers_small_file=summary.servers_small_file,
            servers_never_backed_up=summary.servers_never_backed_up,
            servers_due_for_review=summary.servers_due_for_review,
            threshold_hours=summary.threshold_hours,
            notification_sent=summary.notification_sent,
            notification_error=summary.notification_error,
            overdue_servers=[
                AlertedServerResponse(
                    id=s.id,
                    name=s.name,
                    ip_address=s.ip_address,
                    host=s.host_name,
                    last_backup_at=s.last_backup_at,
                    last_backup_database=s.last_backup_database,
                    hours_since_backup=s.hours_since_backup,
                    file_size=s.file_size,
                    file_size_mb=s.file_size_mb,
                    is_small_file=s.is_small_file,
                    reason=s.reason,
                )
                for s in summary.overdue_servers
            ],
            review_servers=[
                ReviewServerResponse(
                    id=r.id,
                    name=r.name,
                    host=r.host_name,
                    backup_monitoring_disabled_reason=r.backup_monitoring_disabled_reason,
                    backup_monitoring_review_date=r.backup_monitoring_review_date,
                    days_until_review=r.days_until_review,
                )
                for r in summary.review_servers
            ],
        )
    return CheckOutcomeResponse(
        success=outcome.success,
        message=outcome.message,
        skipped=outcome.skipped,
        warning=outcome.warning,
        in_progress=outcome.in_progress,
        data=data,
    )


async def run_backup_check(db: AsyncSession):
    """Run the check and map fatal errors to a 500 JSON body."""
    try:
        outcome = await backup_check_service.perform_backup_check(db)
    except BackupCheckError as e:
        logger.error(f"Backup monitoring check failed: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "Backup monitoring check failed", "details": str(e)},
        )
    return build_outcome_response(outcome)


@router.get("")
async def get_config(
    db: AsyncSession = Depends(get_db),
    _admin=Depends(require_admin),
):
    """Fetch backup monitoring configuration."""
    try:
        config = await get_backup_config(db)
    except BackupCheckError as e:
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to fetch configuration", "details": str(e)},
        )
    return {"config": BackupMonitoringConfigResponse.model_validate(config)}


@router.put("")
async def update_config(
    update: BackupMonitoringConfigUpdate,
    db: AsyncSession = Depends(get_db),
    _admin=Depends(require_admin),
):
    """Update backup monitoring configuration."""
    try:
        config = await get_backup_config(db)
    except ConfigurationMissing:
        raise HTTPException(status_code=404, detail="Configuration not found")
    except BackupCheckError as e:
        logger.error(f"Failed to load backup monitoring config for update: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch configuration")

    config.is_enabled = update.is_enabled
    if update.threshold_hours is not None:
        config.threshold_hours = update.threshold_hours
    if update.email_recipients is not None:
        config.email_recipients = update.email_recipients
    if update.alert_on_never_backed_up is not None:
        config.alert_on_never_backed_up = update.alert_on_never_backed_up
    config.updated_at = utcnow()

    await retry_on_lock(db.commit)
    logger.info(
        f"Backup monitoring config updated: enabled={config.is_enabled}, "
        f"threshold={config.threshold_hours}h, recipients={len(config.email_recipients or [])}"
    )
    return {"success": True, "config": BackupMonitoringConfigResponse.model_validate(config)}


@router.post("/test", response_model=CheckOutcomeResponse)
async def test_backup_check(
    db: AsyncSession = Depends(get_db),
    _admin=Depends(require_admin),
):
    """Run a backup monitoring check now (manual trigger)."""
    return await run_backup_check(db)


@router.get("/results")
async def get_results(
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """Fetch the most recent check runs, newest first."""
    result = await db.execute(
        select(BackupMonitoringResult)
        .order_by(BackupMonitoringResult.check_run_at.desc(), BackupMonitoringResult.id.desc())
        .limit(RECENT_RESULTS_LIMIT)
    )
    results: List[CheckRunResponse] = [
        CheckRunResponse.model_validate(r) for r in result.scalars().all()
    ]
    return {"results": results}


@router.get("/health")
async def health(_admin=Depends(require_admin)):
    """Report which settings the backup check depends on are present."""
    environment = {
        "CRON_SECRET": bool(settings.cron_secret),
        "SMTP_HOST": bool(settings.smtp_host),
        "ALERT_EMAIL_FROM": bool(settings.alert_email_from),
        "APP_URL": bool(settings.app_url),
    }
    missing = [name for name, present in environment.items() if not present]
    return {
        "success": True,
        "healthy": not missing,
        "missing_variables": missing,
        "environment_variables": environment,
        "values": {
            "APP_URL": settings.app_url,
            "ALERT_EMAIL_FROM": settings.alert_email_from,
            "ALERT_EMAIL_FROM_NAME": settings.alert_email_from_name,
        },
        "check_running": backup_check_service.is_running,
    }
