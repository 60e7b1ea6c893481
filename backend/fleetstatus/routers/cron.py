"""Scheduled trigger endpoints, authorized by the CRON_SECRET bearer token."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import verify_cron_secret
from ..database import get_db
from ..schemas.backup_monitoring import CheckOutcomeResponse
from .backup_monitoring import run_backup_check

router = APIRouter(prefix="/api/cron", tags=["cron"])


@router.get("/backup-check", response_model=CheckOutcomeResponse)
async def cron_backup_check(
    _auth=Depends(verify_cron_secret),
    db: AsyncSession = Depends(get_db),
):
    """Check backup freshness for all monitored servers."""
    return await run_backup_check(db)
