"""Store access for the backup freshness check.

Wraps one AsyncSession and exposes the reads and writes the check needs:
the singleton configuration, the server registry, qualifying backup events,
the audit log, and the last-check timestamp.
"""
import logging
from datetime import date, datetime, timedelta
from typing import List

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..exceptions import ConfigurationMissing, UpstreamReadFailure
from ..models import BackupMonitoringConfig, BackupMonitoringResult, Server, ServerEvent
from ..models.server_event import BACKUP_EVENT_TYPES
from ..utils.db_utils import commit_or_rollback

logger = logging.getLogger(__name__)

BACKUP_FILE_SUFFIX = ".fmp12"
REVIEW_WINDOW_DAYS = 7


async def get_backup_config(session: AsyncSession) -> BackupMonitoringConfig:
    """Return the one backup monitoring configuration row.

    Raises:
        ConfigurationMissing: if there are zero rows or more than one.
        UpstreamReadFailure: if the configuration table could not be read.
    """
    try:
        result = await session.execute(select(BackupMonitoringConfig).limit(2))
        rows = list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch backup monitoring config: {e}")
        raise UpstreamReadFailure("configuration", str(e)) from e

    if not rows:
        raise ConfigurationMissing("Configuration not found")
    if len(rows) > 1:
        raise ConfigurationMissing("Multiple backup monitoring configurations found")
    return rows[0]


class BackupMonitoringStore:
    """Reads and writes used by a single backup check run."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_config(self) -> BackupMonitoringConfig:
        return await get_backup_config(self.session)

    async def list_monitored_servers(self) -> List[Server]:
        """Servers not excluded from backup monitoring, ordered by name."""
        try:
            result = await self.session.execute(
                select(Server)
                .options(selectinload(Server.host))
                .where(Server.backup_monitoring_excluded.is_not(True))
                .order_by(Server.name, Server.id)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch servers: {e}")
            raise UpstreamReadFailure("servers", str(e)) from e

    async def list_servers_due_for_review(self, today: date) -> List[Server]:
        """Excluded servers whose review date falls within the review window."""
        cutoff = today + timedelta(days=REVIEW_WINDOW_DAYS)
        try:
            result = await self.session.execute(
                select(Server)
                .options(selectinload(Server.host))
                .where(
                    Server.backup_monitoring_excluded.is_(True),
                    Server.backup_monitoring_review_date.is_not(None),
                    Server.backup_monitoring_review_date <= cutoff,
                )
                .order_by(Server.backup_monitoring_review_date, Server.name)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch servers due for review: {e}")
            raise UpstreamReadFailure("servers due for review", str(e)) from e

    async def list_backup_events(self) -> List[ServerEvent]:
        """Qualifying backup events, newest first.

        Ties on created_at are ordered by id descending so the most recently
        inserted event wins.
        """
        try:
            result = await self.session.execute(
                select(ServerEvent)
                .where(
                    ServerEvent.event_type.in_(BACKUP_EVENT_TYPES),
                    ServerEvent.backup_database.ilike(f"%{BACKUP_FILE_SUFFIX}"),
                )
                .order_by(ServerEvent.created_at.desc(), ServerEvent.id.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch backup events: {e}")
            raise UpstreamReadFailure("backup events", str(e)) from e

    async def record_check_run(self, record: BackupMonitoringResult) -> None:
        self.session.add(record)
        await commit_or_rollback(self.session)

    async def mark_checked(self, config_id: int, checked_at: datetime) -> None:
        await self.session.execute(
            update(BackupMonitoringConfig)
            .where(BackupMonitoringConfig.id == config_id)
            .values(last_check_at=checked_at)
        )
        await commit_or_rollback(self.session)
