"""Backup freshness check.

Classifies every monitored server against its most recent qualifying backup
event, emails one batched alert per run, and writes one audit row per run.

Classification rules:
- no qualifying backup: overdue only when alert_on_never_backed_up is set
- latest backup older than threshold_hours: overdue, regardless of size
- fresh backup under 1 MiB that is not suppressed: small file
- excluded servers are never classified; they only show up in the review list
  once their review date is within REVIEW_WINDOW_DAYS
"""
import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models import BackupMonitoringResult, Server, ServerEvent
from ..models.server_event import BACKUP_EVENT_TYPES
from ..utils.clock import utcnow
from ..utils.formatters import BYTES_PER_MB
from .backup_alerts import AlertedServer, ServerDueForReview, backup_alert_dispatcher
from .backup_store import BACKUP_FILE_SUFFIX, REVIEW_WINDOW_DAYS, BackupMonitoringStore

logger = logging.getLogger(__name__)

SMALL_FILE_THRESHOLD_BYTES = 1 * 1024 * 1024  # 1 MiB


@dataclass
class Classification:
    """Result of classifying the monitored servers for one run."""
    overdue: List[AlertedServer] = field(default_factory=list)
    small_file: List[AlertedServer] = field(default_factory=list)
    never_backed_up: List[int] = field(default_factory=list)

    @property
    def servers_needing_alert(self) -> List[AlertedServer]:
        return self.overdue + self.small_file


@dataclass
class CheckSummary:
    servers_checked: int
    servers_overdue: int
    servers_small_file: int
    servers_never_backed_up: int
    servers_due_for_review: int
    threshold_hours: int
    notification_sent: bool
    notification_error: Optional[str]
    overdue_servers: List[AlertedServer] = field(default_factory=list)
    review_servers: List[ServerDueForReview] = field(default_factory=list)


@dataclass
class CheckOutcome:
    """What a trigger endpoint reports back to its caller."""
    success: bool
    message: str
    skipped: bool = False
    warning: bool = False
    in_progress: bool = False
    data: Optional[CheckSummary] = None


def is_qualifying_backup(event: ServerEvent) -> bool:
    """A backup or backup_added event for a .fmp12 database file."""
    if event.event_type not in BACKUP_EVENT_TYPES:
        return False
    return bool(event.backup_database) and event.backup_database.lower().endswith(BACKUP_FILE_SUFFIX)


def latest_backup_per_server(events: Iterable[ServerEvent]) -> Dict[int, ServerEvent]:
    """Map server id to its newest qualifying event.

    Events must be ordered newest first; the first event seen for a server wins.
    """
    latest: Dict[int, ServerEvent] = {}
    for event in events:
        if event.server_id in latest or not is_qualifying_backup(event):
            continue
        latest[event.server_id] = event
    return latest


def _alerted(
    server: Server,
    event: Optional[ServerEvent],
    now: datetime,
    reason: str,
) -> AlertedServer:
    hours_since = None
    file_size = None
    if event is not None:
        hours_since = math.floor((now - event.created_at).total_seconds() / 3600)
        file_size = event.backup_file_size
    return AlertedServer(
        id=server.id,
        name=server.name,
        ip_address=server.ip_address,
        host_name=server.host_name,
        last_backup_at=event.created_at if event is not None else None,
        last_backup_database=event.backup_database if event is not None else None,
        hours_since_backup=hours_since,
        file_size=file_size,
        file_size_mb=file_size / BYTES_PER_MB if file_size is not None else None,
        is_small_file=file_size is not None and file_size < SMALL_FILE_THRESHOLD_BYTES,
        reason=reason,
    )


def classify_servers(
    servers: Iterable[Server],
    latest_backups: Dict[int, ServerEvent],
    threshold_hours: int,
    alert_on_never_backed_up: bool,
    now: datetime,
) -> Classification:
    """Sort monitored servers into overdue and small-file sets."""
    classification = Classification()
    threshold_date = now - timedelta(hours=threshold_hours)

    for server in servers:
        if server.backup_monitoring_excluded:
            continue

        event = latest_backups.get(server.id)
        if event is None:
            classification.never_backed_up.append(server.id)
            if alert_on_never_backed_up:
                classification.overdue.append(_alerted(server, None, now, "overdue"))
            continue

        if event.created_at < threshold_date:
            classification.overdue.append(_alerted(server, event, now, "overdue"))
            continue

        size = event.backup_file_size
        if size is not None and size < SMALL_FILE_THRESHOLD_BYTES and not event.backup_file_size_alert_suppressed:
            classification.small_file.append(_alerted(server, event, now, "small_file"))

    return classification


def review_servers(excluded_servers: Iterable[Server], today: date) -> List[ServerDueForReview]:
    """Excluded servers whose review date is at most REVIEW_WINDOW_DAYS away."""
    cutoff = today + timedelta(days=REVIEW_WINDOW_DAYS)
    due = []
    for server in excluded_servers:
        review_date = server.backup_monitoring_review_date
        if not server.backup_monitoring_excluded or review_date is None or review_date > cutoff:
            continue
        due.append(ServerDueForReview(
            id=server.id,
            name=server.name,
            host_name=server.host_name,
            backup_monitoring_disabled_reason=server.backup_monitoring_disabled_reason,
            backup_monitoring_review_date=review_date,
            days_until_review=(review_date - today).days,
        ))
    return due


class BackupCheckService:
    """Runs the backup freshness check. One run at a time per process."""

    def __init__(
        self,
        dispatcher=None,
        now_func: Callable[[], datetime] = utcnow,
        dispatch_timeout: Optional[float] = None,
    ):
        self.dispatcher = dispatcher or backup_alert_dispatcher
        self.now_func = now_func
        self.dispatch_timeout = dispatch_timeout
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def perform_backup_check(self, session: AsyncSession) -> CheckOutcome:
        """Run one check against the current data.

        Raises:
            ConfigurationMissing: no (or more than one) configuration row.
            UpstreamReadFailure: servers or events could not be read.
        """
        if self._lock.locked():
            logger.warning("Backup check already in progress, ignoring trigger")
            return CheckOutcome(
                success=True,
                message="A backup check is already in progress",
                in_progress=True,
            )

        async with self._lock:
            return await self._run(BackupMonitoringStore(session))

    async def _run(self, store: BackupMonitoringStore) -> CheckOutcome:
        now = self.now_func()
        today = now.date()

        config = await store.get_config()
        # Copy what we need; later commits/rollbacks may expire the instance
        config_id = config.id
        threshold_hours = config.threshold_hours
        recipients = list(config.email_recipients or [])
        alert_on_never_backed_up = bool(config.alert_on_never_backed_up)

        if not config.is_enabled:
            logger.info("Backup monitoring is disabled, skipping check")
            return CheckOutcome(success=True, message="Backup monitoring is disabled", skipped=True)

        if not recipients:
            logger.warning("No email recipients configured for backup monitoring")
            return CheckOutcome(success=True, message="No email recipients configured", warning=True)

        servers = await store.list_monitored_servers()
        due_for_review = review_servers(await store.list_servers_due_for_review(today), today)

        if not servers and not due_for_review:
            logger.info("No servers found to monitor")
            await self._mark_checked(store, config_id, now)
            return CheckOutcome(
                success=True,
                message="No servers found to monitor",
                data=CheckSummary(
                    servers_checked=0,
                    servers_overdue=0,
                    servers_small_file=0,
                    servers_never_backed_up=0,
                    servers_due_for_review=0,
                    threshold_hours=threshold_hours,
                    notification_sent=False,
                    notification_error=None,
                ),
            )

        events = await store.list_backup_events() if servers else []
        classification = classify_servers(
            servers,
            latest_backup_per_server(events),
            threshold_hours,
            alert_on_never_backed_up,
            now,
        )
        if classification.never_backed_up:
            logger.info(
                f"{len(classification.never_backed_up)} server(s) have never been backed up "
                f"(alerting {'on' if alert_on_never_backed_up else 'off'})"
            )

        alerted = classification.servers_needing_alert
        notification_sent = False
        notification_error = None
        if alerted or due_for_review:
            notification_sent, notification_error = await self._dispatch(
                recipients, alerted, threshold_hours, due_for_review
            )

        await self._record(store, BackupMonitoringResult(
            check_run_at=now,
            servers_checked=len(servers),
            servers_overdue=len(classification.overdue),
            servers_small_file=len(classification.small_file),
            overdue_server_ids=[s.id for s in classification.overdue],
            threshold_hours=threshold_hours,
            notification_sent=notification_sent,
            notification_recipients=recipients,
            notification_error=notification_error,
        ))
        await self._mark_checked(store, config_id, now)

        return CheckOutcome(
            success=True,
            message=self._summary_message(classification, due_for_review),
            data=CheckSummary(
                servers_checked=len(servers),
                servers_overdue=len(classification.overdue),
                servers_small_file=len(classification.small_file),
                servers_never_backed_up=len(classification.never_backed_up),
                servers_due_for_review=len(due_for_review),
                threshold_hours=threshold_hours,
                notification_sent=notification_sent,
                notification_error=notification_error,
                overdue_servers=alerted,
                review_servers=due_for_review,
            ),
        )

    async def _dispatch(
        self,
        recipients: List[str],
        servers: List[AlertedServer],
        threshold_hours: int,
        due_for_review: List[ServerDueForReview],
    ) -> Tuple[bool, Optional[str]]:
        """Send the alert; failures are returned, never raised."""
        timeout = self.dispatch_timeout
        if timeout is None:
            timeout = settings.alert_dispatch_timeout_seconds
        try:
            result = await asyncio.wait_for(
                self.dispatcher.send(
                    recipients, servers, threshold_hours, due_for_review, timeout=timeout
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Backup alert dispatch timed out after {timeout}s")
            return False, f"Alert dispatch timed out after {timeout}s"
        except Exception as e:
            logger.error(f"Failed to send backup alert email: {type(e).__name__}: {e}")
            return False, str(e) or "Failed to send email"

        if not result.success:
            return False, result.error or "Failed to send email"
        logger.info(f"Backup alert email sent to {len(recipients)} recipient(s)")
        return True, None

    async def _record(self, store: BackupMonitoringStore, record: BackupMonitoringResult) -> None:
        try:
            await store.record_check_run(record)
        except Exception as e:
            logger.error(f"Failed to save monitoring result: {e}")

    async def _mark_checked(self, store: BackupMonitoringStore, config_id: int, now: datetime) -> None:
        try:
            await store.mark_checked(config_id, now)
        except Exception as e:
            logger.error(f"Failed to update last check time: {e}")

    def _summary_message(self, classification: Classification, due_for_review: List[ServerDueForReview]) -> str:
        parts = []
        if classification.overdue:
            parts.append(f"{len(classification.overdue)} server(s) with overdue backups")
        if classification.small_file:
            parts.append(f"{len(classification.small_file)} server(s) with small backup files")
        if due_for_review:
            parts.append(f"{len(due_for_review)} server(s) due for review")
        if not parts:
            return "All servers have recent backups"
        return "Found " + ", ".join(parts)


# Global instance
backup_check_service = BackupCheckService()
