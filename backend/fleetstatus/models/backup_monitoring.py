"""Backup monitoring models - singleton configuration and check run history."""
from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from ..database import Base
from ..utils.clock import utcnow


class BackupMonitoringConfig(Base):
    """Global backup monitoring configuration. Exactly one row exists."""

    __tablename__ = "backup_monitoring_config"

    id = Column(Integer, primary_key=True, autoincrement=True)
    is_enabled = Column(Boolean, default=False, nullable=False)
    threshold_hours = Column(Integer, default=24, nullable=False)
    email_recipients = Column(JSON, default=list)  # Ordered list of addresses
    alert_on_never_backed_up = Column(Boolean, default=True, nullable=False)
    check_schedule = Column(String, default="0 9 * * *")  # Informational cron string
    last_check_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class BackupMonitoringResult(Base):
    """Audit row written once per backup check run."""

    __tablename__ = "backup_monitoring_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    check_run_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    servers_checked = Column(Integer, default=0, nullable=False)
    servers_overdue = Column(Integer, default=0, nullable=False)
    servers_small_file = Column(Integer, default=0)
    overdue_server_ids = Column(JSON, default=list)
    threshold_hours = Column(Integer, nullable=False)
    notification_sent = Column(Boolean, default=False)
    notification_recipients = Column(JSON, default=list)
    notification_error = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
