"""ServerEvent model - append-only log of server lifecycle events."""
from sqlalchemy import JSON, BigInteger, Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow

EVENT_TYPES = ("status_change", "backup", "backup_added", "s3_restore", "filemaker_event", "sns_test")
EVENT_SOURCES = ("uptimerobot", "filemaker", "backup_system", "aws_s3", "manual")

# Event types that count as a backup for freshness monitoring
BACKUP_EVENT_TYPES = ("backup", "backup_added")


class ServerEvent(Base):
    """A status change, backup, or other event recorded for a server."""

    __tablename__ = "server_events"
    __table_args__ = (
        Index("idx_server_events_server_created", "server_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    server_id = Column(Integer, ForeignKey("servers.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(String, nullable=False, index=True)
    event_source = Column(String, nullable=False, default="manual")
    status = Column(String, nullable=True)
    message = Column(String, nullable=True)
    payload = Column(JSON, nullable=True)  # Extra context, e.g. the incident an event belongs to

    # Backup metadata (only set for backup events)
    backup_event_type = Column(String, nullable=True)  # e.g. "backup added"
    backup_database = Column(String, nullable=True)  # Filename, e.g. "Sales.fmp12"
    backup_file_key = Column(String, nullable=True)  # Full object key
    backup_file_size = Column(BigInteger, nullable=True)  # Bytes
    backup_file_size_alert_suppressed = Column(Boolean, default=False)

    created_at = Column(DateTime, default=utcnow, index=True)

    server = relationship("Server", back_populates="events")
