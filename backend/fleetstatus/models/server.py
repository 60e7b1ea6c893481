"""Server model - endpoints tracked by the dashboard."""
from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class Server(Base):
    """A monitored server, storage bucket, or FileMaker database server."""

    __tablename__ = "servers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    host_id = Column(Integer, ForeignKey("hosts.id", ondelete="SET NULL"), nullable=True)
    server_type = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    current_status = Column(String, default="up")  # up, down, degraded, maintenance
    last_status_change = Column(DateTime, default=utcnow)

    # Backup monitoring exclusion - reason and review date are set together
    backup_monitoring_excluded = Column(Boolean, default=False, nullable=False)
    backup_monitoring_disabled_reason = Column(String, nullable=True)
    backup_monitoring_review_date = Column(Date, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    host = relationship("Host", back_populates="servers")
    events = relationship("ServerEvent", back_populates="server", cascade="all, delete-orphan")

    @property
    def host_name(self):
        return self.host.name if self.host else None
