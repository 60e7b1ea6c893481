"""Incident models - status page incidents, their timeline, and notification history."""
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow

INCIDENT_TYPES = ("outage", "degraded", "maintenance", "resolved")
INCIDENT_SEVERITIES = ("critical", "major", "minor", "info")
INCIDENT_STATUSES = ("investigating", "identified", "monitoring", "resolved")
UPDATE_TYPES = ("investigating", "update", "resolved")


class Incident(Base):
    """An incident shown on the public status page."""

    __tablename__ = "status_incidents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    incident_type = Column(String, nullable=False)  # outage, degraded, maintenance, resolved
    severity = Column(String, nullable=False)  # critical, major, minor, info
    status = Column(String, nullable=False, default="investigating", index=True)

    # Server ids, including servers pulled in through affected hosts
    affected_servers = Column(JSON, default=list)
    affected_hosts = Column(JSON, default=list)

    started_at = Column(DateTime, default=utcnow)
    resolved_at = Column(DateTime, nullable=True)
    notify_subscribers = Column(Boolean, default=False)
    notified_at = Column(DateTime, nullable=True)

    created_by = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    updates = relationship(
        "IncidentUpdate",
        back_populates="incident",
        cascade="all, delete-orphan",
        order_by="IncidentUpdate.created_at",
    )
    notifications = relationship(
        "NotificationHistory",
        back_populates="incident",
        cascade="all, delete-orphan",
    )


class IncidentUpdate(Base):
    """A timeline entry posted on an incident."""

    __tablename__ = "incident_updates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    incident_id = Column(Integer, ForeignKey("status_incidents.id", ondelete="CASCADE"), nullable=False)
    message = Column(Text, nullable=False)
    update_type = Column(String, nullable=False)  # investigating, update, resolved
    created_by = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    incident = relationship("Incident", back_populates="updates")


class NotificationHistory(Base):
    """One incident email sent (or attempted) to one subscriber."""

    __tablename__ = "notification_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    incident_id = Column(Integer, ForeignKey("status_incidents.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_email = Column(String, nullable=False)
    recipient_name = Column(String, nullable=True)
    status = Column(String, nullable=False)  # sent, failed
    error_message = Column(String, nullable=True)
    sent_at = Column(DateTime, default=utcnow)

    incident = relationship("Incident", back_populates="notifications")
