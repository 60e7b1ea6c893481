"""Subscriber models - people who receive incident emails from the status page."""
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow

SUBSCRIPTION_TYPES = ("all_servers", "server", "host")
DEFAULT_NOTIFY_ON_STATUS = ["down", "degraded"]


class Subscriber(Base):
    """A status page subscriber. Only verified, not unsubscribed rows get email."""

    __tablename__ = "subscribers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    company = Column(String, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    verification_token = Column(String, nullable=True, unique=True)
    unsubscribe_token = Column(String, nullable=True, unique=True)
    subscribed_at = Column(DateTime, default=utcnow)
    verified_at = Column(DateTime, nullable=True)
    unsubscribed_at = Column(DateTime, nullable=True)

    subscriptions = relationship(
        "SubscriberSubscription",
        back_populates="subscriber",
        cascade="all, delete-orphan",
    )

    @property
    def is_active(self):
        return bool(self.is_verified) and self.unsubscribed_at is None


class SubscriberSubscription(Base):
    """What a subscriber wants to hear about: everything, one server, or one host."""

    __tablename__ = "subscriber_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscriber_id = Column(Integer, ForeignKey("subscribers.id", ondelete="CASCADE"), nullable=False)
    subscription_type = Column(String, nullable=False, default="all_servers")
    server_id = Column(Integer, ForeignKey("servers.id", ondelete="CASCADE"), nullable=True)
    host_id = Column(Integer, ForeignKey("hosts.id", ondelete="CASCADE"), nullable=True)
    notify_on_status = Column(JSON, default=lambda: list(DEFAULT_NOTIFY_ON_STATUS))
    created_at = Column(DateTime, default=utcnow)

    subscriber = relationship("Subscriber", back_populates="subscriptions")
