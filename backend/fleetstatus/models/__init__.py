"""Database models."""
from .host import Host
from .server import Server
from .server_event import ServerEvent
from .backup_monitoring import BackupMonitoringConfig, BackupMonitoringResult
from .profile import Profile
from .incident import Incident, IncidentUpdate, NotificationHistory
from .subscriber import Subscriber, SubscriberSubscription

__all__ = [
    "Host",
    "Server",
    "ServerEvent",
    "BackupMonitoringConfig",
    "BackupMonitoringResult",
    "Profile",
    "Incident",
    "IncidentUpdate",
    "NotificationHistory",
    "Subscriber",
    "SubscriberSubscription",
]
