"""Services for backup checks, alerting, incident notifications, and scheduling."""
from .backup_check import BackupCheckService
from .backup_alerts import BackupAlertDispatcher
from .email_sender import EmailSenderService
from .incident_notifier import IncidentNotifier
from .scheduler import SchedulerService

__all__ = [
    "BackupCheckService",
    "BackupAlertDispatcher",
    "EmailSenderService",
    "IncidentNotifier",
    "SchedulerService",
]
