"""Pydantic schemas for API request/response models."""
from .backup_monitoring import (
    BackupMonitoringConfigResponse,
    BackupMonitoringConfigUpdate,
    CheckOutcomeResponse,
    CheckRunResponse,
    SuppressRequest,
    SmallFileEvent,
)
from .server import (
    HostCreate,
    HostResponse,
    ServerCreate,
    ServerUpdate,
    ServerResponse,
    EventCreate,
    EventResponse,
    EventsPage,
)
from .incident import (
    IncidentCreate,
    IncidentPatch,
    IncidentResponse,
    IncidentUpdateCreate,
    IncidentUpdateResponse,
    NotificationHistoryResponse,
)
from .status import PublicStatus, StatusOverview, SubscribeRequest

__all__ = [
    "BackupMonitoringConfigResponse",
    "BackupMonitoringConfigUpdate",
    "CheckOutcomeResponse",
    "CheckRunResponse",
    "SuppressRequest",
    "SmallFileEvent",
    "HostCreate",
    "HostResponse",
    "ServerCreate",
    "ServerUpdate",
    "ServerResponse",
    "EventCreate",
    "EventResponse",
    "EventsPage",
    "IncidentCreate",
    "IncidentPatch",
    "IncidentResponse",
    "IncidentUpdateCreate",
    "IncidentUpdateResponse",
    "NotificationHistoryResponse",
    "PublicStatus",
    "StatusOverview",
    "SubscribeRequest",
]
