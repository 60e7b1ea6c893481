"""Incident schemas for the admin incident API."""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

INCIDENT_TYPE_PATTERN = "^(outage|degraded|maintenance|resolved)$"
SEVERITY_PATTERN = "^(critical|major|minor|info)$"
STATUS_PATTERN = "^(investigating|identified|monitoring|resolved)$"
UPDATE_TYPE_PATTERN = "^(investigating|update|resolved)$"


class IncidentCreate(BaseModel):
    """Schema for opening an incident."""
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    incident_type: str = Field(..., pattern=INCIDENT_TYPE_PATTERN)
    severity: str = Field(..., pattern=SEVERITY_PATTERN)
    affected_servers: List[int] = []
    affected_hosts: List[int] = []
    status: str = Field(default="investigating", pattern=STATUS_PATTERN)
    notify_subscribers: bool = False


class IncidentPatch(BaseModel):
    """Schema for editing an incident. Only fields that are sent change."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    incident_type: Optional[str] = Field(None, pattern=INCIDENT_TYPE_PATTERN)
    severity: Optional[str] = Field(None, pattern=SEVERITY_PATTERN)
    affected_servers: Optional[List[int]] = None
    affected_hosts: Optional[List[int]] = None
    status: Optional[str] = Field(None, pattern=STATUS_PATTERN)
    resolved_at: Optional[datetime] = None
    notify_subscribers: Optional[bool] = None

    @field_validator("resolved_at")
    @classmethod
    def to_naive_utc(cls, value):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class IncidentUpdateCreate(BaseModel):
    """A timeline entry posted on an incident."""
    message: str = Field(..., min_length=1)
    update_type: str = Field(..., pattern=UPDATE_TYPE_PATTERN)


class IncidentUpdateResponse(BaseModel):
    id: int
    incident_id: int
    message: str
    update_type: str
    created_by: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class IncidentResponse(BaseModel):
    """Schema for an incident in admin responses."""
    id: int
    title: str
    description: str
    incident_type: str
    severity: str
    status: str
    affected_servers: List[int] = []
    affected_hosts: List[int] = []
    started_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    notify_subscribers: bool = False
    notified_at: Optional[datetime] = None
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    updates: List[IncidentUpdateResponse] = []

    class Config:
        from_attributes = True


class IncidentsPage(BaseModel):
    incidents: List[IncidentResponse]
    total: int
    limit: int
    offset: int


class NotificationHistoryResponse(BaseModel):
    id: int
    incident_id: int
    recipient_email: str
    recipient_name: Optional[str] = None
    status: str
    error_message: Optional[str] = None
    sent_at: datetime

    class Config:
        from_attributes = True


class NotifyResponse(BaseModel):
    """Outcome of emailing subscribers about an incident."""
    message: str
    sent: int
    failed: int = 0
    errors: List[str] = []
