"""Server, host, and event schemas for API."""
from datetime import date, datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class HostCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    location: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)


class HostResponse(BaseModel):
    id: int
    name: str
    location: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ServerCreate(BaseModel):
    """Schema for creating a server."""
    name: str = Field(..., min_length=1, max_length=255)
    host_id: Optional[int] = None
    server_type: Optional[str] = None
    ip_address: Optional[str] = None
    current_status: str = Field(default="up", pattern="^(up|down|degraded|maintenance)$")


class ServerUpdate(BaseModel):
    """Schema for updating a server.

    Excluding a server from backup monitoring requires a reason and a review date.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    host_id: Optional[int] = None
    server_type: Optional[str] = None
    ip_address: Optional[str] = None
    current_status: Optional[str] = Field(None, pattern="^(up|down|degraded|maintenance)$")
    backup_monitoring_excluded: Optional[bool] = None
    backup_monitoring_disabled_reason: Optional[str] = Field(None, max_length=1000)
    backup_monitoring_review_date: Optional[date] = None

    @model_validator(mode="after")
    def check_exclusion_fields(self):
        if self.backup_monitoring_excluded:
            if not (self.backup_monitoring_disabled_reason or "").strip():
                raise ValueError("A reason is required when excluding a server from backup monitoring")
            if self.backup_monitoring_review_date is None:
                raise ValueError("A review date is required when excluding a server from backup monitoring")
        return self


class ServerResponse(BaseModel):
    """Schema for a server in API responses."""
    id: int
    name: str
    host_id: Optional[int] = None
    host_name: Optional[str] = None
    server_type: Optional[str] = None
    ip_address: Optional[str] = None
    current_status: str
    last_status_change: Optional[datetime] = None
    backup_monitoring_excluded: bool = False
    backup_monitoring_disabled_reason: Optional[str] = None
    backup_monitoring_review_date: Optional[date] = None
    created_at: datetime

    class Config:
        from_attributes = True


class EventCreate(BaseModel):
    """Schema for recording a server event manually."""
    event_type: str = Field(..., pattern="^(status_change|backup|backup_added|s3_restore|filemaker_event|sns_test)$")
    event_source: str = Field(default="manual", pattern="^(uptimerobot|filemaker|backup_system|aws_s3|manual)$")
    status: Optional[str] = None
    message: Optional[str] = None
    backup_event_type: Optional[str] = None
    backup_database: Optional[str] = None
    backup_file_key: Optional[str] = None
    backup_file_size: Optional[int] = Field(None, ge=0)
    created_at: Optional[datetime] = None

    @field_validator("created_at")
    @classmethod
    def to_naive_utc(cls, value):
        # Timestamps are stored as naive UTC
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class EventResponse(BaseModel):
    id: int
    server_id: int
    event_type: str
    event_source: str
    status: Optional[str] = None
    message: Optional[str] = None
    backup_event_type: Optional[str] = None
    backup_database: Optional[str] = None
    backup_file_key: Optional[str] = None
    backup_file_size: Optional[int] = None
    backup_file_size_alert_suppressed: Optional[bool] = False
    payload: Optional[dict] = None
    created_at: datetime

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class EventsPage(BaseModel):
    events: List[EventResponse]
    pagination: Pagination


class FeedServer(BaseModel):
    name: str
    ip_address: Optional[str] = None

    class Config:
        from_attributes = True


class FeedEvent(EventResponse):
    """An event in the global feed, with the server it belongs to."""
    server: Optional[FeedServer] = None


class EventsFeed(BaseModel):
    events: List[FeedEvent]
    total: int
    page: int
    page_size: int
    has_more: bool
