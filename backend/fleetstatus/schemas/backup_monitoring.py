"""Backup monitoring schemas for API."""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class BackupMonitoringConfigResponse(BaseModel):
    """Schema for the backup monitoring configuration."""
    id: int
    is_enabled: bool
    threshold_hours: int
    email_recipients: List[str] = []
    alert_on_never_backed_up: bool = True
    check_schedule: Optional[str] = None
    last_check_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BackupMonitoringConfigUpdate(BaseModel):
    """Schema for updating the backup monitoring configuration."""
    is_enabled: bool
    threshold_hours: Optional[int] = Field(None, ge=1, le=168)
    email_recipients: Optional[List[str]] = None
    alert_on_never_backed_up: Optional[bool] = None

    @field_validator("email_recipients")
    @classmethod
    def validate_recipients(cls, value):
        if value is None:
            return value
        cleaned = []
        for addr in value:
            addr = addr.strip()
            if not addr:
                continue
            local, _, domain = addr.partition("@")
            if not local or "." not in domain:
                raise ValueError(f"Invalid email address: {addr}")
            cleaned.append(addr)
        return cleaned


class AlertedServerResponse(BaseModel):
    """A server flagged by a check run."""
    id: int
    name: str
    ip_address: Optional[str] = None
    host: Optional[str] = None
    last_backup_at: Optional[datetime] = None
    last_backup_database: Optional[str] = None
    hours_since_backup: Optional[int] = None
    file_size: Optional[int] = None
    file_size_mb: Optional[float] = None
    is_small_file: bool = False
    reason: str


class ReviewServerResponse(BaseModel):
    """An excluded server due for backup monitoring review."""
    id: int
    name: str
    host: Optional[str] = None
    backup_monitoring_disabled_reason: Optional[str] = None
    backup_monitoring_review_date: date
    days_until_review: int


class CheckSummaryResponse(BaseModel):
    servers_checked: int
    servers_overdue: int
    servers_small_file: int
    servers_never_backed_up: int
    servers_due_for_review: int
    threshold_hours: int
    notification_sent: bool
    notification_error: Optional[str] = None
    overdue_servers: List[AlertedServerResponse] = []
    review_servers: List[ReviewServerResponse] = []


class CheckOutcomeResponse(BaseModel):
    """Response of the cron and manual backup check triggers."""
    success: bool
    message: str
    skipped: bool = False
    warning: bool = False
    in_progress: bool = False
    data: Optional[CheckSummaryResponse] = None


class CheckRunResponse(BaseModel):
    """A persisted check run."""
    id: int
    check_run_at: datetime
    servers_checked: int
    servers_overdue: int
    servers_small_file: Optional[int] = 0
    overdue_server_ids: List[int] = []
    threshold_hours: int
    notification_sent: bool
    notification_recipients: List[str] = []
    notification_error: Optional[str] = None

    class Config:
        from_attributes = True


class SuppressRequest(BaseModel):
    """Toggle file size alerts for one backup event."""
    event_id: Optional[int] = None
    suppressed: bool = False


class SmallFileServer(BaseModel):
    id: int
    name: str


class SmallFileEvent(BaseModel):
    """A recent backup event with a file under the small-file threshold."""
    id: int
    created_at: datetime
    backup_database: Optional[str] = None
    backup_file_size: Optional[int] = None
    backup_file_size_alert_suppressed: bool = False
    server: Optional[SmallFileServer] = None
