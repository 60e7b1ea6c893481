"""Status schemas - dashboard overview, public status page, and subscriptions."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class LastCheckRun(BaseModel):
    check_run_at: datetime
    servers_checked: int
    servers_overdue: int
    notification_sent: bool


class StatusOverview(BaseModel):
    """Dashboard overview data."""
    total_servers: int
    servers_up: int
    servers_down: int
    servers_degraded: int
    servers_maintenance: int
    servers_excluded_from_backup_monitoring: int
    backup_monitoring_enabled: bool
    backup_monitoring_last_check_at: Optional[datetime] = None
    last_check_run: Optional[LastCheckRun] = None


class ServerCounts(BaseModel):
    up: int = 0
    down: int = 0
    degraded: int = 0
    maintenance: int = 0
    unknown: int = 0
    total: int = 0


class StatusPageBranding(BaseModel):
    company_name: str
    support_email: Optional[str] = None
    support_url: Optional[str] = None
    show_uptime_percentage: bool = True


class PublicIncidentUpdate(BaseModel):
    id: int
    message: str
    update_type: str
    created_at: datetime


class PublicIncident(BaseModel):
    """An incident as shown on the public status page."""
    id: int
    title: str
    description: str
    incident_type: str
    severity: str
    status: str
    started_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    affected_host_names: List[str] = []
    updates: List[PublicIncidentUpdate] = []


class PublicStatus(BaseModel):
    """Public status page payload."""
    status: str  # operational, degraded, outage, maintenance
    config: StatusPageBranding
    servers: ServerCounts
    uptime_percentage: Optional[str] = None
    active_incidents: List[PublicIncident] = []
    resolved_incidents: List[PublicIncident] = []
    last_updated: datetime


class SubscribeRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=320)
    company: Optional[str] = Field(None, max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value):
        value = value.strip()
        local, _, domain = value.partition("@")
        if not local or " " in value or "." not in domain.strip("."):
            raise ValueError("Invalid email address")
        return value.lower()
