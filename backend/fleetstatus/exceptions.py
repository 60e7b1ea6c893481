"""Application errors: backup check failures and incident notification conflicts."""


class BackupCheckError(Exception):
    """Base class for fatal backup check failures."""


class ConfigurationMissing(BackupCheckError):
    """The singleton backup monitoring configuration row is absent or duplicated."""

    def __init__(self, detail: str = "Configuration not found"):
        super().__init__(detail)
        self.detail = detail


class UpstreamReadFailure(BackupCheckError):
    """Reading the configuration, servers or events from the store failed."""

    def __init__(self, collaborator: str, detail: str):
        super().__init__(f"Failed to fetch {collaborator}: {detail}")
        self.collaborator = collaborator
        self.detail = detail


class IncidentAlreadyNotified(Exception):
    """Subscribers were already emailed about this incident."""

    def __init__(self, incident_id: int):
        super().__init__("Notifications already sent for this incident")
        self.incident_id = incident_id
