"""Backup alert dispatcher - formats and sends the batched backup alert email."""
import html
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional

from ..config import settings
from ..utils.clock import utcnow
from ..utils.formatters import (
    format_date,
    format_file_size,
    format_timestamp,
    plural,
    review_status_text,
)
from .email_sender import SendResult, email_config_from_settings, email_sender_service

logger = logging.getLogger(__name__)

# Five or more alerted servers escalates the alert to critical
CRITICAL_SERVER_COUNT = 5
UNKNOWN_HOST = "Unknown Host"


@dataclass
class AlertedServer:
    """A monitored server that is overdue or has a suspiciously small backup."""
    id: int
    name: str
    ip_address: Optional[str]
    host_name: Optional[str]
    last_backup_at: Optional[datetime]
    last_backup_database: Optional[str]
    hours_since_backup: Optional[int]
    file_size: Optional[int]
    file_size_mb: Optional[float]
    is_small_file: bool
    reason: str  # overdue, small_file


@dataclass
class ServerDueForReview:
    """An excluded server whose monitoring review date is near or past."""
    id: int
    name: str
    host_name: Optional[str]
    backup_monitoring_disabled_reason: Optional[str]
    backup_monitoring_review_date: date
    days_until_review: int


def group_by_host(servers: List[AlertedServer]) -> Dict[str, List[AlertedServer]]:
    """Group servers by host name; hosts and servers are sorted alphabetically."""
    grouped = defaultdict(list)
    for server in servers:
        grouped[server.host_name or UNKNOWN_HOST].append(server)
    return {
        host: sorted(grouped[host], key=lambda s: s.name.lower())
        for host in sorted(grouped)
    }


def build_subject(alerted_count: int, review_count: int) -> str:
    emoji = "\U0001F534" if alerted_count >= CRITICAL_SERVER_COUNT else "⚠️"
    parts = []
    if alerted_count:
        parts.append(f"{alerted_count} Server(s) Overdue")
    if review_count:
        parts.append(f"{review_count} Review(s) Due")
    return f"{emoji} Backup Alert: {', '.join(parts)}"


def _hours_text(server: AlertedServer) -> str:
    if server.hours_since_backup is None:
        return "No backup recorded"
    return f"{server.hours_since_backup}h ago"


def _status_class(server: AlertedServer, threshold_hours: int) -> str:
    if server.hours_since_backup is None or server.hours_since_backup > threshold_hours * 2:
        return "status-critical"
    return "status-warning"


def build_text_body(
    servers: List[AlertedServer],
    threshold_hours: int,
    servers_due_for_review: List[ServerDueForReview],
    checked_at: datetime,
) -> str:
    lines = [
        "Backup Monitoring Alert",
        "=" * 40,
        "",
    ]

    if servers:
        lines.append(
            f"{plural(len(servers), 'server')} need attention "
            f"(threshold: {threshold_hours} hours)."
        )
        for host, host_servers in group_by_host(servers).items():
            lines.append("")
            lines.append(f"{host} ({plural(len(host_servers), 'server')})")
            lines.append("-" * 40)
            for server in host_servers:
                ip = f" [{server.ip_address}]" if server.ip_address else ""
                size = format_file_size(server.file_size)
                flag = " (SMALL FILE)" if server.is_small_file else ""
                lines.append(f"  {server.name}{ip}")
                lines.append(f"    Last database: {server.last_backup_database or '-'}")
                lines.append(
                    f"    Last backup: {_hours_text(server)} "
                    f"({format_timestamp(server.last_backup_at)})"
                )
                lines.append(f"    File size: {size}{flag}")

    if servers_due_for_review:
        lines.append("")
        lines.append("--- Servers Due for Review ---")
        for review in servers_due_for_review:
            lines.append(
                f"  {review.name} ({review.host_name or 'No Host'}): "
                f"{review_status_text(review.days_until_review)} "
                f"[{format_date(review.backup_monitoring_review_date)}]"
            )
            lines.append(f"    Reason: {review.backup_monitoring_disabled_reason or '-'}")

    lines.append("")
    lines.append(f"Dashboard: {settings.app_url}/dashboard")
    lines.append(f"Threshold: {threshold_hours} hours | Check time: {format_timestamp(checked_at)}")
    lines.append("")
    lines.append("--")
    lines.append("Server Monitor - Backup Alert System")
    return "\n".join(lines)


def build_html_body(
    servers: List[AlertedServer],
    threshold_hours: int,
    servers_due_for_review: List[ServerDueForReview],
    checked_at: datetime,
) -> str:
    esc = html.escape
    critical = len(servers) >= CRITICAL_SERVER_COUNT
    header_color = "#c0392b" if critical else "#e67e22"

    rows = []
    for host, host_servers in group_by_host(servers).items():
        rows.append(
            f'<tr class="host-header-row"><td colspan="4"><strong>{esc(host)}</strong> '
            f'({plural(len(host_servers), "server")})</td></tr>'
        )
        for server in host_servers:
            ip = f'<div class="server-ip">{esc(server.ip_address)}</div>' if server.ip_address else ""
            size_class = "status-warning" if server.is_small_file else ""
            size_flag = " ⚠️" if server.is_small_file else ""
            rows.append(
                '<tr class="server-row">'
                f'<td><strong>{esc(server.name)}</strong>{ip}</td>'
                f'<td>{esc(server.last_backup_database or "-")}</td>'
                f'<td class="{_status_class(server, threshold_hours)}"><strong>{_hours_text(server)}</strong>'
                f'<div>{format_timestamp(server.last_backup_at)}</div></td>'
                f'<td class="{size_class}"><strong>{format_file_size(server.file_size)}{size_flag}</strong></td>'
                '</tr>'
            )

    servers_html = ""
    if servers:
        servers_html = (
            f'<p><strong>{plural(len(servers), "server")} not backed up within the last '
            f'{threshold_hours} hours or with a suspiciously small backup.</strong></p>'
            '<table class="servers-table"><thead><tr><th>Server</th><th>Last Database</th>'
            '<th>Time Since Backup</th><th>File Size</th></tr></thead>'
            f'<tbody>{"".join(rows)}</tbody></table>'
        )

    review_html = ""
    if servers_due_for_review:
        review_rows = []
        for review in servers_due_for_review:
            status_class = ""
            if review.days_until_review < 0:
                status_class = "status-critical"
            elif review.days_until_review <= 3:
                status_class = "status-warning"
            review_rows.append(
                '<tr class="server-row">'
                f'<td><strong>{esc(review.name)}</strong><div>{esc(review.host_name or "No Host")}</div></td>'
                f'<td>{esc(review.backup_monitoring_disabled_reason or "-")}</td>'
                f'<td>{format_date(review.backup_monitoring_review_date)}</td>'
                f'<td class="{status_class}">{review_status_text(review.days_until_review)}</td>'
                '</tr>'
            )
        review_html = (
            '<h2>Servers Due for Review</h2>'
            f'<p>{plural(len(servers_due_for_review), "server")} due for backup monitoring review. '
            'Please review whether backup monitoring should be re-enabled.</p>'
            '<table class="servers-table"><thead><tr><th>Server</th><th>Reason</th>'
            '<th>Review Date</th><th>Status</th></tr></thead>'
            f'<tbody>{"".join(review_rows)}</tbody></table>'
        )

    return (
        '<!DOCTYPE html><html><head><meta charset="utf-8"><style>'
        'body { font-family: Arial, sans-serif; color: #333; }'
        f'.header {{ background: {header_color}; color: white; padding: 20px; }}'
        '.servers-table { width: 100%; border-collapse: collapse; }'
        '.servers-table td, .servers-table th { padding: 8px; border-bottom: 1px solid #e9ecef; text-align: left; }'
        '.host-header-row { background: #f8f9fa; }'
        '.server-ip { font-size: 11px; color: #999; font-family: monospace; }'
        '.status-warning { color: #f39c12; } .status-critical { color: #e74c3c; }'
        '</style></head><body>'
        '<div class="header"><h1>Backup Monitoring Alert</h1></div>'
        f'<div class="content">{servers_html}{review_html}'
        f'<p><a href="{esc(settings.app_url)}/dashboard">View Dashboard</a></p></div>'
        f'<div class="footer"><p>Threshold: {threshold_hours} hours | '
        f'Check time: {format_timestamp(checked_at)}</p></div>'
        '</body></html>'
    )


class BackupAlertDispatcher:
    """Sends one aggregated backup alert email to all recipients."""

    def __init__(self, sender=None, config_factory=email_config_from_settings):
        self.sender = sender or email_sender_service
        self.config_factory = config_factory

    async def send(
        self,
        recipients: List[str],
        overdue_servers: List[AlertedServer],
        threshold_hours: int,
        servers_due_for_review: Optional[List[ServerDueForReview]] = None,
        timeout: Optional[float] = None,
    ) -> SendResult:
        """Send the batched alert.

        A timeout, when given, caps the SMTP socket timeout.
        """
        servers_due_for_review = servers_due_for_review or []

        if not recipients:
            return SendResult(False, "No email recipients provided")
        if not overdue_servers and not servers_due_for_review:
            return SendResult(False, "No overdue servers provided")

        checked_at = utcnow()
        subject = build_subject(len(overdue_servers), len(servers_due_for_review))
        text_body = build_text_body(overdue_servers, threshold_hours, servers_due_for_review, checked_at)
        html_body = build_html_body(overdue_servers, threshold_hours, servers_due_for_review, checked_at)

        config = self.config_factory()
        if timeout is not None:
            config.timeout = min(config.timeout, timeout)

        result = await self.sender.send_email(
            config, list(recipients), subject, text_body, html_body
        )
        if not result.success:
            logger.error(f"Failed to send backup alert email: {result.error}")
        return result


# Global instance
backup_alert_dispatcher = BackupAlertDispatcher()
