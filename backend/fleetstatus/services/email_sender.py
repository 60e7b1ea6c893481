"""Email sender service - delivers alert emails via SMTP."""
import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import List, Optional

from ..config import settings

logger = logging.getLogger(__name__)


@dataclass
class EmailConfig:
    """SMTP configuration for sending emails."""
    host: str
    port: int
    username: str = ""
    password: str = ""
    use_tls: bool = True
    from_address: str = ""
    from_name: str = ""
    timeout: float = 30.0  # SMTP socket timeout in seconds


@dataclass
class SendResult:
    """Outcome of a delivery attempt."""
    success: bool
    error: Optional[str] = None


def email_config_from_settings() -> EmailConfig:
    """Build the SMTP config from environment settings."""
    return EmailConfig(
        host=settings.smtp_host or "",
        port=settings.smtp_port,
        username=settings.smtp_username or "",
        password=settings.smtp_password or "",
        use_tls=settings.smtp_use_tls,
        from_address=settings.alert_email_from or "",
        from_name=settings.alert_email_from_name,
    )


class EmailSenderService:
    """Service for sending email alerts via SMTP."""

    def _build_message(
        self,
        config: EmailConfig,
        recipients: List[str],
        subject: str,
        text_body: str,
        html_body: Optional[str],
    ) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((config.from_name, self._from_address(config)))
        msg["To"] = ", ".join(recipients)  # Header shows all recipients
        # Plain text first so clients prefer the HTML part when they can render it
        msg.attach(MIMEText(text_body, "plain"))
        if html_body:
            msg.attach(MIMEText(html_body, "html"))
        return msg

    def _from_address(self, config: EmailConfig) -> str:
        return config.from_address or config.username

    def _deliver(self, config: EmailConfig, recipients: List[str], msg: MIMEMultipart) -> None:
        """Blocking SMTP delivery; runs in a worker thread."""
        with smtplib.SMTP(config.host, config.port, timeout=config.timeout) as server:
            if config.use_tls:
                logger.debug(f"Connected to {config.host}:{config.port}, starting TLS...")
                server.starttls(context=ssl.create_default_context())
            if config.username and config.password:
                server.login(config.username, config.password)
            server.sendmail(self._from_address(config), recipients, msg.as_string())

    async def send_email(
        self,
        config: EmailConfig,
        recipients: List[str],
        subject: str,
        text_body: str,
        html_body: Optional[str] = None,
    ) -> SendResult:
        """Send one message addressed to every recipient.

        Never raises for delivery problems; the failure is returned in the result.
        """
        logger.info(f"Attempting to send email: {subject}")

        if not config.host:
            logger.warning("Email not configured - missing SMTP host")
            return SendResult(False, "SMTP host is not configured")

        recipients = [addr.strip() for addr in recipients if addr and addr.strip()]
        if not recipients:
            logger.warning("No valid recipients for email")
            return SendResult(False, "No email recipients provided")

        msg = self._build_message(config, recipients, subject, text_body, html_body)

        try:
            await asyncio.to_thread(self._deliver, config, recipients, msg)
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed for user '{config.username}': {e}")
            return SendResult(False, f"SMTP authentication failed: {e}")
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(f"Recipients refused by server: {e}")
            return SendResult(False, f"Recipients refused: {e}")
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {type(e).__name__}: {e}")
            return SendResult(False, f"SMTP error: {type(e).__name__}: {e}")
        except (ConnectionRefusedError, TimeoutError) as e:
            logger.error(f"Could not reach {config.host}:{config.port}: {e}")
            return SendResult(False, f"Could not reach SMTP server: {e}")
        except OSError as e:
            logger.error(f"Network error sending email: {type(e).__name__}: {e}")
            return SendResult(False, f"Network error: {e}")

        logger.info(f"Email sent successfully to {len(recipients)} recipient(s): {subject}")
        return SendResult(True)


# Global instance
email_sender_service = EmailSenderService()
