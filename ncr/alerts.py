from __future__ import annotations

import smtplib
import socket
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from .settings import settings
from .status import STATUS_FAILED, STATUS_PARTIAL, CycleOutcome


def send_email(subject: str, body: str) -> bool:
    """Send an email if SMTP settings are configured.

    Environment variables:
      - NCR_ENABLE_EMAIL=true
      - NCR_SMTP_HOST / NCR_SMTP_PORT
      - NCR_SMTP_USER / NCR_SMTP_PASSWORD
      - NCR_EMAIL_FROM / NCR_EMAIL_TO
    """
    if not settings.enable_email:
        return False
    if not all(
        [
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_user,
            settings.smtp_password,
            settings.email_from,
            settings.email_to,
        ]
    ):
        return False

    try:
        msg = MIMEMultipart()
        msg["From"] = settings.email_from
        msg["To"] = settings.email_to
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))

        server = smtplib.SMTP(settings.smtp_host, settings.smtp_port)
        server.starttls()
        server.login(settings.smtp_user, settings.smtp_password)
        server.sendmail(settings.email_from, [settings.email_to], msg.as_string())
        server.quit()
        return True
    except (OSError, smtplib.SMTPException):
        return False


def notify_cycle(outcome: CycleOutcome) -> bool:
    """Mail the outcome of a cycle that did not fully apply."""
    if outcome.status not in {STATUS_FAILED, STATUS_PARTIAL}:
        return False
    host = socket.gethostname()
    subject = f"NCR {outcome.status.upper()} on {host}"
    lines = [
        f"Host: {host}",
        f"Checksum: {outcome.checksum or '-'}",
        f"Steps failed: {outcome.steps_failed}/{outcome.steps_total}",
        "",
        outcome.description,
    ]
    if outcome.failures:
        lines += ["", "Failures:"] + [f"  - {f}" for f in outcome.failures]
    return send_email(subject, "\n".join(lines))
