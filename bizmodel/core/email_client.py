# bizmodel/core/email_client.py
"""
SMTP transport for transactional email.

Responsibilities:
  - Read SMTP configuration from Settings (SMTP_* env vars).
  - Provide a single send_email(...) function for the email service to use.
  - Support both TLS (STARTTLS) and SSL connections.

Typical .env configuration:

    SMTP_HOST=smtp.example.com
    SMTP_PORT=465
    SMTP_USERNAME=team@bizmodelai.com
    SMTP_PASSWORD=...
    SMTP_FROM_EMAIL=team@bizmodelai.com
    SMTP_FROM_NAME=BizModelAI
    SMTP_USE_TLS=false
    SMTP_USE_SSL=true

This module raises on failure. Callers that must not be blocked by email
(receipts, welcome mail) go through services/email_service.py, which logs
and swallows transport errors.
"""

import smtplib
from email.message import EmailMessage

from bizmodel.core.config import Settings, get_settings


def is_configured(settings: Settings) -> bool:
    return bool(settings.SMTP_HOST and settings.SMTP_USERNAME and settings.SMTP_PASSWORD)


def _create_smtp_client(settings: Settings) -> smtplib.SMTP:
    """
    Create and return an SMTP client configured for TLS or SSL.

    Typical configs:
      * SSL: SMTP_PORT=465, SMTP_USE_SSL=true,  SMTP_USE_TLS=false
      * TLS: SMTP_PORT=587, SMTP_USE_SSL=false, SMTP_USE_TLS=true
    """
    if settings.SMTP_USE_SSL:
        server: smtplib.SMTP = smtplib.SMTP_SSL(
            settings.SMTP_HOST, settings.SMTP_PORT, timeout=30
        )
    else:
        server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30)
        if settings.SMTP_USE_TLS:
            server.starttls()
    return server


def send_email(
    to_email: str,
    subject: str,
    text_body: str,
    html_body: str | None = None,
    settings: Settings | None = None,
) -> None:
    """
    Send an email to a single recipient.

    Raises
    ------
    RuntimeError:
        If required SMTP configuration is missing.
    smtplib.SMTPException / OSError:
        If the underlying SMTP connection or send fails.
    """
    settings = settings or get_settings()
    if not is_configured(settings):
        raise RuntimeError(
            "SMTP is not configured. "
            "Set SMTP_HOST, SMTP_USERNAME, and SMTP_PASSWORD in .env."
        )

    from_email = settings.SMTP_FROM_EMAIL or settings.SMTP_USERNAME

    msg = EmailMessage()
    msg["From"] = f"{settings.SMTP_FROM_NAME} <{from_email}>"
    msg["To"] = to_email
    msg["Subject"] = subject

    # Plain text first, HTML as the alternative part
    msg.set_content(text_body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")

    server = _create_smtp_client(settings)
    try:
        server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)  # type: ignore[arg-type]
        server.send_message(msg)
    finally:
        try:
            server.quit()
        except smtplib.SMTPException:
            # Connection is being torn down anyway.
            pass
