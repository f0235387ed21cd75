# bizmodel/services/email_service.py
import smtplib
from typing import Any, Protocol

from bizmodel.core import email_client
from bizmodel.core.config import Settings, get_settings
from bizmodel.core.logging import get_logger

logger = get_logger(__name__)

TEMPLATE_WELCOME = "welcome"
TEMPLATE_PAYMENT_RECEIPT = "payment-receipt"
TEMPLATE_PASSWORD_RESET = "password-reset"


class EmailSender(Protocol):
    def send(self, template: str, recipient: str, data: dict[str, Any]) -> bool: ...


def _format_cents(amount_cents: int, currency: str) -> str:
    return f"{amount_cents / 100:.2f} {currency.upper()}"


class EmailService:
    """
    Best-effort transactional email.

    send() never raises: failures are logged and reported as False, so a
    receipt that cannot be delivered never undoes the payment it describes.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def send(self, template: str, recipient: str, data: dict[str, Any]) -> bool:
        try:
            subject, text_body = self._render(template, data)
        except KeyError as e:
            logger.error("Email template %s missing field %s", template, e)
            return False

        if not email_client.is_configured(self.settings):
            logger.warning("SMTP not configured; skipping %s email", template)
            return False

        try:
            email_client.send_email(recipient, subject, text_body, settings=self.settings)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send %s email: %s", template, e)
            return False

        logger.info("Sent %s email", template)
        return True

    def _render(self, template: str, data: dict[str, Any]) -> tuple[str, str]:
        name = data.get("name") or "there"

        if template == TEMPLATE_WELCOME:
            return (
                "Welcome to BizModelAI",
                f"Hi {name},\n\n"
                "Your account is ready and your full report is unlocked.\n"
                f"Log in any time at {self.settings.FRONTEND_URL}.\n",
            )

        if template == TEMPLATE_PAYMENT_RECEIPT:
            amount = _format_cents(data["amount_cents"], data["currency"])
            return (
                "Your BizModelAI receipt",
                f"Hi {name},\n\n"
                f"We received your payment of {amount} ({data['purpose']}).\n"
                f"Payment reference: {data['payment_id']}\n",
            )

        if template == TEMPLATE_PASSWORD_RESET:
            link = f"{self.settings.FRONTEND_URL}/reset-password?token={data['token']}"
            return (
                "Reset your BizModelAI password",
                f"Hi {name},\n\n"
                f"Use this link to choose a new password (valid for "
                f"{self.settings.PASSWORD_RESET_TTL_MINUTES} minutes):\n{link}\n\n"
                "If you did not ask for this, you can ignore this email.\n",
            )

        raise KeyError(template)


def get_email_sender() -> EmailSender:
    """FastAPI dependency; tests override it with a recording sender."""
    return EmailService()
