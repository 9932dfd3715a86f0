"""Out-of-band delivery of password reset links."""

from email.message import EmailMessage
from typing import Protocol
from urllib.parse import urlencode

import aiosmtplib
import structlog

from fleetauth.config import Settings
from fleetauth.models.user import User

logger = structlog.get_logger(__name__)


class ResetDelivery(Protocol):
    """Hands a raw reset secret to its owner. Returns True when delivered."""

    async def send_password_reset(self, user: User, raw_token: str) -> bool:
        ...


def build_reset_link(base_url: str, raw_token: str) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'token': raw_token})}"


class EmailService:
    """Sends password reset emails via SMTP."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def build_password_reset_message(self, user: User, raw_token: str) -> EmailMessage:
        link = build_reset_link(self.settings.password_reset_url, raw_token)
        ttl_label = self.settings.password_reset_expires_in

        message = EmailMessage()
        message["From"] = self.settings.email_from
        message["To"] = user.email
        message["Subject"] = "Reset your password"
        message.set_content(
            f"Hello {user.first_name},\n\n"
            f"We received a request to reset your password. "
            f"Open the link below to choose a new one (valid for {ttl_label}):\n\n"
            f"{link}\n\n"
            f"If you did not request this, you can ignore this email; "
            f"your password will not change.\n"
        )
        return message

    async def send_password_reset(self, user: User, raw_token: str) -> bool:
        """Send the reset link to the user's email address.

        Returns True on success, False on failure.
        """
        message = self.build_password_reset_message(user, raw_token)

        try:
            await aiosmtplib.send(
                message,
                hostname=self.settings.smtp_host,
                port=self.settings.smtp_port,
                username=self.settings.smtp_username or None,
                password=self.settings.smtp_password or None,
                use_tls=self.settings.smtp_use_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(
                "password_reset_email_failed",
                user_id=str(user.id),
                error=str(e),
            )
            return False

        logger.info("password_reset_email_sent", user_id=str(user.id))
        return True


class LogOnlyResetDelivery:
    """Delivery used when email is disabled: records that a reset was issued.

    The secret itself is never logged.
    """

    async def send_password_reset(self, user: User, raw_token: str) -> bool:
        logger.info(
            "password_reset_delivery_skipped",
            user_id=str(user.id),
            reason="email_disabled",
        )
        return False
