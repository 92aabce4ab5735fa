"""Email service for password reset links."""

from urllib.parse import quote

import structlog

from gatehouse.config import get_settings

logger = structlog.get_logger(__name__)

RESET_PATH = "/admin/reset-password"


def build_reset_link(base_url: str, token: str) -> str:
    """Build the link a user follows to reset their password."""
    return f"{base_url.rstrip('/')}{RESET_PATH}?token={quote(token, safe='')}"


class EmailService:
    """Service for sending account emails over SMTP."""

    async def send_password_reset_email(self, to_email: str, token: str) -> bool:
        """Send a password reset email via SMTP.

        Returns True on success, False on failure.
        """
        settings = get_settings()

        try:
            import aiosmtplib

            link = build_reset_link(settings.base_url, token)
            body = (
                "A password reset was requested for your account.\n\n"
                f"Follow this link to choose a new password:\n{link}\n\n"
                "The link expires in 30 minutes. If you did not request a reset, "
                "you can ignore this email."
            )

            message = (
                f"From: {settings.smtp_from}\r\n"
                f"To: {to_email}\r\n"
                f"Subject: [{settings.app_name}] Password reset\r\n"
                f"Content-Type: text/plain; charset=utf-8\r\n"
                f"\r\n"
                f"{body}"
            )

            await aiosmtplib.send(
                message,
                sender=settings.smtp_from,
                recipients=[to_email],
                hostname=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_username or None,
                password=settings.smtp_password or None,
                use_tls=settings.smtp_use_tls,
            )

            logger.info("password_reset_email_sent", to=to_email)
            return True

        except Exception as e:
            logger.error("password_reset_email_failed", to=to_email, error=str(e))
            return False
