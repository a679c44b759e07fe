"""Service for sending emails."""

import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

logger = logging.getLogger(__name__)

_PLAN_LABELS = {"monthly": "Monthly", "annual": "Annual"}


class EmailService:
    """Service for sending emails via SMTP."""

    def __init__(
        self,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_username: str = "",
        smtp_password: str = "",
        from_email: str = "",
        from_name: str = "Billing",
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.from_email = from_email
        self.from_name = from_name
        self.enabled = bool(self.smtp_host and self.smtp_username and self.from_email)

    def send_purchase_confirmation(
        self,
        to_email: str,
        plan: str,
        current_period_end: Optional[datetime],
    ) -> bool:
        """
        Send a purchase confirmation after a successful checkout.

        Args:
            to_email: Recipient email
            plan: Plan the user subscribed to
            current_period_end: When the first paid period ends, if known

        Returns:
            True if sent (or logged in development), False otherwise
        """
        plan_label = _PLAN_LABELS.get(plan, plan.title())
        renewal = current_period_end.strftime("%B %d, %Y") if current_period_end else None
        renewal_line = f"Your subscription renews on {renewal}." if renewal else ""

        if not self.enabled:
            logger.info(
                "SMTP not configured; purchase confirmation for %s (plan=%s, renews=%s) not sent",
                to_email,
                plan,
                renewal or "unknown",
            )
            return True

        subject = f"Your {plan_label} Premium subscription is active"
        html_body = f"""
        <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2 style="color: #1e293b;">Thanks for upgrading to Premium!</h2>
                <p style="color: #475569; line-height: 1.6;">
                    Your <strong>{plan_label}</strong> plan is now active and you have unlimited access.
                </p>
                <p style="color: #475569; line-height: 1.6;">{renewal_line}</p>
                <p style="color: #64748b; font-size: 14px; margin-top: 30px;">
                    You can manage or cancel your subscription at any time from your account settings.
                </p>
            </body>
        </html>
        """

        text_body = f"""
        Thanks for upgrading to Premium!

        Your {plan_label} plan is now active and you have unlimited access.
        {renewal_line}

        You can manage or cancel your subscription at any time from your account settings.
        """

        return self._send_email(to_email, subject, html_body, text_body)

    def _send_email(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        """
        Send an email via SMTP.

        Returns:
            True if sent successfully, False otherwise
        """
        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = f"{self.from_name} <{self.from_email}>"
            msg["To"] = to_email

            msg.attach(MIMEText(text_body, "plain", "utf-8"))
            msg.attach(MIMEText(html_body, "html", "utf-8"))

            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)

            logger.info("Purchase confirmation sent to %s", to_email)
            return True

        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s: %s", to_email, exc)
            return False
