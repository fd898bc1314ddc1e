"""
Email service for sending transactional emails.

Supports multiple email providers:
- SMTP (Gmail, custom SMTP)
- SendGrid
- AWS SES (via boto3)
- log (development: the message is written to the log instead of sent)
"""

import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import List, Optional, Union
import logging
from grant_review.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending emails via various providers."""

    def __init__(self, provider: Optional[str] = None):
        """Initialize email service based on configuration."""
        self.provider = (provider or settings.EMAIL_PROVIDER).lower()
        self.from_email = settings.EMAIL_FROM
        self.from_name = settings.EMAIL_FROM_NAME
        self.timeout = settings.NOTIFICATION_TIMEOUT_SECONDS

    def send_email(
        self,
        to_email: Union[str, List[str]],
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email.

        Args:
            to_email: Recipient email address, or a list of addresses
            subject: Email subject
            html_content: HTML email body
            text_content: Plain text email body (optional)

        Returns:
            True if email sent successfully, False otherwise
        """
        recipients = [to_email] if isinstance(to_email, str) else list(to_email)
        if not recipients:
            logger.warning(f"No recipients for email '{subject}'")
            return False

        try:
            if self.provider == 'sendgrid':
                return self._send_via_sendgrid(recipients, subject, html_content, text_content)
            elif self.provider == 'ses':
                return self._send_via_ses(recipients, subject, html_content, text_content)
            elif self.provider == 'log':
                return self._send_via_log(recipients, subject, text_content or html_content)
            else:  # Default to SMTP
                return self._send_via_smtp(recipients, subject, html_content, text_content)
        except Exception as e:
            logger.error(f"Failed to send email to {', '.join(recipients)}: {str(e)}")
            return False

    def _send_via_log(self, recipients: List[str], subject: str, body: str) -> bool:
        """Write the email to the log (development and tests)."""
        logger.info(f"[email:log] to={', '.join(recipients)} subject={subject!r}\n{body}")
        return True

    def _send_via_smtp(
        self,
        recipients: List[str],
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """Send email via SMTP."""
        if not settings.SMTP_USER or not settings.SMTP_PASSWORD:
            logger.error("SMTP credentials not configured")
            return False

        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = ", ".join(recipients)

            if text_content:
                msg.attach(MIMEText(text_content, 'plain'))
            msg.attach(MIMEText(html_content, 'html'))

            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=self.timeout) as server:
                if settings.SMTP_USE_TLS:
                    server.starttls()
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
                server.send_message(msg)

            logger.info(f"Email sent successfully to {', '.join(recipients)}")
            return True

        except Exception as e:
            logger.error(f"SMTP email send failed: {str(e)}")
            return False

    def _send_via_sendgrid(
        self,
        recipients: List[str],
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """Send email via SendGrid."""
        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Mail

        if not settings.SENDGRID_API_KEY:
            logger.error("SendGrid API key not configured - SENDGRID_API_KEY environment variable is empty or missing")
            return False

        message = Mail(
            from_email=(self.from_email, self.from_name),
            to_emails=recipients,
            subject=subject,
            html_content=html_content
        )
        if text_content:
            message.plain_text_content = text_content

        try:
            response = SendGridAPIClient(settings.SENDGRID_API_KEY).send(message)
        except Exception as e:
            logger.error(f"SendGrid email send failed to {', '.join(recipients)}: {str(e)}", exc_info=True)
            return False

        if response.status_code in [200, 201, 202]:
            logger.info(f"SendGrid email sent successfully to {', '.join(recipients)} (status: {response.status_code})")
            return True

        logger.error(
            f"SendGrid email send failed to {', '.join(recipients)}: "
            f"status_code={response.status_code}, body={response.body!r}"
        )
        return False

    def _send_via_ses(
        self,
        recipients: List[str],
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """Send email via AWS SES."""
        import boto3
        from botocore.config import Config
        from botocore.exceptions import BotoCoreError, ClientError

        if not settings.AWS_ACCESS_KEY_ID or not settings.AWS_SECRET_ACCESS_KEY:
            logger.error("AWS credentials not configured")
            return False

        ses_client = boto3.client(
            'ses',
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            config=Config(connect_timeout=self.timeout, read_timeout=self.timeout),
        )

        message = {
            'Subject': {'Data': subject},
            'Body': {
                'Html': {'Data': html_content}
            }
        }
        if text_content:
            message['Body']['Text'] = {'Data': text_content}

        try:
            ses_client.send_email(
                Source=f"{self.from_name} <{self.from_email}>",
                Destination={'ToAddresses': recipients},
                Message=message
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"AWS SES email send failed: {str(e)}")
            return False

        logger.info(f"AWS SES email sent successfully to {', '.join(recipients)}")
        return True
