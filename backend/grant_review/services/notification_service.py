"""
Applicant and staff notifications for the review pipeline.

The release batcher depends only on the DecisionNotifier protocol
(``send(contact_email, summary) -> bool``); EmailDecisionNotifier is the
production implementation on top of EmailService.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol
import logging

from grant_review.core.config import settings
from grant_review.db.enums import LOIStatus
from grant_review.services.email_service import EmailService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecisionSummary:
    """What the applicant is told when an LOI decision is released."""
    loi_id: int
    decision: LOIStatus
    project_title: str
    organization_name: str
    application_id: Optional[int] = None
    decision_reason: Optional[str] = None
    full_app_deadline: Optional[datetime] = None


class DecisionNotifier(Protocol):
    def send(self, contact_email: str, summary: DecisionSummary) -> bool:
        ...


class EmailDecisionNotifier:
    """Sends LOI decision emails through EmailService."""

    def __init__(self, email_service: Optional[EmailService] = None):
        self.email_service = email_service or EmailService()

    def send(self, contact_email: str, summary: DecisionSummary) -> bool:
        if summary.decision == LOIStatus.APPROVED:
            subject, html, text = render_loi_approved(summary)
        elif summary.decision == LOIStatus.DECLINED:
            subject, html, text = render_loi_declined(summary)
        else:
            raise ValueError(f"LOI {summary.loi_id} has no releasable decision ({summary.decision})")
        return self.email_service.send_email(contact_email, subject, html, text)


def _format_deadline(deadline: Optional[datetime]) -> Optional[str]:
    if deadline is None:
        return None
    return f"{deadline:%B} {deadline.day}, {deadline.year}"


def render_loi_approved(summary: DecisionSummary):
    """Return (subject, html, text) for an approved LOI."""
    project = summary.project_title or "your project"
    app_link = f"{settings.APP_URL}/applications/{summary.application_id}/edit"
    deadline = _format_deadline(summary.full_app_deadline)
    deadline_html = (
        f'<p><strong>Important:</strong> Please complete your full application by <strong>{deadline}</strong>.</p>'
        if deadline else ''
    )
    deadline_text = f"Please complete your full application by {deadline}.\n" if deadline else ""

    subject = f"LOI Approved: {summary.project_title or summary.organization_name}"
    html = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #374151; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            .button {{ display: inline-block; padding: 12px 30px; background-color: #059669; color: white; text-decoration: none; border-radius: 6px; }}
            .footer {{ margin-top: 30px; font-size: 12px; color: #6b7280; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h2>LOI Approved!</h2>
            <p>Great news! Your Letter of Interest for <strong>{project}</strong> has been approved.</p>
            <p>You may now proceed to complete your full grant application. We've pre-filled some information from your LOI to make the process easier.</p>
            {deadline_html}
            <a href="{app_link}" class="button">Complete Full Application</a>
            <p>If you have any questions, please contact us at {settings.SUPPORT_EMAIL}</p>
            <div class="footer">
                <p>{settings.FOUNDATION_NAME} Grant Portal</p>
            </div>
        </div>
    </body>
    </html>
    """
    text = (
        f"LOI Approved\n\n"
        f"Great news! Your Letter of Interest for {project} has been approved.\n\n"
        f"You may now proceed to complete your full grant application:\n{app_link}\n\n"
        f"{deadline_text}"
        f"If you have any questions, please contact us at {settings.SUPPORT_EMAIL}\n\n"
        f"{settings.FOUNDATION_NAME} Grant Portal\n"
    )
    return subject, html, text


def render_loi_declined(summary: DecisionSummary):
    """Return (subject, html, text) for a declined LOI."""
    project = summary.project_title or "your project"
    reason_html = (
        f'<div class="reason"><p><strong>Feedback from reviewer:</strong></p><p>{summary.decision_reason}</p></div>'
        if summary.decision_reason else ''
    )
    reason_text = f"Feedback from reviewer:\n{summary.decision_reason}\n\n" if summary.decision_reason else ""

    subject = f"LOI Update: {summary.project_title or summary.organization_name}"
    html = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #374151; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            .reason {{ background-color: #fef2f2; border-left: 4px solid #ef4444; padding: 15px; margin: 20px 0; }}
            .footer {{ margin-top: 30px; font-size: 12px; color: #6b7280; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h2>LOI Update</h2>
            <p>Thank you for your interest in the {settings.FOUNDATION_NAME}. After careful review, we regret to inform you that your Letter of Interest for <strong>{project}</strong> has not been selected to move forward at this time.</p>
            {reason_html}
            <p>We encourage you to apply again in future grant cycles. If you have questions about this decision, please contact us.</p>
            <div class="footer">
                <p>{settings.FOUNDATION_NAME} Grant Portal</p>
            </div>
        </div>
    </body>
    </html>
    """
    text = (
        f"LOI Update\n\n"
        f"Thank you for your interest in the {settings.FOUNDATION_NAME}. After careful review, "
        f"your Letter of Interest for {project} has not been selected to move forward at this time.\n\n"
        f"{reason_text}"
        f"We encourage you to apply again in future grant cycles.\n\n"
        f"{settings.FOUNDATION_NAME} Grant Portal\n"
    )
    return subject, html, text


def send_loi_submitted_to_staff(
    loi_id: int,
    project_title: Optional[str],
    organization_name: str,
    contact_email: Optional[str],
    request_amount: Optional[Decimal],
    staff_emails: List[str],
    email_service: Optional[EmailService] = None,
) -> bool:
    """
    Tell foundation staff a new LOI is ready for review.

    Returns:
        True if email sent successfully, False otherwise
    """
    if not staff_emails:
        logger.warning("No staff emails configured for LOI submission notification")
        return False

    amount = f"${request_amount:,.2f}" if request_amount is not None else "Not specified"
    review_link = f"{settings.APP_URL}/reviewer/lois/{loi_id}"
    subject = f"New LOI Submitted: {organization_name}"
    html = f"""
    <!DOCTYPE html>
    <html>
    <body style="font-family: Arial, sans-serif; color: #374151;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2>New Letter of Interest</h2>
            <p>A new Letter of Interest has been submitted and is ready for review.</p>
            <p><strong>Organization:</strong> {organization_name}</p>
            <p><strong>Project Title:</strong> {project_title or 'Not specified'}</p>
            <p><strong>Request Amount:</strong> {amount}</p>
            <p><strong>Contact Email:</strong> {contact_email or 'Not provided'}</p>
            <p><a href="{review_link}">Review LOI</a></p>
        </div>
    </body>
    </html>
    """
    text = (
        f"New Letter of Interest\n\n"
        f"Organization: {organization_name}\n"
        f"Project Title: {project_title or 'Not specified'}\n"
        f"Request Amount: {amount}\n"
        f"Contact Email: {contact_email or 'Not provided'}\n\n"
        f"Review: {review_link}\n"
    )
    return (email_service or EmailService()).send_email(staff_emails, subject, html, text)
