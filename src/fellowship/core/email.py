"""
Email Service using Resend

Templated notifications for the fellowship workflows. Sending is always
best-effort: ``send_email`` logs and returns False instead of raising, so a
failed notification can never undo the decision it reports.
"""

import asyncio
import logging
from datetime import datetime
from html import escape

import resend

from fellowship.core.config import settings

logger = logging.getLogger(__name__)


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent (or logged, when no API key is configured)
    """
    if not settings.resend_api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        resend.api_key = settings.resend_api_key
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Resend's client is synchronous
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


def _layout(heading: str, body: str, action_url: str | None = None, action_label: str = "") -> str:
    """Wrap a body fragment in the shared email layout. ``body`` must already be escaped."""
    button = (
        f'<a href="{action_url}" class="button">{action_label}</a>'
        f'<p style="word-break: break-all; color: #3b82f6;">{action_url}</p>'
        if action_url
        else ""
    )
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>
            body {{ font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 40px 20px; }}
            .header {{ color: #1e3a8a; margin-bottom: 24px; }}
            .button {{ display: inline-block; background-color: #1e3a8a; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }}
            .info-box {{ background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }}
            .footer {{ margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{heading}</h1>
            {body}
            {button}
            <div class="footer">
                <p>Fellowship Platform</p>
            </div>
        </div>
    </body>
    </html>
    """


def _format_time(value: datetime) -> str:
    return value.strftime("%A, %B %d, %Y at %H:%M UTC")


# ============================================
# Application workflow
# ============================================


async def send_application_submitted(
    to_email: str,
    admin_name: str,
    applicant_name: str,
    applicant_email: str,
    institution_name: str,
    application_id: str,
) -> bool:
    """Tell an institution admin that a new application is waiting for review."""
    safe_applicant_name = escape(applicant_name)
    body = f"""
        <p>Hello {escape(admin_name)},</p>
        <p><strong>{safe_applicant_name}</strong> ({escape(applicant_email)}) has applied to the
        <strong>{escape(institution_name)}</strong> fellowship.</p>
        <p>Review the application from your dashboard:</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"New Fellowship Application from {safe_applicant_name}",
        html_content=_layout(
            "New Fellowship Application",
            body,
            f"{settings.frontend_url}/admin/applications/{application_id}",
            "Review Application",
        ),
    )


async def send_application_approved(
    to_email: str,
    applicant_name: str,
    institution_name: str,
    cohort_name: str | None = None,
) -> bool:
    """Tell a fellow their application was approved."""
    cohort_line = (
        f"<p>You have been placed in the <strong>{escape(cohort_name)}</strong> cohort.</p>"
        if cohort_name
        else ""
    )
    body = f"""
        <p>Dear {escape(applicant_name)},</p>
        <p>Your application to <strong>{escape(institution_name)}</strong> has been approved.</p>
        {cohort_line}
        <p>Sessions, content and messages are available on your dashboard:</p>
    """
    return await send_email(
        to_email=to_email,
        subject="Congratulations! Your Fellowship Application has been Approved",
        html_content=_layout(
            "Welcome to the Fellowship",
            body,
            f"{settings.frontend_url}/fellow",
            "Go to Dashboard",
        ),
    )


async def send_application_rejected(
    to_email: str,
    applicant_name: str,
    institution_name: str,
    review_notes: str | None = None,
) -> bool:
    """Tell a fellow their application was not accepted."""
    notes = (
        f'<div class="info-box"><p>{escape(review_notes)}</p></div>' if review_notes else ""
    )
    body = f"""
        <p>Dear {escape(applicant_name)},</p>
        <p>Thank you for your interest in <strong>{escape(institution_name)}</strong>.
        After careful review, we are unable to offer you a place at this time.</p>
        {notes}
        <p>We encourage you to apply again in the future.</p>
    """
    return await send_email(
        to_email=to_email,
        subject="Update on Your Fellowship Application",
        html_content=_layout("Application Update", body),
    )


# ============================================
# Institution approval workflow
# ============================================


async def send_admin_request_pending(
    to_email: str,
    admin_name: str,
    institution_name: str,
) -> bool:
    """Confirm to a requesting admin that their institution is awaiting review."""
    body = f"""
        <p>Hello {escape(admin_name)},</p>
        <p>We received your request to run <strong>{escape(institution_name)}</strong> on the
        Fellowship Platform. A platform administrator will review it shortly and you will
        receive an email with the decision.</p>
    """
    return await send_email(
        to_email=to_email,
        subject="Your institution request is pending review",
        html_content=_layout("Request Received", body),
    )


async def send_admin_request_received(
    to_email: str,
    requester_name: str,
    requester_email: str,
    institution_name: str,
) -> bool:
    """Ask the root admin to review a new institution."""
    safe_institution_name = escape(institution_name)
    body = f"""
        <p><strong>{escape(requester_name)}</strong> ({escape(requester_email)}) requested admin
        access for a new institution, <strong>{safe_institution_name}</strong>.</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"New institution awaiting approval: {safe_institution_name}",
        html_content=_layout(
            "Institution Review Request",
            body,
            f"{settings.frontend_url}/root-admin/institutions",
            "Review Institutions",
        ),
    )


async def send_institution_approved(
    to_email: str,
    admin_name: str,
    institution_name: str,
) -> bool:
    """Tell an admin their institution was approved."""
    safe_institution_name = escape(institution_name)
    body = f"""
        <p>Hello {escape(admin_name)},</p>
        <p><strong>{safe_institution_name}</strong> has been approved. You can now create
        cohorts, review applications and schedule sessions.</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"{safe_institution_name} has been approved",
        html_content=_layout(
            "Institution Approved",
            body,
            f"{settings.frontend_url}/admin",
            "Open Admin Dashboard",
        ),
    )


async def send_institution_rejected(
    to_email: str,
    admin_name: str,
    institution_name: str,
) -> bool:
    """Tell a requesting admin their institution was not approved."""
    body = f"""
        <p>Hello {escape(admin_name)},</p>
        <p>Your request for <strong>{escape(institution_name)}</strong> was not approved.
        You can sign in again to restart onboarding.</p>
    """
    return await send_email(
        to_email=to_email,
        subject="Update on your institution request",
        html_content=_layout("Institution Request Update", body),
    )


async def send_institution_assigned(
    to_email: str,
    admin_name: str,
    institution_name: str,
) -> bool:
    """Tell a user the root admin made them admin of an institution."""
    safe_institution_name = escape(institution_name)
    body = f"""
        <p>Hello {escape(admin_name)},</p>
        <p>You have been assigned as the administrator of
        <strong>{safe_institution_name}</strong>. Sign in with this email address to get started.</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"You've been assigned as admin of {safe_institution_name}",
        html_content=_layout(
            "Administrator Access",
            body,
            f"{settings.frontend_url}/admin",
            "Sign In",
        ),
    )


# ============================================
# Sessions
# ============================================


async def send_session_updated(
    to_email: str,
    fellow_name: str,
    session_title: str,
    changes: list[str],
    meeting_link: str | None = None,
) -> bool:
    """Send a fellow the list of changes made to a session."""
    safe_title = escape(session_title)
    items = "".join(f"<li>{escape(change)}</li>" for change in changes)
    body = f"""
        <p>Hello {escape(fellow_name)},</p>
        <p>The session <strong>{safe_title}</strong> has been updated:</p>
        <div class="info-box"><ul>{items}</ul></div>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Session updated: {safe_title}",
        html_content=_layout("Session Updated", body, meeting_link, "Join Meeting"),
    )


async def send_session_cancelled(
    to_email: str,
    fellow_name: str,
    session_title: str,
    start_time: datetime,
    reason: str,
) -> bool:
    """Tell a fellow a session was cancelled and why."""
    safe_title = escape(session_title)
    body = f"""
        <p>Hello {escape(fellow_name)},</p>
        <p>The session <strong>{safe_title}</strong> scheduled for {_format_time(start_time)}
        has been cancelled.</p>
        <div class="info-box"><p><strong>Reason:</strong> {escape(reason)}</p></div>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Session cancelled: {safe_title}",
        html_content=_layout("Session Cancelled", body),
    )


# ============================================
# Invitations
# ============================================


async def send_fellowship_invitation(
    to_email: str,
    inviter_name: str,
    institution_name: str,
    message: str | None = None,
) -> bool:
    """Invite someone to apply to an institution's fellowship."""
    safe_institution_name = escape(institution_name)
    personal_note = f'<div class="info-box"><p>{escape(message)}</p></div>' if message else ""
    body = f"""
        <p><strong>{escape(inviter_name)}</strong> invited you to join the
        <strong>{safe_institution_name}</strong> fellowship.</p>
        {personal_note}
    """
    return await send_email(
        to_email=to_email,
        subject=f"You've been invited to join {safe_institution_name}",
        html_content=_layout(
            "Fellowship Invitation",
            body,
            f"{settings.frontend_url}/fellow/fellowships",
            "View Fellowships",
        ),
    )
