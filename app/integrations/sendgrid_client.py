import sendgrid
from sendgrid.helpers.mail import Mail, Email, To, Content
from html import escape
from typing import Dict, Optional
from config.config import Config
from app.utils.logger import get_logger

logger = get_logger(__name__)

BRAND_NAME = "Reality Matchmaking"

# subject, heading, body for each applicant-facing screening update
SCREENING_EMAIL_CONTENT = {
    'SCREENING_IN_PROGRESS': (
        "Your Background Check is In Progress",
        "Screening in Progress",
        "We're currently processing your identity verification and background check. "
        "This typically takes 2-3 business days."
    ),
    'CLEARED': (
        "Your Screening is Complete",
        "Screening Complete",
        "Your identity verification and background check are complete. "
        "Our team will now review your application and be in touch shortly."
    ),
    'FAILED': (
        "Update on Your Application",
        "Screening Update",
        "We were unable to complete your identity verification, so we can't move your "
        "application forward at this time. If you believe this is a mistake, reply to this email."
    ),
}


class SendGridClient:
    """Wrapper for SendGrid email operations"""

    def __init__(self):
        self.api_key = Config.SENDGRID_API_KEY
        self.from_email = Config.SENDGRID_FROM_EMAIL

        if self.api_key:
            self.client = sendgrid.SendGridAPIClient(api_key=self.api_key)
        else:
            self.client = None
            logger.warning("SendGrid API key not configured")

    def send_email(self, to_email: str, subject: str, html_content: str,
                   plain_content: str = None) -> Optional[Dict]:
        """Send email via SendGrid"""
        if not self.client:
            logger.error("SendGrid client not initialized")
            return None

        try:
            message = Mail(
                from_email=Email(self.from_email, BRAND_NAME),
                to_emails=To(to_email),
                subject=subject,
                html_content=Content("text/html", html_content)
            )

            if plain_content:
                message.plain_text_content = Content("text/plain", plain_content)

            response = self.client.send(message)

            return {
                'status_code': response.status_code,
                'message_id': response.headers.get('X-Message-Id')
            }
        except Exception as e:
            logger.error(f"Error sending email to {to_email}: {str(e)}")
            return None

    def send_screening_status_email(self, to_email: str, first_name: str, status: str) -> Optional[Dict]:
        """Send an applicant-facing screening status update"""
        content = SCREENING_EMAIL_CONTENT.get(status)
        if not content:
            logger.warning(f"No screening email template for status {status}")
            return None

        subject, heading, body = content
        html_content = f"""
        <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                <h2>{heading}</h2>
                <p>Hi {escape(first_name)},</p>
                <p>{body}</p>
                <p style="margin: 30px 0;">
                    <a href="{Config.APP_URL}/dashboard"
                       style="background-color: #1a2332; color: white; padding: 14px 28px;
                              text-decoration: none; border-radius: 4px; display: inline-block;">
                        View Application
                    </a>
                </p>
                <hr style="margin-top: 40px;">
                <p style="color: #666; font-size: 12px;">{BRAND_NAME}</p>
            </body>
        </html>
        """
        plain_content = f"Hi {first_name},\n\n{body}\n\n{Config.APP_URL}/dashboard"

        return self.send_email(to_email, subject, html_content, plain_content)

    def send_flagged_review_email(self, to_email: str, applicant_name: str, applicant_id: int,
                                  checkr_status: str) -> Optional[Dict]:
        """Alert operators that a background check needs manual review"""
        subject = f"Screening flagged for review - applicant {applicant_id}"
        review_link = f"{Config.APP_URL}/admin/applications/{applicant_id}"
        html_content = f"""
        <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                <h2>Background Check Requires Review</h2>
                <div style="background-color: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0;">
                    <p><strong>Applicant:</strong> {escape(applicant_name)} (#{applicant_id})</p>
                    <p><strong>Checkr status:</strong> {checkr_status}</p>
                </div>
                <p>The applicant has not been rejected. Please review the report and decide.</p>
                <p><a href="{review_link}">Open application</a></p>
            </body>
        </html>
        """

        return self.send_email(to_email, subject, html_content)
