from twilio.rest import Client
from twilio.base.exceptions import TwilioRestException
from typing import Optional, Dict
from config.config import Config
from app.utils.logger import get_logger

logger = get_logger(__name__)


class TwilioClient:
    """Wrapper for Twilio SMS operations"""

    def __init__(self):
        self.account_sid = Config.TWILIO_ACCOUNT_SID
        self.auth_token = Config.TWILIO_AUTH_TOKEN
        self.phone_number = Config.TWILIO_PHONE_NUMBER

        if self.account_sid and self.auth_token:
            self.client = Client(self.account_sid, self.auth_token)
        else:
            self.client = None
            logger.warning("Twilio credentials not configured")

    def send_sms(self, to_number: str, message: str) -> Optional[Dict]:
        """Send SMS message"""
        if not self.client:
            logger.error("Twilio client not initialized")
            return None

        try:
            message = self.client.messages.create(
                body=message,
                from_=self.phone_number,
                to=to_number
            )

            return {
                'sid': message.sid,
                'status': message.status,
                'to': message.to
            }
        except TwilioRestException as e:
            logger.error(f"Error sending SMS to {to_number}: {str(e)}")
            return None

    def send_operator_alert(self, to_number: str, applicant_id: int, checkr_status: str) -> Optional[Dict]:
        """Short SMS alert for operators about a flagged screening"""
        message = (
            f"Screening alert: applicant #{applicant_id} background check is {checkr_status}. "
            f"Review: {Config.APP_URL}/admin/applications/{applicant_id}"
        )
        return self.send_sms(to_number, message)
