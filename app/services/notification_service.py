from typing import Optional
from app.database import get_db
from app.models import Applicant
from app.integrations import TwilioClient, SendGridClient
from config.config import Config
from app.utils.logger import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Service for applicant emails and operator alerts about screening"""

    def __init__(self, sendgrid: Optional[SendGridClient] = None, twilio: Optional[TwilioClient] = None,
                 session_scope=get_db):
        self.sendgrid = sendgrid or SendGridClient()
        self.twilio = twilio or TwilioClient()
        self.session_scope = session_scope

    def _load_contact(self, applicant_id: int):
        with self.session_scope() as db:
            applicant = db.query(Applicant).filter_by(id=applicant_id).first()
            if not applicant or not applicant.user:
                return None
            return {
                'email': applicant.user.email,
                'first_name': applicant.user.first_name,
                'name': applicant.user.full_name
            }

    def send_screening_update(self, applicant_id: int, status: str) -> bool:
        """Email the applicant about a change of their screening status"""
        contact = self._load_contact(applicant_id)
        if not contact:
            logger.error(f"No contact details for applicant {applicant_id}, screening email not sent")
            return False

        result = self.sendgrid.send_screening_status_email(contact['email'], contact['first_name'], status)
        if not result:
            logger.warning(f"Screening email ({status}) for applicant {applicant_id} was not delivered")
            return False

        logger.info(f"Sent screening email ({status}) to applicant {applicant_id}")
        return True

    def notify_operators_flagged(self, applicant_id: int, checkr_status: str) -> bool:
        """Alert operators that a background check came back for manual review"""
        contact = self._load_contact(applicant_id)
        applicant_name = contact['name'] if contact else f"Applicant {applicant_id}"

        sent = self.sendgrid.send_flagged_review_email(
            Config.ADMIN_EMAIL,
            applicant_name,
            applicant_id,
            checkr_status
        ) is not None

        if Config.ADMIN_PHONE:
            sent = self.twilio.send_operator_alert(Config.ADMIN_PHONE, applicant_id, checkr_status) is not None or sent

        logger.warning(f"Background check for applicant {applicant_id} flagged ({checkr_status}), operators notified")
        return sent
