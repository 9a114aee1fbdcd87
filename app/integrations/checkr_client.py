import requests
from typing import Dict, Optional, Union
from config.config import Config
from app.utils.logger import get_logger
from app.utils.security import verify_hmac_signature
import base64

logger = get_logger(__name__)


class CheckrClient:
    """Wrapper for Checkr background check operations"""

    SIGNATURE_HEADER = 'x-checkr-signature'

    def __init__(self):
        self.api_key = Config.CHECKR_API_KEY
        self.webhook_secret = Config.CHECKR_WEBHOOK_SECRET
        self.base_url = Config.CHECKR_BASE_URL
        self.headers = {
            'Content-Type': 'application/json'
        }

        if self.api_key:
            # Checkr uses Basic Auth with API key as username
            auth_string = f"{self.api_key}:"
            encoded_auth = base64.b64encode(auth_string.encode()).decode()
            self.headers['Authorization'] = f"Basic {encoded_auth}"
        else:
            logger.warning("Checkr API key not configured")

    def _make_request(self, method: str, endpoint: str, data: Dict = None) -> Optional[Dict]:
        """Make API request to Checkr"""
        if not self.api_key:
            logger.error("Checkr API key not configured")
            return None

        url = f"{self.base_url}{endpoint}"

        try:
            response = requests.request(
                method=method,
                url=url,
                headers=self.headers,
                json=data,
                timeout=30
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Checkr API error: {str(e)}")
            if e.response is not None:
                logger.error(f"Response: {e.response.text}")
            return None

    def create_candidate(self, email: str, first_name: str, last_name: str) -> Optional[Dict]:
        """Create a candidate; the rest of their details are collected by the invitation form"""
        data = {
            'email': email,
            'first_name': first_name,
            'last_name': last_name,
        }
        return self._make_request('POST', '/candidates', data)

    def create_invitation(self, candidate_id: str, package: str = None) -> Optional[Dict]:
        """Create invitation for candidate to complete background check"""
        data = {
            'candidate_id': candidate_id,
            'package': package or Config.CHECKR_PACKAGE,
            'work_locations': [{'country': 'US', 'state': Config.CHECKR_WORK_STATE}]
        }
        return self._make_request('POST', '/invitations', data)

    def get_report(self, report_id: str) -> Optional[Dict]:
        """Get background check report status and details"""
        return self._make_request('GET', f'/reports/{report_id}')

    def enroll_continuous_monitoring(self, candidate_id: str) -> Optional[Dict]:
        """Subscribe a cleared candidate to continuous criminal monitoring"""
        data = {
            'candidate_id': candidate_id,
            'type': 'criminal'
        }
        return self._make_request('POST', '/continuous_checks', data)

    def verify_webhook_signature(self, payload: Union[bytes, str], sig_header: Optional[str]) -> bool:
        """Verify the x-checkr-signature header over the raw request body"""
        return verify_hmac_signature(self.webhook_secret, sig_header, payload)

    @staticmethod
    def extract_report_status(report: Dict) -> Optional[str]:
        """Raw status for a report object: its result once complete, otherwise its status"""
        if not report:
            return None

        status = report.get('status')
        if status == 'complete':
            return report.get('result') or status
        return status

    @staticmethod
    def summarize_report(report: Dict) -> Dict:
        """Sanitized view of a report for admin display"""
        return {
            'report_id': report.get('id'),
            'status': report.get('status'),
            'result': report.get('result'),
            'adjudication': report.get('adjudication'),
            'completed_at': report.get('completed_at'),
            'turnaround_time': report.get('turnaround_time'),
            'package': report.get('package'),
            'screenings': [{
                'id': screening.get('id'),
                'type': screening.get('type'),
                'status': screening.get('status'),
                'result': screening.get('result'),
                'turnaround_time': screening.get('turnaround_time')
            } for screening in report.get('screenings') or []]
        }
