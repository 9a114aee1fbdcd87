import requests
from typing import Dict, Optional, Union
from config.config import Config
from app.utils.logger import get_logger
from app.utils.security import verify_hmac_signature
import base64

logger = get_logger(__name__)


class IdenfyClient:
    """Wrapper for iDenfy identity verification operations"""

    SIGNATURE_HEADER = 'x-idenfy-signature'

    def __init__(self):
        self.api_key = Config.IDENFY_API_KEY
        self.api_secret = Config.IDENFY_API_SECRET
        self.webhook_secret = Config.IDENFY_WEBHOOK_SECRET
        self.base_url = Config.IDENFY_BASE_URL
        self.headers = {
            'Content-Type': 'application/json'
        }

        if self.api_key and self.api_secret:
            auth_string = f"{self.api_key}:{self.api_secret}"
            encoded_auth = base64.b64encode(auth_string.encode()).decode()
            self.headers['Authorization'] = f"Basic {encoded_auth}"
        else:
            logger.warning("iDenfy API credentials not configured")

        if not self.webhook_secret:
            logger.warning("iDenfy webhook secret not configured, all callbacks will be rejected")

    def _make_request(self, method: str, endpoint: str, data: Dict = None) -> Optional[Dict]:
        """Make API request to iDenfy"""
        if 'Authorization' not in self.headers:
            logger.error("iDenfy API credentials not configured")
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
            logger.error(f"iDenfy API error: {str(e)}")
            if e.response is not None:
                logger.error(f"Response: {e.response.text}")
            return None

    def create_verification_session(self, client_id: str, first_name: str, last_name: str) -> Optional[Dict]:
        """
        Create an identity verification session.

        The client id is echoed back as ``clientId`` on every webhook for the
        session, which is how callbacks are tied to an applicant.
        """
        data = {
            'clientId': client_id,
            'firstName': first_name,
            'lastName': last_name,
            'successUrl': f"{Config.APP_URL}/apply/verify-identity?result=success",
            'errorUrl': f"{Config.APP_URL}/apply/verify-identity?result=error",
            'callbackUrl': f"{Config.APP_URL}/api/webhooks/idenfy"
        }
        return self._make_request('POST', '/token', data)

    def verify_webhook_signature(self, payload: Union[bytes, str], sig_header: Optional[str]) -> bool:
        """Verify the x-idenfy-signature header over the raw request body"""
        return verify_hmac_signature(self.webhook_secret, sig_header, payload)

    @staticmethod
    def extract_status(webhook_data: Dict) -> Optional[str]:
        """Raw overall status from a callback; accepts a plain string or iDenfy's status object"""
        status = webhook_data.get('status')
        if isinstance(status, dict):
            return status.get('overall')
        return status
