import json
from typing import Dict, Optional, Union
from app.integrations import CheckrClient, IdenfyClient
from app.services.screening_service import ScreeningOrchestrator, ScreeningResult
from app.utils.exceptions import InvalidSignature, MalformedPayload, MissingIdentifier, ApplicantNotFound
from app.utils.logger import get_logger, get_security_logger

logger = get_logger(__name__)
security_logger = get_security_logger()

# Largest value a 64-bit signed integer primary key can hold
MAX_APPLICANT_ID = 2 ** 63 - 1


class WebhookService:
    """Service for handling provider webhook events"""

    def __init__(self, orchestrator: ScreeningOrchestrator, dispatcher,
                 idenfy_client: Optional[IdenfyClient] = None,
                 checkr_client: Optional[CheckrClient] = None):
        self.orchestrator = orchestrator
        self.dispatcher = dispatcher
        self.idenfy = idenfy_client or orchestrator.idenfy
        self.checkr = checkr_client or orchestrator.checkr

    @staticmethod
    def _parse(payload: Union[bytes, str]) -> Dict:
        try:
            data = json.loads(payload)
        except (TypeError, ValueError):
            raise MalformedPayload()
        if not isinstance(data, dict):
            raise MalformedPayload()
        return data

    def process_idenfy_webhook(self, payload: Union[bytes, str], sig_header: Optional[str],
                               source: str = None) -> Dict:
        """Verify, parse and apply an iDenfy identity verification callback"""
        if not self.idenfy.verify_webhook_signature(payload, sig_header):
            security_logger.warning(f"Rejected iDenfy webhook with invalid signature from {source or 'unknown'}")
            raise InvalidSignature()

        webhook_data = self._parse(payload)

        client_id = webhook_data.get('clientId')
        if client_id is None or str(client_id).strip() == '':
            raise MissingIdentifier("Missing clientId")

        try:
            applicant_id = int(str(client_id).strip())
        except ValueError:
            raise ApplicantNotFound(f"Applicant {client_id} not found")
        # Outside the id column's range, so it cannot name an applicant
        if not 0 < applicant_id <= MAX_APPLICANT_ID:
            raise ApplicantNotFound(f"Applicant {client_id} not found")

        raw_status = IdenfyClient.extract_status(webhook_data)
        if not isinstance(raw_status, str):
            raise MalformedPayload("Missing status")

        logger.info(f"Processing iDenfy webhook for applicant {applicant_id}: {raw_status}")

        result = self.orchestrator.handle_identity_update(applicant_id, raw_status, webhook_data)
        self.dispatcher.dispatch(result.effects)
        return result.to_dict()

    def process_checkr_event(self, payload: Union[bytes, str], sig_header: Optional[str],
                             source: str = None) -> Dict:
        """Verify, parse and apply a Checkr report event"""
        if not self.checkr.verify_webhook_signature(payload, sig_header):
            security_logger.warning(f"Rejected Checkr webhook with invalid signature from {source or 'unknown'}")
            raise InvalidSignature()

        event = self._parse(payload)
        event_type = event.get('type') or ''
        if not isinstance(event_type, str):
            raise MalformedPayload("Invalid event type")

        logger.info(f"Processing Checkr event: {event_type}")

        if not event_type.startswith('report.'):
            logger.info(f"Unhandled Checkr event type: {event_type}")
            return {'received': True, 'outcome': 'ignored'}

        data = event.get('data') or {}
        report = data.get('object') if isinstance(data, dict) else None
        if not isinstance(report, dict):
            raise MalformedPayload("Missing report object")

        candidate_id = report.get('candidate_id')
        if not candidate_id:
            raise MissingIdentifier("Missing candidate_id")
        if not isinstance(candidate_id, str):
            raise MalformedPayload("Invalid candidate_id")

        raw_status = CheckrClient.extract_report_status(report)
        if not isinstance(raw_status, str):
            raise MalformedPayload("Missing report status")

        report_id = report.get('id')
        if report_id is not None and not isinstance(report_id, str):
            raise MalformedPayload("Invalid report id")

        applicant_id = self.orchestrator.find_applicant_id_by_candidate(candidate_id)

        result: ScreeningResult = self.orchestrator.handle_background_check_update(
            applicant_id, raw_status, event, report_id=report_id
        )
        self.dispatcher.dispatch(result.effects)
        return result.to_dict()
