from flask import Blueprint, request, jsonify, current_app
from app.integrations import CheckrClient, IdenfyClient
from app.utils.exceptions import ScreeningError
from app.utils.logger import get_logger

bp = Blueprint('webhooks', __name__)
logger = get_logger(__name__)


def _webhook_service():
    return current_app.extensions['matchscreen']['webhook_service']


@bp.route('/idenfy', methods=['POST'])
def idenfy_webhook():
    """Handle iDenfy identity verification callbacks"""
    # Signature is computed over the exact bytes received
    payload = request.get_data()
    sig_header = request.headers.get(IdenfyClient.SIGNATURE_HEADER)

    try:
        result = _webhook_service().process_idenfy_webhook(payload, sig_header, source=request.remote_addr)
        return jsonify(result), 200
    except ScreeningError as e:
        if e.status_code >= 500:
            logger.error(f"iDenfy webhook failed: {e.message}")
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Error processing iDenfy webhook: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500


@bp.route('/checkr', methods=['POST'])
def checkr_webhook():
    """Handle Checkr background check events"""
    payload = request.get_data()
    sig_header = request.headers.get(CheckrClient.SIGNATURE_HEADER)

    try:
        result = _webhook_service().process_checkr_event(payload, sig_header, source=request.remote_addr)
        return jsonify(result), 200
    except ScreeningError as e:
        if e.status_code >= 500:
            logger.error(f"Checkr webhook failed: {e.message}")
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Error processing Checkr webhook: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500
