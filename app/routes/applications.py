from flask import Blueprint, request, jsonify, current_app
from app.middleware.auth import require_auth
from app.utils.exceptions import ScreeningError
from app.utils.logger import get_logger

bp = Blueprint('applications', __name__)
logger = get_logger(__name__)


def _orchestrator():
    return current_app.extensions['matchscreen']['orchestrator']


@bp.route('/<int:application_id>/status', methods=['GET'])
@require_auth
def application_status(current_user, application_id):
    """Status polling for the applicant; only the derived screening status is exposed"""
    try:
        return jsonify(_orchestrator().get_applicant_status(application_id, current_user)), 200
    except ScreeningError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Error getting status for application {application_id}: {str(e)}")
        return jsonify({'error': 'Failed to get application status'}), 500


@bp.route('/<int:application_id>/background-check-consent', methods=['POST'])
@require_auth
def background_check_consent(current_user, application_id):
    """Record FCRA consent for the background check and start screening"""
    try:
        data = request.get_json(silent=True) or {}

        if data.get('consentGiven') is not True:
            return jsonify({'error': 'You must consent to the background check to proceed'}), 400

        # First hop of x-forwarded-for is the client when behind a proxy
        forwarded_for = request.headers.get('x-forwarded-for')
        ip_address = forwarded_for.split(',')[0].strip() if forwarded_for else request.remote_addr

        result = _orchestrator().record_consent(
            application_id,
            data.get('fullName'),
            current_user,
            ip_address=ip_address
        )
        return jsonify(result), 200

    except ScreeningError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Error recording consent for application {application_id}: {str(e)}")
        return jsonify({'error': 'Failed to record consent'}), 500
