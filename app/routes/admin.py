from flask import Blueprint, request, jsonify, current_app
from app.middleware.auth import require_auth, require_admin
from app.services.audit_service import AuditAction
from app.utils.exceptions import ScreeningError
from app.utils.logger import get_logger

bp = Blueprint('admin', __name__)
logger = get_logger(__name__)


def _services():
    return current_app.extensions['matchscreen']


@bp.route('/audit-log', methods=['GET'])
@require_auth
@require_admin
def audit_log(current_user):
    """Screening audit log, newest first"""
    try:
        applicant_id = request.args.get('applicantId', type=int)
        action = request.args.get('action')
        limit = request.args.get('limit', type=int)
        offset = request.args.get('offset', default=0, type=int)

        result = _services()['audit_service'].list_logs(
            applicant_id=applicant_id,
            action=action,
            limit=limit,
            offset=offset
        )
        return jsonify(result), 200

    except Exception as e:
        logger.error(f"Error fetching audit log: {str(e)}")
        return jsonify({'error': 'Failed to fetch audit log'}), 500


@bp.route('/applications/<int:application_id>/screening-report', methods=['GET'])
@require_auth
@require_admin
def screening_report(current_user, application_id):
    """Background check report for admin review; fetched live and never stored"""
    try:
        report = _services()['orchestrator'].view_screening_report(application_id, current_user)
        return jsonify(report), 200
    except ScreeningError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Error fetching screening report for application {application_id}: {str(e)}")
        return jsonify({'error': 'Failed to fetch screening report'}), 500


@bp.route('/applications/<int:application_id>/background-check', methods=['POST'])
@require_auth
@require_admin
def trigger_background_check(current_user, application_id):
    """Manually send the background check invitation"""
    try:
        result = _services()['orchestrator'].trigger_background_check(
            application_id,
            actor=current_user,
            action=AuditAction.CHECKR_INVITATION_SENT,
            triggered_by='admin'
        )
        return jsonify(result), 200
    except ScreeningError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Error triggering background check for application {application_id}: {str(e)}")
        return jsonify({'error': 'Failed to trigger background check'}), 500
