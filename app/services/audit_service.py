"""Screening audit log - compliance record of every screening action.

Rows are written inside the caller's transaction so an audit entry exists
exactly when the change it describes was committed.

Never store report contents or full webhook payloads here; provider
references (scan refs, report ids) and status values only.
"""
from typing import Dict, Optional
from sqlalchemy.orm import Session
from app.database import get_db
from app.models import ScreeningAuditLog
from config.config import Config


class AuditAction:
    IDENFY_STATUS_UPDATE = 'IDENFY_STATUS_UPDATE'
    CHECKR_STATUS_UPDATE = 'CHECKR_STATUS_UPDATE'
    CONSENT_GIVEN = 'CONSENT_GIVEN'
    IDENFY_SESSION_CREATED = 'IDENFY_SESSION_CREATED'
    CHECKR_AUTO_TRIGGERED = 'CHECKR_AUTO_TRIGGERED'
    CHECKR_INVITATION_SENT = 'CHECKR_INVITATION_SENT'
    VIEW_REPORT = 'VIEW_REPORT'
    MONITORING_ENROLLED = 'MONITORING_ENROLLED'


def record(db: Session, applicant_id: int, action: str, details: Optional[Dict] = None,
           user_id: Optional[int] = None) -> ScreeningAuditLog:
    """Add an audit row to the open session"""
    entry = ScreeningAuditLog(
        applicant_id=applicant_id,
        user_id=user_id,
        action=action,
        details=details or {}
    )
    db.add(entry)
    return entry


class AuditService:
    """Read side of the screening audit log for the admin back office"""

    def __init__(self, session_scope=get_db):
        self.session_scope = session_scope

    @staticmethod
    def clamp_limit(limit: Optional[int]) -> int:
        if not limit or limit < 1:
            return Config.AUDIT_LOG_DEFAULT_LIMIT
        return min(limit, Config.AUDIT_LOG_MAX_LIMIT)

    def list_logs(self, applicant_id: Optional[int] = None, action: Optional[str] = None,
                  limit: Optional[int] = None, offset: int = 0) -> Dict:
        """Newest first, optionally filtered by applicant and action"""
        limit = self.clamp_limit(limit)
        offset = max(offset or 0, 0)

        with self.session_scope() as db:
            query = db.query(ScreeningAuditLog)
            if applicant_id is not None:
                query = query.filter(ScreeningAuditLog.applicant_id == applicant_id)
            if action:
                query = query.filter(ScreeningAuditLog.action == action)

            total = query.count()
            logs = query.order_by(
                ScreeningAuditLog.created_at.desc(), ScreeningAuditLog.id.desc()
            ).offset(offset).limit(limit).all()

            return {
                'logs': [{
                    'id': log.id,
                    'action': log.action,
                    'metadata': log.details,
                    'created_at': log.created_at.isoformat(),
                    'admin': {
                        'name': log.user.full_name,
                        'email': log.user.email
                    } if log.user else {'name': 'System', 'email': None},
                    'applicant': {
                        'id': log.applicant.id,
                        'name': log.applicant.user.full_name if log.applicant.user else None
                    }
                } for log in logs],
                'total': total,
                'limit': limit,
                'offset': offset
            }
