from .user import User
from .applicant import Applicant
from .screening_audit_log import ScreeningAuditLog

__all__ = ['User', 'Applicant', 'ScreeningAuditLog']
