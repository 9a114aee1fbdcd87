class ScreeningError(Exception):
    """Base error for the screening pipeline, carries the HTTP status to answer with"""

    status_code = 500
    code = 'INTERNAL_ERROR'

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self) -> dict:
        return {'error': self.message, 'code': self.code}


class InvalidSignature(ScreeningError):
    """Invalid signature"""
    status_code = 403
    code = 'FORBIDDEN'


class MissingIdentifier(ScreeningError):
    """Missing applicant identifier"""
    status_code = 400
    code = 'VALIDATION_ERROR'


class MalformedPayload(ScreeningError):
    """Invalid JSON payload"""
    status_code = 400
    code = 'VALIDATION_ERROR'


class ApplicantNotFound(ScreeningError):
    """Applicant not found"""
    status_code = 404
    code = 'NOT_FOUND'


class TransitionBlocked(ScreeningError):
    """Status update is not allowed in the applicant's current state"""
    status_code = 409
    code = 'CONFLICT'


class PrerequisiteFailed(ScreeningError):
    """Screening prerequisites are not met"""
    status_code = 400
    code = 'PREREQUISITE_FAILED'


class PersistenceFailure(ScreeningError):
    """Failed to persist screening update"""
    status_code = 503
    code = 'PERSISTENCE_FAILURE'


class AccessDenied(ScreeningError):
    """Access denied"""
    status_code = 403
    code = 'FORBIDDEN'


class ProviderError(ScreeningError):
    """Screening provider request failed"""
    status_code = 502
    code = 'PROVIDER_ERROR'
