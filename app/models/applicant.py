from sqlalchemy import Column, String, Integer, ForeignKey, DateTime, Enum, Text
from sqlalchemy.orm import relationship
import enum
from .base import BaseModel


class ApplicationStatus(enum.Enum):
    PAYMENT_PENDING = "PAYMENT_PENDING"
    WAITLIST = "WAITLIST"
    SUBMITTED = "SUBMITTED"
    SCREENING_IN_PROGRESS = "SCREENING_IN_PROGRESS"
    UNDER_REVIEW = "UNDER_REVIEW"
    SOFT_REJECTED = "SOFT_REJECTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class IdenfyStatus(enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    EXPIRED = "EXPIRED"
    UNKNOWN = "UNKNOWN"  # mapper fallback, never persisted


class CheckrStatus(enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    PENDING = "PENDING"
    CLEAR = "CLEAR"
    CONSIDER = "CONSIDER"
    SUSPENDED = "SUSPENDED"
    UNKNOWN = "UNKNOWN"  # mapper fallback, never persisted


class ScreeningStatus(enum.Enum):
    PENDING_IDENTITY = "PENDING_IDENTITY"
    PENDING_BACKGROUND_CHECK = "PENDING_BACKGROUND_CHECK"
    CLEARED = "CLEARED"
    FLAGGED = "FLAGGED"
    FAILED = "FAILED"


class Applicant(BaseModel):
    __tablename__ = 'applicants'

    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, unique=True)

    # Application
    application_status = Column(Enum(ApplicationStatus), default=ApplicationStatus.PAYMENT_PENDING,
                                nullable=False, index=True)
    submitted_at = Column(DateTime)
    reviewed_at = Column(DateTime)
    deleted_at = Column(DateTime)

    # Screening
    idenfy_status = Column(Enum(IdenfyStatus), default=IdenfyStatus.NOT_STARTED, nullable=False)
    checkr_status = Column(Enum(CheckrStatus), default=CheckrStatus.NOT_STARTED, nullable=False)
    screening_status = Column(Enum(ScreeningStatus), default=ScreeningStatus.PENDING_IDENTITY,
                              nullable=False, index=True)
    idenfy_updated_at = Column(DateTime)
    checkr_updated_at = Column(DateTime)
    background_check_consent_at = Column(DateTime)
    background_check_notes = Column(Text)

    # Provider references
    idenfy_scan_ref = Column(String(255))
    checkr_candidate_id = Column(String(255), index=True)
    checkr_invitation_id = Column(String(255))
    checkr_report_id = Column(String(255))
    continuous_monitoring_id = Column(String(255), unique=True)

    # Relationships
    user = relationship("User", back_populates="applicant")
    screening_audit_logs = relationship("ScreeningAuditLog", back_populates="applicant", lazy='dynamic')
