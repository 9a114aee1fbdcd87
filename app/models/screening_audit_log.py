from sqlalchemy import Column, String, Integer, ForeignKey, JSON
from sqlalchemy.orm import relationship
from .base import BaseModel


class ScreeningAuditLog(BaseModel):
    __tablename__ = 'screening_audit_logs'

    applicant_id = Column(Integer, ForeignKey('applicants.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'))  # null for provider/system actions

    action = Column(String(64), nullable=False, index=True)
    details = Column('metadata', JSON)

    # Relationships
    applicant = relationship("Applicant", back_populates="screening_audit_logs")
    user = relationship("User", back_populates="screening_audit_logs")
