from sqlalchemy import Column, String, Boolean, Enum
from sqlalchemy.orm import relationship
import enum
from .base import BaseModel


class UserRole(enum.Enum):
    APPLICANT = "applicant"
    ADMIN = "admin"


class User(BaseModel):
    __tablename__ = 'users'

    # Basic Info
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.APPLICANT)

    # Status
    is_active = Column(Boolean, default=True)

    # Relationships
    applicant = relationship("Applicant", back_populates="user", uselist=False)
    screening_audit_logs = relationship("ScreeningAuditLog", back_populates="user", lazy='dynamic')

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"
