#!/usr/bin/env python3
"""
Script to seed the database with applicants at every screening stage
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta
from app.database import init_db, drop_db, get_db
from app.models import User, Applicant
from app.models.user import UserRole
from app.models.applicant import ApplicationStatus, IdenfyStatus, CheckrStatus
from app.services.screening_transitions import derive_screening_status
from app.utils.security import hash_password

# (application status, idenfy, checkr, consented)
SAMPLE_APPLICANTS = [
    (ApplicationStatus.PAYMENT_PENDING, IdenfyStatus.NOT_STARTED, CheckrStatus.NOT_STARTED, False),
    (ApplicationStatus.SUBMITTED, IdenfyStatus.NOT_STARTED, CheckrStatus.NOT_STARTED, False),
    (ApplicationStatus.SCREENING_IN_PROGRESS, IdenfyStatus.PENDING, CheckrStatus.NOT_STARTED, True),
    (ApplicationStatus.SCREENING_IN_PROGRESS, IdenfyStatus.APPROVED, CheckrStatus.PENDING, True),
    (ApplicationStatus.UNDER_REVIEW, IdenfyStatus.APPROVED, CheckrStatus.CLEAR, True),
    (ApplicationStatus.SCREENING_IN_PROGRESS, IdenfyStatus.APPROVED, CheckrStatus.CONSIDER, True),
    (ApplicationStatus.SCREENING_IN_PROGRESS, IdenfyStatus.DENIED, CheckrStatus.NOT_STARTED, True),
]


def create_users(db):
    """Create the admin and one applicant per screening stage"""
    admin = User(
        email='admin@matchscreen.com',
        password_hash=hash_password('Admin123!'),
        first_name='Admin',
        last_name='User',
        role=UserRole.ADMIN,
        is_active=True
    )
    db.add(admin)

    applicants = []
    now = datetime.utcnow()
    for i, (app_status, idenfy_status, checkr_status, consented) in enumerate(SAMPLE_APPLICANTS):
        user = User(
            email=f'applicant{i+1}@email.com',
            password_hash=hash_password('Applicant123!'),
            first_name='Applicant',
            last_name=f'{i+1}',
            role=UserRole.APPLICANT,
            is_active=True
        )
        db.add(user)
        db.flush()

        applicant = Applicant(
            user_id=user.id,
            application_status=app_status,
            submitted_at=now - timedelta(days=i) if app_status != ApplicationStatus.PAYMENT_PENDING else None,
            idenfy_status=idenfy_status,
            checkr_status=checkr_status,
            screening_status=derive_screening_status(idenfy_status, checkr_status),
            background_check_consent_at=now - timedelta(days=i) if consented else None,
            checkr_candidate_id=f'seed-candidate-{i+1}' if checkr_status != CheckrStatus.NOT_STARTED else None
        )
        db.add(applicant)
        applicants.append(applicant)

    return {
        'admin': admin,
        'applicants': applicants
    }


def main():
    """Main seeding function"""
    print("Dropping existing database...")
    drop_db()

    print("Initializing new database...")
    init_db()

    with get_db() as db:
        print("Creating users...")
        users = create_users(db)

    print("\nDatabase seeded successfully!")
    print(f"Created:")
    print(f"- 1 Admin user (admin@matchscreen.com / Admin123!)")
    print(f"- {len(users['applicants'])} Applicants (password Applicant123!)")

    print("\nYou can now run the application and log in with any of the created users.")


if __name__ == "__main__":
    main()
