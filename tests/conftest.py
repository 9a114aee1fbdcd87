import itertools
import os

# Settings are read at import time, so they have to be in place first
os.environ['DATABASE_URL'] = 'sqlite:///test_matchscreen.db'
os.environ['IDENFY_WEBHOOK_SECRET'] = 'test-idenfy-webhook-secret'
os.environ['CHECKR_WEBHOOK_SECRET'] = 'test-checkr-webhook-secret'
os.environ['CHECKR_API_KEY'] = 'test-checkr-api-key'

import pytest
from unittest.mock import Mock
from app.database import init_db, drop_db, get_db
from app.models import User, Applicant, ScreeningAuditLog
from app.models.user import UserRole
from app.models.applicant import ApplicationStatus, IdenfyStatus, CheckrStatus
from app.services.notification_service import NotificationService
from app.services.screening_service import ScreeningOrchestrator
from app.services.screening_transitions import derive_screening_status
from app.utils.security import hash_password

IDENFY_SECRET = os.environ['IDENFY_WEBHOOK_SECRET']
CHECKR_SECRET = os.environ['CHECKR_WEBHOOK_SECRET']
PASSWORD = 'Password123!'
PASSWORD_HASH = hash_password(PASSWORD)


def inline_runner(func, effect):
    """Run effects synchronously instead of on the background scheduler"""
    func(effect)


@pytest.fixture
def database():
    """Fresh database per test"""
    init_db()
    yield
    drop_db()


@pytest.fixture
def make_user(database):
    counter = itertools.count(1)

    def _make(email=None, role=UserRole.APPLICANT, first_name='Jane', last_name=None):
        n = next(counter)
        with get_db() as db:
            user = User(
                email=email or f'user{n}@example.com',
                password_hash=PASSWORD_HASH,
                first_name=first_name,
                last_name=last_name or f'Doe{n}',
                role=role,
                is_active=True
            )
            db.add(user)
            db.flush()
            return user.id

    return _make


@pytest.fixture
def make_applicant(make_user):
    """Create an applicant; defaults to a submitted application with nothing screened yet"""
    def _make(email=None, **fields):
        user_id = make_user(email=email)
        fields.setdefault('application_status', ApplicationStatus.SUBMITTED)
        fields.setdefault('idenfy_status', IdenfyStatus.NOT_STARTED)
        fields.setdefault('checkr_status', CheckrStatus.NOT_STARTED)
        fields.setdefault('screening_status', derive_screening_status(
            fields['idenfy_status'], fields['checkr_status']
        ))
        with get_db() as db:
            applicant = Applicant(user_id=user_id, **fields)
            db.add(applicant)
            db.flush()
            return applicant.id

    return _make


def load_applicant(applicant_id):
    with get_db() as db:
        return db.query(Applicant).filter(Applicant.id == applicant_id).first()


def audit_actions(applicant_id):
    with get_db() as db:
        logs = db.query(ScreeningAuditLog).filter(
            ScreeningAuditLog.applicant_id == applicant_id
        ).order_by(ScreeningAuditLog.id).all()
        return [(log.action, log.details) for log in logs]


@pytest.fixture
def checkr():
    client = Mock()
    client.create_candidate.return_value = {'id': 'cand_123'}
    client.create_invitation.return_value = {'id': 'inv_123', 'package': 'tasker_standard'}
    client.enroll_continuous_monitoring.return_value = {'id': 'cc_123'}
    client.get_report.return_value = {
        'id': 'rep_123', 'status': 'complete', 'result': 'clear', 'screenings': []
    }
    return client


@pytest.fixture
def idenfy():
    client = Mock()
    client.create_verification_session.return_value = {'authToken': 'tok_123', 'scanRef': 'scan_123'}
    return client


@pytest.fixture
def notifications():
    service = Mock(spec=NotificationService)
    service.send_screening_update.return_value = True
    service.notify_operators_flagged.return_value = True
    return service


@pytest.fixture
def orchestrator(database, checkr, idenfy, notifications):
    return ScreeningOrchestrator(
        checkr_client=checkr,
        idenfy_client=idenfy,
        notification_service=notifications
    )
