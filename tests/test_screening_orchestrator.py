import pytest
from dataclasses import replace
from datetime import datetime
from unittest.mock import patch
from app.database import get_db
from app.models import Applicant
from app.models.applicant import ApplicationStatus, IdenfyStatus, CheckrStatus, ScreeningStatus
from app.services.audit_service import AuditAction
from app.services.effect_dispatcher import EffectDispatcher
from app.services import screening_service
from app.services.screening_service import _LostRace
from app.services.screening_transitions import (
    Effect, EffectType, TransitionOutcome, derive_screening_status, identity_transition
)
from app.utils.exceptions import (
    AccessDenied, ApplicantNotFound, MalformedPayload, PersistenceFailure,
    PrerequisiteFailed, ProviderError, TransitionBlocked
)
from app.utils.security import Actor
from conftest import inline_runner, load_applicant, audit_actions


@pytest.fixture
def dispatcher(orchestrator):
    return EffectDispatcher(orchestrator, runner=inline_runner)


def deliver_identity(orchestrator, dispatcher, applicant_id, raw_status):
    result = orchestrator.handle_identity_update(applicant_id, raw_status, {'scanRef': 'scan_123'})
    dispatcher.dispatch(result.effects)
    return result


def deliver_background_check(orchestrator, dispatcher, applicant_id, raw_status):
    result = orchestrator.handle_background_check_update(
        applicant_id, raw_status, {'type': 'report.completed'}, report_id='rep_123'
    )
    dispatcher.dispatch(result.effects)
    return result


class TestIdentityUpdates:
    """iDenfy callbacks applied to the applicant record"""

    def test_approval_invites_background_check_once(self, orchestrator, dispatcher, make_applicant, checkr):
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.PENDING,
                                      background_check_consent_at=datetime.utcnow())

        first = deliver_identity(orchestrator, dispatcher, applicant_id, 'APPROVED')
        second = deliver_identity(orchestrator, dispatcher, applicant_id, 'APPROVED')

        assert first.outcome == TransitionOutcome.APPLIED
        assert second.outcome == TransitionOutcome.DUPLICATE
        assert second.effects == ()
        checkr.create_candidate.assert_called_once()
        checkr.create_invitation.assert_called_once_with('cand_123')

        applicant = load_applicant(applicant_id)
        assert applicant.idenfy_status == IdenfyStatus.APPROVED
        assert applicant.checkr_status == CheckrStatus.PENDING
        assert applicant.screening_status == ScreeningStatus.PENDING_BACKGROUND_CHECK
        assert applicant.checkr_candidate_id == 'cand_123'
        assert applicant.checkr_invitation_id == 'inv_123'

        actions = [action for action, _ in audit_actions(applicant_id)]
        assert actions == [
            AuditAction.IDENFY_STATUS_UPDATE,
            AuditAction.CHECKR_AUTO_TRIGGERED,
            AuditAction.IDENFY_STATUS_UPDATE
        ]

    def test_denied_replay_notifies_once(self, orchestrator, dispatcher, make_applicant, notifications):
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.PENDING)

        deliver_identity(orchestrator, dispatcher, applicant_id, 'DENIED')
        replay = deliver_identity(orchestrator, dispatcher, applicant_id, 'DENIED')

        assert replay.outcome == TransitionOutcome.DUPLICATE
        notifications.send_screening_update.assert_called_once_with(applicant_id, 'FAILED')

        applicant = load_applicant(applicant_id)
        assert applicant.screening_status == ScreeningStatus.FAILED
        assert applicant.background_check_notes.count("Identity verification failed") == 1
        assert applicant.background_check_notes.startswith('[')

    def test_unknown_status_changes_nothing(self, orchestrator, dispatcher, make_applicant, notifications):
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.PENDING)

        result = deliver_identity(orchestrator, dispatcher, applicant_id, 'SOMETHING_NEW')

        assert result.outcome == TransitionOutcome.UNKNOWN_STATUS
        assert result.screening_status == ScreeningStatus.PENDING_IDENTITY
        applicant = load_applicant(applicant_id)
        assert applicant.idenfy_status == IdenfyStatus.PENDING
        assert applicant.idenfy_updated_at is None
        notifications.send_screening_update.assert_not_called()

        [(action, details)] = audit_actions(applicant_id)
        assert action == AuditAction.IDENFY_STATUS_UPDATE
        assert details['raw_status'] == 'SOMETHING_NEW'
        assert details['mapped_status'] == 'UNKNOWN'
        assert details['outcome'] == 'unknown_status'

    def test_late_pending_after_approval_is_stale(self, orchestrator, make_applicant):
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.APPROVED)

        result = orchestrator.handle_identity_update(applicant_id, 'PENDING')

        assert result.outcome == TransitionOutcome.STALE
        assert load_applicant(applicant_id).idenfy_status == IdenfyStatus.APPROVED

    def test_soft_deleted_applicant_is_skipped(self, orchestrator, make_applicant):
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.PENDING, deleted_at=datetime.utcnow())

        result = orchestrator.handle_identity_update(applicant_id, 'APPROVED')

        assert result.outcome == TransitionOutcome.IGNORED_DELETED
        assert load_applicant(applicant_id).idenfy_status == IdenfyStatus.PENDING

    def test_missing_applicant(self, orchestrator, database):
        with pytest.raises(ApplicantNotFound):
            orchestrator.handle_identity_update(9999, 'APPROVED')

    def test_audit_keeps_references_not_payload(self, orchestrator, make_applicant):
        applicant_id = make_applicant()

        orchestrator.handle_identity_update(applicant_id, 'PENDING',
                                            {'scanRef': 'scan_9', 'document': {'number': 'X123'}})

        [(_, details)] = audit_actions(applicant_id)
        assert details['scan_ref'] == 'scan_9'
        assert 'document' not in details

    def test_gives_up_after_repeated_lost_races(self, orchestrator, make_applicant):
        applicant_id = make_applicant()

        with patch.object(orchestrator, '_apply_transition', side_effect=_LostRace()) as apply:
            with pytest.raises(PersistenceFailure):
                orchestrator.handle_identity_update(applicant_id, 'APPROVED')

        assert apply.call_count == orchestrator.max_attempts

    def test_row_changed_after_read_is_re_evaluated(self, orchestrator, make_applicant):
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.PENDING)
        decisions = []

        def decide_then_change_row(applicant_id, snapshot, incoming):
            decisions.append(snapshot.idenfy_status)
            if len(decisions) == 1:
                # another worker lands the same approval first
                with get_db() as db:
                    db.query(Applicant).filter(Applicant.id == applicant_id).update({
                        Applicant.idenfy_status: IdenfyStatus.APPROVED,
                        Applicant.screening_status: derive_screening_status(
                            IdenfyStatus.APPROVED, CheckrStatus.NOT_STARTED
                        )
                    }, synchronize_session=False)
            return identity_transition(applicant_id, snapshot, incoming)

        channel = replace(screening_service.IDENTITY_CHANNEL, decide=decide_then_change_row)
        with patch.object(screening_service, 'IDENTITY_CHANNEL', channel):
            result = orchestrator.handle_identity_update(applicant_id, 'APPROVED')

        assert decisions == [IdenfyStatus.PENDING, IdenfyStatus.APPROVED]
        assert result.outcome == TransitionOutcome.DUPLICATE
        assert result.effects == ()
        [(action, details)] = audit_actions(applicant_id)
        assert action == AuditAction.IDENFY_STATUS_UPDATE
        assert details['outcome'] == 'duplicate'


class TestBackgroundCheckUpdates:
    """Checkr report events applied to the applicant record"""

    def test_blocked_before_identity_approval(self, orchestrator, make_applicant):
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.PENDING)

        with pytest.raises(TransitionBlocked):
            orchestrator.handle_background_check_update(applicant_id, 'clear')

        applicant = load_applicant(applicant_id)
        assert applicant.checkr_status == CheckrStatus.NOT_STARTED
        assert applicant.screening_status == ScreeningStatus.PENDING_IDENTITY
        [(action, details)] = audit_actions(applicant_id)
        assert action == AuditAction.CHECKR_STATUS_UPDATE
        assert details['outcome'] == 'blocked'

    def test_clear_completes_screening(self, orchestrator, dispatcher, make_applicant, checkr, notifications):
        applicant_id = make_applicant(
            application_status=ApplicationStatus.SCREENING_IN_PROGRESS,
            idenfy_status=IdenfyStatus.APPROVED,
            checkr_status=CheckrStatus.PENDING,
            checkr_candidate_id='cand_123'
        )

        result = deliver_background_check(orchestrator, dispatcher, applicant_id, 'clear')
        replay = deliver_background_check(orchestrator, dispatcher, applicant_id, 'clear')

        assert result.screening_status == ScreeningStatus.CLEARED
        assert replay.outcome == TransitionOutcome.DUPLICATE
        notifications.send_screening_update.assert_called_once_with(applicant_id, 'CLEARED')
        checkr.enroll_continuous_monitoring.assert_called_once_with('cand_123')

        applicant = load_applicant(applicant_id)
        assert applicant.application_status == ApplicationStatus.UNDER_REVIEW
        assert applicant.checkr_report_id == 'rep_123'
        assert applicant.continuous_monitoring_id == 'cc_123'

    def test_consider_flags_for_review(self, orchestrator, dispatcher, make_applicant, notifications):
        applicant_id = make_applicant(
            application_status=ApplicationStatus.SCREENING_IN_PROGRESS,
            idenfy_status=IdenfyStatus.APPROVED,
            checkr_status=CheckrStatus.PENDING
        )

        result = deliver_background_check(orchestrator, dispatcher, applicant_id, 'consider')

        assert result.screening_status == ScreeningStatus.FLAGGED
        notifications.notify_operators_flagged.assert_called_once_with(applicant_id, 'CONSIDER')
        notifications.send_screening_update.assert_not_called()

        applicant = load_applicant(applicant_id)
        assert applicant.application_status == ApplicationStatus.SCREENING_IN_PROGRESS
        assert 'requires admin review' in applicant.background_check_notes


class TestBackgroundCheckTrigger:
    """Shared invitation flow"""

    def test_requires_consent(self, orchestrator, make_applicant, checkr):
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.APPROVED)

        with pytest.raises(PrerequisiteFailed):
            orchestrator.trigger_background_check(applicant_id)

        checkr.create_invitation.assert_not_called()

    def test_requires_identity_approval(self, orchestrator, make_applicant):
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.PENDING,
                                      background_check_consent_at=datetime.utcnow())

        with pytest.raises(PrerequisiteFailed):
            orchestrator.trigger_background_check(applicant_id)

    def test_reuses_existing_candidate(self, orchestrator, make_applicant, checkr):
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.APPROVED,
                                      background_check_consent_at=datetime.utcnow(),
                                      checkr_candidate_id='cand_existing')

        result = orchestrator.trigger_background_check(applicant_id)

        assert result['status'] == 'invitation_sent'
        checkr.create_candidate.assert_not_called()
        checkr.create_invitation.assert_called_once_with('cand_existing')

    def test_already_in_progress(self, orchestrator, make_applicant, checkr):
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.APPROVED,
                                      checkr_status=CheckrStatus.PENDING,
                                      background_check_consent_at=datetime.utcnow())

        result = orchestrator.trigger_background_check(applicant_id)

        assert result['status'] == 'already_in_progress'
        checkr.create_invitation.assert_not_called()

    def test_failed_invitation_releases_claim(self, orchestrator, make_applicant, checkr):
        checkr.create_invitation.return_value = None
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.APPROVED,
                                      background_check_consent_at=datetime.utcnow())

        with pytest.raises(ProviderError):
            orchestrator.trigger_background_check(applicant_id)

        applicant = load_applicant(applicant_id)
        assert applicant.checkr_status == CheckrStatus.NOT_STARTED
        assert applicant.screening_status == ScreeningStatus.PENDING_BACKGROUND_CHECK
        # candidate is kept for the retry
        assert applicant.checkr_candidate_id == 'cand_123'

    def test_retry_stalled_invitations(self, orchestrator, make_applicant, checkr):
        stalled = make_applicant(idenfy_status=IdenfyStatus.APPROVED,
                                 background_check_consent_at=datetime.utcnow())
        make_applicant(idenfy_status=IdenfyStatus.APPROVED)
        make_applicant(idenfy_status=IdenfyStatus.APPROVED,
                       background_check_consent_at=datetime.utcnow(),
                       deleted_at=datetime.utcnow())

        results = orchestrator.retry_stalled_invitations()

        assert results == {'invited': [stalled], 'failed': []}
        checkr.create_invitation.assert_called_once()


class TestContinuousMonitoring:
    """Monitoring enrollment after a clear result"""

    def test_enrolls_once(self, orchestrator, make_applicant, checkr):
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.APPROVED,
                                      checkr_status=CheckrStatus.CLEAR,
                                      checkr_candidate_id='cand_123')

        assert orchestrator.enroll_continuous_monitoring(applicant_id) == 'cc_123'
        assert orchestrator.enroll_continuous_monitoring(applicant_id) is None
        checkr.enroll_continuous_monitoring.assert_called_once()

        actions = [action for action, _ in audit_actions(applicant_id)]
        assert actions == [AuditAction.MONITORING_ENROLLED]

    def test_failed_enrollment_clears_placeholder(self, orchestrator, make_applicant, checkr):
        checkr.enroll_continuous_monitoring.return_value = None
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.APPROVED,
                                      checkr_status=CheckrStatus.CLEAR,
                                      checkr_candidate_id='cand_123')

        assert orchestrator.enroll_continuous_monitoring(applicant_id) is None
        assert load_applicant(applicant_id).continuous_monitoring_id is None


class TestConsentAndInitiation:
    """FCRA consent and the start of screening"""

    def test_consent_starts_identity_verification(self, orchestrator, make_applicant, idenfy, notifications):
        applicant_id = make_applicant(email='owner@example.com')
        actor = Actor(user_id=1, email='owner@example.com', role='applicant')

        result = orchestrator.record_consent(applicant_id, 'Jane Doe', actor, ip_address='203.0.113.9')

        assert result['status'] == 'consent_recorded'
        assert result['verification'] == {'auth_token': 'tok_123', 'scan_ref': 'scan_123'}
        idenfy.create_verification_session.assert_called_once()
        notifications.send_screening_update.assert_called_once_with(applicant_id, 'SCREENING_IN_PROGRESS')

        applicant = load_applicant(applicant_id)
        assert applicant.background_check_consent_at is not None
        assert applicant.application_status == ApplicationStatus.SCREENING_IN_PROGRESS
        assert applicant.idenfy_status == IdenfyStatus.PENDING
        assert applicant.idenfy_scan_ref == 'scan_123'

        audit = audit_actions(applicant_id)
        assert audit[0] == (AuditAction.CONSENT_GIVEN, {'full_name': 'Jane Doe', 'ip_address': '203.0.113.9'})
        assert audit[1][0] == AuditAction.IDENFY_SESSION_CREATED

    def test_consent_is_recorded_once(self, orchestrator, make_applicant, idenfy):
        applicant_id = make_applicant(email='owner@example.com')
        actor = Actor(user_id=1, email='Owner@Example.com', role='applicant')

        orchestrator.record_consent(applicant_id, 'Jane Doe', actor)
        again = orchestrator.record_consent(applicant_id, 'Jane Doe', actor)

        assert again['status'] == 'already_consented'
        idenfy.create_verification_session.assert_called_once()

    def test_other_users_cannot_consent(self, orchestrator, make_applicant):
        applicant_id = make_applicant(email='owner@example.com')
        actor = Actor(user_id=2, email='someone@example.com', role='applicant')

        with pytest.raises(AccessDenied):
            orchestrator.record_consent(applicant_id, 'Jane Doe', actor)

        assert load_applicant(applicant_id).background_check_consent_at is None

    def test_signature_name_required(self, orchestrator, make_applicant):
        applicant_id = make_applicant(email='owner@example.com')
        actor = Actor(user_id=1, email='owner@example.com', role='applicant')

        with pytest.raises(MalformedPayload):
            orchestrator.record_consent(applicant_id, ' J ', actor)

    def test_failed_session_releases_identity_claim(self, orchestrator, make_applicant, idenfy):
        idenfy.create_verification_session.return_value = None
        applicant_id = make_applicant(background_check_consent_at=datetime.utcnow())

        assert orchestrator.initiate_screening(applicant_id) is None

        applicant = load_applicant(applicant_id)
        assert applicant.idenfy_status == IdenfyStatus.NOT_STARTED
        assert applicant.application_status == ApplicationStatus.SCREENING_IN_PROGRESS


class TestApplicantStatus:
    """Applicant-facing status view"""

    def test_exposes_only_derived_status(self, orchestrator, make_applicant):
        applicant_id = make_applicant(email='owner@example.com', idenfy_status=IdenfyStatus.APPROVED,
                                      checkr_status=CheckrStatus.CONSIDER)
        actor = Actor(user_id=1, email='Owner@Example.com', role='applicant')

        status = orchestrator.get_applicant_status(applicant_id, actor)

        assert status['screening_status'] == 'FLAGGED'
        assert 'idenfy_status' not in status
        assert 'checkr_status' not in status
        assert 'CONSIDER' not in str(status)

    def test_other_applicant_denied(self, orchestrator, make_applicant):
        applicant_id = make_applicant(email='owner@example.com')
        actor = Actor(user_id=2, email='intruder@example.com', role='applicant')

        with pytest.raises(AccessDenied):
            orchestrator.get_applicant_status(applicant_id, actor)

    def test_admin_sees_any_applicant(self, orchestrator, make_applicant):
        applicant_id = make_applicant(email='owner@example.com')
        actor = Actor(user_id=3, email='admin@example.com', role='admin')

        assert orchestrator.get_applicant_status(applicant_id, actor)['application_id'] == applicant_id


class TestEffectDispatcher:
    """Effect execution"""

    def test_failed_effect_is_logged_not_raised(self, orchestrator, make_applicant):
        applicant_id = make_applicant(idenfy_status=IdenfyStatus.APPROVED)
        dispatcher = EffectDispatcher(orchestrator, runner=inline_runner)

        result = orchestrator.handle_identity_update(applicant_id, 'APPROVED')
        assert result.effects == ()

        # no consent yet, so the invitation is refused
        assert dispatcher.execute(Effect(EffectType.INVITE_BACKGROUND_CHECK, applicant_id)) is False
