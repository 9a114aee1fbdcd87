"""
Screening orchestrator.

Drives an applicant through identity verification (iDenfy) and the
background check (Checkr). Provider callbacks arrive here already verified;
the orchestrator maps the raw status, asks the transition table what to do,
persists the result with a conditional update and hands the resulting
effects back to the caller.

Provider calls made on behalf of an effect (invitations, monitoring) claim
their slot with a conditional update first, so running an effect twice is
harmless.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError
from app.database import get_db
from app.models import Applicant
from app.models.applicant import ApplicationStatus, IdenfyStatus, CheckrStatus, ScreeningStatus
from app.integrations import CheckrClient, IdenfyClient
from app.services import audit_service
from app.services.audit_service import AuditAction
from app.services.notification_service import NotificationService
from app.services.screening_transitions import (
    Effect, ScreeningSnapshot, Transition, TransitionOutcome,
    derive_screening_status, identity_transition, background_check_transition
)
from app.utils.exceptions import (
    AccessDenied, ApplicantNotFound, MalformedPayload, PersistenceFailure,
    PrerequisiteFailed, ProviderError, ScreeningError, TransitionBlocked
)
from app.utils.logger import get_logger
from app.utils.security import Actor
from app.utils.status_mapping import ScreeningProvider, map_provider_status
from config.config import Config

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScreeningResult:
    outcome: TransitionOutcome
    applicant_id: int
    screening_status: ScreeningStatus
    effects: Tuple[Effect, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict:
        return {
            'received': True,
            'outcome': self.outcome.value,
            'screening_status': self.screening_status.value
        }


@dataclass(frozen=True)
class _Channel:
    provider: ScreeningProvider
    status_column: object
    updated_at_column: str
    audit_action: str
    decide: Callable[[int, ScreeningSnapshot, object], Transition]


IDENTITY_CHANNEL = _Channel(
    provider=ScreeningProvider.IDENFY,
    status_column=Applicant.idenfy_status,
    updated_at_column='idenfy_updated_at',
    audit_action=AuditAction.IDENFY_STATUS_UPDATE,
    decide=identity_transition
)

BACKGROUND_CHECK_CHANNEL = _Channel(
    provider=ScreeningProvider.CHECKR,
    status_column=Applicant.checkr_status,
    updated_at_column='checkr_updated_at',
    audit_action=AuditAction.CHECKR_STATUS_UPDATE,
    decide=background_check_transition
)


class _LostRace(Exception):
    """The record changed between read and conditional update"""


def append_note(existing_notes: Optional[str], note: str, now: datetime) -> str:
    entry = f"[{now.isoformat()}] {note}"
    return f"{existing_notes}\n{entry}" if existing_notes else entry


class ScreeningOrchestrator:
    """State machine driver for the two-provider screening pipeline"""

    def __init__(self, session_scope=get_db, checkr_client: Optional[CheckrClient] = None,
                 idenfy_client: Optional[IdenfyClient] = None,
                 notification_service: Optional[NotificationService] = None,
                 clock: Callable[[], datetime] = datetime.utcnow,
                 max_attempts: int = None):
        self.session_scope = session_scope
        self.checkr = checkr_client or CheckrClient()
        self.idenfy = idenfy_client or IdenfyClient()
        self.notifications = notification_service or NotificationService(session_scope=session_scope)
        self.clock = clock
        self.max_attempts = max_attempts or Config.TRANSITION_MAX_ATTEMPTS

    # ------------------------------------------------------------------
    # Webhook-driven transitions
    # ------------------------------------------------------------------

    def handle_identity_update(self, applicant_id: int, raw_status: Optional[str],
                               raw_payload: Optional[Dict] = None) -> ScreeningResult:
        """Apply an identity verification callback to the applicant's record"""
        references = {'scan_ref': (raw_payload or {}).get('scanRef')}
        return self._handle_update(IDENTITY_CHANNEL, applicant_id, raw_status, references)

    def handle_background_check_update(self, applicant_id: int, raw_status: Optional[str],
                                       raw_payload: Optional[Dict] = None,
                                       report_id: Optional[str] = None) -> ScreeningResult:
        """Apply a background check callback to the applicant's record"""
        references = {
            'event_type': (raw_payload or {}).get('type'),
            'report_id': report_id
        }
        extra_values = {'checkr_report_id': report_id} if report_id else {}
        return self._handle_update(BACKGROUND_CHECK_CHANNEL, applicant_id, raw_status, references, extra_values)

    def _handle_update(self, channel: _Channel, applicant_id: int, raw_status: Optional[str],
                       references: Dict, extra_values: Dict = None) -> ScreeningResult:
        incoming = map_provider_status(channel.provider, raw_status)

        for attempt in range(1, self.max_attempts + 1):
            try:
                transition = self._apply_transition(channel, applicant_id, raw_status, incoming,
                                                    references, extra_values or {})
            except _LostRace:
                logger.info(
                    f"Applicant {applicant_id} changed during {channel.provider.value} update "
                    f"(attempt {attempt}/{self.max_attempts}), re-evaluating"
                )
                continue
            except ScreeningError:
                raise
            except SQLAlchemyError as e:
                logger.error(f"Database error applying {channel.provider.value} update "
                             f"for applicant {applicant_id}: {str(e)}")
                raise PersistenceFailure(f"Failed to persist screening update for applicant {applicant_id}") from e

            self._log_outcome(channel, applicant_id, raw_status, transition)

            if transition.outcome == TransitionOutcome.BLOCKED:
                raise TransitionBlocked(
                    f"Background check update for applicant {applicant_id} received before identity approval"
                )

            return ScreeningResult(
                outcome=transition.outcome,
                applicant_id=applicant_id,
                screening_status=transition.screening_status,
                effects=transition.effects
            )

        logger.error(f"Gave up applying {channel.provider.value} update for applicant {applicant_id} "
                     f"after {self.max_attempts} concurrent modifications")
        raise PersistenceFailure(f"Concurrent updates for applicant {applicant_id}, retry later")

    def _apply_transition(self, channel: _Channel, applicant_id: int, raw_status: Optional[str],
                          incoming, references: Dict, extra_values: Dict) -> Transition:
        with self.session_scope() as db:
            applicant = db.query(Applicant).filter(Applicant.id == applicant_id).first()
            if not applicant:
                raise ApplicantNotFound(f"Applicant {applicant_id} not found")

            snapshot = ScreeningSnapshot.from_applicant(applicant)
            transition = channel.decide(applicant_id, snapshot, incoming)

            if transition.applied:
                now = self.clock()
                values = {
                    channel.status_column: transition.new_status,
                    Applicant.screening_status: transition.screening_status,
                    getattr(Applicant, channel.updated_at_column): now,
                    Applicant.updated_at: now,
                }
                if transition.application_status:
                    values[Applicant.application_status] = transition.application_status
                if transition.note:
                    values[Applicant.background_check_notes] = append_note(
                        applicant.background_check_notes, transition.note, now
                    )
                for key, value in extra_values.items():
                    values[getattr(Applicant, key)] = value

                # Conditional on every input the decision was based on
                updated = db.query(Applicant).filter(
                    Applicant.id == applicant_id,
                    Applicant.idenfy_status == snapshot.idenfy_status,
                    Applicant.checkr_status == snapshot.checkr_status,
                    Applicant.application_status == snapshot.application_status
                ).update(values, synchronize_session=False)

                if updated == 0:
                    raise _LostRace()

            audit_service.record(db, applicant_id, channel.audit_action, {
                'raw_status': raw_status,
                'mapped_status': incoming.value,
                'previous_status': transition.previous_status.value,
                'outcome': transition.outcome.value,
                'screening_status': transition.screening_status.value,
                **{key: value for key, value in references.items() if value is not None}
            })

        return transition

    def _log_outcome(self, channel: _Channel, applicant_id: int, raw_status: Optional[str],
                     transition: Transition):
        provider = channel.provider.value
        outcome = transition.outcome

        if outcome == TransitionOutcome.APPLIED:
            logger.info(
                f"{provider} status for applicant {applicant_id}: {transition.previous_status.value} -> "
                f"{transition.new_status.value} (screening {transition.screening_status.value})"
            )
        elif outcome == TransitionOutcome.UNKNOWN_STATUS:
            logger.warning(f"Unrecognized {provider} status {raw_status!r} for applicant {applicant_id}, "
                           f"no transition applied")
        elif outcome == TransitionOutcome.DUPLICATE:
            logger.info(f"Duplicate {provider} delivery ({transition.previous_status.value}) "
                        f"for applicant {applicant_id}, acknowledged")
        elif outcome == TransitionOutcome.STALE:
            logger.warning(f"Ignoring out-of-order {provider} status {transition.new_status.value} for "
                           f"applicant {applicant_id} (current {transition.previous_status.value})")
        elif outcome == TransitionOutcome.IGNORED_DELETED:
            logger.info(f"Skipping {provider} update for soft-deleted applicant {applicant_id}")
        else:
            logger.warning(f"{provider} status {transition.new_status.value} for applicant {applicant_id} "
                           f"blocked until identity is verified")

    def find_applicant_id_by_candidate(self, candidate_id: str) -> int:
        """Resolve a Checkr candidate to the applicant it was created for"""
        with self.session_scope() as db:
            applicant = db.query(Applicant).filter(Applicant.checkr_candidate_id == candidate_id).first()
            if not applicant:
                raise ApplicantNotFound(f"No applicant for Checkr candidate {candidate_id}")
            return applicant.id

    # ------------------------------------------------------------------
    # Consent and screening initiation
    # ------------------------------------------------------------------

    def record_consent(self, applicant_id: int, full_name: Optional[str], actor: Actor,
                       ip_address: Optional[str] = None) -> Dict:
        """Record FCRA background check consent, then start screening"""
        if not isinstance(full_name, str) or len(full_name.strip()) < 2:
            raise MalformedPayload("Full legal name is required as digital signature")

        with self.session_scope() as db:
            applicant = db.query(Applicant).filter(Applicant.id == applicant_id).first()
            if not applicant or applicant.deleted_at:
                raise ApplicantNotFound(f"Applicant {applicant_id} not found")

            _require_owner(applicant, actor)

            if applicant.background_check_consent_at:
                return {
                    'status': 'already_consented',
                    'consented_at': applicant.background_check_consent_at.isoformat()
                }

            consented_at = self.clock()
            applicant.background_check_consent_at = consented_at
            # Consent and its signature are legal evidence, committed together
            audit_service.record(db, applicant_id, AuditAction.CONSENT_GIVEN, {
                'full_name': full_name.strip(),
                'ip_address': ip_address or 'unknown'
            }, user_id=actor.user_id)

        logger.info(f"Background check consent recorded for applicant {applicant_id}")
        session = self.initiate_screening(applicant_id)

        return {
            'status': 'consent_recorded',
            'consented_at': consented_at.isoformat(),
            'verification': {
                'auth_token': session.get('authToken'),
                'scan_ref': session.get('scanRef')
            } if session else None
        }

    def initiate_screening(self, applicant_id: int) -> Optional[Dict]:
        """
        Move a submitted application into screening and open the identity
        verification session. Returns the iDenfy session, or None when a
        session was already opened or could not be created.
        """
        with self.session_scope() as db:
            applicant = db.query(Applicant).filter(Applicant.id == applicant_id).first()
            if not applicant:
                raise ApplicantNotFound(f"Applicant {applicant_id} not found")

            if applicant.deleted_at:
                logger.info(f"Skipping screening initiation for soft-deleted applicant {applicant_id}")
                return None

            if not applicant.background_check_consent_at:
                raise PrerequisiteFailed(f"FCRA consent not provided for applicant {applicant_id}")

            # Only SUBMITTED moves forward; later states must not regress
            moved = db.query(Applicant).filter(
                Applicant.id == applicant_id,
                Applicant.application_status == ApplicationStatus.SUBMITTED
            ).update({Applicant.application_status: ApplicationStatus.SCREENING_IN_PROGRESS},
                     synchronize_session=False)

            claimed = db.query(Applicant).filter(
                Applicant.id == applicant_id,
                Applicant.idenfy_status == IdenfyStatus.NOT_STARTED
            ).update({
                Applicant.idenfy_status: IdenfyStatus.PENDING,
                Applicant.idenfy_updated_at: self.clock(),
                Applicant.screening_status: derive_screening_status(IdenfyStatus.PENDING,
                                                                    applicant.checkr_status)
            }, synchronize_session=False)

            first_name = applicant.user.first_name
            last_name = applicant.user.last_name

        if moved:
            self.notifications.send_screening_update(applicant_id, ApplicationStatus.SCREENING_IN_PROGRESS.value)

        if not claimed:
            logger.info(f"iDenfy session already initiated for applicant {applicant_id}, skipping")
            return None

        session = self.idenfy.create_verification_session(str(applicant_id), first_name, last_name)

        if not session:
            self._release_claim(applicant_id, Applicant.idenfy_status, IdenfyStatus.PENDING,
                                IdenfyStatus.NOT_STARTED)
            logger.error(f"Failed to create iDenfy session for applicant {applicant_id}, claim released")
            return None

        with self.session_scope() as db:
            db.query(Applicant).filter(Applicant.id == applicant_id).update(
                {Applicant.idenfy_scan_ref: session.get('scanRef')}, synchronize_session=False
            )
            audit_service.record(db, applicant_id, AuditAction.IDENFY_SESSION_CREATED, {
                'scan_ref': session.get('scanRef')
            })

        logger.info(f"iDenfy verification session created for applicant {applicant_id}")
        return session

    def _release_claim(self, applicant_id: int, column, claimed_value, original_value):
        """Undo a status claim, unless a webhook has moved the status on since"""
        with self.session_scope() as db:
            applicant = db.query(Applicant).filter(Applicant.id == applicant_id).first()
            if not applicant:
                return
            idenfy_status = original_value if column is Applicant.idenfy_status else applicant.idenfy_status
            checkr_status = original_value if column is Applicant.checkr_status else applicant.checkr_status
            db.query(Applicant).filter(
                Applicant.id == applicant_id,
                column == claimed_value
            ).update({
                column: original_value,
                Applicant.screening_status: derive_screening_status(idenfy_status, checkr_status)
            }, synchronize_session=False)

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    def trigger_background_check(self, applicant_id: int, actor: Optional[Actor] = None,
                                 action: str = AuditAction.CHECKR_AUTO_TRIGGERED,
                                 triggered_by: str = 'idenfy_approved') -> Dict:
        """
        Invite the applicant to the background check. Shared by the automatic
        effect after identity approval and the admin manual trigger.
        """
        with self.session_scope() as db:
            applicant = db.query(Applicant).filter(Applicant.id == applicant_id).first()
            if not applicant:
                raise ApplicantNotFound(f"Applicant {applicant_id} not found")

            if applicant.deleted_at:
                logger.info(f"Skipping background check for soft-deleted applicant {applicant_id}")
                return {'status': 'skipped'}

            if not applicant.background_check_consent_at:
                raise PrerequisiteFailed(
                    "Background check consent must be provided before running a background check"
                )

            if applicant.idenfy_status != IdenfyStatus.APPROVED:
                raise PrerequisiteFailed("Identity verification must be completed before background check")

            # PENDING -> only after identity approval, and only once
            claimed = db.query(Applicant).filter(
                Applicant.id == applicant_id,
                Applicant.idenfy_status == IdenfyStatus.APPROVED,
                Applicant.checkr_status == CheckrStatus.NOT_STARTED
            ).update({
                Applicant.checkr_status: CheckrStatus.PENDING,
                Applicant.checkr_updated_at: self.clock(),
                Applicant.screening_status: derive_screening_status(IdenfyStatus.APPROVED, CheckrStatus.PENDING)
            }, synchronize_session=False)

            candidate_id = applicant.checkr_candidate_id
            identity = {
                'email': applicant.user.email,
                'first_name': applicant.user.first_name,
                'last_name': applicant.user.last_name
            }

        if not claimed:
            logger.info(f"Checkr already initiated for applicant {applicant_id}, skipping")
            return {'status': 'already_in_progress', 'candidate_id': candidate_id}

        try:
            if not candidate_id:
                candidate = self.checkr.create_candidate(**identity)
                if not candidate:
                    raise ProviderError(f"Failed to create Checkr candidate for applicant {applicant_id}")
                candidate_id = candidate['id']

                with self.session_scope() as db:
                    db.query(Applicant).filter(Applicant.id == applicant_id).update(
                        {Applicant.checkr_candidate_id: candidate_id}, synchronize_session=False
                    )

            invitation = self.checkr.create_invitation(candidate_id)
            if not invitation:
                raise ProviderError(f"Failed to create Checkr invitation for applicant {applicant_id}")

            package = invitation.get('package')
            with self.session_scope() as db:
                db.query(Applicant).filter(Applicant.id == applicant_id).update(
                    {Applicant.checkr_invitation_id: invitation['id']}, synchronize_session=False
                )
                audit_service.record(db, applicant_id, action, {
                    'candidate_id': candidate_id,
                    'invitation_id': invitation['id'],
                    'package': package,
                    'triggered_by': triggered_by
                }, user_id=actor.user_id if actor else None)

        except Exception:
            self._release_claim(applicant_id, Applicant.checkr_status, CheckrStatus.PENDING,
                                CheckrStatus.NOT_STARTED)
            logger.error(f"Background check invitation failed for applicant {applicant_id}, claim released")
            raise

        logger.info(f"Checkr invitation {invitation['id']} sent for applicant {applicant_id} ({triggered_by})")
        return {
            'status': 'invitation_sent',
            'candidate_id': candidate_id,
            'invitation_id': invitation['id'],
            'package': package if isinstance(package, str) else None
        }

    def enroll_continuous_monitoring(self, applicant_id: int) -> Optional[str]:
        """Enroll a cleared applicant in Checkr continuous monitoring, at most once"""
        placeholder = f"enrolling-{applicant_id}"

        with self.session_scope() as db:
            claimed = db.query(Applicant).filter(
                Applicant.id == applicant_id,
                Applicant.continuous_monitoring_id.is_(None),
                Applicant.checkr_candidate_id.isnot(None),
                Applicant.deleted_at.is_(None)
            ).update({Applicant.continuous_monitoring_id: placeholder}, synchronize_session=False)

            applicant = db.query(Applicant).filter(Applicant.id == applicant_id).first()
            candidate_id = applicant.checkr_candidate_id if applicant else None

        if not claimed:
            logger.info(f"Continuous monitoring already enrolled or not possible for applicant {applicant_id}")
            return None

        monitor = self.checkr.enroll_continuous_monitoring(candidate_id)

        if not monitor:
            with self.session_scope() as db:
                db.query(Applicant).filter(
                    Applicant.id == applicant_id,
                    Applicant.continuous_monitoring_id == placeholder
                ).update({Applicant.continuous_monitoring_id: None}, synchronize_session=False)
            logger.error(f"Failed to enroll continuous monitoring for applicant {applicant_id}")
            return None

        with self.session_scope() as db:
            stored = db.query(Applicant).filter(
                Applicant.id == applicant_id,
                Applicant.deleted_at.is_(None),
                Applicant.continuous_monitoring_id == placeholder
            ).update({Applicant.continuous_monitoring_id: monitor['id']}, synchronize_session=False)

            if stored:
                audit_service.record(db, applicant_id, AuditAction.MONITORING_ENROLLED, {
                    'candidate_id': candidate_id,
                    'monitor_id': monitor['id']
                })

        if not stored:
            # The subscription exists at Checkr but is not linked; it must be cancelled by hand
            logger.error(f"Applicant {applicant_id} changed during monitoring enrollment, "
                         f"orphaned Checkr subscription {monitor['id']}")
            return None

        logger.info(f"Continuous monitoring {monitor['id']} enrolled for applicant {applicant_id}")
        return monitor['id']

    def notify_applicant(self, applicant_id: int, screening_status: ScreeningStatus) -> bool:
        return self.notifications.send_screening_update(applicant_id, screening_status.value)

    def notify_operators(self, applicant_id: int, checkr_status: str) -> bool:
        return self.notifications.notify_operators_flagged(applicant_id, checkr_status)

    def retry_stalled_invitations(self) -> Dict:
        """Re-run invitations for applicants approved by iDenfy but never invited to Checkr"""
        with self.session_scope() as db:
            stalled_ids = [row.id for row in db.query(Applicant.id).filter(
                Applicant.idenfy_status == IdenfyStatus.APPROVED,
                Applicant.checkr_status == CheckrStatus.NOT_STARTED,
                Applicant.background_check_consent_at.isnot(None),
                Applicant.deleted_at.is_(None)
            ).all()]

        logger.info(f"Found {len(stalled_ids)} applicants with stalled background check invitations")

        results = {'invited': [], 'failed': []}
        for applicant_id in stalled_ids:
            try:
                outcome = self.trigger_background_check(applicant_id, triggered_by='retry')
            except ScreeningError as e:
                logger.error(f"Retry of background check invitation failed for applicant {applicant_id}: {e}")
                results['failed'].append(applicant_id)
                continue
            if outcome['status'] == 'invitation_sent':
                results['invited'].append(applicant_id)

        return results

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_applicant_status(self, applicant_id: int, actor: Actor) -> Dict:
        """Applicant-facing status for the owner or an admin; raw provider statuses are never exposed"""
        with self.session_scope() as db:
            applicant = db.query(Applicant).filter(
                Applicant.id == applicant_id,
                Applicant.deleted_at.is_(None)
            ).first()
            if not applicant:
                raise ApplicantNotFound(f"Applicant {applicant_id} not found")
            if not actor.is_admin:
                _require_owner(applicant, actor)

            return {
                'application_id': applicant.id,
                'status': applicant.application_status.value,
                'screening_status': applicant.screening_status.value,
                'next_step': _next_step(applicant.application_status, applicant.screening_status),
                'submitted_at': applicant.submitted_at.isoformat() if applicant.submitted_at else None
            }

    def view_screening_report(self, applicant_id: int, actor: Actor) -> Dict:
        """Fetch the Checkr report for an admin; the access is audited before the fetch"""
        with self.session_scope() as db:
            applicant = db.query(Applicant).filter(
                Applicant.id == applicant_id,
                Applicant.deleted_at.is_(None)
            ).first()
            if not applicant:
                raise ApplicantNotFound(f"Application {applicant_id} not found")
            if not applicant.checkr_report_id:
                raise ApplicantNotFound("No background check report available for this applicant")

            report_id = applicant.checkr_report_id
            applicant_view = {
                'id': applicant.id,
                'name': applicant.user.full_name,
                'checkr_candidate_id': applicant.checkr_candidate_id
            }
            audit_service.record(db, applicant_id, AuditAction.VIEW_REPORT, {
                'report_id': report_id,
                'admin_email': actor.email
            }, user_id=actor.user_id)

        report = self.checkr.get_report(report_id)
        if not report:
            logger.error(f"Failed to fetch Checkr report {report_id} for applicant {applicant_id}")
            raise ProviderError("Failed to fetch background check report from Checkr")

        summary = CheckrClient.summarize_report(report)
        summary['applicant'] = applicant_view
        return summary


NEXT_STEPS: List[Tuple[Optional[ApplicationStatus], Optional[ScreeningStatus], str]] = [
    (ApplicationStatus.PAYMENT_PENDING, None, "Complete payment to begin screening."),
    (ApplicationStatus.WAITLIST, None, "You're on the waitlist. We'll email you when a spot opens."),
    (None, ScreeningStatus.PENDING_IDENTITY, "Complete identity verification."),
    (None, ScreeningStatus.PENDING_BACKGROUND_CHECK, "Complete the background check sent to your email."),
    (None, ScreeningStatus.FAILED, "We couldn't complete your screening. Check your email for details."),
]


def _next_step(application_status: ApplicationStatus, screening_status: ScreeningStatus) -> str:
    for app_status, scr_status, message in NEXT_STEPS:
        if app_status is not None and app_status == application_status:
            return message
        if scr_status is not None and scr_status == screening_status:
            return message
    return "We are reviewing your application."


def _require_owner(applicant: Applicant, actor: Actor):
    """Applicants are matched to their login by email"""
    if not actor.email or applicant.user.email.lower() != actor.email.lower():
        raise AccessDenied()
