"""
Screening state machine.

Everything in this module is pure: given a snapshot of an applicant's
screening record and an incoming (already mapped) provider status it decides
the outcome, the new persisted values and the effects the caller has to
perform. Nothing here touches the database or the network.

Composite status (DENIED/EXPIRED wins over "identity not approved"):

    idenfy              checkr                  screening
    DENIED/EXPIRED      any                     FAILED
    NOT_STARTED/PENDING any                     PENDING_IDENTITY
    APPROVED            NOT_STARTED/PENDING     PENDING_BACKGROUND_CHECK
    APPROVED            CLEAR                   CLEARED
    APPROVED            CONSIDER/SUSPENDED      FLAGGED
"""
import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union
from app.models.applicant import ApplicationStatus, IdenfyStatus, CheckrStatus, ScreeningStatus


class TransitionOutcome(enum.Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    STALE = "stale"
    UNKNOWN_STATUS = "unknown_status"
    BLOCKED = "blocked"
    IGNORED_DELETED = "ignored_deleted"


class EffectType(enum.Enum):
    INVITE_BACKGROUND_CHECK = "invite_background_check"
    NOTIFY_APPLICANT = "notify_applicant"
    NOTIFY_OPERATORS = "notify_operators"
    ENROLL_CONTINUOUS_MONITORING = "enroll_continuous_monitoring"


@dataclass(frozen=True)
class Effect:
    type: EffectType
    applicant_id: int
    screening_status: Optional[ScreeningStatus] = None
    provider_status: Optional[str] = None


@dataclass(frozen=True)
class ScreeningSnapshot:
    idenfy_status: IdenfyStatus
    checkr_status: CheckrStatus
    application_status: ApplicationStatus
    is_deleted: bool = False

    @classmethod
    def from_applicant(cls, applicant) -> 'ScreeningSnapshot':
        return cls(
            idenfy_status=applicant.idenfy_status,
            checkr_status=applicant.checkr_status,
            application_status=applicant.application_status,
            is_deleted=applicant.deleted_at is not None
        )


@dataclass(frozen=True)
class Transition:
    outcome: TransitionOutcome
    previous_status: Union[IdenfyStatus, CheckrStatus]
    new_status: Union[IdenfyStatus, CheckrStatus]
    screening_status: ScreeningStatus
    application_status: Optional[ApplicationStatus] = None
    note: Optional[str] = None
    effects: Tuple[Effect, ...] = field(default_factory=tuple)

    @property
    def applied(self) -> bool:
        return self.outcome == TransitionOutcome.APPLIED


IDENTITY_FAILED_STATUSES = frozenset({IdenfyStatus.DENIED, IdenfyStatus.EXPIRED})
CHECKR_FLAGGED_STATUSES = frozenset({CheckrStatus.CONSIDER, CheckrStatus.SUSPENDED})

IDENTITY_TRANSITIONS = {
    IdenfyStatus.NOT_STARTED: frozenset({
        IdenfyStatus.PENDING, IdenfyStatus.APPROVED, IdenfyStatus.DENIED, IdenfyStatus.EXPIRED
    }),
    IdenfyStatus.PENDING: frozenset({
        IdenfyStatus.APPROVED, IdenfyStatus.DENIED, IdenfyStatus.EXPIRED
    }),
    IdenfyStatus.APPROVED: frozenset(),
    IdenfyStatus.DENIED: frozenset(),
    IdenfyStatus.EXPIRED: frozenset(),
}

BACKGROUND_CHECK_TRANSITIONS = {
    CheckrStatus.NOT_STARTED: frozenset({
        CheckrStatus.PENDING, CheckrStatus.CLEAR, CheckrStatus.CONSIDER, CheckrStatus.SUSPENDED
    }),
    CheckrStatus.PENDING: frozenset({
        CheckrStatus.CLEAR, CheckrStatus.CONSIDER, CheckrStatus.SUSPENDED
    }),
    # an adjudicated "consider" report can still come back clear
    CheckrStatus.CONSIDER: frozenset({CheckrStatus.CLEAR}),
    CheckrStatus.CLEAR: frozenset(),
    CheckrStatus.SUSPENDED: frozenset(),
}

# Applications in these states move to UNDER_REVIEW once screening clears
REVIEWABLE_APPLICATION_STATUSES = frozenset({
    ApplicationStatus.SUBMITTED, ApplicationStatus.SCREENING_IN_PROGRESS
})


def derive_screening_status(idenfy_status: IdenfyStatus, checkr_status: CheckrStatus) -> ScreeningStatus:
    """Composite screening status, a pure function of both provider statuses"""
    if idenfy_status in IDENTITY_FAILED_STATUSES:
        return ScreeningStatus.FAILED
    if idenfy_status != IdenfyStatus.APPROVED:
        return ScreeningStatus.PENDING_IDENTITY
    if checkr_status == CheckrStatus.CLEAR:
        return ScreeningStatus.CLEARED
    if checkr_status in CHECKR_FLAGGED_STATUSES:
        return ScreeningStatus.FLAGGED
    return ScreeningStatus.PENDING_BACKGROUND_CHECK


def _unchanged(outcome, snapshot, current, incoming=None) -> Transition:
    return Transition(
        outcome=outcome,
        previous_status=current,
        new_status=current if incoming is None else incoming,
        screening_status=derive_screening_status(snapshot.idenfy_status, snapshot.checkr_status)
    )


def _guard(snapshot: ScreeningSnapshot, current, incoming, unknown, allowed) -> Optional[Transition]:
    """Outcomes shared by both channels that leave the record untouched"""
    if snapshot.is_deleted:
        return _unchanged(TransitionOutcome.IGNORED_DELETED, snapshot, current)
    if incoming == unknown:
        return _unchanged(TransitionOutcome.UNKNOWN_STATUS, snapshot, current, incoming)
    if incoming == current:
        return _unchanged(TransitionOutcome.DUPLICATE, snapshot, current)
    if incoming not in allowed.get(current, frozenset()):
        return _unchanged(TransitionOutcome.STALE, snapshot, current, incoming)
    return None


def identity_transition(applicant_id: int, snapshot: ScreeningSnapshot,
                        incoming: IdenfyStatus) -> Transition:
    """Decide what an identity verification update does to the record"""
    current = snapshot.idenfy_status
    rejected = _guard(snapshot, current, incoming, IdenfyStatus.UNKNOWN, IDENTITY_TRANSITIONS)
    if rejected:
        return rejected

    screening_status = derive_screening_status(incoming, snapshot.checkr_status)
    effects = []
    note = None

    if incoming == IdenfyStatus.APPROVED:
        effects.append(Effect(EffectType.INVITE_BACKGROUND_CHECK, applicant_id))
    elif incoming in IDENTITY_FAILED_STATUSES:
        note = f"Identity verification failed ({incoming.value})"
        effects.append(Effect(EffectType.NOTIFY_APPLICANT, applicant_id, screening_status, incoming.value))

    return Transition(
        outcome=TransitionOutcome.APPLIED,
        previous_status=current,
        new_status=incoming,
        screening_status=screening_status,
        note=note,
        effects=tuple(effects)
    )


def background_check_transition(applicant_id: int, snapshot: ScreeningSnapshot,
                                incoming: CheckrStatus) -> Transition:
    """Decide what a background check update does to the record"""
    current = snapshot.checkr_status
    rejected = _guard(snapshot, current, incoming, CheckrStatus.UNKNOWN, BACKGROUND_CHECK_TRANSITIONS)
    if rejected:
        return rejected

    if snapshot.idenfy_status != IdenfyStatus.APPROVED:
        return _unchanged(TransitionOutcome.BLOCKED, snapshot, current, incoming)

    screening_status = derive_screening_status(snapshot.idenfy_status, incoming)
    effects = []
    note = None
    application_status = None

    if incoming == CheckrStatus.CLEAR:
        note = "All screening checks passed"
        if snapshot.application_status in REVIEWABLE_APPLICATION_STATUSES:
            application_status = ApplicationStatus.UNDER_REVIEW
        effects.append(Effect(EffectType.NOTIFY_APPLICANT, applicant_id, screening_status, incoming.value))
        effects.append(Effect(EffectType.ENROLL_CONTINUOUS_MONITORING, applicant_id))
    elif incoming in CHECKR_FLAGGED_STATUSES:
        note = f"Checkr result: {incoming.value.lower()} -- requires admin review"
        effects.append(Effect(EffectType.NOTIFY_OPERATORS, applicant_id, screening_status, incoming.value))

    return Transition(
        outcome=TransitionOutcome.APPLIED,
        previous_status=current,
        new_status=incoming,
        screening_status=screening_status,
        application_status=application_status,
        note=note,
        effects=tuple(effects)
    )
