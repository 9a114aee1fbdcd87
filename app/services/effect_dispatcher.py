from typing import Callable, Iterable, Optional
from apscheduler.schedulers.background import BackgroundScheduler
import atexit
from app.services.screening_transitions import Effect, EffectType
from app.utils.exceptions import ScreeningError
from app.utils.logger import get_logger

logger = get_logger(__name__)


class EffectDispatcher:
    """
    Runs the side effects of a committed screening transition.

    Effects are queued on a background scheduler so that the webhook response
    never waits on Checkr, SendGrid or Twilio. A failed effect is logged and
    dropped; the invitation effect is recovered by retry_stalled_invitations.
    """

    def __init__(self, orchestrator, runner: Optional[Callable] = None):
        self.orchestrator = orchestrator
        self.scheduler = None

        if runner is None:
            self.scheduler = BackgroundScheduler()
            self.scheduler.start()
            atexit.register(lambda: self.scheduler.shutdown())
            runner = self._schedule
        self.runner = runner

        self.handlers = {
            EffectType.INVITE_BACKGROUND_CHECK: self._invite_background_check,
            EffectType.NOTIFY_APPLICANT: self._notify_applicant,
            EffectType.NOTIFY_OPERATORS: self._notify_operators,
            EffectType.ENROLL_CONTINUOUS_MONITORING: self._enroll_continuous_monitoring,
        }

    def _schedule(self, func, effect):
        self.scheduler.add_job(func, args=[effect])

    def dispatch(self, effects: Iterable[Effect]):
        for effect in effects:
            logger.info(f"Dispatching {effect.type.value} for applicant {effect.applicant_id}")
            self.runner(self.execute, effect)

    def execute(self, effect: Effect) -> bool:
        handler = self.handlers[effect.type]
        try:
            return bool(handler(effect))
        except ScreeningError as e:
            logger.error(f"Effect {effect.type.value} for applicant {effect.applicant_id} failed: {e.message}")
        except Exception as e:
            logger.error(f"Unexpected error running {effect.type.value} "
                         f"for applicant {effect.applicant_id}: {str(e)}")
        return False

    def _invite_background_check(self, effect: Effect):
        result = self.orchestrator.trigger_background_check(effect.applicant_id)
        return result['status'] in ('invitation_sent', 'already_in_progress')

    def _notify_applicant(self, effect: Effect):
        return self.orchestrator.notify_applicant(effect.applicant_id, effect.screening_status)

    def _notify_operators(self, effect: Effect):
        return self.orchestrator.notify_operators(effect.applicant_id, effect.provider_status)

    def _enroll_continuous_monitoring(self, effect: Effect):
        return self.orchestrator.enroll_continuous_monitoring(effect.applicant_id) is not None
