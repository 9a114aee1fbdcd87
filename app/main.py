from flask import Flask, jsonify
from config.config import config
from app.database import init_db
from app.routes import admin, applications, auth, webhooks
from app.services.audit_service import AuditService
from app.services.auth_service import AuthService
from app.services.effect_dispatcher import EffectDispatcher
from app.services.notification_service import NotificationService
from app.services.screening_service import ScreeningOrchestrator
from app.services.webhook_service import WebhookService
from app.utils.logger import get_logger

logger = get_logger(__name__)


def create_app(config_name='default', checkr_client=None, idenfy_client=None,
               notification_service=None, effect_runner=None):
    """Application factory"""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    init_db()

    orchestrator = ScreeningOrchestrator(
        checkr_client=checkr_client,
        idenfy_client=idenfy_client,
        notification_service=notification_service or NotificationService()
    )
    dispatcher = EffectDispatcher(orchestrator, runner=effect_runner)

    app.extensions['matchscreen'] = {
        'orchestrator': orchestrator,
        'dispatcher': dispatcher,
        'webhook_service': WebhookService(orchestrator, dispatcher),
        'audit_service': AuditService(),
        'auth_service': AuthService()
    }

    app.register_blueprint(auth.bp, url_prefix='/api/auth')
    app.register_blueprint(applications.bp, url_prefix='/api/applications')
    app.register_blueprint(admin.bp, url_prefix='/api/admin')
    app.register_blueprint(webhooks.bp, url_prefix='/api/webhooks')

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({'status': 'ok'}), 200

    logger.info(f"MatchScreen app created ({config_name})")
    return app
