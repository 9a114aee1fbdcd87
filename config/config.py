import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    DATABASE_URL = os.environ.get('DATABASE_URL') or 'sqlite:///matchscreen.db'
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Identity verification (iDenfy)
    IDENFY_API_KEY = os.environ.get('IDENFY_API_KEY')
    IDENFY_API_SECRET = os.environ.get('IDENFY_API_SECRET')
    IDENFY_WEBHOOK_SECRET = os.environ.get('IDENFY_WEBHOOK_SECRET')
    IDENFY_BASE_URL = os.environ.get('IDENFY_BASE_URL', 'https://ivs.idenfy.com/api/v2')

    # Background checks (Checkr signs webhooks with the API key unless overridden)
    CHECKR_API_KEY = os.environ.get('CHECKR_API_KEY')
    CHECKR_WEBHOOK_SECRET = os.environ.get('CHECKR_WEBHOOK_SECRET') or CHECKR_API_KEY
    CHECKR_BASE_URL = os.environ.get('CHECKR_BASE_URL', 'https://api.checkr.com/v1')
    CHECKR_PACKAGE = os.environ.get('CHECKR_PACKAGE', 'tasker_standard')
    CHECKR_WORK_STATE = os.environ.get('CHECKR_WORK_STATE', 'CA')

    # Notifications
    SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY')
    SENDGRID_FROM_EMAIL = os.environ.get('SENDGRID_FROM_EMAIL', 'noreply@realitymatchmaking.com')
    TWILIO_ACCOUNT_SID = os.environ.get('TWILIO_ACCOUNT_SID')
    TWILIO_AUTH_TOKEN = os.environ.get('TWILIO_AUTH_TOKEN')
    TWILIO_PHONE_NUMBER = os.environ.get('TWILIO_PHONE_NUMBER')

    # Application Settings
    APP_URL = os.environ.get('APP_URL', 'http://localhost:5001')

    # Admin Settings
    ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL', 'admin@realitymatchmaking.com')
    ADMIN_PHONE = os.environ.get('ADMIN_PHONE')

    # Screening pipeline
    AUDIT_LOG_DEFAULT_LIMIT = 100
    AUDIT_LOG_MAX_LIMIT = 500
    TRANSITION_MAX_ATTEMPTS = int(os.environ.get('TRANSITION_MAX_ATTEMPTS', '3'))

    # Token Settings
    ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 24 hours

    # Logging
    LOG_FILE = 'logs/matchscreen.log'
    LOG_LEVEL = 'INFO'


class DevelopmentConfig(Config):
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    DEBUG = True
    TESTING = True
    DATABASE_URL = 'sqlite:///test_matchscreen.db'
    SQLALCHEMY_DATABASE_URI = DATABASE_URL


class ProductionConfig(Config):
    DEBUG = False
    TESTING = False


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
