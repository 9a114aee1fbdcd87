from .logger import setup_logger, get_logger, get_security_logger
from .security import hash_password, verify_password, generate_token, verify_token, verify_hmac_signature
from .status_mapping import ScreeningProvider, map_provider_status

__all__ = [
    'setup_logger', 'get_logger', 'get_security_logger',
    'hash_password', 'verify_password', 'generate_token', 'verify_token', 'verify_hmac_signature',
    'ScreeningProvider', 'map_provider_status'
]
