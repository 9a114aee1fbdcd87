from typing import Dict
from app.database import DatabaseManager, get_db
from app.models import User
from app.models.user import UserRole
from app.utils.security import hash_password, verify_password, generate_token
from app.utils.logger import get_logger, get_security_logger

logger = get_logger(__name__)
security_logger = get_security_logger()


class AuthService:
    """Service for handling authentication"""

    def __init__(self, session_scope=get_db):
        self.session_scope = session_scope
        self.user_db = DatabaseManager(User, session_scope=session_scope)

    def create_user(self, email: str, password: str, first_name: str, last_name: str,
                    role: UserRole = UserRole.APPLICANT) -> Dict:
        """Create an active user account"""
        if self.user_db.get_by(email=email):
            return {'error': 'Email already registered'}

        user = self.user_db.create(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=True
        )
        logger.info(f"Created {role.value} user {user.id}")
        return {'user_id': user.id, 'success': True}

    def authenticate_user(self, email: str, password: str) -> Dict:
        """Authenticate user and return token"""
        try:
            with self.session_scope() as db:
                user = db.query(User).filter(User.email == email).first()

                if not user or not verify_password(password, user.password_hash):
                    security_logger.warning(f"Failed login attempt for {email}")
                    return {'error': 'Invalid credentials'}

                if not user.is_active:
                    return {'error': 'Account not activated'}

                token_data = {
                    'user_id': user.id,
                    'email': user.email,
                    'role': user.role.value
                }
                access_token = generate_token(token_data)

                return {
                    'access_token': access_token,
                    'user': {
                        'id': user.id,
                        'email': user.email,
                        'first_name': user.first_name,
                        'last_name': user.last_name,
                        'role': user.role.value
                    }
                }

        except Exception as e:
            logger.error(f"Authentication error: {str(e)}")
            return {'error': 'Authentication failed'}
