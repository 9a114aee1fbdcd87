import hashlib
import hmac
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union
from passlib.context import CryptContext
from jose import jwt, JWTError
from config.config import Config

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# JWT settings
SECRET_KEY = Config.SECRET_KEY
ALGORITHM = "HS256"

_HEX_DIGEST = re.compile(r'^[0-9a-f]{64}$')


def hash_password(password: str) -> str:
    """Hash a password using bcrypt"""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against hash"""
    return pwd_context.verify(plain_password, hashed_password)


def generate_token(data: dict, expires_delta: timedelta = None) -> str:
    """Generate JWT token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=Config.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[dict]:
    """Verify and decode JWT token"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def compute_hmac_signature(secret: str, payload: Union[bytes, str]) -> str:
    """HMAC-SHA256 hex digest of the raw payload"""
    if isinstance(payload, str):
        payload = payload.encode('utf-8')
    return hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).hexdigest()


def verify_hmac_signature(secret: Optional[str], signature_header: Optional[str],
                          payload: Union[bytes, str, None]) -> bool:
    """
    Check a webhook signature header against the raw request body.

    Never raises: a missing secret, a missing or malformed header and a
    mismatch all return False.
    """
    if not secret or not signature_header or payload is None:
        return False

    candidate = signature_header.strip().lower()
    if candidate.startswith('sha256='):
        candidate = candidate[len('sha256='):]
    if not _HEX_DIGEST.match(candidate):
        return False

    expected = compute_hmac_signature(secret, payload)
    return hmac.compare_digest(expected, candidate)


@dataclass(frozen=True)
class Actor:
    """Authenticated identity passed explicitly into service operations"""
    user_id: Optional[int]
    email: Optional[str]
    role: Optional[str]

    @classmethod
    def from_token(cls, payload: dict) -> 'Actor':
        return cls(
            user_id=payload.get('user_id'),
            email=payload.get('email'),
            role=payload.get('role')
        )

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'
