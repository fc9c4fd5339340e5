"""
Security Module

Password hashing, JWT access tokens and API key comparison.
Uses passlib (bcrypt) and python-jose.

Tokens identify the auth user only. Role and tenant are read from the
profile on every request, so a role change takes effect immediately.
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
import hmac
import uuid
from jose import JWTError, jwt
from passlib.context import CryptContext
from crux.config import get_settings

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Constant-time password verification."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    NOTE: Intentionally slow. Don't call this in hot paths or tight loops.
    """
    return pwd_context.hash(password)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Payload:
    - sub: auth user id
    - email
    - role: "authenticated" (database role, not the profile role)
    - exp / iat
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.setdefault("role", "authenticated")
    to_encode.update({
        "exp": expire,
        "iat": datetime.utcnow()
    })

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify a JWT token.

    Returns the payload if valid, None if invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None


def is_service_role_key(candidate: Optional[str]) -> bool:
    """True when candidate equals the configured service role key."""
    if not candidate or not settings.SERVICE_ROLE_KEY:
        return False
    return hmac.compare_digest(candidate, settings.SERVICE_ROLE_KEY)


def generate_invitation_token() -> str:
    """Random UUID4; the token is the invitation's capability."""
    return str(uuid.uuid4())
