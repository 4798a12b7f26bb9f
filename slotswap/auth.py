import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .config import Settings
from .database import get_db
from .models import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Password hashing context
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against stored hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.error(f"Password verification error: {e}")
        return False


def create_access_token(user_id: str, settings: Settings) -> str:
    """Create a signed JWT whose subject is the user id"""
    expire = datetime.now(timezone.utc) + timedelta(days=settings.access_token_expire_days)
    to_encode = {"sub": user_id, "exp": expire}
    return jose_jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> Optional[dict[str, Any]]:
    """
    Verify and decode a JWT token

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jose_jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


def user_from_token(db: Session, token: Optional[str], settings: Settings) -> Optional[User]:
    """Resolve the user a token was issued to, or None when the token is unusable"""
    if not token:
        return None

    payload = decode_access_token(token, settings)
    if not payload or not payload.get("sub"):
        return None

    return db.query(User).filter(User.id == payload["sub"]).first()


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the bearer token"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    user = user_from_token(db, credentials.credentials, request.app.state.settings)
    if not user:
        logger.info(f"🔒 Rejected token for {request.method} {request.url.path}")
        raise HTTPException(status_code=401, detail="Not authorized, token failed")

    logger.debug(f"✅ User authenticated: {user.email}")
    return user
