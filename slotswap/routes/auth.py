import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import create_access_token, get_current_user, hash_password, verify_password
from ..database import get_db, unit_of_work
from ..errors import AuthenticationError, ConflictError, ValidationError
from ..models import User
from ..schemas import AuthResponse, UserLogin, UserRegister, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

MIN_PASSWORD_LENGTH = 6


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(data: UserRegister, request: Request, db: Session = Depends(get_db)):
    """Create an account and return a token for it"""
    name = (data.name or "").strip()
    if not name or not data.email or not data.password:
        raise ValidationError("Please provide all fields")
    if len(data.password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    if db.query(User).filter(User.email == data.email).first():
        raise ConflictError("User already exists")

    try:
        with unit_of_work(db):
            user = User(name=name, email=data.email, password_hash=hash_password(data.password))
            db.add(user)
    except IntegrityError as e:
        # Email taken between the check and the insert
        logger.warning(f"⚠️ Duplicate registration for {data.email}")
        raise ConflictError("User with this email already exists") from e

    logger.info(f"🆕 New user created: {user.email}")
    return AuthResponse(
        user=UserResponse.model_validate(user),
        token=create_access_token(user.id, request.app.state.settings),
    )


@router.post("/login", response_model=AuthResponse)
async def login(data: UserLogin, request: Request, db: Session = Depends(get_db)):
    if not data.email or not data.password:
        raise ValidationError("Please provide both email and password")

    email = data.email.strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(data.password, user.password_hash):
        logger.info(f"🔒 Failed login for {email}")
        raise AuthenticationError("Invalid email or password")

    logger.info(f"✅ Login successful for user: {user.email}")
    return AuthResponse(
        user=UserResponse.model_validate(user),
        token=create_access_token(user.id, request.app.state.settings),
    )


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user
