from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from .shared.validators import validate_email


class UserRegister(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        return validate_email(v)


class UserLogin(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    user: UserResponse
    token: str


class MessageResponse(BaseModel):
    message: str
