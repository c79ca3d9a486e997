from datetime import datetime
from pydantic import BaseModel, EmailStr, Field
from typing import Optional


class MagicLinkRequest(BaseModel):
    email: EmailStr


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: Optional[str] = Field(default=None, max_length=255)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    message: str
    user_id: Optional[str] = None
    session_token: Optional[str] = None


class UserInfo(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    email_verified: Optional[datetime] = None

    model_config = {"from_attributes": True}
