"""
各エンティティの作成・更新入力スキーマ。
リポジトリはINSERT/UPDATE前にこれらで検証し、
必須項目の欠落はDBに到達する前にValidationErrorとなる。
"""
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


# --- User ---
class UserCreate(_Input):
    id: Optional[str] = None
    email: EmailStr
    email_verified: Optional[datetime] = None
    name: Optional[str] = None
    image: Optional[str] = None
    password: Optional[str] = None


class UserUpdate(_Input):
    email: EmailStr = None
    email_verified: Optional[datetime] = None
    name: Optional[str] = None
    image: Optional[str] = None
    password: Optional[str] = None


# --- Account ---
class AccountCreate(_Input):
    id: Optional[str] = None
    user_id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    provider: str = Field(min_length=1)
    provider_account_id: str = Field(min_length=1)
    refresh_token: Optional[str] = None
    access_token: Optional[str] = None
    expires_at: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    id_token: Optional[str] = None
    session_state: Optional[str] = None


class AccountUpdate(_Input):
    type: str = Field(None, min_length=1)
    provider: str = Field(None, min_length=1)
    provider_account_id: str = Field(None, min_length=1)
    refresh_token: Optional[str] = None
    access_token: Optional[str] = None
    expires_at: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    id_token: Optional[str] = None
    session_state: Optional[str] = None


# --- Session ---
class SessionCreate(_Input):
    id: Optional[str] = None
    session_token: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    expires: datetime


class SessionUpdate(_Input):
    session_token: str = Field(None, min_length=1)
    expires: datetime = None


# --- VerificationToken ---
class VerificationTokenCreate(_Input):
    identifier: str = Field(min_length=1)
    token: str = Field(min_length=1)
    expires: datetime


class VerificationTokenUpdate(_Input):
    expires: datetime = None


# --- Form ---
class FormCreate(_Input):
    id: Optional[str] = None
    slug: str = Field(min_length=1, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    published: bool = False
    user_id: str = Field(min_length=1)


class FormUpdate(_Input):
    slug: str = Field(None, min_length=1, max_length=255)
    name: str = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    published: bool = None


# --- Field ---
class FieldCreate(_Input):
    id: Optional[str] = None
    type: str = Field(min_length=1, max_length=50)
    label: str = Field(min_length=1, max_length=255)
    placeholder: Optional[str] = None
    required: bool = False
    order: int
    options: Optional[Any] = None
    form_id: str = Field(min_length=1)


class FieldUpdate(_Input):
    type: str = Field(None, min_length=1, max_length=50)
    label: str = Field(None, min_length=1, max_length=255)
    placeholder: Optional[str] = None
    required: bool = None
    order: int = None
    options: Optional[Any] = None


# --- Response ---
class ResponseCreate(_Input):
    id: Optional[str] = None
    submitted_at: Optional[datetime] = None
    form_id: str = Field(min_length=1)


class ResponseUpdate(_Input):
    submitted_at: datetime = None


# --- FieldValue ---
class FieldValueCreate(_Input):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=False)

    id: Optional[str] = None
    value: str = Field(min_length=1)
    response_id: str = Field(min_length=1)
    field_id: str = Field(min_length=1)


class FieldValueUpdate(_Input):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=False)

    value: str = Field(None, min_length=1)


# --- FormSettings ---
CaptchaProvider = Literal["turnstile", "hcaptcha"]


class FormSettingsCreate(_Input):
    id: Optional[str] = None
    notify_email: Optional[EmailStr] = None
    notify_emails: Optional[list[EmailStr]] = None
    webhook_url: Optional[str] = None
    captcha_enabled: bool = False
    captcha_provider: Optional[CaptchaProvider] = None
    captcha_secret_key: Optional[str] = None
    form_id: str = Field(min_length=1)


class FormSettingsUpdate(_Input):
    notify_email: Optional[EmailStr] = None
    notify_emails: Optional[list[EmailStr]] = None
    webhook_url: Optional[str] = None
    captcha_enabled: bool = None
    captcha_provider: Optional[CaptchaProvider] = None
    captcha_secret_key: Optional[str] = None
