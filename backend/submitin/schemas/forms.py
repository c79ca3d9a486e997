from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from submitin.schemas.records import CaptchaProvider


def _validate_webhook_url(v: Optional[str]) -> Optional[str]:
    if v is None or v == "":
        return None
    if not v.startswith(("http://", "https://")):
        raise ValueError("Webhook URLは http:// または https:// で始めてください")
    return v


# --- リクエスト ---
class FormCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)


class FormUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    published: Optional[bool] = None


class FieldCreateRequest(BaseModel):
    type: str
    label: str = Field(min_length=1, max_length=255)
    placeholder: Optional[str] = Field(default=None, max_length=255)
    required: bool = False
    options: Optional[list[str]] = None


class FieldUpdateRequest(BaseModel):
    type: Optional[str] = None
    label: Optional[str] = Field(default=None, min_length=1, max_length=255)
    placeholder: Optional[str] = Field(default=None, max_length=255)
    required: Optional[bool] = None
    options: Optional[list[str]] = None


class FieldOrderItem(BaseModel):
    id: str
    order: int = Field(ge=0)


class ReorderFieldsRequest(BaseModel):
    fields: list[FieldOrderItem]


class FormSettingsRequest(BaseModel):
    notify_email: Optional[EmailStr] = None
    notify_emails: Optional[list[EmailStr]] = None
    webhook_url: Optional[str] = Field(default=None, max_length=2048)
    captcha_enabled: bool = False
    captcha_provider: Optional[CaptchaProvider] = None
    captcha_secret_key: Optional[str] = Field(default=None, max_length=255)

    @field_validator("webhook_url")
    @classmethod
    def check_webhook_url(cls, v: Optional[str]) -> Optional[str]:
        return _validate_webhook_url(v)


class SubmitResponseRequest(BaseModel):
    values: dict[str, Any]
    captcha_token: Optional[str] = Field(default=None, alias="captchaToken")

    model_config = {"populate_by_name": True}


# --- レスポンス ---
class FieldOut(BaseModel):
    id: str
    type: str
    label: str
    placeholder: Optional[str] = None
    required: bool
    order: int
    options: Optional[Any] = None
    form_id: str

    model_config = {"from_attributes": True}


class FormSettingsOut(BaseModel):
    id: str
    notify_email: Optional[str] = None
    notify_emails: Optional[list[str]] = None
    webhook_url: Optional[str] = None
    captcha_enabled: bool = False
    captcha_provider: Optional[str] = None
    form_id: str

    model_config = {"from_attributes": True}


class FormOut(BaseModel):
    id: str
    slug: str
    name: str
    description: Optional[str] = None
    published: bool
    created_at: datetime
    updated_at: datetime
    user_id: str

    model_config = {"from_attributes": True}


class FormDetailOut(FormOut):
    fields: list[FieldOut] = []
    settings: Optional[FormSettingsOut] = None


class PublicFieldOut(BaseModel):
    id: str
    type: str
    label: str
    placeholder: Optional[str] = None
    required: bool
    order: int
    options: Optional[Any] = None

    model_config = {"from_attributes": True}


class PublicFormOut(BaseModel):
    id: str
    slug: str
    name: str
    description: Optional[str] = None
    fields: list[PublicFieldOut] = []

    model_config = {"from_attributes": True}


class FieldValueOut(BaseModel):
    id: str
    value: str
    field_id: str
    field: Optional[FieldOut] = None

    model_config = {"from_attributes": True}


class ResponseOut(BaseModel):
    id: str
    submitted_at: datetime
    form_id: str
    field_values: list[FieldValueOut] = []

    model_config = {"from_attributes": True}


class SubmitResponseOut(BaseModel):
    success: bool = True
    id: str
