"""回答の受付・一覧"""
import re
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from submitin.core.config import settings
from submitin.core.errors import LimitExceededError, NotFoundError, ValidationError
from submitin.core.logging import get_logger
from submitin.models import Form, Response, User
from submitin.repositories import Client
from submitin.services import captcha_service, form_service

logger = get_logger(__name__)

# 改行・タブ以外の制御文字
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_value(value) -> str:
    """入力値を文字列化し、制御文字を除去してトリム"""
    if value is None:
        return ""
    if isinstance(value, list):
        value = ", ".join(str(v) for v in value)
    return _CONTROL_CHARS.sub("", str(value)).strip()


def sanitize_values(raw: dict) -> dict[str, str]:
    return {str(k): sanitize_value(v) for k, v in raw.items()}


def is_valid_email(value: str) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def validate_values(form: Form, values: dict[str, str]) -> None:
    """必須・最大長・メール形式を検証"""
    errors = []
    for field in form.fields:
        value = values.get(field.id, "")
        if field.required and not value:
            errors.append({"field": field.id, "message": f"「{field.label}」は必須です"})
            continue
        if value and len(value) > settings.MAX_FIELD_VALUE_LENGTH:
            errors.append({"field": field.id, "message": f"「{field.label}」が最大長を超えています"})
        elif field.type == "email" and value and not is_valid_email(value):
            errors.append({"field": field.id, "message": f"「{field.label}」のメールアドレスが不正です"})
    if errors:
        raise ValidationError(errors, model="Response")


def submit_response(
    client: Client,
    form_id: str,
    raw_values: dict,
    captcha_token: Optional[str] = None,
) -> tuple[Form, Response, dict[str, str]]:
    """
    公開フォームへの回答を保存。
    CAPTCHAが有効なフォームではトークンを先に検証する。
    回答と各項目の値は1トランザクションで作成する。
    Returns: (フォーム, 回答, 保存した値)
    """
    form = client.form.find_first(
        where={"id": form_id, "published": True},
        include={"fields": True, "settings": True},
    )
    if form is None:
        raise NotFoundError("Form", {"id": form_id}, message="フォームが見つかりません")

    captcha_service.check_submission(form.settings, captcha_token)

    if not isinstance(raw_values, dict):
        raise ValidationError.single("values", "入力値が不正です", model="Response")

    values = sanitize_values(raw_values)
    validate_values(form, values)

    valid_ids = {f.id for f in form.fields}
    accepted = {fid: v for fid, v in values.items() if v and fid in valid_ids}

    with client.transaction():
        if client.response.count({"form_id": form_id}) >= settings.MAX_RESPONSES_PER_FORM:
            raise LimitExceededError("このフォームは回答数の上限に達しました")
        response = client.response.create({"form_id": form_id})
        client.field_value.create_many([
            {"response_id": response.id, "field_id": fid, "value": value}
            for fid, value in accepted.items()
        ])

    logger.info(f"回答受付: form_id={form_id}, response_id={response.id}, values={len(accepted)}")
    return form, response, accepted


def list_responses(
    client: Client,
    user: User,
    form_id: str,
    take: Optional[int] = None,
    cursor: Optional[str] = None,
) -> list[Response]:
    """回答一覧 (新しい順、値と項目付き)"""
    form_service.get_owned_form(client, user, form_id)
    return client.response.find_many(
        where={"form_id": form_id},
        order_by={"submitted_at": "desc"},
        include={"field_values": {"include": {"field": True}}},
        take=take,
        cursor={"id": cursor} if cursor else None,
        skip=1 if cursor else None,
    )


def count_responses(client: Client, form_id: str) -> int:
    return client.response.count({"form_id": form_id})
