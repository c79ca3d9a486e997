"""例外 → JSONレスポンス変換 (FastAPIに登録する)"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from submitin.core.errors import SubmitinError, ValidationError
from submitin.core.logging import get_logger
from submitin.core.rate_limit import rate_limit_exceeded_handler

logger = get_logger(__name__)

# リクエスト項目名の表示名
FIELD_LABELS = {
    "email": "メールアドレス",
    "password": "パスワード",
    "name": "名前",
    "description": "説明",
    "published": "公開設定",
    "type": "項目タイプ",
    "label": "ラベル",
    "placeholder": "プレースホルダー",
    "required": "必須設定",
    "options": "選択肢",
    "order": "表示順",
    "fields": "項目一覧",
    "values": "回答",
    "notify_email": "通知先メール",
    "notify_emails": "追加の通知先メール",
    "webhook_url": "Webhook URL",
    "captcha_enabled": "CAPTCHA設定",
    "captcha_provider": "CAPTCHAプロバイダー",
    "captcha_secret_key": "CAPTCHAシークレットキー",
    "captchaToken": "CAPTCHAトークン",
    "token": "トークン",
}

# pydanticのエラー種別 → メッセージテンプレート ({label} と ctx のキーを埋める)
ERROR_TEMPLATES = {
    "missing": "{label}は必須です",
    "string_too_short": "{label}は{min_length}文字以上で入力してください",
    "string_too_long": "{label}は{max_length}文字以下で入力してください",
    "string_type": "{label}は文字列で入力してください",
    "int_parsing": "{label}は数値で入力してください",
    "int_type": "{label}は数値で入力してください",
    "greater_than_equal": "{label}は{ge}以上の値を入力してください",
    "less_than_equal": "{label}は{le}以下の値を入力してください",
    "bool_parsing": "{label}は真偽値で入力してください",
    "dict_type": "{label}の形式が不正です",
    "list_type": "{label}は一覧で指定してください",
    "literal_error": "{label}は{expected}のいずれかを指定してください",
}


def _field_name(loc) -> str:
    # リスト要素 (notify_emails.0 など) は親の項目名で表示
    names = [str(p) for p in loc if not isinstance(p, int) and p != "body"]
    return names[-1] if names else ""


def translate_validation_error(err: dict) -> str:
    """pydanticのエラー1件を表示用メッセージに変換"""
    field = _field_name(err.get("loc", ()))
    label = FIELD_LABELS.get(field, field)
    kind = err.get("type", "")
    msg = err.get("msg", "")

    if "email" in kind or "email" in msg.lower():
        return f"{label}は有効なメールアドレス形式で入力してください"
    if kind == "value_error":
        return f"{label}: {msg.removeprefix('Value error, ')}"
    template = ERROR_TEMPLATES.get(kind)
    if template is None:
        return f"{label}: 入力値が不正です"
    return template.format_map({"label": label, **err.get("ctx", {})})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [translate_validation_error(e) for e in exc.errors()]
    return JSONResponse(status_code=422, content={"detail": "、".join(messages)})


async def domain_error_handler(request: Request, exc: SubmitinError) -> JSONResponse:
    content = {"detail": exc.message, "error": exc.__class__.__name__}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=content)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SubmitinError, domain_error_handler)
