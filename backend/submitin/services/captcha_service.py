"""CAPTCHA検証 (Cloudflare Turnstile / hCaptcha の siteverify)"""
import logging
from typing import Optional

import httpx

from submitin.core.config import settings
from submitin.core.errors import CaptchaVerificationError
from submitin.core.logging import get_logger, log_event
from submitin.models import FormSettings

logger = get_logger(__name__)

VERIFY_URLS = {
    "turnstile": "https://challenges.cloudflare.com/turnstile/v0/siteverify",
    "hcaptcha": "https://hcaptcha.com/siteverify",
}


def captcha_required(form_settings: Optional[FormSettings]) -> bool:
    """有効化済みかつプロバイダーとシークレットが揃っている場合のみ検証する"""
    return bool(
        form_settings
        and form_settings.captcha_enabled
        and form_settings.captcha_provider
        and form_settings.captcha_secret_key
    )


def verify_token(token: str, secret_key: str, provider: str) -> tuple[bool, list[str]]:
    """
    siteverify にトークンを問い合わせる。
    Returns: (成否, エラーコード一覧)
    """
    url = VERIFY_URLS.get(provider)
    if url is None:
        return False, ["invalid-provider"]
    try:
        with httpx.Client(timeout=settings.CAPTCHA_TIMEOUT_SECONDS) as client:
            res = client.post(url, data={"secret": secret_key, "response": token})
            res.raise_for_status()
            data = res.json()
    except (httpx.HTTPError, ValueError) as e:
        log_event(logger, logging.ERROR, "CAPTCHA検証リクエスト失敗", provider=provider, error=str(e))
        return False, ["verification-failed"]
    return data.get("success") is True, list(data.get("error-codes") or [])


def check_submission(form_settings: Optional[FormSettings], token: Optional[str]) -> None:
    """回答送信時のCAPTCHA検証。不要なら何もしない"""
    if not captcha_required(form_settings):
        return
    if not token:
        raise CaptchaVerificationError("スパム対策の確認が必要です。CAPTCHAを完了してください")

    ok, error_codes = verify_token(token, form_settings.captcha_secret_key, form_settings.captcha_provider)
    if not ok:
        log_event(
            logger, logging.WARNING, "CAPTCHA検証失敗",
            form_id=form_settings.form_id, provider=form_settings.captcha_provider, error_codes=error_codes,
        )
        raise CaptchaVerificationError("スパム対策の確認に失敗しました。もう一度お試しください")
